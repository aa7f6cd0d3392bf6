import pytest

from engine import (
    BULK_ALL,
    BULK_LEVEL,
    BULK_UNPAID,
    COMPLIMENTARY_DETAILS,
    WAIVED_DETAILS,
    BulkOptions,
    InvoiceOptions,
    generate_bulk_invoices,
    generate_invoice,
    invoice_for_new_member,
    invoice_total,
)
from models import FinancialYear, InvoiceStatus, ValidationError

FY_2023 = FinancialYear.starting(2023)
FY_2024 = FinancialYear.starting(2024)


def test_invoice_total(level):
    ao = level("ao-1d")  # joining 11, annual 33
    assert invoice_total(ao) == 33
    assert invoice_total(ao, 3) == 99
    assert invoice_total(ao, 2, include_joining_fee=True) == 77


# ---------- on add ----------

def test_new_member_invoice_includes_joining_fee(make_member, level, clock):
    inv = invoice_for_new_member(make_member(), level("ao-1d"), FY_2023, clock(2023, 7, 20))
    assert inv.amount == 44
    assert inv.include_joining_fee is True
    assert inv.number_of_years == 1
    assert inv.status == InvoiceStatus.UNPAID
    assert inv.date == "2023-07-20"
    assert inv.due_date == "2023-08-19"
    assert inv.financial_year == FY_2023
    assert inv.level_at_time_of_invoice == level("ao-1d")


def test_new_member_on_free_level_is_settled(make_member, level, clock):
    inv = invoice_for_new_member(make_member(level_id="am-s"), level("am-s"), FY_2023, clock(2023, 7, 20))
    assert inv.amount == 0
    assert inv.status == InvoiceStatus.PAID
    assert inv.amount_paid == 0
    assert inv.paid_date == "2023-07-20"
    assert inv.payment_details == COMPLIMENTARY_DETAILS
    assert inv.include_joining_fee is False


# ---------- ad hoc ----------

def test_ad_hoc_multi_year_note_and_amount(make_member, level, clock):
    options = InvoiceOptions(financial_year=FY_2023, number_of_years=3, notes="Thank you.")
    inv = generate_invoice(make_member(), level("ao-1d"), options, clock(2023, 7, 20))
    assert inv.amount == 99
    assert inv.number_of_years == 3
    assert inv.notes == (
        "This invoice covers membership for 3 financial years, from 2023-2024 to 2025-2026.\n\nThank you."
    )


def test_ad_hoc_single_year_keeps_notes(make_member, level, clock):
    options = InvoiceOptions(financial_year=FY_2023, notes="  PO 1234 ")
    inv = generate_invoice(make_member(), level("ao-1d"), options, clock(2023, 7, 20))
    assert inv.notes == "PO 1234"
    assert generate_invoice(make_member(), level("ao-1d"), InvoiceOptions(FY_2023), clock(2023, 7, 20)).notes is None


def test_ad_hoc_waived_fee(make_member, level, clock):
    options = InvoiceOptions(financial_year=FY_2023, waive_fee=True, include_joining_fee=True,
                             invoice_date="2023-08-02", number_of_years=2)
    inv = generate_invoice(make_member(), level("cgm-1"), options, clock(2023, 7, 20))
    assert inv.amount == 0
    assert inv.status == InvoiceStatus.PAID
    assert inv.paid_date == "2023-08-02"
    assert inv.payment_details == WAIVED_DETAILS


def test_ad_hoc_free_level_is_complimentary(make_member, level, clock):
    options = InvoiceOptions(financial_year=FY_2023, invoice_date="2023-08-02")
    inv = generate_invoice(make_member(level_id="am-s"), level("am-s"), options, clock(2023, 7, 20))
    assert inv.amount == 0
    assert inv.status == InvoiceStatus.PAID
    assert inv.payment_details == COMPLIMENTARY_DETAILS


def test_ad_hoc_level_override_and_joining_fee(make_member, level, clock):
    options = InvoiceOptions(financial_year=FY_2024, level=level("cgm-1"), include_joining_fee=True, due_date="2024-09-30")
    inv = generate_invoice(make_member(), level("ao-1d"), options, clock(2024, 7, 20))
    assert inv.amount == 700
    assert inv.level_at_time_of_invoice.id == "cgm-1"
    assert inv.due_date == "2024-09-30"


def test_ad_hoc_rejects_bad_input(make_member, level, clock):
    with pytest.raises(ValidationError):
        generate_invoice(make_member(), level("ao-1d"), InvoiceOptions(FY_2023, number_of_years=0), clock(2023, 7, 20))
    with pytest.raises(ValidationError):
        generate_invoice(make_member(), None, InvoiceOptions(FY_2023), clock(2023, 7, 20))


# ---------- bulk ----------

def test_bulk_unpaid_for_other_year_is_empty(make_member, levels, clock):
    members = [make_member("mem-1"), make_member("mem-2")]
    created = generate_bulk_invoices(members, [], levels, BULK_UNPAID, FY_2024, BulkOptions(FY_2023), clock(2023, 9, 1))
    assert created == []


def test_bulk_unpaid_selects_unpaid_members(make_member, make_invoice, levels, clock):
    members = [make_member("mem-1"), make_member("mem-2"), make_member("mem-3")]
    invoices = [
        make_invoice("inv-2", member_id="mem-2", status=InvoiceStatus.PAID, amount_paid=33),
        make_invoice("inv-3", member_id="mem-3", status=InvoiceStatus.UNPAID),
    ]
    created = generate_bulk_invoices(members, invoices, levels, BULK_UNPAID, FY_2023, BulkOptions(FY_2023), clock(2023, 9, 1))
    # mem-3 is unpaid but already has an invoice for the year
    assert [inv.member_id for inv in created] == ["mem-1"]


def test_bulk_unpaid_during_grace_period_is_empty(make_member, levels, clock):
    created = generate_bulk_invoices([make_member()], [], levels, BULK_UNPAID, FY_2023, BulkOptions(FY_2023), clock(2023, 7, 10))
    assert created == []


def test_bulk_all_skips_archived_and_invoiced(make_member, make_invoice, levels, clock):
    members = [
        make_member("mem-1"),
        make_member("mem-2", is_globally_archived=True),
        make_member("mem-3"),
        make_member("mem-4"),
    ]
    invoices = [
        make_invoice("inv-3", member_id="mem-3"),
        make_invoice("inv-4", member_id="mem-4", status=InvoiceStatus.VOID),
    ]
    created = generate_bulk_invoices(members, invoices, levels, BULK_ALL, FY_2023, BulkOptions(FY_2023), clock(2023, 9, 1))
    assert sorted(inv.member_id for inv in created) == ["mem-1", "mem-4"]


def test_bulk_skips_members_covered_by_multi_year_invoice(make_member, make_invoice, levels, clock):
    invoices = [make_invoice(start_year=2023, years=2, status=InvoiceStatus.PAID, amount=66, amount_paid=66)]
    created = generate_bulk_invoices([make_member()], invoices, levels, BULK_ALL, FY_2024, BulkOptions(FY_2024), clock(2024, 9, 1))
    assert created == []


def test_bulk_level_mode(make_member, levels, clock):
    members = [make_member("mem-1", level_id="ao-1d"), make_member("mem-2", level_id="ao-2d")]
    options = BulkOptions(FY_2023, level_id="ao-2d")
    created = generate_bulk_invoices(members, [], levels, BULK_LEVEL, FY_2023, options, clock(2023, 9, 1))
    assert [inv.member_id for inv in created] == ["mem-2"]
    assert generate_bulk_invoices(members, [], levels, BULK_LEVEL, FY_2023, BulkOptions(FY_2023), clock(2023, 9, 1)) == []


def test_bulk_joining_fee_for_first_year_members_only(make_member, levels, clock):
    members = [make_member("new", start="2024-08-01", end="2025-06-30"), make_member("old", start="2022-07-01")]
    created = {
        inv.member_id: inv
        for inv in generate_bulk_invoices(members, [], levels, BULK_ALL, FY_2024, BulkOptions(FY_2024), clock(2024, 9, 1))
    }
    assert created["new"].include_joining_fee is True
    assert created["new"].amount == 44
    assert created["old"].include_joining_fee is False
    assert created["old"].amount == 33


def test_bulk_joining_fee_toggle_off(make_member, levels, clock):
    member = make_member(start="2024-08-01", end="2025-06-30")
    options = BulkOptions(FY_2024, include_joining_fee=False)
    [inv] = generate_bulk_invoices([member], [], levels, BULK_ALL, FY_2024, options, clock(2024, 9, 1))
    assert inv.include_joining_fee is False
    assert inv.amount == 33


def test_bulk_free_level_settled_and_missing_level_skipped(make_member, levels, clock):
    members = [make_member("free", level_id="am-hl"), make_member("gone", level_id="deleted-level")]
    created = generate_bulk_invoices(members, [], levels, BULK_ALL, FY_2023, BulkOptions(FY_2023, due_date="2023-10-01"), clock(2023, 9, 1))
    assert len(created) == 1
    [inv] = created
    assert inv.member_id == "free"
    assert inv.status == InvoiceStatus.PAID
    assert inv.payment_details == COMPLIMENTARY_DETAILS
    assert inv.due_date == "2023-10-01"


def test_bulk_unknown_mode(make_member, levels, clock):
    with pytest.raises(ValidationError):
        generate_bulk_invoices([make_member()], [], levels, "everyone", FY_2023, BulkOptions(FY_2023), clock(2023, 9, 1))


def test_bulk_ids_unique(make_member, levels, clock):
    members = [make_member(f"mem-{i}") for i in range(5)]
    created = generate_bulk_invoices(members, [], levels, BULK_ALL, FY_2023, BulkOptions(FY_2023), clock(2023, 9, 1))
    assert len({inv.id for inv in created}) == 5
