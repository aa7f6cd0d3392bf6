from datetime import datetime

from engine import project_statuses, status_without_invoice, void_invoice
from models import FinancialYear, InvoiceStatus, MemberStatus

FY_2023 = FinancialYear.starting(2023)


def _status(members, invoices, fy, now):
    return {p.id: p for p in project_statuses(members, invoices, fy, now)}


def test_no_invoice_pending_within_first_month(make_member, clock):
    member = make_member(start="2023-07-01")
    [p] = project_statuses([member], [], FY_2023, clock(2023, 7, 15))
    assert p.status == MemberStatus.PENDING
    assert p.has_invoice is False


def test_no_invoice_unpaid_after_first_month(make_member, clock):
    member = make_member(start="2023-07-01")
    [p] = project_statuses([member], [], FY_2023, clock(2023, 9, 1))
    assert p.status == MemberStatus.UNPAID


def test_grace_period_boundary():
    assert status_without_invoice(FY_2023, datetime(2023, 8, 1, 0, 0)) == MemberStatus.PENDING
    assert status_without_invoice(FY_2023, datetime(2023, 8, 1, 0, 1)) == MemberStatus.UNPAID


def test_future_year_is_pending(make_member, clock):
    [p] = project_statuses([make_member()], [], FinancialYear.starting(2025), clock(2023, 9, 1))
    assert p.status == MemberStatus.PENDING


def test_elapsed_year_without_invoice_is_unpaid(make_member, clock):
    [p] = project_statuses([make_member()], [], FinancialYear.starting(2020), clock(2023, 9, 1))
    assert p.status == MemberStatus.UNPAID


def test_paid_wins_over_newer_unpaid(make_member, make_invoice, clock):
    invoices = [
        make_invoice("inv-1", status=InvoiceStatus.PAID, amount_paid=33, date="2023-07-05"),
        make_invoice("inv-2", status=InvoiceStatus.UNPAID, date="2023-08-05"),
    ]
    [p] = project_statuses([make_member()], invoices, FY_2023, clock(2023, 9, 1))
    assert p.status == MemberStatus.PAID
    assert p.has_invoice


def test_partially_paid_beats_unpaid(make_member, make_invoice, clock):
    invoices = [
        make_invoice("inv-1", status=InvoiceStatus.UNPAID, date="2023-08-05"),
        make_invoice("inv-2", status=InvoiceStatus.PARTIALLY_PAID, amount_paid=10, date="2023-07-05"),
    ]
    [p] = project_statuses([make_member()], invoices, FY_2023, clock(2023, 9, 1))
    assert p.status == MemberStatus.PARTIALLY_PAID


def test_unpaid_invoice_within_grace_period_is_unpaid(make_member, make_invoice, clock):
    [p] = project_statuses([make_member()], [make_invoice()], FY_2023, clock(2023, 7, 15))
    assert p.status == MemberStatus.UNPAID


def test_level_comes_from_latest_covering_invoice(make_member, make_invoice, clock):
    member = make_member(level_id="cgm-1")
    invoices = [
        make_invoice("inv-1", level_id="ao-1d", date="2023-07-05"),
        make_invoice("inv-2", level_id="ao-2d", date="2023-08-05"),
    ]
    [p] = project_statuses([member], invoices, FY_2023, clock(2023, 9, 1))
    assert p.member.membership_level_id == "ao-2d"
    # without a covering invoice the member's own level shows
    [q] = project_statuses([member], invoices, FinancialYear.starting(2024), clock(2023, 9, 1))
    assert q.member.membership_level_id == "cgm-1"


def test_latest_tie_resolved_by_insertion_order(make_member, make_invoice, clock):
    invoices = [
        make_invoice("inv-1", level_id="ao-1d", date="2023-07-05"),
        make_invoice("inv-2", level_id="ao-2d", date="2023-07-05"),
    ]
    [p] = project_statuses([make_member()], invoices, FY_2023, clock(2023, 9, 1))
    assert p.member.membership_level_id == "ao-1d"


def test_multi_year_invoice_counts_for_later_years(make_member, make_invoice, clock):
    inv = make_invoice(start_year=2023, years=3, status=InvoiceStatus.PAID, amount=99, amount_paid=99)
    now = clock(2024, 9, 1)
    for start_year, expected in [(2023, MemberStatus.PAID), (2024, MemberStatus.PAID),
                                 (2025, MemberStatus.PAID), (2026, MemberStatus.PENDING)]:
        [p] = project_statuses([make_member()], [inv], FinancialYear.starting(start_year), now)
        assert p.status == expected, start_year


def test_voiding_restores_status_without_invoice(make_member, make_invoice, clock):
    member = make_member()
    other = make_invoice("inv-0", status=InvoiceStatus.PARTIALLY_PAID, amount_paid=5, date="2023-07-01")
    target = make_invoice("inv-1", status=InvoiceStatus.UNPAID, years=2, date="2023-08-01")
    now = clock(2024, 9, 1)
    for fy in (FY_2023, FinancialYear.starting(2024)):
        without = project_statuses([member], [other], fy, now)
        after_void = project_statuses([member], [other, void_invoice(target)], fy, now)
        assert after_void == without


def test_invoices_of_other_members_ignored(make_member, make_invoice, clock):
    members = [make_member("mem-1"), make_member("mem-2")]
    invoices = [make_invoice(member_id="mem-2", status=InvoiceStatus.PAID, amount_paid=33)]
    result = _status(members, invoices, FY_2023, clock(2023, 9, 1))
    assert result["mem-1"].status == MemberStatus.UNPAID
    assert result["mem-2"].status == MemberStatus.PAID


def test_projection_does_not_change_inputs(make_member, make_invoice, clock):
    member = make_member(level_id="cgm-1")
    invoices = [make_invoice(level_id="ao-1d")]
    project_statuses([member], invoices, FY_2023, clock(2023, 9, 1))
    assert member.membership_level_id == "cgm-1"
