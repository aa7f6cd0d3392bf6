"""
engine.py
Membership status projection and the invoice lifecycle.

Every function here is pure: it takes the current collections and returns new or
updated records for the caller to store. Nothing is read from or written to the
database. "Now" comes from an injected clock (a zero-argument callable returning a
datetime) so callers decide what time it is.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta
from typing import Callable, Iterable, Sequence

import catalog
import utils
from models import (
    FinancialYear,
    InvalidTransitionError,
    Invoice,
    InvoiceStatus,
    Member,
    MembershipGroup,
    MembershipLevel,
    MemberStatus,
    ValidationError,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_DUE_DAYS = 30
GRACE_MONTHS = 1

COMPLIMENTARY_DETAILS = "Complimentary membership."
WAIVED_DETAILS = "Membership fee waived."

BULK_ALL = "all"
BULK_UNPAID = "unpaid"
BULK_LEVEL = "level"
BULK_MODES = (BULK_ALL, BULK_UNPAID, BULK_LEVEL)


# ---------- Status projection ----------

@dataclass(frozen=True)
class ProjectedMember:
    """A member as seen from one financial year.

    `member.membership_level_id` is the level recorded on the latest covering
    invoice when there is one, not necessarily the member's current level.
    """
    member: Member
    status: MemberStatus
    has_invoice: bool

    @property
    def id(self) -> str:
        return self.member.id


def covering_invoices(invoices: Iterable[Invoice], member_id: str, fy_label: str) -> list[Invoice]:
    return [inv for inv in invoices if inv.member_id == member_id and inv.covers(fy_label)]


def latest_invoice(invoices: Sequence[Invoice]) -> Invoice | None:
    if not invoices:
        return None
    # max() keeps the first of equal dates, so ties resolve by insertion order
    return max(invoices, key=lambda inv: utils.parse_iso(inv.date))


def status_without_invoice(fy: FinancialYear, now: datetime) -> MemberStatus:
    """Pending during the first month of a year (or before it starts), Unpaid afterwards."""
    if fy.end_date < now.date():
        return MemberStatus.UNPAID
    start = datetime.combine(fy.start_date, time.min)
    grace_end = datetime.combine(utils.add_months(fy.start_date, GRACE_MONTHS), time.min)
    if start < now and now > grace_end:
        return MemberStatus.UNPAID
    return MemberStatus.PENDING


def project_member(member: Member, covering: Sequence[Invoice], fy: FinancialYear, now: datetime) -> ProjectedMember:
    latest = latest_invoice(covering)
    if latest is None:
        return ProjectedMember(member, status_without_invoice(fy, now), has_invoice=False)

    statuses = {inv.status for inv in covering}
    if InvoiceStatus.PAID in statuses:
        status = MemberStatus.PAID
    elif InvoiceStatus.PARTIALLY_PAID in statuses:
        status = MemberStatus.PARTIALLY_PAID
    else:
        status = MemberStatus.UNPAID

    shown = replace(member, membership_level_id=latest.level_at_time_of_invoice.id)
    return ProjectedMember(shown, status, has_invoice=True)


def project_statuses(
    members: Iterable[Member],
    invoices: Iterable[Invoice],
    fy: FinancialYear,
    clock: Clock = datetime.now,
) -> list[ProjectedMember]:
    now = clock()
    by_member: dict[str, list[Invoice]] = defaultdict(list)
    for inv in invoices:
        if inv.covers(fy.label):
            by_member[inv.member_id].append(inv)
    return [project_member(m, by_member.get(m.id, []), fy, now) for m in members]


# ---------- Invoice generation ----------

@dataclass(frozen=True)
class InvoiceOptions:
    financial_year: FinancialYear
    level: MembershipLevel | None = None  # overrides the member's level
    number_of_years: int = 1
    invoice_date: str | None = None
    due_date: str | None = None
    waive_fee: bool = False
    include_joining_fee: bool = False
    notes: str = ""


@dataclass(frozen=True)
class BulkOptions:
    viewed_financial_year: FinancialYear
    level_id: str | None = None  # required for BULK_LEVEL
    due_date: str | None = None
    include_joining_fee: bool = True


def invoice_total(level: MembershipLevel, number_of_years: int = 1, include_joining_fee: bool = False) -> float:
    joining = level.joining_fee if include_joining_fee else 0
    return round(level.annual_fee * number_of_years + joining, 2)


def new_invoice_id() -> str:
    return f"inv-{uuid.uuid4().hex[:12]}"


def default_due_date(today_iso: str) -> str:
    return (utils.parse_iso(today_iso) + timedelta(days=DEFAULT_DUE_DAYS)).isoformat()


def multi_year_note(fy: FinancialYear, number_of_years: int) -> str:
    last = fy.start_year + number_of_years - 1
    return (
        f"This invoice covers membership for {number_of_years} financial years, "
        f"from {fy.label} to {last}-{last + 1}."
    )


def _build_invoice(
    member_id: str,
    fy: FinancialYear,
    level: MembershipLevel,
    invoice_date: str,
    due_date: str,
    amount: float,
    include_joining_fee: bool,
    zero_details: str,
    number_of_years: int = 1,
    notes: str | None = None,
) -> Invoice:
    inv = Invoice(
        id=new_invoice_id(),
        member_id=member_id,
        financial_year=fy,
        level_at_time_of_invoice=level,
        date=invoice_date,
        due_date=due_date,
        amount=amount,
        include_joining_fee=include_joining_fee,
        number_of_years=number_of_years,
        notes=notes or None,
    )
    if amount == 0:
        # Nothing to collect: settled on creation
        inv = replace(inv, status=InvoiceStatus.PAID, amount_paid=0, paid_date=invoice_date, payment_details=zero_details)
    return inv


def invoice_for_new_member(member: Member, level: MembershipLevel, fy: FinancialYear, clock: Clock = datetime.now) -> Invoice:
    """First invoice raised when a member is added: one year, joining fee whenever the level has one."""
    today = clock().date().isoformat()
    include_joining = level.joining_fee > 0
    inv = _build_invoice(
        member.id,
        fy,
        level,
        invoice_date=today,
        due_date=default_due_date(today),
        amount=invoice_total(level, 1, include_joining),
        include_joining_fee=include_joining,
        zero_details=COMPLIMENTARY_DETAILS,
    )
    logger.info("Created invoice %s for new member %s (%s)", inv.id, member.id, fy.label)
    return inv


def generate_invoice(member: Member, level: MembershipLevel | None, options: InvoiceOptions, clock: Clock = datetime.now) -> Invoice:
    """
    Ad hoc invoice for one member.

    `level` is the member's own level; options.level replaces it when given.
    A waived fee forces the amount to zero whatever the level charges.
    """
    level = options.level or level
    if level is None:
        raise ValidationError(f"Membership level '{member.membership_level_id}' no longer exists.")
    if options.number_of_years < 1:
        raise ValidationError("Number of years must be at least 1.")

    today = clock().date().isoformat()
    invoice_date = options.invoice_date or today
    if options.waive_fee:
        amount = 0
    else:
        amount = invoice_total(level, options.number_of_years, options.include_joining_fee)

    notes = options.notes.strip()
    if options.number_of_years > 1:
        notes = f"{multi_year_note(options.financial_year, options.number_of_years)}\n\n{notes}".strip()

    inv = _build_invoice(
        member.id,
        options.financial_year,
        level,
        invoice_date=invoice_date,
        due_date=options.due_date or default_due_date(today),
        amount=amount,
        include_joining_fee=options.include_joining_fee,
        zero_details=WAIVED_DETAILS if options.waive_fee else COMPLIMENTARY_DETAILS,
        number_of_years=options.number_of_years,
        notes=notes,
    )
    logger.info(
        "Generated invoice %s for member %s: %s, %d year(s), amount %.2f",
        inv.id, member.id, options.financial_year.label, options.number_of_years, amount,
    )
    return inv


def members_to_invoice(
    projected: Sequence[ProjectedMember],
    invoices: Iterable[Invoice],
    mode: str,
    target_fy: FinancialYear,
    options: BulkOptions,
) -> list[ProjectedMember]:
    if mode not in BULK_MODES:
        raise ValidationError(f"Unknown generation mode '{mode}'.")

    selected = [p for p in projected if not p.member.is_globally_archived]
    if mode == BULK_UNPAID:
        # Statuses are only known for the year being viewed
        if target_fy.label != options.viewed_financial_year.label:
            return []
        selected = [p for p in selected if p.status == MemberStatus.UNPAID]
    elif mode == BULK_LEVEL:
        if not options.level_id:
            return []
        selected = [p for p in selected if p.member.membership_level_id == options.level_id]

    already = {inv.member_id for inv in invoices if inv.covers(target_fy.label)}
    return [p for p in selected if p.id not in already]


def is_first_year(member: Member, fy: FinancialYear) -> bool:
    return utils.parse_iso(member.start_date).year == fy.start_year


def generate_bulk_invoices(
    members: Sequence[Member],
    invoices: Sequence[Invoice],
    groups: Sequence[MembershipGroup],
    mode: str,
    target_fy: FinancialYear,
    options: BulkOptions,
    clock: Clock = datetime.now,
) -> list[Invoice]:
    """
    Invoices for every member selected by `mode` for `target_fy`.

    Members are projected against the viewed financial year first, so 'unpaid'
    and 'level' see the same status and level the member list shows.
    """
    projected = project_statuses(members, invoices, options.viewed_financial_year, clock)
    targets = members_to_invoice(projected, invoices, mode, target_fy, options)

    today = clock().date().isoformat()
    due_date = options.due_date or default_due_date(today)
    created: list[Invoice] = []
    for p in targets:
        level = catalog.find_level(groups, p.member.membership_level_id)
        if level is None:
            logger.warning("Skipping member %s: level %s not in catalog", p.id, p.member.membership_level_id)
            continue
        include_joining = options.include_joining_fee and is_first_year(p.member, target_fy)
        created.append(
            _build_invoice(
                p.id,
                target_fy,
                level,
                invoice_date=today,
                due_date=due_date,
                amount=invoice_total(level, 1, include_joining),
                include_joining_fee=include_joining,
                zero_details=COMPLIMENTARY_DETAILS,
            )
        )

    logger.info("Bulk generation (%s) for %s: %d invoice(s)", mode, target_fy.label, len(created))
    return created


# ---------- Payment & void transitions ----------

@dataclass(frozen=True)
class MemberPatch:
    """Change to apply to a member as a consequence of an invoice transition."""
    member_id: str
    end_date: str


@dataclass(frozen=True)
class PaymentResult:
    invoice: Invoice
    member_patch: MemberPatch | None = None


def term_extension(invoice: Invoice) -> MemberPatch | None:
    if invoice.status != InvoiceStatus.PAID or invoice.number_of_years <= 1:
        return None
    end_year = invoice.financial_year.start_year + invoice.number_of_years
    return MemberPatch(invoice.member_id, f"{end_year}-06-30")


def _append_log(existing: str | None, line: str) -> str:
    return f"{existing or ''}\n{line}".strip()


def record_payment(invoice: Invoice, amount: float, paid_date: str, details: str = "") -> PaymentResult:
    if invoice.status == InvoiceStatus.VOID:
        logger.warning("Rejected payment on void invoice %s", invoice.id)
        raise InvalidTransitionError(f"Invoice {invoice.id} is void and cannot be paid.")
    if amount < 0:
        raise ValidationError("Payment amount cannot be negative.")
    if round(amount, 2) > invoice.balance:
        raise ValidationError(f"Payment of ${amount:.2f} exceeds the ${invoice.balance:.2f} still due.")

    total_paid = round(invoice.amount_paid + amount, 2)
    status = InvoiceStatus.PAID if total_paid >= invoice.amount else InvoiceStatus.PARTIALLY_PAID
    updated = replace(
        invoice,
        status=status,
        amount_paid=total_paid,
        paid_date=paid_date,
        payment_details=_append_log(invoice.payment_details, f"[{paid_date}] Paid ${amount:.2f}. {details.strip()}".strip()),
    )
    logger.info("Payment of %.2f on invoice %s, now %s", amount, invoice.id, status.value)
    return PaymentResult(updated, term_extension(updated))


def mark_fully_paid(invoice: Invoice, clock: Clock = datetime.now) -> PaymentResult:
    if invoice.status not in (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID):
        logger.warning("Rejected mark-paid on %s invoice %s", invoice.status.value, invoice.id)
        raise InvalidTransitionError(f"Invoice {invoice.id} is {invoice.status.value}; only open invoices can be marked paid.")

    today = clock().date().isoformat()
    updated = replace(
        invoice,
        status=InvoiceStatus.PAID,
        amount_paid=invoice.amount,
        paid_date=today,
        payment_details=_append_log(invoice.payment_details, f"[{today}] Marked as fully paid."),
    )
    logger.info("Invoice %s marked as fully paid", invoice.id)
    return PaymentResult(updated, term_extension(updated))


def void_invoice(invoice: Invoice) -> Invoice:
    """Void an open invoice. Paid invoices are part of the financial history and stay as they are."""
    if invoice.status not in (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID):
        logger.warning("Rejected void on %s invoice %s", invoice.status.value, invoice.id)
        raise InvalidTransitionError(f"Invoice {invoice.id} is {invoice.status.value} and cannot be voided.")
    logger.info("Invoice %s voided", invoice.id)
    return replace(invoice, status=InvoiceStatus.VOID, amount_paid=0)


def apply_member_patch(members: Iterable[Member], patch: MemberPatch | None) -> list[Member]:
    members = list(members)
    if patch is None:
        return members
    return [replace(m, end_date=patch.end_date) if m.id == patch.member_id else m for m in members]


def replace_invoice(invoices: Iterable[Invoice], invoice: Invoice) -> list[Invoice]:
    return [invoice if inv.id == invoice.id else inv for inv in invoices]


def outstanding_invoice(invoices: Iterable[Invoice], member_id: str, fy: FinancialYear) -> Invoice | None:
    """Newest open invoice covering `fy`, the one a payment from the member list applies to."""
    open_invoices = [inv for inv in covering_invoices(invoices, member_id, fy.label) if inv.status != InvoiceStatus.PAID]
    return latest_invoice(open_invoices)


# ---------- Cancellation ----------

def toggle_cancellation(member: Member, fy_label: str) -> Member:
    years = member.cancelled_financial_years
    if fy_label in years:
        years = tuple(y for y in years if y != fy_label)
    else:
        years = years + (fy_label,)
    return replace(member, cancelled_financial_years=years)
