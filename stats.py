"""
stats.py
Dashboard figures and member-list filtering for one financial year.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

import utils
from engine import ProjectedMember
from models import FinancialYear, Invoice, InvoiceStatus, Member, MemberStatus

RECENT_PAYMENTS = 5
RECENT_MEMBERS = 5
RECENT_ACTIVITY = 7


@dataclass(frozen=True)
class DashboardStats:
    total_members: int
    paid: int
    unpaid: int
    pending: int
    partially_paid: int
    total_revenue: float

    @property
    def outstanding(self) -> int:
        return self.unpaid + self.pending + self.partially_paid

    def breakdown(self) -> dict[str, int]:
        counts = {
            MemberStatus.PAID.value: self.paid,
            MemberStatus.UNPAID.value: self.unpaid,
            MemberStatus.PARTIALLY_PAID.value: self.partially_paid,
            MemberStatus.PENDING.value: self.pending,
        }
        return {k: v for k, v in counts.items() if v > 0}


@dataclass(frozen=True)
class Activity:
    kind: str  # 'payment' or 'new_member'
    when: datetime
    description: str
    subject: str


def dashboard_stats(projected: Sequence[ProjectedMember], invoices: Iterable[Invoice], fy: FinancialYear) -> DashboardStats:
    active = [p for p in projected if not p.member.is_globally_archived]

    def count(status: MemberStatus) -> int:
        return sum(1 for p in active if p.status == status)

    # Revenue is booked by payment date, not by the year the invoice covers
    revenue = sum(
        inv.amount_paid
        for inv in invoices
        if inv.status == InvoiceStatus.PAID
        and inv.paid_date
        and fy.start_date <= utils.parse_iso(inv.paid_date) <= fy.end_date
    )
    return DashboardStats(
        total_members=len(active),
        paid=count(MemberStatus.PAID),
        unpaid=count(MemberStatus.UNPAID),
        pending=count(MemberStatus.PENDING),
        partially_paid=count(MemberStatus.PARTIALLY_PAID),
        total_revenue=round(revenue, 2),
    )


def _as_datetime(value: str) -> datetime:
    if "T" not in value:
        return datetime.combine(utils.parse_iso(value), datetime.min.time())
    # Older backups carry UTC timestamps ending in 'Z'; compare everything naive
    return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


def recent_activity(members: Sequence[Member], invoices: Iterable[Invoice]) -> list[Activity]:
    names = {m.id: m.name for m in members}
    paid = sorted(
        (inv for inv in invoices if inv.status == InvoiceStatus.PAID and inv.paid_date),
        key=lambda inv: utils.parse_iso(inv.paid_date),
        reverse=True,
    )[:RECENT_PAYMENTS]
    payments = [
        Activity("payment", _as_datetime(inv.paid_date), f"Payment of ${inv.amount_paid:,.2f} received from",
                 names.get(inv.member_id, "Unknown Member"))
        for inv in paid
    ]
    joined = sorted((m for m in members if m.created_date), key=lambda m: _as_datetime(m.created_date), reverse=True)
    new_members = [
        Activity("new_member", _as_datetime(m.created_date), "New member added:", m.name)
        for m in joined[:RECENT_MEMBERS]
    ]
    return sorted(payments + new_members, key=lambda a: a.when, reverse=True)[:RECENT_ACTIVITY]


def filter_member_list(
    projected: Iterable[ProjectedMember],
    fy: FinancialYear,
    search: str = "",
    level_id: str | None = None,
    status: MemberStatus | None = None,
    show_cancelled: bool = False,
) -> list[ProjectedMember]:
    """
    Members listed for `fy`: those whose term overlaps the year or who hold a covering invoice.
    Cancelled-for-year members only appear in the cancelled view; archived members never do otherwise.
    """
    needle = search.strip().lower()
    shown: list[ProjectedMember] = []
    for p in projected:
        m = p.member
        cancelled = m.is_cancelled_for(fy.label)
        if show_cancelled:
            if not cancelled:
                continue
        elif cancelled or m.is_globally_archived:
            continue
        if needle and needle not in m.name.lower():
            continue
        if level_id and m.membership_level_id != level_id:
            continue
        if status is not None and not show_cancelled and p.status != status:
            continue
        term_active = utils.parse_iso(m.start_date) <= fy.end_date and utils.parse_iso(m.end_date) >= fy.start_date
        if term_active or p.has_invoice:
            shown.append(p)
    return shown
