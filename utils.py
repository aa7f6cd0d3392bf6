"""
utils.py
Dates, financial years, validation, CSV exports, backup files, sample data.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

import pandas as pd

from models import (
    AdminProfile,
    AppSettings,
    AppState,
    Delegate,
    FinancialYear,
    ImportFormatError,
    Invoice,
    InvoiceStatus,
    Member,
    MembershipGroup,
    MembershipLevel,
)

BACKUP_VERSION = "1.0.0"
FY_PAST_RANGE = 5
FY_FUTURE_RANGE = 5
MIN_PASSWORD_LENGTH = 6

DEFAULT_PAYMENT_INSTRUCTIONS = """By EFT:
Account Name: <organisation name>
BSB 000-000 Account Number 00000000
Please send remittance advice to the membership officer.

By Cheque (mail):
Post cheque to the organisation's postal address."""


def today_iso() -> str:
    return date.today().isoformat()


def parse_iso(d: str) -> date:
    # Accepts plain dates and full ISO timestamps (createdDate is stored with a time part)
    return date.fromisoformat(d[:10])


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    return date(y, m, min(start.day, last_day.day))


def financial_years(today: date, past: int = FY_PAST_RANGE, future: int = FY_FUTURE_RANGE) -> list[FinancialYear]:
    """Financial years around `today`, newest first."""
    current = FinancialYear.for_date(today).start_year
    return [FinancialYear.starting(y) for y in range(current + future, current - past - 1, -1)]


# ---------- Validation ----------

def validate_member_inputs(name: str, level_id: str, start_date: str, end_date: str) -> list[str]:
    errors: list[str] = []
    if not name.strip():
        errors.append("Member name is required.")
    if not level_id:
        errors.append("Membership level is required.")
    try:
        sd = parse_iso(start_date)
        ed = parse_iso(end_date)
        if ed <= sd:
            errors.append("End date must be after start date.")
    except (TypeError, ValueError):
        errors.append("Start/end dates must be valid ISO dates (YYYY-MM-DD).")
    return errors


def validate_level_inputs(name: str, group_name: str, joining_fee, annual_fee, delegates, youth_delegates) -> list[str]:
    errors: list[str] = []
    if not name.strip():
        errors.append("Level name is required.")
    if not group_name.strip():
        errors.append("Group name is required.")
    for label, value in (("Joining fee", joining_fee), ("Annual fee", annual_fee)):
        try:
            if float(value) < 0:
                errors.append(f"{label} cannot be negative.")
        except (TypeError, ValueError):
            errors.append(f"{label} must be numeric.")
    for label, value in (("Delegates", delegates), ("Youth delegates", youth_delegates)):
        if not isinstance(value, int) or value < 0:
            errors.append(f"{label} must be a whole number of 0 or more.")
    return errors


def validate_new_password(new1: str, new2: str) -> list[str]:
    errors: list[str] = []
    if len(new1) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if new1 != new2:
        errors.append("Passwords do not match.")
    return errors


# ---------- CSV exports ----------

def members_frame(members: Iterable[Member]) -> pd.DataFrame:
    columns = ["id", "name", "membershipLevelId", "startDate", "endDate", "contactName",
               "telephone", "postalAddress", "isGloballyArchived"]
    rows = [{k: m.to_dict().get(k) for k in columns} for m in members]
    return pd.DataFrame(rows, columns=columns)


def invoices_frame(invoices: Iterable[Invoice], members: Iterable[Member]) -> pd.DataFrame:
    names = {m.id: m.name for m in members}
    columns = ["id", "memberId", "member", "financialYear", "years", "level", "date", "dueDate",
               "amount", "amountPaid", "status", "paidDate"]
    rows = [
        {
            "id": inv.id,
            "memberId": inv.member_id,
            "member": names.get(inv.member_id, "Unknown Member"),
            "financialYear": inv.coverage_label(),
            "years": inv.number_of_years,
            "level": inv.level_at_time_of_invoice.name,
            "date": inv.date,
            "dueDate": inv.due_date,
            "amount": inv.amount,
            "amountPaid": inv.amount_paid,
            "status": inv.status.value,
            "paidDate": inv.paid_date,
        }
        for inv in invoices
    ]
    return pd.DataFrame(rows, columns=columns)


def members_to_csv_bytes(members: Iterable[Member]) -> bytes:
    return members_frame(members).to_csv(index=False).encode("utf-8")


def invoices_to_csv_bytes(invoices: Iterable[Invoice], members: Iterable[Member]) -> bytes:
    return invoices_frame(invoices, members).to_csv(index=False).encode("utf-8")


def revenue_summary_by_month(invoices: Iterable[Invoice]) -> pd.DataFrame:
    rows = [
        {"month": inv.paid_date[:7], "revenue": inv.amount_paid}
        for inv in invoices
        if inv.status in (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID) and inv.paid_date
    ]
    df = pd.DataFrame(rows, columns=["month", "revenue"])
    if df.empty:
        return df
    return df.groupby("month", as_index=False)["revenue"].sum().sort_values("month", ascending=False)


# ---------- Backup files ----------

def backup_filename(today: date) -> str:
    return f"membership_data_backup_{today.isoformat()}.json"


def export_backup(state: AppState, now: datetime | None = None) -> str:
    now = now or datetime.now()
    payload = {
        "version": BACKUP_VERSION,
        "exportedAt": now.isoformat(timespec="seconds"),
        "data": state.to_dict(),
    }
    return json.dumps(payload, indent=2)


def parse_backup(text: str | bytes) -> AppState:
    """
    Parse a backup produced by export_backup.
    The whole file is validated before anything is returned; callers overwrite state only on success.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ImportFormatError(f"Backup is not valid JSON: {e}") from e

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict) or not isinstance(data.get("members"), list) or not isinstance(data.get("invoices"), list):
        raise ImportFormatError("Invalid or corrupted data file.")

    try:
        return AppState.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ImportFormatError(f"Invalid or corrupted data file: {e}") from e


# ---------- Sample data ----------

def _level(level_id: str, name: str, joining: float, annual: float, delegates: int = 0, youth: int = 0) -> MembershipLevel:
    return MembershipLevel(level_id, name, joining, annual, delegates, youth)


def initial_membership_levels() -> tuple[MembershipGroup, ...]:
    return (
        MembershipGroup("Associate Member", (
            _level("am-i", "Individual Member", 8, 22),
            _level("am-s", "Student Member", 0, 0),
            _level("am-hl", "Honorary Life Member", 0, 0),
        )),
        MembershipGroup("Affiliate Organisation Member", (
            _level("ao-1d", "Organisation 1 Delegate", 11, 33, 1),
            _level("ao-2d", "Organisation 2 Delegates", 22, 66, 2),
            _level("ao-3d", "Organisation 3 Delegates", 33, 99, 3),
            _level("ao-1d-1y", "Organisation 1 Delegate + 1 Youth Delegate", 11, 66, 1, 1),
            _level("ao-2d-1y", "Organisation 2 Delegates + 1 Youth Delegate", 22, 99, 2, 1),
            _level("ao-3d-1y", "Organisation 3 Delegates + 1 Youth Delegate", 33, 132, 3, 1),
        )),
        MembershipGroup("Corporate or Government Member", (
            _level("cgm-1", "Corporate Member", 200, 500, 3, 1),
        )),
    )


def sample_state(today: date, admin_password_hash: str) -> AppState:
    """
    Four members and three invoices around the current financial year.
    One member is archived and was last invoiced the year before.
    """
    groups = initial_membership_levels()
    levels = {lvl.id: lvl for g in groups for lvl in g.levels}
    fy = FinancialYear.for_date(today)
    prev = FinancialYear.starting(fy.start_year - 1)

    members = (
        Member("mem-1", "Sydney Community Group", "ao-2d-1y", fy.start, fy.end, "Jane Doe", "0298765432",
               "123 Main St, Sydney NSW 2000",
               delegates=(Delegate("Delegate 1", "delegate"), Delegate("Delegate 2", "delegate"),
                          Delegate("Youth D.", "youth_delegate")),
               created_date=fy.start),
        Member("mem-2", "Parramatta Multicultural Org", "ao-1d-1y", fy.start, fy.end, "John Smith", "0412345678",
               "45 George St, Parramatta NSW 2150",
               delegates=(Delegate("Delegate 1", "delegate"), Delegate("Youth D.", "youth_delegate")),
               created_date=fy.start),
        Member("mem-3", "Support Services Inc.", "am-s", fy.start, fy.end, "Emily White", "0211223344",
               "55 King St, Sydney NSW 2000", created_date=fy.start),
        Member("mem-4", "Global Friends Association", "ao-3d-1y", prev.start, prev.end, "Carlos Ray", "0488776655",
               "200 Pitt St, Sydney NSW 2000", is_globally_archived=True, archived_date=prev.end,
               created_date=prev.start),
    )
    invoices = (
        Invoice("inv-1", "mem-1", fy, levels["ao-2d-1y"], f"{fy.start_year}-07-15", 99, InvoiceStatus.PAID,
                paid_date=f"{fy.start_year}-07-20", payment_details="EFT Ref# 12345", amount_paid=99),
        Invoice("inv-3", "mem-3", fy, levels["am-s"], f"{fy.start_year}-07-02", 0, InvoiceStatus.PAID,
                paid_date=f"{fy.start_year}-07-02", payment_details="Complimentary membership.", amount_paid=0),
        Invoice("inv-4", "mem-4", prev, levels["ao-3d-1y"], prev.start, 132, InvoiceStatus.PAID,
                paid_date=prev.start, payment_details="EFT Ref# 67890", amount_paid=132),
    )
    return AppState(
        members=members,
        invoices=invoices,
        membership_levels=groups,
        admin_password=admin_password_hash,
        admin_profile=AdminProfile("Admin User", "admin@example.org"),
        settings=AppSettings(custom_logo=None, payment_instructions=DEFAULT_PAYMENT_INSTRUCTIONS),
    )


def first_by_id(items: Sequence, item_id: str):
    return next((x for x in items if x.id == item_id), None)
