"""
models.py
Domain records (financial years, levels, members, invoices), statuses and errors.

Records are immutable; the engine returns updated copies via dataclasses.replace.
to_dict/from_dict use the camelCase keys of the persisted state layout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class MemberStatus(str, Enum):
    PAID = "Paid"
    UNPAID = "Unpaid"
    PENDING = "Pending"
    PARTIALLY_PAID = "Partially Paid"


class InvoiceStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially-paid"
    PAID = "paid"
    VOID = "void"


DELEGATE = "delegate"
YOUTH_DELEGATE = "youth_delegate"


# ---------- Errors ----------

class MembershipError(Exception):
    """Base class for every recoverable error raised by this application."""


class ValidationError(MembershipError):
    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class InvalidTransitionError(MembershipError):
    """Raised for invoice state changes the lifecycle does not allow (e.g. voiding a paid invoice)."""


class ImportFormatError(MembershipError):
    """Raised when a backup file is malformed or incomplete. Nothing is written."""


# ---------- Records ----------

@dataclass(frozen=True)
class FinancialYear:
    start: str  # YYYY-07-01
    end: str  # YYYY-06-30
    label: str  # e.g. '2023-2024'

    @classmethod
    def starting(cls, start_year: int) -> "FinancialYear":
        return cls(
            start=f"{start_year}-07-01",
            end=f"{start_year + 1}-06-30",
            label=f"{start_year}-{start_year + 1}",
        )

    @classmethod
    def for_date(cls, d: date) -> "FinancialYear":
        # July onwards belongs to the FY that starts this calendar year
        return cls.starting(d.year if d.month >= 7 else d.year - 1)

    @classmethod
    def from_label(cls, label: str) -> "FinancialYear":
        return cls.starting(label_start_year(label))

    @property
    def start_year(self) -> int:
        return label_start_year(self.label)

    @property
    def start_date(self) -> date:
        return date.fromisoformat(self.start)

    @property
    def end_date(self) -> date:
        return date.fromisoformat(self.end)

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "label": self.label}

    @classmethod
    def from_dict(cls, d: dict) -> "FinancialYear":
        return cls(start=d["start"], end=d["end"], label=d["label"])


def label_start_year(label: str) -> int:
    return int(label.split("-")[0])


@dataclass(frozen=True)
class MembershipLevel:
    id: str
    name: str
    joining_fee: float
    annual_fee: float
    delegates: int = 0
    youth_delegates: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "joiningFee": self.joining_fee,
            "annualFee": self.annual_fee,
            "delegateOptions": {
                "delegates": self.delegates,
                "youthDelegates": self.youth_delegates,
            },
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MembershipLevel":
        opts = d.get("delegateOptions") or {}
        return cls(
            id=d["id"],
            name=d["name"],
            joining_fee=d.get("joiningFee", 0),
            annual_fee=d.get("annualFee", 0),
            delegates=int(opts.get("delegates", 0)),
            youth_delegates=int(opts.get("youthDelegates", 0)),
        )


@dataclass(frozen=True)
class MembershipGroup:
    group_name: str
    levels: tuple[MembershipLevel, ...] = ()

    def to_dict(self) -> dict:
        return {"groupName": self.group_name, "levels": [lvl.to_dict() for lvl in self.levels]}

    @classmethod
    def from_dict(cls, d: dict) -> "MembershipGroup":
        return cls(
            group_name=d["groupName"],
            levels=tuple(MembershipLevel.from_dict(x) for x in d.get("levels", [])),
        )


@dataclass(frozen=True)
class Delegate:
    name: str
    type: str  # 'delegate' or 'youth_delegate'

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type}


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    membership_level_id: str
    start_date: str
    end_date: str
    contact_name: str = ""
    telephone: str = ""
    postal_address: str = ""
    is_globally_archived: bool = False
    archived_date: str | None = None
    delegates: tuple[Delegate, ...] = ()
    cancelled_financial_years: tuple[str, ...] = ()
    created_date: str | None = None

    def is_cancelled_for(self, fy_label: str) -> bool:
        return fy_label in self.cancelled_financial_years

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "membershipLevelId": self.membership_level_id,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "contactName": self.contact_name,
            "telephone": self.telephone,
            "postalAddress": self.postal_address,
            "isGloballyArchived": self.is_globally_archived,
            "delegates": [x.to_dict() for x in self.delegates],
            "cancelledFinancialYears": list(self.cancelled_financial_years),
        }
        if self.archived_date is not None:
            d["archivedDate"] = self.archived_date
        if self.created_date is not None:
            d["createdDate"] = self.created_date
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Member":
        return cls(
            id=d["id"],
            name=d["name"],
            membership_level_id=d["membershipLevelId"],
            start_date=d["startDate"],
            end_date=d["endDate"],
            contact_name=d.get("contactName", ""),
            telephone=d.get("telephone", ""),
            postal_address=d.get("postalAddress", ""),
            is_globally_archived=bool(d.get("isGloballyArchived", False)),
            archived_date=d.get("archivedDate"),
            delegates=tuple(Delegate(x.get("name", ""), x["type"]) for x in d.get("delegates") or []),
            cancelled_financial_years=tuple(d.get("cancelledFinancialYears") or []),
            created_date=d.get("createdDate"),
        )


@dataclass(frozen=True)
class Invoice:
    id: str
    member_id: str
    financial_year: FinancialYear
    level_at_time_of_invoice: MembershipLevel
    date: str
    amount: float
    status: InvoiceStatus = InvoiceStatus.UNPAID
    due_date: str | None = None
    paid_date: str | None = None
    payment_details: str | None = None
    amount_paid: float = 0
    include_joining_fee: bool = False
    number_of_years: int = 1
    notes: str | None = None

    @property
    def balance(self) -> float:
        return round(self.amount - self.amount_paid, 2)

    @property
    def last_covered_start_year(self) -> int:
        return self.financial_year.start_year + self.number_of_years - 1

    def covers(self, fy_label: str) -> bool:
        if self.status == InvoiceStatus.VOID:
            return False
        target = label_start_year(fy_label)
        return self.financial_year.start_year <= target <= self.last_covered_start_year

    def coverage_label(self) -> str:
        if self.number_of_years <= 1:
            return self.financial_year.label
        last = self.last_covered_start_year
        return f"{self.financial_year.label} to {last}-{last + 1}"

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "memberId": self.member_id,
            "financialYear": self.financial_year.to_dict(),
            "levelAtTimeOfInvoice": self.level_at_time_of_invoice.to_dict(),
            "date": self.date,
            "amount": self.amount,
            "status": self.status.value,
            "amountPaid": self.amount_paid,
            "includeJoiningFee": self.include_joining_fee,
            "numberOfYears": self.number_of_years,
        }
        optional = {
            "dueDate": self.due_date,
            "paidDate": self.paid_date,
            "paymentDetails": self.payment_details,
            "notes": self.notes,
        }
        d.update({k: v for k, v in optional.items() if v is not None})
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Invoice":
        return cls(
            id=d["id"],
            member_id=d["memberId"],
            financial_year=FinancialYear.from_dict(d["financialYear"]),
            level_at_time_of_invoice=MembershipLevel.from_dict(d["levelAtTimeOfInvoice"]),
            date=d["date"],
            amount=d["amount"],
            status=InvoiceStatus(d.get("status", "unpaid")),
            due_date=d.get("dueDate"),
            paid_date=d.get("paidDate"),
            payment_details=d.get("paymentDetails"),
            amount_paid=d.get("amountPaid") or 0,
            include_joining_fee=bool(d.get("includeJoiningFee", False)),
            number_of_years=int(d.get("numberOfYears") or 1),
            notes=d.get("notes"),
        )


@dataclass(frozen=True)
class AdminProfile:
    name: str = "Admin User"
    email: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "email": self.email}


@dataclass(frozen=True)
class AppSettings:
    custom_logo: str | None = None  # data URL
    payment_instructions: str = ""

    def to_dict(self) -> dict:
        return {"customLogo": self.custom_logo, "paymentInstructions": self.payment_instructions}

    @classmethod
    def from_dict(cls, d: dict) -> "AppSettings":
        return cls(custom_logo=d.get("customLogo"), payment_instructions=d.get("paymentInstructions", ""))


@dataclass(frozen=True)
class AppState:
    """Everything that is persisted and carried by a backup file."""
    members: tuple[Member, ...] = ()
    invoices: tuple[Invoice, ...] = ()
    membership_levels: tuple[MembershipGroup, ...] = ()
    admin_password: str = ""  # bcrypt hash
    admin_profile: AdminProfile = field(default_factory=AdminProfile)
    settings: AppSettings = field(default_factory=AppSettings)

    def to_dict(self) -> dict:
        return {
            "members": [m.to_dict() for m in self.members],
            "invoices": [i.to_dict() for i in self.invoices],
            "membershipLevels": [g.to_dict() for g in self.membership_levels],
            "adminPassword": self.admin_password,
            "adminProfile": self.admin_profile.to_dict(),
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AppState":
        profile = d.get("adminProfile") or {}
        return cls(
            members=tuple(Member.from_dict(m) for m in d["members"]),
            invoices=tuple(Invoice.from_dict(i) for i in d["invoices"]),
            membership_levels=tuple(MembershipGroup.from_dict(g) for g in d.get("membershipLevels") or []),
            admin_password=d.get("adminPassword") or "",
            admin_profile=AdminProfile(name=profile.get("name", ""), email=profile.get("email", "")),
            settings=AppSettings.from_dict(d.get("settings") or {}),
        )
