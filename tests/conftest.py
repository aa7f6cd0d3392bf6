from __future__ import annotations

from datetime import datetime

import pytest

import db
import utils
from models import FinancialYear, Invoice, InvoiceStatus, Member


@pytest.fixture
def levels():
    return utils.initial_membership_levels()


@pytest.fixture
def level(levels):
    """Look up a sample level by id."""
    by_id = {lvl.id: lvl for g in levels for lvl in g.levels}
    return by_id.__getitem__


@pytest.fixture
def clock():
    """clock(2023, 9, 1) -> a zero-argument callable always returning that moment."""
    def make(year, month, day, hour=12):
        moment = datetime(year, month, day, hour)
        return lambda: moment
    return make


@pytest.fixture
def make_member():
    def make(member_id="mem-1", level_id="ao-1d", start="2023-07-01", end="2024-06-30", **kw):
        kw.setdefault("name", f"Member {member_id}")
        return Member(id=member_id, membership_level_id=level_id, start_date=start, end_date=end, **kw)
    return make


@pytest.fixture
def make_invoice(level):
    def make(inv_id="inv-1", member_id="mem-1", start_year=2023, level_id="ao-1d", status=InvoiceStatus.UNPAID,
             amount=33, years=1, date=None, amount_paid=0, **kw):
        return Invoice(
            id=inv_id,
            member_id=member_id,
            financial_year=FinancialYear.starting(start_year),
            level_at_time_of_invoice=level(level_id),
            date=date or f"{start_year}-07-10",
            amount=amount,
            status=status,
            amount_paid=amount_paid,
            number_of_years=years,
            **kw,
        )
    return make


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "membership.db")
    return tmp_path / "membership.db"
