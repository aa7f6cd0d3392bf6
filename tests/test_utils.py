import json
from datetime import date, datetime

import pytest

import utils
from models import ImportFormatError, InvoiceStatus


@pytest.fixture
def state():
    return utils.sample_state(date(2024, 9, 1), "$2b$12$hash")


def test_add_months_clamps_day():
    assert utils.add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert utils.add_months(date(2023, 11, 15), 2) == date(2024, 1, 15)


def test_parse_iso_accepts_timestamps():
    assert utils.parse_iso("2023-07-01T10:00:00.000Z") == date(2023, 7, 1)


def test_financial_years_newest_first():
    years = utils.financial_years(date(2024, 9, 1))
    assert len(years) == 11
    assert years[0].label == "2029-2030"
    assert years[5].label == "2024-2025"
    assert years[-1].label == "2019-2020"


def test_validate_member_inputs():
    assert utils.validate_member_inputs("A", "am-i", "2023-07-01", "2024-06-30") == []
    assert utils.validate_member_inputs(" ", "", "2023-07-01", "2024-06-30") == [
        "Member name is required.",
        "Membership level is required.",
    ]
    assert utils.validate_member_inputs("A", "am-i", "soon", "2024-06-30") == [
        "Start/end dates must be valid ISO dates (YYYY-MM-DD).",
    ]


def test_validate_level_inputs():
    assert utils.validate_level_inputs("L", "G", 0, 10, 1, 0) == []
    errors = utils.validate_level_inputs("L", "G", "abc", -1, -1, 1.5)
    assert errors == [
        "Joining fee must be numeric.",
        "Annual fee cannot be negative.",
        "Delegates must be a whole number of 0 or more.",
        "Youth delegates must be a whole number of 0 or more.",
    ]


def test_validate_new_password():
    assert utils.validate_new_password("secret1", "secret1") == []
    assert utils.validate_new_password("abc", "abd") == [
        "Password must be at least 6 characters.",
        "Passwords do not match.",
    ]


def test_backup_round_trip(state):
    text = utils.export_backup(state, datetime(2024, 9, 1, 8, 0))
    payload = json.loads(text)
    assert payload["version"] == utils.BACKUP_VERSION
    assert payload["exportedAt"] == "2024-09-01T08:00:00"

    restored = utils.parse_backup(text)
    assert restored.to_dict()["members"] == state.to_dict()["members"]
    assert restored.to_dict()["invoices"] == state.to_dict()["invoices"]
    assert restored.to_dict()["membershipLevels"] == state.to_dict()["membershipLevels"]
    assert restored == state


@pytest.mark.parametrize("text", [
    "not json",
    "[]",
    json.dumps({"version": "1.0.0"}),
    json.dumps({"data": {"members": []}}),
    json.dumps({"data": {"members": {}, "invoices": []}}),
    json.dumps({"data": {"members": [{"name": "no id"}], "invoices": []}}),
])
def test_parse_backup_rejects_bad_files(text):
    with pytest.raises(ImportFormatError):
        utils.parse_backup(text)


def test_parse_backup_accepts_bytes(state):
    assert utils.parse_backup(utils.export_backup(state).encode("utf-8")).members == state.members


def test_backup_filename():
    assert utils.backup_filename(date(2024, 9, 1)) == "membership_data_backup_2024-09-01.json"


def test_sample_state_shape(state):
    assert [m.id for m in state.members] == ["mem-1", "mem-2", "mem-3", "mem-4"]
    assert state.members[3].is_globally_archived
    assert {i.financial_year.label for i in state.invoices} == {"2024-2025", "2023-2024"}
    assert all(i.status == InvoiceStatus.PAID for i in state.invoices)


def test_members_frame(state):
    df = utils.members_frame(state.members)
    assert list(df["id"]) == ["mem-1", "mem-2", "mem-3", "mem-4"]
    assert "membershipLevelId" in df.columns
    assert utils.members_to_csv_bytes(state.members).startswith(b"id,name,")


def test_invoices_frame_names_members(state, make_invoice):
    invoices = list(state.invoices) + [make_invoice("orphan", member_id="gone", years=2)]
    df = utils.invoices_frame(invoices, state.members)
    assert df.loc[0, "member"] == "Sydney Community Group"
    assert df.iloc[-1]["member"] == "Unknown Member"
    assert df.iloc[-1]["financialYear"] == "2023-2024 to 2024-2025"


def test_revenue_summary_by_month(make_invoice):
    invoices = [
        make_invoice("a", status=InvoiceStatus.PAID, amount_paid=33, paid_date="2023-08-01"),
        make_invoice("b", status=InvoiceStatus.PARTIALLY_PAID, amount_paid=10, paid_date="2023-08-20"),
        make_invoice("c", status=InvoiceStatus.PAID, amount_paid=66, paid_date="2023-09-02"),
        make_invoice("d"),
    ]
    df = utils.revenue_summary_by_month(invoices)
    assert list(df["month"]) == ["2023-09", "2023-08"]
    assert list(df["revenue"]) == [66, 43]


def test_revenue_summary_empty():
    assert utils.revenue_summary_by_month([]).empty


def test_first_by_id(state):
    assert utils.first_by_id(state.members, "mem-2").name == "Parramatta Multicultural Org"
    assert utils.first_by_id(state.members, "nope") is None
