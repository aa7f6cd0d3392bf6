from datetime import date, datetime

import pytest

import db
from models import AppSettings, AppState

pytestmark = pytest.mark.usefixtures("temp_db")

TODAY = date(2024, 9, 1)


def test_init_db_seeds_sample_data():
    db.init_db("hash", TODAY)
    state = db.load_state()
    assert len(state.members) == 4
    assert len(state.invoices) == 3
    assert state.admin_password == "hash"
    assert db.is_force_password_change()


def test_init_db_keeps_existing_data(make_member):
    db.init_db("hash", TODAY)
    db.save_members([make_member()])
    db.clear_force_password_change()
    db.init_db("other", TODAY)
    state = db.load_state()
    assert [m.id for m in state.members] == ["mem-1"]
    assert state.admin_password == "hash"
    assert not db.is_force_password_change()


def test_saves_are_per_collection(make_invoice):
    db.init_db("hash", TODAY)
    db.save_invoices([make_invoice()])
    db.save_settings(AppSettings(payment_instructions="Pay by EFT"))
    state = db.load_state()
    assert [i.id for i in state.invoices] == ["inv-1"]
    assert state.settings.payment_instructions == "Pay by EFT"
    assert len(state.members) == 4


def test_replace_and_reset(make_member):
    db.init_db("hash", TODAY)
    db.replace_state(AppState(members=(make_member(),), admin_password="imported"))
    assert db.get_admin_password_hash() == "imported"
    assert db.load_state().invoices == ()

    db.reset_data("fresh", TODAY)
    assert len(db.load_state().members) == 4
    assert db.get_admin_password_hash() == "fresh"
    assert db.is_force_password_change()


def test_timestamps_keep_newest_ten():
    db.init_db("hash", TODAY)
    for minute in range(12):
        db.push_timestamp(db.LOGIN_TIMESTAMPS, datetime(2024, 9, 1, 9, minute))
    stamps = db.get_timestamps(db.LOGIN_TIMESTAMPS)
    assert len(stamps) == db.TIMESTAMP_HISTORY
    assert stamps[0] == "2024-09-01T09:11:00"
    assert stamps[-1] == "2024-09-01T09:02:00"
    assert db.get_timestamps(db.LOGOUT_TIMESTAMPS) == []


def test_get_value_default():
    db.init_db("hash", TODAY)
    assert db.get_value("missing", {"a": 1}) == {"a": 1}
