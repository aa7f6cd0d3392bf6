"""
db.py
SQLite helpers + initialization (creates DB/table, seeds sample data and the default password).

State is stored as one JSON document per persisted collection in a key/value table.
Each save writes only the collection that changed (last write wins).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

import utils
from models import AdminProfile, AppSettings, AppState, Invoice, Member, MembershipGroup

logger = logging.getLogger(__name__)

DB_FILE = Path(os.environ.get("MEMBERSHIP_DB", Path(__file__).with_name("membership.db")))

MEMBERS = "members"
INVOICES = "invoices"
LEVELS = "membershipLevels"
ADMIN_PASSWORD = "adminPassword"
ADMIN_PROFILE = "adminProfile"
SETTINGS = "settings"
LOGIN_TIMESTAMPS = "loginTimestamps"
LOGOUT_TIMESTAMPS = "logoutTimestamps"
FORCE_PASSWORD_CHANGE = "force_password_change"

TIMESTAMP_HISTORY = 10


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS app_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


_UPSERT = """
    INSERT INTO app_state(key, value, updated_at) VALUES(?, ?, ?)
    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
"""


def get_value(key: str, default: Any = None) -> Any:
    row = fetch_one("SELECT value FROM app_state WHERE key = ?", (key,))
    if row:
        return json.loads(row["value"])
    return default


def set_value(key: str, value: Any) -> None:
    now = datetime.utcnow().isoformat(timespec="seconds")
    execute(_UPSERT, (key, json.dumps(value), now))


def _set_many(values: dict[str, Any]) -> None:
    # One connection, one commit: either every key is written or none is
    now = datetime.utcnow().isoformat(timespec="seconds")
    with get_conn() as conn:
        conn.executemany(_UPSERT, [(k, json.dumps(v), now) for k, v in values.items()])


def init_db(default_admin_hash: str, today: date | None = None) -> None:
    """
    Initialize the database.
    - Create the state table
    - Seed sample levels, members and invoices with the default password if nothing is stored yet
    - Force password change on first login
    """
    _create_tables()

    if get_value(MEMBERS) is None:
        seed = utils.sample_state(today or date.today(), default_admin_hash)
        _set_many({**_state_values(seed), FORCE_PASSWORD_CHANGE: True})
        logger.info("Initialized %s with sample data", DB_FILE)
    elif get_value(FORCE_PASSWORD_CHANGE) is None:
        set_value(FORCE_PASSWORD_CHANGE, False)


def _state_values(state: AppState) -> dict[str, Any]:
    d = state.to_dict()
    return {
        MEMBERS: d["members"],
        INVOICES: d["invoices"],
        LEVELS: d["membershipLevels"],
        ADMIN_PASSWORD: d["adminPassword"],
        ADMIN_PROFILE: d["adminProfile"],
        SETTINGS: d["settings"],
    }


def load_state() -> AppState:
    return AppState.from_dict(
        {
            "members": get_value(MEMBERS, []),
            "invoices": get_value(INVOICES, []),
            "membershipLevels": get_value(LEVELS, []),
            "adminPassword": get_value(ADMIN_PASSWORD, ""),
            "adminProfile": get_value(ADMIN_PROFILE, {}),
            "settings": get_value(SETTINGS, {}),
        }
    )


def replace_state(state: AppState) -> None:
    """Overwrite every persisted collection (backup import)."""
    _set_many(_state_values(state))
    logger.info("Replaced stored state: %d members, %d invoices", len(state.members), len(state.invoices))


def reset_data(default_admin_hash: str, today: date | None = None) -> None:
    execute("DELETE FROM app_state")
    init_db(default_admin_hash, today)
    logger.info("Application data reset to sample state")


def save_members(members: Iterable[Member]) -> None:
    set_value(MEMBERS, [m.to_dict() for m in members])


def save_invoices(invoices: Iterable[Invoice]) -> None:
    set_value(INVOICES, [i.to_dict() for i in invoices])


def save_levels(groups: Iterable[MembershipGroup]) -> None:
    set_value(LEVELS, [g.to_dict() for g in groups])


def save_settings(settings: AppSettings) -> None:
    set_value(SETTINGS, settings.to_dict())


def save_admin_profile(profile: AdminProfile) -> None:
    set_value(ADMIN_PROFILE, profile.to_dict())


def get_admin_password_hash() -> str:
    return get_value(ADMIN_PASSWORD, "")


def set_admin_password_hash(password_hash: str) -> None:
    set_value(ADMIN_PASSWORD, password_hash)


def push_timestamp(key: str, when: datetime) -> None:
    history = get_value(key, [])
    set_value(key, [when.isoformat(timespec="seconds")] + history[: TIMESTAMP_HISTORY - 1])


def get_timestamps(key: str) -> list[str]:
    return get_value(key, [])


def is_force_password_change() -> bool:
    return bool(get_value(FORCE_PASSWORD_CHANGE, False))


def clear_force_password_change() -> None:
    set_value(FORCE_PASSWORD_CHANGE, False)
