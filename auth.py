"""
auth.py
Authentication utilities for the single shared admin password (bcrypt hashing, verify, login, change password).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

import bcrypt

import db
import utils
from models import AppState, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "admin123"


def _to_bcrypt_secret(password: str) -> bytes:
    # bcrypt rejects secrets over 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    """bcrypt hash of `password`, decoded so it can be stored as JSON text."""
    return bcrypt.hashpw(_to_bcrypt_secret(password), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    secret = _to_bcrypt_secret(password)
    try:
        return bcrypt.checkpw(secret, password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash (e.g. a hand-edited backup)
        logger.warning("Stored admin password is not a valid bcrypt hash")
        return False


def login(password: str, now: datetime | None = None) -> bool:
    if not verify_password(password, db.get_admin_password_hash()):
        logger.info("Failed login attempt")
        return False
    db.push_timestamp(db.LOGIN_TIMESTAMPS, now or datetime.now())
    return True


def logout(now: datetime | None = None) -> None:
    db.push_timestamp(db.LOGOUT_TIMESTAMPS, now or datetime.now())


def change_password(current_password: str | None, new_password: str, confirm_password: str) -> None:
    """
    Replace the admin password. `current_password` is checked unless None
    (the forced change right after first login).
    """
    errors: list[str] = []
    if current_password is not None and not verify_password(current_password, db.get_admin_password_hash()):
        errors.append("The current password you entered is incorrect.")
    errors += utils.validate_new_password(new_password, confirm_password)
    if errors:
        raise ValidationError(errors)

    db.set_admin_password_hash(hash_password(new_password))
    db.clear_force_password_change()
    logger.info("Admin password changed")


def with_hashed_password(state: AppState) -> AppState:
    """Backups written by older versions carry the password in clear text; hash it on import."""
    if state.admin_password.startswith("$2"):
        return state
    return replace(state, admin_password=hash_password(state.admin_password or DEFAULT_PASSWORD))
