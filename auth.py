"""
auth.py
Owner accounts: bcrypt hashing, register, login, re-authentication, password change.

This avoids passlib's bcrypt backend auto-detection issues on some Python 3.13 Windows setups.
"""

from __future__ import annotations

import bcrypt

import utils
from config import get_settings
from db import Database
from errors import DuplicateEmailError, ValidationError
from logs import get_logger
from models import Account, Organization
from organizations import create_organization

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in SQLite).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def validate_new_password(new1: str, new2: str | None = None) -> list[str]:
    if len(new1) < MIN_PASSWORD_LENGTH:
        return [f"Password must be at least {MIN_PASSWORD_LENGTH} characters."]
    if new2 is not None and new1 != new2:
        return ["Passwords do not match."]
    return []


def get_account_by_email(db: Database, email: str) -> Account | None:
    # accounts.email is COLLATE NOCASE
    row = db.fetch_one("SELECT * FROM accounts WHERE email = ?", (email.strip(),))
    return Account.from_row(row) if row else None


def get_account(db: Database, account_id: int) -> Account | None:
    row = db.fetch_one("SELECT * FROM accounts WHERE id = ?", (account_id,))
    return Account.from_row(row) if row else None


def _insert_account(db: Database, name: str, business_name: str, email: str, password_hash: str) -> tuple[Account, Organization]:
    with db.transaction() as conn:
        if conn.execute("SELECT 1 FROM accounts WHERE email = ?", (email,)).fetchone():
            raise DuplicateEmailError("An account with this email already exists")
        cur = conn.execute(
            "INSERT INTO accounts(email, name, business_name, password_hash, created_at) VALUES(?,?,?,?,?)",
            (email, name, business_name, password_hash, utils.now_iso()),
        )
        org = create_organization(conn, business_name, cur.lastrowid)
        row = conn.execute("SELECT * FROM accounts WHERE id = ?", (cur.lastrowid,)).fetchone()
    return Account.from_row(row), org


def register(db: Database, name: str, business_name: str, email: str, password: str) -> tuple[Account, Organization]:
    """Create an owner account together with its organization."""
    errors: list[str] = []
    if not name.strip():
        errors.append("Name is required.")
    if not business_name.strip():
        errors.append("Business name is required.")
    errors.extend(utils.validate_email(email))
    errors.extend(validate_new_password(password))
    if errors:
        raise ValidationError(errors)

    account, org = _insert_account(db, name.strip(), business_name.strip(), email.strip(), hash_password(password))
    logger.info("account_registered", account_id=account.id, organization_id=org.id)
    return account, org


def login(db: Database, email: str, password: str) -> Account | None:
    account = get_account_by_email(db, email)
    if not account:
        return None
    if not verify_password(password, account.password_hash):
        logger.warning("login_failed", account_id=account.id)
        return None
    return account


def reauthenticate(db: Database, account_id: int, password: str) -> bool:
    """Password re-entry before destructive actions (e.g. deleting a subscription)."""
    account = get_account(db, account_id)
    return bool(account and password and verify_password(password, account.password_hash))


def change_password(db: Database, account_id: int, new_password: str) -> None:
    errors = validate_new_password(new_password)
    if errors:
        raise ValidationError(errors)
    db.execute(
        "UPDATE accounts SET password_hash = ? WHERE id = ?",
        (hash_password(new_password), account_id),
    )
    db.clear_force_password_change(account_id)
    logger.info("password_changed", account_id=account_id)


def init_db(db: Database) -> None:
    """
    Initialize the database.
    - Create tables
    - Insert default owner account + organization if no account exists
    - Force password change on first login
    """
    db.create_tables()

    if db.fetch_one("SELECT id FROM accounts LIMIT 1"):
        return

    settings = get_settings()
    owner, _ = _insert_account(
        db,
        "Admin User",
        settings.default_business_name,
        settings.default_admin_email,
        hash_password(settings.default_admin_password),
    )
    db.set_force_password_change(owner.id)
    logger.info("default_owner_created", account_id=owner.id, email=settings.default_admin_email)
