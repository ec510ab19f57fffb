"""
organizations.py
Organizations, their settings (currency, default session length) and user roles.
"""

from __future__ import annotations

import sqlite3

import utils
from config import get_settings
from db import Database
from errors import NotFoundError, ValidationError
from logs import get_logger
from models import ROLES, Organization

logger = get_logger(__name__)


def _get_org(conn: sqlite3.Connection, org_id: int) -> Organization | None:
    row = conn.execute("SELECT * FROM organizations WHERE id = ?", (org_id,)).fetchone()
    return Organization.from_row(row) if row else None


def _add_user(conn: sqlite3.Connection, user_id: int, organization_id: int, role: str) -> None:
    if role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")
    conn.execute(
        """
        INSERT INTO user_organizations(user_id, organization_id, role, joined_at) VALUES(?,?,?,?)
        ON CONFLICT(user_id, organization_id) DO UPDATE SET role=excluded.role
        """,
        (user_id, organization_id, role, utils.now_iso()),
    )


def create_organization(conn: sqlite3.Connection, name: str, user_id: int) -> Organization:
    """Insert an organization with default settings and make `user_id` its owner."""
    if not name.strip():
        raise ValidationError("Organization name is required.")
    settings = get_settings()
    now = utils.now_iso()
    cur = conn.execute(
        """
        INSERT INTO organizations(name, currency, session_default_length_minutes, created_at, updated_at)
        VALUES(?,?,?,?,?)
        """,
        (name.strip(), settings.default_currency, settings.default_session_length_minutes, now, now),
    )
    _add_user(conn, user_id, cur.lastrowid, "owner")
    return _get_org(conn, cur.lastrowid)


class OrganizationDirectory:
    def __init__(self, db: Database):
        self.db = db

    def create(self, name: str, user_id: int) -> Organization:
        with self.db.transaction() as conn:
            org = create_organization(conn, name, user_id)
        logger.info("organization_created", organization_id=org.id, user_id=user_id)
        return org

    def add_user(self, user_id: int, organization_id: int, role: str = "member") -> None:
        with self.db.transaction() as conn:
            if _get_org(conn, organization_id) is None:
                raise NotFoundError("Organization not found")
            _add_user(conn, user_id, organization_id, role)

    def get_by_id(self, org_id: int) -> Organization | None:
        with self.db.get_conn() as conn:
            return _get_org(conn, org_id)

    def get_user_organizations(self, user_id: int) -> list[Organization]:
        rows = self.db.fetch_all(
            """
            SELECT o.* FROM organizations o
            JOIN user_organizations uo ON uo.organization_id = o.id
            WHERE uo.user_id = ?
            ORDER BY o.id ASC
            """,
            (user_id,),
        )
        return [Organization.from_row(r) for r in rows]

    def get_user_role(self, user_id: int, organization_id: int) -> str | None:
        row = self.db.fetch_one(
            "SELECT role FROM user_organizations WHERE user_id = ? AND organization_id = ?",
            (user_id, organization_id),
        )
        return str(row["role"]) if row else None

    def update(self, org_id: int, name: str) -> Organization:
        if not name.strip():
            raise ValidationError("Organization name is required.")
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE organizations SET name = ?, updated_at = ? WHERE id = ?",
                (name.strip(), utils.now_iso(), org_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Organization not found")
            return _get_org(conn, org_id)

    def update_settings(
        self,
        org_id: int,
        currency: str | None = None,
        session_default_length_minutes: int | None = None,
    ) -> Organization:
        errors: list[str] = []
        if currency is not None and currency not in utils.CURRENCIES:
            errors.append(f"Unsupported currency: {currency}")
        if session_default_length_minutes is not None and (
            not isinstance(session_default_length_minutes, int) or session_default_length_minutes <= 0
        ):
            errors.append("Default session length must be a positive number of minutes.")
        if errors:
            raise ValidationError(errors)

        with self.db.transaction() as conn:
            org = _get_org(conn, org_id)
            if org is None:
                raise NotFoundError("Organization not found")
            conn.execute(
                """
                UPDATE organizations SET currency = ?, session_default_length_minutes = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    currency or org.currency,
                    session_default_length_minutes or org.session_default_length_minutes,
                    utils.now_iso(),
                    org_id,
                ),
            )
            updated = _get_org(conn, org_id)

        logger.info(
            "organization_settings_updated",
            organization_id=org_id,
            currency=updated.currency,
            session_default_length_minutes=updated.session_default_length_minutes,
        )
        return updated
