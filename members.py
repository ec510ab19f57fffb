"""
members.py
Member ledger: member records and their credit balance.
"""

from __future__ import annotations

import sqlite3
from dataclasses import replace

import utils
from db import Database
from errors import DuplicateEmailError, NotFoundError, ValidationError
from logs import get_logger
from models import (
    MEMBER_STATUSES,
    MEMBERSHIP_TYPES,
    Member,
    MemberFilters,
    MemberInput,
    MemberStats,
    MemberUpdate,
)

logger = get_logger(__name__)

MEMBER_COLUMNS = (
    "full_name", "email", "phone", "membership_type", "status",
    "start_date", "end_date", "credits", "notes",
)


def get_member(conn: sqlite3.Connection, member_id: int, owner_id: int | None = None) -> Member | None:
    if owner_id is None:
        row = conn.execute("SELECT * FROM members WHERE id = ?", (member_id,)).fetchone()
    else:
        row = conn.execute(
            "SELECT * FROM members WHERE id = ? AND user_id = ?", (member_id, owner_id)
        ).fetchone()
    return Member.from_row(row) if row else None


def adjust_credits(conn: sqlite3.Connection, member_id: int, delta: int) -> int | None:
    """
    Add `delta` (may be negative) to a member's balance inside the caller's
    transaction. No floor check here; callers decide. Returns the new balance,
    or None when the member no longer exists.
    """
    cur = conn.execute(
        "UPDATE members SET credits = credits + ?, updated_at = ? WHERE id = ?",
        (delta, utils.now_iso(), member_id),
    )
    if cur.rowcount == 0:
        return None
    row = conn.execute("SELECT credits FROM members WHERE id = ?", (member_id,)).fetchone()
    return int(row["credits"])


def _email_taken(conn: sqlite3.Connection, owner_id: int, email: str, exclude_id: int | None = None) -> bool:
    wanted = utils.normalize_email(email)
    rows = conn.execute("SELECT id, email FROM members WHERE user_id = ?", (owner_id,)).fetchall()
    return any(r["id"] != exclude_id and utils.normalize_email(r["email"]) == wanted for r in rows)


class MemberLedger:
    def __init__(self, db: Database):
        self.db = db

    def list(self, owner_id: int, filters: MemberFilters | None = None) -> list[Member]:
        sql = "SELECT * FROM members WHERE user_id = ?"
        params: list = [owner_id]

        if filters and filters.status:
            sql += " AND status = ?"
            params.append(filters.status)
        if filters and filters.membership_type:
            sql += " AND membership_type = ?"
            params.append(filters.membership_type)
        if filters and filters.search and filters.search.strip():
            # LIKE is case-insensitive for ASCII in sqlite
            sql += " AND (full_name LIKE ? OR email LIKE ?)"
            like = f"%{filters.search.strip()}%"
            params.extend([like, like])

        sql += " ORDER BY created_at DESC, id DESC"
        return [Member.from_row(r) for r in self.db.fetch_all(sql, tuple(params))]

    def get_by_id(self, member_id: int) -> Member | None:
        with self.db.get_conn() as conn:
            return get_member(conn, member_id)

    def create(self, owner_id: int, data: MemberInput) -> Member:
        data = replace(
            data,
            full_name=data.full_name.strip(),
            email=data.email.strip(),
            phone=(data.phone or "").strip() or None,
            notes=(data.notes or "").strip() or None,
        )
        errors = utils.validate_member_inputs(data)
        if errors:
            raise ValidationError(errors)

        now = utils.now_iso()
        with self.db.transaction() as conn:
            if _email_taken(conn, owner_id, data.email):
                raise DuplicateEmailError()
            cur = conn.execute(
                """
                INSERT INTO members(user_id, full_name, email, phone, membership_type, status,
                    start_date, end_date, credits, notes, created_at, updated_at)
                VALUES(?,?,?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    owner_id, data.full_name, data.email, data.phone, data.membership_type, data.status,
                    data.start_date, data.end_date, data.credits, data.notes, now, now,
                ),
            )
            member = get_member(conn, cur.lastrowid)

        logger.info("member_created", member_id=member.id, owner_id=owner_id, credits=member.credits)
        return member

    def update(self, data: MemberUpdate) -> Member:
        changes = data.changes()
        errors: list[str] = []
        if "full_name" in changes and not changes["full_name"].strip():
            errors.append("Full name is required.")
        if "email" in changes:
            errors.extend(utils.validate_email(changes["email"]))
        if "membership_type" in changes and changes["membership_type"] not in MEMBERSHIP_TYPES:
            errors.append("Please select a membership type.")
        if "status" in changes and changes["status"] not in MEMBER_STATUSES:
            errors.append(f"Status must be one of: {', '.join(MEMBER_STATUSES)}.")
        if "credits" in changes and (
            not isinstance(changes["credits"], int) or isinstance(changes["credits"], bool) or changes["credits"] < 0
        ):
            errors.append("Credits must be a positive number.")
        if errors:
            raise ValidationError(errors)
        for key in ("full_name", "phone", "notes"):
            if key in changes:
                changes[key] = changes[key].strip() or None

        with self.db.transaction() as conn:
            existing = get_member(conn, data.id)
            if existing is None:
                raise NotFoundError("Member not found")

            if "email" in changes:
                changes["email"] = changes["email"].strip()
                if utils.normalize_email(changes["email"]) != utils.normalize_email(existing.email) and _email_taken(
                    conn, existing.user_id, changes["email"], exclude_id=existing.id
                ):
                    raise DuplicateEmailError()

            start = changes.get("start_date", existing.start_date)
            end = changes.get("end_date", existing.end_date)
            if "start_date" in changes or "end_date" in changes:
                date_errors = utils.validate_date_range(start, end)
                if date_errors:
                    raise ValidationError(date_errors)

            assignments = ", ".join(f"{col} = ?" for col in changes if col in MEMBER_COLUMNS)
            params = [changes[col] for col in changes if col in MEMBER_COLUMNS]
            conn.execute(
                f"UPDATE members SET {assignments + ', ' if assignments else ''}updated_at = ? WHERE id = ?",
                (*params, utils.now_iso(), data.id),
            )
            member = get_member(conn, data.id)

        logger.info("member_updated", member_id=member.id, fields=sorted(changes))
        return member

    def delete(self, member_id: int) -> None:
        # Sessions and subscriptions keep their member_id; they render as "Unknown Member".
        with self.db.transaction() as conn:
            cur = conn.execute("DELETE FROM members WHERE id = ?", (member_id,))
            if cur.rowcount == 0:
                raise NotFoundError("Member not found")
        logger.info("member_deleted", member_id=member_id)

    def get_stats(self, owner_id: int) -> MemberStats:
        stats = MemberStats()
        rows = self.db.fetch_all(
            "SELECT status, COUNT(*) AS c FROM members WHERE user_id = ? GROUP BY status",
            (owner_id,),
        )
        for r in rows:
            setattr(stats, r["status"], int(r["c"]))
            stats.total += int(r["c"])
        return stats
