"""
sessions.py
Session ledger: recorded visits that consume member credits.

create  -> debit credits_used (balance must cover it)
update  -> if credits_used changes, apply -(new - old) to the member
delete  -> refund the current credits_used
Each of these runs in one transaction with the member balance change.
"""

from __future__ import annotations

import sqlite3

import utils
from db import Database
from errors import InsufficientCreditsError, NotFoundError, ValidationError
from logs import get_logger
from members import adjust_credits, get_member
from models import (
    SESSION_STATUSES,
    SESSION_UNVERIFIED,
    SESSION_VERIFIED,
    Session,
    SessionFilters,
    SessionInput,
    SessionStats,
    SessionUpdate,
    SessionWithMember,
    UNKNOWN_MEMBER,
)

logger = get_logger(__name__)

DEFAULT_CREDITS_USED = 1


def _get_session(conn: sqlite3.Connection, session_id: int, owner_id: int) -> Session | None:
    row = conn.execute(
        "SELECT * FROM sessions WHERE id = ? AND user_id = ?", (session_id, owner_id)
    ).fetchone()
    return Session.from_row(row) if row else None


class SessionLedger:
    def __init__(self, db: Database):
        self.db = db

    def create(self, owner_id: int, data: SessionInput) -> Session:
        errors = utils.validate_session_inputs(data)
        if errors:
            raise ValidationError(errors)
        credits_used = data.credits_used or DEFAULT_CREDITS_USED

        now = utils.now_iso()
        with self.db.transaction() as conn:
            member = get_member(conn, data.member_id, owner_id)
            if member is None:
                raise NotFoundError("Member not found")
            if member.credits < credits_used:
                raise InsufficientCreditsError(member.credits)

            cur = conn.execute(
                """
                INSERT INTO sessions(user_id, member_id, start_time, end_time, status, credits_used,
                    notes, created_at, updated_at)
                VALUES(?,?,?,?,?,?,?,?,?)
                """,
                (
                    owner_id, data.member_id, data.start_time, data.end_time or None, SESSION_UNVERIFIED,
                    credits_used, (data.notes or "").strip() or None, now, now,
                ),
            )
            balance = adjust_credits(conn, member.id, -credits_used)
            session = _get_session(conn, cur.lastrowid, owner_id)

        logger.info(
            "session_created",
            session_id=session.id,
            member_id=member.id,
            credits_used=credits_used,
            balance_after=balance,
        )
        return session

    def get_by_id(self, session_id: int, owner_id: int) -> Session | None:
        with self.db.get_conn() as conn:
            return _get_session(conn, session_id, owner_id)

    def update(self, data: SessionUpdate, owner_id: int) -> Session:
        if data.status is not None and data.status not in SESSION_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(SESSION_STATUSES)}.")
        if data.credits_used is not None and (
            not isinstance(data.credits_used, int) or isinstance(data.credits_used, bool) or data.credits_used < 1
        ):
            raise ValidationError("Credits used must be at least 1.")
        if data.start_time is not None and not data.start_time.strip():
            raise ValidationError("Start time is required.")

        with self.db.transaction() as conn:
            session = _get_session(conn, data.id, owner_id)
            if session is None:
                raise NotFoundError("Session not found")

            if session.status == SESSION_VERIFIED and data.status == SESSION_UNVERIFIED:
                raise ValidationError("A verified session cannot be marked unverified again.")

            window_errors = utils.validate_session_window(
                data.start_time if data.start_time is not None else session.start_time,
                data.end_time if data.end_time is not None else session.end_time,
            )
            if window_errors:
                raise ValidationError(window_errors)

            changes: dict = {}
            if data.start_time is not None:
                changes["start_time"] = data.start_time
            if data.end_time is not None:
                changes["end_time"] = data.end_time or None
            if data.status is not None:
                changes["status"] = data.status
            if data.notes is not None:
                changes["notes"] = data.notes.strip() or None

            balance = None
            if data.credits_used is not None:
                diff = data.credits_used - session.credits_used
                if diff != 0:
                    # No floor check here: only create validates the balance.
                    balance = adjust_credits(conn, session.member_id, -diff)
                changes["credits_used"] = data.credits_used

            assignments = "".join(f"{col} = ?, " for col in changes)
            conn.execute(
                f"UPDATE sessions SET {assignments}updated_at = ? WHERE id = ?",
                (*changes.values(), utils.now_iso(), session.id),
            )
            updated = _get_session(conn, session.id, owner_id)

        logger.info(
            "session_updated",
            session_id=updated.id,
            member_id=updated.member_id,
            fields=sorted(changes),
            credits_used=updated.credits_used,
            balance_after=balance,
        )
        return updated

    def verify(self, session_id: int, owner_id: int) -> Session:
        return self.update(SessionUpdate(id=session_id, status=SESSION_VERIFIED), owner_id)

    def delete(self, session_id: int, owner_id: int) -> None:
        with self.db.transaction() as conn:
            session = _get_session(conn, session_id, owner_id)
            if session is None:
                raise NotFoundError("Session not found")
            balance = adjust_credits(conn, session.member_id, session.credits_used)
            conn.execute("DELETE FROM sessions WHERE id = ?", (session.id,))

        logger.info(
            "session_deleted",
            session_id=session.id,
            member_id=session.member_id,
            refunded=session.credits_used,
            balance_after=balance,
        )

    def list(self, owner_id: int, filters: SessionFilters | None = None) -> list[SessionWithMember]:
        sql = """
            SELECT s.*, m.full_name AS member_name, m.email AS member_email
            FROM sessions s
            LEFT JOIN members m ON m.id = s.member_id
            WHERE s.user_id = ?
        """
        params: list = [owner_id]

        if filters and filters.member_id is not None:
            sql += " AND s.member_id = ?"
            params.append(filters.member_id)
        if filters and filters.status:
            sql += " AND s.status = ?"
            params.append(filters.status)
        if filters and filters.start_date:
            sql += " AND substr(s.start_time, 1, 10) >= ?"
            params.append(filters.start_date)
        if filters and filters.end_date:
            sql += " AND substr(s.start_time, 1, 10) <= ?"
            params.append(filters.end_date)

        rows = self.db.fetch_all(sql, tuple(params))
        sessions = [with_member(r) for r in rows]
        sessions.sort(key=lambda s: utils.parse_iso_datetime(s.start_time).timestamp(), reverse=True)
        return sessions

    def list_for_member(self, member_id: int, owner_id: int) -> list[SessionWithMember]:
        return self.list(owner_id, SessionFilters(member_id=member_id))

    def get_stats(self, owner_id: int) -> SessionStats:
        row = self.db.fetch_one(
            """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(status = 'unverified'), 0) AS unverified,
                   COALESCE(SUM(status = 'verified'), 0) AS verified,
                   COALESCE(SUM(credits_used), 0) AS total_credits_used
            FROM sessions WHERE user_id = ?
            """,
            (owner_id,),
        )
        return SessionStats(
            total=int(row["total"]),
            unverified=int(row["unverified"]),
            verified=int(row["verified"]),
            total_credits_used=int(row["total_credits_used"]),
        )


def with_member(row: sqlite3.Row) -> SessionWithMember:
    """Session row joined to its member; a deleted member shows as "Unknown Member"."""
    session = Session.from_row(row)
    name = row["member_name"]
    return SessionWithMember(
        **session.__dict__,
        member_name=name if name is not None else UNKNOWN_MEMBER,
        member_email=row["member_email"] or "",
    )
