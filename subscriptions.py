"""
subscriptions.py
Subscription ledger: recorded payments that grant credits to a member.

Deleting a subscription removes the payment record only. Credits already granted
stay on the member's balance.
"""

from __future__ import annotations

import sqlite3

import utils
from db import Database
from errors import NotFoundError, ValidationError
from logs import get_logger
from members import adjust_credits, get_member
from models import Subscription, SubscriptionInput, SubscriptionStats

logger = get_logger(__name__)


def _get_subscription(conn: sqlite3.Connection, subscription_id: int) -> Subscription | None:
    row = conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,)).fetchone()
    return Subscription.from_row(row) if row else None


class SubscriptionLedger:
    def __init__(self, db: Database):
        self.db = db

    def create(self, data: SubscriptionInput, organization_id: int) -> Subscription:
        errors = utils.validate_subscription_inputs(data)
        if errors:
            raise ValidationError(errors)

        with self.db.transaction() as conn:
            member = get_member(conn, data.member_id)
            if member is None:
                raise NotFoundError("Member not found")

            cur = conn.execute(
                """
                INSERT INTO subscriptions(member_id, member_name, organization_id, amount, credits, notes, created_at)
                VALUES(?,?,?,?,?,?,?)
                """,
                (
                    member.id, member.full_name, organization_id, float(data.amount), data.credits,
                    (data.notes or "").strip() or None, utils.now_iso(),
                ),
            )
            balance = adjust_credits(conn, member.id, data.credits)
            subscription = _get_subscription(conn, cur.lastrowid)

        logger.info(
            "subscription_created",
            subscription_id=subscription.id,
            member_id=member.id,
            organization_id=organization_id,
            amount=subscription.amount,
            credits=subscription.credits,
            balance_after=balance,
        )
        return subscription

    def get_by_id(self, subscription_id: int) -> Subscription | None:
        with self.db.get_conn() as conn:
            return _get_subscription(conn, subscription_id)

    def list(self, organization_id: int) -> list[Subscription]:
        rows = self.db.fetch_all(
            "SELECT * FROM subscriptions WHERE organization_id = ? ORDER BY created_at DESC, id DESC",
            (organization_id,),
        )
        return [Subscription.from_row(r) for r in rows]

    def list_for_member(self, member_id: int) -> list[Subscription]:
        rows = self.db.fetch_all(
            "SELECT * FROM subscriptions WHERE member_id = ? ORDER BY created_at DESC, id DESC",
            (member_id,),
        )
        return [Subscription.from_row(r) for r in rows]

    def delete(self, subscription_id: int, organization_id: int) -> None:
        """
        Remove the payment record. The caller is expected to have re-authenticated
        the owner first (see auth.reauthenticate).
        """
        with self.db.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM subscriptions WHERE id = ? AND organization_id = ?",
                (subscription_id, organization_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("Subscription not found or you do not have permission to delete it")

        logger.info("subscription_deleted", subscription_id=subscription_id, credits_kept=True)

    def get_stats(self, organization_id: int) -> SubscriptionStats:
        row = self.db.fetch_one(
            """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(amount), 0) AS total_amount,
                   COALESCE(SUM(credits), 0) AS total_credits
            FROM subscriptions WHERE organization_id = ?
            """,
            (organization_id,),
        )
        return SubscriptionStats(
            total=int(row["total"]),
            total_amount=float(row["total_amount"]),
            total_credits=int(row["total_credits"]),
        )
