"""
models.py
Domain records (frozen dataclasses built from sqlite rows) and service inputs.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, fields

# Membership durations in months (used for end_date auto-calculation)
MEMBERSHIP_MONTHS = {
    "basic": 1,
    "standard": 1,
    "premium": 1,
    "basic-annual": 12,
    "standard-annual": 12,
    "premium-annual": 12,
}
MEMBERSHIP_TYPES = tuple(MEMBERSHIP_MONTHS)
MEMBER_STATUSES = ("active", "expired", "cancelled", "paused")

SESSION_UNVERIFIED = "unverified"
SESSION_VERIFIED = "verified"
SESSION_STATUSES = (SESSION_UNVERIFIED, SESSION_VERIFIED)

ROLES = ("owner", "admin", "member")

UNKNOWN_MEMBER = "Unknown Member"


def _from_row(cls, row: sqlite3.Row):
    keys = row.keys()
    return cls(**{f.name: row[f.name] for f in fields(cls) if f.name in keys})


@dataclass(frozen=True)
class Account:
    id: int
    email: str
    name: str
    business_name: str
    password_hash: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Account":
        return _from_row(cls, row)


@dataclass(frozen=True)
class Organization:
    id: int
    name: str
    currency: str
    session_default_length_minutes: int
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Organization":
        return _from_row(cls, row)


@dataclass(frozen=True)
class Member:
    id: int
    user_id: int
    full_name: str
    email: str
    phone: str | None
    membership_type: str
    status: str
    start_date: str
    end_date: str
    credits: int
    notes: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Member":
        return _from_row(cls, row)


@dataclass(frozen=True)
class Session:
    id: int
    user_id: int
    member_id: int
    start_time: str
    end_time: str | None
    status: str  # 'unverified' or 'verified'
    credits_used: int
    notes: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Session":
        return _from_row(cls, row)


@dataclass(frozen=True)
class SessionWithMember(Session):
    member_name: str = UNKNOWN_MEMBER
    member_email: str = ""


@dataclass(frozen=True)
class Subscription:
    id: int
    member_id: int
    member_name: str  # snapshot taken when the payment was recorded
    organization_id: int
    amount: float
    credits: int
    notes: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Subscription":
        return _from_row(cls, row)


# ---------- inputs ----------

@dataclass(frozen=True)
class MemberInput:
    full_name: str
    email: str
    membership_type: str
    start_date: str
    end_date: str
    status: str = "active"
    phone: str | None = None
    credits: int = 0
    notes: str | None = None


@dataclass(frozen=True)
class MemberUpdate:
    """Partial update: fields left as None are not touched."""
    id: int
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    membership_type: str | None = None
    status: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    credits: int | None = None
    notes: str | None = None

    def changes(self) -> dict:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "id" and getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class MemberFilters:
    status: str | None = None
    membership_type: str | None = None
    search: str | None = None  # name or email


@dataclass(frozen=True)
class SessionInput:
    member_id: int
    start_time: str
    end_time: str | None = None
    credits_used: int | None = None  # defaults to 1
    notes: str | None = None


@dataclass(frozen=True)
class SessionUpdate:
    id: int
    start_time: str | None = None
    end_time: str | None = None
    status: str | None = None
    credits_used: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class SessionFilters:
    member_id: int | None = None
    status: str | None = None
    start_date: str | None = None  # inclusive, YYYY-MM-DD
    end_date: str | None = None  # inclusive, YYYY-MM-DD


@dataclass(frozen=True)
class SubscriptionInput:
    member_id: int
    amount: float
    credits: int
    notes: str | None = None


@dataclass
class MemberStats:
    total: int = 0
    active: int = 0
    expired: int = 0
    cancelled: int = 0
    paused: int = 0


@dataclass
class SessionStats:
    total: int = 0
    unverified: int = 0
    verified: int = 0
    total_credits_used: int = 0


@dataclass
class SubscriptionStats:
    total: int = 0
    total_amount: float = 0.0
    total_credits: int = 0
