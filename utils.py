"""
utils.py
Validation, dates, currency formatting, exports, sample data.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

import pandas as pd

from models import (
    MEMBER_STATUSES,
    MEMBERSHIP_MONTHS,
    MEMBERSHIP_TYPES,
    MemberInput,
    SessionInput,
    SubscriptionInput,
)

# code -> (symbol, name, fraction digits)
CURRENCIES = {
    "VND": ("₫", "Vietnamese Dong", 0),
    "USD": ("$", "US Dollar", 2),
    "EUR": ("€", "Euro", 2),
    "GBP": ("£", "British Pound", 2),
    "JPY": ("¥", "Japanese Yen", 0),
    "KRW": ("₩", "South Korean Won", 0),
    "SGD": ("S$", "Singapore Dollar", 2),
    "THB": ("฿", "Thai Baht", 2),
    "AUD": ("A$", "Australian Dollar", 2),
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def today_iso() -> str:
    return date.today().isoformat()


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def parse_iso_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def calc_end_date(start_date_iso: str, membership_type: str) -> str:
    start = parse_iso(start_date_iso)
    months = MEMBERSHIP_MONTHS.get(membership_type, 1)
    return add_months(start, months).isoformat()


def infer_status(end_date_iso: str) -> str:
    return "active" if parse_iso(end_date_iso) >= date.today() else "expired"


def default_end_time(start_time_iso: str, minutes: int) -> str:
    """End of a session that lasts the organization's default length."""
    return (parse_iso_datetime(start_time_iso) + timedelta(minutes=minutes)).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().casefold()


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ---------- validation ----------

def validate_email(email: str | None) -> list[str]:
    if not email or not email.strip() or "@" not in email:
        return ["A valid email is required."]
    return []


def validate_member_inputs(data: MemberInput) -> list[str]:
    errors: list[str] = []
    if not data.full_name.strip():
        errors.append("Full name is required.")
    errors.extend(validate_email(data.email))
    if data.membership_type not in MEMBERSHIP_TYPES:
        errors.append("Please select a membership type.")
    if data.status not in MEMBER_STATUSES:
        errors.append(f"Status must be one of: {', '.join(MEMBER_STATUSES)}.")
    if not _is_int(data.credits) or data.credits < 0:
        errors.append("Credits must be a positive number.")
    errors.extend(validate_date_range(data.start_date, data.end_date))
    return errors


def validate_date_range(start_date: str, end_date: str) -> list[str]:
    try:
        sd = parse_iso(start_date)
        ed = parse_iso(end_date)
    except (TypeError, ValueError):
        return ["Start/end dates must be valid ISO dates (YYYY-MM-DD)."]
    if ed <= sd:
        return ["End date must be after start date."]
    return []


def validate_session_inputs(data: SessionInput) -> list[str]:
    errors: list[str] = []
    if not data.start_time:
        errors.append("Start time is required.")
    else:
        errors.extend(validate_session_window(data.start_time, data.end_time))
    if data.credits_used is not None and (not _is_int(data.credits_used) or data.credits_used < 1):
        errors.append("Credits used must be at least 1.")
    return errors


def validate_session_window(start_time: str | None, end_time: str | None) -> list[str]:
    try:
        start = parse_iso_datetime(start_time) if start_time else None
        end = parse_iso_datetime(end_time) if end_time else None
        if start and end and end <= start:
            return ["End time must be after start time."]
    except (TypeError, ValueError):
        # also covers comparing naive with timezone-aware values
        return ["Session times must be valid ISO datetimes."]
    return []


def validate_subscription_inputs(data: SubscriptionInput) -> list[str]:
    errors: list[str] = []
    if isinstance(data.amount, bool) or not isinstance(data.amount, (int, float)) or data.amount <= 0:
        errors.append("Please enter a valid amount.")
    if not _is_int(data.credits) or data.credits <= 0:
        errors.append("Please enter a valid number of credits.")
    return errors


# ---------- currency ----------

def format_currency(amount: float, currency_code: str = "VND") -> str:
    symbol, _, digits = CURRENCIES.get(currency_code, CURRENCIES["VND"])
    return f"{symbol}{amount:,.{digits}f}"


def currency_symbol(currency_code: str = "VND") -> str:
    return CURRENCIES.get(currency_code, CURRENCIES["VND"])[0]


def currency_name(currency_code: str = "VND") -> str:
    return CURRENCIES.get(currency_code, CURRENCIES["VND"])[1]


# ---------- exports ----------

def records_to_frame(records: Iterable, columns: list[str] | None = None) -> pd.DataFrame:
    rows = [asdict(r) for r in records]
    if not rows:
        return pd.DataFrame(columns=columns or [])
    df = pd.DataFrame(rows)
    return df[columns] if columns else df


def records_to_csv_bytes(records: Iterable, columns: list[str] | None = None) -> bytes:
    return records_to_frame(records, columns).to_csv(index=False).encode("utf-8")


def revenue_summary_by_month(subscriptions: Iterable) -> pd.DataFrame:
    df = records_to_frame(subscriptions)
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue", "credits"])
    df["month"] = df["created_at"].str.slice(0, 7)
    out = (
        df.groupby("month", as_index=False)
        .agg(revenue=("amount", "sum"), credits=("credits", "sum"))
        .sort_values("month", ascending=False)
        .reset_index(drop=True)
    )
    return out


def insert_sample_data(members_ledger, sessions_ledger, subscriptions_ledger, owner_id: int, organization_id: int) -> None:
    """
    Insert 3 members, a few payments and sessions. Emails are suffixed with a
    timestamp so it is safe to run multiple times.
    """
    today = date.today()
    tag = datetime.now().strftime("%H%M%S%f")

    samples = [
        ("Ahmed Hassan", "premium", today - timedelta(days=25)),
        ("Mona Ali", "standard-annual", today - timedelta(days=10)),
        ("Omar Samy", "basic", today - timedelta(days=60)),
    ]
    created = []
    for full_name, membership_type, start in samples:
        end = calc_end_date(start.isoformat(), membership_type)
        member = members_ledger.create(
            owner_id,
            MemberInput(
                full_name=full_name,
                email=f"{full_name.split()[0].lower()}.{tag}@example.com",
                membership_type=membership_type,
                status=infer_status(end),
                start_date=start.isoformat(),
                end_date=end,
            ),
        )
        created.append(member)

    subscriptions_ledger.create(SubscriptionInput(created[0].id, 300.0, 10, "Sample payment"), organization_id)
    subscriptions_ledger.create(SubscriptionInput(created[1].id, 800.0, 30, "Annual plan paid"), organization_id)

    start = datetime.now().replace(microsecond=0) - timedelta(days=1)
    sessions_ledger.create(owner_id, SessionInput(created[0].id, start.isoformat(), credits_used=1))
    sessions_ledger.create(owner_id, SessionInput(created[1].id, start.isoformat(), credits_used=2))
