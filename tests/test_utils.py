from datetime import date

import pytest

import utils
from models import SessionInput, SubscriptionInput
from tests.conftest import OWNER


def test_add_months_clamps_day():
    assert utils.add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert utils.add_months(date(2023, 11, 15), 2) == date(2024, 1, 15)


def test_calc_end_date_by_membership_type():
    assert utils.calc_end_date("2024-03-10", "basic") == "2024-04-10"
    assert utils.calc_end_date("2024-03-10", "premium-annual") == "2025-03-10"


def test_default_end_time():
    assert utils.default_end_time("2024-05-01T10:00:00", 90) == "2024-05-01T11:30:00"


def test_normalize_email():
    assert utils.normalize_email("  Jane@Example.COM ") == "jane@example.com"


def test_validate_email():
    assert utils.validate_email("jane@example.com") == []
    for bad in (None, "", "   ", "jane.example.com"):
        assert utils.validate_email(bad) == ["A valid email is required."]


@pytest.mark.parametrize(
    "code,expected",
    [("VND", "₫1,500,000"), ("USD", "$1,500,000.00"), ("JPY", "¥1,500,000"), ("???", "₫1,500,000")],
)
def test_format_currency(code, expected):
    assert utils.format_currency(1500000, code) == expected


def test_currency_lookups():
    assert utils.currency_symbol("EUR") == "€"
    assert utils.currency_name("KRW") == "South Korean Won"


def test_session_window_validation():
    assert utils.validate_session_window("2024-05-01T10:00:00", None) == []
    assert utils.validate_session_window("2024-05-01T10:00:00", "2024-05-01T10:00:00")
    assert utils.validate_session_window("nonsense", None)
    assert utils.validate_session_window("2024-05-01T10:00:00+00:00", "2024-05-01T11:00:00")
    assert utils.validate_session_inputs(SessionInput(member_id=1, start_time="2024-05-01T10:00:00", credits_used=0))


def test_subscription_validation_rejects_bool():
    assert utils.validate_subscription_inputs(SubscriptionInput(member_id=1, amount=True, credits=1))
    assert utils.validate_subscription_inputs(SubscriptionInput(member_id=1, amount=10.5, credits=1)) == []


def test_records_to_csv_empty_keeps_header():
    csv = utils.records_to_csv_bytes([], ["id", "full_name"]).decode("utf-8")
    assert csv.strip() == "id,full_name"


def test_records_to_csv_with_rows(members, make_member):
    make_member(full_name="Jane Doe", email="jane@example.com")
    csv = utils.records_to_csv_bytes(members.list(OWNER), ["full_name", "email"]).decode("utf-8")
    assert csv.splitlines() == ["full_name,email", "Jane Doe,jane@example.com"]


def test_revenue_summary_by_month(subscriptions, make_member, org, db):
    m = make_member()
    for amount, credits in [(100, 5), (50, 2), (30, 1)]:
        subscriptions.create(SubscriptionInput(member_id=m.id, amount=amount, credits=credits), org.id)
    # move one payment into an earlier month
    db.execute("UPDATE subscriptions SET created_at = '2024-01-15T09:00:00+00:00' WHERE amount = 30")

    df = utils.revenue_summary_by_month(subscriptions.list(org.id))
    assert list(df.columns) == ["month", "revenue", "credits"]
    assert df.iloc[-1].to_dict() == {"month": "2024-01", "revenue": 30.0, "credits": 1}
    assert df.iloc[0]["revenue"] == 150.0
    assert df.iloc[0]["credits"] == 7


def test_revenue_summary_empty():
    df = utils.revenue_summary_by_month([])
    assert df.empty
    assert list(df.columns) == ["month", "revenue", "credits"]


def test_insert_sample_data(members, sessions, subscriptions, org):
    utils.insert_sample_data(members, sessions, subscriptions, OWNER, org.id)
    utils.insert_sample_data(members, sessions, subscriptions, OWNER, org.id)

    assert members.get_stats(OWNER).total == 6
    assert subscriptions.get_stats(org.id).total == 4
    stats = sessions.get_stats(OWNER)
    assert stats.total == 4
    assert stats.total_credits_used == 6
