import os

import pytest

# Cheap hashes for tests; must be set before get_settings() is first called.
os.environ.setdefault("GYM_BCRYPT_ROUNDS", "4")

from db import Database  # noqa: E402
from members import MemberLedger  # noqa: E402
from models import MemberInput  # noqa: E402
from organizations import OrganizationDirectory  # noqa: E402
from sessions import SessionLedger  # noqa: E402
from subscriptions import SubscriptionLedger  # noqa: E402

OWNER = 1
OTHER_OWNER = 2


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "test.db")
    database.create_tables()
    return database


@pytest.fixture
def members(db):
    return MemberLedger(db)


@pytest.fixture
def sessions(db):
    return SessionLedger(db)


@pytest.fixture
def subscriptions(db):
    return SubscriptionLedger(db)


@pytest.fixture
def organizations(db):
    return OrganizationDirectory(db)


@pytest.fixture
def org(organizations):
    return organizations.create("Demo Fitness", OWNER)


def member_input(**overrides) -> MemberInput:
    data = dict(
        full_name="Jane Doe",
        email="jane@example.com",
        membership_type="basic",
        start_date="2024-01-01",
        end_date="2024-02-01",
        status="active",
        credits=0,
    )
    data.update(overrides)
    return MemberInput(**data)


@pytest.fixture
def make_member(members):
    counter = {"n": 0}

    def _make(owner_id=OWNER, **overrides):
        counter["n"] += 1
        overrides.setdefault("email", f"member{counter['n']}@example.com")
        return members.create(owner_id, member_input(**overrides))

    return _make
