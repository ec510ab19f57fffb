import pytest

import sessions as sessions_module
from errors import InsufficientCreditsError, NotFoundError, ValidationError
from models import MemberUpdate, SessionFilters, SessionInput, SessionUpdate
from tests.conftest import OTHER_OWNER, OWNER


def balance(members, member_id):
    return members.get_by_id(member_id).credits


def test_create_debits_credits(members, sessions, make_member):
    m = make_member(credits=5)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=3))
    assert s.status == "unverified"
    assert s.credits_used == 3
    assert balance(members, m.id) == 2


def test_create_defaults_to_one_credit(members, sessions, make_member):
    m = make_member(credits=2)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    assert s.credits_used == 1
    assert balance(members, m.id) == 1


def test_insufficient_credits_mentions_balance(members, sessions, make_member):
    m = make_member(credits=5)
    sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=3))

    with pytest.raises(InsufficientCreditsError) as exc:
        sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-02T10:00:00", credits_used=3))

    assert "2" in exc.value.message
    assert exc.value.available == 2
    assert balance(members, m.id) == 2
    assert sessions.get_stats(OWNER).total == 1


def test_create_requires_member_of_owner(sessions, make_member):
    m = make_member(owner_id=OTHER_OWNER, credits=5)
    with pytest.raises(NotFoundError):
        sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))


def test_create_validation(sessions, make_member):
    m = make_member(credits=5)
    with pytest.raises(ValidationError):
        sessions.create(OWNER, SessionInput(member_id=m.id, start_time=""))
    with pytest.raises(ValidationError):
        sessions.create(
            OWNER,
            SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", end_time="2024-05-01T09:00:00"),
        )


def test_delete_refunds_once(members, sessions, make_member):
    m = make_member(credits=5)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=2))
    sessions.delete(s.id, OWNER)
    assert balance(members, m.id) == 5

    with pytest.raises(NotFoundError):
        sessions.delete(s.id, OWNER)
    assert balance(members, m.id) == 5


def test_delete_other_owner_not_found(sessions, make_member):
    m = make_member(credits=5)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    with pytest.raises(NotFoundError):
        sessions.delete(s.id, OTHER_OWNER)


def test_update_credits_then_delete_refunds_latest(members, sessions, make_member):
    m = make_member(credits=10)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=2))
    assert balance(members, m.id) == 8

    updated = sessions.update(SessionUpdate(id=s.id, credits_used=5), OWNER)
    assert updated.credits_used == 5
    assert balance(members, m.id) == 5

    sessions.delete(s.id, OWNER)
    assert balance(members, m.id) == 10


def test_update_lowering_credits_refunds_difference(members, sessions, make_member):
    m = make_member(credits=4)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=3))
    sessions.update(SessionUpdate(id=s.id, credits_used=1), OWNER)
    assert balance(members, m.id) == 3


def test_update_has_no_floor_check(members, sessions, make_member):
    m = make_member(credits=2)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=2))
    sessions.update(SessionUpdate(id=s.id, credits_used=5), OWNER)
    assert balance(members, m.id) == -3


def test_update_other_fields_leave_balance(members, sessions, make_member):
    m = make_member(credits=3)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    updated = sessions.update(
        SessionUpdate(id=s.id, start_time="2024-05-01T11:00:00", end_time="2024-05-01T12:00:00", notes="moved"),
        OWNER,
    )
    assert updated.start_time == "2024-05-01T11:00:00"
    assert updated.end_time == "2024-05-01T12:00:00"
    assert updated.notes == "moved"
    assert balance(members, m.id) == 2


def test_update_empty_end_time_clears_it(sessions, make_member):
    m = make_member(credits=3)
    s = sessions.create(
        OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", end_time="2024-05-01T11:00:00")
    )
    updated = sessions.update(SessionUpdate(id=s.id, end_time=""), OWNER)
    assert updated.end_time is None
    assert updated.start_time == "2024-05-01T10:00:00"


@pytest.mark.parametrize("start_time", ["", "   "])
def test_update_rejects_blank_start_time(sessions, make_member, start_time):
    m = make_member(credits=3)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    with pytest.raises(ValidationError):
        sessions.update(SessionUpdate(id=s.id, start_time=start_time), OWNER)
    assert sessions.get_by_id(s.id, OWNER).start_time == "2024-05-01T10:00:00"
    assert [x.id for x in sessions.list(OWNER)] == [s.id]


def test_update_not_found(sessions):
    with pytest.raises(NotFoundError):
        sessions.update(SessionUpdate(id=42, notes="x"), OWNER)


def test_update_rejects_zero_credits(sessions, make_member):
    m = make_member(credits=3)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    with pytest.raises(ValidationError):
        sessions.update(SessionUpdate(id=s.id, credits_used=0), OWNER)


def test_verify_is_one_way(sessions, make_member):
    m = make_member(credits=3)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    assert sessions.verify(s.id, OWNER).status == "verified"

    with pytest.raises(ValidationError):
        sessions.update(SessionUpdate(id=s.id, status="unverified"), OWNER)
    assert sessions.get_by_id(s.id, OWNER).status == "verified"


def test_update_after_member_deleted_skips_balance(members, sessions, make_member):
    m = make_member(credits=3)
    s = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    members.delete(m.id)
    assert sessions.update(SessionUpdate(id=s.id, credits_used=2), OWNER).credits_used == 2
    sessions.delete(s.id, OWNER)


def test_list_enriches_and_sorts(members, sessions, make_member):
    alice = make_member(full_name="Alice", email="alice@example.com", credits=5)
    bob = make_member(full_name="Bob", credits=5)
    early = sessions.create(OWNER, SessionInput(member_id=alice.id, start_time="2024-05-01T10:00:00"))
    late = sessions.create(OWNER, SessionInput(member_id=bob.id, start_time="2024-05-03T09:00:00"))
    middle = sessions.create(OWNER, SessionInput(member_id=alice.id, start_time="2024-05-02T18:30:00"))

    listed = sessions.list(OWNER)
    assert [s.id for s in listed] == [late.id, middle.id, early.id]
    assert listed[-1].member_name == "Alice"
    assert listed[-1].member_email == "alice@example.com"


def test_list_filters(sessions, make_member):
    alice = make_member(credits=5)
    bob = make_member(credits=5)
    a1 = sessions.create(OWNER, SessionInput(member_id=alice.id, start_time="2024-05-01T10:00:00"))
    b1 = sessions.create(OWNER, SessionInput(member_id=bob.id, start_time="2024-05-03T09:00:00"))
    sessions.verify(b1.id, OWNER)

    assert [s.id for s in sessions.list_for_member(alice.id, OWNER)] == [a1.id]
    assert [s.id for s in sessions.list(OWNER, SessionFilters(status="verified"))] == [b1.id]
    assert [s.id for s in sessions.list(OWNER, SessionFilters(end_date="2024-05-01"))] == [a1.id]
    assert [s.id for s in sessions.list(OWNER, SessionFilters(start_date="2024-05-02"))] == [b1.id]
    assert sessions.list(OTHER_OWNER) == []


def test_list_unknown_member_fallback(members, sessions, make_member):
    m = make_member(credits=5)
    sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    members.delete(m.id)

    (s,) = sessions.list(OWNER)
    assert s.member_name == "Unknown Member"
    assert s.member_email == ""


def test_list_reflects_member_rename(members, sessions, make_member):
    m = make_member(full_name="Before", credits=5)
    sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00"))
    members.update(MemberUpdate(id=m.id, full_name="After"))
    assert sessions.list(OWNER)[0].member_name == "After"


def test_stats(sessions, make_member):
    m = make_member(credits=10)
    s1 = sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=2))
    sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-02T10:00:00", credits_used=3))
    sessions.verify(s1.id, OWNER)

    stats = sessions.get_stats(OWNER)
    assert (stats.total, stats.unverified, stats.verified, stats.total_credits_used) == (2, 1, 1, 5)
    assert sessions.get_stats(OTHER_OWNER).total == 0


def test_failed_write_rolls_back_session_and_balance(members, sessions, make_member, monkeypatch):
    m = make_member(credits=5)

    def boom(conn, member_id, delta):
        raise RuntimeError("disk full")

    monkeypatch.setattr(sessions_module, "adjust_credits", boom)
    with pytest.raises(RuntimeError):
        sessions.create(OWNER, SessionInput(member_id=m.id, start_time="2024-05-01T10:00:00", credits_used=2))

    assert balance(members, m.id) == 5
    assert sessions.list(OWNER) == []
