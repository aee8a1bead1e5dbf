from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from psychx.core.errors import InvalidInputError, SlotConflictError
from psychx.core.resilience import KeyedLocks
from psychx.memory.records import AvailabilityStore, SessionLedger, UserStore
from psychx.models.entities import SessionStatus, UserRole
from psychx.orchestrator.booking import (
    NO_AVAILABILITY_MESSAGE,
    REASON_BOOKED,
    REASON_ENTITLEMENT_DENIED,
    REASON_INVALID_INPUT,
    REASON_NO_AVAILABILITY,
    REASON_NOT_LOGGED_IN,
    FirstAvailablePolicy,
    LeastRecentlyAssignedPolicy,
    SchedulingEngine,
    is_session_joinable,
    is_within_window,
    normalize_time,
    weekday_name,
    parse_booking_date,
)

MONDAY = "2030-01-07"
TUESDAY = "2030-01-08"
_T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


async def _user(db, user_id, role=UserRole.USER, tier="STANDARD", offset=0):
    return await UserStore(db).create(
        id=user_id,
        first_name=user_id.upper(),
        last_name="Test",
        email=f"{user_id}@example.com",
        password_hash="x",
        role=role.value,
        tier=tier if role == UserRole.USER else None,
        created_at=_T0 + timedelta(seconds=offset),
    )


async def _consultant(db, consultant_id, days, start="09:00", end="17:00", offset=0):
    await _user(db, consultant_id, role=UserRole.CONSULTANT, offset=offset)
    await AvailabilityStore(db).upsert(consultant_id, days=days, start_time=start, end_time=end)


def _engine(db, policy=None):
    return SchedulingEngine.for_session(db, policy=policy or FirstAvailablePolicy(), slot_locks=KeyedLocks())


def test_weekday_from_calendar_date():
    assert weekday_name(parse_booking_date(MONDAY)) == "Monday"
    assert weekday_name(parse_booking_date(TUESDAY)) == "Tuesday"


def test_time_normalisation():
    assert normalize_time("9:30") == "09:30"
    assert normalize_time("17:00") == "17:00"
    for bad in ("9:30 PM", "24:00", "10:60", "10:00:00", "", None):
        with pytest.raises(InvalidInputError):
            normalize_time(bad)


def test_window_is_inclusive():
    assert is_within_window("09:00", "09:00", "17:00")
    assert is_within_window("17:00", "09:00", "17:00")
    assert not is_within_window("17:01", "09:00", "17:00")
    assert not is_within_window("08:59", "09:00", "17:00")


def test_session_join_window():
    start = datetime(2030, 1, 7, 10, 0)
    assert is_session_joinable(MONDAY, "10:00", start - timedelta(minutes=10), lead_minutes=10, grace_minutes=30)
    assert is_session_joinable(MONDAY, "10:00", start + timedelta(minutes=30), lead_minutes=10, grace_minutes=30)
    assert not is_session_joinable(MONDAY, "10:00", start - timedelta(minutes=11), lead_minutes=10, grace_minutes=30)
    assert not is_session_joinable(MONDAY, "10:00", start + timedelta(minutes=31), lead_minutes=10, grace_minutes=30)


@pytest.mark.asyncio
async def test_monday_booking_inside_window_is_assigned(db_session):
    await _consultant(db_session, "c1", ["Monday"])
    student = await _user(db_session, "s1", offset=10)

    result = await _engine(db_session).book_session(student, MONDAY, "10:00")

    assert result.success is True
    assert result.reason == REASON_BOOKED
    assert result.consultant_name == "C1 Test"
    sessions = await SessionLedger(db_session).list_all()
    assert len(sessions) == 1
    assert (sessions[0].consultant_id, sessions[0].date, sessions[0].time) == ("c1", MONDAY, "10:00")
    assert sessions[0].status == SessionStatus.SCHEDULED.value
    assert sessions[0].student_name == "S1 Test"


@pytest.mark.asyncio
async def test_booking_outside_window_is_rejected_without_side_effect(db_session):
    await _consultant(db_session, "c1", ["Monday"])
    student = await _user(db_session, "s1", offset=10)

    result = await _engine(db_session).book_session(student, MONDAY, "18:00")

    assert result.success is False
    assert result.reason == REASON_NO_AVAILABILITY
    assert result.message == NO_AVAILABILITY_MESSAGE
    assert await SessionLedger(db_session).list_all() == []


@pytest.mark.asyncio
async def test_taken_slot_is_rejected_even_inside_window(db_session):
    await _consultant(db_session, "c1", ["Monday"])
    first = await _user(db_session, "s1", offset=10)
    second = await _user(db_session, "s2", offset=11)
    engine = _engine(db_session)

    assert (await engine.book_session(first, MONDAY, "10:00")).success is True
    result = await engine.book_session(second, MONDAY, "10:00")

    assert result.success is False
    assert result.reason == REASON_NO_AVAILABILITY
    assert len(await SessionLedger(db_session).list_all()) == 1


@pytest.mark.asyncio
async def test_cancelled_session_frees_the_slot(db_session):
    await _consultant(db_session, "c1", ["Monday"])
    student = await _user(db_session, "s1", offset=10)
    ledger = SessionLedger(db_session)
    await ledger.create(
        student_id="s1",
        student_name="S1 Test",
        consultant_id="c1",
        consultant_name="C1 Test",
        date=MONDAY,
        time="10:00",
        status=SessionStatus.CANCELLED.value,
    )

    result = await _engine(db_session).book_session(student, MONDAY, "10:00")

    assert result.success is True
    assert result.consultant_name == "C1 Test"


@pytest.mark.asyncio
async def test_wrong_weekday_and_missing_availability_are_skipped(db_session):
    await _consultant(db_session, "c1", ["Tuesday"], offset=0)
    await _user(db_session, "c2", role=UserRole.CONSULTANT, offset=1)  # no availability record
    await _consultant(db_session, "c3", ["Monday"], offset=2)
    student = await _user(db_session, "s1", offset=10)

    result = await _engine(db_session).book_session(student, MONDAY, "11:00")

    assert result.success is True
    assert result.consultant_name == "C3 Test"


@pytest.mark.asyncio
async def test_first_available_pick_is_deterministic(db_session):
    await _consultant(db_session, "c1", ["Monday"], offset=0)
    await _consultant(db_session, "c2", ["Monday"], offset=1)
    engine = _engine(db_session)

    eligible_once = await engine.eligible_consultants(MONDAY, "10:00")
    eligible_twice = await engine.eligible_consultants(MONDAY, "10:00")
    assert [c.consultant_id for c in eligible_once] == ["c1", "c2"]
    assert eligible_once == eligible_twice

    s1 = await _user(db_session, "s1", offset=10)
    s2 = await _user(db_session, "s2", offset=11)
    assert (await engine.book_session(s1, MONDAY, "10:00")).consultant_name == "C1 Test"
    assert (await engine.book_session(s2, MONDAY, "10:00")).consultant_name == "C2 Test"


@pytest.mark.asyncio
async def test_least_recently_assigned_prefers_idle_consultant(db_session):
    await _consultant(db_session, "c1", ["Monday"], offset=0)
    await _consultant(db_session, "c2", ["Monday"], offset=1)
    student = await _user(db_session, "s1", offset=10)
    await SessionLedger(db_session).create(
        student_id="s1",
        student_name="S1 Test",
        consultant_id="c1",
        consultant_name="C1 Test",
        date=MONDAY,
        time="09:00",
        status=SessionStatus.SCHEDULED.value,
    )

    result = await _engine(db_session, LeastRecentlyAssignedPolicy()).book_session(student, MONDAY, "10:00")

    assert result.success is True
    assert result.consultant_name == "C2 Test"


@pytest.mark.asyncio
async def test_rejections_before_matching(db_session):
    await _consultant(db_session, "c1", ["Monday"])
    free_student = await _user(db_session, "s1", tier="FREE", offset=10)
    student = await _user(db_session, "s2", offset=11)
    engine = _engine(db_session)

    not_logged_in = await engine.book_session(None, MONDAY, "10:00")
    missing_time = await engine.book_session(student, MONDAY, "")
    bad_time = await engine.book_session(student, MONDAY, "10am")
    bad_date = await engine.book_session(student, "07/01/2030", "10:00")
    free_tier = await engine.book_session(free_student, MONDAY, "10:00")

    assert not_logged_in.reason == REASON_NOT_LOGGED_IN
    assert missing_time.reason == REASON_INVALID_INPUT
    assert bad_time.reason == REASON_INVALID_INPUT
    assert bad_date.reason == REASON_INVALID_INPUT
    assert free_tier.reason == REASON_ENTITLEMENT_DENIED
    assert not any(r.success for r in (not_logged_in, missing_time, bad_time, bad_date, free_tier))
    assert await SessionLedger(db_session).list_all() == []


@pytest.mark.asyncio
async def test_unpadded_time_is_booked_in_canonical_form(db_session):
    await _consultant(db_session, "c1", ["Monday"])
    student = await _user(db_session, "s1", offset=10)

    result = await _engine(db_session).book_session(student, MONDAY, "9:30")

    assert result.success is True
    sessions = await SessionLedger(db_session).list_all()
    assert sessions[0].time == "09:30"


@pytest.mark.asyncio
async def test_storage_rejects_second_live_session_for_slot(db_session):
    await _consultant(db_session, "c1", ["Monday"])
    ledger = SessionLedger(db_session)
    fields = dict(
        student_id="s1",
        student_name="S1 Test",
        consultant_id="c1",
        consultant_name="C1 Test",
        date=MONDAY,
        time="10:00",
        status=SessionStatus.SCHEDULED.value,
    )
    await ledger.create(**fields)

    with pytest.raises(SlotConflictError):
        await ledger.create(**{**fields, "student_id": "s2"})

    assert len(await ledger.list_all()) == 1


@pytest.mark.asyncio
async def test_stale_conflict_check_falls_through_to_next_consultant(db_session, monkeypatch):
    await _consultant(db_session, "c1", ["Monday"], offset=0)
    await _consultant(db_session, "c2", ["Monday"], offset=1)
    student = await _user(db_session, "s1", offset=10)
    await SessionLedger(db_session).create(
        student_id="other",
        student_name="Other Student",
        consultant_id="c1",
        consultant_name="C1 Test",
        date=MONDAY,
        time="10:00",
        status=SessionStatus.SCHEDULED.value,
    )

    # Simulate a writer that slipped in after the read: the check sees no conflict.
    async def _never_conflicts(self, *args, **kwargs):
        return False

    monkeypatch.setattr(SessionLedger, "has_conflict", _never_conflicts)

    result = await _engine(db_session).book_session(student, MONDAY, "10:00")

    assert result.success is True
    assert result.consultant_name == "C2 Test"
    live = [s for s in await SessionLedger(db_session).list_all() if s.status != SessionStatus.CANCELLED.value]
    slots = [(s.consultant_id, s.date, s.time) for s in live]
    assert len(slots) == len(set(slots)) == 2


@pytest.mark.asyncio
async def test_keyed_locks_serialize_same_key_and_clean_up():
    locks = KeyedLocks()
    order: list[str] = []

    async def _worker(name: str):
        async with locks.hold("2030-01-07|10:00"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(_worker("a"), _worker("b"))

    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert len(locks) == 0
