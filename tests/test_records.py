import pytest

from psychx.core.errors import EmailTakenError
from psychx.memory.records import AvailabilityStore, RoadmapStore, SessionLedger, TrackerStore, UserStore
from psychx.models.entities import UserRole


async def _student(db, user_id="s1"):
    return await UserStore(db).create(
        id=user_id,
        first_name="Student",
        email=f"{user_id}@Example.com",
        password_hash="x",
        role=UserRole.USER.value,
        tier="STANDARD",
    )


@pytest.mark.asyncio
async def test_user_lookup_and_partial_update(db_session):
    users = UserStore(db_session)
    student = await _student(db_session)

    assert (await users.get_by_email("S1@example.COM")).id == "s1"
    assert [u.id for u in await users.list_all()] == ["s1"]

    updated = await users.update(student, tier="PREMIUM")
    assert updated.tier == "PREMIUM"
    assert updated.first_name == "Student"
    assert await users.get_by_id("missing") is None


@pytest.mark.asyncio
async def test_availability_upsert_replaces_and_delete_removes(db_session):
    store = AvailabilityStore(db_session)
    await store.upsert("c9", days=["Monday"], start_time="09:00", end_time="12:00")
    await store.upsert("c9", days=["Friday"], start_time="13:00", end_time="15:00")

    rows = await store.list_all()
    assert len(rows) == 1
    assert rows[0].days == ["Friday"]
    assert rows[0].start_time == "13:00"

    assert await store.delete("c9") is True
    assert await store.delete("c9") is False
    assert await store.get_by_consultant_id("c9") is None


@pytest.mark.asyncio
async def test_roadmap_and_tracker_delete_by_row(db_session):
    await _student(db_session)
    roadmaps = RoadmapStore(db_session)
    trackers = TrackerStore(db_session)

    roadmap = await roadmaps.create(user_id="s1", career_title="Chef", steps=[{"phase": "Foundation"}])
    tracker = await trackers.create(
        user_id="s1", roadmap_id=roadmap.id, career_title="Chef", current_week={"week_number": 1}
    )
    assert (await trackers.get_for_roadmap("s1", roadmap.id)).id == tracker.id

    await trackers.delete(tracker)
    await roadmaps.delete(roadmap)

    assert await trackers.get_first_for_user("s1") is None
    assert await roadmaps.count_by_user("s1") == 0


@pytest.mark.asyncio
async def test_session_update_can_clear_meeting_link(db_session):
    ledger = SessionLedger(db_session)
    row = await ledger.create(
        student_id="s1",
        student_name="Student",
        consultant_id="c1",
        consultant_name="Consultant",
        date="2030-01-07",
        time="10:00",
        meeting_link="https://meet.example.com/one",
    )

    row = await ledger.update(row, meeting_link=None)

    assert row.meeting_link is None
    assert row.status == "Scheduled"
    assert (await ledger.get_by_id(row.id)).meeting_link is None


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(db_session):
    await _student(db_session)

    with pytest.raises(EmailTakenError):
        await UserStore(db_session).create(
            id="s2", first_name="Other", email="s1@Example.com", password_hash="x", role=UserRole.USER.value
        )

    assert [u.id for u in await UserStore(db_session).list_all()] == ["s1"]
