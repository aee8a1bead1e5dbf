import json
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import date as date_type
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from psychx.core.entitlements import can_use_feature
from psychx.core.errors import InvalidInputError, SlotConflictError
from psychx.core.logging import DOMAIN_SCHEDULING, get_domain_logger
from psychx.core.resilience import KeyedLocks
from psychx.core.settings import settings
from psychx.memory.records import AvailabilityStore, SessionLedger, UserStore
from psychx.models.entities import SessionStatus, User, UserRole
from psychx.schemas.booking import WEEKDAYS

logger = get_domain_logger(__name__, DOMAIN_SCHEDULING)


REASON_BOOKED = "booked"
REASON_NOT_LOGGED_IN = "not_logged_in"
REASON_INVALID_INPUT = "invalid_input"
REASON_ENTITLEMENT_DENIED = "entitlement_denied"
REASON_NO_AVAILABILITY = "no_availability"

NO_AVAILABILITY_MESSAGE = "At this given time, no counselor is available. Please select another time."
CONFIRMED_MESSAGE = "Session confirmed!"

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_time(value: str | None) -> str:
    """Return a zero-padded 24-hour ``HH:MM`` string so lexicographic window checks hold."""
    match = _TIME_PATTERN.match((value or "").strip())
    if not match:
        raise InvalidInputError("Time must be a 24-hour HH:MM value.", details={"time": value})
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidInputError("Time must be a 24-hour HH:MM value.", details={"time": value})
    return f"{hour:02d}:{minute:02d}"


def parse_booking_date(value: str | None) -> date_type:
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except ValueError as exc:
        raise InvalidInputError("Date must be a YYYY-MM-DD calendar date.", details={"date": value}) from exc


def weekday_name(day: date_type) -> str:
    return WEEKDAYS[day.weekday()]


def is_within_window(time: str, start_time: str, end_time: str) -> bool:
    # Inclusive on both ends; valid because every operand is zero-padded HH:MM.
    return start_time <= time <= end_time


def is_session_joinable(
    date: str,
    time: str,
    now: datetime | None = None,
    *,
    lead_minutes: int | None = None,
    grace_minutes: int | None = None,
) -> bool:
    lead = settings.session_join_lead_minutes if lead_minutes is None else lead_minutes
    grace = settings.session_join_grace_minutes if grace_minutes is None else grace_minutes
    try:
        start = datetime.combine(parse_booking_date(date), datetime.strptime(normalize_time(time), "%H:%M").time())
    except InvalidInputError:
        return False
    current = (now or datetime.now()).replace(tzinfo=None)
    return start - timedelta(minutes=lead) <= current <= start + timedelta(minutes=grace)


@dataclass(frozen=True)
class Candidate:
    consultant_id: str
    name: str


@dataclass
class BookingResult:
    success: bool
    message: str
    reason: str
    consultant_name: str | None = None
    session_id: str | None = None


class SelectionPolicy(ABC):
    name: str

    @abstractmethod
    async def order(self, candidates: list[Candidate], ledger: SessionLedger) -> list[Candidate]:
        raise NotImplementedError


class FirstAvailablePolicy(SelectionPolicy):
    """Keeps consultant creation order: the first eligible consultant wins."""

    name = "first_available"

    async def order(self, candidates: list[Candidate], ledger: SessionLedger) -> list[Candidate]:
        return list(candidates)


class LeastRecentlyAssignedPolicy(SelectionPolicy):
    """Never-booked consultants first, then oldest last booking; creation order breaks ties."""

    name = "least_recently_assigned"

    async def order(self, candidates: list[Candidate], ledger: SessionLedger) -> list[Candidate]:
        latest = await ledger.last_assignment_times([c.consultant_id for c in candidates])

        def rank(indexed: tuple[int, Candidate]):
            index, candidate = indexed
            last = latest.get(candidate.consultant_id)
            if last is None:
                return (0, datetime.min, index)
            return (1, last.replace(tzinfo=None), index)

        return [candidate for _, candidate in sorted(enumerate(candidates), key=rank)]


_POLICIES = {
    FirstAvailablePolicy.name: FirstAvailablePolicy,
    LeastRecentlyAssignedPolicy.name: LeastRecentlyAssignedPolicy,
}


def get_selection_policy(name: str | None = None) -> SelectionPolicy:
    key = (name or settings.booking_selection_policy or FirstAvailablePolicy.name).lower()
    return _POLICIES.get(key, FirstAvailablePolicy)()


# Shared by every engine in the process so concurrent requests for one slot serialize.
_slot_locks = KeyedLocks()


class SchedulingEngine:
    """Matches a requested date/time to one available consultant and records the session."""

    def __init__(
        self,
        users: UserStore,
        availability: AvailabilityStore,
        ledger: SessionLedger,
        *,
        policy: SelectionPolicy | None = None,
        slot_locks: KeyedLocks | None = None,
    ):
        self.users = users
        self.availability = availability
        self.ledger = ledger
        self.policy = policy or get_selection_policy()
        self.slot_locks = slot_locks if slot_locks is not None else _slot_locks

    @classmethod
    def for_session(cls, db: AsyncSession, **kwargs) -> "SchedulingEngine":
        return cls(UserStore(db), AvailabilityStore(db), SessionLedger(db), **kwargs)

    async def eligible_consultants(self, date: str, time: str) -> list[Candidate]:
        weekday = weekday_name(parse_booking_date(date))
        time = normalize_time(time)
        windows = {row.consultant_id: row for row in await self.availability.list_all()}

        eligible: list[Candidate] = []
        for consultant in await self.users.list_by_role(UserRole.CONSULTANT):
            window = windows.get(consultant.id)
            if window is None:
                continue
            if weekday not in (window.days or []):
                continue
            if not is_within_window(time, window.start_time, window.end_time):
                continue
            if await self.ledger.has_conflict(consultant.id, date, time):
                continue
            eligible.append(Candidate(consultant_id=consultant.id, name=consultant.display_name))
        return eligible

    async def book_session(self, requester: User | None, date: str | None, time: str | None) -> BookingResult:
        if requester is None:
            return BookingResult(False, "Not logged in", REASON_NOT_LOGGED_IN)
        if not (date or "").strip() or not (time or "").strip():
            return BookingResult(False, "Please select both a date and a time.", REASON_INVALID_INPUT)

        decision = can_use_feature(requester, "consultations")
        if not decision.allowed:
            return BookingResult(False, decision.reason, REASON_ENTITLEMENT_DENIED)

        try:
            day = parse_booking_date(date)
            slot_time = normalize_time(time)
        except InvalidInputError as exc:
            return BookingResult(False, exc.message, REASON_INVALID_INPUT)
        slot_date = day.isoformat()

        # Read these before any write: a rolled-back insert expires loaded rows.
        student_id = requester.id
        student_name = requester.display_name

        async with self.slot_locks.hold(f"{slot_date}|{slot_time}"):
            eligible = await self.eligible_consultants(slot_date, slot_time)
            ordered = await self.policy.order(eligible, self.ledger) if eligible else []
            for candidate in ordered:
                try:
                    row = await self.ledger.create(
                        student_id=student_id,
                        student_name=student_name,
                        consultant_id=candidate.consultant_id,
                        consultant_name=candidate.name,
                        date=slot_date,
                        time=slot_time,
                        status=SessionStatus.SCHEDULED.value,
                    )
                except SlotConflictError:
                    logger.info(
                        "Slot taken concurrently, trying next consultant | consultant_id=%s | slot=%s %s",
                        candidate.consultant_id,
                        slot_date,
                        slot_time,
                    )
                    continue
                self._log_decision(student_id, slot_date, slot_time, eligible, candidate)
                return BookingResult(
                    True, CONFIRMED_MESSAGE, REASON_BOOKED, consultant_name=candidate.name, session_id=row.id
                )

        self._log_decision(student_id, slot_date, slot_time, eligible, None)
        return BookingResult(False, NO_AVAILABILITY_MESSAGE, REASON_NO_AVAILABILITY)

    def _log_decision(
        self, student_id: str, date: str, time: str, eligible: list[Candidate], chosen: Candidate | None
    ) -> None:
        logger.info(
            "Booking decision | %s",
            json.dumps(
                {
                    "student_id": student_id,
                    "date": date,
                    "time": time,
                    "policy": self.policy.name,
                    "eligible": [asdict(c) for c in eligible],
                    "assigned": chosen.consultant_id if chosen else None,
                },
                default=str,
            ),
        )
