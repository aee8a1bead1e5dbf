from enum import Enum

from psychx.core.errors import InvalidStateError


class TrackerState(str, Enum):
    ACTIVE = "active"
    QUIZ_PENDING = "quiz_pending"


class TrackerEvent(str, Enum):
    TOGGLE_TASK = "toggle_task"
    SUBMIT_WEEK = "submit_week"
    QUIZ_ISSUED = "quiz_issued"
    SUBMIT_QUIZ = "submit_quiz"
    WEEK_ADVANCED = "week_advanced"
    ADVANCE_PHASE = "advance_phase"


# (state, event) -> next state. Anything missing is rejected.
TRANSITIONS: dict[tuple[TrackerState, TrackerEvent], TrackerState] = {
    (TrackerState.ACTIVE, TrackerEvent.TOGGLE_TASK): TrackerState.ACTIVE,
    (TrackerState.ACTIVE, TrackerEvent.SUBMIT_WEEK): TrackerState.ACTIVE,
    (TrackerState.ACTIVE, TrackerEvent.QUIZ_ISSUED): TrackerState.QUIZ_PENDING,
    (TrackerState.ACTIVE, TrackerEvent.WEEK_ADVANCED): TrackerState.ACTIVE,
    (TrackerState.ACTIVE, TrackerEvent.ADVANCE_PHASE): TrackerState.ACTIVE,
    (TrackerState.QUIZ_PENDING, TrackerEvent.SUBMIT_QUIZ): TrackerState.QUIZ_PENDING,
    (TrackerState.QUIZ_PENDING, TrackerEvent.WEEK_ADVANCED): TrackerState.ACTIVE,
}


class TrackerStateMachine:
    """Deterministic transition table for a progress tracker."""

    def next_state(self, current: TrackerState | str, event: TrackerEvent) -> TrackerState:
        state = TrackerState(current)
        target = TRANSITIONS.get((state, event))
        if target is None:
            raise InvalidStateError(
                f"Cannot {event.value.replace('_', ' ')} while the tracker is {state.value.replace('_', ' ')}.",
                details={"state": state.value, "event": event.value},
            )
        return target

    def ensure(self, current: TrackerState | str, event: TrackerEvent) -> None:
        self.next_state(current, event)
