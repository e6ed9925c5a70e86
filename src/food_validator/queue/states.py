"""Job lifecycle states and the transition table the queue enforces.

Beginner terms:
- Terminal state: a state a job never leaves (completed, failed).
- Transition table: the only moves a job record is allowed to make.
"""

from __future__ import annotations

from enum import Enum

from ..errors import InvalidTransition


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"


TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.FAILED})

# active -> waiting is a retry with no backoff delay; active -> delayed is a
# retry that must wait for its backoff to elapse.
TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.WAITING: frozenset({JobState.ACTIVE}),
    JobState.DELAYED: frozenset({JobState.WAITING}),
    JobState.ACTIVE: frozenset(
        {JobState.COMPLETED, JobState.FAILED, JobState.DELAYED, JobState.WAITING}
    ),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
}


def can_transition(current: JobState, target: JobState) -> bool:
    return target in TRANSITIONS[current]


def assert_transition(current: JobState, target: JobState) -> None:
    """Raise InvalidTransition unless current -> target is in the table."""
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)


def is_terminal(state: JobState) -> bool:
    return state in TERMINAL_STATES
