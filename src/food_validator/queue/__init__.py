"""Job queue: lifecycle states, records, and the queue itself."""

from .models import MAX_PRIORITY, BackoffPolicy, FoodValidationTask, JobOptions, JobRecord
from .states import TERMINAL_STATES, TRANSITIONS, JobState, assert_transition, can_transition
from .task_queue import TaskQueue, attach_logging_listeners

__all__ = [
    "BackoffPolicy",
    "FoodValidationTask",
    "JobOptions",
    "JobRecord",
    "JobState",
    "MAX_PRIORITY",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "TaskQueue",
    "assert_transition",
    "attach_logging_listeners",
    "can_transition",
]
