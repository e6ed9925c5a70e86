"""Background worker that drains the food validation queue."""

from .loop import JobProcessor, Worker

__all__ = ["JobProcessor", "Worker"]
