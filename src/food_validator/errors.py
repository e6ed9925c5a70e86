"""Error taxonomy shared by the gateway, queue, worker, and adapter."""

from __future__ import annotations

NO_IMAGE_MESSAGE = "Please provide either an image file, image URL, or base64 encoded image"


class FoodValidatorError(Exception):
    """Base class for all service errors."""


class BrokerUnavailable(FoodValidatorError):
    """The broker store could not be reached."""


class NoImageProvided(FoodValidatorError):
    def __init__(self, message: str = NO_IMAGE_MESSAGE) -> None:
        super().__init__(message)


class AdapterCallFailed(FoodValidatorError):
    """Transient failure calling the external classification service."""


class MalformedModelOutput(FoodValidatorError):
    """The model replied, but the reply is not a valid classification record."""

    def __init__(self, message: str, *, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text

    def __str__(self) -> str:
        # Final failure reasons keep the raw reply for diagnosis.
        preview = self.raw_text[:500]
        return f"{self.args[0]} | raw_response={preview!r}"


class JobNotFound(FoodValidatorError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransition(FoodValidatorError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal job state transition: {current} -> {target}")
        self.current = current
        self.target = target
