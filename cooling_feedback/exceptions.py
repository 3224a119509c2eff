"""Exception hierarchy for the feedback service.

Each error carries a stable ``code`` for API consumers and the HTTP status
it maps to. Backend (LLM) errors are recovered locally and never reach the
HTTP layer.
"""

from enum import Enum
from typing import Any


class FeedbackError(Exception):
    """Base exception for the feedback service."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.context}


class InvalidRequestError(FeedbackError):
    """A required field is missing or empty."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(FeedbackError):
    """A referenced record does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class DeviceNotFoundError(NotFoundError):
    code = "DEVICE_NOT_FOUND"


class PortNotFoundError(NotFoundError):
    code = "PORT_NOT_FOUND"


class UnknownStateError(FeedbackError):
    """A relative change was requested against an unknown baseline."""

    code = "UNKNOWN_STATE"
    status_code = 400


class LLMFailure(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"
    ERROR = "ERROR"


class LLMError(FeedbackError):
    """The generative backend could not produce a usable answer."""

    status_code = 502

    def __init__(self, reason: LLMFailure, message: str = "", **context: Any):
        super().__init__(message or reason.value, **context)
        self.reason = reason

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"BACKEND_{self.reason.value}"
