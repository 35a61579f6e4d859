"""Error types and the shared error envelope.

Core code raises the exceptions below; the MQTT front end turns them into
`ErrorResponse` messages so every reply uses the same shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class QueueError(Exception):
    """Base class for queue errors."""

    code = "queue_error"


class NotFoundError(QueueError):
    """A referenced token or branch does not exist."""

    code = "not_found"


class InvalidTransitionError(QueueError):
    """Requested status is unknown or not reachable from the current one."""

    code = "invalid_transition"


class StoreFailure(QueueError):
    """The underlying document store call failed."""

    code = "store_failure"


class DocumentMissing(StoreFailure):
    """`update()` was called on a document that does not exist."""


@dataclass(frozen=True)
class ErrorResponse:
    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: Exception) -> "ErrorResponse":
        if isinstance(exc, QueueError):
            return cls(exc.code, str(exc))
        if isinstance(exc, ValueError):
            return cls("bad_request", str(exc))
        return cls("internal_error", str(exc) or exc.__class__.__name__)

    def to_message(self, *, corr_id: str | None = None) -> dict[str, Any]:
        msg: dict[str, Any] = {"type": "error", "code": self.code, "message": self.message}
        if corr_id is not None:
            msg["corr_id"] = corr_id
        return msg
