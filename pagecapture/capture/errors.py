"""Error taxonomy shared by the capture client, retry policy and batch layer."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    NAVIGATION_FAILED = "NavigationFailed"
    RENDER_TIMEOUT = "RenderTimeout"
    HEIGHT_DETECTION_FAILED = "HeightDetectionFailed"
    CAPTURE_WRITE_FAILED = "CaptureWriteFailed"
    RETRIES_EXHAUSTED = "RetriesExhausted"
    UNEXPECTED = "UnexpectedError"


class CaptureError(Exception):
    """A classified failure of one capture step."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: CaptureError | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"CaptureError({self.kind.value}, {self.message!r})"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.cause is not None:
            data["cause"] = self.cause.to_dict()
        return data


class InvalidInput(CaptureError):
    """Bad request shape. Never retried; surfaced straight to the caller."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.INVALID_INPUT, message)


class BatchStateError(RuntimeError):
    """A mutation would violate a batch record invariant."""
