"""Data models for the capture submodule."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any
from urllib.parse import quote

from .errors import CaptureError, ErrorKind, InvalidInput

_ITEM_ID_RE = re.compile(r"[A-Za-z0-9._~-]+")

_POSITIVE_OPTIONS = ("timeout", "width", "initial_height")
_POSITIVE_OR_UNSET_OPTIONS = ("content_height", "section_height")
_NON_NEGATIVE_OPTIONS = (
    "wait_time",
    "scroll_passes",
    "scroll_pause",
    "settle_time",
    "section_pause",
    "height_padding",
    "height_tolerance",
    "navigation_attempts",
    "navigation_backoff",
)


@dataclass(frozen=True)
class CaptureOptions:
    """Tunable knobs for one capture attempt. Durations are in seconds.

    Out-of-range values raise ``InvalidInput`` at construction, so a bad
    request fails before any browser is launched.
    """

    timeout: float = 60.0
    headless: bool = True
    wait_time: float = 15.0
    width: int = 1920
    initial_height: int = 1920
    content_height: int | None = None
    section_height: int | None = None
    scroll_passes: int = 1
    scroll_pause: float = 0.1
    settle_time: float = 2.0
    section_pause: float = 0.5
    height_padding: int = 100
    height_tolerance: float = 0.1
    navigation_attempts: int = 3
    navigation_backoff: float = 2.0
    low_memory: bool = False

    def __post_init__(self) -> None:
        for name in _POSITIVE_OPTIONS:
            if getattr(self, name) <= 0:
                raise InvalidInput(f"{name} must be positive")
        for name in _POSITIVE_OR_UNSET_OPTIONS:
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise InvalidInput(f"{name} must be positive")
        for name in _NON_NEGATIVE_OPTIONS:
            if getattr(self, name) < 0:
                raise InvalidInput(f"{name} must not be negative")

    @property
    def sectioned(self) -> bool:
        return self.section_height is not None

    def with_overrides(self, **overrides: Any) -> CaptureOptions:
        """Return a copy with every non-``None`` override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise InvalidInput(f"unknown capture options: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class CaptureRequest:
    """One attempt's immutable input."""

    item_id: str
    output_path: Path
    options: CaptureOptions
    url: str


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of a capture attempt (or of a whole retry sequence)."""

    item_id: str
    success: bool
    output_path: Path | None = None
    elapsed: float = 0.0
    error: CaptureError | None = None
    attempts: int = 1
    height: int | None = None

    @classmethod
    def failure(
        cls,
        item_id: str,
        kind: ErrorKind,
        message: str,
        elapsed: float = 0.0,
    ) -> CaptureResult:
        return cls(
            item_id=item_id,
            success=False,
            elapsed=elapsed,
            error=CaptureError(kind, message),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item_id,
            "success": self.success,
            "output_path": str(self.output_path) if self.output_path else None,
            "elapsed": round(self.elapsed, 3),
            "attempts": self.attempts,
            "height": self.height,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class Section:
    """A horizontal band of the page: ``top`` offset and drawn ``height``."""

    index: int
    top: int
    height: int


def validate_item_id(item_id: Any) -> str:
    """Check that *item_id* is a non-empty, URL- and filename-safe token."""
    if not isinstance(item_id, str) or not item_id:
        raise InvalidInput("id must be a non-empty string")
    if item_id in (".", "..") or not _ITEM_ID_RE.fullmatch(item_id):
        raise InvalidInput(f"id contains unsupported characters: {item_id!r}")
    return item_id


def target_url(template: str, item_id: str) -> str:
    """Build the page URL for *item_id*, quoting it for use in a path or query."""
    return template.format(id=quote(item_id, safe=""))
