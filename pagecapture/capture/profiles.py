"""Named capture profiles."""

from __future__ import annotations

from typing import Any

from .errors import InvalidInput
from .models import CaptureOptions

# Height of the tallest landing-page template; used when sectioning without a
# measured content height.
TEMPLATE_HEIGHT = 8295

CAPTURE_PROFILES: dict[str, CaptureOptions] = {
    "standard": CaptureOptions(),
    "low_memory": CaptureOptions(
        timeout=300.0,
        initial_height=1200,
        content_height=TEMPLATE_HEIGHT,
        section_height=2000,
        low_memory=True,
    ),
    "fast": CaptureOptions(
        timeout=30.0,
        wait_time=3.0,
        settle_time=0.5,
        navigation_attempts=2,
        navigation_backoff=1.0,
    ),
}


def resolve_options(profile: str | None = None, **overrides: Any) -> CaptureOptions:
    """Resolve a profile name plus explicit overrides into ``CaptureOptions``."""
    name = profile or "standard"
    try:
        base = CAPTURE_PROFILES[name]
    except KeyError:
        raise InvalidInput(f"unknown capture profile: {name!r}") from None
    return base.with_overrides(**overrides)
