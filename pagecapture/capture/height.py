"""Content-height detection.

Rendered pages rarely report one trustworthy height: ``scrollHeight`` counts
trailing whitespace and absolutely positioned leftovers, while element
bounding boxes can miss content that overflows its container. Each probe
below measures the page one way and carries a confidence; the winner is the
most confident probe that agrees with the raw document height, and the raw
document height is the fallback. A fixed padding is always added so the
bottom edge is never clipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import ErrorKind
from .session import RenderSession

logger = logging.getLogger(__name__)

DOCUMENT_HEIGHT_JS = """() => Math.max(
  document.body ? document.body.scrollHeight : 0,
  document.body ? document.body.offsetHeight : 0,
  document.documentElement.clientHeight,
  document.documentElement.scrollHeight,
  document.documentElement.offsetHeight
)"""

LOWEST_ELEMENT_JS = """() => {
  let bottom = 0;
  for (const el of document.body.querySelectorAll('*')) {
    const style = getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') continue;
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) continue;
    if (!el.children.length && !(el.textContent || '').trim()
        && !['IMG', 'SVG', 'VIDEO', 'CANVAS', 'IFRAME'].includes(el.tagName.toUpperCase())) continue;
    bottom = Math.max(bottom, rect.bottom + window.scrollY);
  }
  return Math.ceil(bottom);
}"""

STRUCTURAL_JS = """() => {
  const selectors = ['main', '#content', '.content', '[role="main"]', 'article', 'footer', '[role="contentinfo"]'];
  let bottom = 0;
  for (const el of document.querySelectorAll(selectors.join(','))) {
    const rect = el.getBoundingClientRect();
    if (rect.height > 0) bottom = Math.max(bottom, rect.bottom + window.scrollY);
  }
  return Math.ceil(bottom);
}"""


@dataclass(frozen=True)
class HeightProbe:
    method: str
    script: str
    confidence: float


@dataclass(frozen=True)
class HeightCandidate:
    method: str
    height: int
    confidence: float


@dataclass(frozen=True)
class HeightEstimate:
    height: int
    method: str


HEIGHT_PROBES: tuple[HeightProbe, ...] = (
    HeightProbe("lowest_element", LOWEST_ELEMENT_JS, confidence=0.9),
    HeightProbe("structural", STRUCTURAL_JS, confidence=0.7),
)


def _agrees(height: int, baseline: int, tolerance: float) -> bool:
    return abs(height - baseline) <= baseline * tolerance


def choose_height(
    candidates: list[HeightCandidate],
    baseline: int | None,
    *,
    tolerance: float,
    padding: int,
    fallback: int,
) -> HeightEstimate:
    """Pick a content height from ranked *candidates* checked against *baseline*."""
    if not baseline or baseline <= 0:
        return HeightEstimate(height=fallback + padding, method="fallback")

    for candidate in sorted(candidates, key=lambda c: c.confidence, reverse=True):
        if candidate.height > 0 and _agrees(candidate.height, baseline, tolerance):
            return HeightEstimate(height=candidate.height + padding, method=candidate.method)

    return HeightEstimate(height=baseline + padding, method="document")


async def _measure(session: RenderSession, script: str) -> int:
    value = await session.evaluate(script)
    return int(value or 0)


async def detect_content_height(
    session: RenderSession,
    *,
    tolerance: float,
    padding: int,
    fallback: int,
    probes: tuple[HeightProbe, ...] = HEIGHT_PROBES,
) -> HeightEstimate:
    """Measure the rendered document and return the best height estimate.

    Never raises for measurement problems: a failed baseline is logged as
    ``HeightDetectionFailed`` and *fallback* is used instead.
    """
    try:
        baseline: int | None = await _measure(session, DOCUMENT_HEIGHT_JS)
    except Exception as exc:
        logger.warning(
            "document height unavailable, using fallback",
            extra={"kind": ErrorKind.HEIGHT_DETECTION_FAILED.value, "fallback": fallback, "error": str(exc)},
        )
        baseline = None

    candidates: list[HeightCandidate] = []
    if baseline:
        for probe in probes:
            try:
                height = await _measure(session, probe.script)
            except Exception:
                logger.debug("height probe failed", extra={"method": probe.method}, exc_info=True)
                continue
            candidates.append(HeightCandidate(probe.method, height, probe.confidence))

    estimate = choose_height(
        candidates, baseline, tolerance=tolerance, padding=padding, fallback=fallback
    )
    logger.debug(
        "content height detected",
        extra={
            "height": estimate.height,
            "method": estimate.method,
            "baseline": baseline,
            "candidates": {c.method: c.height for c in candidates},
        },
    )
    return estimate
