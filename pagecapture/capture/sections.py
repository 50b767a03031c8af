"""Section planning and stitching for memory-constrained captures."""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from typing import Sequence

from PIL import Image

from .models import Section

logger = logging.getLogger(__name__)


def plan_sections(total_height: int, section_height: int) -> list[Section]:
    """Split *total_height* into bands of *section_height*; the last band is the remainder."""
    if total_height <= 0:
        raise ValueError("total_height must be positive")
    if section_height <= 0:
        raise ValueError("section_height must be positive")

    count = math.ceil(total_height / section_height)
    sections = [
        Section(index=i, top=i * section_height, height=section_height)
        for i in range(count - 1)
    ]
    last_top = (count - 1) * section_height
    sections.append(Section(index=count - 1, top=last_top, height=total_height - last_top))
    return sections


def partial_path(output_path: Path, tag: str) -> Path:
    """A sibling path for in-progress writes; keeps the extension so encoders can infer it."""
    return output_path.with_name(f".{output_path.stem}.{tag}.partial{output_path.suffix or '.png'}")


def stitch_sections(
    bands: Sequence[tuple[Section, Path]],
    width: int,
    total_height: int,
    output_path: Path,
) -> None:
    """Composite band images onto a blank canvas and write *output_path* atomically."""
    canvas = Image.new("RGB", (width, total_height), "white")
    try:
        for section, path in bands:
            with Image.open(path) as band:
                drawn = min(section.height, band.height, total_height - section.top)
                piece = band.convert("RGB").crop((0, 0, min(width, band.width), drawn))
                canvas.paste(piece, (0, section.top))

        tmp_path = partial_path(output_path, "stitch")
        try:
            canvas.save(tmp_path, format="PNG")
            os.replace(tmp_path, output_path)
        finally:
            tmp_path.unlink(missing_ok=True)
    finally:
        canvas.close()

    logger.debug(
        "sections stitched",
        extra={"sections": len(bands), "width": width, "height": total_height, "output": str(output_path)},
    )
