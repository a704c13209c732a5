# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Raster post-processing for evidence captures."""

import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageChops, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

TRIM_THRESHOLD = 10
SNAPSHOT_MARGIN = 20
SNAPSHOT_LINE_SPACING = 4


@dataclass(frozen=True)
class TrimOutcome:
    """Represent the result of one trim attempt.

    Attributes:
        trimmed: Whether the final image is the trimmed version.
        final_path: Path holding the evidence image afterwards.
        error: Trim failure detail when the raw capture was kept.
    """

    trimmed: bool
    final_path: Path
    error: str | None = None


def content_bbox(image: Image.Image, threshold: int = TRIM_THRESHOLD) -> tuple[int, int, int, int] | None:
    """Compute the bounding box of non-background content.

    The top-left pixel is taken as the background color; pixels whose channel
    difference stays within ``threshold`` count as background.

    Args:
        image: Image to inspect.
        threshold: Per-channel tolerance for background detection.

    Returns:
        ``(left, top, right, bottom)`` box, or ``None`` for a uniform image.
    """
    rgb = image.convert("RGB")
    background = Image.new("RGB", rgb.size, rgb.getpixel((0, 0)))
    diff = ImageChops.difference(rgb, background).convert("L")
    mask = diff.point(lambda value: 255 if value > threshold else 0)
    return mask.getbbox()


def trim(raw_path: Path, final_path: Path) -> TrimOutcome:
    """Crop uniform background padding from a raw capture.

    On success the raw capture is deleted. On failure the raw capture itself
    becomes the final image so evidence is never lost.

    Args:
        raw_path: Temporary raw capture.
        final_path: Destination of the evidence image.

    Returns:
        Trim outcome describing which image ended up at ``final_path``.
    """
    try:
        _trim_to(raw_path=raw_path, final_path=final_path)
    except (OSError, ValueError) as exc:
        logger.warning(f"Trim failed; keeping raw capture (path={raw_path} error={exc})")
        return _keep_raw(raw_path=raw_path, final_path=final_path, error=str(exc))
    raw_path.unlink(missing_ok=True)
    return TrimOutcome(trimmed=True, final_path=final_path)


def _trim_to(raw_path: Path, final_path: Path) -> None:
    with Image.open(raw_path) as image:
        image.load()
        bbox = content_bbox(image)
        cropped = image.crop(bbox) if bbox else image.copy()
    cropped.save(final_path, format="PNG")


def _keep_raw(raw_path: Path, final_path: Path, error: str) -> TrimOutcome:
    """Move the raw capture into place, copying when a rename is not possible."""
    try:
        raw_path.replace(final_path)
    except OSError as exc:
        logger.warning(
            f"Rename of raw capture failed; copying instead (path={raw_path} error={exc})"
        )
        try:
            shutil.copyfile(raw_path, final_path)
            raw_path.unlink(missing_ok=True)
        except OSError as copy_exc:
            logger.error(
                f"Raw capture could not be kept (path={raw_path} error={copy_exc})"
            )
            return TrimOutcome(trimmed=False, final_path=raw_path, error=error)
    return TrimOutcome(trimmed=False, final_path=final_path, error=error)


def render_text_snapshot(lines: Sequence[str], path: Path) -> Path:
    """Draw evidence text onto a plain white canvas.

    Used when no browser capture could be produced at all.

    Args:
        lines: Text lines to draw, top to bottom.
        path: Output PNG path.

    Returns:
        The written path.

    Raises:
        OSError: If the image cannot be written.
    """
    font = ImageFont.load_default()
    probe = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    boxes = [probe.textbbox((0, 0), line or " ", font=font) for line in lines] or [(0, 0, 1, 1)]
    line_height = max(box[3] - box[1] for box in boxes) + SNAPSHOT_LINE_SPACING
    width = max(box[2] - box[0] for box in boxes) + 2 * SNAPSHOT_MARGIN
    height = line_height * max(len(lines), 1) + 2 * SNAPSHOT_MARGIN

    canvas = Image.new("RGB", (width, height), (255, 255, 255))
    draw = ImageDraw.Draw(canvas)
    for index, line in enumerate(lines):
        draw.text(
            (SNAPSHOT_MARGIN, SNAPSHOT_MARGIN + index * line_height),
            line,
            font=font,
            fill=(0, 0, 0),
        )
    canvas.save(path, format="PNG")
    return path
