# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Batch assembly of evidence images into paginated DOCX reports."""

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Emu, Pt
from docx.text.run import Run
from PIL import Image

logger = logging.getLogger(__name__)

MAX_IMAGE_WIDTH_PX = 600
EMU_PER_PIXEL = 9525
IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg"})
TEMP_SUFFIX = ".tmp.png"
TITLE_FONT_SIZE = Pt(28)
SUBTITLE_FONT_SIZE = Pt(14)


class ReportWriteError(RuntimeError):
    """Represent a failure to write an assembled report."""


def list_images(source_dir: Path) -> list[Path]:
    """List evidence images in lexicographic file name order.

    Args:
        source_dir: Directory holding evidence images.

    Returns:
        Image paths; empty when the directory is missing or holds no images.
    """
    if not source_dir.is_dir():
        return []
    return sorted(
        (
            path
            for path in source_dir.iterdir()
            if path.is_file()
            and path.suffix.lower() in IMAGE_SUFFIXES
            and not path.name.endswith(TEMP_SUFFIX)
        ),
        key=lambda path: path.name,
    )


def probe_size(path: Path) -> tuple[int, int] | None:
    """Read intrinsic pixel dimensions, or ``None`` when undeterminable."""
    try:
        with Image.open(path) as image:
            width, height = image.size
    except (OSError, ValueError) as exc:
        logger.warning(f"Could not read image dimensions (path={path} error={exc})")
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


def fit_width(width: int, height: int, max_width: int = MAX_IMAGE_WIDTH_PX) -> tuple[int, int]:
    """Scale dimensions down to ``max_width`` keeping the aspect ratio.

    Args:
        width: Intrinsic width in pixels.
        height: Intrinsic height in pixels.
        max_width: Maximum target width in pixels.

    Returns:
        Target ``(width, height)`` rounded half up; never upscaled.
    """
    scale = min(1.0, max_width / width)
    return int(width * scale + 0.5), int(height * scale + 0.5)


class ReportAssembler:
    """Assemble one DOCX document from a directory of evidence images."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        """Initialize assembler.

        Args:
            clock: Time source for the generation timestamp.
        """
        self._clock = clock

    def assemble(self, source_dir: Path, title: str, output_path: Path) -> Path | None:
        """Write a titled report with one image per page.

        Args:
            source_dir: Directory holding evidence images.
            title: Document title.
            output_path: Target DOCX path.

        Returns:
            Written report path, or ``None`` when there were no images.

        Raises:
            ReportWriteError: If the document cannot be saved.
        """
        images = list_images(source_dir)
        if not images:
            logger.info(f"No images to assemble; skipping report (source_dir={source_dir})")
            return None

        document = Document()
        heading = document.add_paragraph()
        heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
        title_run = heading.add_run(title)
        title_run.bold = True
        title_run.font.size = TITLE_FONT_SIZE
        generated = document.add_paragraph()
        generated.alignment = WD_ALIGN_PARAGRAPH.CENTER
        generated.add_run(
            f"Generated: {self._clock().strftime('%Y-%m-%d %H:%M:%S')}"
        ).font.size = SUBTITLE_FONT_SIZE

        inserted = 0
        for index, image_path in enumerate(images):
            paragraph = document.add_paragraph()
            paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
            if _insert_image(paragraph.add_run(), image_path):
                inserted += 1
            if index < len(images) - 1:
                document.add_page_break()

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            document.save(str(output_path))
        except OSError as exc:
            logger.error(f"Failed to write report (output_path={output_path} error={exc})")
            raise ReportWriteError(f"Failed to write report {output_path}: {exc}") from exc
        logger.info(
            f"Report created (output_path={output_path} images={inserted}/{len(images)})"
        )
        return output_path


def _insert_image(run: Run, image_path: Path) -> bool:
    """Insert one image scaled to the page, retrying once without sizing.

    Returns:
        Whether the image was inserted.
    """
    size = probe_size(image_path)
    try:
        if size is None:
            run.add_picture(str(image_path))
        else:
            width, height = fit_width(*size)
            run.add_picture(
                str(image_path),
                width=Emu(width * EMU_PER_PIXEL),
                height=Emu(height * EMU_PER_PIXEL),
            )
        return True
    except Exception as exc:  # noqa: BLE001 - any insert failure skips only this image
        logger.warning(f"Failed to add image to report (path={image_path} error={exc})")
    if size is None:
        return False
    try:
        run.add_picture(str(image_path))
        return True
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Retry without sizing failed; skipping image (path={image_path} error={exc})")
        return False
