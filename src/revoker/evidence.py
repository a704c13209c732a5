# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Evidence page generation and headless capture."""

import html
import json
import logging
import math
import re
from collections.abc import Callable, Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from revoker import imaging
from revoker.model import EvidenceArtifact, VerificationResult

logger = logging.getLogger(__name__)

CONTENT_SELECTOR = "#evidence"
MAX_DIMENSION = 16384
DEFAULT_WIDTH = 1280
DEFAULT_HEIGHT = 900

DISPLAY_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_UNSAFE_NAME_PATTERN = re.compile(r'[/\\?%*:|"<> ]+')

_MEASURE_SCRIPT = """(selector) => {
  const el = document.querySelector(selector) || document.body;
  const r = el.getBoundingClientRect();
  return { left: r.left, top: r.top, width: r.width, height: r.height };
}"""

_PAGE_TEMPLATE = """<html>
<head>
  <meta charset="utf-8" />
  <title>{title}</title>
  <style>
    html, body {{ margin: 0; padding: 0; background: #ffffff; }}
    #evidence {{ font-family: monospace; padding: 20px; box-sizing: border-box; display: inline-block; }}
    pre {{ white-space: pre-wrap; word-break: break-word; }}
  </style>
</head>
<body>
  <div id="evidence">
    <b>User:</b> {user}<br>
    <b>Account ID:</b> {account_id}<br>
    <b>Project:</b> {project_key}<br>
    <b>Timestamp:</b> {timestamp}<br>
    <b>Verdict:</b> {verdict}<br><br>
    <h3>API URL</h3>
    <p>{api_url}</p>
    <h3>Response JSON</h3>
    <pre>{payload}</pre>
  </div>
</body>
</html>
"""


class CaptureError(RuntimeError):
    """Represent a failed browser capture."""


def safe_name(value: str) -> str:
    """Replace characters unsafe in file names with underscores."""
    return _UNSAFE_NAME_PATTERN.sub("_", value or "")


def evidence_basename(username: str, project_key: str, moment: datetime) -> str:
    """Build the shared file stem for one record's evidence files.

    Args:
        username: Record username.
        project_key: Record project key.
        moment: Capture time; second granularity.

    Returns:
        File stem without extension.
    """
    stamp = moment.strftime(FILE_TIMESTAMP_FORMAT)
    return f"{safe_name(username)}_{safe_name(project_key)}_{stamp}"


@dataclass(frozen=True)
class EvidenceRequest:
    """Describe the content of one evidence page.

    Attributes:
        user: Username the evidence is about.
        account_id: Account identifier shown on the page.
        project_key: Project key shown on the page.
        api_url: Exact API URL whose response is shown.
        api_payload: Raw response payload; the verification result is shown instead when absent.
        verdict: Access state from the read-back (``present``, ``revoked`` or ``unknown``).
    """

    user: str
    account_id: str
    project_key: str
    api_url: str
    api_payload: Any
    verdict: str = "unknown"

    @classmethod
    def from_verification(
        cls,
        user: str,
        account_id: str,
        project_key: str,
        verification: VerificationResult,
    ) -> "EvidenceRequest":
        """Build a request showing a verify call and its raw payload."""
        payload = verification.raw_payload
        if payload is None:
            payload = asdict(verification)
        return cls(
            user=user,
            account_id=account_id,
            project_key=project_key,
            api_url=verification.request_url,
            api_payload=payload,
            verdict=verification.access_state,
        )

    def payload_text(self) -> str:
        """Return the pretty-printed payload."""
        if isinstance(self.api_payload, str):
            return self.api_payload
        return json.dumps(self.api_payload, indent=2, ensure_ascii=False, default=str)

    def text_lines(self, moment: datetime) -> list[str]:
        """Return the page content as plain text lines."""
        return [
            f"User: {self.user}",
            f"Account ID: {self.account_id}",
            f"Project: {self.project_key}",
            f"Timestamp: {moment.strftime(DISPLAY_TIMESTAMP_FORMAT)}",
            f"Verdict: {self.verdict}",
            "",
            "API URL",
            self.api_url,
            "",
            "Response JSON",
            *self.payload_text().splitlines(),
        ]


def build_markup(request: EvidenceRequest, moment: datetime) -> str:
    """Render the self-contained evidence HTML document.

    Args:
        request: Evidence content.
        moment: Timestamp printed on the page.

    Returns:
        HTML document text with all values escaped.
    """
    return _PAGE_TEMPLATE.format(
        title=html.escape(f"{request.user} / {request.project_key}"),
        user=html.escape(request.user),
        account_id=html.escape(request.account_id),
        project_key=html.escape(request.project_key),
        timestamp=moment.strftime(DISPLAY_TIMESTAMP_FORMAT),
        verdict=html.escape(request.verdict),
        api_url=html.escape(request.api_url),
        payload=html.escape(request.payload_text()),
    )


@dataclass(frozen=True)
class Region:
    """Pixel rectangle used for clipped captures."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height


def _finite(value: object) -> float:
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return 0.0


def clip_region(rect: Mapping[str, object]) -> Region:
    """Turn a measured bounding rectangle into a capture region.

    The origin is floored and clamped at zero; the size is ceiled, replaced by
    the default viewport size when zero or missing, and clamped to
    ``MAX_DIMENSION``.

    Args:
        rect: Mapping with ``left``, ``top``, ``width`` and ``height``.

    Returns:
        Capture region.
    """
    x = max(0, math.floor(_finite(rect.get("left"))))
    y = max(0, math.floor(_finite(rect.get("top"))))
    width = math.ceil(_finite(rect.get("width"))) or DEFAULT_WIDTH
    height = math.ceil(_finite(rect.get("height"))) or DEFAULT_HEIGHT
    return Region(
        x=x,
        y=y,
        width=min(max(width, 1), MAX_DIMENSION),
        height=min(max(height, 1), MAX_DIMENSION),
    )


def viewport_for(region: Region) -> tuple[int, int]:
    """Return a viewport size large enough to contain ``region``."""
    return max(region.right, DEFAULT_WIDTH), max(region.bottom, DEFAULT_HEIGHT)


class RenderSession(Protocol):
    """Operations on one loaded page of a headless rendering engine."""

    def load(self, url: str) -> None:
        """Navigate to ``url`` and wait until network activity settles."""

    def measure(self, selector: str) -> Mapping[str, object]:
        """Return the bounding rectangle of ``selector`` (or the body)."""

    def resize(self, width: int, height: int) -> None:
        """Resize the rendering surface."""

    def capture_region(self, path: Path, region: Region) -> None:
        """Write a PNG restricted to ``region``."""

    def capture_full(self, path: Path) -> None:
        """Write a PNG of the full page."""


class RenderEngine(Protocol):
    """Factory for render sessions; each session owns its engine instance."""

    def open(self) -> AbstractContextManager[RenderSession]:
        """Start an engine instance, released when the context exits."""


class _PlaywrightSession:
    def __init__(self, page: Any) -> None:
        self._page = page

    def load(self, url: str) -> None:
        self._page.goto(url, wait_until="networkidle")

    def measure(self, selector: str) -> Mapping[str, object]:
        return self._page.evaluate(_MEASURE_SCRIPT, selector)

    def resize(self, width: int, height: int) -> None:
        self._page.set_viewport_size({"width": width, "height": height})

    def capture_region(self, path: Path, region: Region) -> None:
        self._page.screenshot(
            path=str(path),
            clip={
                "x": region.x,
                "y": region.y,
                "width": region.width,
                "height": region.height,
            },
        )

    def capture_full(self, path: Path) -> None:
        self._page.screenshot(path=str(path), full_page=True)


class PlaywrightEngine:
    """Headless Chromium engine driven through Playwright."""

    def __init__(self, timeout_seconds: float) -> None:
        """Initialize engine configuration.

        Args:
            timeout_seconds: Upper bound for launch, navigation, evaluation and screenshots.
        """
        self._timeout_ms = timeout_seconds * 1000

    @contextmanager
    def open(self) -> Iterator[RenderSession]:
        """Launch a browser for one record and close it on every exit path.

        Yields:
            Session bound to a fresh page.
        """
        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(
                headless=True, args=["--no-sandbox"], timeout=self._timeout_ms
            )
            try:
                page = browser.new_page(
                    viewport={"width": DEFAULT_WIDTH, "height": DEFAULT_HEIGHT}
                )
                page.set_default_timeout(self._timeout_ms)
                yield _PlaywrightSession(page)
            finally:
                browser.close()


class EvidenceRenderer:
    """Write evidence markup and capture it as a trimmed image."""

    def __init__(
        self,
        engine: RenderEngine,
        markup_dir: Path,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize renderer.

        Args:
            engine: Headless rendering engine.
            markup_dir: Directory receiving HTML evidence files.
            clock: Time source for page timestamps and file names.
        """
        self._engine = engine
        self._markup_dir = markup_dir
        self._clock = clock

    def render(
        self,
        request: EvidenceRequest,
        destination: Path,
        moment: datetime | None = None,
    ) -> EvidenceArtifact:
        """Produce the evidence markup and final image for one record.

        Capture falls back from the clipped region to the full page, and from
        there to a plain-text snapshot, so an image is always written.

        Args:
            request: Evidence content.
            destination: Final image path.
            moment: Timestamp shared with the caller's file names; read from the clock when omitted.

        Returns:
            Artifact referencing the markup and final image files.

        Raises:
            OSError: If the markup file or the text snapshot cannot be written.
        """
        moment = moment or self._clock()
        self._markup_dir.mkdir(parents=True, exist_ok=True)
        markup_file = self._markup_dir / (
            evidence_basename(request.user, request.project_key, moment) + ".html"
        )
        markup_file.write_text(build_markup(request, moment), encoding="utf-8")

        destination.parent.mkdir(parents=True, exist_ok=True)
        raw_path = destination.with_name(destination.name + ".tmp.png")
        try:
            capture_mode = self._capture(markup_file=markup_file, raw_path=raw_path)
        except (CaptureError, PlaywrightError, OSError) as exc:
            logger.warning(
                f"Browser capture failed; drawing text snapshot (markup={markup_file} error={exc})"
            )
            imaging.render_text_snapshot(request.text_lines(moment), raw_path)
            capture_mode = "text"

        outcome = imaging.trim(raw_path=raw_path, final_path=destination)
        return EvidenceArtifact(
            markup_file=markup_file,
            image_file=outcome.final_path,
            captured_at=moment,
            capture_mode=capture_mode,
        )

    def _capture(self, markup_file: Path, raw_path: Path) -> str:
        """Capture the content region, falling back to the full page.

        Returns:
            ``clip`` or ``full_page``.

        Raises:
            CaptureError: If neither capture produced a file.
        """
        with self._engine.open() as session:
            session.load(markup_file.resolve().as_uri())
            region = clip_region(session.measure(CONTENT_SELECTOR))
            try:
                width, height = viewport_for(region)
                session.resize(width, height)
                session.capture_region(raw_path, region)
                mode = "clip"
            except (CaptureError, PlaywrightError, OSError, ValueError) as exc:
                logger.warning(
                    f"Clipped capture failed; using full page (markup={markup_file} "
                    f"region={region} error={exc})"
                )
                session.capture_full(raw_path)
                mode = "full_page"
        if not raw_path.exists() or raw_path.stat().st_size == 0:
            raise CaptureError(f"Capture produced no image: {raw_path}")
        return mode
