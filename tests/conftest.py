import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path

import pytest


def _add_src_to_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src_path = root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_add_src_to_path()

from PIL import Image, ImageDraw  # noqa: E402

from revoker.evidence import CaptureError, Region  # noqa: E402
from revoker.model import MutationResult, VerificationResult  # noqa: E402
from revoker.reconciler import payload_lists_user  # noqa: E402


def write_png(
    path: Path,
    size: tuple[int, int] = (120, 80),
    box: tuple[int, int, int, int] | None = (10, 20, 29, 39),
) -> Path:
    """Write a white PNG with an optional black rectangle."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, (255, 255, 255))
    if box is not None:
        ImageDraw.Draw(image).rectangle(box, fill=(0, 0, 0))
    image.save(path, format="PNG")
    return path


class FakeSession:
    def __init__(self, engine: "FakeEngine") -> None:
        self._engine = engine

    def load(self, url: str) -> None:
        self._engine.loaded.append(url)
        if self._engine.fail_load:
            raise CaptureError("navigation timed out")

    def measure(self, selector: str) -> Mapping[str, object]:
        return self._engine.rect

    def resize(self, width: int, height: int) -> None:
        self._engine.viewports.append((width, height))

    def capture_region(self, path: Path, region: Region) -> None:
        self._engine.regions.append(region)
        if self._engine.fail_clip:
            raise CaptureError("clip outside of page")
        write_png(path)

    def capture_full(self, path: Path) -> None:
        self._engine.full_captures += 1
        if self._engine.fail_full:
            raise CaptureError("full page capture failed")
        write_png(path, size=(200, 150), box=(40, 40, 99, 79))


class FakeEngine:
    """In-memory stand-in for the headless browser."""

    def __init__(
        self,
        fail_clip: bool = False,
        fail_full: bool = False,
        fail_load: bool = False,
        rect: Mapping[str, object] | None = None,
    ) -> None:
        self.fail_clip = fail_clip
        self.fail_full = fail_full
        self.fail_load = fail_load
        self.rect = rect or {"left": 0, "top": 0, "width": 120.4, "height": 80.2}
        self.loaded: list[str] = []
        self.viewports: list[tuple[int, int]] = []
        self.regions: list[Region] = []
        self.full_captures = 0
        self.opened = 0
        self.closed = 0

    @contextmanager
    def open(self) -> Iterator[FakeSession]:
        self.opened += 1
        try:
            yield FakeSession(self)
        finally:
            self.closed += 1


class FakeAccessClient:
    """Scripted access client keyed by username."""

    def __init__(
        self,
        revoke_status: int | None = 204,
        payloads: dict[str, object] | None = None,
        verify_ok: bool = True,
    ) -> None:
        self.revoke_status = revoke_status
        self.payloads = payloads or {}
        self.verify_ok = verify_ok
        self.calls: list[tuple[str, str, str]] = []

    def revoke(self, project_key: str, username: str) -> MutationResult:
        self.calls.append(("revoke", project_key, username))
        url = f"http://bitbucket.local/rest/api/1.0/projects/{project_key}/permissions/users?name={username}"
        if self.revoke_status is None:
            return MutationResult(
                succeeded=False, http_status=None, request_url=url, transport_error="refused"
            )
        return MutationResult(
            succeeded=self.revoke_status == 204,
            http_status=self.revoke_status,
            request_url=url,
        )

    def verify(self, project_key: str, username: str) -> VerificationResult:
        self.calls.append(("verify", project_key, username))
        url = f"http://bitbucket.local/rest/api/1.0/projects/{project_key}/permissions/users?filter={username}"
        if not self.verify_ok:
            return VerificationResult(
                succeeded=False,
                http_status=None,
                still_has_access=False,
                raw_payload=None,
                request_url=url,
                transport_error="timed out",
            )
        payload = self.payloads.get(username, {"values": []})
        return VerificationResult(
            succeeded=True,
            http_status=200,
            still_has_access=payload_lists_user(payload, username),
            raw_payload=payload,
            request_url=url,
        )


class TickingClock:
    """Clock advancing one second per call so evidence names never collide."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 3, 1, 9, 30, 0)

    def __call__(self) -> datetime:
        current = self._now
        self._now = current + timedelta(seconds=1)
        return current


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()
