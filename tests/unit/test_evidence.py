# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for evidence markup, capture geometry and fallbacks."""

import json
from datetime import datetime
from pathlib import Path

from PIL import Image

from conftest import FakeEngine, TickingClock
from revoker.evidence import (
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    MAX_DIMENSION,
    EvidenceRenderer,
    EvidenceRequest,
    Region,
    build_markup,
    clip_region,
    evidence_basename,
    safe_name,
    viewport_for,
)
from revoker.model import VerificationResult

MOMENT = datetime(2026, 3, 1, 9, 30, 5)


def _request(payload: object = None) -> EvidenceRequest:
    return EvidenceRequest(
        user="jdoe",
        account_id="acc-42",
        project_key="PROJ1",
        api_url="http://bb/rest/api/1.0/projects/PROJ1/permissions/users?filter=jdoe",
        api_payload={"values": []} if payload is None else payload,
    )


def test_ev_001_geometry_floors_origin_and_ceils_size() -> None:
    region = clip_region({"left": 8.7, "top": 3.2, "width": 640.1, "height": 219.5})

    assert region == Region(x=8, y=3, width=641, height=220)
    assert viewport_for(region) == (DEFAULT_WIDTH, DEFAULT_HEIGHT)


def test_ev_002_geometry_defaults_zero_and_missing_dimensions() -> None:
    assert clip_region({"left": -4, "top": None, "width": 0}) == Region(
        x=0, y=0, width=DEFAULT_WIDTH, height=DEFAULT_HEIGHT
    )
    assert clip_region({"width": float("nan"), "height": 12}) == Region(
        x=0, y=0, width=DEFAULT_WIDTH, height=12
    )


def test_ev_003_geometry_clamps_to_renderer_limit() -> None:
    region = clip_region({"left": 0, "top": 100, "width": 90000, "height": 20000.4})

    assert region.width == MAX_DIMENSION
    assert region.height == MAX_DIMENSION
    assert viewport_for(region) == (MAX_DIMENSION, MAX_DIMENSION + 100)


def test_ev_004_markup_escapes_values_and_pretty_prints_payload() -> None:
    request = EvidenceRequest(
        user="<script>x</script>",
        account_id="a&b",
        project_key="PROJ1",
        api_url="http://bb/x?filter=a&b",
        api_payload={"values": [{"name": "<b>"}]},
    )

    markup = build_markup(request, MOMENT)

    assert "<script>x</script>" not in markup
    assert "&lt;script&gt;" in markup
    assert "filter=a&amp;b" in markup
    assert "2026-03-01 09:30:05" in markup
    assert '<div id="evidence">' in markup
    assert "&quot;values&quot;: [\n" in markup


def test_ev_005_request_without_payload_shows_verification_result() -> None:
    verification = VerificationResult(
        succeeded=False,
        http_status=None,
        still_has_access=False,
        raw_payload=None,
        request_url="http://bb/verify",
        transport_error="timed out",
    )

    request = EvidenceRequest.from_verification("jdoe", "acc", "PROJ1", verification)

    shown = json.loads(request.payload_text())
    assert shown["transport_error"] == "timed out"
    assert shown["succeeded"] is False
    assert request.api_url == "http://bb/verify"
    assert request.verdict == "unknown"
    assert "Verdict: unknown" in request.text_lines(MOMENT)


def test_ev_006_file_names_are_sanitized() -> None:
    assert safe_name('a b/c\\d?e%f*g:h|i"j<k>l') == "a_b_c_d_e_f_g_h_i_j_k_l"
    assert evidence_basename("j doe", "PROJ/1", MOMENT) == "j_doe_PROJ_1_2026-03-01_09-30-05"


def test_ev_007_render_clips_content_and_trims(tmp_path: Path) -> None:
    engine = FakeEngine()
    renderer = EvidenceRenderer(engine=engine, markup_dir=tmp_path / "html", clock=TickingClock())
    destination = tmp_path / "png" / "no_access" / "jdoe.png"

    artifact = renderer.render(_request(), destination)

    assert artifact.capture_mode == "clip"
    assert artifact.image_file == destination
    assert artifact.markup_file.name == "jdoe_PROJ1_2026-03-01_09-30-00.html"
    assert artifact.markup_file.read_text(encoding="utf-8").startswith("<html>")
    assert engine.loaded == [artifact.markup_file.resolve().as_uri()]
    assert engine.regions == [Region(x=0, y=0, width=121, height=81)]
    assert engine.viewports == [(DEFAULT_WIDTH, DEFAULT_HEIGHT)]
    assert engine.full_captures == 0
    assert (engine.opened, engine.closed) == (1, 1)
    with Image.open(destination) as image:
        assert image.size == (20, 20)
    assert not (destination.parent / "jdoe.png.tmp.png").exists()


def test_ev_008_clip_failure_falls_back_to_full_page(tmp_path: Path) -> None:
    engine = FakeEngine(fail_clip=True)
    renderer = EvidenceRenderer(engine=engine, markup_dir=tmp_path / "html", clock=TickingClock())
    destination = tmp_path / "jdoe.png"

    artifact = renderer.render(_request(), destination)

    assert artifact.capture_mode == "full_page"
    assert engine.full_captures == 1
    assert destination.stat().st_size > 0
    assert (engine.opened, engine.closed) == (1, 1)


def test_ev_009_total_capture_failure_still_writes_image(tmp_path: Path) -> None:
    engine = FakeEngine(fail_clip=True, fail_full=True)
    renderer = EvidenceRenderer(engine=engine, markup_dir=tmp_path / "html", clock=TickingClock())
    destination = tmp_path / "jdoe.png"

    artifact = renderer.render(_request(), destination)

    assert artifact.capture_mode == "text"
    assert destination.stat().st_size > 0
    assert engine.closed == 1
    assert sorted(path.name for path in tmp_path.iterdir()) == ["html", "jdoe.png"]


def test_ev_010_engine_released_when_navigation_fails(tmp_path: Path) -> None:
    engine = FakeEngine(fail_load=True)
    renderer = EvidenceRenderer(engine=engine, markup_dir=tmp_path / "html", clock=TickingClock())

    artifact = renderer.render(_request(), tmp_path / "jdoe.png")

    assert artifact.capture_mode == "text"
    assert engine.regions == []
    assert (engine.opened, engine.closed) == (1, 1)
