from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from solar_mirror.catalog import MANUAL_DOWNLOADS, PINNED_RESOURCES
from solar_mirror.publisher import build_manifest, category_rules, classify, write_manifest


DASHBOARD = [c.filename for c in MANUAL_DOWNLOADS]


def _touch(d: Path, *names: str) -> None:
    d.mkdir(parents=True, exist_ok=True)
    for n in names:
        (d / n).write_bytes(b"x")


def test_manifest_classification_sorted_by_filename(tmp_path: Path) -> None:
    _touch(tmp_path, "station-k-index.png", "sdo_hmib.mp4", "drap_global_anim.mp4")

    manifest = build_manifest(tmp_path, pinned=PINNED_RESOURCES, chart_filenames=DASHBOARD)

    assert manifest["files"] == [
        {"filename": "drap_global_anim.mp4", "category": "ionosphere", "type": "video"},
        {"filename": "sdo_hmib.mp4", "category": "dashboard", "type": "video"},
        {"filename": "station-k-index.png", "category": "dashboard", "type": "image"},
    ]


def test_first_matching_rule_wins() -> None:
    rules = category_rules(DASHBOARD)
    assert classify("gong_20240101.jpg", rules) == "gong"
    assert classify("gong_anim.mp4", rules) == "gong"
    assert classify("ccor1_anim.mp4", rules) == "goes"
    assert classify("enlil_anim.mp4", rules) == "seaesrt"
    assert classify("flare_anim_flares_ar1.mp4", rules) == "flares_visual"
    assert classify("stereo_ahead_euvi.jpg", rules) == "stereo"
    assert classify("drap_static_global_f05.png", rules) == "ionosphere"
    assert classify("ace-mag-24.gif", rules) == "ace"
    assert classify("goes-xray-flux.png", rules) == "ace"
    assert classify("seaesrt-charging-hazards.png", rules) == "seaesrt"
    assert classify("geospace_geospace_timeline_critical.png", rules) == "seaesrt"
    assert classify("lasco_c2_anim.gif", rules) == "lasco"
    assert classify("synoptic-map.jpg", rules) == "dashboard"
    # static chart name that an earlier rule claims first
    assert classify("ace-epam-24.gif", rules) == "ace"
    assert classify("lasco_c2.jpg", rules) == "vault"
    assert classify("sdo_193.jpg", rules) == "vault"


def test_data_and_temporary_files_are_excluded(tmp_path: Path) -> None:
    _touch(tmp_path, "meta.json", "donki.json", "gong_anim.mp4", "gong_anim.mp4.tmp", "x.jpg.part", "y.part.mp4")
    (tmp_path / "subdir").mkdir()

    manifest = build_manifest(tmp_path, pinned=[], chart_filenames=[])

    assert [f["filename"] for f in manifest["files"]] == ["gong_anim.mp4"]


def test_write_manifest_rebuilds_from_scratch(tmp_path: Path) -> None:
    _touch(tmp_path, "enlil_anim.mp4", "ccor1_anim.mp4")
    when = datetime(2024, 5, 10, 12, 30, 0)
    path = write_manifest(tmp_path, pinned=PINNED_RESOURCES, chart_filenames=DASHBOARD, now=when)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["lastUpdated"] == "2024-05-10 12:30:00"
    assert data["pinned"][0] == {"id": "enlil_anim.mp4", "name": "WSA-ENLIL PREDICTION", "category": "dashboard"}
    assert [f["filename"] for f in data["files"]] == ["ccor1_anim.mp4", "enlil_anim.mp4"]

    (tmp_path / "ccor1_anim.mp4").unlink()
    write_manifest(tmp_path, pinned=PINNED_RESOURCES, chart_filenames=DASHBOARD, now=when)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert [f["filename"] for f in data["files"]] == ["enlil_anim.mp4"]
    assert not (tmp_path / "meta.json.tmp").exists()


def test_manifest_is_stable_apart_from_timestamp(tmp_path: Path) -> None:
    _touch(tmp_path, "gong_anim.mp4", "stereo_a.jpg")
    first = write_manifest(tmp_path, pinned=PINNED_RESOURCES, chart_filenames=DASHBOARD, now=datetime(2024, 1, 1)).read_bytes()
    second = write_manifest(tmp_path, pinned=PINNED_RESOURCES, chart_filenames=DASHBOARD, now=datetime(2024, 1, 1)).read_bytes()
    assert first == second
