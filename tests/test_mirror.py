from __future__ import annotations

from pathlib import Path

from solar_mirror.catalog import FrameConvention
from solar_mirror.mirror import compute_missing, list_mirror, prune_orphans
from solar_mirror.parsers import RemoteFrame


CONV = FrameConvention("ccor1_", (".jpg",))


def _touch(d: Path, *names: str) -> None:
    d.mkdir(parents=True, exist_ok=True)
    for n in names:
        (d / n).write_bytes(b"x")


def test_missing_is_remote_minus_local_deduplicated() -> None:
    remote = [
        RemoteFrame("u/a", "ccor1_a.jpg"),
        RemoteFrame("u/b", "ccor1_b.jpg"),
        RemoteFrame("u/a", "ccor1_a.jpg"),
        RemoteFrame("u/c", "ccor1_c.jpg"),
    ]
    missing = compute_missing(remote, {"ccor1_b.jpg"})
    assert [m.filename for m in missing] == ["ccor1_a.jpg", "ccor1_c.jpg"]


def test_list_mirror_only_sees_convention_files(tmp_path: Path) -> None:
    _touch(tmp_path, "ccor1_a.jpg", "ccor1_anim.mp4", "input.txt", "ccor1_b.jpg.part")
    assert list_mirror(tmp_path, CONV) == {"ccor1_a.jpg"}
    assert list_mirror(tmp_path / "absent", CONV) == set()


def test_prune_never_touches_derived_artifacts(tmp_path: Path) -> None:
    _touch(tmp_path, "ccor1_a.jpg", "ccor1_b.jpg", "ccor1_old.jpg", "ccor1_anim.mp4", "input.txt")

    removed = prune_orphans(tmp_path, {"ccor1_a.jpg", "ccor1_b.jpg"}, CONV)

    assert removed == ["ccor1_old.jpg"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["ccor1_a.jpg", "ccor1_anim.mp4", "ccor1_b.jpg", "input.txt"]


def test_prune_uses_post_download_snapshot(tmp_path: Path) -> None:
    _touch(tmp_path, "ccor1_a.jpg")
    before = list_mirror(tmp_path, CONV)
    # a frame fetched after the first listing must survive pruning
    _touch(tmp_path, "ccor1_new.jpg")

    removed = prune_orphans(tmp_path, before | {"ccor1_new.jpg"}, CONV)

    assert removed == []
    assert list_mirror(tmp_path, CONV) == {"ccor1_a.jpg", "ccor1_new.jpg"}
