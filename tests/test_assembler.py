from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from solar_mirror import assembler
from solar_mirror.assembler import (
    EVEN_SCALE_FILTER,
    EncodeError,
    EncodeRequest,
    FfmpegEncoder,
    assemble,
    collect_frames,
    publish_file,
)
from solar_mirror.catalog import FrameConvention


FLARES = FrameConvention("flares_", (".png", ".jpg"))


def _touch(d: Path, *names: str) -> None:
    d.mkdir(parents=True, exist_ok=True)
    for n in names:
        (d / n).write_bytes(b"frame")


def _assemble(encoder, work_dir: Path, frames: list[str], min_frames: int = 1):
    return assemble(
        encoder,
        tag="TEST",
        work_dir=work_dir,
        frames=frames,
        output_name="out.mp4",
        list_name="input.txt",
        frame_duration=0.15,
        crf=23,
        preset="fast",
        min_frames=min_frames,
    )


def test_no_frames_means_no_encode(tmp_path: Path, fake_encoder) -> None:
    assert _assemble(fake_encoder, tmp_path, []) is None
    assert fake_encoder.calls == []


def test_flare_group_needs_five_frames(tmp_path: Path, fake_encoder) -> None:
    names = [f"flares_ar1_s000{i}.png" for i in (4, 2, 3, 1)]
    _touch(tmp_path, *names)

    frames = collect_frames(tmp_path, FLARES, group_key="flares_ar1")
    assert _assemble(fake_encoder, tmp_path, frames, min_frames=5) is None
    assert fake_encoder.calls == []

    _touch(tmp_path, "flares_ar1_s0000.png")
    frames = collect_frames(tmp_path, FLARES, group_key="flares_ar1")
    out = _assemble(fake_encoder, tmp_path, frames, min_frames=5)

    assert out == tmp_path / "out.mp4"
    assert len(fake_encoder.calls) == 1
    req = fake_encoder.calls[0]
    assert [p.name for p in req.frames] == [f"flares_ar1_s000{i}.png" for i in range(5)]
    assert all(d == 0.15 for _, d in req.entries)


def test_collect_frames_filters_group_and_convention(tmp_path: Path) -> None:
    _touch(
        tmp_path,
        "flares_ar1_s0002.png",
        "flares_ar1_s0001.png",
        "flares_ar12_s0001.png",
        "flare_anim_flares_ar1.mp4",
        "flares_ar1.txt",
    )
    assert collect_frames(tmp_path, FLARES, group_key="flares_ar1") == [
        "flares_ar1_s0001.png",
        "flares_ar1_s0002.png",
    ]
    assert len(collect_frames(tmp_path, FLARES)) == 3


def test_encode_failure_is_contained(tmp_path: Path, fake_encoder) -> None:
    fake_encoder.fail = True
    _touch(tmp_path, "flares_a.png")
    assert _assemble(fake_encoder, tmp_path, ["flares_a.png"]) is None
    assert len(fake_encoder.calls) == 1


def _request(tmp_path: Path) -> EncodeRequest:
    _touch(tmp_path, "enlil_b.jpg", "enlil_a.jpg", "it's.jpg")
    return EncodeRequest(
        frames=[tmp_path / "enlil_a.jpg", tmp_path / "enlil_b.jpg", tmp_path / "it's.jpg"],
        frame_duration=0.08,
        output=tmp_path / "enlil_anim.mp4",
        list_path=tmp_path / "input.txt",
        crf=20,
        preset="fast",
    )


def test_ffmpeg_encoder_writes_list_and_replaces_output(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[list[str]] = []

    def fake_run(cmd, **kwargs):
        seen.append(cmd)
        Path(cmd[-1]).write_bytes(b"new video")
        return subprocess.CompletedProcess(cmd, 0, stdout="")

    monkeypatch.setattr(assembler.shutil, "which", lambda name: "/usr/bin/ffmpeg")
    monkeypatch.setattr(assembler.subprocess, "run", fake_run)

    req = _request(tmp_path)
    FfmpegEncoder().encode(req)

    cmd = seen[0]
    assert cmd[cmd.index("-vf") + 1] == EVEN_SCALE_FILTER
    assert cmd[cmd.index("-f") + 1] == "concat"
    assert cmd[cmd.index("-crf") + 1] == "20"
    assert "-y" in cmd
    assert cmd[-1].endswith("enlil_anim.part.mp4")

    listing = (tmp_path / "input.txt").read_text(encoding="utf-8").splitlines()
    assert listing[0] == f"file '{tmp_path / 'enlil_a.jpg'}'"
    assert listing[1] == "duration 0.08"
    assert listing[4] == "file '" + str(tmp_path / "it") + "'\\''s.jpg'"
    assert (tmp_path / "enlil_anim.mp4").read_bytes() == b"new video"
    assert not (tmp_path / "enlil_anim.part.mp4").exists()


def test_ffmpeg_failure_keeps_previous_output(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, **kwargs):
        Path(cmd[-1]).write_bytes(b"partial")
        return subprocess.CompletedProcess(cmd, 1, stdout="Invalid data found\n")

    monkeypatch.setattr(assembler.shutil, "which", lambda name: "/usr/bin/ffmpeg")
    monkeypatch.setattr(assembler.subprocess, "run", fake_run)

    req = _request(tmp_path)
    req.output.write_bytes(b"previous video")

    with pytest.raises(EncodeError, match="Invalid data found"):
        FfmpegEncoder().encode(req)
    assert req.output.read_bytes() == b"previous video"
    assert not (tmp_path / "enlil_anim.part.mp4").exists()


def test_missing_ffmpeg_raises_encode_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(assembler.shutil, "which", lambda name: None)
    with pytest.raises(EncodeError):
        FfmpegEncoder("no-such-ffmpeg").encode(_request(tmp_path))


def test_publish_file_copies_into_cache(tmp_path: Path) -> None:
    work = tmp_path / "work"
    cache = tmp_path / "cache"
    _touch(work, "gong_anim.mp4")

    assert publish_file(work, "gong_anim.mp4", cache) is True
    assert (cache / "gong_anim.mp4").read_bytes() == b"frame"
    assert publish_file(work, "missing.mp4", cache) is False
    assert sorted(p.name for p in cache.iterdir()) == ["gong_anim.mp4"]
