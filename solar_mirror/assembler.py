from __future__ import annotations

"""
帧序列 -> 视频（ffmpeg concat demuxer）。

- 帧按文件名字典序排序（文件名里带时间戳，字典序即时间序）
- 每帧固定显示时长（数据源常量），不追求按真实时间回放
- 宽高向下取偶数（libx264 + yuv420p 的硬性要求）
- 先写临时文件，成功后再替换正式输出；失败时已发布的旧视频保持不变
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .catalog import FrameConvention
from .parsers import flare_group_key


LOG = logging.getLogger("solar_mirror.assembler")

EVEN_SCALE_FILTER = "scale=trunc(iw/2)*2:trunc(ih/2)*2"


class EncodeError(RuntimeError):
    """视频编码失败。"""


@dataclass(frozen=True)
class EncodeRequest:
    """
    一次编码请求。

    Attributes:
        frames: 按播放顺序排列的帧文件
        frame_duration: 每帧显示时长（秒）
        output: 输出视频路径
        list_path: concat 列表文件路径
        crf: x264 crf
        preset: x264 preset
    """

    frames: list[Path]
    frame_duration: float
    output: Path
    list_path: Path
    crf: int = 20
    preset: str = "fast"

    @property
    def entries(self) -> list[tuple[Path, float]]:
        return [(p, self.frame_duration) for p in self.frames]


class Encoder(Protocol):
    def encode(self, request: EncodeRequest) -> None: ...


def _concat_quote(path: Path) -> str:
    return "'" + str(path).replace("'", "'\\''") + "'"


def write_concat_list(request: EncodeRequest) -> None:
    lines: list[str] = []
    for path, duration in request.entries:
        lines.append(f"file {_concat_quote(path)}")
        lines.append(f"duration {duration:g}")
    request.list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


class FfmpegEncoder:
    """
    通过 subprocess 调用 ffmpeg 的编码器。
    """

    def __init__(self, ffmpeg: str = "ffmpeg") -> None:
        self._ffmpeg = ffmpeg

    def build_command(self, request: EncodeRequest, tmp_path: Path) -> list[str]:
        return [
            self._ffmpeg,
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(request.list_path),
            "-c:v",
            "libx264",
            "-pix_fmt",
            "yuv420p",
            "-vf",
            EVEN_SCALE_FILTER,
            "-crf",
            str(request.crf),
            "-preset",
            request.preset,
            "-y",
            str(tmp_path),
        ]

    def encode(self, request: EncodeRequest) -> None:
        """
        编码一段视频。

        Raises:
            EncodeError: 找不到 ffmpeg，或 ffmpeg 返回非 0
        """

        if shutil.which(self._ffmpeg) is None:
            raise EncodeError(f"ffmpeg not found: {self._ffmpeg}")

        request.output.parent.mkdir(parents=True, exist_ok=True)
        write_concat_list(request)
        # ffmpeg 通过扩展名推断输出格式，临时文件保留 .mp4 后缀
        tmp_path = request.output.with_name(request.output.stem + ".part" + request.output.suffix)
        tmp_path.unlink(missing_ok=True)

        proc = subprocess.run(
            self.build_command(request, tmp_path),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        if proc.returncode != 0:
            tmp_path.unlink(missing_ok=True)
            tail = "\n".join([x for x in (proc.stdout or "").splitlines() if x][-20:])
            raise EncodeError(f"ffmpeg failed (rc={proc.returncode}): {tail}")
        tmp_path.replace(request.output)


def collect_frames(work_dir: Path, convention: FrameConvention, group_key: str | None = None) -> list[str]:
    """
    收集工作目录里的帧文件名并按字典序排序。

    Args:
        work_dir: 数据源工作目录
        convention: 命名约定
        group_key: 只取该耀斑分组的帧（None 表示全部）

    Returns:
        排序后的文件名列表
    """

    if not work_dir.is_dir():
        return []
    names = [p.name for p in work_dir.iterdir() if p.is_file() and convention.matches(p.name)]
    if group_key is not None:
        names = [n for n in names if flare_group_key(n) == group_key]
    return sorted(names)


def publish_file(src_dir: Path, filename: str, cache_dir: Path) -> bool:
    """
    把工作目录里的文件复制到发布缓存目录。

    Returns:
        是否复制成功（源文件不存在或写失败返回 False）
    """

    src = src_dir / filename
    if not src.is_file():
        return False
    cache_dir.mkdir(parents=True, exist_ok=True)
    tmp = cache_dir / (filename + ".tmp")
    try:
        shutil.copyfile(src, tmp)
        tmp.replace(cache_dir / filename)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        LOG.warning(f"publish failed file={filename} error={exc}")
        return False
    return True


def assemble(
    encoder: Encoder,
    *,
    tag: str,
    work_dir: Path,
    frames: list[str],
    output_name: str,
    list_name: str,
    frame_duration: float,
    crf: int,
    preset: str,
    min_frames: int = 1,
) -> Path | None:
    """
    把一组已排序的帧编码成视频。

    帧数不足 `min_frames` 时不调用编码器；编码失败只记日志，返回 None。

    Returns:
        输出视频路径，或 None
    """

    if len(frames) < max(1, min_frames):
        LOG.debug(f"source={tag} skip render output={output_name} frames={len(frames)}")
        return None

    LOG.info(f"source={tag} render start output={output_name} frames={len(frames)}")
    request = EncodeRequest(
        frames=[work_dir / f for f in frames],
        frame_duration=frame_duration,
        output=work_dir / output_name,
        list_path=work_dir / list_name,
        crf=crf,
        preset=preset,
    )
    try:
        encoder.encode(request)
    except Exception as exc:  # noqa: BLE001
        LOG.error(f"source={tag} render failed output={output_name} error={exc}")
        return None
    LOG.info(f"source={tag} render done output={output_name}")
    return request.output
