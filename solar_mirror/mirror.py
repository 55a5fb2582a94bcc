from __future__ import annotations

"""
本地镜像的 diff 与清理。

目录列表本身就是持久状态：每轮用远端列表和磁盘上的文件名集合比较，
`missing = remote - local` 交给下载，`orphan = local - remote` 删除。
只有符合数据源命名约定的文件才参与比较。
"""

import logging
from pathlib import Path

from .catalog import FrameConvention
from .parsers import RemoteFrame


LOG = logging.getLogger("solar_mirror.mirror")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def list_mirror(work_dir: Path, convention: FrameConvention) -> set[str]:
    """
    列出工作目录中符合命名约定的文件名。
    """

    if not work_dir.is_dir():
        return set()
    return {p.name for p in work_dir.iterdir() if p.is_file() and convention.matches(p.name)}


def compute_missing(remote: list[RemoteFrame], local_names: set[str]) -> list[RemoteFrame]:
    """
    计算需要下载的帧（按文件名去重，保持远端列表顺序）。

    Args:
        remote: 远端列表（可能重复）
        local_names: 本地已有文件名

    Returns:
        RemoteFrame 列表
    """

    seen: set[str] = set()
    missing: list[RemoteFrame] = []
    for frame in remote:
        if frame.filename in local_names or frame.filename in seen:
            continue
        seen.add(frame.filename)
        missing.append(frame)
    return missing


def prune_orphans(work_dir: Path, remote_names: set[str], convention: FrameConvention) -> list[str]:
    """
    删除远端已不存在的本地帧。

    必须在下载完成之后调用：这里重新列目录，用的是下载后的快照。

    Args:
        work_dir: 数据源工作目录
        remote_names: 本轮远端文件名集合
        convention: 命名约定（不匹配的文件永远不删）

    Returns:
        被删除的文件名（排序）
    """

    orphans = sorted(list_mirror(work_dir, convention) - remote_names)
    for name in orphans:
        (work_dir / name).unlink(missing_ok=True)
        LOG.debug(f"pruned file={name}")
    return orphans
