from __future__ import annotations

"""
发布缓存的 manifest（meta.json）生成。

每轮都从缓存目录的实际内容整体重建，不做增量修补：
- 按顺序匹配 (predicate, category) 规则，命中第一条即止；都不命中归为 vault
- JSON 数据文件（meta.json 自身、事件数据缓存）与写入中的临时文件不参与分类
- 按文件名排序后写入 `{lastUpdated, pinned, files}`
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from .catalog import MANIFEST_FILENAME, PinnedResource


LOG = logging.getLogger("solar_mirror.publisher")

DEFAULT_CATEGORY = "vault"

Rule = tuple[Callable[[str], bool], str]


def category_rules(chart_filenames: Iterable[str]) -> list[Rule]:
    """
    分类规则链（顺序即优先级）。

    Args:
        chart_filenames: 静态图表的文件名（命中归为 dashboard）
    """

    charts = frozenset(chart_filenames)
    return [
        (lambda f: f.startswith("gong_") and f.endswith(".jpg"), "gong"),
        (lambda f: f == "ccor1_anim.mp4", "goes"),
        (lambda f: f == "enlil_anim.mp4", "seaesrt"),
        (lambda f: f == "gong_anim.mp4", "gong"),
        (lambda f: f == "drap_global_anim.mp4", "ionosphere"),
        (lambda f: f.startswith("flare_anim"), "flares_visual"),
        (lambda f: f.startswith("stereo"), "stereo"),
        (lambda f: f.startswith("drap_"), "ionosphere"),
        (lambda f: f.startswith("ace-") or "proton" in f or "electrons" in f or "xray" in f, "ace"),
        (lambda f: f.startswith("seaesrt") or f.startswith("geospace"), "seaesrt"),
        (lambda f: "lasco" in f and f.endswith("anim.gif"), "lasco"),
        (lambda f: f in charts, "dashboard"),
    ]


def classify(filename: str, rules: list[Rule]) -> str:
    for predicate, category in rules:
        if predicate(filename):
            return category
    return DEFAULT_CATEGORY


def is_excluded(filename: str) -> bool:
    """JSON 数据文件与写入中的临时文件不进入 manifest。"""

    if filename.endswith(".json"):
        return True
    if filename.endswith(".tmp") or filename.endswith(".part") or ".part." in filename:
        return True
    return False


def asset_type(filename: str) -> str:
    return "video" if filename.lower().endswith(".mp4") else "image"


def build_manifest(
    cache_dir: Path,
    *,
    pinned: list[PinnedResource],
    chart_filenames: Iterable[str],
    now: datetime | None = None,
) -> dict:
    """
    扫描缓存目录并生成 manifest 内容。

    Args:
        cache_dir: 发布缓存目录
        pinned: 固定展示的资源
        chart_filenames: 静态图表文件名
        now: 时间戳（测试时固定；默认当前本地时间）

    Returns:
        dict: `{"lastUpdated", "pinned", "files"}`
    """

    rules = category_rules(chart_filenames)
    names: list[str] = []
    if cache_dir.is_dir():
        names = sorted(p.name for p in cache_dir.iterdir() if p.is_file() and not is_excluded(p.name))

    files = [{"filename": f, "category": classify(f, rules), "type": asset_type(f)} for f in names]
    ts = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return {
        "lastUpdated": ts,
        "pinned": [p.to_dict() for p in pinned],
        "files": files,
    }


def write_manifest(
    cache_dir: Path,
    *,
    pinned: list[PinnedResource],
    chart_filenames: Iterable[str],
    now: datetime | None = None,
) -> Path:
    """
    重建并原子写入 `meta.json`（先写 `.tmp` 再替换）。

    Returns:
        manifest 路径
    """

    cache_dir.mkdir(parents=True, exist_ok=True)
    manifest = build_manifest(cache_dir, pinned=pinned, chart_filenames=chart_filenames, now=now)
    out = cache_dir / MANIFEST_FILENAME
    tmp = cache_dir / (MANIFEST_FILENAME + ".tmp")
    tmp.write_text(json.dumps(manifest, ensure_ascii=False, separators=(",", ":")), encoding="utf-8")
    tmp.replace(out)
    LOG.info(f"manifest written files={len(manifest['files'])}")
    return out
