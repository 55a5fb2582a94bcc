from __future__ import annotations

"""
批量下载（固定窗口并发）。

- 任务按窗口切分（默认每窗口 5 个），窗口内并发，整窗结束后才进入下一窗
- 进度两种模式：verbose 逐文件输出；bulk 只在跨过新的 10% 档位时输出
- 单个文件失败不抛出、不重试：它不会进入本地镜像，下一轮同步自然重新尝试
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Protocol

from .parsers import RemoteFrame


LOG = logging.getLogger("solar_mirror.downloader")

DEFAULT_WINDOW_SIZE = 5


class Downloader(Protocol):
    def download(self, url: str, out_path: Path) -> int: ...


@dataclass
class BatchResult:
    total: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class DecileProgress:
    """
    bulk 模式的进度记录器（线程安全）。

    每次成功后，把所有 <= floor(100 * done / total) 且尚未输出过的 10% 档位按升序各输出一次；
    无论完成顺序如何，输出的百分比严格递增，每个档位最多一次。
    """

    def __init__(self, total: int, emit: Callable[[int, int, int], None]) -> None:
        self._total = total
        self._emit = emit
        self._done = 0
        self._next_milestone = 10
        self._lock = threading.Lock()

    @property
    def done(self) -> int:
        return self._done

    def advance(self) -> None:
        with self._lock:
            self._done += 1
            percent = (self._done * 100) // self._total if self._total else 100
            while self._next_milestone <= 100 and percent >= self._next_milestone:
                self._emit(self._next_milestone, self._done, self._total)
                self._next_milestone += 10


def _windows(items: list[RemoteFrame], size: int) -> Iterable[list[RemoteFrame]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def download_batch(
    client: Downloader,
    tag: str,
    items: list[RemoteFrame],
    dest_dir: Path,
    *,
    verbose: bool = False,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> BatchResult:
    """
    下载一组文件到 `dest_dir`。

    Args:
        client: 提供 `download(url, out_path)` 的客户端
        tag: 日志标签（数据源）
        items: 下载任务（保持顺序）
        dest_dir: 目标目录
        verbose: True 逐文件输出；False 按 10% 档位输出
        window_size: 每个窗口的并发数

    Returns:
        BatchResult
    """

    result = BatchResult(total=len(items))
    if not items:
        return result

    dest_dir.mkdir(parents=True, exist_ok=True)
    lock = threading.Lock()
    progress = DecileProgress(
        len(items),
        lambda pct, done, total: LOG.info(f"source={tag} progress={pct}% ({done}/{total})"),
    )

    LOG.info(f"source={tag} batch start files={len(items)}")

    def run_item(item: RemoteFrame) -> None:
        try:
            client.download(item.url, dest_dir / item.filename)
        except Exception as exc:  # noqa: BLE001
            LOG.warning(f"source={tag} [FAIL] file={item.filename} error={exc}")
            with lock:
                result.failed.append(item.filename)
            return
        with lock:
            result.succeeded.append(item.filename)
        if verbose:
            LOG.info(f"source={tag} [OK] file={item.filename}")
        else:
            progress.advance()

    size = max(1, int(window_size))
    with ThreadPoolExecutor(max_workers=size, thread_name_prefix=f"dl-{tag.lower()}") as executor:
        for window in _windows(items, size):
            # 整个窗口结束后才进入下一窗
            wait([executor.submit(run_item, item) for item in window])

    LOG.info(f"source={tag} batch complete downloaded={len(result.succeeded)}/{result.total}")
    return result
