from __future__ import annotations

"""
同步编排。

完整同步（full cycle）：
1. 事件数据 API（DONKI）整份覆盖缓存
2. 静态图表单例：全部覆盖下载并发布（固定文件名，无 diff/prune）
3. 每个帧序列数据源依次执行：列表 -> diff -> 下载 -> 清理孤儿 -> 渲染 -> 发布
4. 快照源（STEREO）全量刷新
5. 重建 manifest

轻量同步（mini cycle）只刷新快照源并重建 manifest。

完整同步用非阻塞锁防重入：正在跑时再次触发直接丢弃。各数据源之间严格串行；
任何一步失败只影响这一步，整轮总能跑完。
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from .assembler import Encoder, assemble, collect_frames, publish_file
from .catalog import (
    CHART_DOWNLOADS,
    EVENT_FEED_FILENAME,
    EVENT_FEED_URL,
    MANUAL_DOWNLOADS,
    PINNED_RESOURCES,
    ChartDownload,
    PinnedResource,
    SourceConfig,
)
from .config import Config
from .downloader import BatchResult, download_batch
from .http_client import HttpClient
from .mirror import compute_missing, ensure_dir, list_mirror, prune_orphans
from .parsers import ListingError, RemoteFrame, build_listing, flare_group_key
from .publisher import write_manifest


LOG = logging.getLogger("solar_mirror")

CONCAT_LIST_NAME = "input.txt"
CHARTS_DIR_NAME = "charts"


@dataclass
class SourceResult:
    """
    单个数据源一轮同步的结果。

    Attributes:
        listed: 远端文件数（去重后）
        downloaded: 本轮下载成功的文件名
        failed: 本轮下载失败的文件名
        pruned: 本轮删除的孤儿文件名
        published: 本轮发布到缓存目录的文件名
    """

    listed: int = 0
    downloaded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    published: list[str] = field(default_factory=list)


def flare_output_name(group_key: str) -> str:
    return f"flare_anim_{group_key}.mp4"


class SyncOrchestrator:
    """
    串联解析、diff、下载、清理、渲染与 manifest 生成。

    `run_full_cycle` / `run_mini_cycle` 可以在任何时刻、从任何线程调用。
    """

    def __init__(
        self,
        cfg: Config,
        client: HttpClient,
        encoder: Encoder,
        *,
        sources: list[SourceConfig],
        charts: list[ChartDownload] | None = None,
        pinned: list[PinnedResource] | None = None,
        dashboard_filenames: list[str] | None = None,
    ) -> None:
        self._cfg = cfg
        self._client = client
        self._encoder = encoder
        self._sources = list(sources)
        self._charts = list(CHART_DOWNLOADS if charts is None else charts)
        self._pinned = list(PINNED_RESOURCES if pinned is None else pinned)
        self._dashboard_filenames = (
            [c.filename for c in MANUAL_DOWNLOADS] if dashboard_filenames is None else list(dashboard_filenames)
        )
        self._full_lock = threading.Lock()
        self._mini_lock = threading.Lock()
        # 完整同步和轻量同步都会写快照源目录与 meta.json
        self._snapshot_lock = threading.Lock()
        self._manifest_lock = threading.Lock()

    @property
    def cache_dir(self) -> Path:
        return self._cfg.cache_dir

    def work_dir(self, source: SourceConfig) -> Path:
        return self._cfg.data_dir / source.id

    def is_full_running(self) -> bool:
        return self._full_lock.locked()

    # ---- cycles ---------------------------------------------------------

    def run_full_cycle(self) -> bool:
        """
        完整同步一轮。

        Returns:
            True 表示本次触发实际执行了；False 表示已有一轮在跑，本次被丢弃
        """

        if not self._full_lock.acquire(blocking=False):
            LOG.warning("full sync already running; trigger dropped")
            return False
        try:
            t0 = time.perf_counter()
            LOG.info("full sync start")
            self._step("DONKI", self.fetch_event_feed)
            self._step("CHARTS", self.refresh_charts)
            for source in self._sources:
                if not source.snapshot:
                    self._step(source.tag, self.sync_source, source)
            for source in self._sources:
                if source.snapshot:
                    self._step(source.tag, self.refresh_snapshot, source)
            self._step("META", self.write_manifest)
            dt_ms = int((time.perf_counter() - t0) * 1000)
            LOG.info(f"full sync complete ms={dt_ms}")
        finally:
            self._full_lock.release()
        return True

    def run_mini_cycle(self) -> bool:
        """
        轻量同步：只刷新快照源（延迟最低的数据源）并重建 manifest。

        Returns:
            False 表示上一轮轻量同步还没结束，本次被丢弃
        """

        if not self._mini_lock.acquire(blocking=False):
            LOG.warning("mini sync already running; trigger dropped")
            return False
        try:
            LOG.info("mini sync start")
            for source in self._sources:
                if source.snapshot:
                    self._step(source.tag, self.refresh_snapshot, source)
            self._step("META", self.write_manifest)
        finally:
            self._mini_lock.release()
        return True

    def _step(self, tag: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception:  # noqa: BLE001
            LOG.exception(f"source={tag} step failed")
            return None

    # ---- steps ----------------------------------------------------------

    def fetch_event_feed(self) -> bool:
        """
        抓取 DONKI CME 事件数据（最近 lookback_days 天），原样写入缓存目录。

        失败时保留上一份缓存文件。
        """

        end = datetime.now(tz=timezone.utc).date()
        start = end - timedelta(days=self._cfg.lookback_days)
        url = EVENT_FEED_URL.format(start=start.isoformat(), end=end.isoformat(), api_key=self._cfg.api_key)
        try:
            res = self._client.fetch_text(url)
            json.loads(res.text)
        except Exception as exc:  # noqa: BLE001
            LOG.warning(f"source=DONKI fetch failed error={exc}")
            return False

        ensure_dir(self.cache_dir)
        out = self.cache_dir / EVENT_FEED_FILENAME
        tmp = self.cache_dir / (EVENT_FEED_FILENAME + ".tmp")
        tmp.write_text(res.text, encoding="utf-8")
        tmp.replace(out)
        LOG.info(f"source=DONKI saved file={EVENT_FEED_FILENAME}")
        return True

    def refresh_charts(self) -> BatchResult:
        """
        覆盖下载全部静态图表并发布（每个 key 只有一个当前版本）。
        """

        LOG.info("source=CHARTS updating static charts")
        chart_dir = ensure_dir(self._cfg.data_dir / CHARTS_DIR_NAME)
        items = [RemoteFrame(url=c.url, filename=c.filename) for c in self._charts]
        result = download_batch(
            self._client, "CHARTS", items, chart_dir, verbose=True, window_size=self._cfg.window_size
        )
        for c in self._charts:
            publish_file(chart_dir, c.filename, self.cache_dir)
        return result

    def refresh_snapshot(self, source: SourceConfig) -> SourceResult | None:
        """
        快照源：列出当前图片，全部重新下载并发布。
        """

        with self._snapshot_lock:
            work_dir = ensure_dir(self.work_dir(source))
            try:
                remote = build_listing(source, self._client)
            except ListingError as exc:
                LOG.error(f"source={source.tag} listing failed error={exc}")
                return None

            targets = compute_missing(remote, set())
            batch = download_batch(
                self._client, source.tag, targets, work_dir, verbose=source.verbose, window_size=self._cfg.window_size
            )
            result = SourceResult(listed=len(targets), downloaded=batch.succeeded, failed=batch.failed)
            for t in targets:
                if publish_file(work_dir, t.filename, self.cache_dir):
                    result.published.append(t.filename)
            return result

    def sync_source(self, source: SourceConfig) -> SourceResult | None:
        """
        单个帧序列数据源的一轮同步：列表 -> diff -> 下载 -> 清理 -> 渲染 -> 发布。

        列表失败时直接返回 None，本地镜像不动。

        Returns:
            SourceResult 或 None
        """

        tag = source.tag
        LOG.info(f"source={tag} sync start")
        work_dir = ensure_dir(self.work_dir(source))

        try:
            remote = build_listing(source, self._client)
        except ListingError as exc:
            LOG.error(f"source={tag} listing failed, mirror untouched error={exc}")
            return None

        remote_names = {f.filename for f in remote}
        result = SourceResult(listed=len(remote_names))

        missing = compute_missing(remote, list_mirror(work_dir, source.convention))
        if missing:
            batch = download_batch(
                self._client, tag, missing, work_dir, verbose=source.verbose, window_size=self._cfg.window_size
            )
            result.downloaded = batch.succeeded
            result.failed = batch.failed
        else:
            LOG.info(f"source={tag} frames up to date")

        # 下载结束后再清理：用的是下载后的目录快照
        result.pruned = prune_orphans(work_dir, remote_names, source.convention)
        if result.pruned:
            LOG.info(f"source={tag} pruned files={len(result.pruned)}")

        if source.grouped:
            result.published = self._render_groups(source, work_dir, result)
        elif source.output_name:
            result.published = self._render_source(source, work_dir)
        return result

    def _render_source(self, source: SourceConfig, work_dir: Path) -> list[str]:
        published: list[str] = []
        frames = collect_frames(work_dir, source.convention)
        out = assemble(
            self._encoder,
            tag=source.tag,
            work_dir=work_dir,
            frames=frames,
            output_name=source.output_name,
            list_name=CONCAT_LIST_NAME,
            frame_duration=source.frame_duration,
            crf=source.crf,
            preset=self._cfg.preset,
            min_frames=source.min_frames,
        )
        if out is not None and publish_file(work_dir, out.name, self.cache_dir):
            published.append(out.name)
        if source.publish_latest_frame and frames:
            latest = frames[-1]
            if publish_file(work_dir, latest, self.cache_dir):
                published.append(latest)
        return published

    def _render_groups(self, source: SourceConfig, work_dir: Path, result: SourceResult) -> list[str]:
        """
        耀斑分组渲染：本轮有新帧/删帧的分组，以及缓存里还没有视频的分组。
        """

        keys: set[str] = set()
        for name in result.downloaded + result.pruned:
            key = flare_group_key(name)
            if key:
                keys.add(key)
        for name in collect_frames(work_dir, source.convention):
            key = flare_group_key(name)
            if key and not (self.cache_dir / flare_output_name(key)).is_file():
                keys.add(key)

        if not keys:
            return []
        LOG.info(f"source={source.tag} rendering groups={len(keys)}")

        published: list[str] = []
        for key in sorted(keys):
            frames = collect_frames(work_dir, source.convention, group_key=key)
            out = assemble(
                self._encoder,
                tag=source.tag,
                work_dir=work_dir,
                frames=frames,
                output_name=flare_output_name(key),
                list_name=f"{key}.txt",
                frame_duration=source.frame_duration,
                crf=source.crf,
                preset=self._cfg.preset,
                min_frames=source.min_frames,
            )
            if out is not None and publish_file(work_dir, out.name, self.cache_dir):
                published.append(out.name)
        return published

    def write_manifest(self) -> Path:
        with self._manifest_lock:
            return write_manifest(
                self.cache_dir,
                pinned=self._pinned,
                chart_filenames=self._dashboard_filenames,
            )
