from __future__ import annotations

"""
命令行入口（CLI）。

提供的子命令：
- sync：执行一轮完整同步（事件数据、静态图表、各帧序列数据源、快照源、manifest）
- mini-sync：只刷新快照源（STEREO）并重建 manifest
- meta：只根据缓存目录现状重建 manifest
- run：常驻运行，按配置的间隔周期触发完整同步与轻量同步

设计要点：
- 同步入口幂等、可重复执行；外部 cron 直接调用 sync / mini-sync 与 run 效果一致
- 发布缓存目录由外部静态文件服务器对外提供，这里只负责写文件与 meta.json
"""

import argparse
import logging
import threading

from .assembler import FfmpegEncoder
from .catalog import MANIFEST_FILENAME, select_sources
from .config import Config, load_config
from .http_client import HttpClient
from .orchestrator import SyncOrchestrator
from .scheduler import PeriodicTrigger


LOG = logging.getLogger("solar_mirror")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(message)s",
    )


def _make_client(cfg: Config) -> HttpClient:
    return HttpClient(
        user_agent=cfg.user_agent,
        timeout_seconds=cfg.timeout_seconds,
        retries=cfg.retries,
        sleep_seconds=cfg.sleep_seconds,
    )


def build_orchestrator(cfg: Config) -> SyncOrchestrator:
    """
    根据配置构造 SyncOrchestrator（真实 HTTP 客户端 + ffmpeg 编码器）。
    """

    cfg.cache_dir.mkdir(parents=True, exist_ok=True)
    cfg.data_dir.mkdir(parents=True, exist_ok=True)
    return SyncOrchestrator(
        cfg,
        _make_client(cfg),
        FfmpegEncoder(cfg.ffmpeg),
        sources=select_sources(cfg.enabled_sources),
    )


def cmd_sync(args: argparse.Namespace) -> int:
    """子命令：sync"""

    orch = build_orchestrator(load_config(args.config))
    orch.run_full_cycle()
    return 0


def cmd_mini_sync(args: argparse.Namespace) -> int:
    """子命令：mini-sync"""

    orch = build_orchestrator(load_config(args.config))
    orch.run_mini_cycle()
    return 0


def cmd_meta(args: argparse.Namespace) -> int:
    """子命令：meta"""

    orch = build_orchestrator(load_config(args.config))
    path = orch.write_manifest()
    print(f"manifest: {path}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """
    子命令：run

    功能：
    - 缓存目录里还没有 meta.json 且 schedule.sync_on_start 为真时，先跑一轮完整同步
    - 启动两个周期触发器（完整同步 / 轻量同步），直到 Ctrl-C
    """

    cfg = load_config(args.config)
    orch = build_orchestrator(cfg)

    if cfg.sync_on_start and not (cfg.cache_dir / MANIFEST_FILENAME).exists():
        LOG.info("no manifest yet; running initial full sync")
        orch.run_full_cycle()

    triggers = [
        PeriodicTrigger("FullSync", cfg.full_minutes * 60, orch.run_full_cycle),
        PeriodicTrigger("MiniSync", cfg.mini_minutes * 60, orch.run_mini_cycle),
    ]
    for t in triggers:
        t.start()
    LOG.info(f"scheduler started full_minutes={cfg.full_minutes} mini_minutes={cfg.mini_minutes} cache_dir={cfg.cache_dir}")

    stop = threading.Event()
    try:
        while not stop.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        LOG.info("stopping")
    finally:
        for t in triggers:
            t.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    构建 argparse 命令行解析器。

    Returns:
        ArgumentParser
    """

    p = argparse.ArgumentParser(prog="solar-mirror")
    p.add_argument("--config", default="config.yaml", help="YAML 配置文件路径（默认：config.yaml）")
    p.add_argument("--log-level", help="日志级别（DEBUG/INFO/WARNING/ERROR；默认取配置 logging.level）")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_sync = sub.add_parser("sync", help="run one full sync cycle")
    p_sync.set_defaults(func=cmd_sync)

    p_mini = sub.add_parser("mini-sync", help="refresh the low-latency source and the manifest")
    p_mini.set_defaults(func=cmd_mini_sync)

    p_meta = sub.add_parser("meta", help="regenerate meta.json from the cache directory")
    p_meta.set_defaults(func=cmd_meta)

    p_run = sub.add_parser("run", help="run both cycles periodically until interrupted")
    p_run.set_defaults(func=cmd_run)

    return p


def main(argv: list[str] | None = None) -> int:
    """
    CLI 主入口。

    Args:
        argv: 参数列表（None 表示使用 sys.argv）

    Returns:
        进程退出码（0 表示成功）
    """

    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = load_config(args.config)
    _setup_logging(str(args.log_level or cfg.log_level))
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
