from __future__ import annotations

"""
进程内的周期触发器。

`run` 子命令用两个触发器分别驱动完整同步与轻量同步；
同步入口本身防重入，用 cron 等外部调度器直接调用 `sync` / `mini-sync` 也一样安全。
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional


LOG = logging.getLogger("solar_mirror.scheduler")


class PeriodicTrigger:
    def __init__(self, name: str, interval_seconds: float, fn: Callable[[], Any]) -> None:
        self.name = name
        self.interval_seconds = max(0.01, float(interval_seconds))
        self.fn = fn

        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._status: Dict[str, Any] = {
            "running": False,
            "runs": 0,
            "last_run_at": 0,
            "last_error": "",
        }

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._status)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 3.0) -> None:
        self._stop.set()
        t = self._thread
        if t and t.is_alive():
            t.join(timeout=timeout)

    def trigger_once(self) -> None:
        err = ""
        try:
            self.fn()
        except Exception as e:  # noqa: BLE001
            err = str(e)
            LOG.exception(f"trigger={self.name} run failed")
        finally:
            with self._lock:
                self._status["runs"] += 1
                self._status["last_run_at"] = int(time.time())
                self._status["last_error"] = err

    def _loop(self) -> None:
        with self._lock:
            self._status["running"] = True
        try:
            # 先等一个周期：启动时的首轮同步由调用方决定
            while not self._stop.wait(timeout=self.interval_seconds):
                self.trigger_once()
        finally:
            with self._lock:
                self._status["running"] = False
