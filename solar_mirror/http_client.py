from __future__ import annotations

"""
HTTP 请求封装（requests）。

职责：
- 统一 UA 等请求头与单次请求超时
- 列表页/JSON 抓取：有限次重试 + 指数退避
- 二进制下载：流式写入 `.part` 临时文件，校验非空后原子替换

下载本身不重试：失败的文件不会进入本地镜像，下一轮同步自然会再次尝试。
"""

import json
import random
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests


RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class EmptyDownloadError(RuntimeError):
    """下载结果为 0 字节（已删除临时文件）。"""


@dataclass(frozen=True)
class FetchResult:
    """
    单次抓取结果。

    Attributes:
        url: 请求的 URL
        status_code: HTTP 状态码
        text: 响应体文本（requests 基于响应头推断编码并解码）
    """

    url: str
    status_code: int
    text: str


class HttpClient:
    """
    简单的 HTTP 客户端（带重试 + 限速）。

    批量下载会在多个线程里同时调用 `download`，所以 session 按线程隔离。
    """

    def __init__(
        self,
        *,
        user_agent: str,
        timeout_seconds: int,
        retries: int = 1,
        sleep_seconds: float = 0.0,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._retries = max(1, int(retries))
        self._sleep_seconds = sleep_seconds
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "gzip",
        }
        self._tls = threading.local()

    def _session(self) -> requests.Session:
        """
        获取当前线程绑定的 requests.Session。

        requests.Session 不保证线程安全；多线程场景需要每线程一个 session。
        """

        sess = getattr(self._tls, "session", None)
        if sess is None:
            sess = requests.Session()
            sess.headers.update(self._headers)
            self._tls.session = sess
        return sess

    def fetch_text(self, url: str) -> FetchResult:
        """
        抓取一个 URL 并返回文本结果（列表页、索引页）。

        Args:
            url: 绝对 URL

        Returns:
            FetchResult

        Raises:
            RuntimeError: 多次重试仍失败时抛出（__cause__ 为最后一次异常）
        """

        last_exc: Exception | None = None
        base_backoff_seconds = max(0.5, float(self._sleep_seconds))
        max_backoff_seconds = 8.0

        for attempt in range(1, self._retries + 1):
            try:
                resp = self._session().get(url, timeout=self._timeout_seconds)
                if resp.status_code in RETRYABLE_STATUS_CODES and attempt < self._retries:
                    delay = min(max_backoff_seconds, base_backoff_seconds * (2 ** (attempt - 1)))
                    time.sleep(delay + random.uniform(0.0, delay * 0.2))
                    continue
                resp.raise_for_status()
                if self._sleep_seconds:
                    time.sleep(self._sleep_seconds)
                return FetchResult(url=url, status_code=resp.status_code, text=resp.text)
            except requests.RequestException as exc:
                last_exc = exc
                if isinstance(exc, requests.exceptions.HTTPError):
                    status_code = getattr(getattr(exc, "response", None), "status_code", None)
                    # Non-retryable HTTP errors: give up right away.
                    if status_code is not None and int(status_code) not in RETRYABLE_STATUS_CODES:
                        break
                if attempt < self._retries:
                    delay = min(max_backoff_seconds, base_backoff_seconds * (2 ** (attempt - 1)))
                    time.sleep(delay + random.uniform(0.0, delay * 0.2))

        raise RuntimeError(f"fetch failed: {url}") from last_exc

    def fetch_json(self, url: str) -> Any:
        res = self.fetch_text(url)
        return json.loads(res.text)

    def download(self, url: str, out_path: Path) -> int:
        """
        流式下载到 `out_path`。

        先写 `<name>.part`，确认非空后再替换正式文件，所以正式文件要么是旧版本、要么是完整的新版本。

        Args:
            url: 资源 URL
            out_path: 目标文件

        Returns:
            写入的字节数

        Raises:
            requests.RequestException: 网络错误、超时、非 2xx
            EmptyDownloadError: 响应体为空
            OSError: 写盘失败
        """

        out_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = out_path.with_name(out_path.name + ".part")
        size = 0
        try:
            with self._session().get(url, stream=True, timeout=self._timeout_seconds) as resp:
                resp.raise_for_status()
                with tmp_path.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=1024 * 256):
                        if not chunk:
                            continue
                        f.write(chunk)
                        size += len(chunk)
            if tmp_path.stat().st_size == 0:
                raise EmptyDownloadError(f"empty response: {url}")
            tmp_path.replace(out_path)
        finally:
            tmp_path.unlink(missing_ok=True)
        return size
