from __future__ import annotations

import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from solar_mirror.assembler import EncodeError, EncodeRequest  # noqa: E402
from solar_mirror.config import Config, parse_config  # noqa: E402
from solar_mirror.http_client import FetchResult  # noqa: E402


@dataclass
class FakeClient:
    """In-memory stand-in for HttpClient: text pages and binary files keyed by URL."""

    pages: dict[str, str] = field(default_factory=dict)
    files: dict[str, bytes] = field(default_factory=dict)
    fetched: list[str] = field(default_factory=list)
    downloaded: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def fetch_text(self, url: str) -> FetchResult:
        with self._lock:
            self.fetched.append(url)
        if url in self.pages:
            return FetchResult(url=url, status_code=200, text=self.pages[url])
        for prefix, text in self.pages.items():
            if prefix.endswith("*") and url.startswith(prefix[:-1]):
                return FetchResult(url=url, status_code=200, text=text)
        raise RuntimeError(f"fetch failed: {url}")

    def download(self, url: str, out_path: Path) -> int:
        with self._lock:
            self.downloaded.append(url)
        if url not in self.files:
            raise RuntimeError(f"404: {url}")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(self.files[url])
        return len(self.files[url])


@dataclass
class FakeEncoder:
    """Records encode requests; writes a small output file unless told to fail."""

    fail: bool = False
    calls: list[EncodeRequest] = field(default_factory=list)

    def encode(self, request: EncodeRequest) -> None:
        self.calls.append(request)
        if self.fail:
            raise EncodeError("ffmpeg failed (rc=1): boom")
        request.output.write_bytes(b"video:" + ",".join(p.name for p in request.frames).encode())


@pytest.fixture()
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture()
def cfg(tmp_path: Path) -> Config:
    return parse_config(
        {
            "paths": {"cache_dir": "cache", "data_dir": "data"},
            "event_feed": {"api_key": "TEST_KEY"},
        },
        tmp_path,
    )


def listing_html(*hrefs: str) -> str:
    links = "\n".join(f'<a href="{h}">{h}</a>' for h in hrefs)
    return f"<html><body><pre>{links}</pre></body></html>"


@pytest.fixture()
def make_listing():
    return listing_html
