from __future__ import annotations

"""
列表页解析模块（BeautifulSoup）。

三种解析方式，输出统一为 `RemoteFrame(url, filename)` 列表：
- flat：单页目录索引，`<a href>` 完整匹配固定的文件名形状
- anchor：页面里 `<img src>` / `<a href>` 引用的、位于固定路径下的图片
- recursive：目录索引递归下钻（耀斑区域），相对路径压平成文件名，避免跨目录重名

输出允许重复、无序；去重在 diff 阶段按文件名完成。
"""

import posixpath
import re
from dataclasses import dataclass
from typing import Callable, Iterator
from urllib.parse import urljoin, urlparse

from .catalog import SourceConfig
from .http_client import HttpClient


class ListingError(RuntimeError):
    """列表页抓取或解析失败；该数据源本轮跳过，本地镜像保持不动。"""


@dataclass(frozen=True)
class RemoteFrame:
    """
    远端的一帧。

    Attributes:
        url: 绝对 URL
        filename: 本地文件名
    """

    url: str
    filename: str


def _soup(html: str):
    """
    构造 BeautifulSoup 对象。

    Raises:
        RuntimeError: 未安装 bs4 依赖
    """

    try:
        from bs4 import BeautifulSoup  # type: ignore[import-not-found]
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise RuntimeError("缺少依赖 bs4：请先执行 `pip install -e .`") from exc
    return BeautifulSoup(html, "html.parser")


def _iter_links(html: str, *, with_img: bool) -> Iterator[str]:
    soup = _soup(html)
    for a in soup.find_all("a", href=True):
        yield str(a.get("href")).strip()
    if with_img:
        for img in soup.find_all("img", src=True):
            yield str(img.get("src")).strip()


_RE_GROUP_KEY = re.compile(r"^(.*?)_s\d{4}")


def flare_group_key(filename: str) -> str | None:
    """
    从耀斑帧文件名中取出区域分组 key（`<prefix>_s####` 的 `<prefix>` 部分）。

    提供方改了 `_s####` 约定时这里会静默返回 None，新文件就不再分组。
    """

    m = _RE_GROUP_KEY.match(filename)
    if not m:
        return None
    return m.group(1)


def parse_flat_listing(html: str, *, page_url: str, pattern: str, local_prefix: str) -> list[RemoteFrame]:
    """
    解析单页目录索引。

    Args:
        html: 列表页 HTML
        page_url: 列表页 URL（相对 href 的解析基准）
        pattern: href 需要完整匹配的正则
        local_prefix: 本地文件名前缀

    Returns:
        RemoteFrame 列表（保持页面顺序，可能重复）
    """

    rx = re.compile(pattern)
    frames: list[RemoteFrame] = []
    for href in _iter_links(html, with_img=False):
        if not rx.fullmatch(href):
            continue
        frames.append(RemoteFrame(url=urljoin(page_url, href), filename=local_prefix + href))
    return frames


def parse_anchor_listing(html: str, *, base_url: str, pattern: str, local_prefix: str) -> list[RemoteFrame]:
    """
    解析页面中位于固定路径下的图片引用（`<img src>`、`<a href>`）。

    `pattern` 以固定路径开头（例如 `/beacon/...`），大小写不敏感；本地文件名取 URL 路径的 basename。
    """

    rx = re.compile(pattern, re.I)
    frames: list[RemoteFrame] = []
    for ref in _iter_links(html, with_img=True):
        if not rx.fullmatch(ref):
            continue
        name = posixpath.basename(urlparse(ref).path)
        if not name:
            continue
        frames.append(RemoteFrame(url=urljoin(base_url, ref), filename=local_prefix + name))
    return frames


def _is_subdir_link(href: str) -> bool:
    if not href.endswith("/"):
        return False
    if href.startswith("/") or href.startswith("?") or "://" in href:
        return False
    if href in ("./", "../") or href.startswith("../"):
        return False
    return True


def crawl_directory(
    fetch_text: Callable[[str], str],
    *,
    root_url: str,
    rel_path: str,
    pattern: str,
) -> list[RemoteFrame]:
    """
    递归抓取目录索引（不限深度）。

    文件名为 `(rel_path + href)` 把 `/` 替换成 `_`，例如 `flares/a/b_s0001.png` -> `flares_a_b_s0001.png`。

    Args:
        fetch_text: 取页面文本的函数（url -> html）
        root_url: 根 URL（`rel_path` 相对它解析）
        rel_path: 起始相对目录（以 `/` 结尾）
        pattern: 文件 href 需要完整匹配的正则

    Returns:
        RemoteFrame 列表

    Raises:
        ListingError: 任意一级目录抓取失败
    """

    rx = re.compile(pattern, re.I)
    frames: list[RemoteFrame] = []
    visited: set[str] = set()

    def walk(rel: str) -> None:
        if rel in visited:
            return
        visited.add(rel)
        url = root_url + rel
        try:
            html = fetch_text(url)
        except Exception as exc:  # noqa: BLE001
            raise ListingError(f"directory fetch failed: {url}") from exc

        subdirs: list[str] = []
        for href in _iter_links(html, with_img=False):
            if _is_subdir_link(href):
                subdirs.append(href)
            elif "/" not in href and rx.fullmatch(href):
                frames.append(RemoteFrame(url=url + href, filename=(rel + href).replace("/", "_")))
        for sub in subdirs:
            walk(rel + sub)

    walk(rel_path)
    return frames


def build_listing(source: SourceConfig, client: HttpClient) -> list[RemoteFrame]:
    """
    按数据源的解析方式抓取并解析远端列表。

    Raises:
        ListingError: 抓取或解析失败
    """

    if source.parser == "recursive":
        return crawl_directory(
            lambda url: client.fetch_text(url).text,
            root_url=source.listing_url,
            rel_path=source.local_prefix,
            pattern=source.pattern,
        )

    try:
        html = client.fetch_text(source.listing_url).text
    except Exception as exc:  # noqa: BLE001
        raise ListingError(f"listing fetch failed: {source.listing_url}") from exc

    if source.parser == "flat":
        return parse_flat_listing(
            html, page_url=source.base_url, pattern=source.pattern, local_prefix=source.local_prefix
        )
    if source.parser == "anchor":
        return parse_anchor_listing(
            html, base_url=source.base_url, pattern=source.pattern, local_prefix=source.local_prefix
        )
    raise ListingError(f"unknown parser: {source.parser}")
