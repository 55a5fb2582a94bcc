from __future__ import annotations

"""
配置加载模块（YAML）。

所有运行参数集中在一个 YAML 文件里（默认 `config.yaml`），不读取环境变量：
- 目录：发布缓存目录（静态文件服务器的根）与各数据源的工作目录根
- HTTP 相关参数（UA、超时、重试、限速）
- 批量下载窗口、ffmpeg 参数、事件数据 API、调度间隔

所有字段都是可选的，缺省值即线上使用的取值。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0 Safari/537.36"


@dataclass(frozen=True)
class Config:
    """
    同步服务运行配置。

    Attributes:
        cache_dir: 发布缓存目录（文件服务器直接对外提供的目录，meta.json 也写在这里）
        data_dir: 各数据源工作目录的根（`<data_dir>/<source_id>/`）
        user_agent: HTTP User-Agent
        timeout_seconds: 单次请求超时时间（秒），下载与列表抓取共用
        retries: 列表/JSON 抓取的尝试次数（二进制下载不重试，失败留给下一轮）
        sleep_seconds: 每次列表请求后的固定 sleep（秒）
        window_size: 批量下载的并发窗口大小
        ffmpeg: ffmpeg 可执行文件
        preset: x264 preset
        api_key: 事件数据 API（DONKI）的 key
        lookback_days: 事件数据回看天数
        full_minutes: 完整同步周期（分钟）
        mini_minutes: 轻量同步周期（分钟）
        sync_on_start: `run` 启动时如果还没有 meta.json 是否先跑一轮完整同步
        enabled_sources: 只启用这些数据源（None 表示全部）
        log_level: 日志级别（DEBUG/INFO/WARNING/ERROR）
    """

    cache_dir: Path
    data_dir: Path
    user_agent: str
    timeout_seconds: int
    retries: int
    sleep_seconds: float
    window_size: int
    ffmpeg: str
    preset: str
    api_key: str
    lookback_days: int
    full_minutes: int
    mini_minutes: int
    sync_on_start: bool
    enabled_sources: tuple[str, ...] | None
    log_level: str


def _section(obj: dict[str, Any], key: str) -> dict[str, Any]:
    v = obj.get(key) or {}
    if not isinstance(v, dict):
        raise RuntimeError(f"配置项类型错误：{key} 需要 map/object")
    return v


def _optional_str(obj: dict[str, Any], key: str, default: str) -> str:
    """
    从 dict 中读取可选字符串配置项。

    Args:
        obj: YAML 对象（dict）
        key: 字段名
        default: 缺省值

    Returns:
        字符串（为空时回退 default）

    Raises:
        RuntimeError: 字段类型错误
    """

    v = obj.get(key)
    if v is None:
        return default
    if not isinstance(v, str):
        raise RuntimeError(f"配置项类型错误：{key} 需要 string")
    return v.strip() or default


def _optional_int(obj: dict[str, Any], key: str, default: int) -> int:
    v = obj.get(key)
    if v is None:
        return default
    # bool 是 int 的子类，这里显式拒绝
    if isinstance(v, bool) or not isinstance(v, int):
        raise RuntimeError(f"配置项类型错误：{key} 需要 int")
    return v


def _optional_float(obj: dict[str, Any], key: str, default: float) -> float:
    """
    从 dict 中读取可选 float 配置项。

    允许 YAML 用整数写小数配置（例如 `sleep_seconds: 1`），会自动转为 float。
    """

    v = obj.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        raise RuntimeError(f"配置项类型错误：{key} 需要 float")
    if isinstance(v, int):
        return float(v)
    if not isinstance(v, float):
        raise RuntimeError(f"配置项类型错误：{key} 需要 float")
    return v


def _optional_bool(obj: dict[str, Any], key: str, default: bool) -> bool:
    v = obj.get(key)
    if v is None:
        return default
    if not isinstance(v, bool):
        raise RuntimeError(f"配置项类型错误：{key} 需要 bool")
    return v


def _resolve_dir(raw: str, base_dir: Path) -> Path:
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = base_dir / p
    return p


def parse_config(data: dict[str, Any], base_dir: Path) -> Config:
    """
    校验已经加载好的配置 dict，生成 `Config`。

    Args:
        data: YAML 根对象
        base_dir: 相对路径的解析基准（通常是配置文件所在目录）

    Returns:
        Config

    Raises:
        RuntimeError: 字段类型错误
    """

    if not isinstance(data, dict):
        raise RuntimeError("配置文件格式错误：根节点必须是 YAML map/object")

    paths = _section(data, "paths")
    http = _section(data, "http")
    download = _section(data, "download")
    encoder = _section(data, "encoder")
    event_feed = _section(data, "event_feed")
    schedule = _section(data, "schedule")
    sources = _section(data, "sources")
    logging_cfg = _section(data, "logging")

    enabled_v = sources.get("enabled")
    enabled: tuple[str, ...] | None = None
    if enabled_v is not None:
        if not isinstance(enabled_v, list):
            raise RuntimeError("配置项类型错误：sources.enabled 需要 list")
        names: list[str] = []
        for s in enabled_v:
            if not isinstance(s, str) or not s.strip():
                raise RuntimeError("配置项类型错误：sources.enabled 每个元素需要 string")
            names.append(s.strip())
        enabled = tuple(names)

    return Config(
        cache_dir=_resolve_dir(_optional_str(paths, "cache_dir", "public/cache"), base_dir),
        data_dir=_resolve_dir(_optional_str(paths, "data_dir", "data_storage"), base_dir),
        user_agent=_optional_str(http, "user_agent", DEFAULT_USER_AGENT),
        timeout_seconds=max(1, _optional_int(http, "timeout_seconds", 30)),
        retries=max(1, _optional_int(http, "retries", 1)),
        sleep_seconds=max(0.0, _optional_float(http, "sleep_seconds", 0.0)),
        window_size=max(1, _optional_int(download, "window_size", 5)),
        ffmpeg=_optional_str(encoder, "ffmpeg", "ffmpeg"),
        preset=_optional_str(encoder, "preset", "fast"),
        api_key=_optional_str(event_feed, "api_key", "DEMO_KEY"),
        lookback_days=max(1, _optional_int(event_feed, "lookback_days", 30)),
        full_minutes=max(1, _optional_int(schedule, "full_minutes", 30)),
        mini_minutes=max(1, _optional_int(schedule, "mini_minutes", 10)),
        sync_on_start=_optional_bool(schedule, "sync_on_start", True),
        enabled_sources=enabled,
        log_level=_optional_str(logging_cfg, "level", "INFO"),
    )


def load_config(path: str) -> Config:
    """
    从 YAML 文件读取并校验配置，生成 `Config`。

    Args:
        path: 配置文件路径（例如 `config.yaml`）

    Returns:
        Config: 解析后的配置对象

    Raises:
        RuntimeError: 配置文件格式/类型错误
        FileNotFoundError: 配置文件不存在
    """

    p = Path(path)
    raw = p.read_text(encoding="utf-8")
    # 空文件等价于全部取缺省值
    data = yaml.safe_load(raw)
    if data is None:
        data = {}
    return parse_config(data, p.resolve().parent)
