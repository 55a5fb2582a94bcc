from __future__ import annotations

"""
数据源与静态资源目录。

- SOURCES：需要增量镜像的帧序列数据源（以及只做快照刷新的 STEREO）
- CHART_DOWNLOADS：每轮直接覆盖的单例图表（固定文件名，无 diff/prune）
- PINNED_RESOURCES：manifest 里固定展示的资源
"""

from dataclasses import dataclass


NOAA_BASE_URL = "https://services.swpc.noaa.gov/images/"
STEREO_PAGE_URL = "https://stereo-ssc.nascom.nasa.gov/beacon/beacon_secchi.shtml"
STEREO_BASE_URL = "https://stereo-ssc.nascom.nasa.gov"
GONG_URL = "https://farside.nso.edu/calib_gallery.html"
GONG_BASE = "https://farside.nso.edu"

EVENT_FEED_URL = "https://api.nasa.gov/DONKI/CME?startDate={start}&endDate={end}&api_key={api_key}"
EVENT_FEED_FILENAME = "donki.json"
MANIFEST_FILENAME = "meta.json"


@dataclass(frozen=True)
class FrameConvention:
    """
    数据源帧文件的命名约定：前缀 + 扩展名。

    工作目录里不符合约定的文件（渲染出的 mp4、ffmpeg 列表文件）永远不会被当成帧或孤儿。
    """

    prefix: str
    suffixes: tuple[str, ...]

    def matches(self, filename: str) -> bool:
        return filename.startswith(self.prefix) and filename.lower().endswith(self.suffixes)


@dataclass(frozen=True)
class SourceConfig:
    """
    单个远端数据源。

    Attributes:
        id: 数据源 id（同时是工作目录名）
        tag: 日志标签
        listing_url: 列表页 URL（recursive 模式下为根目录 URL）
        parser: 列表解析方式：flat / anchor / recursive
        pattern: 匹配远端文件的正则
        base_url: 相对链接的解析基准
        local_prefix: 本地文件名前缀（拼在远端 basename 前面；recursive 模式下是起始相对目录）
        convention: 本地帧命名约定
        frame_duration: 每帧显示时长（秒）
        output_name: 输出视频文件名（None 表示不渲染视频）
        crf: x264 crf
        min_frames: 渲染所需的最少帧数
        grouped: 是否按耀斑区域分组渲染（flare group）
        publish_latest_frame: 是否额外发布最新一帧
        snapshot: 快照源：每轮全量下载并发布，不做 diff/prune
        verbose: 下载进度是否逐文件输出
    """

    id: str
    tag: str
    listing_url: str
    parser: str
    pattern: str
    base_url: str
    local_prefix: str
    convention: FrameConvention
    frame_duration: float = 0.1
    output_name: str | None = None
    crf: int = 20
    min_frames: int = 1
    grouped: bool = False
    publish_latest_frame: bool = False
    snapshot: bool = False
    verbose: bool = False


@dataclass(frozen=True)
class ChartDownload:
    url: str
    filename: str


@dataclass(frozen=True)
class PinnedResource:
    id: str
    name: str
    category: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "category": self.category}


SOURCES: list[SourceConfig] = [
    SourceConfig(
        id="enlil",
        tag="ENLIL",
        listing_url=NOAA_BASE_URL + "animations/enlil/",
        parser="flat",
        pattern=r"enlil_com2_[^\"/]+\.jpg",
        base_url=NOAA_BASE_URL + "animations/enlil/",
        local_prefix="enlil_",
        convention=FrameConvention("enlil_", (".jpg",)),
        frame_duration=0.1,
        output_name="enlil_anim.mp4",
    ),
    SourceConfig(
        id="ccor1",
        tag="CCOR1",
        listing_url=NOAA_BASE_URL + "animations/ccor1/",
        parser="flat",
        pattern=r"\d{8}_\d{4}_ccor1_1024by960\.jpg",
        base_url=NOAA_BASE_URL + "animations/ccor1/",
        local_prefix="ccor1_",
        convention=FrameConvention("ccor1_", (".jpg",)),
        frame_duration=0.08,
        output_name="ccor1_anim.mp4",
    ),
    SourceConfig(
        id="drap",
        tag="DRAP",
        listing_url=NOAA_BASE_URL + "animations/d-rap/global/",
        parser="flat",
        pattern=r"SWX_DRAP20_C_SWPC_\d+_GLOBAL\.png",
        base_url=NOAA_BASE_URL + "animations/d-rap/global/",
        local_prefix="drap_anim_",
        convention=FrameConvention("drap_anim_", (".png",)),
        frame_duration=0.1,
        output_name="drap_global_anim.mp4",
    ),
    SourceConfig(
        id="gong",
        tag="GONG",
        listing_url=GONG_URL,
        parser="anchor",
        pattern=r"/oQR/fqg/[^\"]+\.jpg",
        base_url=GONG_BASE,
        local_prefix="gong_",
        convention=FrameConvention("gong_", (".jpg",)),
        frame_duration=0.15,
        output_name="gong_anim.mp4",
        publish_latest_frame=True,
    ),
    SourceConfig(
        id="flares",
        tag="FLARES",
        listing_url=NOAA_BASE_URL,
        parser="recursive",
        pattern=r"[^\"]+\.(?:png|jpg)",
        base_url=NOAA_BASE_URL,
        local_prefix="flares/",
        convention=FrameConvention("flares_", (".png", ".jpg")),
        frame_duration=0.15,
        crf=23,
        min_frames=5,
        grouped=True,
    ),
    SourceConfig(
        id="stereo",
        tag="STEREO",
        listing_url=STEREO_PAGE_URL,
        parser="anchor",
        pattern=r"/beacon/[^\"]+\.(?:jpg|gif)",
        base_url=STEREO_BASE_URL,
        local_prefix="stereo_",
        convention=FrameConvention("stereo_", (".jpg", ".gif")),
        snapshot=True,
        verbose=True,
    ),
]


@dataclass(frozen=True)
class NasaResource:
    id: str
    name: str
    jpg: str
    gif: str | None = None


NASA_RESOURCES: list[NasaResource] = [
    NasaResource("lasco_c2", "LASCO C2 (Red)", "https://sohowww.nascom.nasa.gov/data/realtime/c2/1024/latest.jpg", "https://sohowww.nascom.nasa.gov/data/LATEST/current_c2.gif"),
    NasaResource("lasco_c3", "LASCO C3 (Blue)", "https://sohowww.nascom.nasa.gov/data/realtime/c3/1024/latest.jpg", "https://sohowww.nascom.nasa.gov/data/LATEST/current_c3.gif"),
    NasaResource("sdo_193", "SDO 193", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_0193.jpg"),
    NasaResource("sdo_304", "SDO 304", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_0304.jpg"),
    NasaResource("sdo_335", "SDO 335", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_0335.jpg"),
    NasaResource("sdo_211", "SDO 211", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_0211.jpg"),
    NasaResource("sdo_171", "SDO 171", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_0171.jpg"),
    NasaResource("hmi_mag", "HMI Magnetogram", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_HMIB.jpg"),
    NasaResource("hmi_ic", "HMI Visible Sunspots", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_HMII.jpg"),
    NasaResource("hmi_iic", "HMI Continuum", "https://sdo.gsfc.nasa.gov/assets/img/latest/latest_2048_HMIIC.jpg"),
]


def _manual_downloads() -> list[ChartDownload]:
    sdo = "https://sdo.gsfc.nasa.gov/assets/img/latest/mpeg/"
    items = [
        # SDO MP4s
        ChartDownload(sdo + "latest_1024_HMIB.mp4", "sdo_hmib.mp4"),
        ChartDownload(sdo + "latest_1024_HMIBC.mp4", "sdo_hmibc.mp4"),
        ChartDownload(sdo + "latest_1024_HMII.mp4", "sdo_hmii.mp4"),
        ChartDownload(sdo + "latest_1024_0094.mp4", "latest_094.mp4"),
        ChartDownload(sdo + "latest_1024_0171.mp4", "latest_171.mp4"),
        ChartDownload(sdo + "latest_1024_0131.mp4", "latest_131.mp4"),
        ChartDownload(sdo + "latest_1024_0193.mp4", "latest_193.mp4"),
        # NOAA dashboard
        ChartDownload(NOAA_BASE_URL + "swx-overview-large.gif", "swx-overview-large.gif"),
        ChartDownload(NOAA_BASE_URL + "station-k-index.png", "station-k-index.png"),
        ChartDownload(NOAA_BASE_URL + "aurora-forecast-northern-hemisphere.jpg", "aurora-forecast-northern-hemisphere.jpg"),
        ChartDownload(NOAA_BASE_URL + "synoptic-map.jpg", "synoptic-map.jpg"),
        # ACE
        ChartDownload(NOAA_BASE_URL + "ace-mag-24-hour.gif", "ace-mag-24.gif"),
        ChartDownload(NOAA_BASE_URL + "ace-swepam-24-hour.gif", "ace-swepam-24.gif"),
        ChartDownload(NOAA_BASE_URL + "ace-epam-24-hour.gif", "ace-epam-24.gif"),
        ChartDownload(NOAA_BASE_URL + "ace-sis-24-hour.gif", "ace-sis-24-hour.gif"),
        # GOES / SEAESRT
        ChartDownload(NOAA_BASE_URL + "seaesrt-space-environment.png", "seaesrt-space-environment.png"),
        ChartDownload(NOAA_BASE_URL + "seaesrt-charging-hazards.png", "seaesrt-charging-hazards.png"),
    ]
    for region in ("global", "north-pole", "south-pole"):
        items.append(ChartDownload(f"{NOAA_BASE_URL}d-rap/{region}.png", f"drap_static_{region}.png"))
        for f in ("_f05", "_f10", "_f15", "_f20", "_f25", "_f30"):
            items.append(ChartDownload(f"{NOAA_BASE_URL}d-rap/{region}{f}.png", f"drap_static_{region}{f}.png"))
    return items


# 这一组文件名在 manifest 里归为 dashboard
MANUAL_DOWNLOADS: list[ChartDownload] = _manual_downloads()


def _chart_downloads() -> list[ChartDownload]:
    items = list(MANUAL_DOWNLOADS)
    items.extend(ChartDownload(r.jpg, f"{r.id}.jpg") for r in NASA_RESOURCES)
    items.extend(ChartDownload(r.gif, f"{r.id}_anim.gif") for r in NASA_RESOURCES if r.gif)
    return items


CHART_DOWNLOADS: list[ChartDownload] = _chart_downloads()

PINNED_RESOURCES: list[PinnedResource] = [
    PinnedResource("enlil_anim.mp4", "WSA-ENLIL PREDICTION", "dashboard"),
    PinnedResource("drap_global_anim.mp4", "D-RAP GLOBAL (ANIMATION)", "ionosphere"),
    PinnedResource("sdo_hmib.mp4", "SDO MAGNETOGRAM", "dashboard"),
    PinnedResource("sdo_hmibc.mp4", "SDO MAGNETOGRAM (COLOR)", "dashboard"),
    PinnedResource("sdo_hmii.mp4", "SDO INTENSITYGRAM", "dashboard"),
    PinnedResource("swx-overview-large.gif", "SOLAR WIND (Real-Time)", "dashboard"),
    PinnedResource("station-k-index.png", "PLANETARY K-INDEX", "dashboard"),
    PinnedResource("aurora-forecast-northern-hemisphere.jpg", "AURORA BOREALIS", "dashboard"),
    PinnedResource("geospace_geospace_timeline_critical.png", "GEOSPACE TIMELINE", "dashboard"),
]


def select_sources(enabled: tuple[str, ...] | None, sources: list[SourceConfig] | None = None) -> list[SourceConfig]:
    """
    按配置 `sources.enabled` 过滤数据源（保持目录顺序）。

    Raises:
        RuntimeError: enabled 里有未知的数据源 id
    """

    all_sources = SOURCES if sources is None else sources
    if enabled is None:
        return list(all_sources)
    known = {s.id for s in all_sources}
    unknown = [s for s in enabled if s not in known]
    if unknown:
        raise RuntimeError(f"未知的数据源：{', '.join(unknown)}")
    return [s for s in all_sources if s.id in enabled]
