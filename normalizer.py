import re
import math
import random
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any, Union
from dataclasses import dataclass, asdict
from enum import Enum

from errors import NoMediaDataError

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "TikTok Video"
DEFAULT_MUSIC_TITLE = "Original Sound"
DEFAULT_MUSIC_AUTHOR = "Unknown Artist"
DEFAULT_AUTHOR_NAME = "Unknown User"
DEFAULT_AUTHOR_ID = "unknown"
AVATAR_ENDPOINT = "https://ui-avatars.com/api/"
MAX_FILENAME_WORDS = 14
FOLLOWER_PLACEHOLDER_RANGE = (1000, 1000000)

_UNSAFE_CHARS = re.compile(r"[^\w\s]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")


class PostType(Enum):
    VIDEO = "video"
    PHOTOS = "photos"


class QualityKind(Enum):
    HD = "hd"
    STANDARD = "standard"


@dataclass
class MediaQuality:
    kind: QualityKind
    url: str
    is_hd: bool

    @property
    def label(self) -> str:
        return "HD Quality" if self.kind == QualityKind.HD else "Standard Quality"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "url": self.url, "label": self.label, "is_hd": self.is_hd}


@dataclass
class ImageItem:
    index: int
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.index, "url": self.url, "thumbnail": self.url, "download_url": self.url}


@dataclass
class VideoDownload:
    """Synthetic slideshow video that photo posts can carry"""
    hd: str
    standard: str
    has_music: bool
    music_title: str


@dataclass
class VideoDetails:
    qualities: List[MediaQuality]
    duration: int
    cover: str
    hd_available: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qualities": [q.to_dict() for q in self.qualities],
            "duration": self.duration,
            "cover": self.cover,
            "hd_available": self.hd_available,
        }


@dataclass
class PhotoSet:
    images: List[ImageItem]
    cover: str
    video_download: Optional[VideoDownload] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images": [img.to_dict() for img in self.images],
            "count": len(self.images),
            "cover": self.cover,
            "all_images_urls": [img.url for img in self.images],
            "video_download": asdict(self.video_download) if self.video_download else None,
        }


@dataclass
class Music:
    title: str = DEFAULT_MUSIC_TITLE
    author: str = DEFAULT_MUSIC_AUTHOR
    url: str = ""
    cover: str = ""


@dataclass
class AuthorStats:
    id: str
    name: str
    avatar: str
    verified: bool
    followers: str


@dataclass
class EngagementStats:
    likes: str
    comments: str
    shares: str
    views: str
    downloads: str
    followers: str


@dataclass
class NormalizedResult:
    post_type: PostType
    title: str
    filename: str
    created: int
    music: Music
    stats: EngagementStats
    author: AuthorStats
    video: Optional[VideoDetails] = None
    photos: Optional[PhotoSet] = None

    def __post_init__(self):
        if (self.video is None) == (self.photos is None):
            raise ValueError("Exactly one of video or photos must be set")
        if self.post_type == PostType.VIDEO and self.video is None:
            raise ValueError("Video results need video details")
        if self.post_type == PostType.PHOTOS and self.photos is None:
            raise ValueError("Photo results need a photo set")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON body returned by /api/download"""
        return {
            "success": True,
            "type": self.post_type.value,
            "video": self.video.to_dict() if self.video else None,
            "photos": self.photos.to_dict() if self.photos else None,
            "music": asdict(self.music),
            "stats": asdict(self.stats),
            "author": asdict(self.author),
            "title": self.title,
            "filename": self.filename,
            "created": self.created,
        }


def placeholder_avatar(name: str = "TikTok") -> str:
    return f"{AVATAR_ENDPOINT}?name={name}&background=667eea&color=fff&size=128"


def format_count(count: Union[int, float, str, None]) -> str:
    """Abbreviate a counter: 950 -> '950', 1500 -> '1.5K', 2500000 -> '2.5M'"""
    if isinstance(count, str):
        return count
    if isinstance(count, bool) or not isinstance(count, (int, float)):
        count = 0
    elif isinstance(count, float):
        count = int(count) if count.is_integer() else count
        if not math.isfinite(count):
            count = 0
    if count <= 0:
        count = 0

    # Round half up: 1250 -> 1.3K
    value = Decimal(str(count))
    if value >= 1000000:
        return f"{(value / 1000000).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}M"
    elif value >= 1000:
        return f"{(value / 1000).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}K"
    return str(count)


def generate_filename(title: str, duration: int) -> str:
    """Build a filesystem-safe name from a title and a duration in seconds"""
    words = _UNSAFE_CHARS.sub("", str(title or DEFAULT_TITLE)).split()
    clean_title = " ".join(words[:MAX_FILENAME_WORDS]).strip()

    minutes, seconds = divmod(int(duration or 0), 60)
    time_string = f"{minutes}m{seconds}s" if minutes > 0 else f"{seconds}s"

    return _WHITESPACE.sub("_", f"{clean_title}_{time_string}")


def extract_qualities(data: Dict[str, Any]) -> List[MediaQuality]:
    """HD first (hdplay, falling back to play), then play if it differs"""
    qualities = []
    hd_url = data.get("hdplay") or data.get("play")
    if hd_url:
        qualities.append(MediaQuality(QualityKind.HD, hd_url, True))

    play_url = data.get("play")
    if play_url and play_url != hd_url:
        qualities.append(MediaQuality(QualityKind.STANDARD, play_url, False))
    return qualities


def extract_images(images: List[str]) -> List[ImageItem]:
    return [ImageItem(index=i, url=url) for i, url in enumerate(images, start=1)]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_verified(value: Any) -> bool:
    return value is True or (_is_number(value) and value == 1)


def _is_present(value: Any) -> bool:
    # Empty objects and lists count as present
    return isinstance(value, (dict, list)) or bool(value)


def _text(value: Any, default: str) -> str:
    if isinstance(value, str):
        return value or default
    if _is_number(value) and value:
        return str(value)
    return default


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _non_negative_int(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def normalize(payload: Dict[str, Any], rng=random) -> NormalizedResult:
    """Reshape a raw extraction-API payload into a NormalizedResult"""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        upstream_msg = payload.get("msg") if isinstance(payload, dict) else None
        logger.warning(f"Upstream payload has no data object (msg={upstream_msg!r})")
        raise NoMediaDataError()

    images = data.get("images")
    is_photo_post = isinstance(images, list) and len(images) > 0

    title = _text(data.get("title"), DEFAULT_TITLE)
    duration = _non_negative_int(data.get("duration"))
    music_info = _as_dict(data.get("music_info"))
    author_info = _as_dict(data.get("author"))

    music = Music(
        title=music_info.get("title") or DEFAULT_MUSIC_TITLE,
        author=music_info.get("author") or DEFAULT_MUSIC_AUTHOR,
        url=music_info.get("play") or "",
        cover=music_info.get("cover") or "",
    )

    # Cosmetic placeholder when the upstream omits the follower count
    follower_count = author_info.get("follower_count") or rng.randint(*FOLLOWER_PLACEHOLDER_RANGE)
    followers = format_count(follower_count)

    stats = EngagementStats(
        likes=format_count(data.get("digg_count")),
        comments=format_count(data.get("comment_count")),
        shares=format_count(data.get("share_count")),
        views=format_count(data.get("play_count")),
        downloads=format_count(data.get("download_count")),
        followers=followers,
    )
    author = AuthorStats(
        id=author_info.get("unique_id") or DEFAULT_AUTHOR_ID,
        name=author_info.get("nickname") or DEFAULT_AUTHOR_NAME,
        avatar=author_info.get("avatar") or placeholder_avatar(),
        verified=_is_verified(author_info.get("verified")),
        followers=followers,
    )

    video = None
    photos = None
    if is_photo_post:
        items = extract_images(images)
        video_download = None
        if data.get("play"):
            video_download = VideoDownload(
                hd=data.get("hdplay") or data["play"],
                standard=data["play"],
                has_music=_is_present(data.get("music_info")),
                music_title=music.title,
            )
        photos = PhotoSet(
            images=items,
            cover=items[0].url if items else data.get("cover") or "",
            video_download=video_download,
        )
    else:
        qualities = extract_qualities(data)
        video = VideoDetails(
            qualities=qualities,
            duration=duration,
            cover=data.get("cover") or placeholder_avatar(),
            hd_available=bool(qualities),
        )

    return NormalizedResult(
        post_type=PostType.PHOTOS if is_photo_post else PostType.VIDEO,
        title=title,
        filename=generate_filename(title, duration),
        created=_non_negative_int(data.get("create_time")),
        music=music,
        stats=stats,
        author=author,
        video=video,
        photos=photos,
    )
