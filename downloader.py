import os
import re
import sys
import json
import logging
import argparse
from typing import Optional, List, Dict, Any, Callable, Iterator, Sequence
from pathlib import Path
from dataclasses import dataclass
from enum import Enum

import requests

import user_agents
from errors import (
    DownloaderError,
    ValidationError,
    TransportError,
    AllProvidersFailedError,
    DownloadFailedError,
)
from normalizer import NormalizedResult, PostType, normalize

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.environ.get('DOWNLOADER_LOG_FILE', 'downloader.log')),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


class MediaKind(Enum):
    VIDEO = "video"
    IMAGE = "image"

    @classmethod
    def from_param(cls, value: Optional[str]) -> "MediaKind":
        """Anything other than 'image' is proxied as video"""
        return cls.IMAGE if value == "image" else cls.VIDEO


@dataclass(frozen=True)
class Provider:
    name: str
    url: str
    method: str = "POST"
    origin: str = ""
    referer: str = ""


TIKWM = Provider(
    name="TikWM Pro",
    url="https://www.tikwm.com/api/",
    method="POST",
    origin="https://www.tikwm.com",
    referer="https://www.tikwm.com/",
)

ACCEPT_HEADERS = {
    MediaKind.IMAGE: "image/webp,image/apng,image/*,*/*;q=0.8",
    MediaKind.VIDEO: "video/mp4,video/webm,video/*;q=0.9,*/*;q=0.8",
}
CONTENT_TYPES = {
    MediaKind.IMAGE: "image/jpeg",
    MediaKind.VIDEO: "video/mp4",
}
EXTENSIONS = {
    MediaKind.IMAGE: "jpg",
    MediaKind.VIDEO: "mp4",
}
DEFAULT_NAMES = {
    MediaKind.IMAGE: "tiktok-image",
    MediaKind.VIDEO: "tiktok-video-hd",
}

# Quotes and control characters are not allowed in a Content-Disposition filename
_UNSAFE_HEADER_CHARS = re.compile(r'["\x00-\x1f\x7f]')


@dataclass
class DownloaderConfig:
    providers: Sequence[Provider] = (TIKWM,)
    platform_host: str = "tiktok.com"
    media_referer: str = "https://www.tiktok.com/"
    fetch_timeout: int = 15
    proxy_timeout: int = 30
    chunk_size: int = 8192


@dataclass
class MediaStream:
    """An open upstream media response, ready to be piped to a client"""
    content_type: str
    filename: str
    response: Any
    session: Any = None
    chunk_size: int = 8192

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': self.content_type,
            'Content-Disposition': self.content_disposition,
        }
        content_length = self.response.headers.get('Content-Length')
        if content_length:
            headers['Content-Length'] = content_length
        return headers

    def iter_content(self) -> Iterator[bytes]:
        for chunk in self.response.iter_content(chunk_size=self.chunk_size):
            if chunk:
                yield chunk

    def close(self):
        try:
            self.response.close()
        finally:
            if self.session is not None:
                self.session.close()


def validate_url(url: Optional[str], platform_host: str = "tiktok.com") -> str:
    """Check a source URL before any outbound call is made"""
    if not url:
        raise ValidationError("TikTok URL is required")
    if not isinstance(url, str) or platform_host not in url:
        raise ValidationError("Please enter a valid TikTok URL")
    return url


def media_filename(kind: MediaKind, display_name: Optional[str] = None, quality: Optional[str] = None) -> str:
    """Attachment name for a proxied file, extension included"""
    if display_name:
        base = display_name
    elif kind == MediaKind.IMAGE:
        base = DEFAULT_NAMES[kind]
    else:
        base = f"tiktok-video-{quality or 'hd'}"
    base = _UNSAFE_HEADER_CHARS.sub("", base).encode("latin-1", "ignore").decode("latin-1")
    return f"{base or DEFAULT_NAMES[kind]}.{EXTENSIONS[kind]}"


class TikTokDownloader:
    """Relay TikTok URLs through an extraction API and proxy the resulting media"""

    def __init__(self, config: Optional[DownloaderConfig] = None,
                 session_factory: Callable[[], Any] = requests.Session):
        self.config = config or DownloaderConfig()
        # Called once per outbound operation; cookie jars are never shared
        self.session_factory = session_factory
        if not self.config.providers:
            raise ValueError("At least one provider must be configured")

    def get_random_user_agent(self) -> str:
        return user_agents.pick_random()

    def build_provider_headers(self, provider: Provider) -> Dict[str, str]:
        """Headers sent to an extraction provider"""
        return {
            'User-Agent': self.get_random_user_agent(),
            'Content-Type': 'application/x-www-form-urlencoded',
            'Accept': 'application/json',
            'Origin': provider.origin,
            'Referer': provider.referer,
            'X-Requested-With': 'XMLHttpRequest',
        }

    def query_provider(self, session: Any, provider: Provider, source_url: str) -> Any:
        """Send one request to a provider and return its decoded JSON body"""
        try:
            response = session.request(
                provider.method,
                provider.url,
                data={'url': source_url},
                headers=self.build_provider_headers(provider),
                timeout=self.config.fetch_timeout,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timed out after {self.config.fetch_timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(str(e)) from e

        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Provider returned a non-JSON response") from e

    def fetch(self, source_url: str) -> Any:
        """Try each provider in order and return the first raw JSON payload"""
        reasons = []
        session = self.session_factory()
        try:
            for provider in self.config.providers:
                logger.info(f"Processing with {provider.name}")
                try:
                    return self.query_provider(session, provider, source_url)
                except TransportError as e:
                    logger.warning(f"{provider.name} failed: {e}")
                    reasons.append(f"{provider.name}: {e}")
        finally:
            session.close()

        raise AllProvidersFailedError(reasons)

    def download(self, source_url: str) -> NormalizedResult:
        """Validate, fetch and normalize a TikTok URL"""
        validate_url(source_url, self.config.platform_host)
        logger.info(f"Processing TikTok URL: {source_url}")
        return normalize(self.fetch(source_url))

    def stream_media(self, source_url: str, kind: MediaKind, display_name: Optional[str] = None,
                     quality: Optional[str] = None) -> MediaStream:
        """Open a streaming GET on a media URL, closed together with its session"""
        filename = media_filename(kind, display_name, quality)
        headers = {
            'User-Agent': self.get_random_user_agent(),
            'Referer': self.config.media_referer,
            'Accept': ACCEPT_HEADERS[kind],
        }
        session = self.session_factory()
        try:
            response = session.get(
                source_url,
                headers=headers,
                stream=True,
                timeout=self.config.proxy_timeout,
            )
        except requests.exceptions.RequestException as e:
            session.close()
            raise DownloadFailedError(f"Download failed: {e}") from e

        stream = MediaStream(
            content_type=CONTENT_TYPES[kind],
            filename=filename,
            response=response,
            session=session,
            chunk_size=self.config.chunk_size,
        )
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            stream.close()
            raise DownloadFailedError(f"Download failed: {e}") from e
        return stream

    def save_media(self, source_url: str, kind: MediaKind, output_dir: Path, display_name: str) -> Path:
        """Write a proxied media file to disk"""
        stream = self.stream_media(source_url, kind, display_name)
        destination = output_dir / stream.filename
        try:
            with open(destination, 'wb') as f:
                for chunk in stream.iter_content():
                    f.write(chunk)
        except (requests.exceptions.RequestException, OSError) as e:
            raise DownloadFailedError(f"Download failed: {e}") from e
        finally:
            stream.close()
        logger.info(f"Saved {destination}")
        return destination

    def save_result(self, result: NormalizedResult, output_dir: Path) -> List[Path]:
        """Save the HD video, or every image of a photo post"""
        output_dir.mkdir(parents=True, exist_ok=True)
        if result.post_type == PostType.PHOTOS:
            return [
                self.save_media(image.url, MediaKind.IMAGE, output_dir, f"{result.filename}_{image.index}")
                for image in result.photos.images
            ]
        if not result.video.qualities:
            raise DownloadFailedError("No downloadable video quality found")
        return [self.save_media(result.video.qualities[0].url, MediaKind.VIDEO, output_dir, result.filename)]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Resolve TikTok URLs into direct media links",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    input_group = parser.add_argument_group("Input Options")
    input_group.add_argument(
        "urls",
        nargs="*",
        help="TikTok URL(s) to resolve"
    )
    input_group.add_argument(
        "--input-file",
        type=Path,
        help="File containing URLs to resolve (one per line)"
    )

    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--save",
        action="store_true",
        help="Also download the media files"
    )
    output_group.add_argument(
        "--output-dir",
        type=Path,
        default=Path.cwd() / "downloads",
        help="Directory to save downloads"
    )
    output_group.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation for printed results"
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    urls = list(args.urls)
    if args.input_file:
        try:
            with open(args.input_file, 'r') as f:
                urls.extend(line.strip() for line in f if line.strip() and not line.startswith('#'))
        except OSError as e:
            logger.error(f"Error reading input file: {str(e)}")
            return 1

    if not urls:
        logger.error("No URLs provided")
        return 1

    downloader = TikTokDownloader()
    results: Dict[str, bool] = {}
    for url in urls:
        try:
            result = downloader.download(url)
            print(json.dumps(result.to_dict(), indent=args.indent, ensure_ascii=False))
            if args.save:
                downloader.save_result(result, args.output_dir)
            results[url] = True
        except DownloaderError as e:
            logger.error(f"Error resolving {url}: {str(e)}")
            results[url] = False

    successful = sum(1 for result in results.values() if result)
    logger.info(f"Total URLs: {len(results)}")
    logger.info(f"Successful: {successful}")
    logger.info(f"Failed: {len(results) - successful}")

    if successful < len(results):
        logger.info("Failed URLs:")
        for url, success in results.items():
            if not success:
                logger.info(f"- {url}")
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
