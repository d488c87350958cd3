import base64
import io
import logging
import random
from typing import Dict, List, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from kontextai.errors import UpstreamDownloadError

logger = logging.getLogger(__name__)

ASPECT_RATIO_INFO: Dict[str, Dict] = {
    "21:9": {"width": 1344, "height": 576, "label": "Ultra-wide (21:9)"},
    "16:9": {"width": 1344, "height": 768, "label": "Widescreen (16:9)"},
    "4:3": {"width": 1152, "height": 896, "label": "Standard (4:3)"},
    "3:2": {"width": 1216, "height": 832, "label": "Classic (3:2)"},
    "1:1": {"width": 1024, "height": 1024, "label": "Square (1:1)"},
    "2:3": {"width": 832, "height": 1216, "label": "Portrait (2:3)"},
    "3:4": {"width": 896, "height": 1152, "label": "Portrait (3:4)"},
    "9:16": {"width": 768, "height": 1344, "label": "Phone portrait (9:16)"},
    "9:21": {"width": 576, "height": 1344, "label": "Ultra-tall (9:21)"},
}
ASPECT_RATIOS = list(ASPECT_RATIO_INFO)
DEFAULT_ASPECT_RATIO = "1:1"

_FORMAT_BY_CONTENT_TYPE = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def aspect_ratio_info(aspect_ratio: str) -> Dict:
    return ASPECT_RATIO_INFO.get(aspect_ratio, ASPECT_RATIO_INFO[DEFAULT_ASPECT_RATIO])


def _ratio_value(aspect_ratio: str) -> float:
    w, h = aspect_ratio.split(":")
    return int(w) / int(h)


def closest_aspect_ratio(width: int, height: int) -> str:
    if width <= 0 or height <= 0:
        return DEFAULT_ASPECT_RATIO
    actual = width / height
    return min(ASPECT_RATIOS, key=lambda ratio: abs(_ratio_value(ratio) - actual))


def image_size(image_bytes: bytes) -> Optional[tuple]:
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not read image dimensions: {e}")
        return None


def detect_aspect_ratio(image_bytes: bytes) -> str:
    """Nearest supported aspect ratio for an encoded image, 1:1 if unreadable."""
    size = image_size(image_bytes)
    if not size:
        return DEFAULT_ASPECT_RATIO
    return closest_aspect_ratio(*size)


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def image_format_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    return _FORMAT_BY_CONTENT_TYPE.get(content_type.split(";")[0].strip().lower())


def guess_image_format(image_bytes: bytes, default: str = "jpeg") -> str:
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            fmt = (img.format or "").lower()
    except (UnidentifiedImageError, OSError):
        return default
    return "jpeg" if fmt == "jpg" else (fmt or default)


def generate_random_seed() -> int:
    return random.randint(0, 999999)


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def preview(text: Optional[str], length: int = 100) -> str:
    if not text:
        return ""
    return text if len(text) <= length else text[:length] + "..."


class ImageFetcher:
    """Downloads reference images for analysis; holds configuration only."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, follow_redirects=True
        )

    async def fetch(self, url: str) -> bytes:
        async with self._client() as client:
            return await self._get(client, url)

    async def fetch_all(self, urls: List[str]) -> List[bytes]:
        """One image at a time; the first failure aborts the whole set."""
        images: List[bytes] = []
        async with self._client() as client:
            for url in urls:
                images.append(await self._get(client, url))
        return images

    async def _get(self, client: httpx.AsyncClient, url: str) -> bytes:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"HTTP error downloading image {url}: {e.response.status_code}"
            )
            raise UpstreamDownloadError(
                "Unable to download the image, please try again", url=url
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.error(f"Error downloading image {url}: {e}")
            raise UpstreamDownloadError(
                "Unable to download the image, please try again", url=url
            ) from e
        return response.content
