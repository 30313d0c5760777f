from __future__ import annotations

import io
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

import requests
from PIL import Image, UnidentifiedImageError
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader

from .. import config
from .layout import Rect

logger = logging.getLogger(__name__)

PRIMARY_SHARE = 0.75
MAX_THUMBNAILS = 3
THUMBNAIL_GAP = 2 * mm

_CLOUDINARY_UPLOAD = re.compile(r"^(https?://res\.cloudinary\.com/[^/]+/image/upload/)(.+)$")


class ImageUnavailable(Exception):
    """Raised when a product image cannot be fetched or decoded."""


@dataclass(frozen=True)
class LoadedImage:
    image: ImageReader
    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


def normalize_image_url(url: str) -> str:
    """
    Cloudinary 업로드 URL이면 f_auto,q_auto 변형을 요청하도록 바꾼다.
    이미 포맷/품질 변환이 들어 있거나 다른 호스트면 그대로 둔다.
    """
    match = _CLOUDINARY_UPLOAD.match(url or "")
    if not match:
        return url
    prefix, rest = match.groups()
    first_segment = rest.split("/", 1)[0]
    if any(part.startswith(("f_", "q_")) for part in first_segment.split(",")):
        return url
    return f"{prefix}f_auto,q_auto/{rest}"


def decode_image(payload: bytes) -> LoadedImage:
    # 깨진 PNG는 load()에서 SyntaxError/ValueError까지 올라온다
    try:
        img = Image.open(io.BytesIO(payload))
        img.load()
        if img.mode in ("P", "PA", "LA"):
            img = img.convert("RGBA")
        elif img.mode not in ("RGB", "RGBA", "L"):
            img = img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise ImageUnavailable(f"Undecodable image payload: {exc}") from exc
    except Exception as exc:
        raise ImageUnavailable(f"Corrupt image payload: {exc!r}") from exc

    width, height = img.size
    if width <= 0 or height <= 0:
        raise ImageUnavailable("Image has no pixels")
    return LoadedImage(ImageReader(img), width, height)


def fit_inside(aspect_ratio: float, box: Rect) -> Rect:
    """Largest rect of the given aspect ratio inside box, centered on the free axis."""
    if aspect_ratio <= 0 or box.w <= 0 or box.h <= 0:
        raise ValueError("fit_inside needs a positive aspect ratio and a non-empty box")
    if aspect_ratio > box.w / box.h:
        w = box.w
        h = box.w / aspect_ratio
    else:
        h = box.h
        w = box.h * aspect_ratio
    return Rect(box.x + (box.w - w) / 2, box.y + (box.h - h) / 2, w, h)


def gallery_regions(region: Rect, image_count: int) -> Tuple[Rect, List[Rect]]:
    """
    대표 이미지는 영역 높이의 75%, 추가 이미지(최대 3장)는 그 아래 한 줄 썸네일.
    썸네일 크기는 3칸 기준으로 고정하고 줄 전체를 가운데 정렬한다.
    """
    extra = min(max(image_count - 1, 0), MAX_THUMBNAILS)
    if extra == 0:
        return region, []

    primary_h = region.h * PRIMARY_SHARE
    primary = Rect(region.x, region.top - primary_h, region.w, primary_h)

    thumb_h = region.h - primary_h - THUMBNAIL_GAP
    thumb_w = (region.w - THUMBNAIL_GAP * (MAX_THUMBNAILS - 1)) / MAX_THUMBNAILS
    row_w = extra * thumb_w + (extra - 1) * THUMBNAIL_GAP
    x0 = region.x + (region.w - row_w) / 2
    thumbs = [
        Rect(x0 + i * (thumb_w + THUMBNAIL_GAP), region.y, thumb_w, thumb_h)
        for i in range(extra)
    ]
    return primary, thumbs


class ImageLoader:
    """
    Fetches and decodes product images, one request per URL per loader.

    Failures are cached too, so a broken URL shared by several cards is only
    tried once and every card gets the same placeholder.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = config.IMAGE_FETCH_TIMEOUT,
        max_workers: int = config.IMAGE_FETCH_WORKERS,
        max_size_mb: int = config.MAX_IMAGE_SIZE_MB,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_workers = max(1, int(max_workers))
        self.max_bytes = max_size_mb * 1024 * 1024
        self._cache: Dict[str, Union[LoadedImage, ImageUnavailable]] = {}

    def fetch(self, url: str) -> bytes:
        if not url or not url.strip():
            raise ImageUnavailable("No image URL")
        target = normalize_image_url(url.strip())
        headers = {
            "Accept": ", ".join(config.ALLOWED_IMAGE_MIMETYPES),
            "User-Agent": config.IMAGE_USER_AGENT,
        }
        try:
            response = self.session.get(target, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise ImageUnavailable(f"Timed out after {self.timeout}s: {target}") from exc
        except requests.exceptions.RequestException as exc:
            raise ImageUnavailable(f"Could not fetch {target}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise ImageUnavailable(f"HTTP {response.status_code} for {target}")

        content_type = response.headers.get("Content-Type", "").split(";")[0].strip().lower()
        if content_type and not content_type.startswith("image/"):
            raise ImageUnavailable(f"Unexpected content type {content_type} for {target}")

        payload = response.content
        if not payload:
            raise ImageUnavailable(f"Empty body for {target}")
        if len(payload) > self.max_bytes:
            raise ImageUnavailable(f"Image too large: {len(payload) / 1024 / 1024:.1f}MB for {target}")

        logger.debug("Fetched %d bytes from %s", len(payload), target)
        return payload

    def _resolve(self, url: str) -> None:
        try:
            self._cache[url] = decode_image(self.fetch(url))
        except ImageUnavailable as exc:
            logger.warning("Image unavailable: %s", exc)
            self._cache[url] = exc
        except Exception as exc:
            logger.warning("Image unavailable: %s: %r", url, exc)
            self._cache[url] = ImageUnavailable(f"Could not load {url}: {exc!r}")

    def load_image(self, url: str) -> LoadedImage:
        if url not in self._cache:
            self._resolve(url)
        cached = self._cache[url]
        if isinstance(cached, ImageUnavailable):
            raise ImageUnavailable(str(cached))
        return cached

    def prefetch(self, urls: Iterable[str]) -> None:
        """Fan out fetches over a bounded pool and wait for all of them."""
        pending = [u for u in dict.fromkeys(urls) if u not in self._cache]
        if not pending:
            return
        if len(pending) == 1 or self.max_workers == 1:
            for url in pending:
                self._resolve(url)
            return
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as executor:
            list(executor.map(self._resolve, pending))
