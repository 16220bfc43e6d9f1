"""
Image fetching for vision classification.

Downloads at most `max_images` product images with bounded concurrency and
returns them base64-encoded. A failed image is dropped on its own; it never
fails the caller.
"""

import asyncio
import base64
import logging
import mimetypes
import re
from typing import Iterable, List, Optional
from urllib.parse import urlparse

import aiohttp

from catalog_enrichment.enrichment.capabilities import EncodedImage
from catalog_enrichment.http import check_response, client_timeout, retry_with_backoff

logger = logging.getLogger(__name__)

IMAGE_EXTENSION = re.compile(r"\.(jpe?g|png|gif|webp)$", re.IGNORECASE)


def is_supported_image_url(url: Optional[str]) -> bool:
    """http(s) URL whose path ends in a supported image extension."""
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and bool(IMAGE_EXTENSION.search(parsed.path))


def select_image_urls(urls: Iterable[Optional[str]], limit: int) -> List[str]:
    """First `limit` distinct supported image URLs, in order."""
    selected: List[str] = []
    for url in urls:
        if is_supported_image_url(url) and url not in selected:
            selected.append(url)
        if len(selected) >= limit:
            break
    return selected


class ImageFetcher:
    """
    Bounded-concurrency image downloader.

    Args:
        concurrency: maximum simultaneous downloads
        max_images: cap per product
        timeout: per-request timeout in seconds
        retries: attempts per image for network-class failures
    """

    def __init__(self, concurrency: int = 3, max_images: int = 3, timeout: float = 15,
                 retries: int = 2, session: Optional[aiohttp.ClientSession] = None):
        self.max_images = max_images
        self.timeout = timeout
        self.retries = retries
        self._semaphore = asyncio.Semaphore(concurrency)
        self._session = session

    async def fetch_images(self, urls: Iterable[Optional[str]]) -> List[EncodedImage]:
        selected = select_image_urls(urls, self.max_images)
        if not selected:
            return []

        if self._session is not None:
            results = await asyncio.gather(*(self._fetch_one(self._session, url) for url in selected))
        else:
            async with aiohttp.ClientSession(timeout=client_timeout(self.timeout)) as session:
                results = await asyncio.gather(*(self._fetch_one(session, url) for url in selected))

        images = [image for image in results if image is not None]
        logger.debug(f"Fetched {len(images)}/{len(selected)} images")
        return images

    async def _fetch_one(self, session: aiohttp.ClientSession, url: str) -> Optional[EncodedImage]:
        async def download():
            async with session.get(url) as response:
                check_response(response, source="image")
                mime_type = (response.headers.get("Content-Type") or "").split(";")[0].strip()
                return mime_type, await response.read()

        try:
            async with self._semaphore:
                mime_type, body = await retry_with_backoff(
                    download, max_attempts=self.retries, initial_delay=0.5, description=f"image {url}"
                )
        except Exception as e:
            logger.warning(f"⚠️ Skipping image {url}: {e}")
            return None

        if not mime_type.startswith("image/"):
            mime_type = mimetypes.guess_type(urlparse(url).path)[0] or "image/jpeg"
        return EncodedImage(url=url, mime_type=mime_type, data=base64.b64encode(body).decode("ascii"))
