"""Fetch and decode product images referenced by a data record."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Protocol
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from errors import ImageLoadError

logger = logging.getLogger(__name__)

# Default timeout (in seconds) for image downloads.
DEFAULT_TIMEOUT = 10


def is_resolvable_url(url: str) -> bool:
    parsed = urlparse((url or "").strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class Loader(Protocol):
    async def load(self, url: str) -> Image.Image:
        ...


class ImageLoader:
    """Download an image over HTTP(S) and return it as an RGB raster."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client
        self.timeout = timeout

    async def load(self, url: str) -> Image.Image:
        if not is_resolvable_url(url):
            raise ImageLoadError(f"Not a resolvable image URL: {url!r}")

        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ImageLoadError(f"Failed to load image {url}: {exc}") from exc

        try:
            with Image.open(BytesIO(response.content)) as image:
                return image.convert("RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise ImageLoadError(f"Failed to decode image {url}: {exc}") from exc


__all__ = ["ImageLoader", "Loader", "is_resolvable_url"]
