"""
Image Fetcher — download the source Warplet image.

A single no-cache GET. There is no retry: a failed fetch fails the whole
transform, and the client can safely retry the transform request.

Usage:
    fetcher = ImageFetcher()
    fetched = await fetcher.fetch_image(asset.image)
    fetched.data, fetched.mime_type
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from errors import FetchFailed

logger = logging.getLogger("buttlets-portal.image-fetcher")

REQUEST_TIMEOUT = 30
DEFAULT_MIME_TYPE = "image/png"


@dataclass
class FetchedImage:
    data: bytes
    mime_type: str


class ImageFetcher:
    """Fetch source images over HTTP."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._external_session = session
        self._own_session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._external_session:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            self._own_session = aiohttp.ClientSession(
                headers={"User-Agent": "ButtletsPortal/1.0"},
            )
        return self._own_session

    async def close(self):
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()

    async def fetch_image(self, url: str) -> FetchedImage:
        """Fetch ``url`` and return its bytes and declared content type.

        Raises:
            FetchFailed: On a non-2xx response or a transport error.
        """
        if not url:
            raise FetchFailed("No image URL to fetch")

        session = await self._get_session()
        try:
            async with session.get(
                url,
                headers={"Cache-Control": "no-cache"},
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    logger.warning("Source image fetch failed: HTTP %d for %s", resp.status, url)
                    raise FetchFailed(f"Failed to fetch source Warplet image (HTTP {resp.status})")
                data = await resp.read()
                content_type = resp.headers.get("Content-Type", "")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Source image fetch failed: %s for %s", e, url)
            raise FetchFailed(f"Failed to fetch source Warplet image: {e}") from e

        mime_type = content_type.split(";")[0].strip() or DEFAULT_MIME_TYPE
        logger.info("Fetched %d bytes (%s) from %s", len(data), mime_type, url)
        return FetchedImage(data=data, mime_type=mime_type)
