"""
Asset Cache
===========

Content-addressed on-disk cache for remote images.

Files are stored as ``<md5-of-url>.<ext>`` in a working-directory folder,
falling back to a folder under the system temp dir when that one is not
writable. Download and storage failures never raise: the original URL is
handed back so the browser can try to load it itself.
"""

import asyncio
import hashlib
import os
import re
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiofiles
import aiofiles.os
import aiohttp

from canvas_render.config.logging import get_logger
from canvas_render.config.settings import get_settings

logger = get_logger(__name__)

DEFAULT_IMAGE_EXTENSION = "png"
_IMAGE_EXTENSION = re.compile(r"^(png|jpe?g|gif|webp|bmp|svg)$", re.IGNORECASE)


class AssetCacheError(Exception):
    """Exception raised when no cache directory or download is usable."""

    pass


def url_digest(url: str) -> str:
    """Stable content address for a URL."""
    return hashlib.md5(url.encode("utf-8")).hexdigest()


def guess_extension(url: str) -> str:
    """Image extension from the URL path, restricted to known image types."""
    try:
        path = urlparse(url).path
    except ValueError:
        logger.warning("Failed to parse URL, using default extension", url=url[:50])
        return DEFAULT_IMAGE_EXTENSION

    last_dot = path.rfind(".")
    if last_dot > 0:
        extension = path[last_dot + 1 :].lower()
        if _IMAGE_EXTENSION.match(extension):
            return extension
    return DEFAULT_IMAGE_EXTENSION


def ensure_writable_dir(directory: Path) -> Path:
    """
    Create ``directory`` if needed and probe that it accepts writes.

    Raises:
        AssetCacheError: If the directory cannot be created or written
    """
    try:
        directory.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as e:
        raise AssetCacheError(f"Cannot create directory: {directory}. Error: {e}")
    if not directory.is_dir() or not os.access(directory, os.W_OK):
        raise AssetCacheError(f"Cannot write to directory: {directory}")
    return directory


class AssetCache:
    """Two-tier URL to local path cache: in-process dict over files on disk."""

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        fallback_dir: Optional[Path] = None,
        fetch_timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.cache_dir = Path(cache_dir if cache_dir is not None else settings.image_cache_dir)
        self.fallback_dir = Path(
            fallback_dir
            if fallback_dir is not None
            else Path(tempfile.gettempdir()) / settings.image_cache_fallback_dirname
        )
        self.fetch_timeout = fetch_timeout or settings.image_fetch_timeout
        self.logger: Any = logger.bind(component="asset_cache")  # structlog.BoundLoggerBase
        self._entries: Dict[str, str] = {}
        self._session: Optional[aiohttp.ClientSession] = None

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.fetch_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def select_directory(self) -> Path:
        """
        Pick the directory new entries go to.

        Raises:
            AssetCacheError: If neither the primary nor the fallback is writable
        """
        try:
            return ensure_writable_dir(self.cache_dir)
        except AssetCacheError as e:
            self.logger.warning(
                "Cache directory unusable, falling back to temp directory",
                error=str(e),
                fallback=str(self.fallback_dir),
            )
        return ensure_writable_dir(self.fallback_dir)

    async def resolve(self, url: str) -> str:
        """
        Map a remote image URL to a local file path.

        Args:
            url: Absolute image URL

        Returns:
            Absolute path of the cached file, or ``url`` itself when the
            image could not be fetched or stored
        """
        cached = self._entries.get(url)
        if cached is not None:
            self.logger.debug("Cache hit", url=url[:50])
            return cached

        try:
            directory = self.select_directory()
        except AssetCacheError as e:
            self.logger.error("No writable cache directory", error=str(e))
            return url

        cache_path = (directory / f"{url_digest(url)}.{guess_extension(url)}").resolve()
        if cache_path.exists():
            self.logger.debug("Disk cache hit", url=url[:50], file=cache_path.name)
            self._entries[url] = str(cache_path)
            return str(cache_path)

        self.logger.info("Downloading image", url=url[:50])
        try:
            payload = await self._download(url)
            await self._store(payload, cache_path)
        except (aiohttp.ClientError, asyncio.TimeoutError, AssetCacheError, OSError) as e:
            self.logger.warning("Image download failed", url=url[:50], error=str(e) or repr(e))
            return url

        self.logger.info("Image downloaded", file=cache_path.name, size=len(payload))
        self._entries[url] = str(cache_path)
        return str(cache_path)

    async def _store(self, payload: bytes, cache_path: Path) -> None:
        """Write to a private sibling file, then move it onto ``cache_path``."""
        partial_path = cache_path.with_name(f"{cache_path.name}.{uuid.uuid4().hex}.part")
        try:
            async with aiofiles.open(partial_path, "wb") as f:
                await f.write(payload)
            await aiofiles.os.replace(partial_path, cache_path)
        except OSError:
            try:
                await aiofiles.os.remove(partial_path)
            except FileNotFoundError:
                pass
            raise

    async def _download(self, url: str) -> bytes:
        session = await self._get_session()
        async with session.get(url) as response:
            if not 200 <= response.status < 300:
                raise AssetCacheError(f"HTTP {response.status}")
            return await response.read()


_global_asset_cache: Optional[AssetCache] = None


def get_asset_cache() -> AssetCache:
    """Get the process-wide asset cache."""
    global _global_asset_cache
    if _global_asset_cache is None:
        _global_asset_cache = AssetCache()
    return _global_asset_cache


async def close_asset_cache() -> None:
    """Close the process-wide asset cache session."""
    global _global_asset_cache
    if _global_asset_cache:
        await _global_asset_cache.close()
        _global_asset_cache = None
