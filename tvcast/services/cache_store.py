"""
Cache Store

Named-blob persistence for downloaded source documents. The root directory is
either on a tmpfs (memory-backed) or on disk; callers never see the difference.
There is no expiry here, freshness is decided by the staleness policy.
"""
import asyncio
import logging
import shutil
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os


logger = logging.getLogger(__name__)

RAM_CACHE_ROOT = Path("/dev/shm")
CACHE_DIR_NAME = "tvcast"

PLAYLIST_CACHE_KEY = "playlist.m3u"
XMLTV_CACHE_KEY = "xmltv.xml"

TEMP_SUFFIX = ".part"


class CacheStore:
    """Directory-backed key -> bytes store."""

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Cache directory set to: {self.root}")

    def _resolve(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", "..") or ".." in Path(key).parts:
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.root / key

    async def put(self, key: str, content: bytes) -> Path:
        """
        Save a blob under the given key

        Returns:
            Path of the written file
        """
        cache_path = self._resolve(key)
        await aiofiles.os.makedirs(self.root, exist_ok=True)
        temp_path = cache_path.with_name(cache_path.name + TEMP_SUFFIX)
        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(content)
        await aiofiles.os.replace(temp_path, cache_path)
        logger.debug(f"Cached {len(content)} bytes at {cache_path}")
        return cache_path

    async def get(self, key: str) -> bytes | None:
        """Return the cached blob or None if absent."""
        cache_path = self._resolve(key)
        try:
            async with aiofiles.open(cache_path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            logger.debug(f"Cache miss: {cache_path}")
            return None

    async def path(self, key: str) -> Path | None:
        """Filesystem path of a cached blob, for consumers that stream large files."""
        cache_path = self._resolve(key)
        if await aiofiles.os.path.isfile(cache_path):
            return cache_path
        logger.debug(f"Cache miss: {cache_path}")
        return None

    async def clear(self) -> None:
        """Wipe the cache root and recreate it empty."""
        logger.debug(f"Clearing cache directory: {self.root}")
        await asyncio.to_thread(shutil.rmtree, self.root, ignore_errors=True)
        await aiofiles.os.makedirs(self.root, exist_ok=True)
        logger.debug("Cache directory cleared")


def resolve_cache_root(ram_cache: bool, cache_dir: str) -> Path:
    """Pick the cache root for the configured mode."""
    if ram_cache:
        base = RAM_CACHE_ROOT if RAM_CACHE_ROOT.is_dir() else Path(tempfile.gettempdir())
        return base / CACHE_DIR_NAME
    return Path(cache_dir)
