from __future__ import annotations

import logging
import re
import typing as tp
from pathlib import Path

import anyio
import anyio.to_thread

from ._exceptions import StoreError
from ._files import AsyncFileManager
from ._models import CacheEntry
from ._packing import pack, unpack
from ._utils import ensure_cache_dir

logger = logging.getLogger("proxycache.storages")

__all__ = (
    "AsyncBaseStorage",
    "AsyncFileStorage",
)

DEFAULT_CACHE_DIR = Path("cache")

_KEY_PATTERN = re.compile(r"^[0-9a-f]{64}$")
_TEMP_PATTERN = re.compile(r"^[0-9a-f]{64}\.[0-9a-f]{32}\.tmp$")


class AsyncBaseStorage:
    async def get(self, key: str) -> tp.Optional[CacheEntry]:
        raise NotImplementedError()

    async def put(self, key: str, entry: CacheEntry) -> None:
        raise NotImplementedError()

    async def clear(self) -> None:
        raise NotImplementedError()


class AsyncFileStorage(AsyncBaseStorage):
    """
    A simple file storage, one file per cache key.

    Entries are written once and never expire. Concurrent writers for the same
    key are not serialized: every write is atomic, so the last one to finish
    wins and readers always see a complete record.

    :param base_path: A storage base path where the responses should be saved, defaults to None
    :type base_path: tp.Optional[tp.Union[str, Path]], optional
    """

    def __init__(self, base_path: tp.Optional[tp.Union[str, Path]] = None) -> None:
        self._base_path = Path(base_path) if base_path is not None else DEFAULT_CACHE_DIR
        self._file_manager = AsyncFileManager()

    @property
    def base_path(self) -> Path:
        return self._base_path

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StoreError(f"Invalid cache key: {key!r}")
        return self._base_path / key

    async def get(self, key: str) -> tp.Optional[CacheEntry]:
        """
        Retrieves the cached entry using its key.

        :param key: Hashed value of the HTTP method, host and target
        :type key: str
        :return: The stored entry, or None when nothing is cached under the key
        :rtype: tp.Optional[CacheEntry]
        """

        entry_path = self.path_for(key)

        try:
            data = await self._file_manager.read_from(entry_path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Could not read cache entry {key}") from exc

        logger.debug(f"Read {len(data)} bytes for cache entry {key}")
        return unpack(data)

    async def put(self, key: str, entry: CacheEntry) -> None:
        """
        Stores the entry in the cache, creating the storage directory if needed.

        :param key: Hashed value of the HTTP method, host and target
        :type key: str
        :param entry: The response to store
        :type entry: CacheEntry
        """

        entry_path = self.path_for(key)
        data = pack(entry)

        try:
            await anyio.to_thread.run_sync(ensure_cache_dir, self._base_path)
            await self._file_manager.write_to(entry_path, data)
        except OSError as exc:
            raise StoreError(f"Could not write cache entry {key}") from exc

        logger.debug(f"Stored cache entry {key} ({len(data)} bytes)")

    async def clear(self) -> None:
        """
        Removes every cached entry. Does nothing when the storage directory does not exist.
        """

        base_path = anyio.Path(self._base_path)
        if not await base_path.is_dir():
            return

        removed = 0
        async for path in base_path.iterdir():
            if _KEY_PATTERN.match(path.name) or _TEMP_PATTERN.match(path.name):
                await path.unlink(missing_ok=True)
                removed += 1

        logger.info(f"Removed {removed} entries from {self._base_path}")
