"""
Version index cache with a time-to-live and ETag revalidation.

Within the TTL the stored list is served as-is. Past it the caller
revalidates: the stored ETag goes out as If-None-Match, a 304 only
refreshes the timestamp, anything else replaces the whole file. The file
is written to a temporary sibling and moved into place, so readers never
see half a cache.
"""
import asyncio
import json
import logging
import os
import pathlib
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import aiofiles
import aiofiles.os

from .errors import CacheCorrupt, FetchError, VersionIndexUnavailable
from .versions import VERSION_MANIFEST_URL, GameVersion, parse_version_index

log = logging.getLogger(__name__)

CACHE_FILE = 'version_cache.json'
DEFAULT_TTL_SECONDS = 6 * 60 * 60


@dataclass
class VersionIndexCacheEntry:
    versions: List[GameVersion]
    etag: Optional[str]
    fetched_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.fetched_at < ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'etag': self.etag,
            'fetchedAt': self.fetched_at,
            'versions': [version.to_dict() for version in self.versions],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "VersionIndexCacheEntry":
        try:
            return cls(
                versions=[GameVersion.from_dict(v) for v in data['versions']],
                etag=data.get('etag'),
                fetched_at=float(data['fetchedAt']),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CacheCorrupt(f"Malformed version cache: {e}") from e


class RevalidationStatus(Enum):
    UNCHANGED = 'unchanged'
    REPLACED = 'replaced'


@dataclass
class RevalidationResult:
    status: RevalidationStatus
    versions: List[GameVersion]
    etag: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status is RevalidationStatus.REPLACED


class VersionIndexCache:

    def __init__(
        self,
        cache_file: pathlib.Path,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        index_url: str = VERSION_MANIFEST_URL,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_file = pathlib.Path(cache_file)
        self.ttl_seconds = ttl_seconds
        self.index_url = index_url
        self._clock = clock
        self._write_lock = asyncio.Lock()

    async def _load(self) -> Optional[VersionIndexCacheEntry]:
        """Reads the cache file. Raises CacheCorrupt when it cannot be decoded."""
        if not await aiofiles.os.path.isfile(self.cache_file):
            return None
        try:
            async with aiofiles.open(self.cache_file, 'r', encoding='utf-8') as f:
                content = await f.read()
            data = json.loads(content)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheCorrupt(f"Unreadable version cache {self.cache_file}: {e}") from e
        return VersionIndexCacheEntry.from_dict(data)

    async def read_entry(self) -> Optional[VersionIndexCacheEntry]:
        """The stored entry, or None when absent or corrupt."""
        try:
            return await self._load()
        except CacheCorrupt as e:
            log.warning(f"{e}. Treating cache as absent.")
            return None

    async def get(self) -> Optional[List[GameVersion]]:
        """Stored versions while fresh, otherwise None."""
        entry = await self.read_entry()
        if entry is None or not entry.is_fresh(self._clock(), self.ttl_seconds):
            return None
        return entry.versions

    async def get_stale_if_present(self) -> Optional[List[GameVersion]]:
        """Stored versions regardless of age."""
        entry = await self.read_entry()
        return entry.versions if entry is not None else None

    async def stored_etag(self) -> Optional[str]:
        entry = await self.read_entry()
        return entry.etag if entry is not None else None

    async def revalidate(self, fetcher) -> RevalidationResult:
        """
        Asks the index endpoint whether anything changed since the stored ETag.

        FetchError propagates; the caller decides whether stale data will do.
        """
        async with self._write_lock:
            existing = await self.read_entry()
            etag = existing.etag if existing is not None else None

            result = await fetcher.fetch_bytes(self.index_url, etag)
            now = self._clock()

            if result.not_modified and existing is not None:
                log.info("Version index unchanged (304); refreshing cache timestamp")
                refreshed = VersionIndexCacheEntry(existing.versions, existing.etag, now)
                await self._write(refreshed)
                return RevalidationResult(RevalidationStatus.UNCHANGED, refreshed.versions, refreshed.etag)

            if result.not_modified:
                # 304 with nothing stored to keep: ask again unconditionally
                result = await fetcher.fetch_bytes(self.index_url, None)

            try:
                document = json.loads(result.content)
            except (TypeError, ValueError) as e:
                raise FetchError(self.index_url, f"invalid version index JSON: {e}") from e

            versions = parse_version_index(document)
            replacement = VersionIndexCacheEntry(versions, result.etag, now)
            await self._write(replacement)
            log.info(f"Version index replaced with {len(versions)} versions")
            return RevalidationResult(RevalidationStatus.REPLACED, versions, result.etag)

    async def _write(self, entry: VersionIndexCacheEntry) -> None:
        await aiofiles.os.makedirs(self.cache_file.parent, exist_ok=True)
        temp_path = self.cache_file.with_name(f"{self.cache_file.name}.{os.getpid()}.tmp")
        try:
            async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
                await f.write(json.dumps(entry.to_dict(), indent=2))
            await aiofiles.os.replace(temp_path, self.cache_file)
        except OSError:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.remove(temp_path)
            raise


async def list_versions(
    cache: VersionIndexCache,
    fetcher,
    releases_only: bool = False,
    force_refresh: bool = False,
) -> List[GameVersion]:
    """
    Fresh cache first, then revalidation, then stale data.

    Raises VersionIndexUnavailable when the network fails and nothing is cached.
    """
    versions = None if force_refresh else await cache.get()
    if versions is None:
        try:
            versions = (await cache.revalidate(fetcher)).versions
        except FetchError as e:
            log.warning(f"Could not revalidate version index: {e}")
            versions = await cache.get_stale_if_present()
            if versions is None:
                raise VersionIndexUnavailable(
                    "Version index unreachable and no cached copy is available"
                ) from e
            log.info(f"Serving {len(versions)} cached versions past their TTL")

    if releases_only:
        return [version for version in versions if version.is_release]
    return versions
