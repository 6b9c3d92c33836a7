"""
HTTP boundary: fetch bytes (with ETag revalidation) and download files.

Everything that touches the network goes through ``HttpFetcher`` so the
resolver and cache can be driven by a fake in tests.
"""
import asyncio
import hashlib
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

import aiofiles
import aiofiles.os
import aiohttp
from tqdm.asyncio import tqdm

from .errors import ArtifactUnavailable, FetchError

log = logging.getLogger(__name__)

USER_AGENT = 'OpenCraft-Launcher/1.0 (github.com/opencraft)'
DEFAULT_TIMEOUT = 30
CHUNK_SIZE = 8192

# Tried after the library's own repository, in this order
FALLBACK_REPOSITORIES = [
    'https://maven.fabricmc.net/',
    'https://repo1.maven.org/maven2/',
    'https://libraries.minecraft.net/',
]

T = TypeVar('T')
R = TypeVar('R')


@dataclass
class FetchResult:
    content: Optional[bytes] = None
    etag: Optional[str] = None
    not_modified: bool = False
    status: int = 200


# --- File helpers ---

async def get_file_sha1(file_path: pathlib.Path) -> str:
    """Calculates the SHA1 hash of a file asynchronously."""
    sha1_hash = hashlib.sha1()
    async with aiofiles.open(file_path, 'rb') as f:
        while True:
            chunk = await f.read(CHUNK_SIZE)
            if not chunk:
                break
            sha1_hash.update(chunk)
    return sha1_hash.hexdigest()


async def file_exists(file_path: pathlib.Path) -> bool:
    """Checks if a regular file exists asynchronously."""
    try:
        return await aiofiles.os.path.isfile(file_path)
    except OSError:
        return False


async def save_bytes(content: bytes, dest_path: pathlib.Path) -> None:
    """Writes content to dest_path, creating parent directories."""
    await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
    async with aiofiles.open(dest_path, 'wb') as f:
        await f.write(content)


async def _remove_quietly(path: pathlib.Path) -> None:
    try:
        if await aiofiles.os.path.exists(path):
            await aiofiles.os.remove(path)
    except OSError as e:
        log.debug(f"Could not remove partial file {path}: {e}")


# --- Fetcher ---

class HttpFetcher:
    """aiohttp-backed implementation of fetch_bytes/download."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None,
                 user_agent: str = USER_AGENT, timeout: float = DEFAULT_TIMEOUT):
        self._session = session
        self._owns_session = session is None
        self.user_agent = user_agent
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={'User-Agent': self.user_agent},
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.timeout, sock_read=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def fetch_bytes(self, url: str, etag: Optional[str] = None) -> FetchResult:
        """GETs url. A stored etag is sent as If-None-Match; 304 becomes not_modified."""
        headers = {'If-None-Match': etag} if etag else {}
        session = await self._get_session()
        try:
            async with session.get(url, headers=headers) as response:
                if response.status == 304:
                    return FetchResult(etag=etag, not_modified=True, status=304)
                if not response.ok:
                    raise FetchError(url, f"HTTP {response.status} {response.reason}", response.status)
                content = await response.read()
                return FetchResult(content=content, etag=response.headers.get('ETag'), status=response.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise FetchError(url, str(error) or type(error).__name__) from error

    async def download(
        self,
        url: str,
        dest_path: pathlib.Path,
        expected_sha1: Optional[str] = None,
        force_download: bool = False,
        pbar: Optional[tqdm] = None,
    ) -> bool:
        """
        Downloads url to dest_path unless an acceptable copy is already there.

        Returns True when bytes were transferred, False when the existing file
        was kept. Raises FetchError on HTTP failure or SHA1 mismatch; partial
        files are removed first.
        """
        await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)

        if not force_download and await file_exists(dest_path):
            if not expected_sha1:
                if pbar: pbar.update(1)
                return False
            try:
                current_sha1 = await get_file_sha1(dest_path)
            except OSError as hash_error:
                log.warning(f"Could not hash existing file {dest_path}. Redownloading. Error: {hash_error}")
                current_sha1 = None
            if current_sha1 and current_sha1.lower() == expected_sha1.lower():
                if pbar: pbar.update(1)
                return False
            log.warning(f"SHA1 mismatch for existing file {dest_path.name}. Redownloading.")

        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if not response.ok:
                    raise FetchError(url, f"HTTP {response.status} {response.reason}", response.status)
                async with aiofiles.open(dest_path, 'wb') as f:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        await f.write(chunk)

            if expected_sha1:
                downloaded_sha1 = await get_file_sha1(dest_path)
                if downloaded_sha1.lower() != expected_sha1.lower():
                    raise FetchError(url, f"SHA1 mismatch, expected {expected_sha1}, got {downloaded_sha1}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            await _remove_quietly(dest_path)
            raise FetchError(url, str(error) or type(error).__name__) from error
        except (FetchError, OSError):
            await _remove_quietly(dest_path)
            raise

        if pbar: pbar.update(1)
        return True


# --- Retry combinator ---

def repository_candidates(primary: Optional[str], fallbacks: Iterable[str] = FALLBACK_REPOSITORIES) -> List[str]:
    """Primary repository first, then the fallbacks, without duplicates."""
    candidates = []
    for repo in [primary, *fallbacks]:
        if not repo:
            continue
        normalized = repo if repo.endswith('/') else repo + '/'
        if normalized not in candidates:
            candidates.append(normalized)
    return candidates


async def first_success(
    candidates: Sequence[T],
    attempt: Callable[[T], Awaitable[R]],
    name: str,
) -> Tuple[T, R]:
    """
    Runs attempt(candidate) in order and returns the first that succeeds.

    Raises ArtifactUnavailable with every failure when none does.
    """
    failures = []
    for candidate in candidates:
        try:
            return candidate, await attempt(candidate)
        except (FetchError, OSError) as error:
            log.debug(f"{name}: attempt via {candidate} failed: {error}")
            failures.append(f"{candidate}: {error}")
    raise ArtifactUnavailable(name, failures)


def default_concurrency() -> int:
    return min(32, (os.cpu_count() or 1) * 4)
