"""Version index entries and the loader (Fabric) metadata client."""
import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import FetchError

log = logging.getLogger(__name__)

VERSION_MANIFEST_URL = 'https://piston-meta.mojang.com/mc/game/version_manifest_v2.json'
LOADER_META_URL = 'https://meta.fabricmc.net'
LOADER_ID_PREFIX = 'fabric-loader'


def loader_version_id(loader_version: str, base_version: str) -> str:
    """fabric-loader-0.15.11-1.21 for loader 0.15.11 over 1.21."""
    return f"{LOADER_ID_PREFIX}-{loader_version}-{base_version}"


@dataclass(frozen=True)
class GameVersion:
    """
    One entry of the version index.

    A loader overlay keeps the vanilla id in base_id and derives its
    effective id from the loader version; the two cannot be set apart.
    """
    base_id: str
    type: str
    url: str
    release_time: str
    loader_version: Optional[str] = None

    @property
    def id(self) -> str:
        if self.loader_version:
            return loader_version_id(self.loader_version, self.base_id)
        return self.base_id

    @property
    def base_game_version(self) -> str:
        return self.base_id

    @property
    def is_loader_overlay(self) -> bool:
        return self.loader_version is not None

    @property
    def display_name(self) -> str:
        if self.is_loader_overlay:
            return f"{self.base_id} [Fabric]"
        return self.id

    @property
    def is_release(self) -> bool:
        return self.type == 'release'

    @property
    def is_snapshot(self) -> bool:
        return self.type == 'snapshot'

    def with_loader(self, loader_version: str) -> "GameVersion":
        return dataclasses.replace(self, loader_version=loader_version)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.base_id,
            'type': self.type,
            'url': self.url,
            'releaseTime': self.release_time,
        }
        if self.loader_version:
            data['loaderVersion'] = self.loader_version
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameVersion":
        return cls(
            base_id=data['id'],
            type=data.get('type', 'release'),
            url=data.get('url', ''),
            release_time=data.get('releaseTime', ''),
            loader_version=data.get('loaderVersion'),
        )

    def __str__(self) -> str:
        return self.display_name


def parse_version_index(document: Mapping[str, Any]) -> List[GameVersion]:
    """Reads the 'versions' array of version_manifest_v2.json."""
    versions = []
    for entry in document.get('versions', []) or []:
        try:
            versions.append(GameVersion.from_dict(entry))
        except (KeyError, TypeError) as e:
            log.warning(f"Skipping malformed version index entry {entry!r}: {e}")
    return versions


@dataclass(frozen=True)
class LoaderVersion:
    version: str
    stable: bool = True


class LoaderMetaClient:
    """Fabric meta API: loader versions and the per-game profile manifest."""

    def __init__(self, fetcher, base_url: str = LOADER_META_URL):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip('/')

    async def _fetch_json(self, url: str) -> Any:
        result = await self.fetcher.fetch_bytes(url)
        try:
            return json.loads(result.content)
        except (TypeError, ValueError) as e:
            raise FetchError(url, f"invalid JSON: {e}") from e

    async def fetch_loader_versions(self) -> List[LoaderVersion]:
        document = await self._fetch_json(f"{self.base_url}/v2/versions/loader")
        return [
            LoaderVersion(entry.get('version', ''), bool(entry.get('stable', True)))
            for entry in document or []
            if isinstance(entry, dict) and entry.get('version')
        ]

    async def latest_stable(self) -> Optional[LoaderVersion]:
        versions = await self.fetch_loader_versions()
        for version in versions:
            if version.stable:
                return version
        # Fallback to first version if no stable found
        return versions[0] if versions else None

    def profile_url(self, game_version: str, loader_version: str) -> str:
        return f"{self.base_url}/v2/versions/loader/{game_version}/{loader_version}/profile/json"

    def overlay_for(self, base: GameVersion, loader_version: str) -> GameVersion:
        """Derived overlay whose manifest URL is the loader profile."""
        return dataclasses.replace(
            base.with_loader(loader_version),
            url=self.profile_url(base.base_id, loader_version),
        )


def split_loader_version_id(version_id: str) -> Optional[Tuple[str, str]]:
    """(loader version, base version) for ids like fabric-loader-0.15.11-1.21, else None."""
    prefix = f"{LOADER_ID_PREFIX}-"
    if not version_id.startswith(prefix):
        return None
    loader_version, sep, base_version = version_id[len(prefix):].partition('-')
    if not sep or not loader_version or not base_version:
        return None
    return loader_version, base_version
