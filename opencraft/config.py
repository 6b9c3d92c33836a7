"""Launcher configuration and the on-disk game directory layout."""
import json
import logging
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .cache import CACHE_FILE, DEFAULT_TTL_SECONDS
from .errors import ConfigError
from .network import FALLBACK_REPOSITORIES
from .replacer import replace_text
from .rules import OS_MACOS, OS_WINDOWS, PlatformInfo
from .versions import LOADER_META_URL, VERSION_MANIFEST_URL

log = logging.getLogger(__name__)

CONFIG_FILE = 'launcher_config.json'
THIS_DIR_TOKEN = ':thisdir:'


def default_game_dir(platform_info: PlatformInfo, home: Optional[pathlib.Path] = None,
                     environ: Optional[Dict[str, str]] = None) -> pathlib.Path:
    """The directory the official launcher uses on each OS."""
    home = pathlib.Path(home) if home is not None else pathlib.Path.home()
    environ = os.environ if environ is None else environ
    if platform_info.os_name == OS_MACOS:
        return home / 'Library' / 'Application Support' / 'minecraft'
    if platform_info.os_name == OS_WINDOWS:
        app_data = environ.get('APPDATA')
        if app_data:
            return pathlib.Path(app_data) / '.minecraft'
        return home / 'AppData' / 'Roaming' / '.minecraft'
    return home / '.minecraft'


@dataclass(frozen=True)
class GamePaths:
    """
    versions/<id>/<id>.json and <id>.jar, libraries/<maven layout>,
    libraries/natives/<id>/, assets/indexes and assets/objects/<xx>/<hash>
    and the version index cache, all under root.
    """
    root: pathlib.Path

    @property
    def versions_dir(self) -> pathlib.Path:
        return self.root / 'versions'

    @property
    def libraries_dir(self) -> pathlib.Path:
        return self.root / 'libraries'

    @property
    def natives_root(self) -> pathlib.Path:
        return self.libraries_dir / 'natives'

    @property
    def assets_dir(self) -> pathlib.Path:
        return self.root / 'assets'

    @property
    def asset_indexes_dir(self) -> pathlib.Path:
        return self.assets_dir / 'indexes'

    @property
    def asset_objects_dir(self) -> pathlib.Path:
        return self.assets_dir / 'objects'

    def asset_index_file(self, index_id: str) -> pathlib.Path:
        return self.asset_indexes_dir / f"{index_id}.json"

    @property
    def cache_file(self) -> pathlib.Path:
        return self.root / CACHE_FILE

    @property
    def settings_file(self) -> pathlib.Path:
        return self.root / 'settings.json'

    def version_dir(self, version_id: str) -> pathlib.Path:
        return self.versions_dir / version_id

    def version_json(self, version_id: str) -> pathlib.Path:
        return self.version_dir(version_id) / f"{version_id}.json"

    def version_jar(self, version_id: str) -> pathlib.Path:
        return self.version_dir(version_id) / f"{version_id}.jar"

    def natives_dir(self, version_id: str) -> pathlib.Path:
        return self.natives_root / version_id


@dataclass
class LauncherConfig:
    game_dir: pathlib.Path
    java_path: Optional[str] = None
    max_memory: str = '-Xmx4G'
    min_memory: str = '-Xms1G'
    cache_ttl_hours: float = DEFAULT_TTL_SECONDS / 3600
    version_index_url: str = VERSION_MANIFEST_URL
    loader_meta_url: str = LOADER_META_URL
    repositories: List[str] = field(default_factory=lambda: list(FALLBACK_REPOSITORIES))
    username: str = 'Player'
    features: Dict[str, bool] = field(default_factory=dict)

    @property
    def paths(self) -> GamePaths:
        return GamePaths(pathlib.Path(self.game_dir))

    @property
    def cache_ttl_seconds(self) -> float:
        return float(self.cache_ttl_hours) * 3600


def _patch_values(value: Any, replacements: Dict[str, str]) -> Any:
    if isinstance(value, str):
        return replace_text(value, replacements)
    if isinstance(value, list):
        return [_patch_values(item, replacements) for item in value]
    if isinstance(value, dict):
        return {key: _patch_values(item, replacements) for key, item in value.items()}
    return value


def load_launcher_config(path: pathlib.Path, platform_info: Optional[PlatformInfo] = None) -> LauncherConfig:
    """
    Loads launcher_config.json. ':thisdir:' in any string value becomes the
    directory holding the file. A missing file yields the defaults.
    """
    path = pathlib.Path(path)
    platform_info = platform_info or PlatformInfo.detect()
    defaults = LauncherConfig(game_dir=default_game_dir(platform_info))

    if not path.is_file():
        log.info(f"No {path.name} found at {path}; using defaults")
        return defaults

    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error parsing {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    patched = _patch_values(raw, {THIS_DIR_TOKEN: str(path.parent.resolve())})

    game_dir = patched.get('gameDir') or patched.get('basepath')
    try:
        return LauncherConfig(
            game_dir=pathlib.Path(game_dir) if game_dir else defaults.game_dir,
            java_path=patched.get('javaPath') or None,
            max_memory=patched.get('maxMemory', defaults.max_memory),
            min_memory=patched.get('minMemory', defaults.min_memory),
            cache_ttl_hours=float(patched.get('cacheTtlHours', defaults.cache_ttl_hours)),
            version_index_url=patched.get('versionIndexUrl', defaults.version_index_url),
            loader_meta_url=patched.get('loaderMetaUrl', defaults.loader_meta_url),
            repositories=list(patched.get('repositories', defaults.repositories)),
            username=patched.get('username', defaults.username),
            features=dict(patched.get('features', {})),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {path}: {e}") from e
