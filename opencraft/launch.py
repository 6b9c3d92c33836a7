"""
Launch orchestration.

``prepare_launch`` turns a resolved manifest into a ``LaunchPlan``;
``Launcher`` wires the version cache, assembler, native extractor,
command builder and process supervisor together for a front end.
"""
import asyncio
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiofiles.os

from .cache import VersionIndexCache, list_versions
from .command import LaunchCommandBuilder, LaunchPlan
from .config import GamePaths, LauncherConfig
from .errors import ManifestMissing
from .java import java_major_version, resolve_java
from .natives import NativeLibraryExtractor
from .network import HttpFetcher, file_exists
from .process import OutputSink, ProcessSupervisor
from .replacer import substitute_all, unresolved_placeholders
from .resolver import DependencyAssembler, ManifestResolver, ProgressSink, ResolvedManifest, report_progress
from .rules import PlatformInfo, RuleEvaluator
from .settings import load_settings, save_settings
from .versions import GameVersion, LoaderMetaClient, split_loader_version_id

log = logging.getLogger(__name__)

LAUNCHER_NAME = 'opencraft'
LAUNCHER_VERSION = '1.0'

# Offline identity
OFFLINE_UUID = '00000000-0000-0000-0000-000000000000'
OFFLINE_ACCESS_TOKEN = '0'
OFFLINE_USER_TYPE = 'legacy'
OFFLINE_XUID = '0'

MAC_FIRST_THREAD_FLAG = '-XstartOnFirstThread'
G1_FLAGS = ['-XX:+UnlockExperimentalVMOptions', '-XX:+UseG1GC']


@dataclass
class LaunchOptions:
    username: str = 'Player'
    java_path: str = 'java'
    max_memory: str = '-Xmx4G'
    min_memory: str = '-Xms1G'
    uuid: str = OFFLINE_UUID
    access_token: str = OFFLINE_ACCESS_TOKEN
    user_type: str = OFFLINE_USER_TYPE
    resolution_width: str = '854'
    resolution_height: str = '480'


def placeholder_values(resolved: ResolvedManifest, natives_dir: pathlib.Path, paths: GamePaths,
                       options: LaunchOptions, classpath_separator: str = os.pathsep) -> Dict[str, str]:
    return {
        '${natives_directory}': str(natives_dir),
        '${library_directory}': str(paths.libraries_dir),
        '${classpath_separator}': classpath_separator,
        '${classpath}': classpath_separator.join(str(entry) for entry in resolved.classpath),
        '${launcher_name}': LAUNCHER_NAME,
        '${launcher_version}': LAUNCHER_VERSION,
        '${auth_player_name}': options.username,
        '${version_name}': resolved.version_id,
        '${game_directory}': str(paths.root),
        '${assets_root}': str(paths.assets_dir),
        '${game_assets}': str(paths.assets_dir),
        '${assets_index_name}': resolved.asset_index or '',
        '${auth_uuid}': options.uuid,
        '${auth_access_token}': options.access_token,
        '${auth_session}': options.access_token,
        '${clientid}': 'N/A',
        '${auth_xuid}': OFFLINE_XUID,
        '${user_type}': options.user_type,
        '${user_properties}': '{}',
        '${version_type}': resolved.version_type,
        '${resolution_width}': options.resolution_width,
        '${resolution_height}': options.resolution_height,
    }


def _warn_unresolved(tokens: List[str]) -> None:
    for token in tokens:
        leftover = unresolved_placeholders(token)
        if leftover:
            log.warning(f"Unresolved placeholder(s) {', '.join(leftover)} in argument {token!r}")


def prepare_launch(resolved: ResolvedManifest, natives_dir: pathlib.Path, paths: GamePaths,
                   options: LaunchOptions, platform_info: PlatformInfo,
                   classpath_separator: str = os.pathsep) -> LaunchPlan:
    if not resolved.main_class:
        raise ManifestMissing(resolved.version_id, "no main class after merging with the base version")

    replacements = placeholder_values(resolved, natives_dir, paths, options, classpath_separator)
    jvm_fragments = substitute_all(resolved.jvm_fragments, replacements)
    game_fragments = substitute_all(resolved.game_fragments, replacements)
    _warn_unresolved(jvm_fragments + game_fragments)

    builder = LaunchCommandBuilder(
        resolved.main_class,
        java_path=options.java_path,
        natives_dir=natives_dir,
        classpath_separator=classpath_separator,
    )
    if platform_info.is_mac and MAC_FIRST_THREAD_FLAG not in jvm_fragments:
        builder.add_jvm_arg(MAC_FIRST_THREAD_FLAG)
    builder.add_jvm_args([options.max_memory, options.min_memory, '-Dfile.encoding=UTF-8', *G1_FLAGS])
    builder.add_jvm_args(jvm_fragments)
    builder.add_classpath_entries(resolved.classpath)

    builder.add_game_arg('--username', options.username)
    builder.add_game_arg('--version', resolved.version_id)
    builder.add_game_arg('--gameDir', str(paths.root))
    builder.add_game_arg('--assetsDir', str(paths.assets_dir))
    if resolved.asset_index:
        builder.add_game_arg('--assetIndex', resolved.asset_index)
    builder.add_game_arg('--uuid', options.uuid)
    builder.add_game_arg('--accessToken', options.access_token)
    builder.add_game_arg('--userType', options.user_type)
    builder.add_game_args(game_fragments)
    return builder.plan()


def submit(coro: Awaitable[Any], on_done: Optional[Callable[[Any, Optional[BaseException]], None]] = None) -> asyncio.Task:
    """Schedules coro and reports (result, error) to on_done when it settles."""
    task = asyncio.ensure_future(coro)
    if on_done is not None:
        def _settled(finished: asyncio.Task) -> None:
            if finished.cancelled():
                on_done(None, asyncio.CancelledError())
            elif finished.exception() is not None:
                on_done(None, finished.exception())
            else:
                on_done(finished.result(), None)
        task.add_done_callback(_settled)
    return task


class Launcher:
    """Front-end facade. Every long-running call reports through the progress sink."""

    def __init__(self, config: LauncherConfig, platform_info: Optional[PlatformInfo] = None,
                 fetcher=None, progress: Optional[ProgressSink] = None, show_progress: bool = False):
        self.config = config
        self.paths = config.paths
        self.platform = platform_info or PlatformInfo.detect()
        self.fetcher = fetcher if fetcher is not None else HttpFetcher()
        self.progress = progress
        self.evaluator = RuleEvaluator(self.platform, config.features)
        self.cache = VersionIndexCache(self.paths.cache_file, config.cache_ttl_seconds, config.version_index_url)
        self.loader_meta = LoaderMetaClient(self.fetcher, config.loader_meta_url)
        self.resolver = ManifestResolver(
            self.paths, self.fetcher, self.evaluator,
            repositories=config.repositories, progress=progress, show_progress=show_progress,
        )
        self.assembler = DependencyAssembler(self.resolver)
        self.extractor = NativeLibraryExtractor(self.paths.libraries_dir, self.evaluator, progress)
        self.supervisor = ProcessSupervisor()

    async def close(self) -> None:
        if hasattr(self.fetcher, 'close'):
            await self.fetcher.close()

    async def __aenter__(self) -> "Launcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def versions(self, releases_only: bool = True, force_refresh: bool = False) -> List[GameVersion]:
        versions = await list_versions(self.cache, self.fetcher, releases_only, force_refresh)
        self.resolver.register(*versions)
        return versions

    async def _make_resolvable(self, version_id: str) -> None:
        """Registers the manifest URL of version_id (and of its base for loader ids)."""
        if await file_exists(self.paths.version_json(version_id)) or self.resolver.known_version(version_id):
            return
        versions = await self.versions(releases_only=False)
        by_id = {version.id: version for version in versions}
        if version_id in by_id:
            return

        parts = split_loader_version_id(version_id)
        if parts is None:
            raise ManifestMissing(version_id, "not in the version index")
        loader_version, base_id = parts
        base = by_id.get(base_id)
        if base is None:
            raise ManifestMissing(base_id, "base version is not in the version index")
        self.resolver.register(self.loader_meta.overlay_for(base, loader_version))

    async def install(self, version_id: str, loader_version: Optional[str] = None) -> ResolvedManifest:
        """
        Downloads everything version_id needs. With loader_version (or
        'latest'), installs that loader on top of version_id instead.
        """
        if loader_version:
            if loader_version == 'latest':
                latest = await self.loader_meta.latest_stable()
                if latest is None:
                    raise ManifestMissing(version_id, "no loader versions published")
                loader_version = latest.version
            await self._make_resolvable(version_id)
            base = self.resolver.known_version(version_id) or GameVersion(version_id, 'release', '', '')
            overlay = self.loader_meta.overlay_for(base, loader_version)
            self.resolver.register(overlay)
            version_id = overlay.id

        await self._make_resolvable(version_id)
        parts = split_loader_version_id(version_id)
        if parts is not None:
            await self._make_resolvable(parts[1])

        report_progress(self.progress, f"Resolving {version_id}...")
        resolved = await self.assembler.resolve(version_id)
        report_progress(self.progress, f"{version_id}: {len(resolved.classpath)} classpath entries ready")
        return resolved

    async def prepare(self, version_id: str, username: Optional[str] = None) -> LaunchPlan:
        resolved = await self.install(version_id)
        natives_dir = await self.extractor.extract(resolved, self.paths.natives_root)
        java_path = await resolve_java(self.config.java_path)
        await self._check_java(java_path, resolved.java_major)
        options = LaunchOptions(
            username=username or self.config.username,
            java_path=java_path,
            max_memory=self.config.max_memory,
            min_memory=self.config.min_memory,
        )
        return prepare_launch(resolved, natives_dir, self.paths, options, self.platform)

    async def _check_java(self, java_path: str, required: Optional[int]) -> Optional[int]:
        """Warns when the runtime is older than the manifest asks for. The launch still goes ahead."""
        if required is None:
            return None
        found = await java_major_version(java_path)
        if found is not None and found < required:
            report_progress(self.progress, f"Warning: Java {required} is required but {java_path} is Java {found}")
        return found

    async def launch(self, version_id: str, username: Optional[str] = None,
                     output_sink: Optional[OutputSink] = None) -> int:
        """Prepares and starts the game. Returns the pid; use supervisor.wait()/monitor() for the exit."""
        plan = await self.prepare(version_id, username)
        report_progress(self.progress, "Launching...")
        await aiofiles.os.makedirs(self.paths.root, exist_ok=True)
        pid = await self.supervisor.start(plan.to_command(), output_sink, cwd=self.paths.root)

        settings = load_settings(self.paths.settings_file)
        settings.last_version = version_id
        if username:
            settings.username = username
        save_settings(self.paths.settings_file, settings)
        return pid
