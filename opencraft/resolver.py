"""
Manifest resolution and the one level of loader-over-base inheritance.

``ManifestResolver.resolve`` turns one version id into an ordered
classpath, downloading whatever is missing. ``DependencyAssembler``
recognises loader overlays and stitches the loader's output in front of
its base game's.
"""
import asyncio
import json
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import aiofiles
import aiofiles.os
from tqdm.asyncio import tqdm

from .config import GamePaths
from .errors import ArtifactUnavailable, FetchError, InvalidCoordinate, LauncherError, ManifestMissing
from .manifest import (
    LibraryEntry,
    LoaderOverlayManifest,
    Manifest,
    ManifestArguments,
    SelfContainedManifest,
    parse_manifest,
)
from .network import FALLBACK_REPOSITORIES, default_concurrency, file_exists, first_success, repository_candidates, save_bytes
from .rules import RuleEvaluator, parse_rules
from .versions import GameVersion

log = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]

# Tokens the launch command builder emits itself
OWNED_JVM_FLAGS_WITH_VALUE = {'-cp', '-classpath', '--class-path'}
OWNED_JVM_PREFIXES = ('-Djava.library.path=',)
OWNED_GAME_FLAGS = {
    '--username', '--version', '--gameDir', '--assetsDir',
    '--assetIndex', '--uuid', '--accessToken', '--userType',
}

KIND_CLASSPATH = 'classpath'
KIND_NATIVE = 'native'
KIND_MAIN = 'main'
KIND_ASSET = 'asset'

ASSET_RESOURCES_URL = 'https://resources.download.minecraft.net/'


@dataclass
class ResolvedArtifact:
    name: str
    path: pathlib.Path
    exists: bool
    size: int = 0


@dataclass
class ResolvedManifest:
    version_id: str
    manifest: Manifest
    classpath: List[pathlib.Path]
    main_class: Optional[str]
    asset_index: Optional[str] = None
    jvm_fragments: List[str] = field(default_factory=list)
    game_fragments: List[str] = field(default_factory=list)
    libraries: List[LibraryEntry] = field(default_factory=list)
    native_artifacts: List[ResolvedArtifact] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    missing_assets: List[str] = field(default_factory=list)
    version_type: str = 'release'
    base_version_id: Optional[str] = None
    java_major: Optional[int] = None

    @property
    def is_loader_overlay(self) -> bool:
        return isinstance(self.manifest, LoaderOverlayManifest)


@dataclass
class _Job:
    kind: str
    name: str
    dest: pathlib.Path
    urls: List[str]
    sha1: Optional[str] = None


def native_artifact_path(library: LibraryEntry, native_key: str, libraries_dir: pathlib.Path) -> pathlib.Path:
    descriptor = library.classifiers[native_key]
    if descriptor.path:
        return libraries_dir / descriptor.path
    return library.coordinate.with_classifier(native_key).resolve_in(libraries_dir)


def asset_jobs(index_document: Mapping[str, Any], objects_dir: pathlib.Path,
               base_url: str = ASSET_RESOURCES_URL) -> List[_Job]:
    """One job per distinct object hash in an asset index."""
    objects = index_document.get('objects') if isinstance(index_document, dict) else None
    if not isinstance(objects, dict):
        return []
    jobs, seen = [], set()
    for name, entry in objects.items():
        file_hash = entry.get('hash') if isinstance(entry, dict) else None
        if not file_hash:
            log.warning(f"Skipping asset {name}: missing hash")
            continue
        if file_hash in seen:
            continue
        seen.add(file_hash)
        prefix = file_hash[:2]
        jobs.append(_Job(
            kind=KIND_ASSET,
            name=name,
            dest=objects_dir / prefix / file_hash,
            urls=[f"{base_url}{prefix}/{file_hash}"],
            sha1=file_hash,
        ))
    return jobs


def report_progress(progress: Optional[ProgressSink], message: str) -> None:
    if progress is not None:
        progress(message)
    else:
        log.info(message)


# --- Argument fragments ---

def flatten_arguments(entries: Iterable[Any], evaluator: RuleEvaluator) -> List[str]:
    """Plain strings pass through; rule objects contribute their value when allowed."""
    tokens = []
    for entry in entries:
        if isinstance(entry, str):
            tokens.append(entry)
        elif isinstance(entry, dict):
            if not evaluator.rules_allow(parse_rules(entry.get('rules')), default=False):
                continue
            value = entry.get('value')
            if isinstance(value, list):
                tokens.extend(v for v in value if isinstance(v, str))
            elif isinstance(value, str):
                tokens.append(value)
            else:
                log.warning(f"Unsupported value type in argument object: {value!r}")
        else:
            log.warning(f"Unsupported argument format: {entry!r}")
    return tokens


def drop_owned_jvm_args(tokens: Sequence[str]) -> List[str]:
    kept = []
    skip_next = False
    for token in tokens:
        if skip_next:
            skip_next = False
            continue
        if token in OWNED_JVM_FLAGS_WITH_VALUE:
            skip_next = True
            continue
        if token.startswith(OWNED_JVM_PREFIXES):
            continue
        kept.append(token)
    return kept


def drop_owned_game_args(tokens: Sequence[str]) -> List[str]:
    kept = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in OWNED_GAME_FLAGS:
            has_value = index + 1 < len(tokens) and not tokens[index + 1].startswith('--')
            index += 2 if has_value else 1
            continue
        kept.append(token)
        index += 1
    return kept


def argument_fragments(arguments: ManifestArguments, evaluator: RuleEvaluator):
    """(jvm, game) fragments of one manifest, minus builder-owned tokens."""
    jvm = drop_owned_jvm_args(flatten_arguments(arguments.jvm, evaluator))
    game_tokens = flatten_arguments(arguments.game, evaluator)
    if not game_tokens and arguments.legacy_game:
        game_tokens = arguments.legacy_game.split()
    return jvm, drop_owned_game_args(game_tokens)


# --- Resolver ---

class ManifestResolver:

    def __init__(
        self,
        paths: GamePaths,
        fetcher,
        evaluator: RuleEvaluator,
        known_versions: Optional[Mapping[str, GameVersion]] = None,
        repositories: Sequence[str] = FALLBACK_REPOSITORIES,
        progress: Optional[ProgressSink] = None,
        show_progress: bool = False,
        max_concurrency: Optional[int] = None,
        asset_base_url: str = ASSET_RESOURCES_URL,
    ):
        self.paths = paths
        self.fetcher = fetcher
        self.evaluator = evaluator
        self.repositories = list(repositories)
        self.progress = progress
        self.show_progress = show_progress
        self.max_concurrency = max_concurrency or default_concurrency()
        self.asset_base_url = asset_base_url
        self._known: Dict[str, GameVersion] = dict(known_versions or {})

    def register(self, *versions: GameVersion) -> None:
        """Makes versions resolvable by id through their manifest URL."""
        for version in versions:
            self._known[version.id] = version

    def known_version(self, version_id: str) -> Optional[GameVersion]:
        return self._known.get(version_id)

    async def load_manifest(self, version_id: str, refresh: bool = False) -> Manifest:
        """
        Reads versions/<id>/<id>.json, fetching and persisting it first when
        it is absent (or refresh is set) and the id has a registered URL.
        """
        manifest_path = self.paths.version_json(version_id)
        version = self._known.get(version_id)

        if version is not None and (refresh or not await file_exists(manifest_path)):
            try:
                report_progress(self.progress, f"Fetching manifest for {version_id}...")
                result = await self.fetcher.fetch_bytes(version.url)
                manifest = parse_manifest(json.loads(result.content), version_id)
                await save_bytes(result.content, manifest_path)
                log.info(f"Saved manifest: {manifest_path}")
                return manifest
            except (FetchError, ValueError, TypeError) as e:
                if not await file_exists(manifest_path):
                    raise ManifestMissing(version_id, str(e)) from e
                log.warning(f"Could not refresh manifest for {version_id} ({e}); using local copy")

        if not await file_exists(manifest_path):
            raise ManifestMissing(version_id, f"{manifest_path} not found and no download URL is known")

        try:
            async with aiofiles.open(manifest_path, 'r', encoding='utf-8') as f:
                content = await f.read()
            return parse_manifest(json.loads(content), version_id)
        except (OSError, ValueError) as e:
            raise ManifestMissing(version_id, f"unreadable manifest {manifest_path}: {e}") from e

    async def resolve(self, version_id: str) -> ResolvedManifest:
        manifest = await self.load_manifest(version_id)
        jobs = self._plan(manifest)

        report_progress(self.progress, f"Checking {len(jobs)} files for {version_id}...")
        pbar = tqdm(total=len(jobs), desc=version_id, unit="file", leave=False, disable=not self.show_progress)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        missing_assets: List[str] = []
        try:
            # gather keeps declaration order whatever order downloads finish in
            artifacts = await asyncio.gather(*(self._ensure(job, semaphore, pbar) for job in jobs))
            if isinstance(manifest, SelfContainedManifest):
                missing_assets = await self._ensure_assets(manifest, semaphore, pbar)
        finally:
            pbar.close()

        classpath, natives, missing = [], [], []
        for job, artifact in zip(jobs, artifacts):
            if not artifact.exists:
                missing.append(job.name)
                continue
            if job.kind == KIND_NATIVE:
                natives.append(artifact)
            else:
                classpath.append(artifact.path)

        missing.extend(self._invalid_names(manifest))
        if missing:
            report_progress(self.progress, f"Warning: {len(missing)} libraries missing for {version_id}: {', '.join(missing)}")
        if missing_assets:
            report_progress(self.progress, f"Warning: {len(missing_assets)} assets missing for {version_id}")

        jvm_fragments, game_fragments = argument_fragments(manifest.arguments, self.evaluator)
        if isinstance(manifest, SelfContainedManifest):
            asset_index, java_major = manifest.asset_index, manifest.java_major
        else:
            asset_index, java_major = None, None

        return ResolvedManifest(
            version_id=manifest.id,
            manifest=manifest,
            classpath=classpath,
            main_class=manifest.main_class,
            asset_index=asset_index,
            jvm_fragments=jvm_fragments,
            game_fragments=game_fragments,
            libraries=list(manifest.libraries),
            native_artifacts=natives,
            missing=missing,
            missing_assets=missing_assets,
            version_type=manifest.type,
            java_major=java_major,
        )

    def _invalid_names(self, manifest: Manifest) -> List[str]:
        invalid = []
        for library in manifest.libraries:
            if library.has_downloads_block:
                continue
            if library.artifact is None and self.evaluator.is_allowed(library):
                try:
                    library.coordinate
                except InvalidCoordinate:
                    invalid.append(library.name)
        return invalid

    def _plan(self, manifest: Manifest) -> List[_Job]:
        libraries_dir = self.paths.libraries_dir
        jobs = []

        for library in manifest.libraries:
            if not self.evaluator.is_allowed(library):
                log.debug(f"Skipping {library.name}: not allowed on this platform")
                continue

            try:
                primary = self._primary_job(library, libraries_dir)
            except InvalidCoordinate as e:
                log.warning(f"{e}; skipping library")
                continue
            if primary is not None:
                jobs.append(primary)

            native_key = self.evaluator.native_classifier_for(library)
            if native_key:
                descriptor = library.classifiers[native_key]
                try:
                    dest = native_artifact_path(library, native_key, libraries_dir)
                except InvalidCoordinate as e:
                    log.warning(f"{e}; skipping natives")
                    continue
                jobs.append(_Job(
                    kind=KIND_NATIVE,
                    name=f"{library.name}:{native_key}",
                    dest=dest,
                    urls=[descriptor.url] if descriptor.url else [],
                    sha1=descriptor.sha1,
                ))

        if isinstance(manifest, SelfContainedManifest):
            client = manifest.client
            jobs.append(_Job(
                kind=KIND_MAIN,
                name=f"{manifest.id} client jar",
                dest=self.paths.version_jar(manifest.id),
                urls=[client.url] if client is not None and client.url else [],
                sha1=client.sha1 if client is not None else None,
            ))
        return jobs

    def _primary_job(self, library: LibraryEntry, libraries_dir: pathlib.Path) -> Optional[_Job]:
        if library.has_download_info:
            artifact = library.artifact
            return _Job(KIND_CLASSPATH, library.name, libraries_dir / artifact.path, [artifact.url], artifact.sha1)

        if library.has_downloads_block and (library.artifact is None or not library.artifact.path):
            # natives-only entry such as lwjgl-platform; its classifier jar is planned separately
            return None

        coordinate = library.coordinate
        if library.artifact is not None:
            dest = libraries_dir / library.artifact.path
        else:
            dest = coordinate.resolve_in(libraries_dir)
        urls = [coordinate.url_in(repo) for repo in repository_candidates(library.url, self.repositories)]
        return _Job(KIND_CLASSPATH, library.name, dest, urls)

    async def _ensure(self, job: _Job, semaphore: asyncio.Semaphore, pbar) -> ResolvedArtifact:
        async with semaphore:
            try:
                if not await file_exists(job.dest):
                    if not job.urls:
                        raise ArtifactUnavailable(job.name, ["no download URL declared"])
                    url, _ = await first_success(
                        job.urls,
                        lambda candidate: self.fetcher.download(candidate, job.dest, job.sha1),
                        job.name,
                    )
                    log.info(f"Downloaded {job.dest.name} from {url}")
            except ArtifactUnavailable as e:
                log.warning(str(e))
                return ResolvedArtifact(job.name, job.dest, exists=False)
            finally:
                pbar.update(1)

        stats = await aiofiles.os.stat(job.dest)
        return ResolvedArtifact(job.name, job.dest, exists=True, size=stats.st_size)

    async def _ensure_assets(self, manifest: SelfContainedManifest, semaphore: asyncio.Semaphore, pbar) -> List[str]:
        """
        Downloads the asset index, then every object it lists into
        assets/objects/<xx>/<hash>. Returns the names of assets still missing.
        """
        descriptor = manifest.asset_index_download
        if descriptor is None or not descriptor.url:
            log.debug(f"{manifest.id} declares no asset index download; skipping assets")
            return []

        index_id = manifest.asset_index or 'legacy'
        index_job = _Job(
            kind=KIND_ASSET,
            name=f"asset index {index_id}",
            dest=self.paths.asset_index_file(index_id),
            urls=[descriptor.url],
            sha1=descriptor.sha1,
        )
        pbar.total += 1
        pbar.refresh()
        index = await self._ensure(index_job, semaphore, pbar)
        if not index.exists:
            return [index_job.name]

        try:
            async with aiofiles.open(index.path, 'r', encoding='utf-8') as f:
                document = json.loads(await f.read())
        except (OSError, ValueError) as e:
            log.warning(f"Unreadable asset index {index.path}: {e}")
            return [index_job.name]

        jobs = asset_jobs(document, self.paths.asset_objects_dir, self.asset_base_url)
        report_progress(self.progress, f"Checking {len(jobs)} assets for index {index_id}...")
        pbar.total += len(jobs)
        pbar.refresh()
        results = await asyncio.gather(*(self._ensure(job, semaphore, pbar) for job in jobs))
        return [result.name for result in results if not result.exists]


class DependencyAssembler:
    """Resolves a version and, for loader overlays, the base version it inherits from."""

    def __init__(self, resolver: ManifestResolver):
        self.resolver = resolver

    async def resolve(self, version_id: str) -> ResolvedManifest:
        manifest = await self.resolver.load_manifest(version_id)

        if isinstance(manifest, SelfContainedManifest):
            log.info(f"Manifest {version_id} does not inherit from another version.")
            return await self.resolver.resolve(version_id)

        if isinstance(manifest, LoaderOverlayManifest):
            base_id = manifest.base_version_id
            log.info(f"{version_id} inherits from {base_id}")
            base_manifest = await self.resolver.load_manifest(base_id)
            if not isinstance(base_manifest, SelfContainedManifest):
                raise ManifestMissing(base_id, "base version is itself a loader overlay")
            loader, base = await asyncio.gather(
                self.resolver.resolve(version_id),
                self.resolver.resolve(base_id),
            )
            return merge_resolved(loader, base)

        raise LauncherError(f"Unknown manifest type for {version_id}: {type(manifest).__name__}")


def merge_resolved(loader: ResolvedManifest, base: ResolvedManifest) -> ResolvedManifest:
    """
    Loader libraries, then base libraries, then the base game jar. The
    loader ships no game jar of its own; its entry point re-enters the base jar.
    """
    return ResolvedManifest(
        version_id=loader.version_id,
        manifest=loader.manifest,
        classpath=loader.classpath + base.classpath,
        main_class=loader.main_class or base.main_class,
        asset_index=base.asset_index,
        jvm_fragments=loader.jvm_fragments + base.jvm_fragments,
        game_fragments=loader.game_fragments + base.game_fragments,
        libraries=loader.libraries + base.libraries,
        native_artifacts=loader.native_artifacts + base.native_artifacts,
        missing=loader.missing + base.missing,
        missing_assets=loader.missing_assets + base.missing_assets,
        version_type=loader.version_type,
        base_version_id=base.version_id,
        java_major=base.java_major,
    )
