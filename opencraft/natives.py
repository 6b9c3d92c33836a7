"""Extraction of platform native libraries into a per-version scratch directory."""
import asyncio
import logging
import pathlib
import shutil
import zipfile
from typing import Iterable, List, Optional, Union

import aiofiles.os

from .errors import InvalidCoordinate
from .manifest import LibraryEntry, Manifest
from .resolver import ProgressSink, ResolvedManifest, native_artifact_path, report_progress
from .rules import RuleEvaluator

log = logging.getLogger(__name__)

METADATA_PREFIX = 'META-INF/'


def _excluded(name: str, excludes: Iterable[str]) -> bool:
    if name.upper().startswith(METADATA_PREFIX):
        return True
    return any(name.startswith(prefix) for prefix in excludes)


def _extract_zip_sync(jar_path: pathlib.Path, extract_to_dir: pathlib.Path, excludes: List[str]) -> int:
    """Unpacks every file entry of jar_path except metadata; returns the count written."""
    written = 0
    with zipfile.ZipFile(jar_path, 'r') as zip_ref:
        for member in zip_ref.infolist():
            if member.is_dir() or _excluded(member.filename, excludes):
                continue
            # ZipFile.extract overwrites and strips absolute/parent components
            zip_ref.extract(member, extract_to_dir)
            written += 1
    return written


def _reset_directory(directory: pathlib.Path) -> None:
    if directory.exists():
        shutil.rmtree(directory)
    directory.mkdir(parents=True, exist_ok=True)


class NativeLibraryExtractor:

    def __init__(self, libraries_dir: pathlib.Path, evaluator: RuleEvaluator,
                 progress: Optional[ProgressSink] = None):
        self.libraries_dir = pathlib.Path(libraries_dir)
        self.evaluator = evaluator
        self.progress = progress

    def native_archives(self, libraries: Iterable[LibraryEntry]):
        """(library, archive path) for every allowed library with natives for this platform."""
        for library in libraries:
            if not self.evaluator.is_allowed(library):
                continue
            native_key = self.evaluator.native_classifier_for(library)
            if not native_key:
                continue
            try:
                yield library, native_artifact_path(library, native_key, self.libraries_dir)
            except InvalidCoordinate as e:
                log.warning(f"{e}; skipping natives")

    async def extract(self, manifest: Union[ResolvedManifest, Manifest], dest_root: pathlib.Path) -> pathlib.Path:
        """
        Recreates dest_root/<version id> and unpacks this platform's natives into it.

        A broken archive is logged and skipped; the others are still extracted.
        """
        version_id = getattr(manifest, 'version_id', None) or manifest.id
        natives_dir = pathlib.Path(dest_root) / version_id
        loop = asyncio.get_running_loop()

        await loop.run_in_executor(None, _reset_directory, natives_dir)

        archives = list(self.native_archives(manifest.libraries))
        if not archives:
            log.info("No native libraries to extract for this platform.")
            return natives_dir

        report_progress(self.progress, f"Extracting {len(archives)} native libraries for {self.evaluator.native_classifier_key()}...")
        for library, jar_path in archives:
            if not await aiofiles.os.path.isfile(jar_path):
                log.warning(f"Native library not found: {jar_path}")
                continue
            try:
                count = await loop.run_in_executor(
                    None, _extract_zip_sync, jar_path, natives_dir, library.extract_exclude
                )
                log.debug(f"Extracted {count} files from {jar_path.name}")
            except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError) as e:
                # encrypted entries and unsupported compression methods land here too
                log.error(f"Failed to extract natives from {jar_path.name}: {e}")

        log.info(f"Native libraries extracted to: {natives_dir}")
        return natives_dir
