import asyncio
import os
import platform
import re
import pathlib
import shutil
import logging
from typing import Mapping, Optional

import aiofiles.os

log = logging.getLogger(__name__)


def _java_binary(base_dir: pathlib.Path, system: str) -> pathlib.Path:
    if system == 'Windows':
        return base_dir / 'bin' / 'java.exe'
    elif system == 'Darwin':
        return base_dir / 'Contents' / 'Home' / 'bin' / 'java'
    else:  # Linux
        return base_dir / 'bin' / 'java'


async def _usable(java_executable_path: pathlib.Path) -> bool:
    if not await aiofiles.os.path.isfile(java_executable_path):
        return False
    if not os.access(java_executable_path, os.X_OK):
        log.warning(f"[find_java_executable] File found but not executable: {java_executable_path}")
        return False
    return True


async def find_java_executable(java_home: pathlib.Path, system: Optional[str] = None) -> Optional[pathlib.Path]:
    """
    Finds the path to the Java executable within the specified directory.
    Checks the first subdirectory (an unpacked JDK archive) before the directory itself.
    """
    system = system or platform.system()
    java_home = pathlib.Path(java_home)
    log.debug(f"[find_java_executable] Searching in: {java_home}")

    if not await aiofiles.os.path.isdir(java_home):
        log.warning(f"[find_java_executable] Provided path is not a directory: {java_home}")
        return None

    potential_sub_dir = None
    try:
        for entry in os.scandir(java_home):
            try:
                if entry.is_dir():
                    potential_sub_dir = pathlib.Path(entry.path)
                    break  # Assume first directory found is the right one
            except OSError as scandir_entry_error:
                log.warning(f"[find_java_executable] Could not check directory status for {entry.path}: {scandir_entry_error}")
    except OSError as e:
        log.warning(f"[find_java_executable] Could not scan directory {java_home}: {e}")

    candidates = [java_home]
    if potential_sub_dir is not None:
        candidates.insert(0, potential_sub_dir)

    for base_dir in candidates:
        java_executable_path = _java_binary(base_dir, system)
        if await _usable(java_executable_path):
            log.info(f"[find_java_executable] Found accessible executable: {java_executable_path.resolve()}")
            return java_executable_path.resolve()

    log.warning(f"[find_java_executable] Could not find a Java executable under {java_home}")
    return None


async def resolve_java(configured: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                       system: Optional[str] = None) -> str:
    """
    An explicit path wins (a file, or a directory searched like JAVA_HOME),
    then JAVA_HOME, then 'java' on PATH. Falls back to plain 'java'.
    """
    environ = os.environ if environ is None else environ
    system = system or platform.system()

    if configured:
        configured_path = pathlib.Path(configured)
        if await aiofiles.os.path.isdir(configured_path):
            found = await find_java_executable(configured_path, system)
            if found is not None:
                return str(found)
            log.warning(f"No Java executable under configured directory {configured_path}")
        else:
            return str(configured_path)

    java_home = environ.get('JAVA_HOME')
    if java_home:
        candidate = _java_binary(pathlib.Path(java_home), 'Linux' if system == 'Darwin' else system)
        if await _usable(candidate):
            return str(candidate)
        found = await find_java_executable(pathlib.Path(java_home), system)
        if found is not None:
            return str(found)
        log.warning(f"JAVA_HOME is set to {java_home} but contains no usable java")

    on_path = shutil.which('java', path=environ.get('PATH'))
    if on_path:
        return on_path

    log.warning("No Java runtime found; relying on 'java' being resolvable at launch time")
    return 'java'


JAVA_VERSION_PATTERN = re.compile(r'version "(\d+)(?:\.(\d+))?')
VERSION_CHECK_TIMEOUT = 10.0


def parse_java_major(output: str) -> Optional[int]:
    """Major version from `java -version` output; 1.8.0_372 is 8, 21.0.2 is 21."""
    match = JAVA_VERSION_PATTERN.search(output)
    if match is None:
        return None
    major = int(match.group(1))
    if major == 1 and match.group(2):
        return int(match.group(2))
    return major


async def java_major_version(java_path: str, timeout: float = VERSION_CHECK_TIMEOUT) -> Optional[int]:
    """Runs `java -version`. None when it cannot be run or its output is unrecognised."""
    try:
        process = await asyncio.create_subprocess_exec(
            java_path, '-version',
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        log.warning(f"Could not run {java_path} to check its version: {e}")
        return None

    try:
        output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning(f"{java_path} -version did not finish within {timeout}s")
        process.kill()
        await process.wait()
        return None

    major = parse_java_major(output.decode('utf-8', errors='replace'))
    log.debug(f"Java at {java_path} reports major version {major}")
    return major
