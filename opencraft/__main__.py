import argparse
import asyncio
import logging
import pathlib
import sys
from typing import List, Optional

from tqdm import tqdm

from .config import CONFIG_FILE, load_launcher_config
from .errors import LauncherError
from .launch import Launcher
from .rules import PlatformInfo

log = logging.getLogger('opencraft')


def _progress(message: str) -> None:
    # tqdm.write keeps messages from tearing active progress bars
    tqdm.write(message)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='opencraft', description='Minecraft launcher core.')
    parser.add_argument('--config', type=pathlib.Path, default=pathlib.Path.cwd() / CONFIG_FILE,
                        help=f"path to {CONFIG_FILE} (default: ./{CONFIG_FILE})")
    parser.add_argument('-v', '--verbose', action='store_true', help='debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    versions = subparsers.add_parser('versions', help='list available game versions')
    versions.add_argument('--all', action='store_true', help='include snapshots and old versions')
    versions.add_argument('--refresh', action='store_true', help='revalidate the cached index now')

    install = subparsers.add_parser('install', help='download a version and its libraries')
    install.add_argument('version')
    install.add_argument('--loader', help="Fabric loader version to install on top ('latest' for newest stable)")

    launch = subparsers.add_parser('launch', help='install if needed, then start the game')
    launch.add_argument('version')
    launch.add_argument('--username')
    return parser


async def run(args: argparse.Namespace) -> int:
    platform_info = PlatformInfo.detect()
    log.info(f"Detected OS: {platform_info.os_name}, Arch: {platform_info.arch} ({platform_info.bits}-bit)")
    config = load_launcher_config(args.config, platform_info)

    async with Launcher(config, platform_info, progress=_progress, show_progress=True) as launcher:
        if args.command == 'versions':
            versions = await launcher.versions(releases_only=not args.all, force_refresh=args.refresh)
            for version in versions:
                print(f"{version.display_name:<32} {version.type:<10} {version.release_time}")
            return 0

        if args.command == 'install':
            resolved = await launcher.install(args.version, args.loader)
            if resolved.missing:
                log.warning(f"{len(resolved.missing)} libraries could not be downloaded")
            print(f"Installed {resolved.version_id} ({len(resolved.classpath)} classpath entries)")
            return 0

        if args.command == 'launch':
            pid = await launcher.launch(args.version, args.username, output_sink=print)
            log.info(f"Minecraft process started (PID: {pid}). Waiting for exit...")
            try:
                return_code = await launcher.supervisor.wait()
            except asyncio.CancelledError:
                await launcher.supervisor.stop()
                raise
            return return_code or 0

    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        log.info("Launch cancelled by user.")
        return 130
    except LauncherError as e:
        log.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
