"""Resolve, download and launch Minecraft versions, vanilla or with the Fabric loader."""
from .command import LaunchCommandBuilder, LaunchPlan
from .config import GamePaths, LauncherConfig, load_launcher_config
from .coordinates import MavenCoordinate
from .errors import (
    AlreadyRunning,
    ArtifactUnavailable,
    CacheCorrupt,
    LauncherError,
    ManifestMissing,
    InvalidCoordinate,
    ProcessStartFailure,
    VersionIndexUnavailable,
)
from .launch import Launcher, LaunchOptions, prepare_launch, submit
from .natives import NativeLibraryExtractor
from .process import ProcessSupervisor
from .resolver import DependencyAssembler, ManifestResolver, ResolvedManifest
from .rules import PlatformInfo, RuleEvaluator

__version__ = '1.0.0'
