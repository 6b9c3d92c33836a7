"""Exception hierarchy shared by the resolver, cache and process layers."""
from typing import List, Optional


class LauncherError(Exception):
    """Base class for every error raised by the launcher core."""


class ConfigError(LauncherError):
    pass


class InvalidCoordinate(LauncherError, ValueError):
    """A Maven coordinate string could not be parsed."""

    def __init__(self, coordinate: str):
        super().__init__(f"Invalid Maven coordinate: {coordinate!r}")
        self.coordinate = coordinate


class FetchError(LauncherError):
    """An HTTP exchange failed (transport error or unexpected status)."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status


class ArtifactUnavailable(LauncherError):
    """Every download attempt for one artifact failed."""

    def __init__(self, name: str, failures: Optional[List[str]] = None):
        self.name = name
        self.failures = failures or []
        detail = "; ".join(self.failures) if self.failures else "no candidates"
        super().__init__(f"Artifact unavailable: {name} ({detail})")


class ManifestMissing(LauncherError):
    """The requested version (or the base it inherits from) has no manifest."""

    def __init__(self, version_id: str, reason: str = "no manifest on disk or remote"):
        super().__init__(f"Manifest missing for {version_id}: {reason}")
        self.version_id = version_id


class CacheCorrupt(LauncherError):
    """The version-index cache file is unreadable. Never escapes the cache."""


class VersionIndexUnavailable(LauncherError):
    """No usable cache and the remote index could not be reached."""


class AlreadyRunning(LauncherError):
    """A process is already alive for this supervisor."""


class ProcessStartFailure(LauncherError):
    """The operating system refused to spawn the process."""

    def __init__(self, command: List[str], cause: OSError):
        executable = command[0] if command else "<empty command>"
        super().__init__(f"Could not start {executable}: {cause}")
        self.command = list(command)
        self.cause = cause
