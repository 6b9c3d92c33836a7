"""
Maven coordinate parsing.

``net.fabricmc:fabric-loader:0.15.11`` maps to
``net/fabricmc/fabric-loader/0.15.11/fabric-loader-0.15.11.jar`` inside a
Maven-style ``libraries/`` directory. An optional fourth segment is the
classifier (``org.lwjgl:lwjgl:3.3.3:natives-linux``).
"""
import pathlib
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidCoordinate


@dataclass(frozen=True)
class MavenCoordinate:
    group: str
    artifact: str
    version: str
    classifier: Optional[str] = None

    @classmethod
    def parse(cls, coordinate: str) -> "MavenCoordinate":
        if not isinstance(coordinate, str):
            raise InvalidCoordinate(str(coordinate))
        parts = coordinate.split(":")
        if len(parts) < 3 or not all(parts[:3]):
            raise InvalidCoordinate(coordinate)
        classifier = parts[3] if len(parts) > 3 and parts[3] else None
        return cls(parts[0], parts[1], parts[2], classifier)

    @property
    def group_path(self) -> str:
        return self.group.replace(".", "/")

    @property
    def file_name(self) -> str:
        suffix = f"-{self.classifier}" if self.classifier else ""
        return f"{self.artifact}-{self.version}{suffix}.jar"

    @property
    def relative_path(self) -> str:
        # Always '/'-separated: the same string is used for repository URLs.
        return f"{self.group_path}/{self.artifact}/{self.version}/{self.file_name}"

    def with_classifier(self, classifier: Optional[str]) -> "MavenCoordinate":
        return MavenCoordinate(self.group, self.artifact, self.version, classifier)

    def resolve_in(self, libraries_dir: pathlib.Path) -> pathlib.Path:
        return pathlib.Path(libraries_dir).joinpath(*self.relative_path.split("/"))

    def url_in(self, repository: str) -> str:
        if not repository.endswith("/"):
            repository += "/"
        return repository + self.relative_path

    def __str__(self) -> str:
        base = f"{self.group}:{self.artifact}:{self.version}"
        return f"{base}:{self.classifier}" if self.classifier else base


def relative_path(coordinate: str) -> str:
    """Shortcut for MavenCoordinate.parse(coordinate).relative_path."""
    return MavenCoordinate.parse(coordinate).relative_path


def file_name(coordinate: str) -> str:
    return MavenCoordinate.parse(coordinate).file_name
