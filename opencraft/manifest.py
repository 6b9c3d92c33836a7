"""
Version manifest model.

A manifest is either self-contained (a base game version with its own
client jar and asset index) or a loader overlay that names the base
version it inherits from. ``parse_manifest`` decides which once, so
callers branch on the type instead of checking JSON fields.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .coordinates import MavenCoordinate
from .rules import Rule, parse_rules

log = logging.getLogger(__name__)


@dataclass
class ArtifactDescriptor:
    path: Optional[str] = None
    url: Optional[str] = None
    sha1: Optional[str] = None
    size: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["ArtifactDescriptor"]:
        if not isinstance(data, dict):
            return None
        return cls(
            path=data.get('path'),
            url=data.get('url'),
            sha1=data.get('sha1'),
            size=data.get('size'),
        )


@dataclass
class LibraryEntry:
    name: str
    url: Optional[str] = None
    rules: List[Rule] = field(default_factory=list)
    artifact: Optional[ArtifactDescriptor] = None
    classifiers: Dict[str, ArtifactDescriptor] = field(default_factory=dict)
    natives: Dict[str, str] = field(default_factory=dict)
    extract_exclude: List[str] = field(default_factory=list)
    # True when the entry carries a structured "downloads" object, even one without an artifact
    has_downloads_block: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LibraryEntry":
        downloads = data.get('downloads') or {}
        classifiers = {}
        for key, value in (downloads.get('classifiers') or {}).items():
            descriptor = ArtifactDescriptor.from_dict(value)
            if descriptor is not None:
                classifiers[key] = descriptor
        extract = data.get('extract') or {}
        return cls(
            name=data.get('name', ''),
            url=data.get('url'),
            rules=parse_rules(data.get('rules')),
            artifact=ArtifactDescriptor.from_dict(downloads.get('artifact')),
            classifiers=classifiers,
            natives=dict(data.get('natives') or {}),
            extract_exclude=list(extract.get('exclude') or []),
            has_downloads_block=isinstance(data.get('downloads'), dict),
        )

    @property
    def has_download_info(self) -> bool:
        return self.artifact is not None and bool(self.artifact.path) and bool(self.artifact.url)

    @property
    def coordinate(self) -> MavenCoordinate:
        """Parsed name; raises InvalidCoordinate for malformed entries."""
        return MavenCoordinate.parse(self.name)


@dataclass
class ManifestArguments:
    jvm: List[Any] = field(default_factory=list)
    game: List[Any] = field(default_factory=list)
    # Pre-1.13 manifests carry one space-separated string instead
    legacy_game: Optional[str] = None

    @classmethod
    def from_manifest(cls, data: Mapping[str, Any]) -> "ManifestArguments":
        arguments = data.get('arguments') or {}
        return cls(
            jvm=list(arguments.get('jvm') or []),
            game=list(arguments.get('game') or []),
            legacy_game=data.get('minecraftArguments'),
        )


@dataclass
class SelfContainedManifest:
    id: str
    libraries: List[LibraryEntry]
    main_class: str
    asset_index: Optional[str] = None
    client: Optional[ArtifactDescriptor] = None
    asset_index_download: Optional[ArtifactDescriptor] = None
    arguments: ManifestArguments = field(default_factory=ManifestArguments)
    type: str = 'release'
    java_major: Optional[int] = None


@dataclass
class LoaderOverlayManifest:
    id: str
    libraries: List[LibraryEntry]
    base_version_id: str
    main_class: Optional[str] = None
    arguments: ManifestArguments = field(default_factory=ManifestArguments)
    type: str = 'release'


Manifest = Union[SelfContainedManifest, LoaderOverlayManifest]


def parse_manifest(document: Mapping[str, Any], version_id: Optional[str] = None) -> Manifest:
    """Builds the tagged manifest from a decoded version JSON document."""
    if not isinstance(document, dict):
        raise ValueError("Version manifest must be a JSON object")

    manifest_id = document.get('id') or version_id
    if not manifest_id:
        raise ValueError("Version manifest is missing the 'id' field")

    libraries = []
    for raw in document.get('libraries', []) or []:
        if isinstance(raw, dict) and raw.get('name'):
            libraries.append(LibraryEntry.from_dict(raw))
        else:
            log.warning(f"Skipping malformed library entry in {manifest_id}: {raw!r}")

    arguments = ManifestArguments.from_manifest(document)
    version_type = document.get('type', 'release')

    base_version_id = document.get('inheritsFrom')
    if base_version_id:
        return LoaderOverlayManifest(
            id=manifest_id,
            libraries=libraries,
            base_version_id=base_version_id,
            main_class=document.get('mainClass'),
            arguments=arguments,
            type=version_type,
        )

    main_class = document.get('mainClass')
    if not main_class:
        raise ValueError(f"Version manifest {manifest_id} is missing 'mainClass'")

    asset_index = (document.get('assetIndex') or {}).get('id') or document.get('assets')
    java_version = document.get('javaVersion') or {}
    return SelfContainedManifest(
        id=manifest_id,
        libraries=libraries,
        main_class=main_class,
        asset_index=asset_index,
        client=ArtifactDescriptor.from_dict((document.get('downloads') or {}).get('client')),
        asset_index_download=ArtifactDescriptor.from_dict(document.get('assetIndex')),
        arguments=arguments,
        type=version_type,
        java_major=java_version.get('majorVersion'),
    )


def loads_manifest(content: Union[str, bytes], version_id: Optional[str] = None) -> Manifest:
    return parse_manifest(json.loads(content), version_id)
