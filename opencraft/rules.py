"""
Platform detection and library/argument rule evaluation.

``PlatformInfo`` is detected once (``PlatformInfo.detect()``) and injected
into everything that needs it; nothing below reads ``platform`` ambiently.
"""
import logging
import platform
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

log = logging.getLogger(__name__)

OS_WINDOWS = 'windows'
OS_MACOS = 'macos'
OS_LINUX = 'linux'
OS_UNKNOWN = 'unknown'

ARCH_X86 = 'x86'
ARCH_ARM = 'arm'

UNSUPPORTED_CLASSIFIER = 'unsupported'

# Manifest spelling -> our OS identity
_MANIFEST_OS_NAMES = {
    'windows': OS_WINDOWS,
    'osx': OS_MACOS,
    'macos': OS_MACOS,
    'linux': OS_LINUX,
}


@dataclass(frozen=True)
class PlatformInfo:
    os_name: str
    arch: str = ARCH_X86
    bits: int = 64

    @classmethod
    def detect(cls) -> "PlatformInfo":
        """Maps Python's platform module to an OS family, arch family and width."""
        system = platform.system()
        if system == 'Windows':
            os_name = OS_WINDOWS
        elif system == 'Darwin':
            os_name = OS_MACOS
        elif system == 'Linux':
            os_name = OS_LINUX
        else:
            log.warning(f"Unsupported platform: {system}. Native libraries will not be resolved.")
            os_name = OS_UNKNOWN

        machine = platform.machine().lower()
        if machine in ['amd64', 'x86_64']:
            arch, bits = ARCH_X86, 64
        elif machine in ['i386', 'i686', 'x86']:
            arch, bits = ARCH_X86, 32
        elif machine in ['arm64', 'aarch64']:
            arch, bits = ARCH_ARM, 64
        elif machine.startswith('arm'):
            arch, bits = ARCH_ARM, 32
        else:
            log.warning(f"Unsupported architecture: {platform.machine()}. Falling back to x86 64-bit. This might cause issues.")
            arch, bits = ARCH_X86, 64
        return cls(os_name, arch, bits)

    @property
    def manifest_os(self) -> str:
        """OS name as written in version manifests ('osx' rather than 'macos')."""
        return 'osx' if self.os_name == OS_MACOS else self.os_name

    @property
    def is_mac(self) -> bool:
        return self.os_name == OS_MACOS

    @property
    def is_windows(self) -> bool:
        return self.os_name == OS_WINDOWS


@dataclass
class Rule:
    action: str
    os_name: Optional[str] = None
    os_arch: Optional[str] = None
    features: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        os_rule = data.get('os') if isinstance(data.get('os'), dict) else {}
        features = data.get('features') if isinstance(data.get('features'), dict) else {}
        return cls(
            action=data.get('action', 'allow'),
            os_name=os_rule.get('name'),
            os_arch=os_rule.get('arch'),
            features=dict(features),
        )

    @property
    def allows(self) -> bool:
        # Manifests spell the negative action 'disallow'
        return self.action == 'allow'

    @property
    def unconditional(self) -> bool:
        return self.os_name is None and self.os_arch is None and not self.features


def parse_rules(raw: Optional[Iterable[Mapping[str, Any]]]) -> List[Rule]:
    if not raw:
        return []
    return [Rule.from_dict(rule) for rule in raw if isinstance(rule, dict)]


class RuleEvaluator:
    """Decides library/argument inclusion and native classifier keys for one platform."""

    def __init__(self, platform_info: PlatformInfo, features: Optional[Mapping[str, bool]] = None):
        self.platform = platform_info
        self.features = dict(features or {})

    def matches(self, rule: Rule) -> bool:
        """True when every predicate carried by the rule holds on this platform."""
        if rule.os_name is not None:
            if _MANIFEST_OS_NAMES.get(rule.os_name) != self.platform.os_name:
                return False
        if rule.os_arch is not None and not self._arch_matches(rule.os_arch):
            return False
        for name, expected in rule.features.items():
            if bool(self.features.get(name, False)) != bool(expected):
                return False
        return True

    def rules_allow(self, rules: Iterable[Rule], default: bool = True) -> bool:
        """
        Last matching rule wins. An empty list always allows; a list where
        nothing matches returns default, which stays permissive for
        libraries because loader manifests in the wild rely on it.
        Argument rules pass default=False.
        """
        rules = list(rules)
        if not rules:
            return True

        decision = None
        for rule in rules:
            if self.matches(rule):
                decision = rule.allows

        if decision is None:
            log.debug(f"No rule matched on {self.platform.os_name}; defaulting to {default}")
            return default
        return decision

    def is_allowed(self, entry: Any) -> bool:
        """Accepts a LibraryEntry (anything with .rules) or a plain rule list."""
        rules = getattr(entry, 'rules', entry)
        return self.rules_allow(rules or [])

    def native_classifier_key(self) -> str:
        """Canonical classifier, e.g. natives-linux-x86_64 or natives-macos-arm64."""
        os_name, arch, bits = self.platform.os_name, self.platform.arch, self.platform.bits
        if os_name == OS_WINDOWS:
            if arch == ARCH_ARM:
                return 'natives-windows-arm64'
            return 'natives-windows-x86_64' if bits == 64 else 'natives-windows-x86'
        if os_name == OS_MACOS:
            return 'natives-macos-arm64' if arch == ARCH_ARM else 'natives-macos-x86_64'
        if os_name == OS_LINUX:
            if arch == ARCH_ARM:
                return 'natives-linux-aarch64' if bits == 64 else 'natives-linux-arm32'
            return 'natives-linux-x86_64' if bits == 64 else 'natives-linux-x86'
        return UNSUPPORTED_CLASSIFIER

    def native_classifier_for(self, library: Any) -> Optional[str]:
        """
        Picks the key of library.classifiers holding this platform's natives.

        The legacy 'natives' map is checked first (with ${arch} replaced by the
        word size), then the canonical key, then the bare natives-<os> key.
        Returns None when the library has no natives for this platform.
        """
        classifiers = getattr(library, 'classifiers', None) or {}
        if not classifiers:
            return None

        natives_map = getattr(library, 'natives', None) or {}
        raw_classifier = natives_map.get(self.platform.manifest_os)
        if raw_classifier:
            key = raw_classifier.replace('${arch}', str(self.platform.bits))
            if key in classifiers:
                return key

        canonical = self.native_classifier_key()
        if canonical == UNSUPPORTED_CLASSIFIER:
            return None
        for key in (canonical, f"natives-{self.platform.os_name}", f"natives-{self.platform.manifest_os}"):
            if key in classifiers:
                return key
        return None

    def _arch_matches(self, arch_rule: str) -> bool:
        arch_rule = arch_rule.lower()
        if arch_rule == 'x86':
            # Mojang's 'x86' predicate means a 32-bit x86 runtime
            return self.platform.arch == ARCH_X86 and self.platform.bits == 32
        if arch_rule in ('x86_64', 'amd64', 'x64'):
            return self.platform.arch == ARCH_X86 and self.platform.bits == 64
        if arch_rule in ('arm64', 'aarch64'):
            return self.platform.arch == ARCH_ARM and self.platform.bits == 64
        if arch_rule.startswith('arm'):
            return self.platform.arch == ARCH_ARM
        return False
