from types import SimpleNamespace

from opencraft.manifest import LibraryEntry
from opencraft.rules import OS_LINUX, OS_UNKNOWN, PlatformInfo, RuleEvaluator, UNSUPPORTED_CLASSIFIER, parse_rules


def rules(*raw):
    return parse_rules(list(raw))


def test_no_rules_allows_on_every_os(linux, windows, macos_arm):
    entry = LibraryEntry(name="a:b:1")
    for info in (linux, windows, macos_arm):
        assert RuleEvaluator(info).is_allowed(entry)


def test_unconditional_allow_only(windows):
    assert RuleEvaluator(windows).rules_allow(rules({"action": "allow"}))


def test_unconditional_disallow_only(windows):
    assert not RuleEvaluator(windows).rules_allow(rules({"action": "disallow"}))


def test_os_specific_match(macos_arm):
    assert RuleEvaluator(macos_arm).rules_allow(rules({"action": "allow", "os": {"name": "osx"}}))


def test_os_specific_non_match_falls_through_to_default(linux):
    evaluator = RuleEvaluator(linux)
    only_windows = rules({"action": "allow", "os": {"name": "windows"}})
    # Nothing matched: libraries keep the permissive default
    assert evaluator.rules_allow(only_windows)
    assert not evaluator.rules_allow(only_windows, default=False)


def test_deny_after_allow_is_authoritative_on_windows(windows, linux):
    allow_then_deny = rules({"action": "allow"}, {"action": "disallow", "os": {"name": "windows"}})
    assert not RuleEvaluator(windows).rules_allow(allow_then_deny)
    assert RuleEvaluator(linux).rules_allow(allow_then_deny)


def test_classic_macos_exclusion(macos_arm, linux):
    entry = LibraryEntry.from_dict({
        "name": "org.lwjgl.lwjgl:lwjgl:2.9.2",
        "rules": [{"action": "allow"}, {"action": "disallow", "os": {"name": "osx"}}],
    })
    assert not RuleEvaluator(macos_arm).is_allowed(entry)
    assert RuleEvaluator(linux).is_allowed(entry)


def test_arch_predicate(linux):
    x86_32 = PlatformInfo(OS_LINUX, 'x86', 32)
    rule = rules({"action": "allow", "os": {"arch": "x86"}})
    assert RuleEvaluator(x86_32).rules_allow(rule, default=False)
    assert not RuleEvaluator(linux).rules_allow(rule, default=False)


def test_feature_predicate(linux):
    demo = rules({"action": "allow", "features": {"is_demo_user": True}})
    assert not RuleEvaluator(linux).rules_allow(demo, default=False)
    assert RuleEvaluator(linux, {"is_demo_user": True}).rules_allow(demo, default=False)


def test_native_classifier_keys():
    assert RuleEvaluator(PlatformInfo('windows', 'x86', 64)).native_classifier_key() == 'natives-windows-x86_64'
    assert RuleEvaluator(PlatformInfo('windows', 'x86', 32)).native_classifier_key() == 'natives-windows-x86'
    assert RuleEvaluator(PlatformInfo('macos', 'arm', 64)).native_classifier_key() == 'natives-macos-arm64'
    assert RuleEvaluator(PlatformInfo('linux', 'arm', 64)).native_classifier_key() == 'natives-linux-aarch64'
    assert RuleEvaluator(PlatformInfo(OS_UNKNOWN)).native_classifier_key() == UNSUPPORTED_CLASSIFIER


def test_native_classifier_prefers_legacy_natives_map(linux):
    library = SimpleNamespace(
        classifiers={'natives-linux': object(), 'natives-linux-x86_64': object()},
        natives={'linux': 'natives-linux'},
    )
    assert RuleEvaluator(linux).native_classifier_for(library) == 'natives-linux'


def test_native_classifier_substitutes_arch_width(windows):
    library = SimpleNamespace(
        classifiers={'natives-windows-64': object()},
        natives={'windows': 'natives-windows-${arch}'},
    )
    assert RuleEvaluator(windows).native_classifier_for(library) == 'natives-windows-64'


def test_native_classifier_absent(linux):
    library = SimpleNamespace(classifiers={'natives-windows': object()}, natives={})
    assert RuleEvaluator(linux).native_classifier_for(library) is None
