"""Context weighting tests."""

from __future__ import annotations

import pytest

from hig_audit.corpus import Perspective, Severity, load_corpus
from hig_audit.matcher import Finding
from hig_audit.weighting import (
    CATEGORY_WEIGHTS,
    ProjectProfile,
    build_profile,
    perspective_weights,
    weight,
)


def test_perspective_weights_are_a_pure_function_of_the_profile() -> None:
    game = build_profile("game", ["ios"])

    assert perspective_weights(game) == {
        Perspective.CLARITY: 0.6,
        Perspective.CONSISTENCY: 0.5,
        Perspective.DEFERENCE: 1.0,
    }
    assert perspective_weights(game) == perspective_weights(build_profile("GAME", ["iOS"]))


def test_every_category_weight_is_within_unit_interval() -> None:
    for values in CATEGORY_WEIGHTS.values():
        assert all(0.0 <= value <= 1.0 for value in values)


def test_weight_overrides_replace_table_values() -> None:
    profile = build_profile("productivity", [], {"deference": 0.2})

    weights = perspective_weights(profile)
    assert weights[Perspective.DEFERENCE] == 0.2
    assert weights[Perspective.CLARITY] == 1.0


@pytest.mark.parametrize(
    ("category", "platforms", "overrides", "expected"),
    [
        ("spreadsheet", [], None, "Unknown profile"),
        ("utility", ["android"], None, "Unknown platforms"),
        ("utility", [], {"beauty": 0.5}, "Unknown perspective weight"),
        ("utility", [], {"clarity": 1.5}, "within [0, 1]"),
    ],
)
def test_build_profile_rejects_invalid_inputs(
    category: str, platforms: list[str], overrides: dict[str, float] | None, expected: str
) -> None:
    with pytest.raises(ValueError, match=expected.replace("[", r"\[").replace("]", r"\]")):
        build_profile(category, platforms, overrides)


def test_platform_irrelevant_rules_are_dropped() -> None:
    rules = load_corpus().by_id()
    findings = [_finding("watch-horizontal-scroll", Severity.IMPORTANT, "Watch.swift", 3)]

    ios = weight(findings, build_profile("general", ["ios"]), rules)
    watch = weight(findings, build_profile("general", ["watchos", "ios"]), rules)
    everywhere = weight(findings, ProjectProfile(), rules)

    assert ios.kept == [] and len(ios.dropped) == 1
    assert all(not group for group in ios.groups.values())
    assert len(watch.kept) == 1
    assert len(everywhere.kept) == 1


def test_accessibility_rules_are_not_down_weighted() -> None:
    rules = load_corpus().by_id()
    findings = [
        _finding("fixed-font-size", Severity.CRITICAL, "A.swift", 1),
        _finding("single-line-limit", Severity.CONTEXT_DEPENDENT, "A.swift", 2),
    ]

    result = weight(findings, build_profile("game"), rules)

    clarity = result.groups[Perspective.CLARITY]
    assert [(item.finding.rule_id, item.weight, item.score) for item in clarity] == [
        ("fixed-font-size", 1.0, 4.0),
        ("single-line-limit", 0.6, 1.2),
    ]


def test_ordering_is_score_then_path_then_line() -> None:
    rules = load_corpus().by_id()
    findings = [
        _finding("hardcoded-rgb-color", Severity.IMPORTANT, "B.swift", 1),
        _finding("hardcoded-hex-color", Severity.IMPORTANT, "A.swift", 9),
        _finding("hardcoded-rgb-color", Severity.IMPORTANT, "A.swift", 2),
        _finding("deprecated-navigation-title", Severity.MINOR, "A.swift", 1),
    ]

    result = weight(findings, ProjectProfile(), rules)

    consistency = result.groups[Perspective.CONSISTENCY]
    assert [(item.finding.path, item.finding.line_start) for item in consistency] == [
        ("A.swift", 2),
        ("A.swift", 9),
        ("B.swift", 1),
        ("A.swift", 1),
    ]
    assert [item.finding.rule_id for item in result.groups[Perspective.DEFERENCE]] == [
        "hardcoded-rgb-color",
        "hardcoded-hex-color",
        "hardcoded-rgb-color",
    ]


def _finding(rule_id: str, severity: Severity, path: str, line: int) -> Finding:
    rule = load_corpus().get(rule_id)
    assert rule is not None
    return Finding(
        rule_id=rule_id,
        path=path,
        line_start=line,
        line_end=line,
        text="x",
        severity=severity,
        declared_severity=severity,
        perspectives=rule.perspectives,
        message="m",
        fix_hint="f",
    )
