"""Matcher tests against the built-in corpus and small ad-hoc corpora."""

from __future__ import annotations

from hig_audit.corpus import Perspective, Severity, load_corpus, parse_corpus
from hig_audit.indexer import build_unit
from hig_audit.matcher import Finding, match, merge_overlapping


def test_fixed_font_size_without_scaling_is_one_critical_clarity_finding() -> None:
    unit = build_unit("Views/Welcome.swift", _welcome_view(".font(.system(size: 17))"))

    findings = match(unit, load_corpus().rules)

    assert len(findings) == 1
    finding = findings[0]
    assert finding.rule_id == "fixed-font-size"
    assert finding.severity is Severity.CRITICAL
    assert finding.perspectives == (Perspective.CLARITY,)
    assert (finding.line_start, finding.line_end) == (5, 5)
    assert finding.scope == "body"
    assert finding.message == "Fixed font size 17 in body ignores Dynamic Type"


def test_scaled_and_relative_fonts_are_not_flagged() -> None:
    corpus = load_corpus()
    sources = [
        '.font(.custom("Avenir", size: 17, relativeTo: .body))',
        ".font(Font(UIFontMetrics.default.scaledFont(for: .systemFont(ofSize: 17))))",
        ".font(.body)",
    ]

    for modifier in sources:
        unit = build_unit("Views/Welcome.swift", _welcome_view(modifier))
        assert match(unit, corpus.rules) == [], modifier


def test_objective_c_fixed_font_is_flagged() -> None:
    unit = build_unit(
        "Legacy/ViewController.m",
        "- (void)viewDidLoad {\n    self.label.font = [UIFont systemFontOfSize:14];\n}",
    )

    findings = match(unit, load_corpus().rules)

    assert [(item.rule_id, item.line_start, item.scope) for item in findings] == [
        ("fixed-font-size", 2, "viewDidLoad")
    ]


def test_rules_with_no_matches_produce_no_findings() -> None:
    unit = build_unit("Views/Plain.swift", _welcome_view(".font(.headline)"))

    assert match(unit, load_corpus().rules) == []


def test_small_tap_target_merges_width_and_height_on_one_line() -> None:
    source = "\n".join(
        [
            "var body: some View {",
            "    Button(action: close) {",
            '        Image(systemName: "xmark")',
            "            .frame(width: 30, height: 30)",
            "    }",
            "    Color.clear.frame(width: 30, height: 30)",
            "}",
        ]
    )
    unit = build_unit("Views/Close.swift", source)

    findings = match(unit, load_corpus().rules)

    assert [(item.rule_id, item.line_start, item.text) for item in findings] == [
        ("small-tap-target", 4, "30")
    ]


def test_sequence_gap_placeholder_and_scope_filters() -> None:
    corpus = parse_corpus(
        "\n".join(
            [
                "[[rules]]",
                'id = "nested-navigation"',
                'severity = "minor"',
                'perspectives = ["consistency"]',
                'message = "Nested navigation in {scope}: {text}"',
                'fix_hint = "Use NavigationStack."',
                "",
                "[rules.pattern]",
                'kind = "sequence"',
                'tokens = ["NavigationView", "...", "$IDENT", "{"]',
                "max_gap = 2",
                'within = ["body"]',
            ]
        ),
        source="test",
    )
    source = "\n".join(
        [
            "var body: some View {",
            "    NavigationView { List {",
            '        Text("row")',
            "    } }",
            "}",
            "func preview() {",
            "    NavigationView { List { } }",
            "}",
        ]
    )

    findings = match(build_unit("Views/Nav.swift", source), corpus.rules)

    assert len(findings) == 1
    assert findings[0].line_start == 2
    assert findings[0].message == "Nested navigation in body: NavigationView { List {"


def test_regex_rule_matches_normalized_lines() -> None:
    corpus = load_corpus().select(enabled_rule_ids=["hardcoded-hex-color"])
    source = 'let accent = Color(hex: "#FF3B30")\nlet other = Color("Accent")'

    findings = match(build_unit("Theme.swift", source), corpus.rules)

    assert [(item.rule_id, item.line_start) for item in findings] == [("hardcoded-hex-color", 1)]


def test_numeric_bounds_apply_to_shape_rules() -> None:
    corpus = load_corpus().select(enabled_rule_ids=["heavy-shadow", "tiny-minimum-scale-factor"])
    source = "\n".join(
        [
            "Text(title)",
            "    .shadow(radius: 30)",
            "    .shadow(radius: 4)",
            "    .minimumScaleFactor(0.3)",
            "    .minimumScaleFactor(0.8)",
        ]
    )

    findings = match(build_unit("Card.swift", source), corpus.rules)

    assert [(item.rule_id, item.line_start) for item in findings] == [
        ("heavy-shadow", 2),
        ("tiny-minimum-scale-factor", 4),
    ]


def test_direct_call_requires_the_innermost_call() -> None:
    corpus = load_corpus().select(enabled_rule_ids=["single-line-limit"])

    direct = build_unit("Views/Caption.swift", _welcome_view(".lineLimit(1)"))
    nested = build_unit("Views/Caption.swift", _welcome_view(".lineLimit(max(1, rows))"))

    assert [item.rule_id for item in match(direct, corpus.rules)] == ["single-line-limit"]
    assert match(nested, corpus.rules) == []
    assert nested.innermost_call(_index_of_text(nested, "1")).name == "max"


def test_merge_overlapping_unions_same_rule_spans_only() -> None:
    findings = [
        _finding("rule-a", 3, 5),
        _finding("rule-a", 5, 8),
        _finding("rule-b", 4, 4),
        _finding("rule-a", 10, 10),
    ]

    merged = merge_overlapping(findings)

    assert [(item.rule_id, item.line_start, item.line_end) for item in merged] == [
        ("rule-a", 3, 8),
        ("rule-a", 10, 10),
        ("rule-b", 4, 4),
    ]


def _welcome_view(modifier: str) -> str:
    return "\n".join(
        [
            "struct WelcomeView: View {",
            "    var body: some View {",
            '        Text("Welcome")',
            "            .padding()",
            f"            {modifier}",
            "    }",
            "}",
        ]
    )


def _finding(rule_id: str, start: int, end: int) -> Finding:
    return Finding(
        rule_id=rule_id,
        path="a.swift",
        line_start=start,
        line_end=end,
        text="x",
        severity=Severity.MINOR,
        declared_severity=Severity.MINOR,
        perspectives=(Perspective.CLARITY,),
        message="m",
        fix_hint="f",
    )


def _index_of_text(unit, text: str) -> int:
    return next(index for index, token in enumerate(unit.tokens) if token.text == text)
