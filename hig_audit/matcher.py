"""Evaluate compiled rule patterns against an indexed source unit."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field, replace
from typing import Any

from hig_audit.corpus import Perspective, Rule, Severity
from hig_audit.indexer import SourceUnit
from hig_audit.lexer import Token
from hig_audit.patterns import (
    GapElement,
    KindElement,
    LiteralElement,
    RegexElement,
    RegexPattern,
    ScopeFilter,
    SequenceElement,
    SequencePattern,
    ShapePattern,
)
from hig_audit.suppressions import Directive

_CAPTURE_LIMIT = 120


@dataclass(frozen=True, slots=True)
class Finding:
    """One rule violation located in source."""

    rule_id: str
    path: str
    line_start: int
    line_end: int
    text: str
    severity: Severity
    declared_severity: Severity
    perspectives: tuple[Perspective, ...]
    message: str
    fix_hint: str
    scope: str = ""
    suppressed: bool = False
    directive: Directive | None = field(default=None, compare=False)

    @property
    def sort_key(self) -> tuple[str, int, int, str]:
        return (self.path, self.line_start, self.line_end, self.rule_id)

    def overlaps(self, other: Finding) -> bool:
        return (
            self.rule_id == other.rule_id
            and self.path == other.path
            and self.line_start <= other.line_end
            and other.line_start <= self.line_end
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "path": self.path,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "text": self.text,
            "severity": self.severity.value,
            "declared_severity": self.declared_severity.value,
            "perspectives": [item.value for item in self.perspectives],
            "message": self.message,
            "fix_hint": self.fix_hint,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, path: str) -> Finding:
        return cls(
            rule_id=str(data["rule_id"]),
            path=path,
            line_start=int(data["line_start"]),
            line_end=int(data["line_end"]),
            text=str(data["text"]),
            severity=Severity(data["severity"]),
            declared_severity=Severity(data["declared_severity"]),
            perspectives=tuple(Perspective(str(item)) for item in data.get("perspectives") or ()),
            message=str(data["message"]),
            fix_hint=str(data["fix_hint"]),
            scope=str(data.get("scope") or ""),
        )


@dataclass(frozen=True, slots=True)
class _Span:
    first: int
    last: int


def match(unit: SourceUnit, rules: tuple[Rule, ...] | list[Rule]) -> list[Finding]:
    """Apply every rule to ``unit`` and return raw findings sorted by position."""
    findings: list[Finding] = []
    for rule in rules:
        spans = _find_spans(unit, rule)
        findings.extend(_merge_same_rule([_to_finding(unit, rule, span) for span in spans]))
    findings.sort(key=lambda item: item.sort_key)
    return findings


def merge_overlapping(findings: list[Finding]) -> list[Finding]:
    """Merge same-rule findings in one file whose line spans overlap."""
    return _merge_same_rule(findings)


def _find_spans(unit: SourceUnit, rule: Rule) -> list[_Span]:
    pattern = rule.pattern
    if isinstance(pattern, SequencePattern):
        return _match_sequence(unit, pattern)
    if isinstance(pattern, ShapePattern):
        return _match_shape(unit, pattern)
    return _match_regex(unit, pattern)


def _match_sequence(unit: SourceUnit, pattern: SequencePattern) -> list[_Span]:
    spans: list[_Span] = []
    tokens = unit.tokens
    elements = pattern.elements
    for start in range(len(tokens)):
        if not _element_matches(elements[0], tokens[start]):
            continue
        end = _match_from(tokens, elements, 1, start + 1)
        if end is None:
            continue
        if _scope_allows(unit, start, pattern.scope):
            spans.append(_Span(first=start, last=end - 1))
    return spans


def _match_from(
    tokens: list[Token], elements: tuple[SequenceElement, ...], element: int, position: int
) -> int | None:
    """Return the exclusive end token index of a match, or None.

    Gaps try the shortest skip first, bounded by ``max_gap``, so the search
    is bounded by pattern length times gap size.
    """
    if element == len(elements):
        return position
    current = elements[element]
    if isinstance(current, GapElement):
        for skip in range(current.max_gap + 1):
            if position + skip >= len(tokens):
                break
            end = _match_from(tokens, elements, element + 1, position + skip)
            if end is not None:
                return end
        return None
    if position >= len(tokens) or not _element_matches(current, tokens[position]):
        return None
    return _match_from(tokens, elements, element + 1, position + 1)


def _element_matches(element: SequenceElement, token: Token) -> bool:
    if isinstance(element, LiteralElement):
        return token.text == element.text
    if isinstance(element, KindElement):
        return element.kind == "any" or token.kind == element.kind
    if isinstance(element, RegexElement):
        return element.regex.fullmatch(token.text) is not None
    return False


def _match_shape(unit: SourceUnit, pattern: ShapePattern) -> list[_Span]:
    spans: list[_Span] = []
    for index, token in enumerate(unit.tokens):
        if pattern.token != "any" and token.kind != pattern.token:
            continue
        if pattern.text and not _any_fnmatch(token.text, pattern.text):
            continue
        if not _numeric_bounds_ok(token, pattern):
            continue
        if pattern.label and _argument_label(unit.tokens, index) not in pattern.label:
            continue
        if not _calls_ok(unit, index, pattern):
            continue
        if not _scope_allows(unit, index, pattern.scope):
            continue
        spans.append(_Span(first=index, last=index))
    return spans


def _calls_ok(unit: SourceUnit, index: int, pattern: ShapePattern) -> bool:
    calls = unit.enclosing_calls(index)
    if pattern.inside_call and not any(
        call.matches(item) for call in calls for item in pattern.inside_call
    ):
        return False
    innermost = unit.innermost_call(index)
    if pattern.direct_call and (
        innermost is None or not any(innermost.matches(item) for item in pattern.direct_call)
    ):
        return False
    if pattern.not_inside_call and any(
        call.matches(item) for call in calls for item in pattern.not_inside_call
    ):
        return False
    if pattern.without_label and innermost is not None:
        if any(label in pattern.without_label for label in innermost.labels):
            return False
    return True


def _argument_label(tokens: list[Token], index: int) -> str | None:
    position = index - 1
    if position >= 0 and tokens[position].text in ("-", "+"):
        position -= 1
    if position >= 1 and tokens[position].text == ":" and tokens[position - 1].kind == "ident":
        return tokens[position - 1].text
    return None


def _numeric_bounds_ok(token: Token, pattern: ShapePattern) -> bool:
    if pattern.below is None and pattern.above is None:
        return True
    value = _numeric_value(token.text)
    if value is None:
        return False
    if pattern.below is not None and not value < pattern.below:
        return False
    if pattern.above is not None and not value > pattern.above:
        return False
    return True


def _numeric_value(text: str) -> float | None:
    cleaned = text.replace("_", "").rstrip("fFlLuU")
    try:
        if cleaned[:2].lower() == "0x":
            return float(int(cleaned, 16))
        if cleaned[:2].lower() == "0b":
            return float(int(cleaned, 2))
        if cleaned[:2].lower() == "0o":
            return float(int(cleaned, 8))
        return float(cleaned)
    except ValueError:
        return None


def _match_regex(unit: SourceUnit, pattern: RegexPattern) -> list[_Span]:
    spans: list[_Span] = []
    for line, indices in unit.line_token_indices().items():
        if pattern.regex.search(unit.normalized_line(line)) is None:
            continue
        if _scope_allows(unit, indices[0], pattern.scope):
            spans.append(_Span(first=indices[0], last=indices[-1]))
    return spans


def _scope_allows(unit: SourceUnit, index: int, scope: ScopeFilter) -> bool:
    if scope.within and not unit.in_scope(index, scope.within):
        return False
    if scope.not_within and unit.in_scope(index, scope.not_within):
        return False
    return True


def _any_fnmatch(value: str, patterns: tuple[str, ...]) -> bool:
    return any(fnmatch.fnmatchcase(value, pattern) for pattern in patterns)


def _to_finding(unit: SourceUnit, rule: Rule, span: _Span) -> Finding:
    tokens = unit.tokens
    first = tokens[span.first]
    last = tokens[span.last]
    text = _clip(" ".join(token.text for token in tokens[span.first : span.last + 1]))
    scopes = unit.scope_names(span.first)
    scope = scopes[-1] if scopes else ""
    return Finding(
        rule_id=rule.id,
        path=unit.path,
        line_start=first.line,
        line_end=last.end_line,
        text=text,
        severity=rule.severity,
        declared_severity=rule.severity,
        perspectives=rule.perspectives,
        message=rule.render_message(text=text, scope=scope, line=first.line),
        fix_hint=rule.fix_hint,
        scope=scope,
    )


def _merge_same_rule(findings: list[Finding]) -> list[Finding]:
    merged: list[Finding] = []
    ordered = sorted(
        findings, key=lambda item: (item.rule_id, item.path, item.line_start, item.line_end)
    )
    for finding in ordered:
        previous = merged[-1] if merged else None
        if previous is not None and previous.overlaps(finding):
            merged[-1] = _union(previous, finding)
        else:
            merged.append(finding)
    return merged


def _union(first: Finding, second: Finding) -> Finding:
    return replace(
        first,
        line_start=min(first.line_start, second.line_start),
        line_end=max(first.line_end, second.line_end),
    )


def _clip(text: str) -> str:
    if len(text) <= _CAPTURE_LIMIT:
        return text
    return text[: _CAPTURE_LIMIT - 3] + "..."
