"""Rule pattern compilation.

Patterns are compiled once at corpus load. Anything malformed raises
``RuleCompileError`` here so a scan never fails halfway through.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

from hig_audit.errors import RuleCompileError
from hig_audit.lexer import tokenize

PATTERN_KINDS = ("sequence", "shape", "regex")
TOKEN_KINDS = ("ident", "number", "string", "punct", "any")
PLACEHOLDERS = {
    "$IDENT": "ident",
    "$NUMBER": "number",
    "$STRING": "string",
    "$ANY": "any",
}
GAP = "..."
DEFAULT_MAX_GAP = 8
MAX_GAP_LIMIT = 64


@dataclass(frozen=True, slots=True)
class ScopeFilter:
    """Enclosing-scope constraints shared by every pattern kind."""

    within: tuple[str, ...] = ()
    not_within: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LiteralElement:
    text: str


@dataclass(frozen=True, slots=True)
class KindElement:
    kind: str


@dataclass(frozen=True, slots=True)
class RegexElement:
    regex: re.Pattern[str]


@dataclass(frozen=True, slots=True)
class GapElement:
    max_gap: int


SequenceElement = LiteralElement | KindElement | RegexElement | GapElement


@dataclass(frozen=True, slots=True)
class SequencePattern:
    """Token sequence with placeholders and bounded gaps."""

    elements: tuple[SequenceElement, ...]
    scope: ScopeFilter
    kind: Literal["sequence"] = "sequence"


@dataclass(frozen=True, slots=True)
class ShapePattern:
    """Structural predicate over one token and its enclosing calls."""

    token: str
    scope: ScopeFilter
    text: tuple[str, ...] = ()
    inside_call: tuple[str, ...] = ()
    direct_call: tuple[str, ...] = ()
    not_inside_call: tuple[str, ...] = ()
    label: tuple[str, ...] = ()
    without_label: tuple[str, ...] = ()
    below: float | None = None
    above: float | None = None
    kind: Literal["shape"] = "shape"


@dataclass(frozen=True, slots=True)
class RegexPattern:
    """Regex over a normalized source line."""

    regex: re.Pattern[str]
    scope: ScopeFilter
    kind: Literal["regex"] = "regex"


Pattern = SequencePattern | ShapePattern | RegexPattern


def compile_pattern(raw: Any, *, rule_id: str) -> Pattern:
    """Compile a raw ``[rules.pattern]`` table."""
    if not isinstance(raw, dict):
        raise RuleCompileError("pattern must be a table", rule_id=rule_id)

    kind = raw.get("kind")
    if kind not in PATTERN_KINDS:
        choices = ", ".join(PATTERN_KINDS)
        raise RuleCompileError(f"pattern.kind must be one of: {choices}", rule_id=rule_id)

    scope = ScopeFilter(
        within=_str_tuple(raw.get("within"), "pattern.within", rule_id),
        not_within=_str_tuple(raw.get("not_within"), "pattern.not_within", rule_id),
    )
    if kind == "sequence":
        return _compile_sequence(raw, scope, rule_id)
    if kind == "shape":
        return _compile_shape(raw, scope, rule_id)
    return RegexPattern(regex=_compile_regex(raw.get("regex"), rule_id), scope=scope)


def _compile_sequence(raw: dict[str, Any], scope: ScopeFilter, rule_id: str) -> SequencePattern:
    tokens = raw.get("tokens")
    if not isinstance(tokens, list) or not tokens:
        raise RuleCompileError("sequence pattern needs a non-empty 'tokens' list", rule_id=rule_id)

    max_gap = raw.get("max_gap", DEFAULT_MAX_GAP)
    if isinstance(max_gap, bool) or not isinstance(max_gap, int):
        raise RuleCompileError("pattern.max_gap must be an integer", rule_id=rule_id)
    if not 1 <= max_gap <= MAX_GAP_LIMIT:
        raise RuleCompileError(
            f"pattern.max_gap must be between 1 and {MAX_GAP_LIMIT}", rule_id=rule_id
        )

    elements: list[SequenceElement] = []
    for item in tokens:
        if not isinstance(item, str) or not item:
            raise RuleCompileError("sequence tokens must be non-empty strings", rule_id=rule_id)
        elements.append(_compile_element(item, max_gap, rule_id))

    if isinstance(elements[0], GapElement) or isinstance(elements[-1], GapElement):
        raise RuleCompileError("sequence may not start or end with '...'", rule_id=rule_id)
    for previous, current in zip(elements, elements[1:]):
        if isinstance(previous, GapElement) and isinstance(current, GapElement):
            raise RuleCompileError("sequence may not contain consecutive gaps", rule_id=rule_id)

    return SequencePattern(elements=tuple(elements), scope=scope)


def _compile_element(item: str, max_gap: int, rule_id: str) -> SequenceElement:
    if item == GAP:
        return GapElement(max_gap=max_gap)
    if item.startswith("$"):
        kind = PLACEHOLDERS.get(item)
        if kind is None:
            choices = ", ".join(sorted(PLACEHOLDERS))
            raise RuleCompileError(
                f"unknown placeholder '{item}'; expected one of: {choices}", rule_id=rule_id
            )
        return KindElement(kind=kind)
    if item.startswith("re:"):
        return RegexElement(regex=_compile_regex(item[3:], rule_id))

    lexed = tokenize(item)
    if len(lexed.tokens) != 1 or lexed.tokens[0].text != item:
        raise RuleCompileError(
            f"sequence literal '{item}' must be exactly one source token", rule_id=rule_id
        )
    return LiteralElement(text=item)


def _compile_shape(raw: dict[str, Any], scope: ScopeFilter, rule_id: str) -> ShapePattern:
    token = raw.get("token", "any")
    if token not in TOKEN_KINDS:
        choices = ", ".join(TOKEN_KINDS)
        raise RuleCompileError(f"pattern.token must be one of: {choices}", rule_id=rule_id)

    below = _optional_number(raw.get("below"), "pattern.below", rule_id)
    above = _optional_number(raw.get("above"), "pattern.above", rule_id)
    if (below is not None or above is not None) and token != "number":
        raise RuleCompileError(
            "pattern.below/above require token = \"number\"", rule_id=rule_id
        )

    pattern = ShapePattern(
        token=token,
        scope=scope,
        text=_str_tuple(raw.get("text"), "pattern.text", rule_id),
        inside_call=_str_tuple(raw.get("inside_call"), "pattern.inside_call", rule_id),
        direct_call=_str_tuple(raw.get("direct_call"), "pattern.direct_call", rule_id),
        not_inside_call=_str_tuple(
            raw.get("not_inside_call"), "pattern.not_inside_call", rule_id
        ),
        label=_str_tuple(raw.get("label"), "pattern.label", rule_id),
        without_label=_str_tuple(raw.get("without_label"), "pattern.without_label", rule_id),
        below=below,
        above=above,
    )
    if not (pattern.text or pattern.inside_call or pattern.direct_call or pattern.label):
        raise RuleCompileError(
            "shape pattern needs at least one of text, inside_call, direct_call or label",
            rule_id=rule_id,
        )
    return pattern


def _compile_regex(raw: Any, rule_id: str) -> re.Pattern[str]:
    if not isinstance(raw, str) or not raw:
        raise RuleCompileError("regex must be a non-empty string", rule_id=rule_id)
    try:
        return re.compile(raw)
    except re.error as exc:
        raise RuleCompileError(f"invalid regex {raw!r}: {exc}", rule_id=rule_id) from exc


def _str_tuple(value: Any, field_name: str, rule_id: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise RuleCompileError(f"{field_name} must be a list of strings", rule_id=rule_id)
    return tuple(value)


def _optional_number(value: Any, field_name: str, rule_id: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleCompileError(f"{field_name} must be a number", rule_id=rule_id)
    return float(value)
