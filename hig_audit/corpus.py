"""Rule corpus model and loader."""

from __future__ import annotations

import hashlib
import logging
import string
import tomllib
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Any

from hig_audit import __version__
from hig_audit.errors import EngineError, RuleCompileError
from hig_audit.patterns import Pattern, compile_pattern

logger = logging.getLogger(__name__)

BUILTIN_CORPUS_SOURCE = "builtin:rules.toml"
MESSAGE_FIELDS = {"text", "rule_id", "scope", "line"}
KNOWN_PLATFORMS = ("ios", "ipados", "macos", "watchos", "tvos", "visionos")
_RULE_KEYS = {
    "id",
    "pattern",
    "severity",
    "perspectives",
    "platforms",
    "message",
    "fix_hint",
    "accessibility",
    "description",
}


class Severity(Enum):
    """Finding severity, strongest first."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    CONTEXT_DEPENDENT = "context_dependent"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", "-")

    @classmethod
    def parse(cls, raw: str) -> Severity:
        """Parse user-facing spellings such as ``ContextDependent`` or ``context-dependent``."""
        key = raw.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        for member in cls:
            if member.value.replace("_", "") == key:
                return member
        choices = ", ".join(member.value for member in cls)
        raise ValueError(f"Unknown severity '{raw}'. Expected one of: {choices}")


_SEVERITY_RANKS = {
    Severity.CRITICAL: 4,
    Severity.IMPORTANT: 3,
    Severity.CONTEXT_DEPENDENT: 2,
    Severity.MINOR: 1,
}


class Perspective(Enum):
    """Evaluative lens a finding is reported under."""

    CLARITY = "clarity"
    CONSISTENCY = "consistency"
    DEFERENCE = "deference"


PERSPECTIVE_ORDER = (Perspective.CLARITY, Perspective.CONSISTENCY, Perspective.DEFERENCE)


@dataclass(frozen=True, slots=True)
class Rule:
    """One compiled anti-pattern rule. Immutable after load."""

    id: str
    pattern: Pattern
    severity: Severity
    perspectives: tuple[Perspective, ...]
    platforms: frozenset[str]
    message: str
    fix_hint: str
    accessibility: bool = False
    description: str = ""

    def applies_to_platforms(self, platforms: frozenset[str]) -> bool:
        if not self.platforms or not platforms:
            return True
        return bool(self.platforms & platforms)

    def render_message(self, *, text: str, scope: str, line: int) -> str:
        return self.message.format_map(
            {"text": text, "rule_id": self.id, "scope": scope, "line": line}
        )


@dataclass(frozen=True, slots=True)
class Corpus:
    """Loaded rule set shared read-only across workers."""

    rules: tuple[Rule, ...]
    version: str
    source: str

    def get(self, rule_id: str) -> Rule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def by_id(self) -> dict[str, Rule]:
        return {rule.id: rule for rule in self.rules}

    def select(
        self,
        *,
        enabled_rule_ids: list[str] | None = None,
        disabled_rule_ids: list[str] | None = None,
    ) -> Corpus:
        """Return a corpus restricted by enable/disable lists."""
        known = {rule.id for rule in self.rules}
        requested = set(enabled_rule_ids or []) | set(disabled_rule_ids or [])
        unknown = sorted(rule_id for rule_id in requested if rule_id not in known)
        if unknown:
            raise ValueError(f"Unknown rule ids: {', '.join(unknown)}")

        disabled = set(disabled_rule_ids or [])
        enabled = set(enabled_rule_ids) if enabled_rule_ids is not None else known
        selected = tuple(
            rule for rule in self.rules if rule.id in enabled and rule.id not in disabled
        )
        return Corpus(rules=selected, version=self.version, source=self.source)


def load_corpus(path: Path | None = None) -> Corpus:
    """Load and compile a corpus file, or the built-in corpus when ``path`` is None."""
    if path is None:
        text = resources.files("hig_audit").joinpath("data/rules.toml").read_text(
            encoding="utf-8"
        )
        return parse_corpus(text, source=BUILTIN_CORPUS_SOURCE)

    if not path.is_file():
        raise EngineError(f"Rule corpus does not exist: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise EngineError(f"Rule corpus is unreadable: {path}: {exc}") from exc
    return parse_corpus(text, source=str(path))


def parse_corpus(text: str, *, source: str) -> Corpus:
    """Parse corpus TOML text and compile every rule."""
    try:
        loaded = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise RuleCompileError(f"invalid TOML in {source}: {exc}") from exc

    records = loaded.get("rules")
    if not isinstance(records, list) or not records:
        raise RuleCompileError(f"{source} must define at least one [[rules]] record")

    rules: list[Rule] = []
    seen: set[str] = set()
    for index, record in enumerate(records):
        rule = _compile_rule(record, index=index)
        if rule.id in seen:
            raise RuleCompileError("duplicate rule id", rule_id=rule.id)
        seen.add(rule.id)
        rules.append(rule)

    declared_version = loaded.get("version")
    if declared_version is not None and not isinstance(declared_version, (str, int)):
        raise RuleCompileError(f"{source}: version must be a string")
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    version = f"{declared_version or 'unversioned'}+{digest}"

    logger.info(f"Loaded {len(rules)} rules from {source} (version {version})")
    return Corpus(rules=tuple(rules), version=version, source=source)


def corpus_cache_key(corpus: Corpus) -> str:
    """Key used to invalidate cached per-file results when rules or engine change."""
    return f"{__version__}:{corpus.version}:{','.join(rule.id for rule in corpus.rules)}"


def _compile_rule(record: Any, *, index: int) -> Rule:
    if not isinstance(record, dict):
        raise RuleCompileError(f"rules[{index}] must be a table")

    rule_id = record.get("id")
    if not isinstance(rule_id, str) or not rule_id.strip():
        raise RuleCompileError(f"rules[{index}].id must be a non-empty string")
    rule_id = rule_id.strip()

    unknown_keys = sorted(key for key in record if key not in _RULE_KEYS)
    if unknown_keys:
        raise RuleCompileError(f"unknown keys: {', '.join(unknown_keys)}", rule_id=rule_id)

    raw_severity = record.get("severity")
    if not isinstance(raw_severity, str):
        raise RuleCompileError("severity must be a string", rule_id=rule_id)
    try:
        severity = Severity.parse(raw_severity)
    except ValueError as exc:
        raise RuleCompileError(str(exc), rule_id=rule_id) from exc

    perspectives = _parse_perspectives(record.get("perspectives"), rule_id)
    platforms = _parse_platforms(record.get("platforms"), rule_id)
    message = _required_str(record, "message", rule_id)
    _validate_template(message, rule_id)

    accessibility = record.get("accessibility", False)
    if not isinstance(accessibility, bool):
        raise RuleCompileError("accessibility must be a boolean", rule_id=rule_id)

    description = record.get("description", "")
    if not isinstance(description, str):
        raise RuleCompileError("description must be a string", rule_id=rule_id)

    return Rule(
        id=rule_id,
        pattern=compile_pattern(record.get("pattern"), rule_id=rule_id),
        severity=severity,
        perspectives=perspectives,
        platforms=platforms,
        message=message,
        fix_hint=_required_str(record, "fix_hint", rule_id),
        accessibility=accessibility,
        description=description.strip(),
    )


def _parse_perspectives(value: Any, rule_id: str) -> tuple[Perspective, ...]:
    if not isinstance(value, list) or not value:
        raise RuleCompileError("perspectives must be a non-empty list", rule_id=rule_id)
    parsed: set[Perspective] = set()
    for item in value:
        try:
            parsed.add(Perspective(str(item).strip().lower()))
        except ValueError as exc:
            choices = ", ".join(member.value for member in Perspective)
            raise RuleCompileError(
                f"unknown perspective '{item}'; expected one of: {choices}", rule_id=rule_id
            ) from exc
    return tuple(member for member in PERSPECTIVE_ORDER if member in parsed)


def _parse_platforms(value: Any, rule_id: str) -> frozenset[str]:
    if value is None:
        return frozenset()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise RuleCompileError("platforms must be a list of strings", rule_id=rule_id)
    platforms = {item.strip().lower() for item in value}
    unknown = sorted(platforms - set(KNOWN_PLATFORMS))
    if unknown:
        raise RuleCompileError(f"unknown platforms: {', '.join(unknown)}", rule_id=rule_id)
    return frozenset(platforms)


def _required_str(record: dict[str, Any], key: str, rule_id: str) -> str:
    value = record.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RuleCompileError(f"{key} must be a non-empty string", rule_id=rule_id)
    return value.strip()


def _validate_template(message: str, rule_id: str) -> None:
    try:
        fields = [name for _, name, _, _ in string.Formatter().parse(message) if name is not None]
    except ValueError as exc:
        raise RuleCompileError(f"malformed message template: {exc}", rule_id=rule_id) from exc
    unknown = sorted({name for name in fields if name not in MESSAGE_FIELDS})
    if unknown:
        raise RuleCompileError(
            f"message template uses unknown fields: {', '.join(unknown)}", rule_id=rule_id
        )
    try:
        message.format_map({"text": "17", "rule_id": rule_id, "scope": "body", "line": 1})
    except (ValueError, KeyError, IndexError, AttributeError) as exc:
        raise RuleCompileError(f"malformed message template: {exc}", rule_id=rule_id) from exc
