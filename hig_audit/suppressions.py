"""Inline suppression markers.

Two forms are recognised inside a comment::

    // hig-audit: allow [rule-id[, rule-id...]] [-- justification]
    // hig-audit: accept rule-id as <severity> [-- justification]

A marker in a trailing comment targets its own line. A marker on a
comment-only line targets the next line with code, as long as only comment
lines sit in between.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass
from typing import Any, Literal

from hig_audit.corpus import Severity
from hig_audit.lexer import Comment

logger = logging.getLogger(__name__)

MARKER_PREFIX = "hig-audit:"
_MARKER_RE = re.compile(r"hig-audit:\s*(?P<action>allow|accept)\b(?P<rest>.*)", re.IGNORECASE)
_ACCEPT_RE = re.compile(r"^(?P<rule>\S+)\s+as\s+(?P<severity>[A-Za-z_-]+)$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Directive:
    """A parsed suppression marker bound to a target line."""

    action: Literal["allow", "accept"]
    rule_patterns: tuple[str, ...]
    line: int
    target_line: int
    justification: str = ""
    severity: Severity | None = None

    def matches_rule(self, rule_id: str) -> bool:
        if not self.rule_patterns:
            return True
        return any(fnmatch.fnmatchcase(rule_id, pattern) for pattern in self.rule_patterns)

    def covers(self, rule_id: str, line_start: int, line_end: int) -> bool:
        return line_start <= self.target_line <= line_end and self.matches_rule(rule_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "action": self.action,
            "rules": list(self.rule_patterns),
            "line": self.line,
            "target_line": self.target_line,
            "justification": self.justification,
            "severity": self.severity.value if self.severity else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Directive:
        raw_severity = data.get("severity")
        return cls(
            action="accept" if data["action"] == "accept" else "allow",
            rule_patterns=tuple(str(item) for item in data.get("rules") or []),
            line=int(data["line"]),
            target_line=int(data["target_line"]),
            justification=str(data.get("justification") or ""),
            severity=Severity(raw_severity) if isinstance(raw_severity, str) else None,
        )


def parse_directives(
    comments: list[Comment], code_lines: set[int], *, path: str = "<memory>"
) -> list[Directive]:
    """Extract directives from comments and resolve their target lines."""
    comment_lines: set[int] = set()
    for comment in comments:
        comment_lines.update(range(comment.line, comment.end_line + 1))

    directives: list[Directive] = []
    for comment in comments:
        if MARKER_PREFIX not in comment.text.lower():
            continue
        match = _MARKER_RE.search(comment.text)
        if match is None:
            logger.warning(f"{path}:{comment.line}: unrecognised suppression marker ignored")
            continue

        target = _resolve_target(comment, code_lines, comment_lines)
        if target is None:
            logger.warning(f"{path}:{comment.line}: suppression marker has no target line")
            continue

        directive = _build_directive(
            action=match.group("action").lower(),
            rest=match.group("rest"),
            line=comment.line,
            target=target,
            path=path,
        )
        if directive is not None:
            directives.append(directive)
    return directives


def _resolve_target(comment: Comment, code_lines: set[int], comment_lines: set[int]) -> int | None:
    if comment.trailing:
        return comment.line
    candidate = comment.end_line + 1
    while candidate not in code_lines:
        if candidate not in comment_lines:
            return None
        candidate += 1
    return candidate


def _build_directive(
    *, action: str, rest: str, line: int, target: int, path: str
) -> Directive | None:
    body, _, justification = rest.partition("--")
    body = body.strip()
    justification = justification.strip()

    if action == "allow":
        patterns = tuple(item for item in re.split(r"[,\s]+", body) if item)
        return Directive(
            action="allow",
            rule_patterns=patterns,
            line=line,
            target_line=target,
            justification=justification,
        )

    accept = _ACCEPT_RE.match(body)
    if accept is None:
        logger.warning(f"{path}:{line}: 'accept' marker needs '<rule-id> as <severity>'")
        return None
    try:
        severity = Severity.parse(accept.group("severity"))
    except ValueError as exc:
        logger.warning(f"{path}:{line}: {exc}")
        return None
    return Directive(
        action="accept",
        rule_patterns=(accept.group("rule"),),
        line=line,
        target_line=target,
        justification=justification,
        severity=severity,
    )
