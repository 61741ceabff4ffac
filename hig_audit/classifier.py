"""Severity resolution, dedupe and inline suppressions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from hig_audit.corpus import Corpus, Severity
from hig_audit.matcher import Finding, merge_overlapping
from hig_audit.suppressions import Directive

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SeverityOverride:
    """A logged severity change applied by an ``accept`` directive."""

    rule_id: str
    path: str
    line: int
    declared: Severity
    applied: Severity
    justification: str

    def to_dict(self) -> dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "file": self.path,
            "line": self.line,
            "declared": self.declared.value,
            "applied": self.applied.value,
            "justification": self.justification,
        }


@dataclass(slots=True)
class ClassifiedFindings:
    """Classifier output: what renders, what is hidden, what was overridden."""

    visible: list[Finding] = field(default_factory=list)
    suppressed: list[Finding] = field(default_factory=list)
    overrides: list[SeverityOverride] = field(default_factory=list)


def classify(
    raw_findings: list[Finding],
    directives: dict[str, list[Directive]],
    *,
    corpus: Corpus | None = None,
) -> ClassifiedFindings:
    """Apply suppression directives (keyed by file path) to raw findings.

    ``allow`` directives hide a finding but keep it for audit; ``accept``
    directives replace its severity and keep it visible. When ``corpus`` is
    given, findings for rules it does not contain are rejected.
    """
    known = {rule.id for rule in corpus.rules} if corpus is not None else None
    output = ClassifiedFindings()

    for finding in merge_overlapping(raw_findings):
        if known is not None and finding.rule_id not in known:
            raise ValueError(f"Finding references unknown rule '{finding.rule_id}'")

        resolved = finding
        accepted = False
        for directive in directives.get(finding.path, []):
            if not directive.covers(finding.rule_id, finding.line_start, finding.line_end):
                continue
            if directive.action == "allow":
                resolved = replace(resolved, suppressed=True, directive=directive)
                logger.info(
                    f"Suppressed {finding.rule_id} at {finding.path}:{finding.line_start}"
                    f" ({directive.justification or 'no justification given'})"
                )
                break
            if directive.severity is not None and not accepted:
                accepted = True
                resolved = replace(resolved, severity=directive.severity, directive=directive)
                override = SeverityOverride(
                    rule_id=finding.rule_id,
                    path=finding.path,
                    line=finding.line_start,
                    declared=finding.declared_severity,
                    applied=directive.severity,
                    justification=directive.justification,
                )
                output.overrides.append(override)
                logger.warning(
                    f"Severity of {finding.rule_id} at {finding.path}:{finding.line_start}"
                    f" overridden {override.declared.value} -> {override.applied.value}:"
                    f" {directive.justification or 'no justification given'}"
                )

        if resolved.suppressed:
            output.suppressed.append(resolved)
        else:
            output.visible.append(resolved)

    output.visible.sort(key=lambda item: item.sort_key)
    output.suppressed.sort(key=lambda item: item.sort_key)
    return output
