"""Report aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field

from hig_audit.classifier import SeverityOverride
from hig_audit.corpus import PERSPECTIVE_ORDER, Perspective, Severity
from hig_audit.indexer import IndexWarning
from hig_audit.matcher import Finding
from hig_audit.weighting import ProjectProfile, WeightedFinding, WeightedFindings

STATUS_ISSUES = "issues_found"
STATUS_CLEAN = "no_issues"


@dataclass(frozen=True, slots=True)
class SeverityCounts:
    critical: int = 0
    important: int = 0
    context_dependent: int = 0
    minor: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.important + self.context_dependent + self.minor

    def at_or_above(self, threshold: Severity) -> int:
        counts = {
            Severity.CRITICAL: self.critical,
            Severity.IMPORTANT: self.important,
            Severity.CONTEXT_DEPENDENT: self.context_dependent,
            Severity.MINOR: self.minor,
        }
        return sum(count for severity, count in counts.items() if severity.rank >= threshold.rank)

    def to_dict(self) -> dict[str, int]:
        return {
            "critical": self.critical,
            "important": self.important,
            "context_dependent": self.context_dependent,
            "minor": self.minor,
            "total": self.total,
        }

    @classmethod
    def from_findings(cls, findings: list[Finding]) -> SeverityCounts:
        tally = {severity: 0 for severity in Severity}
        for finding in findings:
            tally[finding.severity] += 1
        return cls(
            critical=tally[Severity.CRITICAL],
            important=tally[Severity.IMPORTANT],
            context_dependent=tally[Severity.CONTEXT_DEPENDENT],
            minor=tally[Severity.MINOR],
        )


@dataclass(frozen=True, slots=True)
class PerspectiveSection:
    """One perspective's "issues found" list and counts."""

    perspective: Perspective
    weight: float
    findings: tuple[WeightedFinding, ...]
    counts: SeverityCounts

    @property
    def status(self) -> str:
        return STATUS_ISSUES if self.findings else STATUS_CLEAN


@dataclass(frozen=True, slots=True)
class Report:
    """Terminal output artifact of a run."""

    sections: tuple[PerspectiveSection, ...]
    summary: SeverityCounts
    findings: tuple[Finding, ...]
    suppressed: tuple[Finding, ...] = ()
    overrides: tuple[SeverityOverride, ...] = ()
    warnings: tuple[IndexWarning, ...] = ()
    profile: ProjectProfile = field(default_factory=ProjectProfile)
    corpus_version: str = ""
    files_scanned: int = 0
    truncated: bool = False

    def section(self, perspective: Perspective) -> PerspectiveSection:
        for section in self.sections:
            if section.perspective is perspective:
                return section
        raise KeyError(perspective)

    def exceeds(self, threshold: Severity) -> bool:
        """True when a visible finding sits at or above ``threshold``."""
        return self.summary.at_or_above(threshold) > 0


def aggregate(
    weighted: WeightedFindings,
    *,
    suppressed: list[Finding] | None = None,
    overrides: list[SeverityOverride] | None = None,
    warnings: list[IndexWarning] | None = None,
    profile: ProjectProfile | None = None,
    corpus_version: str = "",
    files_scanned: int = 0,
    truncated: bool = False,
) -> Report:
    """Group weighted findings into per-perspective sections.

    Never fails on empty input: a clean scan yields empty sections marked
    ``no_issues``.
    """
    sections = []
    for perspective in PERSPECTIVE_ORDER:
        group = weighted.groups.get(perspective, [])
        sections.append(
            PerspectiveSection(
                perspective=perspective,
                weight=weighted.weights[perspective],
                findings=tuple(group),
                counts=SeverityCounts.from_findings([item.finding for item in group]),
            )
        )

    kept = sorted(weighted.kept, key=lambda item: item.sort_key)
    return Report(
        sections=tuple(sections),
        summary=SeverityCounts.from_findings(kept),
        findings=tuple(kept),
        suppressed=tuple(sorted(suppressed or [], key=lambda item: item.sort_key)),
        overrides=tuple(overrides or []),
        warnings=tuple(sorted(warnings or [], key=lambda item: (item.path, item.reason))),
        profile=profile or ProjectProfile(),
        corpus_version=corpus_version,
        files_scanned=files_scanned,
        truncated=truncated,
    )
