"""Output rendering."""

from __future__ import annotations

import json
from typing import Any

import click

from hig_audit import __version__
from hig_audit.corpus import Severity
from hig_audit.matcher import Finding
from hig_audit.report import PerspectiveSection, Report
from hig_audit.weighting import WeightedFinding

SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.IMPORTANT: "yellow",
    Severity.CONTEXT_DEPENDENT: "magenta",
    Severity.MINOR: "cyan",
}


def render_text(report: Report, *, show_suppressed: bool = False) -> str:
    """Render a colorized per-perspective summary."""
    summary = report.summary
    headline = (
        f"{summary.total} findings in {report.files_scanned} files "
        f"(critical {summary.critical}, important {summary.important}, "
        f"context-dependent {summary.context_dependent}, minor {summary.minor})"
    )
    lines: list[str] = [
        click.style(headline, fg=_headline_color(report), bold=True),
        f"Profile: {report.profile.category}, platforms: {_platform_label(report)}",
    ]

    for section in report.sections:
        lines.append("")
        lines.extend(_render_section(section))

    if report.overrides:
        lines.append("")
        lines.append(click.style("Severity overrides:", bold=True))
        for override in report.overrides:
            lines.append(
                f"- {override.path}:{override.line} [{override.rule_id}] "
                f"{override.declared.label} -> {override.applied.label}"
                f"{_justification_suffix(override.justification)}"
            )

    if show_suppressed and report.suppressed:
        lines.append("")
        lines.append(click.style(f"Suppressed ({len(report.suppressed)}):", bold=True))
        for finding in report.suppressed:
            justification = finding.directive.justification if finding.directive else ""
            lines.append(
                f"- {finding.path}:{finding.line_start} [{finding.rule_id}] "
                f"{finding.message}{_justification_suffix(justification)}"
            )

    if report.truncated:
        lines.append("")
        lines.append(
            click.style(
                "Run truncated: not every file was scanned before cancellation.",
                fg="yellow",
                bold=True,
            )
        )
    return "\n".join(lines)


def render_json(report: Report, *, show_suppressed: bool = False) -> str:
    """Render stable JSON output for CI and automation."""
    payload = build_json_payload(report, show_suppressed=show_suppressed)
    return json.dumps(payload, sort_keys=True)


def build_json_payload(report: Report, *, show_suppressed: bool = False) -> dict[str, Any]:
    """Build the JSON payload. Contains no timestamps so reruns are byte-identical."""
    payload: dict[str, Any] = {
        "summary": report.summary.to_dict(),
        "perspectives": {
            section.perspective.value: [_serialize_weighted(item) for item in section.findings]
            for section in report.sections
        },
        "perspective_status": {
            section.perspective.value: section.status for section in report.sections
        },
        "weights": {section.perspective.value: section.weight for section in report.sections},
        "truncated": report.truncated,
        "warnings": [warning.to_dict() for warning in report.warnings],
        "meta": {
            "version": __version__,
            "corpus_version": report.corpus_version,
            "files_scanned": report.files_scanned,
            "profile": report.profile.to_dict(),
            "overrides": [override.to_dict() for override in report.overrides],
        },
    }
    if show_suppressed:
        payload["suppressed"] = [_serialize_suppressed(item) for item in report.suppressed]
    return payload


def _serialize_weighted(item: WeightedFinding) -> dict[str, Any]:
    data = _serialize_finding(item.finding)
    data["score"] = item.score
    return data


def _serialize_finding(finding: Finding) -> dict[str, Any]:
    return {
        "rule_id": finding.rule_id,
        "file": finding.path,
        "line_start": finding.line_start,
        "line_end": finding.line_end,
        "severity": finding.severity.value,
        "message": finding.message,
        "fix_hint": finding.fix_hint,
    }


def _serialize_suppressed(finding: Finding) -> dict[str, Any]:
    data = _serialize_finding(finding)
    directive = finding.directive
    data["justification"] = directive.justification if directive else ""
    data["directive_line"] = directive.line if directive else None
    return data


def _render_section(section: PerspectiveSection) -> list[str]:
    title = section.perspective.value.capitalize()
    if not section.findings:
        return [f"{click.style(title, bold=True)} (weight {section.weight:.2f}): no issues"]

    lines = [
        f"{click.style(title, bold=True)} (weight {section.weight:.2f}): "
        f"{len(section.findings)} issues found"
    ]
    for index, item in enumerate(section.findings, start=1):
        finding = item.finding
        severity = click.style(
            finding.severity.label, fg=SEVERITY_COLORS[finding.severity], bold=True
        )
        location = f"{finding.path}:{finding.line_start}"
        if finding.line_end != finding.line_start:
            location += f"-{finding.line_end}"
        lines.append(f"{index}. [{severity}] {location} {finding.rule_id}: {finding.message}")
        lines.append(f"   fix: {finding.fix_hint}")
    return lines


def _headline_color(report: Report) -> str:
    if report.summary.critical:
        return "red"
    if report.summary.total:
        return "yellow"
    return "green"


def _platform_label(report: Report) -> str:
    platforms = sorted(report.profile.platforms)
    return ", ".join(platforms) if platforms else "all"


def _justification_suffix(justification: str) -> str:
    return f" ({justification})" if justification else ""
