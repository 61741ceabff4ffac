"""Project-profile weighting, platform filtering and presentation order."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from hig_audit.corpus import KNOWN_PLATFORMS, PERSPECTIVE_ORDER, Perspective, Rule
from hig_audit.matcher import Finding

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"

# (clarity, consistency, deference) multipliers per project category.
CATEGORY_WEIGHTS: dict[str, tuple[float, float, float]] = {
    "productivity": (1.0, 1.0, 0.6),
    "media": (0.7, 0.8, 1.0),
    "utility": (1.0, 0.9, 0.5),
    "game": (0.6, 0.5, 1.0),
    "social": (0.9, 0.8, 0.9),
    "education": (1.0, 0.9, 0.7),
    "health": (1.0, 0.9, 0.7),
    "general": (1.0, 1.0, 1.0),
}


@dataclass(frozen=True, slots=True)
class ProjectProfile:
    """Caller-declared project category and target platforms."""

    category: str = DEFAULT_CATEGORY
    platforms: frozenset[str] = frozenset()
    weight_overrides: tuple[tuple[str, float], ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "platforms": sorted(self.platforms),
            "weights": dict(self.weight_overrides),
        }


@dataclass(frozen=True, slots=True)
class WeightedFinding:
    """A finding placed in one perspective group with its ordering score."""

    finding: Finding
    perspective: Perspective
    weight: float
    score: float


@dataclass(slots=True)
class WeightedFindings:
    groups: dict[Perspective, list[WeightedFinding]]
    weights: dict[Perspective, float]
    kept: list[Finding] = field(default_factory=list)
    dropped: list[Finding] = field(default_factory=list)


def build_profile(
    category: str | None = None,
    platforms: list[str] | None = None,
    weight_overrides: dict[str, float] | None = None,
) -> ProjectProfile:
    """Validate raw profile inputs."""
    resolved_category = (category or DEFAULT_CATEGORY).strip().lower()
    if resolved_category not in CATEGORY_WEIGHTS:
        choices = ", ".join(sorted(CATEGORY_WEIGHTS))
        raise ValueError(f"Unknown profile '{category}'. Expected one of: {choices}")

    resolved_platforms = {item.strip().lower() for item in platforms or [] if item.strip()}
    unknown = sorted(resolved_platforms - set(KNOWN_PLATFORMS))
    if unknown:
        choices = ", ".join(KNOWN_PLATFORMS)
        raise ValueError(f"Unknown platforms: {', '.join(unknown)}. Expected any of: {choices}")

    overrides: dict[str, float] = {}
    for key, value in (weight_overrides or {}).items():
        name = key.strip().lower()
        if name not in {item.value for item in Perspective}:
            raise ValueError(f"Unknown perspective weight '{key}'")
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"Perspective weight for '{name}' must be within [0, 1], got {value}")
        overrides[name] = float(value)

    return ProjectProfile(
        category=resolved_category,
        platforms=frozenset(resolved_platforms),
        weight_overrides=tuple(sorted(overrides.items())),
    )


def perspective_weights(profile: ProjectProfile) -> dict[Perspective, float]:
    """Deterministic weight table lookup for a profile."""
    clarity, consistency, deference = CATEGORY_WEIGHTS[profile.category]
    weights = {
        Perspective.CLARITY: clarity,
        Perspective.CONSISTENCY: consistency,
        Perspective.DEFERENCE: deference,
    }
    for name, value in profile.weight_overrides:
        weights[Perspective(name)] = value
    return weights


def weight(
    findings: list[Finding], profile: ProjectProfile, rules: dict[str, Rule]
) -> WeightedFindings:
    """Drop platform-irrelevant findings, then group and order the rest."""
    weights = perspective_weights(profile)
    result = WeightedFindings(
        groups={perspective: [] for perspective in PERSPECTIVE_ORDER},
        weights=weights,
    )

    for finding in findings:
        rule = rules[finding.rule_id]
        if not rule.applies_to_platforms(profile.platforms):
            result.dropped.append(finding)
            continue
        result.kept.append(finding)
        for perspective in finding.perspectives:
            # Accessibility rules are never down-weighted by the profile.
            multiplier = 1.0 if rule.accessibility else weights[perspective]
            result.groups[perspective].append(
                WeightedFinding(
                    finding=finding,
                    perspective=perspective,
                    weight=multiplier,
                    score=round(finding.severity.rank * multiplier, 6),
                )
            )

    for group in result.groups.values():
        group.sort(key=_order_key)

    if result.dropped:
        logger.debug(
            f"Dropped {len(result.dropped)} findings not applicable to platforms "
            f"{sorted(profile.platforms)}"
        )
    return result


def _order_key(item: WeightedFinding) -> tuple[float, str, int, int, str]:
    finding = item.finding
    return (-item.score, finding.path, finding.line_start, finding.line_end, finding.rule_id)
