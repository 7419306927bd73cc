"""
Assessment scoring: weighted totals under a CA-type configuration and grade
band lookup.

A configuration maps components to weight percentages. Two shapes exist:
single CA ({"ca": 30, "exam": 70}, where the CA value is read from the ca1
column) and split CA ({"ca1": 10, ..., "ca4": 10, "exam": 60}). Raw component
scores are always out of 100.
"""

import math
from typing import Dict, List, Mapping, Optional, Sequence

from .schemas import GradeBand, ScoreBreakdown, ScoreResult

COMPONENTS = ("ca1", "ca2", "ca3", "ca4", "exam")
SCHEMA_KEYS = ("ca",) + COMPONENTS

Scores = Mapping[str, Optional[float]]


def _bands(rows) -> List[GradeBand]:
    return [GradeBand(from_percentage=f, to_percentage=t, grade=g, remark=r) for f, t, g, r in rows]


# Fallback for results imports when no grading scale is configured.
WAEC_GRADE_BANDS = _bands([
    (80, 100, "A1", "Excellent"),
    (70, 79, "B2", "Very Good"),
    (65, 69, "B3", "Good"),
    (60, 64, "C4", "Credit"),
    (55, 59, "C5", "Credit"),
    (50, 54, "C6", "Credit"),
    (45, 49, "D7", "Pass"),
    (40, 44, "E8", "Pass"),
    (0, 39, "F9", "Fail"),
])

# Fallback for report-time breakdowns. Totals there carry 2 decimals.
LETTER_GRADE_BANDS = _bands([
    (80, 100, "A", "Excellent"),
    (70, 79.99, "B", "Very Good"),
    (60, 69.99, "C", "Good"),
    (50, 59.99, "D", "Credit"),
    (40, 49.99, "E", "Pass"),
    (0, 39.99, "F", "Fail"),
])


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _raw(scores: Scores, component: str) -> float:
    value = scores.get(component)
    return float(value) if value is not None else 0.0


def weighted_contributions(configuration: Optional[Mapping[str, float]], scores: Scores) -> Dict[str, float]:
    """Weighted value per component. Absent raw scores count as 0 once a configuration is known."""
    if not configuration:
        return {c: float(scores[c]) for c in COMPONENTS if scores.get(c) is not None}

    if configuration.get("ca"):
        return {
            "ca": _raw(scores, "ca1") * configuration["ca"] / 100,
            "exam": _raw(scores, "exam") * (configuration.get("exam") or 0) / 100,
        }

    return {
        c: _raw(scores, c) * configuration[c] / 100
        for c in COMPONENTS
        if configuration.get(c)
    }


def compute_total(configuration: Optional[Mapping[str, float]], scores: Scores) -> int:
    """
    >>> compute_total({"ca": 30, "exam": 70}, {"ca1": 80, "exam": 60})
    66
    """
    return round_half_up(sum(weighted_contributions(configuration, scores).values()))


def lookup_grade(total: float, bands: Sequence[GradeBand]) -> Optional[GradeBand]:
    """Highest band whose [from, to] holds the total, or None when the total falls in a gap."""
    for band in sorted(bands, key=lambda b: b.from_percentage, reverse=True):
        if band.from_percentage <= total <= band.to_percentage:
            return band
    return None


def compute_score(
    configuration: Optional[Mapping[str, float]],
    scores: Scores,
    bands: Optional[Sequence[GradeBand]] = None,
) -> ScoreResult:
    """Import-time score: no clamping, integer total, grade from `bands` (WAEC scale when none given)."""
    contributions = weighted_contributions(configuration, scores)
    total = round_half_up(sum(contributions.values()))
    band = lookup_grade(total, bands if bands else WAEC_GRADE_BANDS)
    return ScoreResult(
        contributions={k: round(v, 2) for k, v in contributions.items()},
        total_score=total,
        grade=band.grade if band else None,
        remark=band.remark if band else None,
    )


def _clamp(value: Optional[float]) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return min(max(float(value), 0.0), 100.0)


def compute_breakdown(
    configuration: Optional[Mapping[str, float]],
    scores: Scores,
    bands: Optional[Sequence[GradeBand]] = None,
    default_grade: str = "F",
) -> ScoreBreakdown:
    """Report-time score: components clamped to 0-100 first, total rounded to 2 decimals."""
    clamped = {c: _clamp(scores.get(c)) for c in COMPONENTS}
    if configuration:
        contributions = weighted_contributions(configuration, clamped)
    else:
        contributions = {}
    total = round(sum(contributions.values()), 2)
    band = lookup_grade(total, bands if bands else LETTER_GRADE_BANDS)
    return ScoreBreakdown(
        contributions={k: round(v, 2) for k, v in contributions.items()},
        total_score=total,
        grade=band.grade if band else default_grade,
        remark=band.remark if band else None,
    )


def validate_schema(configuration: Mapping[str, float]) -> List[str]:
    """Problems with a CA-type configuration; empty when it can be saved."""
    errors = []
    if not configuration:
        return ["Configuration must define at least one component"]

    unknown = [k for k in configuration if k not in SCHEMA_KEYS]
    if unknown:
        errors.append(f"Unknown components: {', '.join(sorted(unknown))}")

    for key, weight in configuration.items():
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or math.isnan(weight):
            errors.append(f"Weight for {key} must be a number")
        elif weight < 0:
            errors.append(f"Weight for {key} cannot be negative")
    if errors:
        return errors

    if "ca" in configuration and any(k in configuration for k in ("ca1", "ca2", "ca3", "ca4")):
        errors.append("A single 'ca' weight cannot be combined with ca1-ca4")

    total = sum(configuration.values())
    if abs(total - 100) > 0.01:
        errors.append(f"Weights must add up to 100 (got {total:g})")
    return errors


def validate_grade_bands(bands: Sequence[GradeBand]) -> List[str]:
    errors = []
    for band in bands:
        if band.from_percentage > band.to_percentage:
            errors.append(f"Band {band.grade}: from ({band.from_percentage:g}) is above to ({band.to_percentage:g})")
    ordered = sorted(bands, key=lambda b: b.from_percentage)
    for lower, upper in zip(ordered, ordered[1:]):
        if upper.from_percentage <= lower.to_percentage:
            errors.append(f"Bands {lower.grade} and {upper.grade} overlap")
    return errors
