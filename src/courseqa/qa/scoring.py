"""Quality score computation: a pure function of an issue multiset."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from courseqa.qa.models import Category, Scores, Severity

# Weights in integer percent so the total is computed exactly.
_WEIGHT_PERCENT = {
    Category.ACCESSIBILITY: 40,
    Category.SCORM: 35,
    Category.RELIABILITY: 25,
}

CATEGORY_WEIGHTS: dict[str, float] = {
    category.value: percent / 100 for category, percent in _WEIGHT_PERCENT.items()
}

SEVERITY_PENALTIES: dict[str, int] = {
    Severity.CRITICAL.value: 20,
    Severity.HIGH.value: 12,
    Severity.MEDIUM.value: 6,
    Severity.LOW.value: 3,
}


@dataclass(frozen=True)
class CategoryStats:
    category: str
    issue_count: int
    critical: int
    high: int
    medium: int
    low: int
    penalty: int


@dataclass(frozen=True)
class ScoreComputation:
    """Scores plus the rule that produced them, for transparent rendering."""

    scores: Scores
    category_stats: tuple[CategoryStats, ...]
    weights: dict[str, float]
    penalties: dict[str, int]

    def meta(self) -> dict:
        return {
            "category_stats": [vars(s) for s in self.category_stats],
            "weights": dict(self.weights),
            "penalties": dict(self.penalties),
        }


def _clamp(value: int) -> int:
    return max(0, min(100, value))


def compute_quality_score(
    issues: Iterable[tuple[Category, Severity]],
) -> ScoreComputation:
    """Map (category, severity) pairs to per-category and total scores.

    Each category starts at 100 and loses a fixed penalty per issue by
    severity; the total is the weighted sum rounded half up.
    """
    counts = Counter((Category(c), Severity(s)) for c, s in issues)

    stats: list[CategoryStats] = []
    category_scores: dict[Category, int] = {}
    for category in Category:
        per_severity = {sev: counts[(category, sev)] for sev in Severity}
        penalty = sum(
            n * SEVERITY_PENALTIES[sev.value] for sev, n in per_severity.items()
        )
        stats.append(
            CategoryStats(
                category=category.value,
                issue_count=sum(per_severity.values()),
                critical=per_severity[Severity.CRITICAL],
                high=per_severity[Severity.HIGH],
                medium=per_severity[Severity.MEDIUM],
                low=per_severity[Severity.LOW],
                penalty=penalty,
            )
        )
        category_scores[category] = _clamp(100 - penalty)

    weighted = sum(
        category_scores[category] * percent
        for category, percent in _WEIGHT_PERCENT.items()
    )
    total = _clamp((weighted + 50) // 100)

    return ScoreComputation(
        scores=Scores(
            total_score=total,
            accessibility_score=category_scores[Category.ACCESSIBILITY],
            scorm_score=category_scores[Category.SCORM],
            reliability_score=category_scores[Category.RELIABILITY],
        ),
        category_stats=tuple(stats),
        weights=dict(CATEGORY_WEIGHTS),
        penalties=dict(SEVERITY_PENALTIES),
    )


def score_issues(issues: Iterable) -> ScoreComputation:
    """Score anything exposing ``category`` and ``severity`` attributes or keys."""
    pairs = []
    for issue in issues:
        if isinstance(issue, dict):
            pairs.append((issue["category"], issue["severity"]))
        else:
            pairs.append((issue.category, issue.severity))
    return compute_quality_score(pairs)
