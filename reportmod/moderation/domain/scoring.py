"""Weighted severity scoring and priority banding for report groups."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from reportmod.moderation.domain.models import Priority, Report, ReportType, TargetType
from reportmod.moderation.domain.thresholds import ScoringThresholds

PRIORITY_ORDER: Mapping[Priority, int] = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}

_DECLARATION_ORDER: Mapping[ReportType, int] = {item: index for index, item in enumerate(ReportType)}


@dataclass(frozen=True, slots=True)
class ModerationScore:
    weighted_score: float
    most_severe_type: ReportType | None
    total_count: int
    breakdown: Mapping[ReportType, int] = field(default_factory=dict)


def breakdown_of(reports: Iterable[Report]) -> dict[ReportType, int]:
    """Count reports per type."""
    counts = Counter(report.report_type for report in reports)
    return dict(counts)


class ScoreCalculator:
    """Pure scoring functions over a report-type breakdown."""

    def __init__(self, thresholds: ScoringThresholds | None = None) -> None:
        self.thresholds = thresholds or ScoringThresholds.default()

    def calculate_weighted_score(self, breakdown: Mapping[ReportType, int]) -> float:
        weights = self.thresholds.weights
        return float(sum(count * weights[report_type] for report_type, count in breakdown.items() if count > 0))

    def find_most_severe_type(self, breakdown: Mapping[ReportType, int]) -> ReportType | None:
        weights = self.thresholds.weights
        present = [(report_type, count) for report_type, count in breakdown.items() if count > 0]
        if not present:
            return None
        # heaviest weight, then most reports, then earliest declared type
        report_type, _ = min(
            present,
            key=lambda item: (-weights[item[0]], -item[1], _DECLARATION_ORDER[item[0]]),
        )
        return report_type

    def get_threshold(self, target_type: TargetType) -> float:
        return self.thresholds.for_target(target_type)

    def exceeds_threshold(self, score: float, target_type: TargetType) -> bool:
        return score >= self.get_threshold(target_type)

    def determine_priority(self, score: float, target_type: TargetType, report_count: int) -> Priority:
        bands = self.thresholds.priority
        ratio = score / self.get_threshold(target_type)
        if ratio >= bands.critical_ratio:
            priority = Priority.CRITICAL
        elif ratio >= bands.high_ratio:
            priority = Priority.HIGH
        elif ratio >= bands.medium_ratio:
            priority = Priority.MEDIUM
        else:
            priority = Priority.LOW
        if report_count >= bands.count_floor and PRIORITY_ORDER[priority] < PRIORITY_ORDER[Priority.MEDIUM]:
            return Priority.MEDIUM
        return priority

    @staticmethod
    def get_priority_order(priority: Priority) -> int:
        return PRIORITY_ORDER[priority]

    def score(self, breakdown: Mapping[ReportType, int]) -> ModerationScore:
        cleaned = {report_type: count for report_type, count in breakdown.items() if count > 0}
        return ModerationScore(
            weighted_score=self.calculate_weighted_score(cleaned),
            most_severe_type=self.find_most_severe_type(cleaned),
            total_count=sum(cleaned.values()),
            breakdown=cleaned,
        )

    def score_reports(self, reports: Iterable[Report]) -> ModerationScore:
        return self.score(breakdown_of(reports))
