"""Severity weights per report type."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from reportmod.moderation.domain.models import ReportType

SEVERITY_WEIGHTS: Mapping[ReportType, int] = MappingProxyType(
    {
        ReportType.HARASSMENT: 5,
        ReportType.COPYRIGHT: 4,
        ReportType.INAPPROPRIATE: 3,
        ReportType.FAKE: 2,
        ReportType.MISLEADING: 2,
        ReportType.SPAM: 1,
        ReportType.OTHER: 1,
    }
)


def validate_weights(weights: Mapping[ReportType, int]) -> Mapping[ReportType, int]:
    """Reject weight tables that miss a report type or carry a non-positive weight."""
    missing = [item.value for item in ReportType if item not in weights]
    if missing:
        raise ValueError(f"severity weights missing for: {', '.join(missing)}")
    for report_type, weight in weights.items():
        if int(weight) != weight or weight < 1:
            raise ValueError(f"severity weight for {report_type.value} must be a positive integer")
    return MappingProxyType({item: int(weights[item]) for item in ReportType})


def severity_weight(report_type: ReportType, weights: Mapping[ReportType, int] = SEVERITY_WEIGHTS) -> int:
    return weights[report_type]


validate_weights(SEVERITY_WEIGHTS)
