"""Configuration helpers for report scoring thresholds."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from reportmod.moderation.domain.models import ReportType, TargetType
from reportmod.moderation.domain.severity import SEVERITY_WEIGHTS, validate_weights

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriorityBands:
    """Score-to-threshold ratios at which each priority starts."""

    critical_ratio: float = 1.5
    high_ratio: float = 1.0
    medium_ratio: float = 0.7
    count_floor: int = 10

    def __post_init__(self) -> None:
        if not (self.critical_ratio > self.high_ratio > self.medium_ratio > 0):
            raise ValueError("priority ratios must be strictly descending and positive")
        if self.count_floor < 1:
            raise ValueError("count_floor must be at least 1")


@dataclass(frozen=True)
class ScoringThresholds:
    """Per-target auto-moderation thresholds, priority bands and severity weights."""

    user: float = 12.0
    recipe: float = 6.0
    priority: PriorityBands = field(default_factory=PriorityBands)
    weights: Mapping[ReportType, int] = field(default_factory=lambda: SEVERITY_WEIGHTS)

    def __post_init__(self) -> None:
        if self.user <= 0 or self.recipe <= 0:
            raise ValueError("thresholds must be positive")

    @staticmethod
    def default() -> "ScoringThresholds":
        return ScoringThresholds()

    def for_target(self, target_type: TargetType) -> float:
        if target_type is TargetType.USER:
            return self.user
        return self.recipe

    # --- Serialization ---------------------------------------------------

    @staticmethod
    def from_mapping(config: Mapping[str, Any], *, base: "ScoringThresholds | None" = None) -> "ScoringThresholds":
        base = base or ScoringThresholds.default()
        threshold_cfg = config.get("thresholds") or {}
        priority_cfg = config.get("priority") or {}
        weights_cfg = config.get("weights")
        weights = base.weights
        if weights_cfg:
            merged = {item: weights_cfg.get(item.value, base.weights[item]) for item in ReportType}
            unknown = set(weights_cfg) - {item.value for item in ReportType}
            if unknown:
                raise ValueError(f"unknown report types in weights: {', '.join(sorted(unknown))}")
            weights = validate_weights(merged)
        return ScoringThresholds(
            user=float(threshold_cfg.get("user", base.user)),
            recipe=float(threshold_cfg.get("recipe", base.recipe)),
            priority=PriorityBands(
                critical_ratio=float(priority_cfg.get("critical_ratio", base.priority.critical_ratio)),
                high_ratio=float(priority_cfg.get("high_ratio", base.priority.high_ratio)),
                medium_ratio=float(priority_cfg.get("medium_ratio", base.priority.medium_ratio)),
                count_floor=int(priority_cfg.get("count_floor", base.priority.count_floor)),
            ),
            weights=weights,
        )


def load_thresholds(path: str | Path, *, base: ScoringThresholds | None = None) -> ScoringThresholds:
    """Load thresholds from a YAML file, falling back to ``base`` when it is absent."""

    fallback = base or ScoringThresholds.default()
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("moderation thresholds file missing at %s; using defaults", path)
        return fallback
    data = yaml.safe_load(text)
    if data is None:
        return fallback
    if not isinstance(data, Mapping):
        logger.warning("moderation thresholds file invalid; falling back to defaults", extra={"path": str(path)})
        return fallback
    return ScoringThresholds.from_mapping(data, base=fallback)
