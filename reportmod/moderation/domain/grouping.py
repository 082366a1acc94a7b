"""Builds ranked report-group views from raw aggregates and enrichment data."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Sequence

from reportmod.moderation.domain.enrichment import EnrichmentData
from reportmod.moderation.domain.models import (
    Page,
    Priority,
    Report,
    ReportGroup,
    ReportType,
    Target,
    TargetInfo,
    TargetType,
    UserInfo,
)
from reportmod.moderation.domain.scoring import ScoreCalculator


@dataclass(frozen=True, slots=True)
class EnrichedGroup:
    target_type: TargetType
    target_id: str
    target_title: str
    report_count: int
    weighted_score: float
    most_severe_type: ReportType | None
    report_type_breakdown: Mapping[ReportType, int]
    exceeds_threshold: bool
    threshold: float
    priority: Priority
    top_reporters: Sequence[str]
    avatar_url: str | None
    owner_username: str | None
    latest_report_at: datetime

    @property
    def target_key(self) -> str:
        return f"{self.target_type.value.lower()}:{self.target_id}"


@dataclass(frozen=True, slots=True)
class GroupReportItem:
    report_id: str
    reporter_id: str
    reporter_username: str | None
    reporter_full_name: str | None
    report_type: ReportType
    reason: str
    description: str | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class GroupDetail:
    group: EnrichedGroup
    reports: Sequence[GroupReportItem] = field(default_factory=tuple)


def _fallback_title(target: Target) -> str:
    return f"{target.target_type.value.title()} {target.target_id}"


class GroupMapper:
    """Turns raw groups into display items. Deterministic for identical inputs."""

    def __init__(self, calculator: ScoreCalculator) -> None:
        self.calculator = calculator

    def enrich_group_data(self, group: ReportGroup, data: EnrichmentData) -> EnrichedGroup:
        breakdown = dict(data.breakdown_for(group.target))
        info = data.info_for(group.target)
        return self._build(
            target=group.target,
            report_count=group.report_count,
            latest_report_at=group.latest_report_at,
            breakdown=breakdown,
            info=info,
            top_reporters=data.reporters_for(group.target),
            avatar_url=data.avatar_for(info.image_path if info else None),
        )

    def enrich_and_sort_groups(self, groups: Sequence[ReportGroup], data: EnrichmentData) -> list[EnrichedGroup]:
        enriched = [self.enrich_group_data(group, data) for group in groups]
        enriched.sort(key=self._sort_key)
        return enriched

    def build_group_detail_response(
        self,
        target: Target,
        reports: Sequence[Report],
        breakdown: Mapping[ReportType, int],
        reporter_names: Mapping[str, UserInfo],
        target_info: TargetInfo | None = None,
        avatar_url: str | None = None,
    ) -> GroupDetail:
        latest = max(report.created_at for report in reports)
        group = self._build(
            target=target,
            report_count=len(reports),
            latest_report_at=latest,
            breakdown=dict(breakdown),
            info=target_info,
            top_reporters=(),
            avatar_url=avatar_url,
        )
        items = []
        for report in reports:
            reporter = reporter_names.get(report.reporter_id)
            items.append(
                GroupReportItem(
                    report_id=report.report_id,
                    reporter_id=report.reporter_id,
                    reporter_username=reporter.username if reporter else None,
                    reporter_full_name=reporter.full_name if reporter else None,
                    report_type=report.report_type,
                    reason=report.reason,
                    description=report.description,
                    created_at=report.created_at,
                )
            )
        return GroupDetail(group=group, reports=tuple(items))

    @staticmethod
    def build_page(items: Sequence[EnrichedGroup], *, page: int, size: int, total_elements: int) -> Page[EnrichedGroup]:
        return Page.build(items, page=page, size=size, total_elements=total_elements)

    def _build(
        self,
        *,
        target: Target,
        report_count: int,
        latest_report_at: datetime,
        breakdown: dict[ReportType, int],
        info: TargetInfo | None,
        top_reporters: Sequence[str],
        avatar_url: str | None,
    ) -> EnrichedGroup:
        score = self.calculator.score(breakdown)
        target_type = target.target_type
        return EnrichedGroup(
            target_type=target_type,
            target_id=target.target_id,
            target_title=info.title if info else _fallback_title(target),
            report_count=report_count,
            weighted_score=score.weighted_score,
            most_severe_type=score.most_severe_type,
            report_type_breakdown=score.breakdown,
            exceeds_threshold=self.calculator.exceeds_threshold(score.weighted_score, target_type),
            threshold=self.calculator.get_threshold(target_type),
            priority=self.calculator.determine_priority(score.weighted_score, target_type, report_count),
            top_reporters=tuple(top_reporters),
            avatar_url=avatar_url,
            owner_username=info.owner_username if info else None,
            latest_report_at=latest_report_at,
        )

    def _sort_key(self, group: EnrichedGroup) -> tuple:
        return (
            -self.calculator.get_priority_order(group.priority),
            -group.weighted_score,
            -group.latest_report_at.timestamp(),
            group.target_key,
        )
