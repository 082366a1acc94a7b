"""Storage contract and in-memory fallback for reports."""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncContextManager, AsyncIterator, Iterable, Protocol, Sequence
from uuid import uuid4

from reportmod.moderation.domain.models import (
    Page,
    Report,
    ReportActionType,
    ReportCriteria,
    ReportDraft,
    ReportGroup,
    ReportStatus,
    ReportType,
    Target,
    TargetType,
    utcnow,
)


class ReportStore(Protocol):
    """Persistence for reports plus the aggregate queries used by grouping."""

    async def create(self, draft: ReportDraft) -> Report:
        ...

    async def find_by_id(self, report_id: str) -> Report | None:
        ...

    async def find_pending_by_target(self, target: Target) -> list[Report]:
        """Pending reports for a target, newest first."""

    async def find_all_by_target(self, target: Target) -> list[Report]:
        ...

    async def exists_pending_by_reporter(self, reporter_id: str, target: Target) -> bool:
        ...

    async def update(self, report: Report) -> None:
        ...

    async def sync_pending_for_target(
        self,
        target: Target,
        *,
        exclude_report_id: str,
        status: ReportStatus,
        action: ReportActionType,
        action_description: str | None,
        reviewer_id: str,
        reviewed_at: datetime,
    ) -> int:
        """Apply a review outcome to every other pending report on the target."""

    async def delete_by_id(self, report_id: str) -> bool:
        ...

    async def count_by_status(self, status: ReportStatus | None = None) -> int:
        ...

    async def count_by_type(self) -> dict[ReportType, int]:
        ...

    async def filtered_search(self, criteria: ReportCriteria, page: int, size: int) -> Page[Report]:
        ...

    async def find_grouped(self, page: int, size: int, target_type: TargetType | None = None) -> Page[ReportGroup]:
        """Pending reports aggregated per target, most recently reported first."""

    async def batch_count_types(self, targets: Sequence[Target]) -> dict[Target, dict[ReportType, int]]:
        ...

    async def batch_top_reporters(self, targets: Sequence[Target], limit: int) -> dict[Target, list[str]]:
        """Distinct reporter ids per target ordered by their latest pending report."""

    async def top_reported(self, target_type: TargetType, limit: int) -> list[tuple[Target, int]]:
        ...

    async def mark_reporters_notified(self, report_ids: Sequence[str]) -> None:
        ...

    def lock_target(self, target: Target) -> AsyncContextManager["ReportStore"]:
        """Run a read-then-write sequence against one target as a single unit.

        Yields a store bound to that unit; every statement of the sequence must
        go through it. Other targets proceed concurrently. An exception leaving
        the block discards the unit's writes.
        """


@dataclass
class InMemoryReportStore(ReportStore):
    """Simple report store for development and tests."""

    reports: dict[str, Report] = field(default_factory=dict)
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, repr=False)
    _lock_holders: Counter[str] = field(default_factory=Counter, repr=False)

    async def create(self, draft: ReportDraft) -> Report:
        report = Report(
            report_id=str(uuid4()),
            reporter_id=draft.reporter_id,
            target=draft.target,
            report_type=draft.report_type,
            reason=draft.reason,
            description=draft.description,
            created_at=utcnow(),
        )
        self.reports[report.report_id] = report
        return report.copy()

    async def find_by_id(self, report_id: str) -> Report | None:
        report = self.reports.get(report_id)
        return report.copy() if report else None

    async def find_pending_by_target(self, target: Target) -> list[Report]:
        return _newest_first(item for item in self.reports.values() if item.target == target and item.is_pending)

    async def find_all_by_target(self, target: Target) -> list[Report]:
        return _newest_first(item for item in self.reports.values() if item.target == target)

    async def exists_pending_by_reporter(self, reporter_id: str, target: Target) -> bool:
        return any(
            item.reporter_id == reporter_id and item.target == target and item.is_pending
            for item in self.reports.values()
        )

    async def update(self, report: Report) -> None:
        if report.report_id not in self.reports:
            raise KeyError(report.report_id)
        self.reports[report.report_id] = report.copy()

    async def sync_pending_for_target(
        self,
        target: Target,
        *,
        exclude_report_id: str,
        status: ReportStatus,
        action: ReportActionType,
        action_description: str | None,
        reviewer_id: str,
        reviewed_at: datetime,
    ) -> int:
        updated = 0
        for report in self.reports.values():
            if report.target != target or not report.is_pending or report.report_id == exclude_report_id:
                continue
            report.mark_reviewed(
                status=status,
                action=action,
                reviewer_id=reviewer_id,
                reviewed_at=reviewed_at,
                action_description=action_description,
            )
            updated += 1
        return updated

    async def delete_by_id(self, report_id: str) -> bool:
        return self.reports.pop(report_id, None) is not None

    async def count_by_status(self, status: ReportStatus | None = None) -> int:
        if status is None:
            return len(self.reports)
        return sum(1 for item in self.reports.values() if item.status is status)

    async def count_by_type(self) -> dict[ReportType, int]:
        return dict(Counter(item.report_type for item in self.reports.values()))

    async def filtered_search(self, criteria: ReportCriteria, page: int, size: int) -> Page[Report]:
        matches = _newest_first(item for item in self.reports.values() if criteria.matches(item))
        start = page * size
        return Page.build(matches[start : start + size], page=page, size=size, total_elements=len(matches))

    async def find_grouped(self, page: int, size: int, target_type: TargetType | None = None) -> Page[ReportGroup]:
        buckets: dict[Target, list[Report]] = defaultdict(list)
        for report in self.reports.values():
            if not report.is_pending:
                continue
            if target_type is not None and report.target.target_type is not target_type:
                continue
            buckets[report.target].append(report)
        groups = [
            ReportGroup(
                target=target,
                report_count=len(items),
                latest_report_at=max(item.created_at for item in items),
                first_report_at=min(item.created_at for item in items),
            )
            for target, items in buckets.items()
        ]
        groups.sort(key=lambda group: (-group.latest_report_at.timestamp(), group.target.key))
        start = page * size
        return Page.build(groups[start : start + size], page=page, size=size, total_elements=len(groups))

    async def batch_count_types(self, targets: Sequence[Target]) -> dict[Target, dict[ReportType, int]]:
        wanted = set(targets)
        result: dict[Target, dict[ReportType, int]] = {target: {} for target in wanted}
        for report in self.reports.values():
            if report.is_pending and report.target in wanted:
                counts = result[report.target]
                counts[report.report_type] = counts.get(report.report_type, 0) + 1
        return result

    async def batch_top_reporters(self, targets: Sequence[Target], limit: int) -> dict[Target, list[str]]:
        wanted = set(targets)
        result: dict[Target, list[str]] = {target: [] for target in wanted}
        pending = _newest_first(item for item in self.reports.values() if item.is_pending and item.target in wanted)
        for report in pending:
            reporters = result[report.target]
            if report.reporter_id not in reporters and len(reporters) < limit:
                reporters.append(report.reporter_id)
        return result

    async def top_reported(self, target_type: TargetType, limit: int) -> list[tuple[Target, int]]:
        counts = Counter(item.target for item in self.reports.values() if item.target.target_type is target_type)
        ranked = sorted(counts.items(), key=lambda entry: (-entry[1], entry[0].key))
        return ranked[:limit]

    async def mark_reporters_notified(self, report_ids: Sequence[str]) -> None:
        for report_id in report_ids:
            report = self.reports.get(report_id)
            if report is not None:
                report.reporters_notified = True

    @asynccontextmanager
    async def lock_target(self, target: Target) -> AsyncIterator[ReportStore]:
        key = target.key
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_holders[key] += 1
        try:
            async with lock:
                snapshot = {rid: item.copy() for rid, item in self.reports.items() if item.target == target}
                try:
                    yield self
                except BaseException:
                    self._restore(target, snapshot)
                    raise
        finally:
            self._lock_holders[key] -= 1
            if self._lock_holders[key] <= 0:
                # nobody holds or waits for the lock any more
                del self._lock_holders[key]
                self._locks.pop(key, None)

    def _restore(self, target: Target, snapshot: dict[str, Report]) -> None:
        for report_id in [rid for rid, item in self.reports.items() if item.target == target]:
            if report_id not in snapshot:
                del self.reports[report_id]
        self.reports.update(snapshot)


def _newest_first(reports: Iterable[Report]) -> list[Report]:
    ordered = sorted(reports, key=lambda item: (item.created_at, item.report_id), reverse=True)
    return [item.copy() for item in ordered]
