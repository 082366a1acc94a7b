"""Grouped report listing and per-target detail for the moderator dashboard."""

from __future__ import annotations

import time
from dataclasses import dataclass

from reportmod.moderation.domain.enrichment import EnrichmentData, GroupDataLoader
from reportmod.moderation.domain.errors import ReportNotFoundError
from reportmod.moderation.domain.grouping import EnrichedGroup, GroupDetail, GroupMapper
from reportmod.moderation.domain.models import Page, Target, TargetType, validate_page
from reportmod.moderation.domain.repository import ReportStore
from reportmod.moderation.domain.scoring import breakdown_of
from reportmod.moderation.workers.pool import ModerationTaskPool
from reportmod.obs import metrics as obs_metrics


@dataclass
class GroupService:
    store: ReportStore
    loader: GroupDataLoader
    mapper: GroupMapper
    pool: ModerationTaskPool

    async def get_grouped_reports(
        self,
        page: int,
        size: int,
        target_type: TargetType | None = None,
    ) -> Page[EnrichedGroup]:
        validate_page(page, size)
        start = time.perf_counter()
        groups = await self.store.find_grouped(page, size, target_type)
        if not groups.items:
            return Page.empty(page=page, size=size, total_elements=groups.total_elements)
        data = await self.loader.load_enrichment_data(groups.items)
        items = self.mapper.enrich_and_sort_groups(groups.items, data)
        obs_metrics.observe_group_list((time.perf_counter() - start) * 1000.0)
        return self.mapper.build_page(items, page=page, size=size, total_elements=groups.total_elements)

    async def get_group_detail(self, target: Target) -> GroupDetail:
        reports, info_by_target = await self.pool.run_all(
            self.store.find_pending_by_target(target),
            self.loader.batch_load_target_info([target]),
        )
        if not reports:
            raise ReportNotFoundError(target.key)
        reporter_names = await self.loader.load_user_names([report.reporter_id for report in reports])
        info = info_by_target.get(target)
        avatar_url = None
        if info is not None and info.image_path:
            avatars = await self.loader.batch_load_avatar_urls([info.image_path])
            avatar_url = EnrichmentData(avatar_urls=avatars).avatar_for(info.image_path)
        return self.mapper.build_group_detail_response(
            target,
            reports,
            breakdown_of(reports),
            reporter_names,
            target_info=info,
            avatar_url=avatar_url,
        )
