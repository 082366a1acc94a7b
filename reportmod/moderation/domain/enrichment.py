"""Concurrent batch loads that enrich a page of report groups.

A page of groups is enriched with four kinds of data: the per-type breakdown
of pending reports, the most recent reporter handles, target display info and
resolved avatar/thumbnail URLs. The first three are needed for a correct
listing and abort the request when they fail. Avatar URLs are cosmetic; when
the asset store is missing or errors the loader returns what it has and the
listing renders without images.

Every sub-load issues a bounded number of collaborator calls regardless of how
many groups are on the page.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Mapping, Sequence, TypeVar

from reportmod.moderation.domain.collaborators import AssetStore, IdentityResolver
from reportmod.moderation.domain.errors import EnrichmentFailure
from reportmod.moderation.domain.models import (
    RecipeInfo,
    RecipeTarget,
    ReportGroup,
    ReportType,
    Target,
    TargetInfo,
    UserInfo,
    UserTarget,
)
from reportmod.moderation.domain.repository import ReportStore
from reportmod.moderation.workers.pool import ModerationTaskPool
from reportmod.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ABSOLUTE_PREFIXES = ("http://", "https://", "//")


def is_absolute_url(path: str) -> bool:
    return path.lower().startswith(_ABSOLUTE_PREFIXES)


@dataclass(frozen=True)
class EnrichmentData:
    """Request-scoped enrichment results keyed by target."""

    breakdowns: Mapping[Target, Mapping[ReportType, int]] = field(default_factory=dict)
    top_reporters: Mapping[Target, Sequence[str]] = field(default_factory=dict)
    target_info: Mapping[Target, TargetInfo] = field(default_factory=dict)
    avatar_urls: Mapping[str, str] = field(default_factory=dict)

    @staticmethod
    def empty() -> "EnrichmentData":
        return EnrichmentData()

    def breakdown_for(self, target: Target) -> Mapping[ReportType, int]:
        return self.breakdowns.get(target, {})

    def reporters_for(self, target: Target) -> Sequence[str]:
        return self.top_reporters.get(target, ())

    def info_for(self, target: Target) -> TargetInfo | None:
        return self.target_info.get(target)

    def avatar_for(self, path: str | None) -> str | None:
        if not path:
            return None
        # unresolved paths pass through unchanged when conversion was skipped
        return self.avatar_urls.get(path, path)


def _distinct(values: Iterable[T]) -> list[T]:
    return list(dict.fromkeys(values))


async def guarded_load(kind: str, loader: Callable[[], Awaitable[T]]) -> T:
    try:
        return await loader()
    except EnrichmentFailure:
        raise
    except Exception as exc:
        raise EnrichmentFailure(kind) from exc


class GroupDataLoader:
    """Loads enrichment data for a page of groups through the moderation pool."""

    def __init__(
        self,
        *,
        store: ReportStore,
        identity: IdentityResolver,
        assets: AssetStore,
        pool: ModerationTaskPool,
        top_reporters_limit: int = 3,
    ) -> None:
        self.store = store
        self.identity = identity
        self.assets = assets
        self.pool = pool
        self.top_reporters_limit = top_reporters_limit

    async def load_enrichment_data(self, groups: Sequence[ReportGroup]) -> EnrichmentData:
        if not groups:
            return EnrichmentData.empty()
        targets = _distinct(group.target for group in groups)
        start = time.perf_counter()
        breakdowns, top_reporters, (target_info, avatar_urls) = await self.pool.run_all(
            self.batch_load_report_type_breakdowns(targets),
            self.batch_load_top_reporters(targets),
            self._load_target_info_and_avatars(targets),
        )
        obs_metrics.observe_enrichment(time.perf_counter() - start)
        return EnrichmentData(
            breakdowns=breakdowns,
            top_reporters=top_reporters,
            target_info=target_info,
            avatar_urls=avatar_urls,
        )

    async def batch_load_report_type_breakdowns(
        self, targets: Sequence[Target]
    ) -> dict[Target, dict[ReportType, int]]:
        return await guarded_load("breakdown", lambda: self.store.batch_count_types(targets))

    async def batch_load_top_reporters(self, targets: Sequence[Target]) -> dict[Target, list[str]]:
        async def _load() -> dict[Target, list[str]]:
            reporter_ids = await self.store.batch_top_reporters(targets, self.top_reporters_limit)
            everyone = _distinct(reporter for ids in reporter_ids.values() for reporter in ids)
            users = await self.identity.resolve_users(everyone) if everyone else {}
            handles: dict[Target, list[str]] = {}
            for target in targets:
                names = [f"@{users[rid].username}" for rid in reporter_ids.get(target, ()) if rid in users]
                handles[target] = names[: self.top_reporters_limit]
            return handles

        return await guarded_load("top_reporters", _load)

    async def batch_load_target_info(self, targets: Sequence[Target]) -> dict[Target, TargetInfo]:
        async def _load() -> dict[Target, TargetInfo]:
            user_ids = _distinct(target.user_id for target in targets if isinstance(target, UserTarget))
            recipe_ids = _distinct(target.recipe_id for target in targets if isinstance(target, RecipeTarget))
            users, recipes = await asyncio.gather(
                self._resolve_users(user_ids),
                self._resolve_recipes(recipe_ids),
            )
            info: dict[Target, TargetInfo] = {}
            for user in users.values():
                item = TargetInfo.from_user(user)
                info[item.target] = item
            for recipe in recipes.values():
                item = TargetInfo.from_recipe(recipe)
                info[item.target] = item
            return info

        return await guarded_load("target_info", _load)

    async def batch_load_avatar_urls(self, paths: Iterable[str | None]) -> dict[str, str]:
        relative = _distinct(path for path in paths if path and not is_absolute_url(path))
        if not relative:
            return {}
        if not self.assets.is_available():
            logger.warning("asset store unavailable; skipping avatar conversion", extra={"paths": len(relative)})
            obs_metrics.inc_enrichment_degraded("asset_store_unavailable")
            return {}
        try:
            return dict(await self.assets.resolve_urls(relative))
        except Exception:  # noqa: BLE001 - images are cosmetic, the listing renders without them
            logger.exception("avatar url conversion failed", extra={"paths": len(relative)})
            obs_metrics.inc_enrichment_degraded("avatar")
            return {}

    async def load_user_names(self, user_ids: Sequence[str]) -> dict[str, UserInfo]:
        ids = _distinct(user_ids)
        return await guarded_load("reporter_names", lambda: self._resolve_users(ids))

    async def _load_target_info_and_avatars(
        self, targets: Sequence[Target]
    ) -> tuple[dict[Target, TargetInfo], dict[str, str]]:
        info = await self.batch_load_target_info(targets)
        avatars = await self.batch_load_avatar_urls(item.image_path for item in info.values())
        return info, avatars

    async def _resolve_users(self, user_ids: Sequence[str]) -> dict[str, UserInfo]:
        if not user_ids:
            return {}
        return await self.identity.resolve_users(list(user_ids))

    async def _resolve_recipes(self, recipe_ids: Sequence[str]) -> dict[str, RecipeInfo]:
        if not recipe_ids:
            return {}
        return await self.identity.resolve_recipes(list(recipe_ids))
