"""Lightweight service container shared by moderation modules."""

from __future__ import annotations

from typing import Optional

import asyncpg
from redis.asyncio import Redis

from reportmod.infra.redis import RedisProxy, redis_client
from reportmod.moderation.domain.actions import ActionExecutor
from reportmod.moderation.domain.auto_moderator import AutoModerator
from reportmod.moderation.domain.collaborators import (
    AssetStore,
    EnforcementExecutor,
    IdentityResolver,
    InMemoryDirectory,
    InMemoryEnforcementExecutor,
    InMemoryNotificationTransport,
    NotificationTransport,
    UnavailableAssetStore,
)
from reportmod.moderation.domain.enrichment import GroupDataLoader
from reportmod.moderation.domain.grouping import GroupMapper
from reportmod.moderation.domain.groups_service import GroupService
from reportmod.moderation.domain.notifications import ReportNotifier
from reportmod.moderation.domain.reports_service import ReportService
from reportmod.moderation.domain.repository import InMemoryReportStore, ReportStore
from reportmod.moderation.domain.scoring import ScoreCalculator
from reportmod.moderation.domain.thresholds import ScoringThresholds, load_thresholds
from reportmod.moderation.infra.asset_store import PublicUrlAssetStore
from reportmod.moderation.infra.enforcement_executor import PostgresEnforcementExecutor
from reportmod.moderation.infra.identity_resolver import PostgresIdentityResolver
from reportmod.moderation.infra.notification_transport import RedisNotificationTransport
from reportmod.moderation.infra.postgres_repo import PostgresReportStore
from reportmod.moderation.workers.pool import ModerationTaskPool
from reportmod.settings import settings


def _settings_thresholds() -> ScoringThresholds:
    base = ScoringThresholds.from_mapping(
        {
            "thresholds": {
                "user": settings.moderation_user_threshold,
                "recipe": settings.moderation_recipe_threshold,
            },
            "priority": {"count_floor": settings.moderation_priority_count_floor},
        }
    )
    if settings.moderation_thresholds_path:
        return load_thresholds(settings.moderation_thresholds_path, base=base)
    return base


def _default_assets() -> AssetStore:
    if settings.asset_base_url:
        return PublicUrlAssetStore(settings.asset_base_url)
    return UnavailableAssetStore()


_directory = InMemoryDirectory()
_store: ReportStore = InMemoryReportStore()
_identity: IdentityResolver = _directory
_enforcement: EnforcementExecutor = InMemoryEnforcementExecutor(directory=_directory)
_transport: NotificationTransport = InMemoryNotificationTransport()
_assets: AssetStore = _default_assets()
_thresholds: ScoringThresholds = _settings_thresholds()
_pool = ModerationTaskPool(settings.moderation_pool_size)

_calculator: ScoreCalculator
_notifier: ReportNotifier
_actions: ActionExecutor
_auto_moderator: AutoModerator
_loader: GroupDataLoader
_group_service: GroupService
_report_service: ReportService


def _rebuild() -> None:
    global _calculator, _notifier, _actions, _auto_moderator, _loader, _group_service, _report_service
    _calculator = ScoreCalculator(_thresholds)
    _notifier = ReportNotifier(identity=_identity, transport=_transport, store=_store)
    _actions = ActionExecutor(
        identity=_identity,
        enforcement=_enforcement,
        suspension_days=settings.moderation_suspension_days,
    )
    _auto_moderator = AutoModerator(
        store=_store,
        calculator=_calculator,
        identity=_identity,
        actions=_actions,
        notifier=_notifier,
        pool=_pool,
        system_actor_id=settings.moderation_system_actor_id,
    )
    _loader = GroupDataLoader(
        store=_store,
        identity=_identity,
        assets=_assets,
        pool=_pool,
        top_reporters_limit=settings.moderation_top_reporters_limit,
    )
    _group_service = GroupService(store=_store, loader=_loader, mapper=GroupMapper(_calculator), pool=_pool)
    _report_service = ReportService(
        store=_store,
        identity=_identity,
        auto_moderator=_auto_moderator,
        actions=_actions,
        notifier=_notifier,
        pool=_pool,
    )


_rebuild()


def configure(
    *,
    store: Optional[ReportStore] = None,
    identity: Optional[IdentityResolver] = None,
    enforcement: Optional[EnforcementExecutor] = None,
    transport: Optional[NotificationTransport] = None,
    assets: Optional[AssetStore] = None,
    thresholds: Optional[ScoringThresholds] = None,
    pool: Optional[ModerationTaskPool] = None,
) -> None:
    global _store, _identity, _enforcement, _transport, _assets, _thresholds, _pool
    if store is not None:
        _store = store
    if identity is not None:
        _identity = identity
    if enforcement is not None:
        _enforcement = enforcement
    if transport is not None:
        _transport = transport
    if assets is not None:
        _assets = assets
    if thresholds is not None:
        _thresholds = thresholds
    if pool is not None:
        _pool = pool
    _rebuild()


def configure_postgres(
    pool: asyncpg.Pool,
    redis_conn: Redis | RedisProxy | None = None,
    *,
    thresholds_path: Optional[str] = None,
) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn) if redis_conn else redis_client
    thresholds = load_thresholds(thresholds_path, base=_thresholds) if thresholds_path else None
    configure(
        store=PostgresReportStore(pool),
        identity=PostgresIdentityResolver(pool),
        enforcement=PostgresEnforcementExecutor(pool),
        transport=RedisNotificationTransport(
            pool=pool,
            redis=proxy,
            pending_count_key=settings.moderation_pending_count_key,
        ),
        thresholds=thresholds,
    )


def get_store() -> ReportStore:
    return _store


def get_thresholds() -> ScoringThresholds:
    return _thresholds


def get_calculator() -> ScoreCalculator:
    return _calculator


def get_pool() -> ModerationTaskPool:
    return _pool


def get_notifier() -> ReportNotifier:
    return _notifier


def get_auto_moderator() -> AutoModerator:
    return _auto_moderator


def get_group_service() -> GroupService:
    return _group_service


def get_report_service() -> ReportService:
    return _report_service
