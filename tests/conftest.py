from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from reportmod.infra.redis import redis_client, set_redis_client
from reportmod.moderation.domain.actions import ActionExecutor
from reportmod.moderation.domain.auto_moderator import AutoModerator
from reportmod.moderation.domain.collaborators import (
	AssetStore,
	InMemoryDirectory,
	InMemoryEnforcementExecutor,
	InMemoryNotificationTransport,
	NotificationTransport,
	UnavailableAssetStore,
)
from reportmod.moderation.domain.enrichment import GroupDataLoader
from reportmod.moderation.domain.grouping import GroupMapper
from reportmod.moderation.domain.groups_service import GroupService
from reportmod.moderation.domain.models import (
	RecipeInfo,
	RecipeTarget,
	Report,
	ReportType,
	Target,
	UserInfo,
)
from reportmod.moderation.domain.notifications import ReportNotifier
from reportmod.moderation.domain.reports_service import ReportService
from reportmod.moderation.domain.repository import InMemoryReportStore
from reportmod.moderation.domain.scoring import ScoreCalculator
from reportmod.moderation.domain.thresholds import ScoringThresholds
from reportmod.moderation.workers.pool import ModerationTaskPool


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@dataclass
class ModerationEnv:
	"""In-memory wiring of every moderation component."""

	directory: InMemoryDirectory
	store: InMemoryReportStore
	enforcement: InMemoryEnforcementExecutor
	transport: NotificationTransport
	pool: ModerationTaskPool
	calculator: ScoreCalculator
	notifier: ReportNotifier
	actions: ActionExecutor
	auto_moderator: AutoModerator
	loader: GroupDataLoader
	groups: GroupService
	reports: ReportService

	def add_user(self, user_id: str, *, admin: bool = False, avatar: str | None = None) -> UserInfo:
		return self.directory.add_user(
			UserInfo(
				user_id=user_id,
				username=f"{user_id}_name",
				full_name=f"{user_id.title()} Full",
				avatar_path=avatar,
				is_admin=admin,
			)
		)

	def add_recipe(self, recipe_id: str, author_id: str, *, image: str | None = None) -> RecipeInfo:
		author = self.directory.users.get(author_id) or self.add_user(author_id)
		return self.directory.add_recipe(
			RecipeInfo(
				recipe_id=recipe_id,
				title=f"Recipe {recipe_id}",
				author_id=author_id,
				author_username=author.username,
				image_path=image,
			)
		)

	def seed_report(
		self,
		reporter_id: str,
		target: Target,
		report_type: ReportType,
		*,
		minutes_ago: int = 0,
	) -> Report:
		"""Insert a pending report directly, bypassing validation and auto-moderation."""
		report = Report(
			report_id=f"r-{len(self.store.reports) + 1}",
			reporter_id=reporter_id,
			target=target,
			report_type=report_type,
			reason="seeded",
			created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago),
		)
		self.store.reports[report.report_id] = report
		return report


def build_env(
	*,
	thresholds: ScoringThresholds | None = None,
	assets: AssetStore | None = None,
	store: InMemoryReportStore | None = None,
	directory: InMemoryDirectory | None = None,
	transport: NotificationTransport | None = None,
	pool_size: int = 4,
) -> ModerationEnv:
	directory = directory if directory is not None else InMemoryDirectory()
	store = store if store is not None else InMemoryReportStore()
	enforcement = InMemoryEnforcementExecutor(directory=directory)
	transport = transport if transport is not None else InMemoryNotificationTransport()
	pool = ModerationTaskPool(pool_size)
	calculator = ScoreCalculator(thresholds)
	notifier = ReportNotifier(identity=directory, transport=transport, store=store)
	actions = ActionExecutor(identity=directory, enforcement=enforcement)
	auto_moderator = AutoModerator(
		store=store,
		calculator=calculator,
		identity=directory,
		actions=actions,
		notifier=notifier,
		pool=pool,
	)
	loader = GroupDataLoader(store=store, identity=directory, assets=assets or UnavailableAssetStore(), pool=pool)
	groups = GroupService(store=store, loader=loader, mapper=GroupMapper(calculator), pool=pool)
	reports = ReportService(
		store=store,
		identity=directory,
		auto_moderator=auto_moderator,
		actions=actions,
		notifier=notifier,
		pool=pool,
	)
	return ModerationEnv(
		directory=directory,
		store=store,
		enforcement=enforcement,
		transport=transport,
		pool=pool,
		calculator=calculator,
		notifier=notifier,
		actions=actions,
		auto_moderator=auto_moderator,
		loader=loader,
		groups=groups,
		reports=reports,
	)


@pytest.fixture
def env() -> ModerationEnv:
	environment = build_env()
	environment.add_user("admin", admin=True)
	return environment


@pytest.fixture
def recipe_target(env: ModerationEnv) -> RecipeTarget:
	env.add_recipe("pie", "chef")
	return RecipeTarget("pie")


@pytest.fixture
def make_env():
	return build_env
