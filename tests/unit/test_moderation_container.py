from __future__ import annotations

import importlib
from pathlib import Path
from unittest.mock import MagicMock

import asyncpg
import pytest

from reportmod.infra.redis import RedisProxy
from reportmod.moderation.domain import container
from reportmod.moderation.domain.collaborators import InMemoryDirectory
from reportmod.moderation.domain.models import RecipeInfo, RecipeTarget, ReportType, UserInfo
from reportmod.moderation.domain.thresholds import ScoringThresholds
from reportmod.moderation.infra.enforcement_executor import PostgresEnforcementExecutor
from reportmod.moderation.infra.identity_resolver import PostgresIdentityResolver
from reportmod.moderation.infra.notification_transport import RedisNotificationTransport
from reportmod.moderation.infra.postgres_repo import PostgresReportStore


class _StubRedis:
    async def publish(self, channel: str, message: str) -> int:
        return 0


@pytest.fixture(autouse=True)
def fresh_container():
    importlib.reload(container)
    yield
    importlib.reload(container)


def test_configure_postgres_uses_production_adapters(tmp_path: Path) -> None:
    pool = MagicMock(spec=asyncpg.Pool)
    config_path = tmp_path / "thresholds.yaml"
    config_path.write_text("thresholds:\n  recipe: 9\n", encoding="utf-8")

    container.configure_postgres(pool, RedisProxy(_StubRedis()), thresholds_path=str(config_path))

    assert isinstance(container.get_store(), PostgresReportStore)
    notifier = container.get_notifier()
    assert isinstance(notifier.identity, PostgresIdentityResolver)
    assert isinstance(notifier.transport, RedisNotificationTransport)
    assert isinstance(container.get_report_service().actions.enforcement, PostgresEnforcementExecutor)
    assert container.get_thresholds().recipe == 9.0
    assert container.get_calculator().get_threshold(RecipeTarget("x").target_type) == 9.0


def test_services_share_one_pool_and_store() -> None:
    reports = container.get_report_service()
    groups = container.get_group_service()

    assert reports.pool is groups.pool is container.get_pool()
    assert reports.store is groups.store is container.get_store()
    assert container.get_auto_moderator() is reports.auto_moderator


def test_configure_swaps_thresholds_everywhere() -> None:
    container.configure(thresholds=ScoringThresholds(user=20.0, recipe=4.0))

    assert container.get_calculator().thresholds.user == 20.0
    assert container.get_group_service().mapper.calculator is container.get_calculator()
    assert container.get_auto_moderator().calculator is container.get_calculator()


@pytest.mark.asyncio
async def test_in_memory_wiring_files_and_groups_reports() -> None:
    directory = InMemoryDirectory()
    directory.add_user(UserInfo(user_id="chef", username="chef"))
    directory.add_user(UserInfo(user_id="rep", username="rep"))
    directory.add_recipe(RecipeInfo(recipe_id="pie", title="Pie", author_id="chef", author_username="chef"))
    container.configure(identity=directory)

    await container.get_report_service().create_report(
        reporter_id="rep", target=RecipeTarget("pie"), report_type=ReportType.SPAM, reason="ads"
    )
    page = await container.get_group_service().get_grouped_reports(page=0, size=10)
    await container.get_pool().drain()

    assert [item.target_title for item in page.items] == ["Pie"]
