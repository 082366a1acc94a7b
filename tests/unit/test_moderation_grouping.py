from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reportmod.moderation.domain.enrichment import EnrichmentData
from reportmod.moderation.domain.errors import ReportNotFoundError
from reportmod.moderation.domain.grouping import GroupMapper
from reportmod.moderation.domain.models import (
    Priority,
    RecipeTarget,
    ReportGroup,
    ReportType,
    TargetType,
    UserTarget,
)
from reportmod.moderation.domain.scoring import ScoreCalculator

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _group(target, count: int, minutes_ago: int = 0) -> ReportGroup:
    return ReportGroup(target=target, report_count=count, latest_report_at=NOW - timedelta(minutes=minutes_ago))


class ForbiddenLoader:
    """Stands in for the batch loader where no enrichment may happen."""

    def __init__(self) -> None:
        self.calls = 0

    async def load_enrichment_data(self, groups):
        self.calls += 1
        raise AssertionError("loader must not be called")


def test_groups_sort_by_priority_then_score_then_recency() -> None:
    mapper = GroupMapper(ScoreCalculator())
    critical = RecipeTarget("critical")
    high = RecipeTarget("high")
    low_recent = UserTarget("low-recent")
    low_old = UserTarget("low-old")
    groups = [_group(low_old, 1, 30), _group(high, 1), _group(low_recent, 1, 5), _group(critical, 2)]
    data = EnrichmentData(
        breakdowns={
            critical: {ReportType.HARASSMENT: 2},
            high: {ReportType.COPYRIGHT: 1, ReportType.FAKE: 1},
            low_recent: {ReportType.SPAM: 1},
            low_old: {ReportType.SPAM: 1},
        }
    )

    ordered = mapper.enrich_and_sort_groups(groups, data)

    assert [item.target_id for item in ordered] == ["critical", "high", "low-recent", "low-old"]
    assert [item.priority for item in ordered] == [Priority.CRITICAL, Priority.HIGH, Priority.LOW, Priority.LOW]
    assert ordered[0].exceeds_threshold
    assert ordered[0].most_severe_type is ReportType.HARASSMENT
    assert ordered[0].weighted_score == pytest.approx(10.0)


def test_sort_is_deterministic_for_identical_scores() -> None:
    mapper = GroupMapper(ScoreCalculator())
    targets = [UserTarget(name) for name in ("b", "a", "c")]
    groups = [_group(target, 1) for target in targets]
    data = EnrichmentData(breakdowns={target: {ReportType.SPAM: 1} for target in targets})

    first = mapper.enrich_and_sort_groups(groups, data)
    second = mapper.enrich_and_sort_groups(list(reversed(groups)), data)

    assert [item.target_id for item in first] == ["a", "b", "c"]
    assert first == second


def test_missing_enrichment_falls_back_to_generic_title() -> None:
    mapper = GroupMapper(ScoreCalculator())

    item = mapper.enrich_group_data(_group(RecipeTarget("42"), 3), EnrichmentData.empty())

    assert item.target_title == "Recipe 42"
    assert item.weighted_score == 0.0
    assert item.most_severe_type is None
    assert item.avatar_url is None
    assert item.top_reporters == ()
    assert item.threshold == 6.0
    assert item.target_key == "recipe:42"


@pytest.mark.asyncio
async def test_empty_page_returns_totals_without_loading(make_env) -> None:
    env = make_env()
    env.add_user("victim")
    env.add_user("reporter")
    env.seed_report("reporter", UserTarget("victim"), ReportType.SPAM)
    forbidden = ForbiddenLoader()
    env.groups.loader = forbidden

    page = await env.groups.get_grouped_reports(page=3, size=10)

    assert list(page.items) == []
    assert page.total_elements == 1
    assert page.total_pages == 1
    assert forbidden.calls == 0


@pytest.mark.asyncio
async def test_empty_store_returns_empty_page(make_env) -> None:
    env = make_env()
    forbidden = ForbiddenLoader()
    env.groups.loader = forbidden

    page = await env.groups.get_grouped_reports(page=0, size=20, target_type=TargetType.RECIPE)

    assert page.total_elements == 0
    assert page.total_pages == 0
    assert forbidden.calls == 0


@pytest.mark.asyncio
async def test_grouped_reports_end_to_end(make_env) -> None:
    env = make_env()
    env.add_recipe("soup", "chef", image="https://img.test/soup.jpg")
    env.add_user("troll")
    for index in range(3):
        env.add_user(f"rep{index}")
    env.seed_report("rep0", RecipeTarget("soup"), ReportType.HARASSMENT, minutes_ago=3)
    env.seed_report("rep1", RecipeTarget("soup"), ReportType.SPAM, minutes_ago=2)
    env.seed_report("rep2", UserTarget("troll"), ReportType.SPAM, minutes_ago=1)

    page = await env.groups.get_grouped_reports(page=0, size=10)
    recipes_only = await env.groups.get_grouped_reports(page=0, size=10, target_type=TargetType.RECIPE)

    assert page.total_elements == 2
    soup, troll = page.items
    assert soup.target_id == "soup"
    assert soup.priority is Priority.HIGH
    assert soup.weighted_score == pytest.approx(6.0)
    assert soup.target_title == "Recipe soup"
    assert soup.owner_username == "chef_name"
    assert soup.avatar_url == "https://img.test/soup.jpg"
    assert list(soup.top_reporters) == ["@rep1_name", "@rep0_name"]
    assert troll.priority is Priority.LOW
    assert [item.target_id for item in recipes_only.items] == ["soup"]


@pytest.mark.asyncio
async def test_group_detail_lists_pending_reports(make_env) -> None:
    env = make_env()
    env.add_user("troll", avatar="avatars/troll.png")
    env.add_user("rep0")
    env.add_user("rep1")
    target = UserTarget("troll")
    env.seed_report("rep0", target, ReportType.FAKE, minutes_ago=5)
    env.seed_report("rep1", target, ReportType.HARASSMENT, minutes_ago=1)

    detail = await env.groups.get_group_detail(target)

    assert detail.group.report_count == 2
    assert detail.group.most_severe_type is ReportType.HARASSMENT
    assert detail.group.report_type_breakdown == {ReportType.FAKE: 1, ReportType.HARASSMENT: 1}
    assert detail.group.latest_report_at == NOW - timedelta(minutes=1)
    assert detail.group.target_title == "Troll Full"
    # asset store is unavailable in the default wiring
    assert detail.group.avatar_url == "avatars/troll.png"
    assert [item.reporter_username for item in detail.reports] == ["rep1_name", "rep0_name"]


@pytest.mark.asyncio
async def test_group_detail_without_pending_reports_raises(make_env) -> None:
    env = make_env()
    env.add_user("clean")

    with pytest.raises(ReportNotFoundError):
        await env.groups.get_group_detail(UserTarget("clean"))
