from __future__ import annotations

import logging
from typing import Sequence

import pytest

from reportmod.moderation.domain.collaborators import InMemoryNotificationTransport, RealtimeMessage
from reportmod.moderation.domain.models import (
    RecipeTarget,
    ReportActionType,
    ReportStatus,
    ReportType,
    TargetInfo,
    UserTarget,
)
from reportmod.moderation.domain.notifications import (
    ACCOUNT_SUSPENDED,
    MODERATION_ACTION,
    REPORT_REVIEW,
    describe_target,
)


class FlakyTransport(InMemoryNotificationTransport):
    """Realtime push fails for selected usernames; persistence always works."""

    def __init__(self, failing: Sequence[str] = ()) -> None:
        super().__init__()
        self.failing = set(failing)

    async def send_to_user(self, username: str, message: RealtimeMessage) -> None:
        if username in self.failing:
            raise ConnectionError(f"socket gone for {username}")
        await super().send_to_user(username, message)


class BrokenPersistence(InMemoryNotificationTransport):
    def __init__(self, failing_user: str) -> None:
        super().__init__()
        self.failing_user = failing_user

    async def persist_notification(self, record) -> None:
        if record.user_id == self.failing_user:
            raise RuntimeError("inbox write failed")
        await super().persist_notification(record)


def _reviewed(env, target, reporters: Sequence[str]) -> list:
    reports = []
    for reporter in reporters:
        env.add_user(reporter)
        report = env.seed_report(reporter, target, ReportType.SPAM)
        report.status = ReportStatus.REJECTED
        report.action_taken = ReportActionType.NO_ACTION
        reports.append(report)
    return reports


def test_describe_target() -> None:
    assert describe_target(RecipeTarget("1"), "Pie") == 'recipe "Pie"'
    assert describe_target(UserTarget("1"), None) == "a user"


@pytest.mark.asyncio
async def test_failed_push_keeps_persisted_record(make_env, caplog: pytest.LogCaptureFixture) -> None:
    transport = FlakyTransport(failing=["rep0_name"])
    env = make_env(transport=transport)
    env.add_recipe("pie", "chef")
    (report,) = _reviewed(env, RecipeTarget("pie"), ["rep0"])

    with caplog.at_level(logging.ERROR):
        await env.notifier.notify_reporter_review_complete(report, "rep0", "rep0_name")

    assert [record.user_id for record in transport.records] == ["rep0"]
    assert transport.records[0].related_id == report.report_id
    assert 'recipe "Recipe pie"' in transport.records[0].message
    assert transport.pushed == []
    assert "failed to push review notification" in caplog.text


@pytest.mark.asyncio
async def test_one_reporter_failure_does_not_block_the_rest(make_env) -> None:
    transport = BrokenPersistence(failing_user="rep1")
    env = make_env(transport=transport)
    env.add_recipe("pie", "chef")
    reports = _reviewed(env, RecipeTarget("pie"), ["rep0", "rep1", "rep2"])

    notified = await env.notifier.notify_all_reporters(reports[0])

    assert notified == 2
    assert sorted(record.user_id for record in transport.records) == ["rep0", "rep2"]
    flags = {report.reporter_id: env.store.reports[report.report_id].reporters_notified for report in reports}
    assert flags == {"rep0": True, "rep1": False, "rep2": True}


@pytest.mark.asyncio
async def test_reporters_are_notified_only_once(env, recipe_target) -> None:
    reports = _reviewed(env, recipe_target, ["rep0", "rep1"])

    assert await env.notifier.notify_all_reporters(reports[0]) == 2
    assert await env.notifier.notify_all_reporters(reports[0]) == 0

    assert len([record for record in env.transport.records if record.type == REPORT_REVIEW]) == 2


@pytest.mark.asyncio
async def test_reporter_with_several_reports_gets_one_notice(env, recipe_target) -> None:
    _reviewed(env, recipe_target, ["rep0"])
    second = env.seed_report("rep0", recipe_target, ReportType.FAKE, minutes_ago=-5)
    second.status = ReportStatus.REJECTED

    assert await env.notifier.notify_all_reporters(second) == 1

    assert [record.related_id for record in env.transport.records] == [second.report_id]
    assert all(report.reporters_notified for report in env.store.reports.values())


@pytest.mark.asyncio
async def test_pending_reports_are_not_announced_as_reviewed(env, recipe_target) -> None:
    env.add_user("rep0")
    pending = env.seed_report("rep0", recipe_target, ReportType.SPAM)

    assert await env.notifier.notify_all_reporters(pending) == 0
    assert env.transport.records == []


@pytest.mark.asyncio
async def test_pending_count_broadcast_reaches_admins(env, recipe_target) -> None:
    env.add_user("admin2", admin=True)
    env.add_user("rep0")
    env.seed_report("rep0", recipe_target, ReportType.SPAM)

    await env.notifier.broadcast_pending_count_update()

    assert env.transport.pending_counts == [1]
    assert sorted(username for username, _ in env.transport.pushed) == ["admin2_name", "admin_name"]


@pytest.mark.asyncio
async def test_new_report_without_admins_only_warns(make_env, caplog: pytest.LogCaptureFixture) -> None:
    env = make_env()
    env.add_recipe("pie", "chef")
    env.add_user("rep0")
    report = env.seed_report("rep0", RecipeTarget("pie"), ReportType.SPAM)

    with caplog.at_level(logging.WARNING):
        await env.notifier.notify_admins_new_report(report, "rep0_name")

    assert env.transport.pushed == []
    assert "no active admins" in caplog.text


@pytest.mark.asyncio
async def test_owner_notification_types(env) -> None:
    user = env.add_user("troll")
    info = TargetInfo.from_user(user)

    await env.notifier.notify_owner_enforced(
        info=info,
        action=ReportActionType.DISABLE_USER,
        report_count=3,
        dominant_type=ReportType.HARASSMENT,
        automatic=True,
    )
    await env.notifier.notify_owner_enforced(
        info=info, action=ReportActionType.WARN_USER, report_count=1, dominant_type=ReportType.SPAM, automatic=False
    )
    await env.notifier.notify_owner_enforced(
        info=info, action=ReportActionType.NO_ACTION, report_count=1, dominant_type=None, automatic=False
    )

    assert [record.type for record in env.transport.records] == [ACCOUNT_SUSPENDED, MODERATION_ACTION]
    assert "3 report(s) for harassment" in env.transport.records[0].message
    assert [username for username, _ in env.transport.pushed] == ["troll_name", "troll_name"]
