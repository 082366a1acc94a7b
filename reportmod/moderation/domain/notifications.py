"""Notification fan-out for report lifecycle events.

Nothing in here raises into the moderation workflow except
``notify_reporter_review_complete``, whose caller isolates each reporter.
Delivery is at-most-once; a lost realtime push is not retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from reportmod.moderation.domain.collaborators import (
    IdentityResolver,
    NotificationRecord,
    NotificationTransport,
    RealtimeMessage,
)
from reportmod.moderation.domain.models import (
    RecipeTarget,
    Report,
    ReportActionType,
    ReportStatus,
    ReportType,
    Target,
    TargetInfo,
    TargetType,
    UserTarget,
)
from reportmod.moderation.domain.repository import ReportStore
from reportmod.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

NEW_REPORT = "NEW_REPORT"
REPORT_REVIEW = "REPORT_REVIEW"
PENDING_REPORTS_UPDATE = "PENDING_REPORTS_UPDATE"
ACCOUNT_SUSPENDED = "ACCOUNT_SUSPENDED"
RECIPE_AUTO_UNPUBLISHED = "RECIPE_AUTO_UNPUBLISHED"
MODERATION_ACTION = "MODERATION_ACTION"

_OUTCOME_TEXT = {
    ReportStatus.APPROVED: "action has been taken",
    ReportStatus.RESOLVED: "the issue has been resolved",
    ReportStatus.REJECTED: "no violation was found",
    ReportStatus.PENDING: "it is still under review",
}

# Actions that leave the owner with nothing to be told about.
_SILENT_ACTIONS = frozenset({ReportActionType.NO_ACTION, ReportActionType.OTHER})


def describe_target(target: Target, title: str | None) -> str:
    if isinstance(target, UserTarget):
        return f'user "{title}"' if title else "a user"
    return f'recipe "{title}"' if title else "a recipe"


@dataclass
class ReportNotifier:
    identity: IdentityResolver
    transport: NotificationTransport
    store: ReportStore

    async def notify_admins_new_report(self, report: Report, reporter_username: str) -> None:
        try:
            admins = await self.identity.active_admins()
            if not admins:
                logger.warning("no active admins to notify of new report", extra={"report_id": report.report_id})
                return
            title = await self._target_title(report.target)
            message = RealtimeMessage(
                type=NEW_REPORT,
                title="New report",
                message=(
                    f"@{reporter_username} reported {describe_target(report.target, title)} "
                    f"for {report.report_type.display_name.lower()}"
                ),
                data={
                    "reportId": report.report_id,
                    "targetType": report.target.target_type.value,
                    "targetId": report.target.target_id,
                    "reportType": report.report_type.value,
                },
            )
        except Exception:  # noqa: BLE001 - admin alerts must not affect report creation
            logger.exception("failed to prepare admin report alert", extra={"report_id": report.report_id})
            obs_metrics.inc_notification("new_report", "failed")
            return
        for admin in admins:
            try:
                await self.transport.send_to_user(admin.username, message)
                obs_metrics.inc_notification("new_report", "sent")
            except Exception:  # noqa: BLE001 - one admin's failure must not block the others
                logger.exception(
                    "failed to notify admin of new report",
                    extra={"report_id": report.report_id, "admin_id": admin.user_id},
                )
                obs_metrics.inc_notification("new_report", "failed")

    async def notify_reporter_review_complete(self, report: Report, reporter_id: str, reporter_username: str) -> None:
        """Persist the reporter's inbox entry, then push it; a failed push keeps the record."""
        title = await self._target_title(report.target)
        text = (
            f"Your report about {describe_target(report.target, title)} has been reviewed: "
            f"{_OUTCOME_TEXT[report.status]}."
        )
        await self.transport.persist_notification(
            NotificationRecord(
                user_id=reporter_id,
                type=REPORT_REVIEW,
                title="Report reviewed",
                message=text,
                related_id=report.report_id,
            )
        )
        obs_metrics.inc_notification("report_review", "persisted")
        try:
            await self.transport.send_to_user(
                reporter_username,
                RealtimeMessage(
                    type=REPORT_REVIEW,
                    title="Report reviewed",
                    message=text,
                    data={"reportId": report.report_id, "status": report.status.value},
                ),
            )
            obs_metrics.inc_notification("report_review", "pushed")
        except Exception:  # noqa: BLE001 - the persisted record is the source of truth
            logger.exception(
                "failed to push review notification",
                extra={"report_id": report.report_id, "reporter_id": reporter_id},
            )
            obs_metrics.inc_notification("report_review", "push_failed")

    async def notify_all_reporters(self, report: Report) -> int:
        """Tell every reporter of the target that the review finished. Returns reporters notified."""
        reports = [
            item
            for item in await self.store.find_all_by_target(report.target)
            if item.status.is_terminal and not item.reporters_notified
        ]
        if not reports:
            return 0
        # newest report per reporter carries the related id
        by_reporter: dict[str, Report] = {}
        for item in reports:
            by_reporter.setdefault(item.reporter_id, item)
        users = await self.identity.resolve_users(list(by_reporter))
        notified_ids: list[str] = []
        notified = 0
        for reporter_id, reporter_report in by_reporter.items():
            user = users.get(reporter_id)
            if user is None:
                logger.warning("reporter no longer exists; skipping", extra={"reporter_id": reporter_id})
                continue
            try:
                await self.notify_reporter_review_complete(reporter_report, reporter_id, user.username)
            except Exception:  # noqa: BLE001 - isolate each reporter
                logger.exception(
                    "failed to notify reporter of review",
                    extra={"report_id": reporter_report.report_id, "reporter_id": reporter_id},
                )
                obs_metrics.inc_notification("report_review", "failed")
                continue
            notified += 1
            notified_ids.extend(item.report_id for item in reports if item.reporter_id == reporter_id)
        if notified_ids:
            await self.store.mark_reporters_notified(notified_ids)
        return notified

    async def broadcast_pending_count_update(self) -> None:
        try:
            count = await self.store.count_by_status(ReportStatus.PENDING)
            obs_metrics.set_pending_reports(count)
            await self.transport.publish_pending_count(count)
            admins = await self.identity.active_admins()
            if admins:
                await self.transport.broadcast_to_users(
                    [admin.username for admin in admins],
                    RealtimeMessage(
                        type=PENDING_REPORTS_UPDATE,
                        title="Pending reports",
                        message=f"{count} reports awaiting review",
                        data={"pendingCount": count},
                    ),
                )
            obs_metrics.inc_notification("pending_count", "sent")
        except Exception:  # noqa: BLE001 - the next broadcast supersedes this one
            logger.exception("failed to broadcast pending report count")
            obs_metrics.inc_notification("pending_count", "failed")

    async def notify_owner_enforced(
        self,
        *,
        info: TargetInfo,
        action: ReportActionType,
        report_count: int,
        dominant_type: ReportType | None,
        automatic: bool,
    ) -> None:
        if action in _SILENT_ACTIONS or not info.owner_id:
            return
        kind = _owner_notification_type(info.target, automatic)
        reason = dominant_type.display_name.lower() if dominant_type else "policy violations"
        subject = "Your account" if info.target.target_type is TargetType.USER else f'Your recipe "{info.title}"'
        origin = "automatically after" if automatic else "after review of"
        text = f"{subject}: {action.description.lower()} {origin} {report_count} report(s) for {reason}."
        try:
            await self.transport.persist_notification(
                NotificationRecord(
                    user_id=info.owner_id,
                    type=kind,
                    title=action.display_name,
                    message=text,
                    related_id=info.target.target_id,
                )
            )
            if info.owner_username:
                await self.transport.send_to_user(
                    info.owner_username,
                    RealtimeMessage(
                        type=kind,
                        title=action.display_name,
                        message=text,
                        data={
                            "targetType": info.target.target_type.value,
                            "targetId": info.target.target_id,
                            "action": action.value,
                            "reportCount": report_count,
                        },
                    ),
                )
            obs_metrics.inc_notification("owner", "sent")
        except Exception:  # noqa: BLE001 - enforcement stands even if the owner is not told
            logger.exception(
                "failed to notify owner of enforcement",
                extra={"target": info.target.key, "action": action.value},
            )
            obs_metrics.inc_notification("owner", "failed")

    async def _target_title(self, target: Target) -> str | None:
        if isinstance(target, RecipeTarget):
            recipes = await self.identity.resolve_recipes([target.recipe_id])
            recipe = recipes.get(target.recipe_id)
            return recipe.title if recipe else None
        users = await self.identity.resolve_users([target.user_id])
        user = users.get(target.user_id)
        return user.username if user else None


def _owner_notification_type(target: Target, automatic: bool) -> str:
    if not automatic:
        return MODERATION_ACTION
    if target.target_type is TargetType.USER:
        return ACCOUNT_SUSPENDED
    return RECIPE_AUTO_UNPUBLISHED

