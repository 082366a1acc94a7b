"""Report lifecycle: filing, review, deletion, lookup and statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping, Sequence

from reportmod.moderation.domain.actions import ActionExecutor, ensure_action_applies, load_target_info
from reportmod.moderation.domain.auto_moderator import AutoModerationOutcome, AutoModerator
from reportmod.moderation.domain.collaborators import IdentityResolver
from reportmod.moderation.domain.enrichment import guarded_load
from reportmod.moderation.domain.errors import (
    DuplicateReportError,
    EnforcementFailure,
    ReportNotFoundError,
    SelfReportError,
    TargetNotFoundError,
)
from reportmod.moderation.domain.models import (
    Page,
    RecipeInfo,
    RecipeTarget,
    Report,
    ReportActionType,
    ReportCriteria,
    ReportDraft,
    ReportStatus,
    ReportType,
    Target,
    TargetType,
    UserInfo,
    UserTarget,
    utcnow,
    validate_page,
)
from reportmod.moderation.domain.notifications import ReportNotifier
from reportmod.moderation.domain.repository import ReportStore
from reportmod.moderation.domain.status import determine_status, transition_label
from reportmod.moderation.workers.pool import ModerationTaskPool
from reportmod.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_MAX_REASON_LENGTH = 500
_MAX_DESCRIPTION_LENGTH = 2000


@dataclass(frozen=True, slots=True)
class ReportView:
    """A report together with the display names a moderator needs."""

    report: Report
    reporter_username: str | None = None
    reporter_full_name: str | None = None
    target_title: str | None = None
    target_owner_username: str | None = None
    reviewer_username: str | None = None


@dataclass(frozen=True, slots=True)
class CreateReportResult:
    report: Report
    moderation: AutoModerationOutcome | None = None


@dataclass(frozen=True, slots=True)
class ReviewResult:
    report: Report
    synced_count: int
    enforcement_error: str | None = None


@dataclass(frozen=True, slots=True)
class TopReportedTarget:
    target: Target
    display_name: str | None
    report_count: int


@dataclass(frozen=True, slots=True)
class ReportStatistics:
    total: int
    pending: int
    approved: int
    rejected: int
    resolved: int
    by_type: Mapping[ReportType, int] = field(default_factory=dict)
    top_reported_users: Sequence[TopReportedTarget] = field(default_factory=tuple)
    top_reported_recipes: Sequence[TopReportedTarget] = field(default_factory=tuple)


@dataclass
class ReportService:
    store: ReportStore
    identity: IdentityResolver
    auto_moderator: AutoModerator
    actions: ActionExecutor
    notifier: ReportNotifier
    pool: ModerationTaskPool
    top_reported_limit: int = 10
    clock: Callable[[], datetime] = utcnow

    async def create_report(
        self,
        *,
        reporter_id: str,
        target: Target,
        report_type: ReportType,
        reason: str,
        description: str | None = None,
    ) -> CreateReportResult:
        reason = (reason or "").strip()
        if not reporter_id:
            raise ValueError("reporter_id_required")
        if not reason:
            raise ValueError("reason_required")
        if len(reason) > _MAX_REASON_LENGTH:
            raise ValueError("reason_too_long")
        if description is not None and len(description) > _MAX_DESCRIPTION_LENGTH:
            raise ValueError("description_too_long")
        if isinstance(target, UserTarget) and target.user_id == reporter_id:
            raise SelfReportError("cannot_report_self")
        if await load_target_info(self.identity, target) is None:
            raise TargetNotFoundError(target.key)

        draft = ReportDraft(
            reporter_id=reporter_id,
            target=target,
            report_type=report_type,
            reason=reason,
            description=description,
        )
        outcome: AutoModerationOutcome | None = None
        async with self.store.lock_target(target) as unit:
            if await unit.exists_pending_by_reporter(reporter_id, target):
                raise DuplicateReportError("duplicate_report")
            report = await unit.create(draft)
            check = await self.auto_moderator.check_crossing(unit, target, new_report_id=report.report_id)
        obs_metrics.inc_report_filed(report_type.value)
        try:
            outcome = await self.auto_moderator.enforce(check)
        except Exception:  # noqa: BLE001 - the report stays filed when auto-moderation breaks
            logger.exception(
                "auto-moderation failed after report creation",
                extra={"report_id": report.report_id, "target": target.key},
            )
        logger.info(
            "report created",
            extra={
                "report_id": report.report_id,
                "target": target.key,
                "report_type": report_type.value,
                "state": outcome.state.value if outcome else None,
            },
        )
        self.pool.spawn(self._announce_new_report(report), name=f"new-report:{report.report_id}")
        self.pool.spawn(self.notifier.broadcast_pending_count_update(), name="pending-count")
        return CreateReportResult(report=report, moderation=outcome)

    async def review_report(
        self,
        report_id: str,
        *,
        reviewer_id: str,
        action: ReportActionType,
        admin_note: str | None = None,
        action_description: str | None = None,
        notify_reporters: bool = True,
    ) -> ReviewResult:
        existing = await self.store.find_by_id(report_id)
        if existing is None:
            raise ReportNotFoundError(report_id)
        target = existing.target
        ensure_action_applies(action, target)
        status = determine_status(action)
        enforcement_error: str | None = None
        outcome = None

        async with self.store.lock_target(target) as unit:
            report = await unit.find_by_id(report_id)
            if report is None:
                raise ReportNotFoundError(report_id)
            group = self.auto_moderator.calculator.score_reports(await unit.find_pending_by_target(target))
            reviewed_at = self.clock()
            report.mark_reviewed(
                status=status,
                action=action,
                reviewer_id=reviewer_id,
                reviewed_at=reviewed_at,
                action_description=action_description,
                admin_note=admin_note,
            )
            await unit.update(report)
            synced = await unit.sync_pending_for_target(
                target,
                exclude_report_id=report.report_id,
                status=status,
                action=action,
                action_description=action_description,
                reviewer_id=reviewer_id,
                reviewed_at=reviewed_at,
            )
        obs_metrics.inc_report_transition(transition_label(status), 1 + synced)
        try:
            outcome = await self.actions.execute(action, target, actor_id=reviewer_id)
        except EnforcementFailure as exc:
            # the review stands; the sanction is retried by a moderator
            logger.exception(
                "review enforcement failed",
                extra={"report_id": report_id, "target": target.key, "action": action.value},
            )
            enforcement_error = str(exc)

        logger.info(
            "report reviewed",
            extra={
                "report_id": report_id,
                "target": target.key,
                "status": status.value,
                "action": action.value,
                "reviewer_id": reviewer_id,
                "synced": synced,
            },
        )
        if outcome is not None and outcome.changed:
            self.pool.spawn(
                self.notifier.notify_owner_enforced(
                    info=outcome.info,
                    action=action,
                    report_count=1 + synced,
                    dominant_type=group.most_severe_type,
                    automatic=False,
                ),
                name=f"owner-notify:{target.key}",
            )
        if notify_reporters:
            self.pool.spawn(self.notifier.notify_all_reporters(report), name=f"reporters-notify:{target.key}")
        self.pool.spawn(self.notifier.broadcast_pending_count_update(), name="pending-count")
        return ReviewResult(report=report, synced_count=synced, enforcement_error=enforcement_error)

    async def delete_report(self, report_id: str) -> None:
        deleted = await self.store.delete_by_id(report_id)
        if not deleted:
            raise ReportNotFoundError(report_id)
        logger.info("report deleted", extra={"report_id": report_id})
        obs_metrics.inc_report_transition("deleted")
        self.pool.spawn(self.notifier.broadcast_pending_count_update(), name="pending-count")

    async def get_report(self, report_id: str) -> ReportView:
        report = await self.store.find_by_id(report_id)
        if report is None:
            raise ReportNotFoundError(report_id)
        views = await self._to_views([report])
        return views[0]

    async def list_reports(self, criteria: ReportCriteria, page: int, size: int) -> Page[ReportView]:
        validate_page(page, size)
        result = await self.store.filtered_search(criteria, page, size)
        views = await self._to_views(result.items)
        return Page.build(views, page=page, size=size, total_elements=result.total_elements)

    async def get_statistics(self) -> ReportStatistics:
        total, pending, approved, rejected, resolved, by_type, top_users, top_recipes = await self.pool.run_all(
            self.store.count_by_status(),
            self.store.count_by_status(ReportStatus.PENDING),
            self.store.count_by_status(ReportStatus.APPROVED),
            self.store.count_by_status(ReportStatus.REJECTED),
            self.store.count_by_status(ReportStatus.RESOLVED),
            self.store.count_by_type(),
            self.store.top_reported(TargetType.USER, self.top_reported_limit),
            self.store.top_reported(TargetType.RECIPE, self.top_reported_limit),
        )
        user_ids = [target.target_id for target, _ in top_users]
        recipe_ids = [target.target_id for target, _ in top_recipes]
        users, recipes = await self.pool.run_all(
            self._resolve_users("top_users", user_ids),
            self._resolve_recipes("top_recipes", recipe_ids),
        )
        return ReportStatistics(
            total=total,
            pending=pending,
            approved=approved,
            rejected=rejected,
            resolved=resolved,
            by_type={item: by_type.get(item, 0) for item in ReportType},
            top_reported_users=tuple(
                TopReportedTarget(
                    target=target,
                    display_name=users[target.target_id].username if target.target_id in users else None,
                    report_count=count,
                )
                for target, count in top_users
            ),
            top_reported_recipes=tuple(
                TopReportedTarget(
                    target=target,
                    display_name=recipes[target.target_id].title if target.target_id in recipes else None,
                    report_count=count,
                )
                for target, count in top_recipes
            ),
        )

    async def _announce_new_report(self, report: Report) -> None:
        users = await self.identity.resolve_users([report.reporter_id])
        reporter = users.get(report.reporter_id)
        await self.notifier.notify_admins_new_report(report, reporter.username if reporter else report.reporter_id)

    async def _to_views(self, reports: Sequence[Report]) -> list[ReportView]:
        if not reports:
            return []
        reporter_ids = list(dict.fromkeys(report.reporter_id for report in reports))
        reported_ids = list(
            dict.fromkeys(report.target.user_id for report in reports if isinstance(report.target, UserTarget))
        )
        recipe_ids = list(
            dict.fromkeys(report.target.recipe_id for report in reports if isinstance(report.target, RecipeTarget))
        )
        reviewer_ids = list(dict.fromkeys(report.reviewed_by for report in reports if report.reviewed_by))
        reporters, reported, recipes, reviewers = await self.pool.run_all(
            self._resolve_users("reporters", reporter_ids),
            self._resolve_users("reported_users", reported_ids),
            self._resolve_recipes("recipes", recipe_ids),
            self._resolve_users("reviewers", reviewer_ids),
        )
        views = []
        for report in reports:
            reporter = reporters.get(report.reporter_id)
            reviewer = reviewers.get(report.reviewed_by) if report.reviewed_by else None
            title: str | None = None
            owner: str | None = None
            if isinstance(report.target, UserTarget):
                user = reported.get(report.target.user_id)
                if user is not None:
                    title = user.full_name or user.username
                    owner = user.username
            else:
                recipe = recipes.get(report.target.recipe_id)
                if recipe is not None:
                    title = recipe.title
                    owner = recipe.author_username
            views.append(
                ReportView(
                    report=report,
                    reporter_username=reporter.username if reporter else None,
                    reporter_full_name=reporter.full_name if reporter else None,
                    target_title=title,
                    target_owner_username=owner,
                    reviewer_username=reviewer.username if reviewer else None,
                )
            )
        return views

    async def _resolve_users(self, kind: str, user_ids: Sequence[str]) -> dict[str, UserInfo]:
        if not user_ids:
            return {}
        return await guarded_load(kind, lambda: self.identity.resolve_users(list(user_ids)))

    async def _resolve_recipes(self, kind: str, recipe_ids: Sequence[str]) -> dict[str, RecipeInfo]:
        if not recipe_ids:
            return {}
        return await guarded_load(kind, lambda: self.identity.resolve_recipes(list(recipe_ids)))
