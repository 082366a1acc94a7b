"""Threshold-triggered enforcement for heavily reported targets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from reportmod.moderation.domain.actions import ActionExecutor, load_target_info
from reportmod.moderation.domain.errors import EnforcementFailure
from reportmod.moderation.domain.collaborators import IdentityResolver
from reportmod.moderation.domain.models import ReportActionType, Target, TargetType
from reportmod.moderation.domain.notifications import ReportNotifier
from reportmod.moderation.domain.repository import ReportStore
from reportmod.moderation.domain.scoring import ModerationScore, ScoreCalculator
from reportmod.moderation.workers.pool import ModerationTaskPool
from reportmod.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

AUTO_ACTIONS: Mapping[TargetType, ReportActionType] = {
    TargetType.USER: ReportActionType.DISABLE_USER,
    TargetType.RECIPE: ReportActionType.UNPUBLISH,
}


class ModerationState(str, Enum):
    CLEAN = "CLEAN"
    FLAGGED = "FLAGGED"
    AUTO_ACTIONED = "AUTO_ACTIONED"


@dataclass(frozen=True, slots=True)
class AutoModerationOutcome:
    target: Target
    state: ModerationState
    score: ModerationScore
    threshold: float
    action: ReportActionType | None = None
    already_enforced: bool = False
    error: str | None = None

    @property
    def acted(self) -> bool:
        return self.state is ModerationState.AUTO_ACTIONED and not self.already_enforced


@dataclass(frozen=True, slots=True)
class ThresholdCheck:
    """Score of a target's pending backlog, taken inside the target's unit of work."""

    target: Target
    score: ModerationScore
    threshold: float
    exceeds: bool
    newly_crossed: bool


@dataclass
class AutoModerator:
    """Re-scores a target's pending reports and enforces once per threshold crossing.

    ``check_crossing`` runs inside ``ReportStore.lock_target`` on the bound
    store, so exactly one filing observes a given crossing. ``enforce`` runs
    after that unit commits and only acts on a new crossing; a backlog that
    already crossed does not re-trigger once a moderator reverses the action.
    Auto-actioned reports stay pending so a moderator confirms or reverses
    the provisional action.
    """

    store: ReportStore
    calculator: ScoreCalculator
    identity: IdentityResolver
    actions: ActionExecutor
    notifier: ReportNotifier | None = None
    pool: ModerationTaskPool | None = None
    system_actor_id: str = "system"

    async def check_crossing(
        self,
        store: ReportStore,
        target: Target,
        *,
        new_report_id: str | None = None,
    ) -> ThresholdCheck:
        """Compare the backlog with and without ``new_report_id``.

        Without a new report the whole backlog counts as new, which is how a
        moderator re-runs enforcement for a flagged target.
        """
        reports = await store.find_pending_by_target(target)
        score = self.calculator.score_reports(reports)
        target_type = target.target_type
        exceeds = bool(reports) and self.calculator.exceeds_threshold(score.weighted_score, target_type)
        if new_report_id is None:
            previously_exceeded = False
        else:
            earlier = self.calculator.score_reports([item for item in reports if item.report_id != new_report_id])
            previously_exceeded = earlier.total_count > 0 and self.calculator.exceeds_threshold(
                earlier.weighted_score, target_type
            )
        return ThresholdCheck(
            target=target,
            score=score,
            threshold=self.calculator.get_threshold(target_type),
            exceeds=exceeds,
            newly_crossed=exceeds and not previously_exceeded,
        )

    async def evaluate(self, target: Target, *, new_report_id: str | None = None) -> AutoModerationOutcome:
        async with self.store.lock_target(target) as unit:
            check = await self.check_crossing(unit, target, new_report_id=new_report_id)
        return await self.enforce(check)

    async def enforce(self, check: ThresholdCheck) -> AutoModerationOutcome:
        target = check.target
        score = check.score
        threshold = check.threshold
        target_type = target.target_type
        if score.total_count == 0:
            return AutoModerationOutcome(target=target, state=ModerationState.CLEAN, score=score, threshold=threshold)
        if not check.exceeds:
            return AutoModerationOutcome(target=target, state=ModerationState.FLAGGED, score=score, threshold=threshold)

        action = AUTO_ACTIONS[target_type]
        info = await load_target_info(self.identity, target)
        if info is None:
            logger.warning("auto-moderation target missing", extra={"target": target.key})
            obs_metrics.inc_auto_action(target_type.value, "target_missing")
            return AutoModerationOutcome(
                target=target,
                state=ModerationState.FLAGGED,
                score=score,
                threshold=threshold,
                action=action,
                error="target_missing",
            )
        if info.enforced:
            logger.debug("target already enforced; skipping auto-action", extra={"target": target.key})
            obs_metrics.inc_auto_action(target_type.value, "already_enforced")
            return AutoModerationOutcome(
                target=target,
                state=ModerationState.AUTO_ACTIONED,
                score=score,
                threshold=threshold,
                action=action,
                already_enforced=True,
            )
        if not check.newly_crossed:
            # the crossing was handled earlier and a moderator lifted the sanction
            logger.info(
                "threshold crossing already handled; auto-action not repeated",
                extra={"target": target.key, "score": score.weighted_score, "threshold": threshold},
            )
            obs_metrics.inc_auto_action(target_type.value, "not_repeated")
            return AutoModerationOutcome(target=target, state=ModerationState.FLAGGED, score=score, threshold=threshold)

        try:
            await self.actions.execute(action, target, actor_id=self.system_actor_id, info=info)
        except EnforcementFailure as exc:
            # the report stays stored; a moderator reconciles flagged targets
            logger.exception(
                "auto-moderation enforcement failed",
                extra={"target": target.key, "action": action.value, "score": score.weighted_score},
            )
            obs_metrics.inc_auto_action(target_type.value, "failed")
            return AutoModerationOutcome(
                target=target,
                state=ModerationState.FLAGGED,
                score=score,
                threshold=threshold,
                action=action,
                error=str(exc),
            )

        logger.info(
            "auto-moderation threshold crossed",
            extra={
                "target": target.key,
                "action": action.value,
                "score": score.weighted_score,
                "threshold": threshold,
                "report_count": score.total_count,
            },
        )
        obs_metrics.inc_auto_action(target_type.value, "actioned")
        if self.notifier is not None:
            notify = self.notifier.notify_owner_enforced(
                info=info,
                action=action,
                report_count=score.total_count,
                dominant_type=score.most_severe_type,
                automatic=True,
            )
            if self.pool is not None:
                self.pool.spawn(notify, name=f"auto-action-notify:{target.key}")
            else:
                await notify
        return AutoModerationOutcome(
            target=target,
            state=ModerationState.AUTO_ACTIONED,
            score=score,
            threshold=threshold,
            action=action,
        )
