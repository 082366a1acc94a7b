"""Executes enforcement actions for manual reviews and auto-moderation alike."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from reportmod.moderation.domain.collaborators import EnforcementExecutor, IdentityResolver
from reportmod.moderation.domain.errors import EnforcementFailure, InvalidActionError
from reportmod.moderation.domain.models import (
    RecipeTarget,
    ReportActionType,
    Target,
    TargetInfo,
    TargetType,
    UserTarget,
)
from reportmod.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

RECIPE_ONLY_ACTIONS = frozenset(
    {
        ReportActionType.UNPUBLISH,
        ReportActionType.REQUIRE_EDIT,
        ReportActionType.REMOVE_CONTENT,
    }
)


def ensure_action_applies(action: ReportActionType, target: Target) -> None:
    if action in RECIPE_ONLY_ACTIONS and target.target_type is not TargetType.RECIPE:
        raise InvalidActionError(f"{action.value} requires a recipe target")


async def load_target_info(identity: IdentityResolver, target: Target) -> TargetInfo | None:
    if isinstance(target, UserTarget):
        users = await identity.resolve_users([target.user_id])
        user = users.get(target.user_id)
        return TargetInfo.from_user(user) if user else None
    recipes = await identity.resolve_recipes([target.recipe_id])
    recipe = recipes.get(target.recipe_id)
    return TargetInfo.from_recipe(recipe) if recipe else None


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    action: ReportActionType
    info: TargetInfo
    changed: bool


class ActionExecutor:
    """Maps a report action onto idempotent enforcement calls.

    User sanctions on a recipe target land on the recipe's author.
    """

    def __init__(
        self,
        *,
        identity: IdentityResolver,
        enforcement: EnforcementExecutor,
        suspension_days: int = 30,
    ) -> None:
        self.identity = identity
        self.enforcement = enforcement
        self.suspension_days = suspension_days

    async def execute(
        self,
        action: ReportActionType,
        target: Target,
        *,
        actor_id: str,
        info: TargetInfo | None = None,
    ) -> ActionOutcome:
        ensure_action_applies(action, target)
        try:
            if info is None:
                info = await load_target_info(self.identity, target)
            if info is None:
                raise LookupError(f"target_missing:{target.key}")
            changed = await self._apply(action, target, info)
        except Exception as exc:
            obs_metrics.inc_enforcement(action.value, "failed")
            raise EnforcementFailure(action.value, target.key) from exc
        obs_metrics.inc_enforcement(action.value, "applied" if changed else "noop")
        logger.info(
            "enforcement action executed",
            extra={"action": action.value, "target": target.key, "actor_id": actor_id, "changed": changed},
        )
        return ActionOutcome(action=action, info=info, changed=changed)

    async def _apply(self, action: ReportActionType, target: Target, info: TargetInfo) -> bool:
        if action in (ReportActionType.NO_ACTION, ReportActionType.OTHER):
            return False
        if action is ReportActionType.WARN_USER:
            # the warning itself is the owner notification
            return True
        if action in (ReportActionType.SUSPEND_USER, ReportActionType.DISABLE_USER):
            owner_id = info.owner_id
            if not owner_id:
                raise LookupError(f"owner_missing:{target.key}")
            if action is ReportActionType.SUSPEND_USER:
                return await self.enforcement.suspend_user(owner_id, self.suspension_days)
            return await self.enforcement.disable_user(owner_id)
        if not isinstance(target, RecipeTarget):
            raise InvalidActionError(f"{action.value} requires a recipe target")
        if action is ReportActionType.REMOVE_CONTENT:
            return await self.enforcement.unpublish_recipe(target.recipe_id)
        # UNPUBLISH and REQUIRE_EDIT both return the recipe to draft
        return await self.enforcement.unpublish_to_draft(target.recipe_id)
