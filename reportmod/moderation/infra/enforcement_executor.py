"""Applies account and recipe sanctions directly to the platform tables."""

from __future__ import annotations

import logging

import asyncpg

from reportmod.moderation.domain.collaborators import EnforcementExecutor

logger = logging.getLogger(__name__)


def _changed(status: str) -> bool:
    try:
        return int(status.rsplit(" ", 1)[-1]) > 0
    except (ValueError, IndexError):
        return False


class PostgresEnforcementExecutor(EnforcementExecutor):
    """Every statement is conditional on the current state so repeats are no-ops."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def disable_user(self, user_id: str) -> bool:
        result = await self.pool.execute(
            "UPDATE users SET is_active = FALSE, updated_at = now() WHERE id::text = $1 AND is_active",
            user_id,
        )
        return _changed(result)

    async def suspend_user(self, user_id: str, days: int) -> bool:
        result = await self.pool.execute(
            """
            UPDATE users
            SET suspended_until = now() + make_interval(days => $2), updated_at = now()
            WHERE id::text = $1
              AND (suspended_until IS NULL OR suspended_until < now() + make_interval(days => $2) - interval '1 minute')
            """,
            user_id,
            days,
        )
        return _changed(result)

    async def unpublish_recipe(self, recipe_id: str) -> bool:
        return await self._set_recipe_status(recipe_id, "UNPUBLISHED")

    async def unpublish_to_draft(self, recipe_id: str) -> bool:
        return await self._set_recipe_status(recipe_id, "DRAFT")

    async def _set_recipe_status(self, recipe_id: str, status: str) -> bool:
        result = await self.pool.execute(
            "UPDATE recipes SET status = $2, updated_at = now() WHERE id::text = $1 AND status = 'PUBLISHED'",
            recipe_id,
            status,
        )
        changed = _changed(result)
        if not changed:
            logger.debug("recipe already not published", extra={"recipe_id": recipe_id, "status": status})
        return changed
