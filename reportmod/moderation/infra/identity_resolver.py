"""Batch user and recipe lookups against the platform tables."""

from __future__ import annotations

from typing import Sequence

import asyncpg

from reportmod.moderation.domain.collaborators import IdentityResolver
from reportmod.moderation.domain.models import RecipeInfo, RecipeStatus, UserInfo


class PostgresIdentityResolver(IdentityResolver):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def resolve_users(self, user_ids: Sequence[str]) -> dict[str, UserInfo]:
        if not user_ids:
            return {}
        rows = await self.pool.fetch(
            """
            SELECT id::text AS id, username, full_name, avatar_url, role, is_active
            FROM users
            WHERE id::text = ANY($1::text[])
            """,
            list(user_ids),
        )
        return {row["id"]: _user_from_record(row) for row in rows}

    async def resolve_recipes(self, recipe_ids: Sequence[str]) -> dict[str, RecipeInfo]:
        if not recipe_ids:
            return {}
        rows = await self.pool.fetch(
            """
            SELECT r.id::text AS id, r.title, r.user_id::text AS author_id, u.username AS author_username,
                   r.featured_image, r.status
            FROM recipes r
            LEFT JOIN users u ON u.id = r.user_id
            WHERE r.id::text = ANY($1::text[])
            """,
            list(recipe_ids),
        )
        return {row["id"]: _recipe_from_record(row) for row in rows}

    async def active_admins(self) -> list[UserInfo]:
        rows = await self.pool.fetch(
            """
            SELECT id::text AS id, username, full_name, avatar_url, role, is_active
            FROM users
            WHERE role = 'ADMIN' AND is_active
            ORDER BY username
            """
        )
        return [_user_from_record(row) for row in rows]


def _user_from_record(record: asyncpg.Record) -> UserInfo:
    return UserInfo(
        user_id=str(record["id"]),
        username=str(record["username"]),
        full_name=record["full_name"],
        avatar_path=record["avatar_url"],
        is_active=bool(record["is_active"]),
        is_admin=str(record["role"]).upper() == "ADMIN",
    )


def _recipe_from_record(record: asyncpg.Record) -> RecipeInfo:
    raw_status = str(record["status"] or RecipeStatus.PUBLISHED.value).upper()
    try:
        status = RecipeStatus(raw_status)
    except ValueError:
        # statuses the engine does not manage (e.g. PENDING_REVIEW) count as not published
        status = RecipeStatus.UNPUBLISHED
    return RecipeInfo(
        recipe_id=str(record["id"]),
        title=str(record["title"]),
        author_id=str(record["author_id"]),
        author_username=record["author_username"],
        image_path=record["featured_image"],
        status=status,
    )
