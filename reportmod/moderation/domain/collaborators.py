"""Narrow interfaces to the systems the moderation engine consumes, with in-memory fallbacks."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Mapping, Protocol, Sequence

from reportmod.moderation.domain.models import RecipeInfo, RecipeStatus, UserInfo, utcnow


@dataclass(frozen=True, slots=True)
class RealtimeMessage:
    """Payload pushed to connected clients."""

    type: str
    title: str
    message: str
    data: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": dict(self.data),
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class NotificationRecord:
    """Durable notification stored for a user's inbox."""

    user_id: str
    type: str
    title: str
    message: str
    related_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)


class IdentityResolver(Protocol):
    async def resolve_users(self, user_ids: Sequence[str]) -> dict[str, UserInfo]:
        """Batch lookup; unknown ids are absent from the result."""

    async def resolve_recipes(self, recipe_ids: Sequence[str]) -> dict[str, RecipeInfo]:
        ...

    async def active_admins(self) -> list[UserInfo]:
        ...


class EnforcementExecutor(Protocol):
    """Applies sanctions. Every call is idempotent and returns whether state changed."""

    async def disable_user(self, user_id: str) -> bool:
        ...

    async def suspend_user(self, user_id: str, days: int) -> bool:
        ...

    async def unpublish_recipe(self, recipe_id: str) -> bool:
        ...

    async def unpublish_to_draft(self, recipe_id: str) -> bool:
        ...


class NotificationTransport(Protocol):
    async def persist_notification(self, record: NotificationRecord) -> None:
        ...

    async def send_to_user(self, username: str, message: RealtimeMessage) -> None:
        ...

    async def broadcast_to_users(self, usernames: Sequence[str], message: RealtimeMessage) -> None:
        ...

    async def publish_pending_count(self, count: int) -> None:
        """Publish the latest pending count; later values supersede earlier ones."""


class AssetStore(Protocol):
    def is_available(self) -> bool:
        ...

    async def resolve_urls(self, paths: Sequence[str]) -> dict[str, str]:
        """Map stored object paths to publicly reachable URLs."""


@dataclass
class InMemoryDirectory(IdentityResolver):
    """User and recipe directory for development and tests."""

    users: dict[str, UserInfo] = field(default_factory=dict)
    recipes: dict[str, RecipeInfo] = field(default_factory=dict)
    user_calls: list[tuple[str, ...]] = field(default_factory=list)
    recipe_calls: list[tuple[str, ...]] = field(default_factory=list)

    def add_user(self, user: UserInfo) -> UserInfo:
        self.users[user.user_id] = user
        return user

    def add_recipe(self, recipe: RecipeInfo) -> RecipeInfo:
        self.recipes[recipe.recipe_id] = recipe
        return recipe

    async def resolve_users(self, user_ids: Sequence[str]) -> dict[str, UserInfo]:
        self.user_calls.append(tuple(user_ids))
        return {user_id: self.users[user_id] for user_id in user_ids if user_id in self.users}

    async def resolve_recipes(self, recipe_ids: Sequence[str]) -> dict[str, RecipeInfo]:
        self.recipe_calls.append(tuple(recipe_ids))
        return {recipe_id: self.recipes[recipe_id] for recipe_id in recipe_ids if recipe_id in self.recipes}

    async def active_admins(self) -> list[UserInfo]:
        return [user for user in self.users.values() if user.is_admin and user.is_active]


@dataclass
class InMemoryEnforcementExecutor(EnforcementExecutor):
    """Applies sanctions to an in-memory directory and records each effective change."""

    directory: InMemoryDirectory
    applied: list[tuple[str, str]] = field(default_factory=list)
    suspensions: dict[str, datetime] = field(default_factory=dict)

    async def disable_user(self, user_id: str) -> bool:
        user = self._user(user_id)
        if not user.is_active:
            return False
        self.directory.users[user_id] = replace(user, is_active=False)
        self.applied.append(("disable_user", user_id))
        return True

    async def suspend_user(self, user_id: str, days: int) -> bool:
        self._user(user_id)
        until = utcnow() + timedelta(days=days)
        current = self.suspensions.get(user_id)
        if current is not None and current >= until - timedelta(minutes=1):
            return False
        self.suspensions[user_id] = until
        self.applied.append(("suspend_user", user_id))
        return True

    async def unpublish_recipe(self, recipe_id: str) -> bool:
        return self._set_recipe_status(recipe_id, RecipeStatus.UNPUBLISHED, "unpublish_recipe")

    async def unpublish_to_draft(self, recipe_id: str) -> bool:
        return self._set_recipe_status(recipe_id, RecipeStatus.DRAFT, "unpublish_to_draft")

    def _user(self, user_id: str) -> UserInfo:
        user = self.directory.users.get(user_id)
        if user is None:
            raise KeyError(user_id)
        return user

    def _set_recipe_status(self, recipe_id: str, status: RecipeStatus, label: str) -> bool:
        recipe = self.directory.recipes.get(recipe_id)
        if recipe is None:
            raise KeyError(recipe_id)
        if recipe.status is not RecipeStatus.PUBLISHED:
            return False
        self.directory.recipes[recipe_id] = replace(recipe, status=status)
        self.applied.append((label, recipe_id))
        return True


@dataclass
class InMemoryNotificationTransport(NotificationTransport):
    """Collects notifications instead of delivering them."""

    records: list[NotificationRecord] = field(default_factory=list)
    pushed: list[tuple[str, RealtimeMessage]] = field(default_factory=list)
    pending_counts: list[int] = field(default_factory=list)

    async def persist_notification(self, record: NotificationRecord) -> None:
        self.records.append(record)

    async def send_to_user(self, username: str, message: RealtimeMessage) -> None:
        self.pushed.append((username, message))

    async def broadcast_to_users(self, usernames: Sequence[str], message: RealtimeMessage) -> None:
        for username in usernames:
            await self.send_to_user(username, message)

    async def publish_pending_count(self, count: int) -> None:
        self.pending_counts.append(count)


class UnavailableAssetStore(AssetStore):
    """Asset store used when no storage backend is configured."""

    def is_available(self) -> bool:
        return False

    async def resolve_urls(self, paths: Sequence[str]) -> dict[str, str]:
        return {}
