"""Durable notification inbox in Postgres with realtime fan-out over Redis pub/sub."""

from __future__ import annotations

import json
from typing import Sequence

import asyncpg

from reportmod.infra.redis import RedisProxy
from reportmod.moderation.domain.collaborators import NotificationRecord, NotificationTransport, RealtimeMessage

USER_CHANNEL_PREFIX = "notifications:user:"
PENDING_COUNT_CHANNEL = "mod:reports:pending"


class RedisNotificationTransport(NotificationTransport):
    """Realtime gateways subscribe to ``notifications:user:<username>`` and forward to sockets."""

    def __init__(
        self,
        *,
        pool: asyncpg.Pool,
        redis: RedisProxy,
        pending_count_key: str = "mod:reports:pending_count",
        channel_prefix: str = USER_CHANNEL_PREFIX,
    ) -> None:
        self.pool = pool
        self.redis = redis
        self.pending_count_key = pending_count_key
        self.channel_prefix = channel_prefix

    async def persist_notification(self, record: NotificationRecord) -> None:
        await self.pool.execute(
            """
            INSERT INTO notifications (user_id, type, title, message, related_id, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            record.user_id,
            record.type,
            record.title,
            record.message,
            record.related_id,
            record.created_at,
        )

    async def send_to_user(self, username: str, message: RealtimeMessage) -> None:
        await self.redis.publish(self._channel(username), json.dumps(message.to_dict(), separators=(",", ":")))

    async def broadcast_to_users(self, usernames: Sequence[str], message: RealtimeMessage) -> None:
        if not usernames:
            return
        body = json.dumps(message.to_dict(), separators=(",", ":"))
        async with self.redis.pipeline(transaction=False) as pipe:
            for username in usernames:
                pipe.publish(self._channel(username), body)
            await pipe.execute()

    async def publish_pending_count(self, count: int) -> None:
        await self.redis.set_latest(self.pending_count_key, str(count), channel=PENDING_COUNT_CHANNEL)

    def _channel(self, username: str) -> str:
        return f"{self.channel_prefix}{username}"
