"""Process startup and shutdown for services embedding the moderation engine."""

from __future__ import annotations

import logging

from reportmod import obs
from reportmod.infra import postgres
from reportmod.infra.redis import redis_client
from reportmod.moderation.domain import container
from reportmod.moderation.infra.schema import ensure_schema

logger = logging.getLogger(__name__)


async def startup(*, apply_schema: bool = True) -> None:
	obs.init()
	pool = await postgres.init_pool()
	if apply_schema:
		await ensure_schema(pool)
	container.configure_postgres(pool, redis_client)
	logger.info("moderation engine started", extra={"pool_size": container.get_pool().max_concurrency})


async def shutdown() -> None:
	# let in-flight notification fan-out finish before the connections go away
	await container.get_pool().drain()
	await postgres.close_pool()
	await redis_client.client.aclose()
	logger.info("moderation engine stopped")
