"""DDL for the tables owned by the moderation engine.

``users`` and ``recipes`` belong to the platform; the moderation engine only
reads them and flips their enforcement columns (``users.is_active``,
``users.suspended_until``, ``recipes.status``).
"""

from __future__ import annotations

import asyncpg

REPORTS_DDL = """
CREATE TABLE IF NOT EXISTS reports (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    reporter_id TEXT NOT NULL,
    target_type TEXT NOT NULL CHECK (target_type IN ('USER', 'RECIPE')),
    target_id TEXT NOT NULL,
    report_type TEXT NOT NULL,
    reason TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'PENDING',
    action_taken TEXT,
    action_description TEXT,
    admin_note TEXT,
    reviewed_by TEXT,
    reviewed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    reporters_notified BOOLEAN NOT NULL DEFAULT FALSE,
    CHECK ((reviewed_by IS NULL) = (reviewed_at IS NULL))
);
CREATE INDEX IF NOT EXISTS idx_reports_target_status ON reports (target_type, target_id, status);
CREATE INDEX IF NOT EXISTS idx_reports_status_created ON reports (status, created_at DESC);
CREATE UNIQUE INDEX IF NOT EXISTS uq_reports_pending_reporter
    ON reports (reporter_id, target_type, target_id)
    WHERE status = 'PENDING';
"""

NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    related_id TEXT,
    is_read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_notifications_user_created ON notifications (user_id, created_at DESC);
"""


async def ensure_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute(REPORTS_DDL)
            await conn.execute(NOTIFICATIONS_DDL)
