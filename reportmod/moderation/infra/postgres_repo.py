"""PostgreSQL-backed report store."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Sequence

import asyncpg

from reportmod.moderation.domain.models import (
    Page,
    Report,
    ReportActionType,
    ReportCriteria,
    ReportDraft,
    ReportGroup,
    ReportStatus,
    ReportType,
    Target,
    TargetType,
    parse_target,
)
from reportmod.moderation.domain.repository import ReportStore

_REPORT_COLUMNS = """
    id, reporter_id, target_type, target_id, report_type, reason, description, status,
    action_taken, action_description, admin_note, reviewed_by, reviewed_at, created_at,
    reporters_notified
"""

# Joins a batch of targets passed as two parallel text arrays.
_TARGETS_JOIN = """
    JOIN unnest($1::text[], $2::text[]) AS t(target_type, target_id)
      ON r.target_type = t.target_type AND r.target_id = t.target_id
"""


def _target_arrays(targets: Sequence[Target]) -> tuple[list[str], list[str]]:
    return [target.target_type.value for target in targets], [target.target_id for target in targets]


def _affected(status: str) -> int:
    # asyncpg returns command tags such as "UPDATE 3"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0


class PostgresReportStore(ReportStore):
    """Persists reports using asyncpg.

    Built over a pool for ordinary use. ``lock_target`` yields a second store
    over the connection that holds the target's transaction, so the guarded
    statements never wait for another pooled connection.
    """

    def __init__(self, pool: asyncpg.Pool | asyncpg.Connection) -> None:
        self.pool = pool

    async def create(self, draft: ReportDraft) -> Report:
        query = f"""
        INSERT INTO reports (reporter_id, target_type, target_id, report_type, reason, description)
        VALUES ($1, $2, $3, $4, $5, $6)
        RETURNING {_REPORT_COLUMNS}
        """
        record = await self.pool.fetchrow(
            query,
            draft.reporter_id,
            draft.target.target_type.value,
            draft.target.target_id,
            draft.report_type.value,
            draft.reason,
            draft.description,
        )
        if record is None:
            raise RuntimeError("failed to create report")
        return _report_from_record(record)

    async def find_by_id(self, report_id: str) -> Report | None:
        query = f"SELECT {_REPORT_COLUMNS} FROM reports WHERE id = $1::uuid"
        try:
            record = await self.pool.fetchrow(query, report_id)
        except asyncpg.DataError:
            return None
        return _report_from_record(record) if record else None

    async def find_pending_by_target(self, target: Target) -> list[Report]:
        query = f"""
        SELECT {_REPORT_COLUMNS} FROM reports
        WHERE target_type = $1 AND target_id = $2 AND status = 'PENDING'
        ORDER BY created_at DESC, id DESC
        """
        rows = await self.pool.fetch(query, target.target_type.value, target.target_id)
        return [_report_from_record(row) for row in rows]

    async def find_all_by_target(self, target: Target) -> list[Report]:
        query = f"""
        SELECT {_REPORT_COLUMNS} FROM reports
        WHERE target_type = $1 AND target_id = $2
        ORDER BY created_at DESC, id DESC
        """
        rows = await self.pool.fetch(query, target.target_type.value, target.target_id)
        return [_report_from_record(row) for row in rows]

    async def exists_pending_by_reporter(self, reporter_id: str, target: Target) -> bool:
        query = """
        SELECT 1 FROM reports
        WHERE reporter_id = $1 AND target_type = $2 AND target_id = $3 AND status = 'PENDING'
        LIMIT 1
        """
        row = await self.pool.fetchrow(query, reporter_id, target.target_type.value, target.target_id)
        return row is not None

    async def update(self, report: Report) -> None:
        query = """
        UPDATE reports
        SET status = $2,
            action_taken = $3,
            action_description = $4,
            admin_note = $5,
            reviewed_by = $6,
            reviewed_at = $7,
            reporters_notified = $8
        WHERE id = $1::uuid
        """
        result = await self.pool.execute(
            query,
            report.report_id,
            report.status.value,
            report.action_taken.value if report.action_taken else None,
            report.action_description,
            report.admin_note,
            report.reviewed_by,
            report.reviewed_at,
            report.reporters_notified,
        )
        if _affected(result) == 0:
            raise KeyError(report.report_id)

    async def sync_pending_for_target(
        self,
        target: Target,
        *,
        exclude_report_id: str,
        status: ReportStatus,
        action: ReportActionType,
        action_description: str | None,
        reviewer_id: str,
        reviewed_at: datetime,
    ) -> int:
        query = """
        UPDATE reports
        SET status = $4,
            action_taken = $5,
            action_description = $6,
            reviewed_by = $7,
            reviewed_at = $8
        WHERE target_type = $1 AND target_id = $2 AND status = 'PENDING' AND id <> $3::uuid
        """
        result = await self.pool.execute(
            query,
            target.target_type.value,
            target.target_id,
            exclude_report_id,
            status.value,
            action.value,
            action_description,
            reviewer_id,
            reviewed_at,
        )
        return _affected(result)

    async def delete_by_id(self, report_id: str) -> bool:
        try:
            result = await self.pool.execute("DELETE FROM reports WHERE id = $1::uuid", report_id)
        except asyncpg.DataError:
            return False
        return _affected(result) > 0

    async def count_by_status(self, status: ReportStatus | None = None) -> int:
        if status is None:
            value = await self.pool.fetchval("SELECT COUNT(*) FROM reports")
        else:
            value = await self.pool.fetchval("SELECT COUNT(*) FROM reports WHERE status = $1", status.value)
        return int(value or 0)

    async def count_by_type(self) -> dict[ReportType, int]:
        rows = await self.pool.fetch("SELECT report_type, COUNT(*) AS n FROM reports GROUP BY report_type")
        return {ReportType(row["report_type"]): int(row["n"]) for row in rows}

    async def filtered_search(self, criteria: ReportCriteria, page: int, size: int) -> Page[Report]:
        conditions: list[str] = []
        args: list[Any] = []

        def _add(clause: str, value: Any) -> None:
            args.append(value)
            conditions.append(clause.format(f"${len(args)}"))

        if criteria.report_type is not None:
            _add("report_type = {}", criteria.report_type.value)
        if criteria.status is not None:
            _add("status = {}", criteria.status.value)
        if criteria.reporter_id is not None:
            _add("reporter_id = {}", criteria.reporter_id)
        if criteria.reported_user_id is not None:
            conditions.append("target_type = 'USER'")
            _add("target_id = {}", criteria.reported_user_id)
        if criteria.recipe_id is not None:
            conditions.append("target_type = 'RECIPE'")
            _add("target_id = {}", criteria.recipe_id)
        if criteria.from_date is not None:
            _add("created_at >= {}", criteria.from_date)
        if criteria.to_date is not None:
            _add("created_at <= {}", criteria.to_date)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        total = await self.pool.fetchval(f"SELECT COUNT(*) FROM reports {where}", *args)
        query = f"""
        SELECT {_REPORT_COLUMNS} FROM reports {where}
        ORDER BY created_at DESC, id DESC
        LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}
        """
        rows = await self.pool.fetch(query, *args, size, page * size)
        return Page.build(
            [_report_from_record(row) for row in rows],
            page=page,
            size=size,
            total_elements=int(total or 0),
        )

    async def find_grouped(self, page: int, size: int, target_type: TargetType | None = None) -> Page[ReportGroup]:
        kind = target_type.value if target_type is not None else None
        total = await self.pool.fetchval(
            """
            SELECT COUNT(DISTINCT (target_type, target_id)) FROM reports
            WHERE status = 'PENDING' AND ($1::text IS NULL OR target_type = $1)
            """,
            kind,
        )
        rows = await self.pool.fetch(
            """
            SELECT target_type, target_id, COUNT(*) AS report_count,
                   MAX(created_at) AS latest_report_at, MIN(created_at) AS first_report_at
            FROM reports
            WHERE status = 'PENDING' AND ($1::text IS NULL OR target_type = $1)
            GROUP BY target_type, target_id
            ORDER BY latest_report_at DESC, target_type, target_id
            LIMIT $2 OFFSET $3
            """,
            kind,
            size,
            page * size,
        )
        groups = [
            ReportGroup(
                target=parse_target(row["target_type"], row["target_id"]),
                report_count=int(row["report_count"]),
                latest_report_at=row["latest_report_at"],
                first_report_at=row["first_report_at"],
            )
            for row in rows
        ]
        return Page.build(groups, page=page, size=size, total_elements=int(total or 0))

    async def batch_count_types(self, targets: Sequence[Target]) -> dict[Target, dict[ReportType, int]]:
        result: dict[Target, dict[ReportType, int]] = {target: {} for target in targets}
        if not targets:
            return result
        query = f"""
        SELECT r.target_type, r.target_id, r.report_type, COUNT(*) AS n
        FROM reports r
        {_TARGETS_JOIN}
        WHERE r.status = 'PENDING'
        GROUP BY r.target_type, r.target_id, r.report_type
        """
        rows = await self.pool.fetch(query, *_target_arrays(targets))
        for row in rows:
            target = parse_target(row["target_type"], row["target_id"])
            result.setdefault(target, {})[ReportType(row["report_type"])] = int(row["n"])
        return result

    async def batch_top_reporters(self, targets: Sequence[Target], limit: int) -> dict[Target, list[str]]:
        result: dict[Target, list[str]] = {target: [] for target in targets}
        if not targets:
            return result
        query = f"""
        SELECT target_type, target_id, reporter_id FROM (
            SELECT r.target_type, r.target_id, r.reporter_id,
                   ROW_NUMBER() OVER (
                       PARTITION BY r.target_type, r.target_id
                       ORDER BY MAX(r.created_at) DESC, r.reporter_id
                   ) AS rn
            FROM reports r
            {_TARGETS_JOIN}
            WHERE r.status = 'PENDING'
            GROUP BY r.target_type, r.target_id, r.reporter_id
        ) ranked
        WHERE rn <= $3
        ORDER BY target_type, target_id, rn
        """
        rows = await self.pool.fetch(query, *_target_arrays(targets), limit)
        for row in rows:
            target = parse_target(row["target_type"], row["target_id"])
            result.setdefault(target, []).append(str(row["reporter_id"]))
        return result

    async def top_reported(self, target_type: TargetType, limit: int) -> list[tuple[Target, int]]:
        rows = await self.pool.fetch(
            """
            SELECT target_id, COUNT(*) AS n FROM reports
            WHERE target_type = $1
            GROUP BY target_id
            ORDER BY n DESC, target_id
            LIMIT $2
            """,
            target_type.value,
            limit,
        )
        return [(parse_target(target_type, row["target_id"]), int(row["n"])) for row in rows]

    async def mark_reporters_notified(self, report_ids: Sequence[str]) -> None:
        if not report_ids:
            return
        await self.pool.execute(
            "UPDATE reports SET reporters_notified = TRUE WHERE id = ANY($1::uuid[])",
            list(report_ids),
        )

    @asynccontextmanager
    async def lock_target(self, target: Target) -> AsyncIterator[ReportStore]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                # released by commit or rollback
                await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", target.key)
                yield PostgresReportStore(conn)


def _report_from_record(record: asyncpg.Record) -> Report:
    action = record["action_taken"]
    return Report(
        report_id=str(record["id"]),
        reporter_id=str(record["reporter_id"]),
        target=parse_target(record["target_type"], record["target_id"]),
        report_type=ReportType(record["report_type"]),
        reason=str(record["reason"]),
        description=str(record["description"]) if record["description"] is not None else None,
        status=ReportStatus(record["status"]),
        action_taken=ReportActionType(action) if action is not None else None,
        action_description=record["action_description"],
        admin_note=record["admin_note"],
        reviewed_by=str(record["reviewed_by"]) if record["reviewed_by"] is not None else None,
        reviewed_at=record["reviewed_at"],
        created_at=record["created_at"],
        reporters_notified=bool(record["reporters_notified"]),
    )
