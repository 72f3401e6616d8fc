"""PostgreSQL implementation of the step repository."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

import asyncpg

from ..contracts import StepStatus
from .models import WorkflowStep
from .repository import StepRepository

_COLUMNS = (
    "id, workflow_id, step_type, step_name, status, input_summary, output_summary, "
    "error_message, started_at, completed_at, processing_time_ms, initiator_id, "
    "scope_id, related_entity_id"
)


class PostgresStepRepository(StepRepository):
    """Persist workflow steps using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_steps (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                step_type TEXT NOT NULL,
                step_name TEXT NOT NULL,
                status TEXT NOT NULL,
                input_summary JSONB,
                output_summary JSONB,
                error_message TEXT,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                processing_time_ms INTEGER,
                initiator_id TEXT NOT NULL,
                scope_id TEXT,
                related_entity_id TEXT
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_steps_workflow ON workflow_steps (workflow_id)"
        )

    @staticmethod
    def _to_step(row: asyncpg.Record) -> WorkflowStep:
        return WorkflowStep(
            id=row["id"],
            workflow_id=row["workflow_id"],
            step_type=row["step_type"],
            step_name=row["step_name"],
            status=row["status"],
            input_summary=json.loads(row["input_summary"]) if row["input_summary"] else {},
            output_summary=json.loads(row["output_summary"]) if row["output_summary"] else None,
            error_message=row["error_message"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            processing_time_ms=row["processing_time_ms"],
            initiator_id=row["initiator_id"],
            scope_id=row["scope_id"],
            related_entity_id=row["related_entity_id"],
        )

    # ------------------------------------------------------------------
    async def create_step(self, step: WorkflowStep) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO workflow_steps ({_COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)",
                step.id,
                step.workflow_id,
                step.step_type.value,
                step.step_name,
                step.status.value,
                json.dumps(step.input_summary),
                json.dumps(step.output_summary) if step.output_summary is not None else None,
                step.error_message,
                step.started_at,
                step.completed_at,
                step.processing_time_ms,
                step.initiator_id,
                step.scope_id,
                step.related_entity_id,
            )
        finally:
            await conn.close()

    async def finish_step(
        self,
        step_id: str,
        status: StepStatus,
        completed_at: datetime,
        processing_time_ms: int,
        output_summary: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                """
                UPDATE workflow_steps
                SET status = $1, completed_at = $2, processing_time_ms = $3,
                    output_summary = $4, error_message = $5
                WHERE id = $6 AND status = $7
                RETURNING id
                """,
                status.value,
                completed_at,
                processing_time_ms,
                json.dumps(output_summary) if output_summary is not None else None,
                error_message,
                step_id,
                StepStatus.PROCESSING.value,
            )
        finally:
            await conn.close()
        return row is not None

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM workflow_steps WHERE id = $1", step_id
            )
        finally:
            await conn.close()
        return self._to_step(row) if row else None

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM workflow_steps WHERE workflow_id = $1 ORDER BY started_at, id",
                workflow_id,
            )
        finally:
            await conn.close()
        return [self._to_step(r) for r in rows]

    async def list_processing_steps(self, started_before: datetime) -> list[WorkflowStep]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM workflow_steps WHERE status = $1 AND started_at < $2 ORDER BY started_at",
                StepStatus.PROCESSING.value,
                started_before,
            )
        finally:
            await conn.close()
        return [self._to_step(r) for r in rows]

    async def delete_finished_before(self, cutoff: datetime) -> int:
        conn = await self._connect()
        try:
            status = await conn.execute(
                "DELETE FROM workflow_steps WHERE status IN ($1, $2) AND completed_at < $3",
                StepStatus.COMPLETED.value,
                StepStatus.FAILED.value,
                cutoff,
            )
        finally:
            await conn.close()
        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(status.split()[-1])
