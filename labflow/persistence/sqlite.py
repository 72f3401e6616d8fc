"""SQLite implementation of the step repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..contracts import StepStatus
from .models import WorkflowStep
from .repository import StepRepository

_COLUMNS = (
    "id, workflow_id, step_type, step_name, status, input_summary, output_summary, "
    "error_message, started_at, completed_at, processing_time_ms, initiator_id, "
    "scope_id, related_entity_id"
)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat(timespec="microseconds") if value else None


class SQLiteStepRepository(StepRepository):
    """Persist workflow steps using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_steps (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                step_type TEXT NOT NULL,
                step_name TEXT NOT NULL,
                status TEXT NOT NULL,
                input_summary TEXT,
                output_summary TEXT,
                error_message TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                processing_time_ms INTEGER,
                initiator_id TEXT NOT NULL,
                scope_id TEXT,
                related_entity_id TEXT
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_steps_workflow ON workflow_steps (workflow_id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _to_step(row: sqlite3.Row) -> WorkflowStep:
        return WorkflowStep(
            id=row["id"],
            workflow_id=row["workflow_id"],
            step_type=row["step_type"],
            step_name=row["step_name"],
            status=row["status"],
            input_summary=json.loads(row["input_summary"]) if row["input_summary"] else {},
            output_summary=json.loads(row["output_summary"]) if row["output_summary"] else None,
            error_message=row["error_message"],
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
            processing_time_ms=row["processing_time_ms"],
            initiator_id=row["initiator_id"],
            scope_id=row["scope_id"],
            related_entity_id=row["related_entity_id"],
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_step(self, step: WorkflowStep) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO workflow_steps ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            step.id,
            step.workflow_id,
            step.step_type.value,
            step.step_name,
            step.status.value,
            json.dumps(step.input_summary),
            json.dumps(step.output_summary) if step.output_summary is not None else None,
            step.error_message,
            _ts(step.started_at),
            _ts(step.completed_at),
            step.processing_time_ms,
            step.initiator_id,
            step.scope_id,
            step.related_entity_id,
        )

    async def finish_step(
        self,
        step_id: str,
        status: StepStatus,
        completed_at: datetime,
        processing_time_ms: int,
        output_summary: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_steps
            SET status = ?, completed_at = ?, processing_time_ms = ?,
                output_summary = ?, error_message = ?
            WHERE id = ? AND status = ?
            """,
            status.value,
            _ts(completed_at),
            processing_time_ms,
            json.dumps(output_summary) if output_summary is not None else None,
            error_message,
            step_id,
            StepStatus.PROCESSING.value,
        )
        return updated == 1

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM workflow_steps WHERE id = ?",
            step_id,
        )
        return self._to_step(row) if row else None

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM workflow_steps WHERE workflow_id = ? ORDER BY started_at, rowid",
            workflow_id,
        )
        return [self._to_step(r) for r in rows]

    async def list_processing_steps(self, started_before: datetime) -> list[WorkflowStep]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM workflow_steps WHERE status = ? AND started_at < ? ORDER BY started_at, rowid",
            StepStatus.PROCESSING.value,
            _ts(started_before),
        )
        return [self._to_step(r) for r in rows]

    async def delete_finished_before(self, cutoff: datetime) -> int:
        return await asyncio.to_thread(
            self._execute,
            "DELETE FROM workflow_steps WHERE status IN (?, ?) AND completed_at < ?",
            StepStatus.COMPLETED.value,
            StepStatus.FAILED.value,
            _ts(cutoff),
        )
