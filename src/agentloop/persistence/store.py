"""Run and step bookkeeping.

Every agent run is registered when its loop starts and finished when the
loop exits. Each step in between is recorded with its credit delta, the
child runs it spawned and the model message id it produced.

Two stores implement the same protocol:
- InMemoryRunStore: dict-backed, used by tests and one-shot CLI runs.
- SqliteRunStore: aiosqlite-backed, survives process restarts.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiosqlite

from agentloop.types.agent import RunStatus, StepStatus


@dataclass(slots=True)
class RunRecord:
    """A stored agent run."""

    id: str
    agent_id: str
    agent_type: str
    ancestor_run_ids: list[str] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    total_steps: int = 0
    direct_credits: float = 0.0
    total_credits: float = 0.0
    error_message: str | None = None
    created_at: float = 0.0
    finished_at: float | None = None


@dataclass(slots=True)
class StepRecord:
    """A stored agent step."""

    id: str
    run_id: str
    step_number: int
    credits: float = 0.0
    child_run_ids: list[str] = field(default_factory=list)
    message_id: str | None = None
    status: StepStatus = StepStatus.COMPLETED
    error_message: str | None = None
    started_at: float = 0.0


@runtime_checkable
class RunStore(Protocol):
    """Persistence functions the agent loop calls."""

    async def start_run(
        self,
        *,
        agent_id: str,
        agent_type: str,
        ancestor_run_ids: list[str],
    ) -> str | None: ...

    async def add_step(
        self,
        *,
        run_id: str,
        step_number: int,
        credits: float,
        child_run_ids: list[str],
        message_id: str | None,
        status: StepStatus,
        started_at: float,
        error_message: str | None = None,
    ) -> str: ...

    async def finish_run(
        self,
        *,
        run_id: str,
        status: RunStatus,
        total_steps: int,
        direct_credits: float,
        total_credits: float,
        error_message: str | None = None,
    ) -> None: ...


class InMemoryRunStore:
    """Dict-backed run store."""

    def __init__(self) -> None:
        self.runs: dict[str, RunRecord] = {}
        self.steps: list[StepRecord] = []

    async def start_run(
        self,
        *,
        agent_id: str,
        agent_type: str,
        ancestor_run_ids: list[str],
    ) -> str | None:
        run_id = str(uuid.uuid4())
        self.runs[run_id] = RunRecord(
            id=run_id,
            agent_id=agent_id,
            agent_type=agent_type,
            ancestor_run_ids=list(ancestor_run_ids),
            created_at=time.time(),
        )
        return run_id

    async def add_step(
        self,
        *,
        run_id: str,
        step_number: int,
        credits: float,
        child_run_ids: list[str],
        message_id: str | None,
        status: StepStatus,
        started_at: float,
        error_message: str | None = None,
    ) -> str:
        step = StepRecord(
            id=str(uuid.uuid4()),
            run_id=run_id,
            step_number=step_number,
            credits=credits,
            child_run_ids=list(child_run_ids),
            message_id=message_id,
            status=status,
            error_message=error_message,
            started_at=started_at,
        )
        self.steps.append(step)
        return step.id

    async def finish_run(
        self,
        *,
        run_id: str,
        status: RunStatus,
        total_steps: int,
        direct_credits: float,
        total_credits: float,
        error_message: str | None = None,
    ) -> None:
        record = self.runs.get(run_id)
        if record is None:
            raise KeyError(f"Unknown run: {run_id}")
        record.status = status
        record.total_steps = total_steps
        record.direct_credits = direct_credits
        record.total_credits = total_credits
        record.error_message = error_message
        record.finished_at = time.time()

    def steps_for(self, run_id: str) -> list[StepRecord]:
        return [s for s in self.steps if s.run_id == run_id]


CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS agent_runs (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    agent_type TEXT NOT NULL,
    ancestor_run_ids TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'running',
    total_steps INTEGER NOT NULL DEFAULT 0,
    direct_credits REAL NOT NULL DEFAULT 0.0,
    total_credits REAL NOT NULL DEFAULT 0.0,
    error_message TEXT,
    created_at REAL NOT NULL,
    finished_at REAL
);

CREATE TABLE IF NOT EXISTS agent_steps (
    id TEXT PRIMARY KEY,
    run_id TEXT NOT NULL,
    step_number INTEGER NOT NULL,
    credits REAL NOT NULL DEFAULT 0.0,
    child_run_ids TEXT NOT NULL DEFAULT '[]',
    message_id TEXT,
    status TEXT NOT NULL DEFAULT 'completed',
    error_message TEXT,
    started_at REAL NOT NULL,
    FOREIGN KEY (run_id) REFERENCES agent_runs(id)
);

CREATE INDEX IF NOT EXISTS idx_agent_steps_run ON agent_steps(run_id);
CREATE INDEX IF NOT EXISTS idx_agent_runs_status ON agent_runs(status);
"""


class SqliteRunStore:
    """Async SQLite run store.

    Uses aiosqlite for async database access.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and create tables."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(CREATE_TABLES_SQL)
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SqliteRunStore not initialized. Call initialize() first.")
        return self._db

    # --- Run operations ---

    async def start_run(
        self,
        *,
        agent_id: str,
        agent_type: str,
        ancestor_run_ids: list[str],
    ) -> str | None:
        db = self._ensure_db()
        run_id = str(uuid.uuid4())
        await db.execute(
            "INSERT INTO agent_runs (id, agent_id, agent_type, ancestor_run_ids, status, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (run_id, agent_id, agent_type, json.dumps(ancestor_run_ids), str(RunStatus.RUNNING), time.time()),
        )
        await db.commit()
        return run_id

    async def finish_run(
        self,
        *,
        run_id: str,
        status: RunStatus,
        total_steps: int,
        direct_credits: float,
        total_credits: float,
        error_message: str | None = None,
    ) -> None:
        db = self._ensure_db()
        await db.execute(
            "UPDATE agent_runs SET status = ?, total_steps = ?, direct_credits = ?, "
            "total_credits = ?, error_message = ?, finished_at = ? WHERE id = ?",
            (str(status), total_steps, direct_credits, total_credits, error_message, time.time(), run_id),
        )
        await db.commit()

    async def get_run(self, run_id: str) -> RunRecord | None:
        db = self._ensure_db()
        cursor = await db.execute("SELECT * FROM agent_runs WHERE id = ?", (run_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return RunRecord(
            id=row["id"],
            agent_id=row["agent_id"],
            agent_type=row["agent_type"],
            ancestor_run_ids=json.loads(row["ancestor_run_ids"]),
            status=RunStatus(row["status"]),
            total_steps=row["total_steps"],
            direct_credits=row["direct_credits"],
            total_credits=row["total_credits"],
            error_message=row["error_message"],
            created_at=row["created_at"],
            finished_at=row["finished_at"],
        )

    # --- Step operations ---

    async def add_step(
        self,
        *,
        run_id: str,
        step_number: int,
        credits: float,
        child_run_ids: list[str],
        message_id: str | None,
        status: StepStatus,
        started_at: float,
        error_message: str | None = None,
    ) -> str:
        db = self._ensure_db()
        step_id = str(uuid.uuid4())
        await db.execute(
            "INSERT INTO agent_steps (id, run_id, step_number, credits, child_run_ids, "
            "message_id, status, error_message, started_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                step_id, run_id, step_number, credits, json.dumps(child_run_ids),
                message_id, str(status), error_message, started_at,
            ),
        )
        await db.commit()
        return step_id

    async def list_steps(self, run_id: str) -> list[StepRecord]:
        db = self._ensure_db()
        cursor = await db.execute(
            "SELECT * FROM agent_steps WHERE run_id = ? ORDER BY step_number, started_at",
            (run_id,),
        )
        rows = await cursor.fetchall()
        return [
            StepRecord(
                id=row["id"],
                run_id=row["run_id"],
                step_number=row["step_number"],
                credits=row["credits"],
                child_run_ids=json.loads(row["child_run_ids"]),
                message_id=row["message_id"],
                status=StepStatus(row["status"]),
                error_message=row["error_message"],
                started_at=row["started_at"],
            )
            for row in rows
        ]
