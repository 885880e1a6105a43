"""Tests for run stores."""

from __future__ import annotations

import pytest

from agentloop.persistence.store import InMemoryRunStore, RunStore, SqliteRunStore
from agentloop.types.agent import RunStatus, StepStatus


@pytest.fixture
async def store(tmp_path) -> SqliteRunStore:
    """Create a temporary run store."""
    s = SqliteRunStore(tmp_path / "nested" / "runs.db")
    await s.initialize()
    yield s
    await s.close()


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class TestInMemoryRunStore:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryRunStore(), RunStore)

    @pytest.mark.asyncio
    async def test_run_lifecycle(self) -> None:
        store = InMemoryRunStore()
        run_id = await store.start_run(agent_id="base", agent_type="base", ancestor_run_ids=["root"])

        record = store.runs[run_id]
        assert record.status == RunStatus.RUNNING
        assert record.ancestor_run_ids == ["root"]
        assert record.finished_at is None

        await store.finish_run(
            run_id=run_id, status=RunStatus.COMPLETED, total_steps=3, direct_credits=0.5, total_credits=1.5,
        )
        assert record.status == RunStatus.COMPLETED
        assert record.total_steps == 3
        assert record.total_credits == 1.5
        assert record.finished_at is not None

    @pytest.mark.asyncio
    async def test_steps(self) -> None:
        store = InMemoryRunStore()
        run_id = await store.start_run(agent_id="a", agent_type="a", ancestor_run_ids=[])
        other = await store.start_run(agent_id="b", agent_type="b", ancestor_run_ids=[run_id])

        await store.add_step(
            run_id=run_id, step_number=1, credits=0.1, child_run_ids=[other],
            message_id="m1", status=StepStatus.COMPLETED, started_at=1.0,
        )
        await store.add_step(
            run_id=other, step_number=1, credits=0.0, child_run_ids=[],
            message_id=None, status=StepStatus.SKIPPED, started_at=2.0, error_message="boom",
        )

        steps = store.steps_for(run_id)
        assert len(steps) == 1
        assert steps[0].child_run_ids == [other]
        assert store.steps_for(other)[0].error_message == "boom"

    @pytest.mark.asyncio
    async def test_finish_unknown_run(self) -> None:
        with pytest.raises(KeyError):
            await InMemoryRunStore().finish_run(
                run_id="nope", status=RunStatus.FAILED, total_steps=0, direct_credits=0, total_credits=0,
            )


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


class TestSqliteRunStore:
    @pytest.mark.asyncio
    async def test_start_and_get(self, store: SqliteRunStore) -> None:
        run_id = await store.start_run(agent_id="base", agent_type="base", ancestor_run_ids=["p1", "p2"])
        record = await store.get_run(run_id)

        assert record is not None
        assert record.agent_type == "base"
        assert record.ancestor_run_ids == ["p1", "p2"]
        assert record.status == RunStatus.RUNNING

    @pytest.mark.asyncio
    async def test_get_missing(self, store: SqliteRunStore) -> None:
        assert await store.get_run("missing") is None

    @pytest.mark.asyncio
    async def test_finish_run(self, store: SqliteRunStore) -> None:
        run_id = await store.start_run(agent_id="a", agent_type="a", ancestor_run_ids=[])
        await store.finish_run(
            run_id=run_id, status=RunStatus.FAILED, total_steps=2,
            direct_credits=0.25, total_credits=0.75, error_message="model exploded",
        )

        record = await store.get_run(run_id)
        assert record.status == RunStatus.FAILED
        assert record.total_steps == 2
        assert record.direct_credits == 0.25
        assert record.total_credits == 0.75
        assert record.error_message == "model exploded"
        assert record.finished_at is not None

    @pytest.mark.asyncio
    async def test_steps_ordered(self, store: SqliteRunStore) -> None:
        run_id = await store.start_run(agent_id="a", agent_type="a", ancestor_run_ids=[])
        for number in (2, 1):
            await store.add_step(
                run_id=run_id, step_number=number, credits=0.1 * number, child_run_ids=[f"c{number}"],
                message_id=f"m{number}", status=StepStatus.COMPLETED, started_at=float(number),
            )

        steps = await store.list_steps(run_id)
        assert [s.step_number for s in steps] == [1, 2]
        assert steps[1].child_run_ids == ["c2"]
        assert steps[0].status == StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_not_initialized(self, tmp_path) -> None:
        with pytest.raises(RuntimeError, match="not initialized"):
            await SqliteRunStore(tmp_path / "x.db").start_run(agent_id="a", agent_type="a", ancestor_run_ids=[])

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path) -> None:
        path = tmp_path / "runs.db"
        first = SqliteRunStore(path)
        await first.initialize()
        run_id = await first.start_run(agent_id="a", agent_type="a", ancestor_run_ids=[])
        await first.close()

        second = SqliteRunStore(path)
        await second.initialize()
        assert (await second.get_run(run_id)).agent_id == "a"
        await second.close()
