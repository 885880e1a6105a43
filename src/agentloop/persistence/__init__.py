"""Run and step persistence."""

from agentloop.persistence.store import InMemoryRunStore, RunRecord, RunStore, SqliteRunStore, StepRecord

__all__ = [
    "InMemoryRunStore",
    "RunRecord",
    "RunStore",
    "SqliteRunStore",
    "StepRecord",
]
