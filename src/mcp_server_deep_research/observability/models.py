"""Data models for research run observability."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Run execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskStage(str, Enum):
    """Coarse progress stages of a research run."""

    INITIALIZING = "initializing"
    EXPANDING = "expanding"
    SEARCHING = "searching"
    LEARNING = "learning"
    SYNTHESIZING = "synthesizing"


class ResearchRunRecord(BaseModel):
    """Persistent record of one tool invocation (a research run or a peer call)."""

    task_id: str
    tool_name: str
    status: TaskStatus = TaskStatus.PENDING
    stage: TaskStage | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    query: str = ""
    depth: int | None = None
    breadth: int | None = None

    # Filled in when the research phase finishes
    sources_count: int = 0
    learnings_count: int = 0
    expansions_count: int = 0
    search_rounds_count: int = 0

    input_params: dict[str, Any] = Field(default_factory=dict)
    result: str | None = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if not self.started_at:
            return None
        end = self.completed_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)
