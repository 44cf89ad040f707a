"""Observability module for run tracking and structured logging."""

from .logging import bind_stage, run_log_context, setup_structured_logging
from .models import ResearchRunRecord, TaskStage, TaskStatus
from .store import RunStore, get_run_store

__all__ = [
    "ResearchRunRecord",
    "RunStore",
    "TaskStage",
    "TaskStatus",
    "bind_stage",
    "get_run_store",
    "run_log_context",
    "setup_structured_logging",
]
