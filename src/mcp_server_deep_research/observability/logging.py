"""Structured run logging: JSON events tagged with the active research run."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Reflection queries embed earlier learnings and can run to pages of text
QUERY_LOG_LIMIT = 200

_configured = False


def clip_query(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor shortening the bound ``query`` field."""
    query = event_dict.get("query")
    if isinstance(query, str) and len(query) > QUERY_LOG_LIMIT:
        event_dict["query"] = query[:QUERY_LOG_LIMIT] + "..."
    return event_dict


def setup_structured_logging(level: str = "INFO") -> None:
    """Configure structlog to emit one JSON object per event on stderr.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            clip_query,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdout is the JSON-RPC channel in stdio mode
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=getattr(logging, level.upper()))

    _configured = True


@contextmanager
def run_log_context(task_id: str, tool_name: str, query: str, depth: int, breadth: int) -> Iterator[structlog.stdlib.BoundLogger]:
    """Tag every event logged inside the block with the run's id, query and budget.

    ``stage`` starts unset and is filled in by ``bind_stage``; all keys are
    removed again on exit.
    """
    with structlog.contextvars.bound_contextvars(
        task_id=task_id,
        tool_name=tool_name,
        query=query,
        depth=depth,
        breadth=breadth,
        stage=None,
    ):
        yield structlog.get_logger("mcp_server_deep_research")


def bind_stage(stage: str) -> None:
    """Record the run's current stage on subsequent events."""
    structlog.contextvars.bind_contextvars(stage=stage)
