"""Capability interfaces the orchestrator depends on.

Each capability has an in-process implementation and a remote one that
forwards to a peer MCP server (see ``remote.py``). Callers never need to
know which one they hold.
"""

from collections.abc import Sequence
from typing import Protocol

from .models import Budget, Evaluation, ResearchRecord, SearchResult


class SearchCapability(Protocol):
    """Runs one search round and returns the relevant subset."""

    async def run_round(self, query: str, accumulated: Sequence[SearchResult]) -> list[SearchResult]: ...


class EvaluationCapability(Protocol):
    """Classifies a candidate result against a query."""

    async def evaluate(self, query: str, candidate: SearchResult, existing: Sequence[SearchResult]) -> Evaluation: ...


class ResearchCapability(Protocol):
    """Runs the whole recursive research phase and returns the filled record."""

    async def research(self, query: str, budget: Budget) -> ResearchRecord: ...


class ReportCapability(Protocol):
    """Renders a finished research record to markdown."""

    async def render(self, record: ResearchRecord) -> str: ...
