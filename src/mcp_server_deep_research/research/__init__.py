"""Recursive deep research: query expansion, search rounds, learnings and reports."""

from .components import build_machine
from .machine import ResearchMachine, ResearchStats
from .models import Budget, DeepResearchRequest, Learning, ResearchRecord, SearchResult

__all__ = [
    "Budget",
    "DeepResearchRequest",
    "Learning",
    "ResearchMachine",
    "ResearchRecord",
    "ResearchStats",
    "SearchResult",
    "build_machine",
]
