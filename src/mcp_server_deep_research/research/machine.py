"""Recursive research machine: expand, search, learn, recurse, then write the report."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .capabilities import ReportCapability, ResearchCapability, SearchCapability
from .expander import LearningExtractor, QueryExpander
from .models import Budget, ResearchRecord
from .prompts import get_reflection_prompt

if TYPE_CHECKING:
    from fastmcp.dependencies import Progress
    from fastmcp.server.context import Context

logger = logging.getLogger(__name__)


@dataclass
class ResearchStats:
    """Counters describing how much work one research run did."""

    expansions: int = 0
    search_rounds: int = 0
    deepest_level: int = 0


class ResearchMachine:
    """Deep research over one query with native MCP progress reporting.

    All frames of the recursion share ``self.record``; it is created per
    machine, so concurrent requests never see each other's results.
    """

    def __init__(
        self,
        query: str,
        budget: Budget,
        expander: QueryExpander,
        searcher: SearchCapability,
        extractor: LearningExtractor,
        author: ReportCapability,
        save_path: str | None = None,
        progress: Optional["Progress"] = None,
        ctx: Optional["Context"] = None,
        on_stage: Callable[[str], Awaitable[None]] | None = None,
        researcher: ResearchCapability | None = None,
    ):
        self.query = query
        self.budget = budget
        self.expander = expander
        self.searcher = searcher
        self.extractor = extractor
        self.author = author
        self.save_path = save_path
        self.progress = progress
        self.ctx = ctx
        self.on_stage = on_stage
        self.researcher = researcher
        self._stage: str | None = None
        self.record = ResearchRecord()
        self.stats = ResearchStats()

    async def _report_progress(self, message: str | None = None, increment: bool = False) -> None:
        """Report progress if progress tracker is available."""
        if self.ctx and message:
            await self.ctx.info(message)
        if not self.progress:
            return
        if message:
            await self.progress.set_message(message)
        if increment:
            await self.progress.increment()

    async def _enter_stage(self, stage: str) -> None:
        """Notify the stage listener when the coarse stage changes."""
        if stage == self._stage:
            return
        self._stage = stage
        if self.on_stage:
            await self.on_stage(stage)

    async def run(self) -> str:
        """Execute the research workflow and return the report."""
        logger.info(f"Researching '{self.query[:100]}' (depth={self.budget.depth}, breadth={self.budget.breadth})")
        await self.research()

        await self._enter_stage("synthesizing")
        await self._report_progress(message="Synthesizing findings into report...")
        logger.info(
            f"Research finished: {len(self.record.search_results)} sources, {len(self.record.learnings)} learnings, "
            f"{self.stats.expansions} expansions, {self.stats.search_rounds} search rounds, {self.stats.deepest_level} level(s)"
        )
        report = await self.author.render(self.record)

        if self.save_path:
            self._save_report(report)

        await self._report_progress(increment=True)
        logger.info("Research completed")
        return report

    async def research(self) -> ResearchRecord:
        """Run the recursive research phase only, in-process or on the researcher peer."""
        if self.researcher is None:
            return await self.deep_research(self.query, self.budget)

        await self._enter_stage("searching")
        await self._report_progress(message=f"Delegating research (depth {self.budget.depth}, breadth {self.budget.breadth}) to peer...")
        self.record = await self.researcher.research(self.query, self.budget)
        return self.record

    async def deep_research(self, query: str, budget: Budget, level: int = 0) -> ResearchRecord:
        """One frame of the recursion. Returns the shared record."""
        record = self.record
        if not record.query:
            record.query = query

        if budget.exhausted:
            return record

        self.stats.deepest_level = max(self.stats.deepest_level, level + 1)
        await self._enter_stage("expanding")
        await self._report_progress(message=f"Planning (level {level + 1}, breadth {budget.breadth})...")
        queries = await self.expander.expand(query, budget.breadth)
        self.stats.expansions += 1
        # Last writer wins: deeper levels replace the batch.
        record.queries = queries

        for i, sub_query in enumerate(queries):
            await self._enter_stage("searching")
            await self._report_progress(message=f"Searching ({i + 1}/{len(queries)}): {sub_query}")
            logger.info(f"Searching the web for: {sub_query}")
            found = await self.searcher.run_round(sub_query, record.search_results)
            self.stats.search_rounds += 1
            await self._report_progress(increment=True)

            # Re-check against the live set; earlier branches may have added the same URL.
            accepted = [result for result in found if record.add_search_result(result)]
            if len(accepted) < len(found):
                logger.info(f"Dropped {len(found) - len(accepted)} duplicate result(s) for '{sub_query}'")

            for result in accepted:
                await self._enter_stage("learning")
                logger.info(f"Processing search result: {result.url}")
                learning = await self.extractor.extract(sub_query, result)
                record.add_learning(sub_query, learning)

                next_query = get_reflection_prompt(record.query, record.completed_queries, learning)
                await self.deep_research(next_query, budget.next_level(), level + 1)

        return record

    def _save_report(self, report: str) -> None:
        """Save the report to a file."""
        try:
            path = Path(self.save_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(report, encoding="utf-8")
            logger.info(f"Report saved to {path}")
        except OSError as e:
            logger.error(f"Failed to save report: {e}")
