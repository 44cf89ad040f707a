"""Search round: search, evaluate each candidate, keep the relevant ones."""

import logging
from collections.abc import Sequence

from ..exceptions import GenerationError
from .capabilities import EvaluationCapability
from .generation import Generator
from .dedup import SeenResults
from .models import RefinedQuery, SearchResult
from .prompts import SEARCH_SYSTEM_PROMPT, get_refinement_prompt
from .search import SearchProvider

logger = logging.getLogger(__name__)


class SearchRound:
    """In-process search round.

    Candidates are evaluated one at a time in the order the provider returned
    them; each accepted result joins the dedup context for the next one.
    When an attempt returns candidates but none is relevant, the query is
    refined and searched again, up to ``max_attempts`` searches in total.
    """

    def __init__(
        self,
        provider: SearchProvider,
        evaluator: EvaluationCapability,
        generator: Generator | None = None,
        max_attempts: int = 1,
    ):
        self.provider = provider
        self.evaluator = evaluator
        self.generator = generator
        self.max_attempts = max(1, max_attempts)

    async def run_round(self, query: str, accumulated: Sequence[SearchResult]) -> list[SearchResult]:
        accepted: list[SearchResult] = []
        context = SeenResults(accumulated)
        tried = [query]
        search_query = query

        for attempt in range(1, self.max_attempts + 1):
            logger.info(f"Searching ({attempt}/{self.max_attempts}): {search_query}")
            candidates = await self.provider.search(search_query)
            if not candidates:
                logger.info(f"No candidates for '{search_query}'")
                break

            for candidate in candidates:
                verdict = await self.evaluator.evaluate(query, candidate, context)
                if verdict == "relevant":
                    accepted.append(candidate)
                    context.append(candidate)

            if accepted or attempt == self.max_attempts or self.generator is None:
                break

            search_query = await self._refine(query, tried)
            tried.append(search_query)

        return accepted

    async def _refine(self, query: str, tried: list[str]) -> str:
        refined = await self.generator.generate_object(
            get_refinement_prompt(query, tried),
            RefinedQuery,
            system=SEARCH_SYSTEM_PROMPT,
        )
        new_query = refined.query.strip()
        if not new_query:
            raise GenerationError(f"Empty refined query for '{query}'")
        return new_query
