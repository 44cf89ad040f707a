"""Relevance evaluation of a single search result."""

import logging
from collections.abc import Sequence

from .dedup import is_duplicate
from .generation import Generator
from .models import Evaluation, EvaluationResponse, SearchResult
from .prompts import get_evaluation_prompt

logger = logging.getLogger(__name__)


class RelevanceEvaluator:
    """Judges whether a candidate helps answer a query.

    Candidates whose URL is already accumulated are irrelevant without
    consulting the model.
    """

    def __init__(self, generator: Generator):
        self.generator = generator

    async def evaluate(self, query: str, candidate: SearchResult, existing: Sequence[SearchResult]) -> Evaluation:
        if is_duplicate(candidate, existing):
            logger.info(f"Duplicate result, marking irrelevant: {candidate.url}")
            return "irrelevant"

        response = await self.generator.generate_object(
            get_evaluation_prompt(query, candidate, existing),
            EvaluationResponse,
            system="",
        )
        logger.info(f"Evaluated {candidate.url}: {response.evaluation}")
        return response.evaluation
