"""Query expansion and learning extraction."""

import logging

from ..exceptions import GenerationError
from .generation import Generator
from .models import Learning, QueryExpansion, SearchResult
from .prompts import get_expansion_prompt, get_learning_prompt

logger = logging.getLogger(__name__)


class QueryExpander:
    """Expands one query into between 1 and ``breadth`` sub-queries."""

    def __init__(self, generator: Generator):
        self.generator = generator

    async def expand(self, query: str, breadth: int) -> list[str]:
        expansion = await self.generator.generate_object(get_expansion_prompt(query, breadth), QueryExpansion)
        queries = [q.strip() for q in expansion.queries if q and q.strip()][:breadth]
        if not queries:
            # An empty expansion would silently prune the whole subtree.
            raise GenerationError(f"Query expansion returned no queries for '{query[:100]}'")
        logger.info(f"Expanded into {len(queries)} queries")
        return queries


class LearningExtractor:
    """Distils one relevant result into a learning plus follow-up questions."""

    def __init__(self, generator: Generator):
        self.generator = generator

    async def extract(self, query: str, result: SearchResult) -> Learning:
        return await self.generator.generate_object(get_learning_prompt(query, result), Learning)
