"""Report synthesis from a finished research record."""

import logging

from .generation import Generator
from .models import ResearchRecord
from .prompts import get_report_prompt

logger = logging.getLogger(__name__)


class ReportSynthesizer:
    """Renders a research record into a markdown report with one generation call."""

    def __init__(self, generator: Generator):
        self.generator = generator

    async def render(self, record: ResearchRecord) -> str:
        logger.info(f"Writing report from {len(record.learnings)} learnings and {len(record.search_results)} sources")
        return await self.generator.generate_text(get_report_prompt(record.to_json()))
