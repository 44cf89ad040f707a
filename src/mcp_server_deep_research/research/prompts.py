"""LLM prompts for deep research."""

import json
from collections.abc import Sequence

from .models import Learning, SearchResult

RESEARCH_SYSTEM_PROMPT = (
    "You are an expert researcher. Today you are helping a user research a topic in depth.\n\n"
    "Guidelines:\n"
    "- Be highly organized and precise\n"
    "- Prefer concrete facts, figures and named sources over generalities\n"
    "- Flag speculation and conflicting information explicitly\n"
    "- Treat the user as a knowledgeable analyst"
)

SEARCH_SYSTEM_PROMPT = (
    "You are a researcher. For each query, search the web and then evaluate "
    "if the results are relevant and will help answer the query."
)


def get_expansion_prompt(query: str, n: int) -> str:
    """Prompt asking for up to ``n`` search queries."""
    return f"Generate {n} search queries for the following query: {query}"


def get_learning_prompt(query: str, result: SearchResult) -> str:
    """Prompt asking for one learning and follow-up questions from a relevant result."""
    return f"""The user is researching "{query}". The following search result was deemed relevant.
Generate a learning and follow-up questions from the following search result:

<search_result>
{result.model_dump_json(by_alias=True)}
</search_result>"""


def get_evaluation_prompt(query: str, pending: SearchResult, existing: Sequence[SearchResult]) -> str:
    """Prompt classifying a pending result as relevant or irrelevant."""
    existing_urls = json.dumps([r.url for r in existing])
    return f"""Evaluate whether the search results are relevant and will help answer the following query: {query}. If the page already exists in the existing results, mark it as irrelevant.

<search_results>
{pending.model_dump_json(by_alias=True)}
</search_results>

<existing_results>
{existing_urls}
</existing_results>"""


def get_refinement_prompt(query: str, previous: Sequence[str]) -> str:
    """Prompt asking for a more specific query after an attempt found nothing relevant."""
    tried = "\n".join(f"- {q}" for q in previous)
    return f"""Search results for the following query were irrelevant: {query}

Queries already tried:
{tried}

Write one more specific web search query that is likely to return a relevant page."""


def get_reflection_prompt(goal: str, completed_queries: Sequence[str], learning: Learning) -> str:
    """Build the next-level query from the research goal, past queries and follow-ups."""
    return (
        f"Overall research goal: {goal}\n\n"
        f"Previous search queries: {', '.join(completed_queries)}\n\n"
        f"Follow-up questions: {', '.join(learning.follow_up_questions)}"
    )


def get_browser_search_task(query: str) -> str:
    """Task for the browser agent search provider."""
    return f"""Research task: {query}

Instructions:
1. Search the web for information about this topic
2. Open the most relevant page and read it
3. Extract key information and facts

Provide a concise summary of what you found on that page.

End your response with: DONE"""


REPORT_SECTIONS = ("Summary", "Key Findings", "Recommendations", "Next Steps", "References")


def get_report_prompt(research_json: str) -> str:
    """Prompt rendering an accumulated research record into a markdown report."""
    sections = "\n".join(f"- {section}" for section in REPORT_SECTIONS)
    return f"""Generate a report based on the following research data:

{research_json}

Make sure to include the following sections:
{sections}
Write in markdown format."""
