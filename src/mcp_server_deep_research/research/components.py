"""Wiring of research capabilities from application settings.

Capabilities whose peer URL is configured are delegated to that peer;
the rest run in-process.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Optional

from ..config import AppSettings
from .author import ReportSynthesizer
from .capabilities import EvaluationCapability, ReportCapability, ResearchCapability, SearchCapability
from .evaluator import RelevanceEvaluator
from .expander import LearningExtractor, QueryExpander
from .generation import Generator
from .machine import ResearchMachine
from .models import Budget
from .remote import PeerClient, RemoteEvaluator, RemoteReportWriter, RemoteResearcher, RemoteSearchRound
from .search import get_search_provider
from .searcher import SearchRound

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel
    from fastmcp.dependencies import Progress
    from fastmcp.server.context import Context


def build_evaluator(app_settings: AppSettings, generator: Generator, use_peers: bool = True) -> EvaluationCapability:
    if use_peers and app_settings.peers.evaluator_url:
        return RemoteEvaluator(PeerClient(app_settings.peers.evaluator_url, "evaluator", app_settings.peers.timeout))
    return RelevanceEvaluator(generator)


def build_searcher(
    app_settings: AppSettings,
    llm: "BaseChatModel",
    generator: Generator,
    use_peers: bool = True,
) -> SearchCapability:
    if use_peers and app_settings.peers.search_url:
        return RemoteSearchRound(PeerClient(app_settings.peers.search_url, "search", app_settings.peers.timeout))
    return SearchRound(
        provider=get_search_provider(app_settings.search, llm),
        evaluator=build_evaluator(app_settings, generator, use_peers),
        generator=generator,
        max_attempts=app_settings.search.max_search_attempts,
    )


def build_author(app_settings: AppSettings, generator: Generator, use_peers: bool = True) -> ReportCapability:
    if use_peers and app_settings.peers.author_url:
        return RemoteReportWriter(PeerClient(app_settings.peers.author_url, "author", app_settings.peers.timeout))
    return ReportSynthesizer(generator)


def build_researcher(app_settings: AppSettings) -> ResearchCapability | None:
    if app_settings.peers.researcher_url:
        return RemoteResearcher(PeerClient(app_settings.peers.researcher_url, "researcher", app_settings.peers.timeout))
    return None


def build_machine(
    query: str,
    budget: Budget,
    app_settings: AppSettings,
    llm: "BaseChatModel",
    save_path: str | None = None,
    progress: Optional["Progress"] = None,
    ctx: Optional["Context"] = None,
    on_stage: Callable[[str], Awaitable[None]] | None = None,
    delegate_research: bool = True,
) -> ResearchMachine:
    """Assemble a ResearchMachine for one request.

    With ``delegate_research`` and a researcher peer configured, the recursion
    runs on that peer and only the report is written here.
    """
    generator = Generator(llm)
    return ResearchMachine(
        query=query,
        budget=budget,
        expander=QueryExpander(generator),
        searcher=build_searcher(app_settings, llm, generator),
        extractor=LearningExtractor(generator),
        author=build_author(app_settings, generator),
        save_path=save_path,
        progress=progress,
        ctx=ctx,
        on_stage=on_stage,
        researcher=build_researcher(app_settings) if delegate_research else None,
    )
