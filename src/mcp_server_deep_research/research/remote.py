"""Remote capability providers that delegate to peer MCP servers.

A peer is any MCP server exposing the ``deep_research``, ``search_process``,
``evaluate_result`` or ``write_report`` tools (this package's own server does).
Both tool arguments and tool results use the camelCase field names of the
payload models.
"""

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx
from fastmcp import Client
from fastmcp.exceptions import ToolError

from ..exceptions import DeepResearchError, GenerationError, PeerUnavailableError, SearchError
from .dedup import is_duplicate
from .models import (
    Budget,
    Evaluation,
    EvaluationRequest,
    EvaluationResponse,
    ResearchRecord,
    SearchProcessRequest,
    SearchProcessResponse,
    SearchResult,
    validate_payload,
)

if TYPE_CHECKING:
    from fastmcp import FastMCP

logger = logging.getLogger(__name__)


class PeerClient:
    """Calls one tool on a peer MCP server per request.

    ``transport`` is a server URL, or a FastMCP instance for in-memory use.
    """

    def __init__(self, transport: "str | FastMCP", name: str, timeout: float = 300.0):
        self.transport = transport
        self.name = name
        self.timeout = timeout

    async def call(self, tool: str, arguments: dict[str, Any], error_type: type[DeepResearchError]) -> str:
        """Invoke ``tool`` and return its text output.

        Raises:
            PeerUnavailableError: If the peer cannot be reached.
            error_type: If the peer's tool reports an error.
        """
        logger.debug(f"Calling {self.name} peer tool {tool}")
        try:
            async with Client(self.transport, timeout=self.timeout) as client:
                result = await client.call_tool(tool, arguments)
        except ToolError as e:
            raise error_type(f"{self.name} peer tool '{tool}' failed: {e}") from e
        except (httpx.HTTPError, OSError, RuntimeError) as e:
            raise PeerUnavailableError(f"{self.name} peer unavailable at {self.transport}: {e}") from e

        return "".join(getattr(block, "text", "") for block in result.content)


class RemoteSearchRound:
    """Search round executed by a peer's ``search_process`` tool."""

    def __init__(self, peer: PeerClient):
        self.peer = peer

    async def run_round(self, query: str, accumulated: Sequence[SearchResult]) -> list[SearchResult]:
        request = SearchProcessRequest(query=query, accumulated_sources=list(accumulated))
        text = await self.peer.call("search_process", request.model_dump(mode="json", by_alias=True), SearchError)
        response = validate_payload(SearchProcessResponse, text)
        logger.info(f"Search peer: {response.message} ({len(response.search_results)} result(s))")
        return response.search_results


class RemoteEvaluator:
    """Relevance evaluation executed by a peer's ``evaluate_result`` tool."""

    def __init__(self, peer: PeerClient):
        self.peer = peer

    async def evaluate(self, query: str, candidate: SearchResult, existing: Sequence[SearchResult]) -> Evaluation:
        if is_duplicate(candidate, existing):
            return "irrelevant"
        request = EvaluationRequest(query=query, pending_result=candidate, accumulated_sources=list(existing))
        text = await self.peer.call("evaluate_result", request.model_dump(mode="json", by_alias=True), GenerationError)
        return validate_payload(EvaluationResponse, text).evaluation


class RemoteReportWriter:
    """Report rendering executed by a peer's ``write_report`` tool."""

    def __init__(self, peer: PeerClient):
        self.peer = peer

    async def render(self, record: ResearchRecord) -> str:
        research = record.model_dump(mode="json", by_alias=True)
        report = await self.peer.call("write_report", {"research": research}, GenerationError)
        if not report.strip():
            raise GenerationError("Author peer returned an empty report")
        return report


class RemoteResearcher:
    """Recursive research phase executed by a peer's ``deep_research`` tool."""

    def __init__(self, peer: PeerClient):
        self.peer = peer

    async def research(self, query: str, budget: Budget) -> ResearchRecord:
        arguments = {"query": query, "depth": budget.depth, "breadth": budget.breadth}
        text = await self.peer.call("deep_research", arguments, DeepResearchError)
        record = validate_payload(ResearchRecord, text)
        logger.info(f"Research peer: {len(record.search_results)} source(s), {len(record.learnings)} learning(s)")
        return record
