"""MCP server exposing deep research and its worker agents as tools."""

import asyncio
import json
import logging
import os
import sys
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any


def _configure_stdio_logging() -> None:
    """Send all logging to stderr and quiet noisy dependencies.

    In stdio mode stdout carries JSON-RPC only; anything else printed there
    corrupts the protocol stream.
    """
    os.environ.setdefault("BROWSER_USE_LOGGING_LEVEL", "warning")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    root.handlers = [stderr_handler]
    root.setLevel(logging.WARNING)

    for logger_name in ["httpx", "httpcore", "asyncio", "browser_use", "openai", "anthropic", "tavily", "mcp"]:
        dep_logger = logging.getLogger(logger_name)
        dep_logger.setLevel(logging.WARNING)
        dep_logger.handlers = [stderr_handler]
        dep_logger.propagate = False


# Configure logging BEFORE importing browser_use and other noisy dependencies
_configure_stdio_logging()

# ruff: noqa: E402 - Intentional late imports after logging configuration
from fastmcp import FastMCP
from fastmcp.dependencies import CurrentContext, Progress
from fastmcp.server.context import Context
from fastmcp.server.tasks.config import TaskConfig

from .config import settings
from .observability import (
    ResearchRunRecord,
    TaskStage,
    TaskStatus,
    bind_stage,
    get_run_store,
    run_log_context,
    setup_structured_logging,
)
from .providers import get_llm_from_settings
from .research.components import build_author, build_evaluator, build_machine, build_searcher
from .research.generation import Generator
from .research.machine import ResearchMachine
from .research.models import (
    DeepResearchRequest,
    EvaluationRequest,
    EvaluationResponse,
    ResearchRecord,
    SearchProcessRequest,
    SearchProcessResponse,
    validate_payload,
)
from .utils import default_report_path, save_report_copy

logger = logging.getLogger("mcp_server_deep_research")
logger.setLevel(getattr(logging, settings.server.logging_level.upper()))

# Running research tasks by run id, for task_cancel
_running_tasks: dict[str, asyncio.Task] = {}


def _get_llm():
    return get_llm_from_settings(settings.llm)


def _first_given(*values):
    return next((v for v in values if v is not None), None)


async def _tracked_run(
    tool_name: str,
    request: DeepResearchRequest,
    input_params: dict[str, Any],
    execute: Callable[[ResearchMachine], Awaitable[str]],
    ctx: Context,
    progress: Progress,
    save_path: str | None = None,
    delegate_research: bool = True,
) -> str:
    """Run ``execute`` on a fresh ResearchMachine, recording the run in the run store.

    Setup errors (model or search backend misconfiguration) and stage errors
    both mark the run FAILED and propagate, so MCP clients receive an error result.
    """
    budget = request.budget(settings.research.default_depth, settings.research.default_breadth)

    task_id = str(uuid.uuid4())
    run_store = get_run_store()
    await run_store.create_run(
        ResearchRunRecord(
            task_id=task_id,
            tool_name=tool_name,
            query=request.query,
            depth=budget.depth,
            breadth=budget.breadth,
            input_params=input_params,
        )
    )

    with run_log_context(task_id, tool_name, request.query, budget.depth, budget.breadth) as task_logger:
        task_logger.info("task_created")

        async def on_stage(stage: str) -> None:
            bind_stage(stage)
            await run_store.update_stage(task_id, TaskStage(stage))
            task_logger.info("stage_changed")

        machine = None
        try:
            await run_store.update_status(task_id, TaskStatus.RUNNING)
            await run_store.update_stage(task_id, TaskStage.INITIALIZING)
            machine = build_machine(
                request.query,
                budget,
                settings,
                _get_llm(),
                save_path=save_path,
                progress=progress,
                ctx=ctx,
                on_stage=on_stage,
                delegate_research=delegate_research,
            )
            task_logger.info("task_running", delegated=machine.researcher is not None)

            research_task = asyncio.create_task(execute(machine))
            _running_tasks[task_id] = research_task
            try:
                result = await research_task
            finally:
                _running_tasks.pop(task_id, None)
                await run_store.record_counts(
                    task_id,
                    sources=len(machine.record.search_results),
                    learnings=len(machine.record.learnings),
                    expansions=machine.stats.expansions,
                    search_rounds=machine.stats.search_rounds,
                )

            await run_store.update_status(task_id, TaskStatus.COMPLETED, result=result)
            task_logger.info("task_completed", result_length=len(result))
            return result

        except asyncio.CancelledError:
            await run_store.update_status(task_id, TaskStatus.CANCELLED, error="Cancelled by user")
            task_logger.info("task_cancelled")
            raise

        except Exception as e:
            await run_store.update_status(task_id, TaskStatus.FAILED, error=f"{type(e).__name__}: {e}")
            event = "task_failed" if machine else "task_setup_failed"
            task_logger.error(event, error=str(e), error_type=type(e).__name__)
            raise


def serve() -> FastMCP:
    """Create and configure the MCP server."""
    setup_structured_logging(settings.server.logging_level)

    server = FastMCP("mcp_server_deep_research")

    @server.tool(task=TaskConfig(mode="optional"))
    async def run_deep_research(
        query: str,
        depth: int | None = None,
        breadth: int | None = None,
        save_to_file: str | None = None,
        ctx: Context = CurrentContext(),
        progress: Progress = Progress(),
    ) -> str:
        """
        Research a question in depth and return a markdown report.

        The query is expanded into sub-queries, each sub-query is searched and
        the relevant results are turned into learnings whose follow-up
        questions drive the next, narrower level of research.

        Args:
            query: The research question
            depth: Recursion levels, 1-5 (default from settings, normally 2)
            breadth: Sub-queries per expansion, 1-5, halved at each level (default 3)
            save_to_file: Optional file path to save the report

        Returns:
            The research report as markdown
        """
        request = validate_payload(DeepResearchRequest, {"query": query, "depth": depth, "breadth": breadth})

        async def produce_report(machine: ResearchMachine) -> str:
            report = await machine.run()
            if settings.server.results_dir and not save_to_file:
                saved_path = save_report_copy(
                    report,
                    request.query,
                    settings,
                    metadata={"query": request.query, "depth": machine.budget.depth, "breadth": machine.budget.breadth},
                )
                await ctx.info(f"Saved to: {saved_path.name}")
            return report

        return await _tracked_run(
            "run_deep_research",
            request,
            {"query": request.query, "depth": depth, "breadth": breadth, "save_to_file": save_to_file},
            produce_report,
            ctx,
            progress,
            save_path=save_to_file or default_report_path(request.query, settings),
        )

    @server.tool(task=TaskConfig(mode="optional"))
    async def deep_research(
        query: str,
        depth: int | None = None,
        breadth: int | None = None,
        ctx: Context = CurrentContext(),
        progress: Progress = Progress(),
    ) -> str:
        """
        Run only the recursive research phase and return the accumulated record.

        No report is written; pass the record to write_report for that.

        Args:
            query: The research question
            depth: Recursion levels, 1-5 (default from settings, normally 2)
            breadth: Sub-queries per expansion, 1-5, halved at each level (default 3)

        Returns:
            JSON object {query, queries, searchResults, learnings, completedQueries}
        """
        request = validate_payload(DeepResearchRequest, {"query": query, "depth": depth, "breadth": breadth})

        async def collect_record(machine: ResearchMachine) -> str:
            record = await machine.research()
            return record.to_json()

        return await _tracked_run(
            "deep_research",
            request,
            {"query": request.query, "depth": depth, "breadth": breadth},
            collect_record,
            ctx,
            progress,
            delegate_research=False,
        )

    # --- Worker tools (used by peers delegating parts of the research) ---
    # Payload fields are accepted under their wire (camelCase) and Python (snake_case) names.

    @server.tool()
    async def search_process(
        query: str,
        accumulatedSources: list[dict[str, Any]] | None = None,  # noqa: N803
        accumulated_sources: list[dict[str, Any]] | None = None,
    ) -> str:
        """
        Run one search round: search, evaluate each hit, return the relevant ones.

        Args:
            query: Search query
            accumulatedSources: Results already collected ({title, url, content}); duplicates are rejected
            accumulated_sources: Same as accumulatedSources

        Returns:
            JSON object {"searchResults": [...], "message": "..."}
        """
        request = validate_payload(
            SearchProcessRequest,
            {"query": query, "accumulatedSources": _first_given(accumulatedSources, accumulated_sources) or []},
        )
        llm = _get_llm()
        searcher = build_searcher(settings, llm, Generator(llm), use_peers=False)
        results = await searcher.run_round(request.query, request.accumulated_sources)
        return SearchProcessResponse(search_results=results).model_dump_json(by_alias=True)

    @server.tool()
    async def evaluate_result(
        query: str,
        pendingResult: dict[str, Any] | None = None,  # noqa: N803
        accumulatedSources: list[dict[str, Any]] | None = None,  # noqa: N803
        pending_result: dict[str, Any] | None = None,
        accumulated_sources: list[dict[str, Any]] | None = None,
    ) -> str:
        """
        Classify a search result as relevant or irrelevant to a query.

        Args:
            query: The query the result should help answer
            pendingResult: The candidate result {title, url, content}; required
            accumulatedSources: Results already collected; a duplicate URL is always irrelevant
            pending_result: Same as pendingResult
            accumulated_sources: Same as accumulatedSources

        Returns:
            JSON object {"evaluation": "relevant" | "irrelevant"}
        """
        payload: dict[str, Any] = {
            "query": query,
            "accumulatedSources": _first_given(accumulatedSources, accumulated_sources) or [],
        }
        candidate = _first_given(pendingResult, pending_result)
        if candidate is not None:
            payload["pendingResult"] = candidate
        request = validate_payload(EvaluationRequest, payload)
        evaluator = build_evaluator(settings, Generator(_get_llm()), use_peers=False)
        evaluation = await evaluator.evaluate(request.query, request.pending_result, request.accumulated_sources)
        return EvaluationResponse(evaluation=evaluation).model_dump_json()

    @server.tool()
    async def write_report(research: dict[str, Any]) -> str:
        """
        Write a markdown report from an accumulated research record.

        Args:
            research: Record with query, queries, searchResults, learnings and completedQueries

        Returns:
            The report as markdown
        """
        record = validate_payload(ResearchRecord, research)
        author = build_author(settings, Generator(_get_llm()), use_peers=False)
        return await author.render(record)

    # --- Observability Tools ---

    @server.tool()
    async def health_check() -> str:
        """
        Health check with process stats and running research runs.

        Returns:
            JSON object with server health status, running runs, and statistics
        """
        import psutil

        run_store = get_run_store()
        running = await run_store.get_running()
        stats = await run_store.get_stats()
        memory_info = psutil.Process().memory_info()

        return json.dumps(
            {
                "status": "healthy",
                "uptime_seconds": round(time.time() - _server_start_time, 1),
                "memory_mb": round(memory_info.rss / 1024 / 1024, 1),
                "running_tasks": len(running),
                "tasks": [
                    {
                        "task_id": r.task_id[:8],
                        "query": r.query[:80],
                        "stage": r.stage.value if r.stage else None,
                    }
                    for r in running
                ],
                "stats": stats,
            },
            indent=2,
        )

    @server.tool()
    async def task_list(limit: int = 20, status_filter: str | None = None) -> str:
        """
        List recent research runs.

        Args:
            limit: Maximum number of runs to return (default 20)
            status_filter: Optional status filter (pending, running, completed, failed, cancelled)

        Returns:
            JSON list of recent runs
        """
        status = None
        if status_filter:
            try:
                status = TaskStatus(status_filter)
            except ValueError:
                return f"Error: Invalid status '{status_filter}'. Use: pending, running, completed, failed, cancelled"

        runs = await get_run_store().get_history(limit=limit, status=status)
        return json.dumps(
            {
                "tasks": [
                    {
                        "task_id": r.task_id[:8],
                        "query": r.query[:80],
                        "status": r.status.value,
                        "sources": r.sources_count,
                        "learnings": r.learnings_count,
                        "created": r.created_at.isoformat(),
                        "duration_sec": round(r.duration_seconds, 1) if r.duration_seconds else None,
                    }
                    for r in runs
                ],
                "count": len(runs),
            },
            indent=2,
        )

    @server.tool()
    async def task_get(task_id: str) -> str:
        """
        Get full details of a research run.

        Args:
            task_id: Run ID (full or prefix)

        Returns:
            JSON object with run details, budget, counters and result/error
        """
        run = await get_run_store().find_run(task_id)
        if not run:
            return f"Error: Task '{task_id}' not found"

        return json.dumps(
            {
                "task_id": run.task_id,
                "tool": run.tool_name,
                "status": run.status.value,
                "stage": run.stage.value if run.stage else None,
                "query": run.query,
                "budget": {"depth": run.depth, "breadth": run.breadth},
                "counts": {
                    "sources": run.sources_count,
                    "learnings": run.learnings_count,
                    "expansions": run.expansions_count,
                    "search_rounds": run.search_rounds_count,
                },
                "timestamps": {
                    "created": run.created_at.isoformat(),
                    "started": run.started_at.isoformat() if run.started_at else None,
                    "completed": run.completed_at.isoformat() if run.completed_at else None,
                    "duration_sec": round(run.duration_seconds, 1) if run.duration_seconds else None,
                },
                "result": run.result[:500] if run.result else None,
                "error": run.error,
            },
            indent=2,
        )

    @server.tool()
    async def task_cancel(task_id: str) -> str:
        """
        Cancel a running research run.

        Args:
            task_id: Run ID (full or prefix match)

        Returns:
            JSON with success status and message
        """
        matched_id = next((full_id for full_id in _running_tasks if full_id.startswith(task_id)), None)
        if not matched_id:
            return json.dumps({"success": False, "error": f"Task '{task_id}' not found or not running"})

        _running_tasks[matched_id].cancel()
        await get_run_store().update_status(matched_id, TaskStatus.CANCELLED, error="Cancelled by user")
        return json.dumps({"success": True, "task_id": matched_id[:8], "message": "Task cancelled"})

    return server


_server_start_time = time.time()


server_instance = serve()


def main() -> None:
    """Entry point for the MCP server."""
    transport = settings.server.transport

    logger.info(f"Starting deep research server (provider: {settings.llm.provider}, search: {settings.search.provider}, transport: {transport})")
    if transport == "stdio":
        server_instance.run(transport="stdio")
    elif transport in ("streamable-http", "sse"):
        logger.info(f"HTTP server at http://{settings.server.host}:{settings.server.port}/mcp")
        server_instance.run(transport=transport, host=settings.server.host, port=settings.server.port)
    else:
        raise ValueError(f"Unknown transport: {transport}")


if __name__ == "__main__":
    main()
