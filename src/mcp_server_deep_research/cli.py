"""CLI interface for the deep research server."""

import asyncio

import typer

from .config import settings
from .exceptions import DeepResearchError
from .providers import get_llm_from_settings

app = typer.Typer(help="Recursive web research powered by LLM agents")


@app.command()
def research(
    query: str = typer.Argument(..., help="Question to research"),
    depth: int = typer.Option(None, "--depth", "-d", help="Recursion levels (1-5)"),
    breadth: int = typer.Option(None, "--breadth", "-b", help="Sub-queries per expansion (1-5)"),
    save_to: str = typer.Option(None, "--save", "-s", help="File path to save the report"),
    record_only: bool = typer.Option(False, "--record", "-r", help="Skip the report and print the research record as JSON"),
) -> None:
    """Research a question in depth and print the report."""
    from .research.components import build_machine
    from .research.models import DeepResearchRequest, validate_payload
    from .utils import default_report_path

    async def _research() -> str:
        request = validate_payload(DeepResearchRequest, {"query": query, "depth": depth, "breadth": breadth})
        budget = request.budget(settings.research.default_depth, settings.research.default_breadth)
        machine = build_machine(
            request.query,
            budget,
            settings,
            get_llm_from_settings(settings.llm),
            save_path=save_to or default_report_path(request.query, settings),
        )
        if record_only:
            return (await machine.research()).to_json()
        return await machine.run()

    try:
        result = asyncio.run(_research())
    except DeepResearchError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1) from e
    print(result)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
) -> None:
    """Run a single search round and print the accepted results as JSON."""
    from .research.components import build_searcher
    from .research.generation import Generator
    from .research.models import SearchProcessResponse

    async def _search() -> list:
        llm = get_llm_from_settings(settings.llm)
        searcher = build_searcher(settings, llm, Generator(llm))
        return await searcher.run_round(query, [])

    try:
        results = asyncio.run(_search())
    except DeepResearchError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1) from e

    print(SearchProcessResponse(search_results=results).model_dump_json(by_alias=True, indent=2))


@app.command()
def config() -> None:
    """Show current configuration."""
    print(f"Provider: {settings.llm.provider}")
    print(f"Model: {settings.llm.model_name}")
    print(f"Base URL: {settings.llm.base_url or '(default)'}")
    print(f"Search Provider: {settings.search.provider}")
    print(f"Results Per Search: {settings.search.results_per_search}")
    print(f"Max Search Attempts: {settings.search.max_search_attempts}")
    print(f"Default Depth: {settings.research.default_depth}")
    print(f"Default Breadth: {settings.research.default_breadth}")
    print(f"Researcher Peer: {settings.peers.researcher_url or '(in-process)'}")
    print(f"Search Peer: {settings.peers.search_url or '(in-process)'}")
    print(f"Evaluator Peer: {settings.peers.evaluator_url or '(in-process)'}")
    print(f"Author Peer: {settings.peers.author_url or '(in-process)'}")


@app.command()
def server() -> None:
    """Start the MCP server with the configured transport."""
    from .server import main

    main()


if __name__ == "__main__":
    app()
