"""Pytest configuration and fixtures for deep research tests."""

from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest

from mcp_server_deep_research.research.models import SearchResult


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: End-to-end tests requiring real API keys and network access")
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_result(slug: str, content: str = "") -> SearchResult:
    return SearchResult(title=f"Page {slug}", url=f"https://example.com/{slug}", content=content or f"Content of {slug}")


class FakeLLM:
    """Chat model double with the browser-use ``ainvoke`` shape.

    ``handler(prompt, output_format)`` returns the completion: a model
    instance, a dict, JSON text, or plain text for unstructured calls.
    """

    def __init__(self, handler: Callable[[str, type | None], Any]):
        self.handler = handler
        self.calls: list[tuple[str | None, str, list]] = []

    async def ainvoke(self, messages, output_format=None):
        prompt = messages[-1].content
        self.calls.append((output_format.__name__ if output_format else None, prompt, messages))
        return SimpleNamespace(completion=self.handler(prompt, output_format))

    def prompts_for(self, schema_name: str | None) -> list[str]:
        return [prompt for name, prompt, _ in self.calls if name == schema_name]


class FakeSearchProvider:
    """Returns canned results per query; unknown queries find nothing."""

    def __init__(self, results: dict[str, list[SearchResult]] | None = None, default: list[SearchResult] | None = None):
        self.results = results or {}
        self.default = default or []
        self.queries: list[str] = []

    async def search(self, query: str) -> list[SearchResult]:
        self.queries.append(query)
        return list(self.results.get(query, self.default))
