"""MCP server for recursive deep research."""

from .config import settings
from .exceptions import DeepResearchError, GenerationError, LLMProviderError, PeerUnavailableError, SearchError, ValidationError
from .providers import get_llm
from .server import main, serve

__all__ = [
    "main",
    "serve",
    "settings",
    "get_llm",
    "DeepResearchError",
    "LLMProviderError",
    "ValidationError",
    "SearchError",
    "GenerationError",
    "PeerUnavailableError",
]
