"""Custom exceptions for the deep research server."""


class DeepResearchError(Exception):
    """Base exception for deep research errors."""

    pass


class LLMProviderError(DeepResearchError):
    """Raised when LLM provider configuration is invalid."""

    pass


class ValidationError(DeepResearchError):
    """Raised when a request or inter-agent payload fails schema validation."""

    pass


class SearchError(DeepResearchError):
    """Raised when the web search capability is unavailable or fails."""

    pass


class GenerationError(DeepResearchError):
    """Raised when the language model fails or returns an unusable result."""

    pass


class PeerUnavailableError(DeepResearchError):
    """Raised when a configured remote agent cannot be reached."""

    pass
