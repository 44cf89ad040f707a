"""Data models for deep research: results, learnings, the shared record and wire payloads.

Every model serializes with camelCase keys (``searchResults``, ``followUpQuestions``)
so records and inter-agent payloads keep one JSON shape on every transport.
Python code uses the snake_case attribute names.
"""

import math
from typing import Any, Literal, TypeVar
from urllib.parse import urlparse

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..exceptions import ValidationError
from .dedup import UrlIndex

Evaluation = Literal["relevant", "irrelevant"]

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchResult(BaseModel):
    """A single document returned by the search capability. Identity is the URL."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str
    url: str
    content: str

    @field_validator("url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value


class Learning(BaseModel):
    """A distilled fact plus follow-up questions extracted from one relevant result."""

    model_config = _WIRE_CONFIG

    learning: str
    follow_up_questions: list[str] = Field(default_factory=list)


class ResearchRecord(BaseModel):
    """Mutable aggregate shared by every frame of one research request.

    ``search_results``, ``learnings`` and ``completed_queries`` are append-only.
    ``queries`` holds only the latest expansion batch.
    """

    model_config = _WIRE_CONFIG

    query: str = ""
    queries: list[str] = Field(default_factory=list)
    search_results: list[SearchResult] = Field(default_factory=list)
    learnings: list[Learning] = Field(default_factory=list)
    completed_queries: list[str] = Field(default_factory=list)

    _seen: UrlIndex = PrivateAttr(default_factory=UrlIndex)

    @model_validator(mode="after")
    def _unique_urls(self) -> "ResearchRecord":
        index = UrlIndex()
        for result in self.search_results:
            if not index.add(result.url):
                raise ValueError(f"duplicate search result URL: {result.url}")
        self._seen = index
        return self

    def add_search_result(self, result: SearchResult) -> bool:
        """Append a result unless its URL is already recorded. Returns whether it was appended."""
        if not self._seen.add(result.url):
            return False
        self.search_results.append(result)
        return True

    def add_learning(self, sub_query: str, learning: Learning) -> None:
        """Append a learning together with the sub-query that produced it."""
        self.learnings.append(learning)
        self.completed_queries.append(sub_query)

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


class Budget(BaseModel):
    """Remaining recursion budget for one orchestrator frame."""

    model_config = ConfigDict(frozen=True)

    depth: int = Field(ge=0)
    breadth: int = Field(ge=1)

    @property
    def exhausted(self) -> bool:
        return self.depth == 0

    def next_level(self) -> "Budget":
        return Budget(depth=self.depth - 1, breadth=max(1, math.ceil(self.breadth / 2)))


class DeepResearchRequest(BaseModel):
    """Top-level research request. ``deepth`` is accepted as a legacy spelling of ``depth``."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    query: str = Field(min_length=1)
    depth: int | None = Field(default=None, ge=1, le=5, validation_alias=AliasChoices("depth", "deepth"))
    breadth: int | None = Field(default=None, ge=1, le=5)

    def budget(self, default_depth: int = 2, default_breadth: int = 3) -> Budget:
        return Budget(
            depth=self.depth if self.depth is not None else default_depth,
            breadth=self.breadth if self.breadth is not None else default_breadth,
        )


# --- Inter-agent payloads ---


class SearchProcessRequest(BaseModel):
    model_config = _WIRE_CONFIG

    query: str = Field(min_length=1)
    accumulated_sources: list[SearchResult] = Field(default_factory=list)


class SearchProcessResponse(BaseModel):
    model_config = _WIRE_CONFIG

    search_results: list[SearchResult] = Field(default_factory=list)
    message: str = "Research completed successfully!"


class EvaluationRequest(BaseModel):
    model_config = _WIRE_CONFIG

    query: str = Field(min_length=1)
    pending_result: SearchResult
    accumulated_sources: list[SearchResult] = Field(default_factory=list)


class EvaluationResponse(BaseModel):
    evaluation: Evaluation


# --- Structured generation outputs ---


class QueryExpansion(BaseModel):
    queries: list[str] = Field(default_factory=list)


class RefinedQuery(BaseModel):
    query: str


ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_payload(model: type[ModelT], data: Any) -> ModelT:
    """Validate a dict or JSON text against a payload model.

    Raises:
        ValidationError: If the payload does not match the schema.
    """
    try:
        if isinstance(data, (str, bytes, bytearray)):
            return model.model_validate_json(data)
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e}") from e
