"""Tests for research data models and URL deduplication."""

import json

import pydantic
import pytest
from conftest import make_result

from mcp_server_deep_research.exceptions import ValidationError
from mcp_server_deep_research.research.dedup import SeenResults, UrlIndex, is_duplicate
from mcp_server_deep_research.research.models import (
    Budget,
    DeepResearchRequest,
    Learning,
    ResearchRecord,
    SearchProcessResponse,
    SearchResult,
    validate_payload,
)


class TestSearchResult:
    def test_valid_result(self):
        result = SearchResult(title="Rust", url="https://www.rust-lang.org/", content="A language")
        assert result.url == "https://www.rust-lang.org/"

    def test_url_whitespace_stripped(self):
        result = SearchResult(title="t", url="  https://example.com/a ", content="")
        assert result.url == "https://example.com/a"

    @pytest.mark.parametrize("url", ["", "example.com/page", "ftp://example.com/file", "/relative/path"])
    def test_invalid_url_rejected(self, url):
        with pytest.raises(pydantic.ValidationError):
            SearchResult(title="t", url=url, content="c")

    def test_frozen(self):
        result = make_result("a")
        with pytest.raises(pydantic.ValidationError):
            result.url = "https://example.com/b"


class TestUrlIndex:
    def test_add_reports_new_urls(self):
        index = UrlIndex()
        assert index.add("https://example.com/a") is True
        assert index.add("https://example.com/a") is False
        assert "https://example.com/a" in index

    def test_from_results(self):
        index = UrlIndex.from_results([make_result("a"), make_result("b")])
        assert "https://example.com/b" in index
        assert "https://example.com/c" not in index

    def test_is_duplicate_with_sequence_and_index(self):
        existing = [make_result("a")]
        assert is_duplicate(make_result("a", content="different text"), existing)
        assert not is_duplicate(make_result("b"), existing)
        assert is_duplicate(make_result("a"), UrlIndex.from_results(existing))

    def test_is_duplicate_empty(self):
        assert not is_duplicate(make_result("a"), [])

    def test_seen_results_appends_unique_urls(self):
        seen = SeenResults([make_result("a")])
        assert seen.append(make_result("b")) is True
        assert seen.append(make_result("a", content="again")) is False
        assert [r.url for r in seen] == ["https://example.com/a", "https://example.com/b"]
        assert len(seen) == 2
        assert "https://example.com/b" in seen.index

    def test_is_duplicate_uses_seen_index(self):
        seen = SeenResults([make_result("a")])
        seen.append(make_result("b"))
        assert is_duplicate(make_result("b", content="other"), seen)
        assert not is_duplicate(make_result("c"), seen)


class TestResearchRecord:
    def test_defaults(self):
        record = ResearchRecord()
        assert record.query == ""
        assert record.queries == []
        assert record.search_results == []
        assert record.learnings == []
        assert record.completed_queries == []

    def test_add_search_result_rejects_duplicate_url(self):
        record = ResearchRecord()
        assert record.add_search_result(make_result("a"))
        assert not record.add_search_result(make_result("a", content="other"))
        assert [r.url for r in record.search_results] == ["https://example.com/a"]

    def test_add_learning_pairs_with_query(self):
        record = ResearchRecord()
        record.add_learning("rust memory safety", Learning(learning="Rust has a borrow checker"))
        record.add_learning("go concurrency", Learning(learning="Go has goroutines"))
        assert record.completed_queries == ["rust memory safety", "go concurrency"]
        assert len(record.learnings) == len(record.completed_queries)

    def test_duplicate_urls_rejected_on_load(self):
        data = {"query": "q", "searchResults": [make_result("a").model_dump(), make_result("a").model_dump()]}
        with pytest.raises(ValidationError, match="duplicate"):
            validate_payload(ResearchRecord, data)

    def test_loaded_record_keeps_dedup_index(self):
        record = validate_payload(ResearchRecord, {"query": "q", "searchResults": [make_result("a").model_dump()]})
        assert not record.add_search_result(make_result("a"))
        assert record.add_search_result(make_result("b"))

    def test_json_uses_camel_case(self):
        record = ResearchRecord(query="rust vs go")
        record.add_search_result(make_result("a"))
        record.add_learning("rust", Learning(learning="fact", follow_up_questions=["why?"]))

        data = json.loads(record.to_json())
        assert set(data) == {"query", "queries", "searchResults", "learnings", "completedQueries"}
        assert data["learnings"][0] == {"learning": "fact", "followUpQuestions": ["why?"]}

    def test_accepts_camel_and_snake_case(self):
        camel = ResearchRecord.model_validate({"completedQueries": ["a"]})
        snake = ResearchRecord.model_validate({"completed_queries": ["a"]})
        assert camel.completed_queries == snake.completed_queries == ["a"]


class TestBudget:
    @pytest.mark.parametrize(
        ("depth", "breadth", "expected"),
        [(2, 3, (1, 2)), (3, 5, (2, 3)), (1, 1, (0, 1)), (2, 2, (1, 1))],
    )
    def test_next_level_halves_breadth_rounding_up(self, depth, breadth, expected):
        child = Budget(depth=depth, breadth=breadth).next_level()
        assert (child.depth, child.breadth) == expected

    def test_exhausted(self):
        assert Budget(depth=0, breadth=3).exhausted
        assert not Budget(depth=1, breadth=3).exhausted

    def test_breadth_never_below_one(self):
        with pytest.raises(pydantic.ValidationError):
            Budget(depth=1, breadth=0)


class TestDeepResearchRequest:
    def test_defaults_applied_by_budget(self):
        request = DeepResearchRequest(query="rust vs go")
        budget = request.budget()
        assert (budget.depth, budget.breadth) == (2, 3)
        assert request.budget(default_depth=4, default_breadth=1) == Budget(depth=4, breadth=1)

    def test_explicit_values_win(self):
        request = validate_payload(DeepResearchRequest, {"query": "q", "depth": 1, "breadth": 5})
        assert request.budget() == Budget(depth=1, breadth=5)

    def test_legacy_depth_spelling(self):
        request = validate_payload(DeepResearchRequest, {"query": "q", "deepth": 3})
        assert request.depth == 3

    def test_query_is_stripped(self):
        assert DeepResearchRequest(query="  rust vs go  ").query == "rust vs go"

    @pytest.mark.parametrize(
        "payload",
        [{"query": ""}, {"query": "   "}, {"query": "q", "depth": 0}, {"query": "q", "depth": 6}, {"query": "q", "breadth": 9}],
    )
    def test_invalid_requests(self, payload):
        with pytest.raises(ValidationError):
            validate_payload(DeepResearchRequest, payload)


class TestValidatePayload:
    def test_accepts_json_text(self):
        text = json.dumps({"searchResults": [make_result("a").model_dump()], "message": "done"})
        response = validate_payload(SearchProcessResponse, text)
        assert response.search_results[0].url == "https://example.com/a"
        assert response.message == "done"

    def test_default_message(self):
        assert SearchProcessResponse().message == "Research completed successfully!"

    def test_wraps_schema_errors(self):
        with pytest.raises(ValidationError, match="SearchProcessResponse"):
            validate_payload(SearchProcessResponse, "not json")
