"""Tests for the recursive research machine."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeLLM, FakeSearchProvider, make_result

from mcp_server_deep_research.exceptions import GenerationError, SearchError
from mcp_server_deep_research.research.author import ReportSynthesizer
from mcp_server_deep_research.research.evaluator import RelevanceEvaluator
from mcp_server_deep_research.research.expander import LearningExtractor, QueryExpander
from mcp_server_deep_research.research.generation import Generator
from mcp_server_deep_research.research.machine import ResearchMachine
from mcp_server_deep_research.research.models import Budget, EvaluationResponse, QueryExpansion, ResearchRecord
from mcp_server_deep_research.research.searcher import SearchRound

REPORT = "# Rust vs Go\n\n## Summary\nBoth are fine."


def research_handler(sub_queries, report=REPORT, irrelevant=()):
    """Answers every generation call of a research run."""

    def handler(prompt, schema):
        name = schema.__name__ if schema else None
        if name == "QueryExpansion":
            return QueryExpansion(queries=list(sub_queries))
        if name == "EvaluationResponse":
            return EvaluationResponse(evaluation="irrelevant" if any(url in prompt for url in irrelevant) else "relevant")
        if name == "Learning":
            return {"learning": "A learned fact", "followUpQuestions": ["What about tooling?"]}
        return report

    return handler


def build(llm, provider, query="rust vs go", depth=1, breadth=2, **kwargs):
    generator = Generator(llm)
    return ResearchMachine(
        query=query,
        budget=Budget(depth=depth, breadth=breadth),
        expander=QueryExpander(generator),
        searcher=SearchRound(provider, RelevanceEvaluator(generator), generator, max_attempts=1),
        extractor=LearningExtractor(generator),
        author=ReportSynthesizer(generator),
        **kwargs,
    )


@pytest.fixture
def rust_go_provider():
    return FakeSearchProvider(
        {
            "rust performance": [make_result("rust")],
            "go performance": [make_result("go")],
        }
    )


class TestSingleLevel:
    @pytest.mark.anyio
    async def test_rust_vs_go(self, rust_go_provider):
        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        machine = build(llm, rust_go_provider)

        report = await machine.run()

        record = machine.record
        assert report == REPORT
        assert record.query == "rust vs go"
        assert record.queries == ["rust performance", "go performance"]
        assert [r.url for r in record.search_results] == ["https://example.com/rust", "https://example.com/go"]
        assert len(record.learnings) == 2
        assert record.completed_queries == ["rust performance", "go performance"]
        assert rust_go_provider.queries == ["rust performance", "go performance"]

    @pytest.mark.anyio
    async def test_report_sees_final_record(self, rust_go_provider):
        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        await build(llm, rust_go_provider).run()

        report_prompt = llm.prompts_for(None)[-1]
        assert "https://example.com/rust" in report_prompt
        assert "https://example.com/go" in report_prompt
        assert '"completedQueries"' in report_prompt

    @pytest.mark.anyio
    async def test_irrelevant_results_produce_no_learning(self, rust_go_provider):
        llm = FakeLLM(research_handler(["rust performance", "go performance"], irrelevant=["https://example.com/go"]))
        machine = build(llm, rust_go_provider)
        await machine.run()

        assert [r.url for r in machine.record.search_results] == ["https://example.com/rust"]
        assert machine.record.completed_queries == ["rust performance"]

    @pytest.mark.anyio
    async def test_same_url_from_two_sub_queries_recorded_once(self):
        provider = FakeSearchProvider(default=[make_result("shared")])
        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        machine = build(llm, provider)
        await machine.run()

        assert [r.url for r in machine.record.search_results] == ["https://example.com/shared"]
        assert len(machine.record.learnings) == len(machine.record.completed_queries) == 1

    @pytest.mark.anyio
    async def test_duplicates_from_searcher_are_dropped(self):
        class CarelessSearcher:
            async def run_round(self, query, accumulated):
                return [make_result("same"), make_result("same")]

        llm = FakeLLM(research_handler(["a", "b"]))
        generator = Generator(llm)
        machine = ResearchMachine(
            query="q",
            budget=Budget(depth=1, breadth=2),
            expander=QueryExpander(generator),
            searcher=CarelessSearcher(),
            extractor=LearningExtractor(generator),
            author=ReportSynthesizer(generator),
        )
        await machine.run()

        assert len(machine.record.search_results) == 1
        assert machine.record.completed_queries == ["a"]


class TestRecursion:
    @pytest.mark.anyio
    async def test_depth_zero_does_no_research(self, rust_go_provider):
        llm = FakeLLM(research_handler(["rust performance"]))
        machine = build(llm, rust_go_provider, depth=0, breadth=3)

        record = await machine.research()

        assert record.query == "rust vs go"
        assert record.queries == []
        assert record.search_results == []
        assert llm.calls == []
        assert rust_go_provider.queries == []

    @pytest.mark.anyio
    async def test_breadth_halves_and_last_expansion_wins(self, rust_go_provider):
        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        machine = build(llm, rust_go_provider, depth=2, breadth=2)

        await machine.research()

        expansion_prompts = llm.prompts_for("QueryExpansion")
        assert "Generate 2 search queries" in expansion_prompts[0]
        assert all("Generate 1 search queries" in p for p in expansion_prompts[1:])
        assert machine.stats.expansions == 3
        assert machine.stats.search_rounds == 4
        # The nested expansions (breadth 1) overwrote the top-level batch.
        assert machine.record.queries == ["rust performance"]

    @pytest.mark.anyio
    async def test_reflection_prompt_drives_next_level(self, rust_go_provider):
        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        await build(llm, rust_go_provider, depth=2, breadth=2).research()

        nested = llm.prompts_for("QueryExpansion")[1]
        assert "Overall research goal: rust vs go" in nested
        assert "Previous search queries: rust performance" in nested
        assert "Follow-up questions: What about tooling?" in nested

    @pytest.mark.anyio
    async def test_recursion_never_exceeds_depth(self):
        counter = iter(range(1000))

        def handler(prompt, schema):
            name = schema.__name__ if schema else None
            if name == "QueryExpansion":
                return QueryExpansion(queries=[f"q{next(counter)}" for _ in range(3)])
            if name == "EvaluationResponse":
                return EvaluationResponse(evaluation="relevant")
            if name == "Learning":
                return {"learning": "fact", "followUpQuestions": ["more?"]}
            return "# Report"

        class FreshResults(FakeSearchProvider):
            async def search(self, query):
                self.queries.append(query)
                return [make_result(query)]

        provider = FreshResults()
        machine = build(FakeLLM(handler), provider, depth=3, breadth=3)
        await machine.research()

        assert machine.stats.deepest_level == 3
        # 3 + 3*2 + 3*2*1 sub-queries over three levels
        assert len(machine.record.completed_queries) == 15
        urls = [r.url for r in machine.record.search_results]
        assert len(urls) == len(set(urls))

    @pytest.mark.anyio
    async def test_empty_expansion_leaves_record_untouched(self, rust_go_provider):
        llm = FakeLLM(research_handler([]))
        machine = build(llm, rust_go_provider)

        with pytest.raises(GenerationError):
            await machine.run()

        assert machine.record.query == "rust vs go"
        assert machine.record.queries == []
        assert machine.record.search_results == []
        assert machine.record.learnings == []

    @pytest.mark.anyio
    async def test_search_failure_propagates(self):
        class FailingProvider:
            async def search(self, query):
                raise SearchError("search backend down")

        llm = FakeLLM(research_handler(["a"]))
        with pytest.raises(SearchError, match="backend down"):
            await build(llm, FailingProvider()).run()


class TestReporting:
    @pytest.mark.anyio
    async def test_stage_notifications(self, rust_go_provider):
        stages = []

        async def on_stage(stage):
            stages.append(stage)

        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        await build(llm, rust_go_provider, on_stage=on_stage).run()

        assert stages[0] == "expanding"
        assert stages[-1] == "synthesizing"
        assert {"searching", "learning"} <= set(stages)
        assert all(a != b for a, b in zip(stages, stages[1:]))

    @pytest.mark.anyio
    async def test_progress_and_context_messages(self, rust_go_provider):
        progress = MagicMock()
        progress.set_message = AsyncMock()
        progress.increment = AsyncMock()
        ctx = MagicMock()
        ctx.info = AsyncMock()

        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        await build(llm, rust_go_provider, progress=progress, ctx=ctx).run()

        messages = [call.args[0] for call in progress.set_message.await_args_list]
        assert any(m.startswith("Searching (1/2)") for m in messages)
        assert messages[-1] == "Synthesizing findings into report..."
        # One increment per search round plus one for the report
        assert progress.increment.await_count == 3
        assert ctx.info.await_count == len(messages)

    @pytest.mark.anyio
    async def test_report_saved_to_path(self, rust_go_provider, tmp_path):
        target = tmp_path / "reports" / "rust_vs_go.md"
        llm = FakeLLM(research_handler(["rust performance", "go performance"]))
        await build(llm, rust_go_provider, save_path=str(target)).run()

        assert target.read_text(encoding="utf-8") == REPORT

    @pytest.mark.anyio
    async def test_unwritable_save_path_does_not_fail_run(self, rust_go_provider, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        llm = FakeLLM(research_handler(["rust performance", "go performance"]))

        report = await build(llm, rust_go_provider, save_path=str(blocker / "report.md")).run()

        assert report == REPORT


class StubResearcher:
    def __init__(self, record):
        self.record = record
        self.calls = []

    async def research(self, query, budget):
        self.calls.append((query, budget))
        return self.record


class TestDelegatedResearch:
    @pytest.mark.anyio
    async def test_report_from_peer_record(self, rust_go_provider):
        peer_record = ResearchRecord(query="rust vs go")
        peer_record.add_search_result(make_result("peer"))
        researcher = StubResearcher(peer_record)
        stages = []

        async def on_stage(stage):
            stages.append(stage)

        llm = FakeLLM(research_handler(["rust performance"]))
        machine = build(llm, rust_go_provider, depth=2, breadth=3, researcher=researcher, on_stage=on_stage)

        report = await machine.run()

        assert report == REPORT
        assert researcher.calls == [("rust vs go", Budget(depth=2, breadth=3))]
        assert machine.record is peer_record
        assert rust_go_provider.queries == []
        assert llm.prompts_for("QueryExpansion") == []
        assert "https://example.com/peer" in llm.prompts_for(None)[0]
        assert stages == ["searching", "synthesizing"]
