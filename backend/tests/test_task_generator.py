"""
Tests for retrieval-augmented task generation.
"""
import pytest

from services.errors import GenerationError, RetrievalError
from services.metrics_service import InitiativeMetrics
from services.retrieval_service import HistoricalRetriever, NO_SIMILAR_INITIATIVES
from services.task_generator import TaskGenerator
from tests.fakes import ScriptedIndex, ScriptedLLM, SAMPLE_TASKS_JSON, metric_value


def make_generator(llm, index, metrics=None, timeout=5.0):
    return TaskGenerator(llm, HistoricalRetriever(index, timeout=1.0), timeout=timeout, metrics=metrics)


class TestGenerate:
    """Happy path."""

    @pytest.mark.asyncio
    async def test_returns_tasks_and_totals(self):
        generator = make_generator(ScriptedLLM(SAMPLE_TASKS_JSON), ScriptedIndex())
        result = await generator.generate("Implement AI support\nChatbot for tier-1 tickets")
        assert len(result.tasks) == 2
        assert result.metadata == {"total_tasks": 3, "total_story_points": 15}

    @pytest.mark.asyncio
    async def test_prompt_contains_initiative_and_context(self):
        llm = ScriptedLLM(SAMPLE_TASKS_JSON)
        index = ScriptedIndex(results=[
            ({"title": "Mobile App Redesign", "description": "New UI", "category": "Product",
              "priority": "High", "status": "In Progress"}, 0.8765),
        ])
        await make_generator(llm, index).generate("Redesign the web app")

        prompt = llm.prompts[0]["prompt"]
        assert "Redesign the web app" in prompt
        assert "Mobile App Redesign" in prompt
        assert "Similarity Score: 0.88" in prompt
        assert "storyPoints" in llm.prompts[0]["system_prompt"]

    @pytest.mark.asyncio
    async def test_asks_for_three_similar_initiatives(self):
        index = ScriptedIndex()
        await make_generator(ScriptedLLM(SAMPLE_TASKS_JSON), index).generate("Anything")
        assert index.searches == [("Anything", 3)]

    @pytest.mark.asyncio
    async def test_empty_index_uses_sentinel_context(self):
        llm = ScriptedLLM(SAMPLE_TASKS_JSON)
        await make_generator(llm, ScriptedIndex()).generate("Anything")
        assert NO_SIMILAR_INITIATIVES in llm.prompts[0]["prompt"]

    @pytest.mark.asyncio
    async def test_records_metrics(self):
        metrics = InitiativeMetrics()
        await make_generator(ScriptedLLM(SAMPLE_TASKS_JSON), ScriptedIndex(), metrics).generate("Anything")
        assert metric_value(metrics, "tasks_generated_total") == 3
        assert metric_value(metrics, "task_generation_duration_seconds_count", {"status": "success"}) == 1


class TestDegradedRetrieval:
    """Retrieval failures never block generation."""

    @pytest.mark.asyncio
    async def test_retrieval_error_degrades_to_no_context(self):
        metrics = InitiativeMetrics()
        llm = ScriptedLLM(SAMPLE_TASKS_JSON)
        index = ScriptedIndex(search_error=RetrievalError("qdrant down"))

        result = await make_generator(llm, index, metrics).generate("Anything")

        assert len(result.tasks) == 2
        assert NO_SIMILAR_INITIATIVES in llm.prompts[0]["prompt"]
        assert metric_value(metrics, "retrieval_degraded_total") == 1

    @pytest.mark.asyncio
    async def test_unexpected_index_failure_degrades(self):
        index = ScriptedIndex(search_error=ConnectionError("refused"))
        result = await make_generator(ScriptedLLM(SAMPLE_TASKS_JSON), index).generate("Anything")
        assert len(result.tasks) == 2

    @pytest.mark.asyncio
    async def test_slow_index_degrades(self):
        index = ScriptedIndex(search_delay=5.0)
        generator = TaskGenerator(
            ScriptedLLM(SAMPLE_TASKS_JSON), HistoricalRetriever(index, timeout=0.01), timeout=5.0
        )
        result = await generator.generate("Anything")
        assert len(result.tasks) == 2


class TestGenerationFailures:
    """Every model or parse failure surfaces as GenerationError."""

    @pytest.mark.asyncio
    async def test_unparseable_output(self):
        generator = make_generator(ScriptedLLM("Sorry, I can't do that."), ScriptedIndex())
        with pytest.raises(GenerationError):
            await generator.generate("Anything")

    @pytest.mark.asyncio
    async def test_invalid_schema(self):
        generator = make_generator(ScriptedLLM('[{"type": "Epic", "summary": "x"}]'), ScriptedIndex())
        with pytest.raises(GenerationError):
            await generator.generate("Anything")

    @pytest.mark.asyncio
    async def test_deeply_nested_output(self):
        depth = 1000
        nested = '{"type": "Task", "summary": "leaf", "priority": "Low", "storyPoints": 1}'
        for _ in range(depth):
            nested = (
                '{"type": "Story", "summary": "s", "priority": "Low", "storyPoints": 1, '
                f'"subtasks": [{nested}]}}'
            )
        metrics = InitiativeMetrics()
        generator = make_generator(ScriptedLLM(f"[{nested}]"), ScriptedIndex(), metrics)

        with pytest.raises(GenerationError):
            await generator.generate("Anything")
        assert metric_value(metrics, "task_generation_duration_seconds_count", {"status": "error"}) == 1

    @pytest.mark.asyncio
    async def test_model_exception_wrapped(self):
        generator = make_generator(ScriptedLLM(RuntimeError("boom")), ScriptedIndex())
        with pytest.raises(GenerationError):
            await generator.generate("Anything")

    @pytest.mark.asyncio
    async def test_model_timeout(self):
        metrics = InitiativeMetrics()
        generator = make_generator(ScriptedLLM(SAMPLE_TASKS_JSON, delay=5.0), ScriptedIndex(), metrics, timeout=0.01)
        with pytest.raises(GenerationError):
            await generator.generate("Anything")
        assert metric_value(metrics, "task_generation_duration_seconds_count", {"status": "error"}) == 1

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self):
        llm = ScriptedLLM("not json")
        with pytest.raises(GenerationError):
            await make_generator(llm, ScriptedIndex()).generate("Anything")
        assert len(llm.prompts) == 1
