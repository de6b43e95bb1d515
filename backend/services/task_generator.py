"""
Task Generator for SmartSpec
Breaks an initiative into a validated Jira task tree.

Pipeline:
1. Retrieve similar historical initiatives (degrades to no context on failure)
2. Render the breakdown prompt with context and format instructions
3. Call the language model, bounded by the generation timeout
4. Extract and validate the task tree, then derive totals
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from models.initiative import Task
from services.errors import GenerationError, RetrievalError
from services.metrics_service import InitiativeMetrics
from services.retrieval_service import HistoricalRetriever, NO_SIMILAR_INITIATIVES
from services.revision_ledger import count_tasks, sum_story_points
from services.strict_output_service import StrictOutputService

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        ...


# ============================================
# Prompts
# ============================================

BREAKDOWN_SYSTEM = """You are an expert project manager and technical lead.
You break business initiatives down into well-structured JIRA tasks.

Guidelines:
1. Break down the initiative into logical, manageable tasks
2. Each task should be specific, measurable, and achievable
3. Include appropriate story points (1-13) based on complexity
4. Set realistic priorities
5. Include subtasks where necessary
6. Use clear, concise language

{format_instructions}"""


BREAKDOWN_USER = """Break down this initiative into JIRA tasks:

INITIATIVE:
{initiative}

SIMILAR PAST INITIATIVES (use for consistency of scope and estimates):
{context}

Return only valid JSON. No markdown fences, no commentary."""


@dataclass
class GenerationResult:
    tasks: List[Task]
    metadata: Dict[str, int] = field(default_factory=dict)


class TaskGenerator:
    """Retrieval-augmented task breakdown"""

    def __init__(
        self,
        llm: TextGenerator,
        retriever: HistoricalRetriever,
        strict_output: Optional[StrictOutputService] = None,
        similar_limit: int = 3,
        timeout: float = 120.0,
        metrics: Optional[InitiativeMetrics] = None
    ):
        self.llm = llm
        self.retriever = retriever
        self.strict_output = strict_output or StrictOutputService()
        self.similar_limit = similar_limit
        self.timeout = timeout
        self.metrics = metrics

    async def build_context(self, initiative_text: str) -> str:
        """Similar-initiative context block; never fails"""
        try:
            matches = await self.retriever.find_similar(initiative_text, self.similar_limit)
        except RetrievalError as e:
            logger.warning(f"Retrieval degraded, generating without context: {e}")
            if self.metrics:
                self.metrics.retrieval_degraded_total.inc()
            return NO_SIMILAR_INITIATIVES
        return self.retriever.format_context(matches)

    def build_prompts(self, initiative_text: str, context: str) -> tuple:
        system_prompt = BREAKDOWN_SYSTEM.format(
            format_instructions=self.strict_output.format_instructions()
        )
        user_prompt = BREAKDOWN_USER.format(initiative=initiative_text, context=context)
        return system_prompt, user_prompt

    async def generate(self, initiative_text: str) -> GenerationResult:
        """
        Generate a task tree for the initiative text.
        Model failures, timeouts and unparseable output all raise GenerationError.
        """
        start = time.perf_counter()
        status = "error"
        try:
            context = await self.build_context(initiative_text)
            system_prompt, user_prompt = self.build_prompts(initiative_text, context)

            try:
                raw = await asyncio.wait_for(
                    self.llm.generate(user_prompt, system_prompt=system_prompt),
                    timeout=self.timeout
                )
            except GenerationError:
                raise
            except asyncio.TimeoutError as e:
                raise GenerationError(f"Task generation timed out after {self.timeout}s") from e
            except Exception as e:
                raise GenerationError(f"Task generation failed: {e}") from e

            try:
                result = self.strict_output.validate_tasks(raw)
            except Exception as e:
                raise GenerationError(f"Model output could not be parsed: {e}") from e
            if not result.valid:
                logger.warning(f"Rejected model output: {'; '.join(result.errors[:5])}")
                raise GenerationError(f"Model output failed validation: {'; '.join(result.errors[:5])}")

            total_tasks = count_tasks(result.tasks)
            status = "success"
            if self.metrics:
                self.metrics.tasks_generated_total.inc(total_tasks)
            logger.info(f"Generated {total_tasks} tasks in {time.perf_counter() - start:.2f}s")

            return GenerationResult(
                tasks=result.tasks,
                metadata={
                    "total_tasks": total_tasks,
                    "total_story_points": sum_story_points(result.tasks),
                }
            )
        finally:
            if self.metrics:
                self.metrics.task_generation_duration.labels(status=status).observe(
                    time.perf_counter() - start
                )
