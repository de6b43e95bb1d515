"""
Analytics Service for SmartSpec
Read-only aggregation over persisted initiatives and their revision history

Features:
- Process metrics: status mix, revision counts, time to approval
- Trends: initiatives created per day over a trailing window
- Performance: task counts, type/priority mix and story points of approved breakdowns
"""
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from models.initiative import (
    Initiative, InitiativeStatus, Revision, RevisionType, Task, TaskKind, TaskPriority, utc_now
)
from services.initiative_repository import InitiativeRepositoryProtocol, as_utc
from services.revision_ledger import count_tasks, sum_story_points

logger = logging.getLogger(__name__)


class ProcessMetrics(BaseModel):
    total_processes: int = 0
    status_distribution: Dict[str, int] = Field(default_factory=dict)
    average_revisions_per_process: float = 0.0
    # Seconds from creation to the first final revision
    average_time_to_approval: float = 0.0
    revision_type_distribution: Dict[str, int] = Field(default_factory=dict)


class ProcessTrends(BaseModel):
    daily_processes: Dict[str, int] = Field(default_factory=dict)
    status_changes: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class PerformanceMetrics(BaseModel):
    average_tasks_per_process: float = 0.0
    task_distribution_by_type: Dict[str, int] = Field(default_factory=dict)
    priority_distribution: Dict[str, int] = Field(default_factory=dict)
    average_story_points: float = 0.0


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _in_window(initiative: Initiative, start_date: Optional[datetime], end_date: Optional[datetime]) -> bool:
    if start_date is not None and initiative.created_at < start_date:
        return False
    if end_date is not None and initiative.created_at > end_date:
        return False
    return True


def _walk(tasks: List[Task]):
    stack = list(tasks)
    while stack:
        task = stack.pop()
        yield task
        stack.extend(task.subtasks)


def _scored_revision(initiative: Initiative) -> Optional[Revision]:
    """The first final revision, else the latest one"""
    return initiative.final_revision or initiative.latest_revision


class AnalyticsService:
    """Aggregates lifecycle statistics; never mutates state"""

    def __init__(
        self,
        repository: InitiativeRepositoryProtocol,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.repository = repository
        self.clock = clock or utc_now

    async def _load(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> List[Initiative]:
        # Naive bounds are taken as UTC
        start_date = as_utc(start_date) if start_date else None
        end_date = as_utc(end_date) if end_date else None
        initiatives = await self.repository.find_all()
        return [i for i in initiatives if _in_window(i, start_date, end_date)]

    async def get_process_metrics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> ProcessMetrics:
        initiatives = await self._load(start_date, end_date)

        status_distribution = {s.value: 0 for s in InitiativeStatus}
        revision_type_distribution = {t.value: 0 for t in RevisionType}
        total_revisions = 0
        approval_seconds = 0.0
        approved = 0

        for initiative in initiatives:
            status_distribution[initiative.status.value] += 1
            total_revisions += len(initiative.revisions)
            for revision in initiative.revisions:
                revision_type_distribution[revision.type.value] += 1

            final = initiative.final_revision
            if final is not None:
                approval_seconds += (final.timestamp - initiative.created_at).total_seconds()
                approved += 1

        return ProcessMetrics(
            total_processes=len(initiatives),
            status_distribution=status_distribution,
            average_revisions_per_process=_ratio(total_revisions, len(initiatives)),
            average_time_to_approval=_ratio(approval_seconds, approved),
            revision_type_distribution=revision_type_distribution,
        )

    async def get_process_trends(self, days: int = 30) -> ProcessTrends:
        """Initiatives created on each of the last `days` calendar days (UTC), today included"""
        if days < 1:
            raise ValueError("days must be at least 1")

        today = self.clock().date()
        window: List[date] = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
        keys = {day: day.isoformat() for day in window}

        daily_processes = {key: 0 for key in keys.values()}
        status_changes = {key: {s.value: 0 for s in InitiativeStatus} for key in keys.values()}

        for initiative in await self.repository.find_all():
            key = keys.get(initiative.created_at.date())
            if key is None:
                continue
            daily_processes[key] += 1
            status_changes[key][initiative.status.value] += 1

        return ProcessTrends(daily_processes=daily_processes, status_changes=status_changes)

    async def get_performance_metrics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> PerformanceMetrics:
        initiatives = await self._load(start_date, end_date)

        task_distribution_by_type = {k.value: 0 for k in TaskKind}
        priority_distribution = {p.value: 0 for p in TaskPriority}
        total_tasks = 0
        total_story_points = 0

        for initiative in initiatives:
            revision = _scored_revision(initiative)
            if revision is None:
                continue
            total_tasks += count_tasks(revision.tasks)
            total_story_points += sum_story_points(revision.tasks)
            for task in _walk(revision.tasks):
                task_distribution_by_type[task.kind.value] += 1
                priority_distribution[task.priority.value] += 1

        logger.debug(f"Performance metrics over {len(initiatives)} initiatives, {total_tasks} tasks")
        return PerformanceMetrics(
            average_tasks_per_process=_ratio(total_tasks, len(initiatives)),
            task_distribution_by_type=task_distribution_by_type,
            priority_distribution=priority_distribution,
            average_story_points=_ratio(total_story_points, total_tasks),
        )
