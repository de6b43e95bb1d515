"""
Prometheus metrics for SmartSpec

Business and dependency metrics for the initiative lifecycle:
- Initiatives created, revisions appended by type, tasks generated
- Task generation latency
- Degraded retrievals and failed index mirrors
- Analytics gauges refreshed whenever analytics are queried
"""
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


class InitiativeMetrics:
    """Metric families bound to one registry (one per application instance)"""

    def __init__(self, prefix: str = "smartspec_", registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.prefix = prefix

        self.initiatives_total = Counter(
            f"{prefix}initiatives_total",
            "Total number of initiatives created",
            registry=self.registry,
        )
        self.revisions_total = Counter(
            f"{prefix}revisions_total",
            "Total number of revisions appended",
            ["type"],
            registry=self.registry,
        )
        self.tasks_generated_total = Counter(
            f"{prefix}tasks_generated_total",
            "Total number of tasks generated by the language model",
            registry=self.registry,
        )
        self.task_generation_duration = Histogram(
            f"{prefix}task_generation_duration_seconds",
            "Task generation duration in seconds",
            ["status"],
            buckets=(0.5, 1, 2, 5, 10, 20, 40, 80, 160),
            registry=self.registry,
        )
        self.retrieval_degraded_total = Counter(
            f"{prefix}retrieval_degraded_total",
            "Generations that proceeded without historical context",
            registry=self.registry,
        )
        self.index_failures_total = Counter(
            f"{prefix}index_failures_total",
            "Initiative snapshots that could not be mirrored into the vector index",
            registry=self.registry,
        )

        # Analytics gauges
        self.initiatives_by_status = Gauge(
            f"{prefix}initiatives_by_status",
            "Number of initiatives per status",
            ["status"],
            registry=self.registry,
        )
        self.average_revisions_per_initiative = Gauge(
            f"{prefix}average_revisions_per_initiative",
            "Average number of revisions per initiative",
            registry=self.registry,
        )
        self.average_time_to_approval = Gauge(
            f"{prefix}average_time_to_approval_seconds",
            "Average time from creation to first final revision",
            registry=self.registry,
        )
        self.average_tasks_per_initiative = Gauge(
            f"{prefix}average_tasks_per_initiative",
            "Average number of tasks per initiative",
            registry=self.registry,
        )
        self.average_story_points = Gauge(
            f"{prefix}average_story_points",
            "Average story points per task",
            registry=self.registry,
        )

    def observe_process_metrics(self, metrics) -> None:
        for status, count in metrics.status_distribution.items():
            self.initiatives_by_status.labels(status=status).set(count)
        self.average_revisions_per_initiative.set(metrics.average_revisions_per_process)
        self.average_time_to_approval.set(metrics.average_time_to_approval)

    def observe_performance_metrics(self, metrics) -> None:
        self.average_tasks_per_initiative.set(metrics.average_tasks_per_process)
        self.average_story_points.set(metrics.average_story_points)

    def export(self) -> bytes:
        return generate_latest(self.registry)

    content_type = CONTENT_TYPE_LATEST
