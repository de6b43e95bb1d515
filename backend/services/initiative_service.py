"""
Initiative Lifecycle Service for SmartSpec

Owns the Draft -> Reviewing -> Approved -> Uploaded state machine:
- create_initiative: generate a suggestion, move to Reviewing
- revise_tasks: append a user edit (Reviewing only)
- finalize: append the final revision, move to Approved
- mark_uploaded: record the Jira publish, move to Uploaded

Every mutation persists exactly once, then mirrors the latest snapshot
into the vector index on a best-effort basis.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from models.initiative import (
    Initiative, InitiativeStatus, RevisionType, Task, TaskPriority, STATUS_ORDER, utc_now
)
from services.errors import InvalidStateError, NotFoundError
from services.initiative_repository import InitiativeRepositoryProtocol
from services.logging_service import log_operation
from services.metrics_service import InitiativeMetrics
from services.revision_ledger import build_revision
from services.task_generator import TaskGenerator
from services.vector_service import VectorIndex

logger = logging.getLogger(__name__)


def initiative_text(title: str, description: str) -> str:
    return f"{title}\n{description}"


class InitiativeService:
    """Service for initiative lifecycle management with server-side enforcement"""

    def __init__(
        self,
        repository: InitiativeRepositoryProtocol,
        generator: TaskGenerator,
        index: VectorIndex,
        clock: Optional[Callable[[], datetime]] = None,
        index_timeout: float = 10.0,
        metrics: Optional[InitiativeMetrics] = None
    ):
        self.repository = repository
        self.generator = generator
        self.index = index
        self.clock = clock or utc_now
        self.index_timeout = index_timeout
        self.metrics = metrics

    # ============================================
    # State machine
    # ============================================

    def can_advance_status(self, current: InitiativeStatus, target: InitiativeStatus) -> bool:
        """Check if status advancement is valid (forward by exactly one step)"""
        try:
            current_enum = InitiativeStatus(current)
            target_enum = InitiativeStatus(target)
        except ValueError:
            return False
        return STATUS_ORDER[target_enum] == STATUS_ORDER[current_enum] + 1

    def _advance(self, initiative: Initiative, target: InitiativeStatus) -> None:
        if not self.can_advance_status(initiative.status, target):
            raise InvalidStateError(
                f"Cannot move initiative {initiative.id} from {initiative.status.value} to {target.value}"
            )
        initiative.status = target

    async def _load(self, initiative_id: str) -> Initiative:
        initiative = await self.repository.find_by_id(initiative_id)
        if initiative is None:
            raise NotFoundError(initiative_id)
        return initiative

    # ============================================
    # Persistence + index mirror
    # ============================================

    async def _persist(self, initiative: Initiative, revision_type: Optional[RevisionType] = None) -> Initiative:
        saved = await self.repository.save(initiative)
        if self.metrics and revision_type is not None:
            self.metrics.revisions_total.labels(type=revision_type.value).inc()
        await self._mirror(saved)
        return saved

    def _index_payload(self, initiative: Initiative) -> dict:
        latest = initiative.latest_revision
        payload = {
            "id": initiative.id,
            "title": initiative.title,
            "description": initiative.description,
            "status": initiative.status.value,
            "timestamp": initiative.updated_at.isoformat(),
        }
        if latest is not None:
            payload["tasks"] = [t.model_dump(by_alias=True, mode="json") for t in latest.tasks]
            payload["total_tasks"] = latest.metadata.total_tasks
            payload["total_story_points"] = latest.metadata.total_story_points
            if latest.tasks:
                # Most urgent top-level priority stands in for the initiative's own
                payload["priority"] = min(
                    (t.priority for t in latest.tasks), key=list(TaskPriority).index
                ).value
        return payload

    async def _mirror(self, initiative: Initiative) -> None:
        """Upsert the latest snapshot; failures never undo the committed write"""
        try:
            await asyncio.wait_for(
                self.index.upsert(
                    initiative.id,
                    initiative_text(initiative.title, initiative.description),
                    self._index_payload(initiative)
                ),
                timeout=self.index_timeout
            )
        except asyncio.TimeoutError:
            self._index_failed(initiative, f"timed out after {self.index_timeout}s")
        except Exception as e:
            self._index_failed(initiative, str(e) or type(e).__name__)

    def _index_failed(self, initiative: Initiative, reason: str) -> None:
        message = f"Index update failed for initiative {initiative.id}: {reason}"
        logger.warning(message)
        if self.metrics:
            self.metrics.index_failures_total.inc()
        initiative.warnings.append(message)

    # ============================================
    # Lifecycle operations
    # ============================================

    @log_operation("create_initiative")
    async def create_initiative(self, title: str, description: str = "") -> Initiative:
        """
        Create an initiative and its suggested task breakdown.
        GenerationError propagates and nothing is persisted.
        """
        now = self.clock()
        initiative = Initiative(title=title, description=description, created_at=now, updated_at=now)

        result = await self.generator.generate(initiative_text(title, description))

        revision = build_revision(RevisionType.SUGGESTION, result.tasks, now=now)
        initiative.revisions.append(revision)
        self._advance(initiative, InitiativeStatus.REVIEWING)

        saved = await self._persist(initiative, RevisionType.SUGGESTION)
        if self.metrics:
            self.metrics.initiatives_total.inc()
        logger.info(f"Created initiative {saved.id} with {revision.metadata.total_tasks} suggested tasks")
        return saved

    @log_operation("revise_tasks")
    async def revise_tasks(self, initiative_id: str, tasks: List[Task]) -> Initiative:
        """Append a user edit. Only legal while the initiative is under review."""
        initiative = await self._load(initiative_id)
        if initiative.status != InitiativeStatus.REVIEWING:
            raise InvalidStateError(
                f"Initiative {initiative_id} is {initiative.status.value}; edits are only allowed while Reviewing"
            )

        revision = build_revision(
            RevisionType.USER_EDIT,
            tasks,
            previous=initiative.latest_revision,
            now=self.clock()
        )
        initiative.revisions.append(revision)
        initiative.updated_at = revision.timestamp

        return await self._persist(initiative, RevisionType.USER_EDIT)

    @log_operation("finalize")
    async def finalize(self, initiative_id: str, tasks: List[Task]) -> Initiative:
        """Append the final revision, scored against the first suggestion, and approve."""
        initiative = await self._load(initiative_id)

        suggestion = initiative.suggestion_revision
        if suggestion is None:
            raise InvalidStateError(f"Initiative {initiative_id} has no suggestion to finalize")
        if STATUS_ORDER[initiative.status] > STATUS_ORDER[InitiativeStatus.REVIEWING]:
            raise InvalidStateError(f"Initiative {initiative_id} is already {initiative.status.value}")

        revision = build_revision(
            RevisionType.FINAL,
            tasks,
            previous=initiative.latest_revision,
            baseline=suggestion,
            now=self.clock()
        )
        self._advance(initiative, InitiativeStatus.APPROVED)
        initiative.revisions.append(revision)
        initiative.updated_at = revision.timestamp

        saved = await self._persist(initiative, RevisionType.FINAL)
        logger.info(f"Finalized initiative {saved.id} with accuracy {revision.metadata.accuracy:.2f}")
        return saved

    @log_operation("mark_uploaded")
    async def mark_uploaded(
        self,
        initiative_id: str,
        jira_project_key: Optional[str] = None,
        jira_epic_link: Optional[str] = None
    ) -> Initiative:
        """Record a successful publish of the approved task list to Jira."""
        initiative = await self._load(initiative_id)
        if initiative.status != InitiativeStatus.APPROVED or initiative.final_revision is None:
            raise InvalidStateError(
                f"Initiative {initiative_id} must be Approved with a final revision before upload"
            )

        self._advance(initiative, InitiativeStatus.UPLOADED)
        initiative.jira_project_key = jira_project_key
        initiative.jira_epic_link = jira_epic_link
        now = self.clock()
        if now > initiative.updated_at:
            initiative.updated_at = now

        return await self._persist(initiative)

    # ============================================
    # Queries
    # ============================================

    async def get_initiative(self, initiative_id: str) -> Initiative:
        return await self._load(initiative_id)

    async def list_all(self) -> List[Initiative]:
        return await self.repository.find_all()

    async def list_by_status(self, status: InitiativeStatus) -> List[Initiative]:
        return await self.repository.find_by_status(status)
