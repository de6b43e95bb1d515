from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid


# Tree bounds enforced on every parsed or submitted task list
MAX_TASK_DEPTH = 5
MAX_TREE_SIZE = 200


class InitiativeStatus(str, Enum):
    DRAFT = "Draft"
    REVIEWING = "Reviewing"
    APPROVED = "Approved"
    UPLOADED = "Uploaded"


# Status ordering for monotonic progression
STATUS_ORDER = {
    InitiativeStatus.DRAFT: 0,
    InitiativeStatus.REVIEWING: 1,
    InitiativeStatus.APPROVED: 2,
    InitiativeStatus.UPLOADED: 3,
}


class RevisionType(str, Enum):
    SUGGESTION = "suggestion"
    USER_EDIT = "user_edit"
    FINAL = "final"


class TaskKind(str, Enum):
    STORY = "Story"
    TASK = "Task"
    BUG = "Bug"


class TaskPriority(str, Enum):
    HIGHEST = "Highest"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    LOWEST = "Lowest"


def generate_id(prefix: str = "") -> str:
    """Generate a prefixed short UUID"""
    return f"{prefix}{uuid.uuid4().hex[:12]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Task(BaseModel):
    """A unit of work. Value object owned by the revision that contains it."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    kind: TaskKind = Field(alias="type", description="Type of the JIRA task")
    summary: str = Field(min_length=1, description="A concise title for the task")
    description: str = Field(description="Detailed description of the task")
    priority: TaskPriority = Field(description="Priority level of the task")
    story_points: int = Field(alias="storyPoints", ge=1, le=13, description="Story points estimation (1-13)")
    subtasks: List["Task"] = Field(default_factory=list, description="Optional subtasks")

    @field_validator("subtasks", mode="before")
    @classmethod
    def none_means_no_subtasks(cls, v):
        return [] if v is None else v


class TaskTreeError(ValueError):
    """Raised when a task tree exceeds the depth or size bounds"""
    pass


def check_tree_bounds(
    tasks: List[Task],
    max_depth: int = MAX_TASK_DEPTH,
    max_size: int = MAX_TREE_SIZE
) -> List[Task]:
    """Reject trees that nest deeper than max_depth or hold more than max_size nodes"""
    size = 0
    stack = [(task, 1) for task in tasks]
    while stack:
        task, depth = stack.pop()
        if depth > max_depth:
            raise TaskTreeError(f"Task tree exceeds maximum depth of {max_depth}")
        size += 1
        if size > max_size:
            raise TaskTreeError(f"Task tree exceeds maximum size of {max_size} tasks")
        stack.extend((sub, depth + 1) for sub in task.subtasks)
    return tasks


class TaskTree(BaseModel):
    """Validated, bounded list of top-level tasks"""
    tasks: List[Task]

    @field_validator("tasks")
    @classmethod
    def validate_bounds(cls, v: List[Task]) -> List[Task]:
        return check_tree_bounds(v)


class RevisionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_tasks: int = Field(ge=0)
    total_story_points: int = Field(ge=0)
    accuracy: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    edit_distance: Optional[int] = Field(default=None, ge=0)


class Revision(BaseModel):
    """Immutable snapshot of an initiative's full task list"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("rev_"))
    timestamp: datetime = Field(default_factory=utc_now)
    type: RevisionType
    tasks: List[Task] = Field(default_factory=list)
    metadata: RevisionMetadata


class Initiative(BaseModel):
    """Initiative aggregate: the process row plus its append-only revision log"""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: generate_id("init_"))
    title: str
    description: str
    status: InitiativeStatus = InitiativeStatus.DRAFT
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    revisions: List[Revision] = Field(default_factory=list)
    jira_project_key: Optional[str] = None
    jira_epic_link: Optional[str] = None

    # Optimistic concurrency token, owned by the repository (0 = never saved)
    version: int = 0
    # Degraded side effects of the last operation; never persisted
    warnings: List[str] = Field(default_factory=list, exclude=True)

    @property
    def latest_revision(self) -> Optional[Revision]:
        return self.revisions[-1] if self.revisions else None

    @property
    def suggestion_revision(self) -> Optional[Revision]:
        return next((r for r in self.revisions if r.type == RevisionType.SUGGESTION), None)

    @property
    def final_revision(self) -> Optional[Revision]:
        return next((r for r in self.revisions if r.type == RevisionType.FINAL), None)


# Request/Response models
class InitiativeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str = ""


class InitiativeConvert(BaseModel):
    initiative: str = Field(min_length=1)


class TaskListUpdate(TaskTree):
    pass


class InitiativeUpload(BaseModel):
    jira_project_key: Optional[str] = None
    jira_epic_link: Optional[str] = None
