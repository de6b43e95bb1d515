"""
Initiative Routes for SmartSpec
Create initiatives, review their task breakdowns, and approve them for Jira.

Lifecycle: Draft -> Reviewing -> Approved -> Uploaded
"""
from fastapi import APIRouter, HTTPException, Request, Depends, Query
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from models.initiative import (
    Initiative, InitiativeStatus, InitiativeCreate, InitiativeConvert,
    InitiativeUpload, Revision, Task, TaskListUpdate
)
from services.errors import (
    InitiativeError, NotFoundError, InvalidStateError, GenerationError, ConflictError
)
from services.initiative_service import InitiativeService
from services.task_generator import TaskGenerator
from services.rate_limit import limit_ai, limit_api_write

import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/initiatives", tags=["initiatives"])


class InitiativeResponse(BaseModel):
    """Initiative with its full revision history"""
    id: str
    title: str
    description: str
    status: InitiativeStatus
    created_at: datetime
    updated_at: datetime
    revisions: List[Revision]
    jira_project_key: Optional[str] = None
    jira_epic_link: Optional[str] = None
    version: int
    warnings: List[str] = []

    @classmethod
    def from_initiative(cls, initiative: Initiative) -> "InitiativeResponse":
        return cls(
            id=initiative.id,
            title=initiative.title,
            description=initiative.description,
            status=initiative.status,
            created_at=initiative.created_at,
            updated_at=initiative.updated_at,
            revisions=initiative.revisions,
            jira_project_key=initiative.jira_project_key,
            jira_epic_link=initiative.jira_epic_link,
            version=initiative.version,
            warnings=list(initiative.warnings),
        )


class ConvertResponse(BaseModel):
    tasks: List[Task]
    metadata: Dict[str, Any]


# ============================================
# Dependencies
# ============================================

def get_initiative_service(request: Request) -> InitiativeService:
    return request.app.state.services.initiatives


def get_task_generator(request: Request) -> TaskGenerator:
    return request.app.state.services.generator


def to_http_exception(error: InitiativeError) -> HTTPException:
    """Map the lifecycle error taxonomy onto HTTP status codes"""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidStateError, ConflictError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, GenerationError):
        return HTTPException(status_code=502, detail=f"Task generation failed: {error}")
    return HTTPException(status_code=500, detail=str(error))


# ============================================
# Endpoints
# ============================================

@router.post("/convert", response_model=ConvertResponse)
@limit_ai()
async def convert_initiative(
    request: Request,
    body: InitiativeConvert,
    generator: TaskGenerator = Depends(get_task_generator)
):
    """Break an initiative into tasks without creating a tracked initiative"""
    try:
        result = await generator.generate(body.initiative)
    except InitiativeError as e:
        raise to_http_exception(e) from e

    return ConvertResponse(
        tasks=result.tasks,
        metadata={
            "initiative": body.initiative,
            "totalTasks": result.metadata["total_tasks"],
            "totalStoryPoints": result.metadata["total_story_points"],
        }
    )


@router.post("", response_model=InitiativeResponse, status_code=201)
@limit_ai()
async def create_initiative(
    request: Request,
    body: InitiativeCreate,
    service: InitiativeService = Depends(get_initiative_service)
):
    """Create an initiative and generate its suggested task breakdown"""
    try:
        initiative = await service.create_initiative(body.title, body.description)
    except InitiativeError as e:
        raise to_http_exception(e) from e
    return InitiativeResponse.from_initiative(initiative)


@router.get("", response_model=List[InitiativeResponse])
async def list_initiatives(
    status: Optional[InitiativeStatus] = Query(None, description="Filter by status"),
    service: InitiativeService = Depends(get_initiative_service)
):
    """List initiatives, optionally filtered by status"""
    if status is not None:
        initiatives = await service.list_by_status(status)
    else:
        initiatives = await service.list_all()
    return [InitiativeResponse.from_initiative(i) for i in initiatives]


@router.get("/{initiative_id}", response_model=InitiativeResponse)
async def get_initiative(
    initiative_id: str,
    service: InitiativeService = Depends(get_initiative_service)
):
    try:
        initiative = await service.get_initiative(initiative_id)
    except InitiativeError as e:
        raise to_http_exception(e) from e
    return InitiativeResponse.from_initiative(initiative)


@router.get("/{initiative_id}/revisions", response_model=List[Revision])
async def list_revisions(
    initiative_id: str,
    service: InitiativeService = Depends(get_initiative_service)
):
    """Revision history, oldest first"""
    try:
        initiative = await service.get_initiative(initiative_id)
    except InitiativeError as e:
        raise to_http_exception(e) from e
    return initiative.revisions


@router.post("/{initiative_id}/revisions", response_model=InitiativeResponse, status_code=201)
@limit_api_write()
async def revise_tasks(
    request: Request,
    initiative_id: str,
    body: TaskListUpdate,
    service: InitiativeService = Depends(get_initiative_service)
):
    """Append a user edit of the task list"""
    try:
        initiative = await service.revise_tasks(initiative_id, body.tasks)
    except InitiativeError as e:
        raise to_http_exception(e) from e
    return InitiativeResponse.from_initiative(initiative)


@router.post("/{initiative_id}/finalize", response_model=InitiativeResponse)
@limit_api_write()
async def finalize_initiative(
    request: Request,
    initiative_id: str,
    body: TaskListUpdate,
    service: InitiativeService = Depends(get_initiative_service)
):
    """Approve the final task list"""
    try:
        initiative = await service.finalize(initiative_id, body.tasks)
    except InitiativeError as e:
        raise to_http_exception(e) from e
    return InitiativeResponse.from_initiative(initiative)


@router.post("/{initiative_id}/upload", response_model=InitiativeResponse)
@limit_api_write()
async def mark_uploaded(
    request: Request,
    initiative_id: str,
    body: InitiativeUpload,
    service: InitiativeService = Depends(get_initiative_service)
):
    """Record that the approved task list was published to Jira"""
    try:
        initiative = await service.mark_uploaded(
            initiative_id,
            jira_project_key=body.jira_project_key,
            jira_epic_link=body.jira_epic_link
        )
    except InitiativeError as e:
        raise to_http_exception(e) from e
    return InitiativeResponse.from_initiative(initiative)
