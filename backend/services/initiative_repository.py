"""
Initiative Repository for SmartSpec
Persists the Initiative aggregate (process row + append-only revisions).

Each call opens its own session from the injected factory.
Concurrent writers to the same initiative are detected through the
version column and surfaced as ConflictError.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from db.models import InitiativeProcess, InitiativeRevision
from models.initiative import Initiative, InitiativeStatus, Revision, RevisionMetadata
from services.errors import ConflictError

logger = logging.getLogger(__name__)


class InitiativeRepositoryProtocol(Protocol):
    async def save(self, initiative: Initiative) -> Initiative:
        ...

    async def find_by_id(self, initiative_id: str) -> Optional[Initiative]:
        ...

    async def find_all(self) -> List[Initiative]:
        ...

    async def find_by_status(self, status: InitiativeStatus) -> List[Initiative]:
        ...


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; every stored timestamp is UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def revision_to_row(revision: Revision, process_id: str) -> InitiativeRevision:
    return InitiativeRevision(
        id=revision.id,
        process_id=process_id,
        timestamp=revision.timestamp,
        type=revision.type.value,
        tasks=[task.model_dump(by_alias=True, mode="json") for task in revision.tasks],
        revision_metadata=revision.metadata.model_dump(mode="json"),
    )


def row_to_revision(row: InitiativeRevision) -> Revision:
    return Revision(
        id=row.id,
        timestamp=as_utc(row.timestamp),
        type=row.type,
        tasks=row.tasks or [],
        metadata=RevisionMetadata(**row.revision_metadata),
    )


def row_to_initiative(row: InitiativeProcess) -> Initiative:
    revisions = sorted((row_to_revision(r) for r in row.revisions), key=lambda r: r.timestamp)
    return Initiative(
        id=row.id,
        title=row.title,
        description=row.description,
        status=row.status,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        revisions=revisions,
        jira_project_key=row.jira_project_key,
        jira_epic_link=row.jira_epic_link,
        version=row.version,
    )


class InitiativeRepository:
    """SQLAlchemy async repository"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def save(self, initiative: Initiative) -> Initiative:
        """
        Insert or update the initiative and insert any revisions not yet stored,
        in a single transaction.

        The initiative's version must match the stored one (0 for a new initiative).
        On success the initiative carries the new version.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    row = await session.get(InitiativeProcess, initiative.id)

                    if row is None:
                        if initiative.version != 0:
                            raise ConflictError(f"Initiative {initiative.id} was removed concurrently")
                        row = InitiativeProcess(id=initiative.id, version=1)
                        session.add(row)
                        stored_revision_ids = set()
                    else:
                        if row.version != initiative.version:
                            raise ConflictError(
                                f"Initiative {initiative.id} was modified concurrently "
                                f"(expected version {initiative.version}, found {row.version})"
                            )
                        row.version = row.version + 1
                        stored_revision_ids = {r.id for r in row.revisions}

                    row.title = initiative.title
                    row.description = initiative.description
                    row.status = initiative.status.value
                    row.created_at = initiative.created_at
                    row.updated_at = initiative.updated_at
                    row.jira_project_key = initiative.jira_project_key
                    row.jira_epic_link = initiative.jira_epic_link

                    # Revisions are append-only: only new ones are written
                    for revision in initiative.revisions:
                        if revision.id not in stored_revision_ids:
                            row.revisions.append(revision_to_row(revision, initiative.id))

                new_version = row.version
        except StaleDataError as e:
            raise ConflictError(f"Initiative {initiative.id} was modified concurrently") from e
        except IntegrityError as e:
            raise ConflictError(f"Initiative {initiative.id} could not be written: {e.orig}") from e

        initiative.version = new_version
        logger.debug(f"Saved initiative {initiative.id} at version {new_version}")
        return initiative

    async def find_by_id(self, initiative_id: str) -> Optional[Initiative]:
        async with self.session_factory() as session:
            row = await session.get(InitiativeProcess, initiative_id)
            return row_to_initiative(row) if row else None

    async def find_all(self) -> List[Initiative]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InitiativeProcess).order_by(InitiativeProcess.created_at)
            )
            return [row_to_initiative(row) for row in result.scalars().all()]

    async def find_by_status(self, status: InitiativeStatus) -> List[Initiative]:
        status_value = status.value if isinstance(status, InitiativeStatus) else status
        async with self.session_factory() as session:
            result = await session.execute(
                select(InitiativeProcess)
                .where(InitiativeProcess.status == status_value)
                .order_by(InitiativeProcess.created_at)
            )
            return [row_to_initiative(row) for row in result.scalars().all()]
