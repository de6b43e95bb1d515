"""
Tests for the SQLAlchemy initiative repository against SQLite (aiosqlite).
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from db.database import create_engine, create_session_factory, init_db
from db.models import InitiativeRevision
from models.initiative import Initiative, InitiativeStatus, RevisionType, Task
from services.errors import ConflictError
from services.initiative_repository import InitiativeRepository, as_utc
from services.revision_ledger import build_revision
from tests.fakes import SAMPLE_TASKS, task_payload


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'smartspec.db'}")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def repo(session_factory):
    return InitiativeRepository(session_factory)


def make_initiative(title="Build Auth", created_at=NOW):
    initiative = Initiative(title=title, description="OAuth2 with social login",
                            created_at=created_at, updated_at=created_at)
    tasks = [Task.model_validate(p) for p in SAMPLE_TASKS]
    initiative.revisions.append(build_revision(RevisionType.SUGGESTION, tasks, now=created_at))
    initiative.status = InitiativeStatus.REVIEWING
    return initiative


class TestSave:

    @pytest.mark.asyncio
    async def test_round_trip(self, repo):
        initiative = make_initiative()
        saved = await repo.save(initiative)
        assert saved.version == 1

        loaded = await repo.find_by_id(initiative.id)

        assert loaded.title == "Build Auth"
        assert loaded.status == InitiativeStatus.REVIEWING
        assert loaded.created_at == NOW
        assert loaded.created_at.tzinfo is not None
        assert loaded.version == 1
        assert len(loaded.revisions) == 1
        revision = loaded.revisions[0]
        assert revision.id == initiative.revisions[0].id
        assert revision.type == RevisionType.SUGGESTION
        assert revision.tasks == initiative.revisions[0].tasks
        assert revision.metadata.total_tasks == 3
        assert revision.metadata.total_story_points == 15

    @pytest.mark.asyncio
    async def test_tasks_stored_with_wire_keys(self, repo, session_factory):
        initiative = await repo.save(make_initiative())

        async with session_factory() as session:
            row = (await session.execute(
                select(InitiativeRevision).where(InitiativeRevision.process_id == initiative.id)
            )).scalar_one()

        assert row.tasks[0]["storyPoints"] == 5
        assert row.tasks[0]["type"] == "Story"
        assert row.revision_metadata["total_tasks"] == 3

    @pytest.mark.asyncio
    async def test_appends_new_revisions_only(self, repo, session_factory):
        initiative = await repo.save(make_initiative())
        loaded = await repo.find_by_id(initiative.id)

        edit = build_revision(
            RevisionType.USER_EDIT, [Task.model_validate(task_payload("Only task"))],
            previous=loaded.latest_revision, now=NOW + timedelta(minutes=5)
        )
        loaded.revisions.append(edit)
        loaded.updated_at = edit.timestamp
        saved = await repo.save(loaded)

        assert saved.version == 2
        reloaded = await repo.find_by_id(initiative.id)
        assert [r.type for r in reloaded.revisions] == [RevisionType.SUGGESTION, RevisionType.USER_EDIT]
        assert reloaded.revisions[1].metadata.edit_distance == 3
        assert reloaded.updated_at == NOW + timedelta(minutes=5)

        async with session_factory() as session:
            rows = (await session.execute(select(InitiativeRevision))).scalars().all()
        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, repo):
        initiative = await repo.save(make_initiative())
        first = await repo.find_by_id(initiative.id)
        second = await repo.find_by_id(initiative.id)

        first.status = InitiativeStatus.APPROVED
        await repo.save(first)

        second.title = "Lost update"
        with pytest.raises(ConflictError):
            await repo.save(second)

        stored = await repo.find_by_id(initiative.id)
        assert stored.title == "Build Auth"
        assert stored.status == InitiativeStatus.APPROVED
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_duplicate_create_conflicts(self, repo):
        initiative = make_initiative()
        await repo.save(initiative.model_copy(deep=True))
        with pytest.raises(ConflictError):
            await repo.save(initiative)

    @pytest.mark.asyncio
    async def test_conflicting_save_writes_no_revisions(self, repo, session_factory):
        initiative = await repo.save(make_initiative())
        stale = await repo.find_by_id(initiative.id)
        await repo.save(await repo.find_by_id(initiative.id))

        stale.revisions.append(build_revision(
            RevisionType.USER_EDIT, stale.latest_revision.tasks,
            previous=stale.latest_revision, now=NOW + timedelta(minutes=1)
        ))
        with pytest.raises(ConflictError):
            await repo.save(stale)

        async with session_factory() as session:
            rows = (await session.execute(select(InitiativeRevision))).scalars().all()
        assert len(rows) == 1


class TestQueries:

    @pytest.mark.asyncio
    async def test_find_missing(self, repo):
        assert await repo.find_by_id("init_missing") is None

    @pytest.mark.asyncio
    async def test_find_all_ordered_by_creation(self, repo):
        later = await repo.save(make_initiative("Later", NOW + timedelta(days=1)))
        earlier = await repo.save(make_initiative("Earlier", NOW))

        assert [i.id for i in await repo.find_all()] == [earlier.id, later.id]

    @pytest.mark.asyncio
    async def test_find_by_status(self, repo):
        reviewing = await repo.save(make_initiative("Reviewing"))
        draft = make_initiative("Draft", NOW + timedelta(hours=1))
        draft.status = InitiativeStatus.DRAFT
        await repo.save(draft)

        found = await repo.find_by_status(InitiativeStatus.REVIEWING)
        assert [i.id for i in found] == [reviewing.id]
        assert await repo.find_by_status(InitiativeStatus.UPLOADED) == []


class TestAsUtc:

    def test_naive_is_assumed_utc(self):
        assert as_utc(datetime(2026, 3, 2, 9, 0)) == NOW

    def test_aware_is_converted(self):
        offset = timezone(timedelta(hours=2))
        assert as_utc(datetime(2026, 3, 2, 11, 0, tzinfo=offset)) == NOW
        assert as_utc(datetime(2026, 3, 2, 11, 0, tzinfo=offset)).tzinfo == timezone.utc
