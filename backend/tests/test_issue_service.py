"""
Tracklane Backend: Issue Service Tests
=========================================

What:  Issue creation, reads, typed mutations, soft delete and the rename
       cascade.
How:   Orchestration checked against mocks; data behaviour checked against
       the SQLite test database.
"""

import pytest
from sqlalchemy import select
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from tracklane.config import settings
from tracklane.exceptions import DatabaseError, NotFoundError, ValidationError
from tracklane.models.issue import Issue, IssueChangeEvent, IssueStatus
from tracklane.models.sequence import SequenceCounter
from tracklane.schemas.events import PriorityChange, StatusChange
from tracklane.schemas.issue import IssueCreate
from tracklane.services.issue_service import IssueService, issue_service
from tracklane.services.team_service import team_service

ACTOR = uuid4()


async def _create(factory, summary="Login fails", team_key="ENG", **fields):
    async with factory() as session:
        async with session.begin():
            return await issue_service.create_issue(
                session, "acme", team_key, ACTOR, IssueCreate(summary=summary, **fields)
            )


async def _events(factory, issue_id):
    async with factory() as session:
        result = await session.execute(
            select(IssueChangeEvent)
            .where(IssueChangeEvent.issue_id == issue_id)
            .order_by(IssueChangeEvent.id)
        )
        return list(result.scalars().all())


class TestIssueServiceCreateOrchestration:
    """create_issue wiring, without a database."""

    def setup_method(self):
        self.service = IssueService()

    @pytest.mark.asyncio
    async def test_key_built_from_team_and_allocated_number(self, mock_db_session):
        team = MagicMock(key="ENG", id=uuid4(), workspace_id=uuid4())

        with patch("tracklane.services.issue_service.get_team_by_key",
                   AsyncMock(return_value=team)), \
             patch("tracklane.services.issue_service.sequence_allocator") as mock_alloc:
            mock_alloc.next = AsyncMock(return_value=42)

            issue = await self.service.create_issue(
                mock_db_session, "acme", "eng", ACTOR, IssueCreate(summary="x")
            )

        assert issue.key == "ENG-42"
        assert issue.key_number == 42
        assert issue.created_by_id == ACTOR
        mock_alloc.next.assert_awaited_once_with(mock_db_session, team.workspace_id, team.id)
        # issue row, then its issue_created event
        assert mock_db_session.add.call_count == 2
        event = mock_db_session.add.call_args_list[1].args[0]
        assert isinstance(event, IssueChangeEvent)
        assert event.event_type == "issue_created"

    @pytest.mark.asyncio
    async def test_duplicate_number_becomes_database_error(self, mock_db_session):
        from sqlalchemy.exc import IntegrityError

        team = MagicMock(key="ENG", id=uuid4(), workspace_id=uuid4())
        mock_db_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("duplicate key"))
        )

        with patch("tracklane.services.issue_service.get_team_by_key",
                   AsyncMock(return_value=team)), \
             patch("tracklane.services.issue_service.sequence_allocator") as mock_alloc:
            mock_alloc.next = AsyncMock(return_value=1)

            with pytest.raises(DatabaseError):
                await self.service.create_issue(
                    mock_db_session, "acme", "ENG", ACTOR, IssueCreate(summary="x")
                )


class TestIssueServiceCreate:

    @pytest.mark.asyncio
    async def test_first_issues_are_numbered_from_one(self, session_factory, seeded_team):
        first = await _create(session_factory)
        second = await _create(session_factory, summary="Signup fails")

        assert (first.key, first.key_number) == ("ENG-1", 1)
        assert (second.key, second.key_number) == ("ENG-2", 2)
        events = await _events(session_factory, first.id)
        assert [e.event_type for e in events] == ["issue_created"]
        assert events[0].actor_id == ACTOR

    @pytest.mark.asyncio
    async def test_unknown_team(self, session_factory, seeded_team):
        with pytest.raises(NotFoundError):
            await _create(session_factory, team_key="NOPE")

    @pytest.mark.asyncio
    async def test_bulk_is_contiguous_and_ordered(self, session_factory, seeded_team):
        await _create(session_factory)

        async with session_factory() as session:
            async with session.begin():
                issues = await issue_service.create_many_issues(
                    session, "acme", "ENG", ACTOR,
                    [IssueCreate(summary=f"Task {i}") for i in range(4)],
                )

        assert [i.key for i in issues] == ["ENG-2", "ENG-3", "ENG-4", "ENG-5"]
        assert [i.summary for i in issues] == ["Task 0", "Task 1", "Task 2", "Task 3"]
        for issue in issues:
            assert len(await _events(session_factory, issue.id)) == 1

    @pytest.mark.asyncio
    async def test_bulk_over_limit(self, session_factory, seeded_team, monkeypatch):
        monkeypatch.setattr(settings, "bulk_create_max", 2)

        async with session_factory() as session:
            async with session.begin():
                with pytest.raises(ValidationError):
                    await issue_service.create_many_issues(
                        session, "acme", "ENG", ACTOR,
                        [IssueCreate(summary="x") for _ in range(3)],
                    )

        # Nothing was allocated
        assert (await _create(session_factory)).key == "ENG-1"

    @pytest.mark.asyncio
    async def test_failed_create_does_not_leak_number(self, session_factory, seeded_team):
        with pytest.raises(RuntimeError):
            async with session_factory() as session:
                async with session.begin():
                    await issue_service.create_issue(
                        session, "acme", "ENG", ACTOR, IssueCreate(summary="x")
                    )
                    raise RuntimeError("request aborted")

        assert (await _create(session_factory)).key == "ENG-1"


class TestIssueServiceRead:

    @pytest.mark.asyncio
    async def test_get_by_key_with_events(self, session_factory, seeded_team):
        created = await _create(session_factory)

        async with session_factory() as session:
            issue = await issue_service.get_issue_by_key(
                session, "acme", "eng-1", with_events=True
            )
            assert issue.id == created.id
            assert [e.event_type for e in issue.events] == ["issue_created"]

    @pytest.mark.asyncio
    async def test_malformed_key(self, session_factory, seeded_team):
        async with session_factory() as session:
            with pytest.raises(ValidationError):
                await issue_service.get_issue_by_key(session, "acme", "ENG42")

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, session_factory, seeded_team):
        await _create(session_factory, summary="a")
        await _create(session_factory, summary="b", status=IssueStatus.DONE)
        await _create(session_factory, summary="c")

        async with session_factory() as session:
            everything = await issue_service.list_team_issues(session, "acme", "ENG")
            done = await issue_service.list_team_issues(
                session, "acme", "ENG", statuses=[IssueStatus.DONE]
            )

        assert [i.key for i in everything] == ["ENG-1", "ENG-2", "ENG-3"]
        assert [i.key for i in done] == ["ENG-2"]

    @pytest.mark.asyncio
    async def test_zero_padded_key_is_malformed(self, session_factory, seeded_team):
        await _create(session_factory)

        async with session_factory() as session:
            with pytest.raises(ValidationError):
                await issue_service.get_issue_by_key(session, "acme", "ENG-0001")


class TestListWorkspaceIssues:

    @pytest.mark.asyncio
    async def test_all_teams_grouped_by_team_key(self, session_factory, seeded_team):
        async with session_factory() as session:
            async with session.begin():
                await team_service.create_team(session, "acme", "Design", "DES")

        await _create(session_factory, summary="a")
        await _create(session_factory, summary="b", team_key="DES")
        await _create(session_factory, summary="c")

        async with session_factory() as session:
            issues = await issue_service.list_workspace_issues(session, "acme")

        assert [i.key for i in issues] == ["DES-1", "ENG-1", "ENG-2"]

    @pytest.mark.asyncio
    async def test_status_filter_and_deleted_excluded(self, session_factory, seeded_team):
        await _create(session_factory, summary="a", status=IssueStatus.DONE)
        await _create(session_factory, summary="b", status=IssueStatus.DONE)
        await _create(session_factory, summary="c")
        async with session_factory() as session:
            async with session.begin():
                await issue_service.soft_delete_issue(session, "acme", "ENG-1")

        async with session_factory() as session:
            done = await issue_service.list_workspace_issues(
                session, "acme", statuses=[IssueStatus.DONE]
            )
            everything = await issue_service.list_workspace_issues(session, "acme")

        assert [i.key for i in done] == ["ENG-2"]
        assert [i.key for i in everything] == ["ENG-2", "ENG-3"]

    @pytest.mark.asyncio
    async def test_other_workspaces_excluded(self, session_factory, seeded_team, bare_team):
        await _create(session_factory)

        async with session_factory() as session:
            async with session.begin():
                await issue_service.create_issue(
                    session, "bare", "OPS", ACTOR, IssueCreate(summary="x")
                )

        async with session_factory() as session:
            acme = await issue_service.list_workspace_issues(session, "acme")
            bare = await issue_service.list_workspace_issues(session, "bare")

        assert [i.key for i in acme] == ["ENG-1"]
        assert [i.key for i in bare] == ["OPS-1"]

    @pytest.mark.asyncio
    async def test_unknown_workspace(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(NotFoundError):
                await issue_service.list_workspace_issues(session, "nowhere")


class TestIssueServiceMutate:

    @pytest.mark.asyncio
    async def test_change_records_event(self, session_factory, seeded_team):
        created = await _create(session_factory)

        async with session_factory() as session:
            async with session.begin():
                issue = await issue_service.apply_mutation(
                    session, "acme", "ENG-1", ACTOR, StatusChange(status="in_progress")
                )

        assert issue.status == "in_progress"
        events = await _events(session_factory, created.id)
        assert [e.event_type for e in events] == ["issue_created", "status_changed"]
        assert events[1].changes == {"status": {"from": "backlog", "to": "in_progress"}}

    @pytest.mark.asyncio
    async def test_noop_records_nothing(self, session_factory, seeded_team):
        created = await _create(session_factory)

        async with session_factory() as session:
            async with session.begin():
                issue = await issue_service.apply_mutation(
                    session, "acme", "ENG-1", ACTOR, PriorityChange(priority="no_priority")
                )

        assert issue.priority == "no_priority"
        assert len(await _events(session_factory, created.id)) == 1


class TestIssueServiceDelete:

    @pytest.mark.asyncio
    async def test_deleted_issue_hidden_and_number_kept(self, session_factory, seeded_team):
        await _create(session_factory)

        async with session_factory() as session:
            async with session.begin():
                await issue_service.soft_delete_issue(session, "acme", "ENG-1")

        async with session_factory() as session:
            with pytest.raises(NotFoundError):
                await issue_service.get_issue_by_key(session, "acme", "ENG-1")
            assert await issue_service.list_team_issues(session, "acme", "ENG") == []

        assert (await _create(session_factory)).key == "ENG-2"


class TestRekeyTeamIssues:

    @pytest.mark.asyncio
    async def test_rename_rewrites_keys_and_keeps_counter(self, session_factory, seeded_team):
        for _ in range(7):
            await _create(session_factory)
        async with session_factory() as session:
            async with session.begin():
                await issue_service.soft_delete_issue(session, "acme", "ENG-3")

        async with session_factory() as session:
            async with session.begin():
                team, rekeyed = await team_service.update_team(
                    session, "acme", "ENG", key="ENGR"
                )

        assert team.key == "ENGR"
        assert rekeyed == 7

        async with session_factory() as session:
            keys = (
                await session.execute(
                    select(Issue.key).where(Issue.team_id == seeded_team.id)
                    .order_by(Issue.key_number)
                )
            ).scalars().all()
            counter = (
                await session.execute(
                    select(SequenceCounter.current_value).where(
                        SequenceCounter.team_id == seeded_team.id
                    )
                )
            ).scalar_one()
            events = (await session.execute(select(IssueChangeEvent))).scalars().all()

        # soft-deleted ENG-3 included
        assert list(keys) == [f"ENGR-{n}" for n in range(1, 8)]
        assert counter == 7
        assert {e.event_type for e in events} == {"issue_created"}

        nxt = await _create(session_factory, team_key="ENGR")
        assert nxt.key == "ENGR-8"

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, session_factory, seeded_team):
        await _create(session_factory)

        async with session_factory() as session:
            async with session.begin():
                team, _ = await team_service.update_team(session, "acme", "ENG", key="CORE")
                assert await issue_service.rekey_team_issues(session, team) == 0

    @pytest.mark.asyncio
    async def test_loaded_issues_see_new_key(self, session_factory, seeded_team):
        await _create(session_factory)

        async with session_factory() as session:
            async with session.begin():
                loaded = await issue_service.get_issue_by_key(session, "acme", "ENG-1")
                await team_service.update_team(session, "acme", "ENG", key="CORE")
                assert loaded.key == "CORE-1"
