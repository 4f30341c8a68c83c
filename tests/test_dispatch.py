"""Tests for notification dispatch."""

from __future__ import annotations

import logging

import pytest

from conftest import ALICE, BOB, CAROL
from fakes import InMemoryBackend
from taskboard.dispatch import NotificationDispatcher
from taskboard.events import CommentAdded, TaskUpdated
from taskboard.exceptions import StoreError
from taskboard.models import Task


class TestDispatchScenarios:
    @pytest.mark.asyncio
    async def test_owner_updates_status_notifies_assignee(
        self, dispatcher: NotificationDispatcher, backend: InMemoryBackend, task: Task
    ) -> None:
        """A owns T assigned to B; A changes the status."""
        after = task.model_copy(update={"status_id": "2"})
        sent = await dispatcher.dispatch_for_task_change(task, after, ALICE)

        assert len(sent) == 1
        (row,) = backend.rows("notifications")
        assert row["user_id"] == BOB
        assert row["creator_id"] == ALICE
        assert row["type"] == "task_updated"
        assert row["reference_id"] == task.id
        assert not [r for r in backend.rows("notifications") if r["user_id"] == ALICE]

    @pytest.mark.asyncio
    async def test_non_owner_comment_notifies_nobody(
        self, dispatcher: NotificationDispatcher, backend: InMemoryBackend, task: Task
    ) -> None:
        """A owns T; B comments on T."""
        sent = await dispatcher.dispatch_on_comment_added(CommentAdded.for_task(task, BOB))
        assert sent == []
        assert backend.rows("notifications") == []
        assert ("insert", "notifications") not in backend.calls

    @pytest.mark.asyncio
    async def test_owner_comment_notifies_assignee(
        self, dispatcher: NotificationDispatcher, backend: InMemoryBackend, task: Task
    ) -> None:
        (notification,) = await dispatcher.dispatch_on_comment_added(CommentAdded.for_task(task, ALICE))
        assert notification.user_id == BOB
        assert notification.message == "New comment on your task: Ship it"

    @pytest.mark.asyncio
    async def test_reassignment_notifies_new_assignee(
        self, dispatcher: NotificationDispatcher, backend: InMemoryBackend, task: Task
    ) -> None:
        after = task.model_copy(update={"assignee_id": CAROL})
        (notification,) = await dispatcher.dispatch_for_task_change(task, after, ALICE)
        assert notification.user_id == CAROL
        assert notification.type == "task_assigned"
        assert notification.message == "You've been assigned to the task: Ship it"


class TestDispatchFailures:
    @pytest.mark.asyncio
    async def test_store_failure_is_logged_and_swallowed(
        self,
        dispatcher: NotificationDispatcher,
        backend: InMemoryBackend,
        task: Task,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        backend.fail("insert", "notifications", StoreError("insert rejected"))
        event = TaskUpdated(task_id=task.id, task_title=task.title, actor_id=ALICE, candidate_recipient_ids=(BOB,))

        with caplog.at_level(logging.WARNING, logger="taskboard.dispatch"):
            sent = await dispatcher.dispatch_on_task_update(event)

        assert sent == []
        assert "task_updated for task t-1" in caplog.text
        assert "insert rejected" in caplog.text

    @pytest.mark.asyncio
    async def test_one_failed_recipient_does_not_stop_the_rest(
        self, dispatcher: NotificationDispatcher, backend: InMemoryBackend
    ) -> None:
        backend.fail("insert", "notifications", StoreError("flaky"), times=1)
        event = TaskUpdated(task_id="t-1", task_title="Ship it", actor_id=ALICE, candidate_recipient_ids=(BOB, CAROL))

        sent = await dispatcher.dispatch(event)

        assert [n.user_id for n in sent] == [CAROL]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged_and_swallowed(
        self,
        dispatcher: NotificationDispatcher,
        backend: InMemoryBackend,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        insert = dispatcher.store.insert
        calls = {"n": 0}

        async def insert_failing_once(request):
            calls["n"] += 1
            if calls["n"] == 1:
                raise IndexError("list index out of range")
            return await insert(request)

        monkeypatch.setattr(dispatcher.store, "insert", insert_failing_once)
        event = TaskUpdated(task_id="t-1", task_title="Ship it", actor_id=ALICE, candidate_recipient_ids=(BOB, CAROL))

        with caplog.at_level(logging.ERROR, logger="taskboard.dispatch"):
            sent = await dispatcher.dispatch(event)

        assert [n.user_id for n in sent] == [CAROL]
        assert "to u-bob failed unexpectedly" in caplog.text
