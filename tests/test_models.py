"""Tests for input and record models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import ALICE
from taskboard.exceptions import ValidationError
from taskboard.models import CommentCreate, Notification, NotificationType, Task, TaskCreate, TaskPatch


class TestTaskCreate:
    def test_title_is_stripped(self) -> None:
        body = TaskCreate(title="  Ship it  ", status_id="1", project_id="p-web")
        assert body.title == "Ship it"

    def test_blank_title_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            TaskCreate(title="   ", status_id="1", project_id="p-web")

    def test_status_and_project_required(self) -> None:
        with pytest.raises(PydanticValidationError) as exc_info:
            TaskCreate(title="Ship it")
        fields = ValidationError.from_pydantic(exc_info.value).fields
        assert set(fields) == {"status_id", "project_id"}

    def test_owner_cannot_be_supplied(self) -> None:
        with pytest.raises(PydanticValidationError):
            TaskCreate(title="Ship it", status_id="1", project_id="p-web", user_id=ALICE)


class TestTaskPatch:
    def test_changes_only_include_set_fields(self) -> None:
        patch = TaskPatch(status_id="2")
        assert patch.changes() == {"status_id": "2"}

    def test_explicit_null_assignee_is_a_change(self) -> None:
        assert TaskPatch(assignee_id=None).changes() == {"assignee_id": None}

    def test_empty_patch_has_no_changes(self) -> None:
        assert TaskPatch().changes() == {}

    def test_null_title_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            TaskPatch(title=None)

    def test_owner_not_patchable(self) -> None:
        with pytest.raises(PydanticValidationError):
            TaskPatch(user_id="someone-else")


class TestRecords:
    def test_numeric_ids_coerced_to_strings(self) -> None:
        task = Task.model_validate({"id": 12, "title": "T", "user_id": ALICE, "status_id": 3})
        assert task.id == "12"
        assert task.status_id == "3"

    def test_provisional_ids(self) -> None:
        assert Task(id="temp-abc", title="T", user_id=ALICE).is_provisional
        assert not Task(id="t-1", title="T", user_id=ALICE).is_provisional

    def test_unknown_columns_ignored(self) -> None:
        notification = Notification.model_validate(
            {
                "id": "n-1",
                "user_id": ALICE,
                "creator_id": "u-bob",
                "message": "m",
                "type": "task_updated",
                "reference_id": "t-1",
                "updated_at": "2026-01-01T00:00:00Z",
            }
        )
        assert notification.type is NotificationType.TASK_UPDATED
        assert notification.read is False

    def test_blank_comment_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            CommentCreate(task_id="t-1", content="  ")


class TestValidationErrorFromPydantic:
    def test_collapses_locations(self) -> None:
        with pytest.raises(PydanticValidationError) as exc_info:
            CommentCreate(task_id="t-1", content="")
        error = ValidationError.from_pydantic(exc_info.value, "Invalid comment")
        assert error.message == "Invalid comment"
        assert list(error.fields) == ["content"]
