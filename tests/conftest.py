"""
Shared pytest fixtures.

This module provides fixtures for:
- An in-memory backend seeded with users and reference data
- Store, repository and dispatcher wired to that backend
- Task rows for the common ownership/assignment shapes
"""

from __future__ import annotations

import pytest

from fakes import InMemoryBackend
from taskboard.dispatch import NotificationDispatcher
from taskboard.models import Task
from taskboard.repository import TaskRepository
from taskboard.store import NotificationStore

ALICE = "u-alice"
BOB = "u-bob"
CAROL = "u-carol"


# =============================================================================
# Backend Fixtures
# =============================================================================


@pytest.fixture
def backend() -> InMemoryBackend:
    """Backend with three users, three statuses and two projects."""
    fake = InMemoryBackend(tokens={"token-alice": ALICE, "token-bob": BOB, "token-carol": CAROL})
    fake.seed(
        "profiles",
        {"id": ALICE, "name": "Alice", "avatar_url": "https://example.test/alice.png"},
        {"id": BOB, "name": "Bob", "avatar_url": None},
        {"id": CAROL, "name": "Carol", "avatar_url": None},
    )
    fake.seed(
        "statuses",
        {"id": "1", "name": "To Do"},
        {"id": "2", "name": "In Progress"},
        {"id": "3", "name": "Done"},
    )
    fake.seed(
        "projects",
        {"id": "p-web", "name": "Website"},
        {"id": "p-app", "name": "Mobile App"},
    )
    fake.calls.clear()
    return fake


@pytest.fixture
def store(backend: InMemoryBackend) -> NotificationStore:
    return NotificationStore(backend)


@pytest.fixture
def repository(backend: InMemoryBackend) -> TaskRepository:
    return TaskRepository(backend)


@pytest.fixture
def dispatcher(store: NotificationStore) -> NotificationDispatcher:
    return NotificationDispatcher(store)


# =============================================================================
# Task Fixtures
# =============================================================================


@pytest.fixture
def task_row(backend: InMemoryBackend) -> dict:
    """Task owned by Alice and assigned to Bob."""
    (row,) = backend.seed(
        "tasks",
        {
            "id": "t-1",
            "title": "Ship it",
            "description": "Release 1.0",
            "status_id": "1",
            "project_id": "p-web",
            "user_id": ALICE,
            "assignee_id": BOB,
        },
    )
    backend.calls.clear()
    return row


@pytest.fixture
def task(task_row: dict) -> Task:
    return Task.model_validate({**task_row, "status_name": "To Do", "project_name": "Website"})
