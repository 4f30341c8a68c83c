"""Taskboard - task notifications and optimistic sync over a hosted backend."""

from taskboard.backend import Backend, Order, SupabaseBackend
from taskboard.cache import QueryCache
from taskboard.dispatch import NotificationDispatcher
from taskboard.events import CommentAdded, TaskAssigned, TaskUpdated, parse_event
from taskboard.exceptions import (
    AuthorizationError,
    ConfigError,
    StaleStateError,
    StoreError,
    TaskboardError,
    TransportError,
    ValidationError,
)
from taskboard.feed import NotificationFeed
from taskboard.models import (
    Comment,
    CommentCreate,
    Notification,
    NotificationCreate,
    NotificationType,
    Profile,
    Project,
    Status,
    Task,
    TaskCreate,
    TaskPatch,
)
from taskboard.optimistic import (
    CreateComment,
    CreateTask,
    DeleteTask,
    MutationHandle,
    OptimisticMutationCoordinator,
    UpdateTask,
    parse_change,
)
from taskboard.realtime import RealtimeSubscriptionManager, SubscriptionState
from taskboard.repository import TaskRepository
from taskboard.rules import events_for_task_change, notifications_for
from taskboard.session import TaskboardSession
from taskboard.settings import Settings, settings
from taskboard.store import NotificationStore

__version__ = "0.1.0"

__all__ = [
    "AuthorizationError",
    "Backend",
    "Comment",
    "CommentAdded",
    "CommentCreate",
    "ConfigError",
    "CreateComment",
    "CreateTask",
    "DeleteTask",
    "MutationHandle",
    "Notification",
    "NotificationCreate",
    "NotificationDispatcher",
    "NotificationFeed",
    "NotificationStore",
    "NotificationType",
    "OptimisticMutationCoordinator",
    "Order",
    "Profile",
    "Project",
    "QueryCache",
    "RealtimeSubscriptionManager",
    "Settings",
    "StaleStateError",
    "Status",
    "StoreError",
    "SubscriptionState",
    "SupabaseBackend",
    "Task",
    "TaskAssigned",
    "TaskCreate",
    "TaskPatch",
    "TaskRepository",
    "TaskUpdated",
    "TaskboardError",
    "TaskboardSession",
    "TransportError",
    "UpdateTask",
    "ValidationError",
    "events_for_task_change",
    "notifications_for",
    "parse_change",
    "parse_event",
    "settings",
]
