"""Core models, persistence and spec documents."""

from specflow.core.documents import SpecDocumentStore
from specflow.core.models import (
    EntityType,
    Spec,
    SpecPhase,
    SyncRecord,
    SyncStatus,
    Task,
    TaskStatus,
)
from specflow.core.state import StateManager

__all__ = [
    "EntityType",
    "Spec",
    "SpecDocumentStore",
    "SpecPhase",
    "StateManager",
    "SyncRecord",
    "SyncStatus",
    "Task",
    "TaskStatus",
]
