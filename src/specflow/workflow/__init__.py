"""Workflow engine: events, the event bus, phase transitions and their handlers."""

from specflow.workflow.event_bus import (
    DispatchReport,
    EventBus,
    HandlerFailure,
    HandlerRegistrationTimeoutError,
    configure_event_bus,
    get_event_bus,
    get_event_bus_ready,
    reset_event_bus,
)
from specflow.workflow.events import EventType, WorkflowEvent
from specflow.workflow.orchestrator import (
    AdvanceResult,
    InvalidTransitionError,
    PhaseOrchestrator,
    PhaseRollbackError,
    PhaseTransitionError,
    SpecNotFoundError,
    TaskNotFoundError,
    WorkflowError,
)
from specflow.workflow.registration import WorkflowContext, register_builtin_handlers

__all__ = [
    "AdvanceResult",
    "DispatchReport",
    "EventBus",
    "EventType",
    "HandlerFailure",
    "HandlerRegistrationTimeoutError",
    "InvalidTransitionError",
    "PhaseOrchestrator",
    "PhaseRollbackError",
    "PhaseTransitionError",
    "SpecNotFoundError",
    "TaskNotFoundError",
    "WorkflowContext",
    "WorkflowError",
    "WorkflowEvent",
    "configure_event_bus",
    "get_event_bus",
    "get_event_bus_ready",
    "register_builtin_handlers",
    "reset_event_bus",
]
