"""In-process publish/subscribe bus for workflow events.

Handlers registered for an event type all run concurrently when a matching
event is published. A failing handler is logged and reported but never stops
its siblings and never makes ``publish`` raise.

The process-wide instance (``get_event_bus``) registers the built-in
integration handlers lazily, exactly once, on first use.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from specflow.workflow.events import EventType, WorkflowEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[["WorkflowEvent"], Awaitable[None]]
HandlerRegistrar = Callable[["EventBus"], Awaitable[None] | None]

DEFAULT_REGISTRATION_TIMEOUT = 5.0


class HandlerRegistrationTimeoutError(RuntimeError):
    """Built-in handlers did not finish registering in time."""


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


@dataclass
class HandlerFailure:
    """A handler that raised while processing an event."""

    handler_name: str
    error: Exception


@dataclass
class DispatchReport:
    """What happened when an event was published."""

    event: WorkflowEvent
    handled: int = 0
    failures: list[HandlerFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def errors_of(self, error_type: type[Exception]) -> list[Exception]:
        """Handler errors that are instances of ``error_type``."""
        return [f.error for f in self.failures if isinstance(f.error, error_type)]


class EventBus:
    """Async event bus keyed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}

    def register(self, event_type: EventType, handler: EventHandler) -> None:
        """Register ``handler`` for ``event_type``. Registering the same handler twice is a no-op."""
        handlers = self._handlers.setdefault(event_type, [])
        if handler in handlers:
            return
        handlers.append(handler)
        logger.debug(f"Registered {_handler_name(handler)} for {event_type.value} (total: {len(handlers)})")

    def unregister(self, event_type: EventType, handler: EventHandler) -> bool:
        """Remove a handler. Returns False if it was not registered."""
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return list(self._handlers.get(event_type, []))

    def clear(self) -> None:
        """Remove every handler (mostly for tests)."""
        self._handlers.clear()

    async def publish(self, event: WorkflowEvent) -> DispatchReport:
        """Run every handler for ``event.type`` concurrently and wait for all of them.

        Returns:
            DispatchReport listing handler failures; this method does not raise
            for handler errors.
        """
        handlers = self.handlers_for(event.type)
        report = DispatchReport(event=event, handled=len(handlers))
        if not handlers:
            logger.debug(f"No handlers for {event.type.value}")
            return report

        results = await asyncio.gather(*(handler(event) for handler in handlers), return_exceptions=True)

        for handler, result in zip(handlers, results, strict=True):
            if isinstance(result, Exception):
                name = _handler_name(handler)
                logger.error(f"Handler {name} failed for {event.type.value} (spec {event.spec_id}): {result}")
                report.failures.append(HandlerFailure(handler_name=name, error=result))
            elif isinstance(result, BaseException):
                raise result

        logger.debug(f"Dispatched {event.type.value}: {len(handlers) - len(report.failures)} ok, {len(report.failures)} failed")
        return report


# =============================================================================
# Process-lifetime instance
# =============================================================================


class _BusRuntime:
    """Holds the shared bus and its one-shot handler registration."""

    def __init__(self) -> None:
        self.bus = EventBus()
        self.registrar: HandlerRegistrar | None = None
        self.registration: asyncio.Task[None] | None = None
        self.registered = False

    async def _register(self) -> None:
        if self.registrar is None:
            self.registered = True
            return
        try:
            outcome = self.registrar(self.bus)
            if inspect.isawaitable(outcome):
                await outcome
            logger.debug("Workflow handlers registered")
        except Exception as e:
            # Not retried: a broken registrar would fail the same way again
            logger.error(f"Failed to register workflow handlers: {e}")
        finally:
            self.registered = True

    def start_registration(self) -> asyncio.Task[None] | None:
        """Start registration once. Returns None when no event loop is running yet."""
        if self.registration is not None and self.registration.cancelled() and not self.registered:
            # The loop that owned it shut down before it ran
            self.registration = None
        if self.registration is not None or self.registered:
            return self.registration
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        self.registration = loop.create_task(self._register())
        return self.registration


_runtime = _BusRuntime()


def configure_event_bus(registrar: HandlerRegistrar) -> None:
    """Set the function that registers the built-in handlers on first use."""
    _runtime.registrar = registrar


def get_event_bus() -> EventBus:
    """Shared bus. Kicks off handler registration without waiting for it."""
    _runtime.start_registration()
    return _runtime.bus


async def get_event_bus_ready(timeout: float = DEFAULT_REGISTRATION_TIMEOUT) -> EventBus:
    """Shared bus, after handler registration has settled.

    Raises:
        HandlerRegistrationTimeoutError: If registration takes longer than ``timeout`` seconds.
    """
    task = _runtime.start_registration()
    if task is not None and not task.done():
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError as e:
            raise HandlerRegistrationTimeoutError(f"Workflow handlers were not registered within {timeout}s") from e
    return _runtime.bus


def is_event_bus_ready() -> bool:
    return _runtime.registered


def reset_event_bus() -> None:
    """Drop the shared bus and registration state (for tests)."""
    global _runtime
    task = _runtime.registration
    if task is not None and not task.done() and not task.get_loop().is_closed():
        task.cancel()
    _runtime = _BusRuntime()
