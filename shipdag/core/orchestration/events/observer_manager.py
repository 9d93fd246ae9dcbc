"""Local observer manager: delivers lifecycle events to registered observers.

Observers are notified one after another in registration order, so an
observer registered earlier (the status reporter) has finished with an event
before a later one (the cross-pipeline trigger) sees it. Each observer call
is isolated: a failure or timeout is logged and never reaches the executor.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from shipdag.core.logging import get_logger
from shipdag.core.orchestration.events.events import StageFailed

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from shipdag.core.orchestration.events.events import Event

logger = get_logger(__name__)

DEFAULT_OBSERVER_TIMEOUT = 30.0


@runtime_checkable
class Observer(Protocol):
    """Anything with an async ``handle(event)``."""

    async def handle(self, event: Event) -> None: ...


class FunctionObserver:
    """Wrapper to make plain or async functions implement the Observer protocol."""

    def __init__(self, func: Callable[[Event], Awaitable[None] | None]) -> None:
        self._func = func
        self.__name__ = getattr(func, "__name__", "anonymous_observer")

    async def handle(self, event: Event) -> None:
        result = self._func(event)
        if inspect.isawaitable(result):
            await result


class ObserverRegistrationConfig(BaseModel):
    """Validated configuration for observer registration."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    observer_id: str | None = None
    event_types: tuple[type, ...] | None = None
    timeout: float | None = Field(None, gt=0)


class LoggingObserver:
    """Logs every event's ``log_message()`` at INFO (failures at WARNING)."""

    async def handle(self, event: Event) -> None:
        level = "WARNING" if isinstance(event, StageFailed) else "INFO"
        logger.log(level, event.log_message())


class LocalObserverManager:
    """Sequential, fault-isolated observer manager.

    Examples
    --------
        manager = LocalObserverManager()
        manager.register(LoggingObserver())
        manager.register(reporter, event_types=[PipelineCompleted])
        await manager.notify(PipelineCompleted(run=run))
    """

    def __init__(self, observer_timeout: float = DEFAULT_OBSERVER_TIMEOUT) -> None:
        self._timeout = observer_timeout
        self._observers: dict[str, Observer] = {}
        self._event_filters: dict[str, tuple[type, ...] | None] = {}
        self._observer_timeouts: dict[str, float] = {}

    def register(
        self,
        handler: Observer | Callable[[Event], Any],
        *,
        observer_id: str | None = None,
        event_types: Iterable[type] | None = None,
        timeout: float | None = None,
    ) -> str:
        """Register an observer; returns its id.

        Raises
        ------
        ValueError
            If ``observer_id`` is already registered
        TypeError
            If ``handler`` is neither an Observer nor callable
        """
        config = ObserverRegistrationConfig(
            observer_id=observer_id,
            event_types=tuple(event_types) if event_types is not None else None,
            timeout=timeout,
        )
        resolved_id = config.observer_id or str(uuid.uuid4())
        if resolved_id in self._observers:
            raise ValueError(f"Observer '{resolved_id}' already registered")

        if hasattr(handler, "handle"):
            observer: Observer = handler  # type: ignore[assignment]
        elif callable(handler):
            observer = FunctionObserver(handler)
        else:
            raise TypeError(
                f"Observer must be callable or implement Observer protocol, got {type(handler)}"
            )

        self._observers[resolved_id] = observer
        self._event_filters[resolved_id] = config.event_types
        if config.timeout is not None:
            self._observer_timeouts[resolved_id] = config.timeout
        return resolved_id

    def unregister(self, observer_id: str) -> bool:
        found = self._observers.pop(observer_id, None) is not None
        self._event_filters.pop(observer_id, None)
        self._observer_timeouts.pop(observer_id, None)
        return found

    async def notify(self, event: Event) -> None:
        """Deliver ``event`` to every interested observer, in registration order."""
        for observer_id, observer in list(self._observers.items()):
            if self._should_notify(observer_id, event):
                await self._safe_invoke(observer_id, observer, event)

    def clear(self) -> None:
        self._observers.clear()
        self._event_filters.clear()
        self._observer_timeouts.clear()

    def __len__(self) -> int:
        return len(self._observers)

    def _should_notify(self, observer_id: str, event: Event) -> bool:
        event_filter = self._event_filters.get(observer_id)
        if event_filter is None:
            return True
        return isinstance(event, event_filter)

    async def _safe_invoke(self, observer_id: str, observer: Observer, event: Event) -> None:
        timeout_value = self._observer_timeouts.get(observer_id, self._timeout)
        name = getattr(observer, "__name__", observer.__class__.__name__)
        try:
            await asyncio.wait_for(observer.handle(event), timeout=timeout_value)
        except TimeoutError:
            logger.warning(
                "Observer {name} timed out after {timeout}s handling {event}",
                name=name,
                timeout=timeout_value,
                event=type(event).__name__,
            )
        except Exception as exc:
            logger.opt(exception=exc).error(
                "Observer {name} failed for {event}: {error}",
                name=name,
                event=type(event).__name__,
                error=exc,
            )
