"""Tests for LocalObserverManager."""

import asyncio

import pytest

from shipdag.core.orchestration.events import (
    EVENT_TYPES,
    Event,
    LocalObserverManager,
    LoggingObserver,
    StageSkipped,
    StageStarted,
)


def _started(name: str = "lint") -> StageStarted:
    return StageStarted(run_id="run-1", name=name, dependencies=[])


class ListObserver:
    def __init__(self) -> None:
        self.events: list[Event] = []

    async def handle(self, event: Event) -> None:
        self.events.append(event)


class TestLocalObserverManager:
    @pytest.mark.asyncio
    async def test_notifies_in_registration_order(self) -> None:
        order: list[str] = []
        manager = LocalObserverManager()
        manager.register(lambda e: order.append("first"))

        async def second(event: Event) -> None:
            order.append("second")

        manager.register(second)

        await manager.notify(_started())

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_event_type_filter(self) -> None:
        observer = ListObserver()
        manager = LocalObserverManager()
        manager.register(observer, event_types=[StageSkipped])

        await manager.notify(_started())
        await manager.notify(StageSkipped(run_id="run-1", name="scan", reason="upstream"))

        assert [type(e) for e in observer.events] == [StageSkipped]

    def test_duplicate_id_rejected(self) -> None:
        manager = LocalObserverManager()
        manager.register(ListObserver(), observer_id="x")
        with pytest.raises(ValueError, match="already registered"):
            manager.register(ListObserver(), observer_id="x")

    def test_non_callable_rejected(self) -> None:
        with pytest.raises(TypeError):
            LocalObserverManager().register(42)  # type: ignore[arg-type]

    def test_unregister_and_clear(self) -> None:
        manager = LocalObserverManager()
        manager.register(ListObserver(), observer_id="a")
        manager.register(ListObserver(), observer_id="b")
        assert manager.unregister("a")
        assert not manager.unregister("a")
        assert len(manager) == 1
        manager.clear()
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_slow_observer_times_out(self) -> None:
        after = ListObserver()
        manager = LocalObserverManager()

        async def slow(event: Event) -> None:
            await asyncio.sleep(10)

        manager.register(slow, timeout=0.01)
        manager.register(after)

        await manager.notify(_started())

        assert len(after.events) == 1

    @pytest.mark.asyncio
    async def test_failing_observer_is_isolated(self) -> None:
        after = ListObserver()
        manager = LocalObserverManager()

        def broken(event: Event) -> None:
            raise RuntimeError("bug")

        manager.register(broken)
        manager.register(after)

        await manager.notify(_started())

        assert len(after.events) == 1

    @pytest.mark.asyncio
    async def test_logging_observer_handles_every_event_type(self) -> None:
        assert "PipelineCompleted" in EVENT_TYPES
        await LoggingObserver().handle(_started())
        await LoggingObserver().handle(StageSkipped(run_id="run-1", name="scan"))
