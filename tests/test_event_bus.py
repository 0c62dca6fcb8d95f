import asyncio

import pytest

from core.events.bus import EventBus
from core.events.schemas import ERROR


class TestEventBus:
    """
    Unit tests for the wallet core event bus.

    These tests verify:
    1. Listeners receive events in emit order
    2. A slow listener does not block the publisher or other listeners
    3. A failing listener is reported on ``error`` and keeps its worker
    """

    @pytest.mark.asyncio
    async def test_events_delivered_in_emit_order(self, bus: EventBus):
        received = []
        bus.on("coin-block", received.append)

        for number in range(5):
            bus.emit("coin-block", number)
        await bus.join()

        assert received == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_emit_does_not_wait_for_listeners(self, bus: EventBus):
        """
        Test a blocked listener leaves the publisher and other listeners free.

        Parameters
        ----------
        bus : EventBus
            Event bus fixture
        """
        release = asyncio.Event()
        fast = []

        async def slow_listener(payload):
            await release.wait()

        bus.on("wallet-state-changed", slow_listener)
        bus.on("wallet-state-changed", fast.append)

        bus.emit("wallet-state-changed", {"w": 1})
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert fast == [{"w": 1}]
        release.set()
        await bus.join()

    @pytest.mark.asyncio
    async def test_listener_failure_reported(self, bus: EventBus):
        """
        Test a raising listener emits ``error`` and still gets later events.

        Parameters
        ----------
        bus : EventBus
            Event bus fixture
        """
        errors = []
        seen = []

        def flaky(payload):
            seen.append(payload)
            if payload == "boom":
                raise ValueError("listener failed")

        bus.on("coin-price-updated", flaky)
        bus.on(ERROR, errors.append)

        bus.emit("coin-price-updated", "boom")
        bus.emit("coin-price-updated", "ok")
        await bus.join()

        assert seen == ["boom", "ok"]
        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)

    @pytest.mark.asyncio
    async def test_off_stops_delivery(self, bus: EventBus):
        received = []
        subscription = bus.on("coin-block", received.append)

        bus.emit("coin-block", 1)
        await bus.join()
        bus.off(subscription)
        bus.emit("coin-block", 2)
        await bus.join()

        assert received == [1]

    @pytest.mark.asyncio
    async def test_closed_bus_drops_events(self, logger):
        event_bus = EventBus(logger)
        received = []
        event_bus.on("coin-block", received.append)

        await event_bus.close()
        event_bus.emit("coin-block", 1)
        await event_bus.join()

        assert received == []
