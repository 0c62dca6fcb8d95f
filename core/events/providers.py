import logging
from typing import Annotated, AsyncIterable

from dishka import FromComponent, Provider, Scope, provide

from core.events.bus import EventBus


class EventBusProvider(Provider):
    """
    Provider for the wallet core event bus.
    """

    component = "events"
    scope = Scope.APP

    @provide(scope=Scope.APP)
    async def provide_event_bus(
        self,
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> AsyncIterable[EventBus]:
        """
        Create the event bus for the application.

        Parameters
        ----------
        logger : logging.Logger
            Logger instance

        Yields
        ------
        EventBus
            Event bus, closed when the container closes
        """
        bus = EventBus(logger)
        try:
            yield bus
        finally:
            await bus.close()
