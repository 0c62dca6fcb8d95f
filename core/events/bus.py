import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from core.events.schemas import ERROR


Listener = Callable[[Any], Awaitable[None] | None]


class Subscription:
    """
    One listener attached to one event name.

    Each subscription owns its queue and worker task, so a listener
    sees events in emit order and never blocks the publisher.

    Parameters
    ----------
    event : str
        Event name
    listener : Listener
        Sync or async callable receiving the payload
    """

    def __init__(self, event: str, listener: Listener):
        self.event = event
        self.listener = listener
        self.queue: asyncio.Queue = asyncio.Queue()
        self.task: asyncio.Task | None = None


class EventBus:
    """
    Message-passing channel owned by one wallet core instance.

    Parameters
    ----------
    logger : logging.Logger
        Logger instance
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._closed = False
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def on(self, event: str, listener: Listener) -> Subscription:
        """
        Attach a listener.

        Parameters
        ----------
        event : str
            Event name
        listener : Listener
            Sync or async callable receiving the payload

        Returns
        -------
        Subscription
            Handle to pass to ``off``
        """
        subscription = Subscription(event, listener)
        self._subscriptions.setdefault(event, []).append(subscription)
        return subscription

    def off(self, subscription: Subscription) -> None:
        """
        Detach a listener; events already queued for it are dropped.

        Parameters
        ----------
        subscription : Subscription
            Handle returned by ``on``
        """
        subscriptions = self._subscriptions.get(subscription.event, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if subscription.task is not None:
            subscription.task.cancel()
        self._pending -= subscription.queue.qsize()
        if not self._pending:
            self._idle.set()

    def emit(self, event: str, payload: Any = None) -> None:
        """
        Publish an event without waiting for listeners.

        Must be called from within a running event loop.

        Parameters
        ----------
        event : str
            Event name
        payload : Any
            Event payload, delivered as-is
        """
        if self._closed:
            self.logger.debug(f"Event bus closed, dropping {event}")
            return

        subscriptions = self._subscriptions.get(event, [])
        if not subscriptions:
            self.logger.debug(f"No listeners for {event}")
            return

        for subscription in list(subscriptions):
            subscription.queue.put_nowait(payload)
            self._pending += 1
            self._idle.clear()
            if subscription.task is None or subscription.task.done():
                subscription.task = asyncio.get_running_loop().create_task(
                    self._worker(subscription)
                )

    async def join(self) -> None:
        """
        Wait until every queued event has been handled.

        Events emitted by listeners while draining are waited for too.
        """
        while self._pending:
            await self._idle.wait()

    async def close(self) -> None:
        """
        Stop all workers and refuse further events.
        """
        self._closed = True
        tasks = [
            subscription.task
            for subscriptions in self._subscriptions.values()
            for subscription in subscriptions
            if subscription.task is not None
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._subscriptions.clear()
        self._pending = 0
        self._idle.set()

    async def _worker(self, subscription: Subscription) -> None:
        """
        Drain one subscription's queue, one payload at a time.

        Parameters
        ----------
        subscription : Subscription
            Subscription to serve
        """
        while True:
            payload = await subscription.queue.get()
            try:
                result = subscription.listener(payload)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception(f"Listener for {subscription.event} failed: {e}")
                if subscription.event != ERROR:
                    self.emit(ERROR, e)
            finally:
                subscription.queue.task_done()
                self._pending -= 1
                if not self._pending:
                    self._idle.set()
