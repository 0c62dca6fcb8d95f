import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Protocol

from core.exceptions import BaseCustomException, TransportFailureException
from wallet.entities import (
    STAGE_ORDER,
    LifecycleEvent,
    Milestone,
    SubmissionStage,
)


class ReceiptWatcher(Protocol):
    """
    Chain-specific source of confirmation and receipt milestones.
    """

    def watch(self, tx_hash: str) -> AsyncIterator[Milestone]:
        """
        Report progress of a broadcast transaction.

        Parameters
        ----------
        tx_hash : str
            Hash returned by the broadcast

        Yields
        ------
        Milestone
            Zero or more ``confirmation`` milestones, then one ``receipt``
        """
        ...


class SubmissionHandle:
    """
    In-flight lifecycle of one broadcast transaction.

    Events are recorded in order and replayed to every consumer of
    ``events()``, so a late subscriber still sees the full sequence.
    The hash is assigned once; the stage only moves forward.

    Parameters
    ----------
    transaction : dict
        Locally known transaction fields (from, to, value, ...)
    """

    def __init__(self, transaction: dict[str, Any] | None = None):
        self.transaction = dict(transaction or {})
        self._stage = SubmissionStage.PENDING
        self._hash: str | None = None
        self._receipt: dict[str, Any] | None = None
        self._error: BaseCustomException | None = None
        self._history: list[LifecycleEvent] = []
        self._changed = asyncio.Condition()
        self._done = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def stage(self) -> SubmissionStage:
        return self._stage

    @property
    def hash(self) -> str | None:
        return self._hash

    @property
    def receipt(self) -> dict[str, Any] | None:
        return self._receipt

    @property
    def error(self) -> BaseCustomException | None:
        return self._error

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def events(self) -> AsyncIterator[LifecycleEvent]:
        """
        Iterate the handle's events up to and including the terminal one.

        Yields
        ------
        LifecycleEvent
            ``hash``, ``confirmation``*, then ``receipt`` or ``error``
        """
        index = 0
        while True:
            while index < len(self._history):
                event = self._history[index]
                index += 1
                yield event
                if event.terminal:
                    return
            async with self._changed:
                await self._changed.wait_for(lambda: len(self._history) > index)

    async def wait(self) -> dict[str, Any]:
        """
        Wait for the terminal stage.

        Returns
        -------
        dict
            Receipt of the mined transaction

        Raises
        ------
        BaseCustomException
            The failure that ended the lifecycle
        """
        await self._done.wait()
        if self._error is not None:
            raise self._error
        return self._receipt

    async def _publish(self, event: LifecycleEvent, stage: SubmissionStage) -> None:
        if self.done:
            return
        if STAGE_ORDER[stage] < STAGE_ORDER[self._stage]:
            return
        self._stage = stage
        self._history.append(event)
        if event.terminal:
            self._done.set()
        async with self._changed:
            self._changed.notify_all()

    async def _assign_hash(self, tx_hash: str) -> None:
        if self._hash is not None:
            return
        self._hash = tx_hash
        self.transaction["hash"] = tx_hash
        await self._publish(
            LifecycleEvent(kind="hash", hash=tx_hash, transaction=dict(self.transaction)),
            SubmissionStage.BROADCAST
        )

    async def _confirm(self, confirmations: int) -> None:
        if self._stage not in (SubmissionStage.BROADCAST, SubmissionStage.CONFIRMED):
            return
        await self._publish(
            LifecycleEvent(kind="confirmation", hash=self._hash, confirmations=confirmations),
            SubmissionStage.CONFIRMED
        )

    async def _settle(self, transaction: dict[str, Any] | None, receipt: dict[str, Any]) -> None:
        if self._receipt is not None or self.done:
            return
        if transaction:
            self.transaction.update(transaction)
        self._receipt = receipt
        await self._publish(
            LifecycleEvent(
                kind="receipt",
                hash=self._hash,
                transaction=dict(self.transaction),
                receipt=receipt
            ),
            SubmissionStage.RECEIPTED
        )

    async def _fail(self, error: BaseCustomException) -> None:
        if self.done:
            return
        self._error = error
        await self._publish(
            LifecycleEvent(kind="error", hash=self._hash, error=error),
            SubmissionStage.FAILED
        )


class SubmissionLifecycleAdapter:
    """
    Turns a chain-specific broadcast into a ``SubmissionHandle``.

    Parameters
    ----------
    logger : logging.Logger
        Logger instance
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def submit(
        self,
        broadcast: Awaitable[str],
        watcher: ReceiptWatcher,
        transaction: dict[str, Any] | None = None
    ) -> SubmissionHandle:
        """
        Start driving a broadcast and return its handle immediately.

        Parameters
        ----------
        broadcast : Awaitable[str]
            Resolves to the transaction hash once the node accepts it
        watcher : ReceiptWatcher
            Source of confirmation and receipt milestones
        transaction : dict | None
            Locally known transaction fields

        Returns
        -------
        SubmissionHandle
            Handle republishing the broadcast's stages
        """
        handle = SubmissionHandle(transaction)
        handle._task = asyncio.get_running_loop().create_task(
            self._drive(handle, broadcast, watcher)
        )
        return handle

    async def _drive(
        self,
        handle: SubmissionHandle,
        broadcast: Awaitable[str],
        watcher: ReceiptWatcher
    ) -> None:
        try:
            tx_hash = await broadcast
        except Exception as e:
            error = self._as_custom(e)
            self.logger.warning(f"Broadcast failed: {error.message}")
            await handle._fail(error)
            return

        self.logger.info(f"Transaction {tx_hash} broadcast")
        await handle._assign_hash(tx_hash)

        try:
            async for milestone in watcher.watch(tx_hash):
                if milestone.kind == "confirmation":
                    self.logger.debug(f"Transaction {tx_hash} confirmations: {milestone.confirmations}")
                    await handle._confirm(milestone.confirmations)
                else:
                    self.logger.info(f"Transaction {tx_hash} receipt received")
                    await handle._settle(milestone.transaction, milestone.receipt or {})
                    return
        except Exception as e:
            error = self._as_custom(e)
            self.logger.warning(f"Transaction {tx_hash} lifecycle failed: {error.message}")
            await handle._fail(error)
            return

        await handle._fail(TransportFailureException(f"No receipt reported for {tx_hash}"))

    @staticmethod
    def _as_custom(error: Exception) -> BaseCustomException:
        if isinstance(error, BaseCustomException):
            return error
        return TransportFailureException(str(error) or type(error).__name__)
