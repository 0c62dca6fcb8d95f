import asyncio
import logging
from typing import Any, Awaitable, Callable

from core.events.bus import EventBus, Subscription
from core.events.schemas import (
    COIN_BLOCK,
    OPEN_WALLETS,
    WALLET_ERROR,
    WALLET_STATE_CHANGED,
    BlockHeader,
    OpenWallets,
    WalletError,
)
from core.exceptions import BaseCustomException, ChainRejectedException
from wallet.adapters.base import ChainAdapter
from wallet.entities import (
    MetaAction,
    TokenBalance,
    TrackedTransaction,
    WalletAddressState,
)
from wallet.lifecycle import SubmissionHandle
from wallet.meta_parsers import META_PARSERS, MetaTemplate


TokenSource = Callable[[str], Awaitable[int]]


class TransactionTracker:
    """
    Per-address transaction ledger fed by submission lifecycles.

    The tracker is the only owner of wallet state. Merges for one address
    are serialized; different addresses merge independently. A hash
    appears at most once per address and confirmed entries are never
    rewritten.

    Parameters
    ----------
    adapter : ChainAdapter
        Adapter used for balance refreshes and address normalization
    bus : EventBus
        Event bus the tracker listens on and publishes to
    logger : logging.Logger
        Logger instance
    token_sources : dict[str, TokenSource] | None
        Token contract address to ``async balance(address)`` reader
    """

    def __init__(
        self,
        adapter: ChainAdapter,
        bus: EventBus,
        logger: logging.Logger,
        token_sources: dict[str, TokenSource] | None = None
    ):
        self.adapter = adapter
        self.bus = bus
        self.logger = logger
        self.token_sources = dict(token_sources or {})
        self._wallets: dict[str, list[str]] = {}
        self._states: dict[str, WalletAddressState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()
        self._subscriptions: list[Subscription] = []

    def start(self) -> None:
        """Subscribe to ``open-wallets`` and ``coin-block``."""
        if self._subscriptions:
            return
        self._subscriptions = [
            self.bus.on(OPEN_WALLETS, self._on_open_wallets),
            self.bus.on(COIN_BLOCK, self._on_coin_block),
        ]

    async def close(self) -> None:
        for subscription in self._subscriptions:
            self.bus.off(subscription)
        self._subscriptions = []
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def join(self) -> None:
        """Wait until every followed submission has reached its terminal event."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def open_wallet(self, wallet_id: str, addresses: list[str]) -> None:
        """
        Register the addresses of a wallet.

        Parameters
        ----------
        wallet_id : str
            Wallet identifier
        addresses : list[str]
            Addresses belonging to the wallet
        """
        self._wallets[wallet_id] = list(addresses)
        for address in addresses:
            self._state(address)

    def log_transaction(
        self,
        handle: SubmissionHandle,
        address: str,
        meta_template: MetaTemplate | None = None
    ) -> SubmissionHandle:
        """
        Follow a submission and merge its progress into the ledger.

        Parameters
        ----------
        handle : SubmissionHandle
            Submission to follow
        address : str
            Address whose ledger receives the entry
        meta_template : MetaTemplate | None
            Intended effect; plain coin transfers when omitted

        Returns
        -------
        SubmissionHandle
            The same handle, for chaining
        """
        task = asyncio.get_running_loop().create_task(
            self._follow(handle, address, meta_template)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def reconcile(
        self,
        address: str,
        transaction: dict[str, Any],
        receipt: dict[str, Any],
        meta_template: MetaTemplate | None = None
    ) -> bool:
        """
        Merge a mined transaction into an address ledger.

        Delivering the same receipt more than once leaves a single entry.

        Parameters
        ----------
        address : str
            Address whose ledger receives the entry
        transaction : dict
            Transaction fields, including ``hash``
        receipt : dict
            Receipt of the transaction
        meta_template : MetaTemplate | None
            Intended effect captured at send time

        Returns
        -------
        bool
            True if the ledger changed
        """
        parser = META_PARSERS[meta_template.kind if meta_template else "coin"]
        meta = parser(receipt, meta_template)
        tracked = TrackedTransaction(transaction=transaction, receipt=receipt, meta=meta)

        if not await self._merge(address, tracked):
            self.logger.debug(f"Receipt for {tracked.hash} already merged")
            return False

        if meta.contract_call_failed:
            self.logger.warning(f"Contract call of {tracked.hash} failed ({meta.kind})")
            self._emit_error(ChainRejectedException(f"error.contract_call.failed: {meta.kind}"), tracked.hash)
        self._emit_state(address)
        return True

    async def refresh_balances(self, wallet_id: str) -> None:
        """
        Re-read native and token balances of a wallet and publish its state.

        Parameters
        ----------
        wallet_id : str
            Wallet identifier
        """
        for address in self._wallets.get(wallet_id, []):
            try:
                balance = await self.adapter.get_balance(address)
                tokens = {
                    contract: TokenBalance(balance=str(await source(address)))
                    for contract, source in self.token_sources.items()
                }
            except BaseCustomException as e:
                self.logger.warning(f"Balance refresh of {address} failed: {e.message}")
                self._emit_error(e)
                continue

            async with self._lock(address):
                state = self._state(address)
                state.balance = str(balance)
                state.token.update(tokens)

        self.bus.emit(WALLET_STATE_CHANGED, self.snapshot(wallet_id))

    def get_state(self, address: str) -> WalletAddressState:
        return self._state(address).model_copy(deep=True)

    def snapshot(self, wallet_id: str) -> dict[str, Any]:
        """
        Full externally visible state of a wallet.

        Parameters
        ----------
        wallet_id : str
            Wallet identifier

        Returns
        -------
        dict
            ``{wallet_id: {"addresses": {address: state}}}``
        """
        addresses = {
            address: self._state(address).to_payload()
            for address in self._wallets.get(wallet_id, [])
        }
        return {wallet_id: {"addresses": addresses}}

    async def _follow(
        self,
        handle: SubmissionHandle,
        address: str,
        meta_template: MetaTemplate | None
    ) -> None:
        try:
            async for event in handle.events():
                if event.kind == "hash":
                    meta = meta_template.pending() if meta_template else MetaAction(kind="coin")
                    pending = TrackedTransaction(transaction=event.transaction, meta=meta)
                    if await self._merge(address, pending):
                        self._emit_state(address)
                elif event.kind == "receipt":
                    await self.reconcile(address, event.transaction, event.receipt, meta_template)
                elif event.kind == "error":
                    self._emit_error(event.error, event.hash)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.exception(f"Tracking of {handle.hash} for {address} failed: {e}")
            self._emit_error(e, handle.hash)

    async def _merge(self, address: str, tracked: TrackedTransaction) -> bool:
        async with self._lock(address):
            transactions = self._state(address).transactions
            for index, existing in enumerate(transactions):
                if existing.hash != tracked.hash:
                    continue
                if existing.confirmed:
                    return False
                if not tracked.confirmed and existing == tracked:
                    return False
                transactions[index] = tracked
                return True
            transactions.append(tracked)
            return True

    def _emit_state(self, address: str) -> None:
        key = self.adapter.normalize_address(address)
        for wallet_id, addresses in self._wallets.items():
            if any(self.adapter.normalize_address(a) == key for a in addresses):
                self.bus.emit(WALLET_STATE_CHANGED, self.snapshot(wallet_id))

    def _emit_error(self, error: Exception, tx_hash: str | None = None) -> None:
        kind = error.kind if isinstance(error, BaseCustomException) else "Unknown"
        message = error.message if isinstance(error, BaseCustomException) else str(error)
        self.bus.emit(WALLET_ERROR, WalletError(message=message, kind=kind, hash=tx_hash))

    def _state(self, address: str) -> WalletAddressState:
        return self._states.setdefault(self.adapter.normalize_address(address), WalletAddressState())

    def _lock(self, address: str) -> asyncio.Lock:
        return self._locks.setdefault(self.adapter.normalize_address(address), asyncio.Lock())

    async def _on_open_wallets(self, payload: OpenWallets | dict) -> None:
        wallets = payload if isinstance(payload, OpenWallets) else OpenWallets.model_validate(payload)
        self.open_wallet(wallets.active_wallet, wallets.all_addresses())
        self.logger.info(f"Opened wallet {wallets.active_wallet} with {len(wallets.all_addresses())} addresses")
        await self.refresh_balances(wallets.active_wallet)

    async def _on_coin_block(self, header: BlockHeader) -> None:
        self.logger.debug(f"Refreshing balances at block {header.number}")
        for wallet_id in list(self._wallets):
            await self.refresh_balances(wallet_id)
