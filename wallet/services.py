import logging

from core.events.bus import EventBus
from core.events.schemas import OPEN_WALLETS, OpenWallets
from wallet.adapters.base import ChainAdapter
from wallet.entities import TransferRequest
from wallet.lifecycle import SubmissionHandle
from wallet.tracker import TransactionTracker


class WalletService:
    """
    Wallet operations of the configured chain.

    Parameters
    ----------
    adapter : ChainAdapter
        Chain adapter
    tracker : TransactionTracker
        Ledger receiving sent transactions
    bus : EventBus
        Event bus
    logger : logging.Logger
        Logger instance
    """

    def __init__(
        self,
        adapter: ChainAdapter,
        tracker: TransactionTracker,
        bus: EventBus,
        logger: logging.Logger
    ):
        self.adapter = adapter
        self.tracker = tracker
        self.bus = bus
        self.logger = logger

    def create_address(self, seed: str) -> str:
        return self.adapter.create_address(seed)

    def create_private_key(self, seed: str) -> str:
        return self.adapter.create_private_key(seed)

    async def send_coin(self, private_key: str, request: TransferRequest) -> SubmissionHandle:
        """
        Send native coin and track it in the sender's ledger.

        Parameters
        ----------
        private_key : str
            Sender key
        request : TransferRequest
            Transfer parameters

        Returns
        -------
        SubmissionHandle
            Lifecycle of the transfer
        """
        handle = await self.adapter.send_coin(private_key, request)
        return self.tracker.log_transaction(handle, request.from_address)

    def open_wallets(self, wallets: OpenWallets) -> None:
        """Announce the active wallet; the tracker refreshes and publishes its state."""
        self.bus.emit(OPEN_WALLETS, wallets)

    def get_state(self, wallet_id: str) -> dict:
        return self.tracker.snapshot(wallet_id)
