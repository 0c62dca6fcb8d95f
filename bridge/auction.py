import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from bridge.contracts import ContractRegistry
from core.events.bus import EventBus, Subscription
from core.events.schemas import (
    AUCTION_STATUS_UPDATED,
    COIN_BLOCK,
    WALLET_ERROR,
    AuctionStatus,
    BlockHeader,
    WalletError,
)
from core.exceptions import BaseCustomException, TransportFailureException
from wallet.adapters.ethereum import EthereumAdapter
from wallet.lifecycle import SubmissionHandle
from wallet.meta_parsers import META_PARSERS
from wallet.tracker import TransactionTracker


class PurchaseRequest(BaseModel):
    """
    Auction purchase: coin sent to the Auctions contract.

    Attributes
    ----------
    from_address : str
        Buyer address
    value : int
        Coin to spend
    gas : int | None
        Gas limit; estimated when omitted
    gas_price : int | None
        Gas price; read from the node when omitted
    """
    from_address: str = Field(alias="from")
    value: int = Field(gt=0)
    gas: int | None = Field(default=None, gt=0)
    gas_price: int | None = Field(default=None, alias="gasPrice", ge=0)

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AuctionEstimator:
    """
    Read-only quotes against the converter and the auction, plus purchases.

    Node errors from the quotes are not translated.

    Parameters
    ----------
    adapter : EthereumAdapter
        Account-chain adapter
    contracts : ContractRegistry
        Configured contracts
    tracker : TransactionTracker
        Ledger receiving purchases
    logger : logging.Logger
        Logger instance
    """

    def __init__(
        self,
        adapter: EthereumAdapter,
        contracts: ContractRegistry,
        tracker: TransactionTracker,
        logger: logging.Logger
    ):
        self.adapter = adapter
        self.contracts = contracts
        self.tracker = tracker
        self.logger = logger

    async def get_convert_coin_estimate(self, value: int) -> dict[str, str]:
        """
        MET returned by the converter for ``value`` coin.

        Parameters
        ----------
        value : int
            Coin to convert

        Returns
        -------
        dict[str, str]
            ``{"result": amount}``
        """
        converter = self.contracts.get_contract("AutonomousConverter")
        result = await converter.functions.getMetForEthResult(value).call()
        return {"result": str(result)}

    async def get_convert_coin_gas_limit(self, from_address: str, value: int) -> dict[str, int]:
        """
        Gas needed to convert ``value`` coin to MET.

        Parameters
        ----------
        from_address : str
            Converting address
        value : int
            Coin to convert

        Returns
        -------
        dict[str, int]
            ``{"gasLimit": gas}``
        """
        converter = self.contracts.get_contract("AutonomousConverter")
        gas = await converter.functions.convertEthToMet(1).estimate_gas({
            "from": Web3.to_checksum_address(from_address),
            "value": value
        })
        return {"gasLimit": gas}

    async def get_auction_gas_limit(self, from_address: str, value: int) -> dict[str, int]:
        """
        Gas needed to buy in the auction with ``value`` coin.

        Parameters
        ----------
        from_address : str
            Buyer address
        value : int
            Coin to spend

        Returns
        -------
        dict[str, int]
            ``{"gasLimit": gas}``
        """
        gas = await self.adapter.web3.eth.estimate_gas({
            "from": Web3.to_checksum_address(from_address),
            "to": self.contracts.get_contract_address("Auctions"),
            "value": value
        })
        return {"gasLimit": gas}

    async def buy_metronome(self, private_key: str, request: PurchaseRequest) -> SubmissionHandle:
        """
        Send coin to the auction and track the purchase.

        Parameters
        ----------
        private_key : str
            Buyer key
        request : PurchaseRequest
            Purchase parameters

        Returns
        -------
        SubmissionHandle
            Lifecycle of the purchase
        """
        gas = request.gas
        if gas is None:
            gas = (await self.get_auction_gas_limit(request.from_address, request.value))["gasLimit"]

        transaction = {
            "to": self.contracts.get_contract_address("Auctions"),
            "value": request.value,
            "gas": gas,
            "gasPrice": request.gas_price
        }
        self.logger.info(f"Buying MET with {request.value} from {request.from_address}")
        handle = await self.adapter.send_transaction(private_key, request.from_address, transaction)
        template = META_PARSERS["auction"].template(contract_address=transaction["to"])
        return self.tracker.log_transaction(handle, request.from_address, template)

    async def get_auction_status(self) -> AuctionStatus:
        """
        Current auction status from ``Auctions.heartbeat()``.

        Returns
        -------
        AuctionStatus
            Status payload

        Raises
        ------
        TransportFailureException
            If the heartbeat could not be read
        """
        auctions = self.contracts.get_contract("Auctions")
        try:
            heartbeat = await auctions.functions.heartbeat().call()
        except BaseCustomException:
            raise
        except Exception as e:
            raise TransportFailureException(f"Could not read auction heartbeat: {e}")
        return self._status_from_heartbeat(heartbeat)

    @staticmethod
    def _status_from_heartbeat(heartbeat: list[Any]) -> AuctionStatus:
        # bytes8 chain, auctions, converter, token, minting, totalMET,
        # proceedsBal, currTick, currAuction, nextAuctionGMT, genesisGMT,
        # currentAuctionPrice, dailyMintable, lastPurchasePrice
        return AuctionStatus(
            token_remaining=str(heartbeat[4]),
            current_auction=heartbeat[8],
            current_auction_price=str(heartbeat[11]),
            genesis_time=heartbeat[10],
            next_auction_start_time=heartbeat[9],
            daily_mintable=str(heartbeat[12])
        )


class AuctionStatusWatcher:
    """
    Publishes ``auction-status-updated`` on every new block.

    Parameters
    ----------
    estimator : AuctionEstimator
        Source of the auction status
    bus : EventBus
        Event bus
    logger : logging.Logger
        Logger instance
    """

    def __init__(self, estimator: AuctionEstimator, bus: EventBus, logger: logging.Logger):
        self.estimator = estimator
        self.bus = bus
        self.logger = logger
        self._subscription: Subscription | None = None

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.bus.on(COIN_BLOCK, self._on_coin_block)

    async def stop(self) -> None:
        if self._subscription is not None:
            self.bus.off(self._subscription)
            self._subscription = None

    async def _on_coin_block(self, header: BlockHeader) -> None:
        try:
            status = await self.estimator.get_auction_status()
        except BaseCustomException as e:
            self.logger.warning(f"Auction status at block {header.number} unavailable: {e.message}")
            self.bus.emit(WALLET_ERROR, WalletError(message=e.message, kind=e.kind))
            return
        self.bus.emit(AUCTION_STATUS_UPDATED, status)
