import pytest
from unittest.mock import AsyncMock, MagicMock
from web3 import Web3

from bridge.auction import AuctionEstimator, AuctionStatusWatcher, PurchaseRequest
from core.events.schemas import (
    AUCTION_STATUS_UPDATED,
    COIN_BLOCK,
    WALLET_ERROR,
    AuctionStatus,
    BlockHeader,
)
from core.exceptions import TransportFailureException


BUYER = Web3.to_checksum_address("0x" + "ab" * 20)
AUCTIONS = Web3.to_checksum_address("0x" + "22" * 20)
HEARTBEAT = [
    b"ETH\x00\x00\x00\x00\x00",
    AUCTIONS,
    "0x" + "33" * 20,
    "0x" + "11" * 20,
    8000 * 10 ** 18,
    10 ** 25,
    5 * 10 ** 18,
    1200,
    14,
    1530000000,
    1529280060,
    3 * 10 ** 15,
    2880 * 10 ** 18,
    2 * 10 ** 15,
]


@pytest.fixture
def contracts():
    """Registry double with the converter and the auction."""
    converter = MagicMock()
    converter.functions.getMetForEthResult.return_value.call = AsyncMock(return_value=2500)
    converter.functions.convertEthToMet.return_value.estimate_gas = AsyncMock(return_value=150000)

    auctions = MagicMock()
    auctions.functions.heartbeat.return_value.call = AsyncMock(return_value=HEARTBEAT)

    registry = MagicMock()
    registry.get_contract.side_effect = lambda name: {
        "AutonomousConverter": converter,
        "Auctions": auctions,
    }[name]
    registry.get_contract_address.side_effect = lambda name: {"Auctions": AUCTIONS}[name]
    registry.converter = converter
    registry.auctions = auctions
    return registry


@pytest.fixture
def adapter():
    adapter = MagicMock()
    adapter.web3.eth.estimate_gas = AsyncMock(return_value=120000)
    adapter.send_transaction = AsyncMock(return_value=MagicMock(name="handle"))
    return adapter


@pytest.fixture
def tracker():
    tracker = MagicMock()
    tracker.log_transaction.side_effect = lambda handle, address, template: handle
    return tracker


@pytest.fixture
def estimator(adapter, contracts, tracker, logger):
    return AuctionEstimator(adapter, contracts, tracker, logger)


class TestAuctionEstimator:
    """
    Unit tests for converter and auction quotes.
    """

    @pytest.mark.asyncio
    async def test_convert_coin_estimate(self, estimator, contracts):
        result = await estimator.get_convert_coin_estimate(10 ** 18)

        assert result == {"result": "2500"}
        contracts.converter.functions.getMetForEthResult.assert_called_once_with(10 ** 18)

    @pytest.mark.asyncio
    async def test_convert_coin_gas_limit(self, estimator, contracts):
        """
        Test conversion gas is estimated with a minimum return of one.

        Parameters
        ----------
        estimator : AuctionEstimator
            Estimator fixture
        contracts : MagicMock
            Registry double
        """
        result = await estimator.get_convert_coin_gas_limit(BUYER.lower(), 5)

        assert result == {"gasLimit": 150000}
        contracts.converter.functions.convertEthToMet.assert_called_once_with(1)
        contracts.converter.functions.convertEthToMet.return_value.estimate_gas.assert_awaited_once_with(
            {"from": BUYER, "value": 5}
        )

    @pytest.mark.asyncio
    async def test_auction_gas_limit(self, estimator, adapter):
        result = await estimator.get_auction_gas_limit(BUYER, 7)

        assert result == {"gasLimit": 120000}
        adapter.web3.eth.estimate_gas.assert_awaited_once_with({"from": BUYER, "to": AUCTIONS, "value": 7})

    @pytest.mark.asyncio
    async def test_node_errors_not_translated(self, estimator, contracts):
        contracts.converter.functions.getMetForEthResult.return_value.call = AsyncMock(
            side_effect=ValueError("execution reverted")
        )

        with pytest.raises(ValueError):
            await estimator.get_convert_coin_estimate(1)

    @pytest.mark.asyncio
    async def test_auction_status_from_heartbeat(self, estimator):
        status = await estimator.get_auction_status()

        assert status == AuctionStatus(
            token_remaining=str(8000 * 10 ** 18),
            current_auction=14,
            current_auction_price=str(3 * 10 ** 15),
            genesis_time=1529280060,
            next_auction_start_time=1530000000,
            daily_mintable=str(2880 * 10 ** 18)
        )

    @pytest.mark.asyncio
    async def test_buy_metronome(self, estimator, adapter, tracker):
        """
        Test a purchase sends coin to the auction and is tracked.

        Parameters
        ----------
        estimator : AuctionEstimator
            Estimator fixture
        adapter : MagicMock
            Adapter double
        tracker : MagicMock
            Tracker double
        """
        request = PurchaseRequest(**{"from": BUYER, "value": 10 ** 17})

        handle = await estimator.buy_metronome("key", request)

        adapter.send_transaction.assert_awaited_once_with(
            "key",
            BUYER,
            {"to": AUCTIONS, "value": 10 ** 17, "gas": 120000, "gasPrice": None}
        )
        assert handle is adapter.send_transaction.return_value
        template = tracker.log_transaction.call_args.args[2]
        assert template.kind == "auction"
        assert template.address == AUCTIONS


class TestAuctionStatusWatcher:
    """
    Unit tests for auction status publishing.
    """

    @pytest.mark.asyncio
    async def test_status_published_per_block(self, estimator, bus, logger):
        statuses = []
        bus.on(AUCTION_STATUS_UPDATED, statuses.append)
        watcher = AuctionStatusWatcher(estimator, bus, logger)
        watcher.start()

        bus.emit(COIN_BLOCK, BlockHeader(hash="0x01", number=1, timestamp=1))
        await bus.join()
        await watcher.stop()

        assert len(statuses) == 1
        assert statuses[0].current_auction == 14

    @pytest.mark.asyncio
    async def test_unreadable_heartbeat_reported(self, estimator, bus, logger):
        """
        Test a failed heartbeat read becomes a ``wallet-error``.

        Parameters
        ----------
        estimator : AuctionEstimator
            Estimator fixture
        bus : EventBus
            Event bus fixture
        logger : logging.Logger
            Test logger
        """
        estimator.get_auction_status = AsyncMock(side_effect=TransportFailureException("node down"))
        errors = []
        bus.on(WALLET_ERROR, errors.append)
        watcher = AuctionStatusWatcher(estimator, bus, logger)
        watcher.start()

        bus.emit(COIN_BLOCK, BlockHeader(hash="0x02", number=2, timestamp=2))
        await bus.join()

        assert [(error.kind, error.message) for error in errors] == [("TransportFailure", "node down")]
