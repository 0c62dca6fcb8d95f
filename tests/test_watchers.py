import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.events.schemas import (
    COIN_BLOCK,
    COIN_PRICE_UPDATED,
    OPEN_WALLETS,
    WALLET_ERROR,
    BlockHeader,
    CoinPrice,
    OpenWallets,
)
from core.exceptions import TransportFailureException
from wallet.entities import TransferRequest
from wallet.services import WalletService
from wallet.watchers import BlockWatcher, PriceWatcher


def header(number):
    return BlockHeader(hash=f"0x{number:02x}", number=number, timestamp=number * 15)


class TestBlockWatcher:
    """
    Unit tests for new block detection.
    """

    @pytest.mark.asyncio
    async def test_emits_only_new_blocks(self, bus, logger):
        """
        Test ``coin-block`` is published once per distinct tip.

        Parameters
        ----------
        bus : EventBus
            Event bus fixture
        logger : logging.Logger
            Test logger
        """
        adapter = MagicMock()
        adapter.get_latest_block = AsyncMock(side_effect=[header(1), header(1), header(2)])
        blocks = []
        bus.on(COIN_BLOCK, blocks.append)
        watcher = BlockWatcher(adapter, bus, logger, interval=1)

        for _ in range(3):
            await watcher.poll()
        await bus.join()

        assert [block.number for block in blocks] == [1, 2]

    @pytest.mark.asyncio
    async def test_failed_poll_reported_and_polling_continues(self, bus, logger):
        outcomes = [TransportFailureException("node down")]

        async def latest_block():
            if outcomes:
                raise outcomes.pop()
            return header(3)

        adapter = MagicMock()
        adapter.get_latest_block = AsyncMock(side_effect=latest_block)
        errors = []
        blocks = []
        bus.on(WALLET_ERROR, errors.append)
        bus.on(COIN_BLOCK, blocks.append)
        watcher = BlockWatcher(adapter, bus, logger, interval=0.01)

        watcher.start()
        while adapter.get_latest_block.await_count < 2:
            await asyncio.sleep(0.01)
        await watcher.stop()
        await bus.join()

        assert errors[0].kind == "TransportFailure"
        assert blocks == [header(3)]
        assert not watcher.running


class TestPriceWatcher:
    """
    Unit tests for coin price publishing.
    """

    @pytest.mark.asyncio
    async def test_price_published(self, bus, logger):
        prices = []
        bus.on(COIN_PRICE_UPDATED, prices.append)
        watcher = PriceWatcher("http://rates", "ethereum", "ETH", bus, logger, interval=30)
        watcher.fetch_price = AsyncMock(return_value=412.5)

        await watcher.poll()
        await bus.join()

        assert prices == [CoinPrice(token="ETH", price=412.5)]

    @pytest.mark.asyncio
    async def test_unexpected_failure_reported_and_polling_continues(self, bus, logger):
        """
        Test an error outside the wallet taxonomy does not stop polling.

        Parameters
        ----------
        bus : EventBus
            Event bus fixture
        logger : logging.Logger
            Test logger
        """
        outcomes = [ValueError("Expecting value: line 1 column 1")]

        async def fetch_price():
            if outcomes:
                raise outcomes.pop()
            return 400.0

        errors = []
        prices = []
        bus.on(WALLET_ERROR, errors.append)
        bus.on(COIN_PRICE_UPDATED, prices.append)
        watcher = PriceWatcher("http://rates", "ethereum", "ETH", bus, logger, interval=0.01)
        watcher.fetch_price = AsyncMock(side_effect=fetch_price)

        watcher.start()
        while watcher.fetch_price.await_count < 2:
            await asyncio.sleep(0.01)
        assert watcher.running
        await watcher.stop()
        await bus.join()

        assert errors[0].kind == "Unknown"
        assert "Expecting value" in errors[0].message
        assert prices[0] == CoinPrice(token="ETH", price=400.0)


class TestWalletService:
    """
    Unit tests for wallet operations.
    """

    @pytest.mark.asyncio
    async def test_send_coin_tracked_for_sender(self, bus, logger):
        """
        Test sent coin is followed in the sender's ledger.

        Parameters
        ----------
        bus : EventBus
            Event bus fixture
        logger : logging.Logger
            Test logger
        """
        handle = MagicMock(name="handle")
        adapter = MagicMock()
        adapter.send_coin = AsyncMock(return_value=handle)
        tracker = MagicMock()
        tracker.log_transaction.return_value = handle
        service = WalletService(adapter, tracker, bus, logger)
        request = TransferRequest(**{"from": "0x" + "ab" * 20, "to": "0x" + "cd" * 20, "value": 3})

        assert await service.send_coin("key", request) is handle
        adapter.send_coin.assert_awaited_once_with("key", request)
        tracker.log_transaction.assert_called_once_with(handle, request.from_address)

    @pytest.mark.asyncio
    async def test_open_wallets_emitted(self, bus, logger):
        opened = []
        bus.on(OPEN_WALLETS, opened.append)
        service = WalletService(MagicMock(), MagicMock(), bus, logger)
        wallets = OpenWallets(active_wallet="wallet-1", addresses=["0x" + "ab" * 20])

        service.open_wallets(wallets)
        await bus.join()

        assert opened == [wallets]
