import asyncio
import logging

import aiohttp

from core.events.bus import EventBus
from core.events.schemas import (
    COIN_BLOCK,
    COIN_PRICE_UPDATED,
    WALLET_ERROR,
    BlockHeader,
    CoinPrice,
    WalletError,
)
from core.exceptions import BaseCustomException, TransportFailureException
from wallet.adapters.base import ChainAdapter


class PollingWatcher:
    """
    Background task that polls a source and publishes into the bus.

    A failed poll is reported as ``wallet-error`` and polling continues.

    Parameters
    ----------
    bus : EventBus
        Event bus to publish into
    logger : logging.Logger
        Logger instance
    interval : float
        Seconds between polls
    """

    name = "watcher"

    def __init__(self, bus: EventBus, logger: logging.Logger, interval: float):
        self.bus = bus
        self.logger = logger
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self.logger.info(f"Starting {self.name} every {self.interval}s")
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        self.logger.info(f"Stopped {self.name}")

    async def poll(self) -> None:
        raise NotImplementedError

    async def _run(self) -> None:
        while True:
            try:
                await self.poll()
            except BaseCustomException as e:
                self.logger.warning(f"{self.name} poll failed: {e.message}")
                self.bus.emit(WALLET_ERROR, WalletError(message=e.message, kind=e.kind))
            except Exception as e:
                self.logger.exception(f"{self.name} poll crashed")
                self.bus.emit(WALLET_ERROR, WalletError(message=str(e), kind=BaseCustomException.kind))
            await asyncio.sleep(self.interval)


class BlockWatcher(PollingWatcher):
    """
    Publishes ``coin-block`` whenever the chain tip changes.

    Parameters
    ----------
    adapter : ChainAdapter
        Adapter reading the latest block
    bus : EventBus
        Event bus to publish into
    logger : logging.Logger
        Logger instance
    interval : float
        Seconds between polls
    """

    name = "block watcher"

    def __init__(self, adapter: ChainAdapter, bus: EventBus, logger: logging.Logger, interval: float):
        super().__init__(bus, logger, interval)
        self.adapter = adapter
        self.last_hash: str | None = None

    async def poll(self) -> None:
        header = await self.adapter.get_latest_block()
        if header.hash == self.last_hash:
            return
        self.last_hash = header.hash
        self.logger.debug(f"New block {header.number} {header.hash}")
        self.bus.emit(COIN_BLOCK, header)


class PriceWatcher(PollingWatcher):
    """
    Publishes ``coin-price-updated`` from a CoinGecko-style price API.

    Parameters
    ----------
    api_url : str
        ``simple/price`` endpoint
    coin_id : str
        Coin id on the rates API
    symbol : str
        Token symbol used in the payload
    bus : EventBus
        Event bus to publish into
    logger : logging.Logger
        Logger instance
    interval : float
        Seconds between polls
    """

    name = "price watcher"

    def __init__(
        self,
        api_url: str,
        coin_id: str,
        symbol: str,
        bus: EventBus,
        logger: logging.Logger,
        interval: float
    ):
        super().__init__(bus, logger, interval)
        self.api_url = api_url
        self.coin_id = coin_id
        self.symbol = symbol

    async def fetch_price(self) -> float:
        """
        Read the current USD price of the coin.

        Returns
        -------
        float
            Price in USD

        Raises
        ------
        TransportFailureException
            If the API is unreachable or the coin is missing from the answer
        """
        params = {"ids": self.coin_id, "vs_currencies": "usd"}
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10)) as session:
                async with session.get(self.api_url, params=params) as response:
                    if response.status != 200:
                        raise TransportFailureException(f"Rates API returned {response.status}")
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransportFailureException(f"Rates API unreachable: {e}")

        try:
            return float(data[self.coin_id]["usd"])
        except (KeyError, TypeError, ValueError):
            raise TransportFailureException(f"Rates API has no USD price for {self.coin_id}")

    async def poll(self) -> None:
        price = await self.fetch_price()
        self.bus.emit(COIN_PRICE_UPDATED, CoinPrice(token=self.symbol, price=price))
