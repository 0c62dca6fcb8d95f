from dishka import Provider, Scope, provide, FromComponent
from typing import Annotated, AsyncIterable
from web3 import AsyncWeb3
import logging

from bridge.contracts import ContractRegistry
from core.environment.config import Settings
from core.events.bus import EventBus
from core.exceptions import InvalidInputException
from wallet.adapters.base import ChainAdapter
from wallet.adapters.ethereum import EthereumAdapter, EthereumReceiptWatcher
from wallet.adapters.utxo import InsightClient, InsightReceiptWatcher, UtxoAdapter
from wallet.lifecycle import SubmissionLifecycleAdapter
from wallet.services import WalletService
from wallet.tracker import TransactionTracker
from wallet.usecases import GetWalletStateUseCase
from wallet.watchers import BlockWatcher, PriceWatcher


class WalletProvider(Provider):
    """
    Provider for chain adapters, the transaction tracker and watchers.
    """

    component = "wallet"

    @provide(scope=Scope.APP)
    def get_web3_client(
        self,
        settings: Annotated[Settings, FromComponent("environment")]
    ) -> AsyncWeb3:
        """
        Provide Web3 client of the account chain.

        Parameters
        ----------
        settings : Settings
            Application settings

        Returns
        -------
        AsyncWeb3
            Web3 client
        """
        return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.node_url))

    @provide(scope=Scope.APP)
    def get_lifecycle_adapter(
        self,
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> SubmissionLifecycleAdapter:
        return SubmissionLifecycleAdapter(logger)

    @provide(scope=Scope.APP)
    def get_chain_adapter(
        self,
        settings: Annotated[Settings, FromComponent("environment")],
        web3: Annotated[AsyncWeb3, FromComponent("wallet")],
        lifecycle: Annotated[SubmissionLifecycleAdapter, FromComponent("wallet")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> ChainAdapter:
        """
        Provide the adapter of the configured chain type.

        Parameters
        ----------
        settings : Settings
            Application settings
        web3 : AsyncWeb3
            Web3 client (account chains)
        lifecycle : SubmissionLifecycleAdapter
            Lifecycle adapter
        logger : logging.Logger
            Logger instance

        Returns
        -------
        ChainAdapter
            Ethereum or UTXO adapter

        Raises
        ------
        InvalidInputException
            If a UTXO chain is configured without a signer
        """
        poll_interval = settings.receipt_poll_ms / 1000

        if settings.chain_type == "ethereum":
            return EthereumAdapter(
                web3=web3,
                lifecycle=lifecycle,
                watcher=EthereumReceiptWatcher(web3, poll_interval, settings.receipt_timeout_s, logger),
                logger=logger,
                symbol=settings.symbol,
                chain_id=settings.chain_id,
                derivation_path=settings.derivation_path,
                default_gas_limit=settings.default_gas_limit
            )

        if settings.utxo_signer is None:
            raise InvalidInputException("error.config.utxo_signer_missing")
        client = InsightClient(settings.explorer_api_url)
        return UtxoAdapter(
            client=client,
            signer=settings.utxo_signer(),
            lifecycle=lifecycle,
            watcher=InsightReceiptWatcher(client, poll_interval, settings.receipt_timeout_s),
            logger=logger,
            symbol=settings.symbol,
            default_fee_rate=settings.default_fee_rate
        )

    @provide(scope=Scope.APP)
    async def get_transaction_tracker(
        self,
        settings: Annotated[Settings, FromComponent("environment")],
        adapter: Annotated[ChainAdapter, FromComponent("wallet")],
        bus: Annotated[EventBus, FromComponent("events")],
        contracts: Annotated[ContractRegistry, FromComponent("bridge")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> AsyncIterable[TransactionTracker]:
        """
        Provide the transaction tracker, subscribed to the bus.

        MET balances are tracked when the token contract is configured.

        Yields
        ------
        TransactionTracker
            Tracker, closed when the container closes
        """
        token_sources = {}
        if settings.chain_type == "ethereum" and settings.met_token_address:
            token_sources[contracts.get_contract_address("METToken")] = contracts.balance_of

        tracker = TransactionTracker(adapter, bus, logger, token_sources)
        tracker.start()
        try:
            yield tracker
        finally:
            await tracker.close()

    @provide(scope=Scope.APP)
    def get_wallet_service(
        self,
        adapter: Annotated[ChainAdapter, FromComponent("wallet")],
        tracker: Annotated[TransactionTracker, FromComponent("wallet")],
        bus: Annotated[EventBus, FromComponent("events")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> WalletService:
        return WalletService(adapter=adapter, tracker=tracker, bus=bus, logger=logger)

    @provide(scope=Scope.APP)
    def get_block_watcher(
        self,
        settings: Annotated[Settings, FromComponent("environment")],
        adapter: Annotated[ChainAdapter, FromComponent("wallet")],
        bus: Annotated[EventBus, FromComponent("events")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> BlockWatcher:
        return BlockWatcher(adapter, bus, logger, settings.block_poll_ms / 1000)

    @provide(scope=Scope.APP)
    def get_price_watcher(
        self,
        settings: Annotated[Settings, FromComponent("environment")],
        bus: Annotated[EventBus, FromComponent("events")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> PriceWatcher:
        return PriceWatcher(
            api_url=settings.rates_api_url,
            coin_id=settings.rates_coin_id,
            symbol=settings.symbol,
            bus=bus,
            logger=logger,
            interval=settings.rates_update_ms / 1000
        )

    @provide(scope=Scope.REQUEST)
    def get_wallet_state_use_case(
        self,
        wallet_service: Annotated[WalletService, FromComponent("wallet")]
    ) -> GetWalletStateUseCase:
        """
        Provide get wallet state use case.

        Parameters
        ----------
        wallet_service : WalletService
            Wallet service instance

        Returns
        -------
        GetWalletStateUseCase
            Get wallet state use case
        """
        return GetWalletStateUseCase(wallet_service=wallet_service)
