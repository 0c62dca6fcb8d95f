from dishka import Provider, Scope, provide, FromComponent
from typing import Annotated, AsyncIterable
from web3 import AsyncWeb3
import logging

from bridge.auction import AuctionEstimator, AuctionStatusWatcher
from bridge.contracts import ContractRegistry
from bridge.fees import PorterFeeEstimator
from bridge.protocol import BridgeProtocol
from bridge.usecases import (
    GetAuctionGasLimitUseCase,
    GetContractAddressUseCase,
    GetConvertCoinEstimateUseCase,
    GetConvertCoinGasLimitUseCase,
)
from core.environment.config import Settings
from core.events.bus import EventBus
from core.exceptions import InvalidInputException
from wallet.adapters.base import ChainAdapter
from wallet.adapters.ethereum import EthereumAdapter
from wallet.tracker import TransactionTracker


class BridgeProvider(Provider):
    """
    Provider for MET contracts, the bridge protocol and auction helpers.

    The bridge runs on account chains only.
    """

    component = "bridge"

    @provide(scope=Scope.APP)
    def get_contract_registry(
        self,
        settings: Annotated[Settings, FromComponent("environment")],
        web3: Annotated[AsyncWeb3, FromComponent("wallet")]
    ) -> ContractRegistry:
        """
        Provide configured contracts.

        Parameters
        ----------
        settings : Settings
            Application settings
        web3 : AsyncWeb3
            Web3 client

        Returns
        -------
        ContractRegistry
            Contract registry
        """
        return ContractRegistry(web3, settings.get_contract_addresses())

    @provide(scope=Scope.APP)
    def get_account_adapter(
        self,
        adapter: Annotated[ChainAdapter, FromComponent("wallet")]
    ) -> EthereumAdapter:
        """
        Provide the account-chain adapter the bridge signs with.

        Raises
        ------
        InvalidInputException
            If the configured chain is not an account chain
        """
        if not isinstance(adapter, EthereumAdapter):
            raise InvalidInputException(f"error.bridge.unsupported_chain: {adapter.chain_model}")
        return adapter

    @provide(scope=Scope.APP)
    def get_fee_estimator(
        self,
        contracts: Annotated[ContractRegistry, FromComponent("bridge")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> PorterFeeEstimator:
        return PorterFeeEstimator(contracts, logger)

    @provide(scope=Scope.APP)
    async def get_bridge_protocol(
        self,
        settings: Annotated[Settings, FromComponent("environment")],
        adapter: Annotated[EthereumAdapter, FromComponent("bridge")],
        contracts: Annotated[ContractRegistry, FromComponent("bridge")],
        fee_estimator: Annotated[PorterFeeEstimator, FromComponent("bridge")],
        tracker: Annotated[TransactionTracker, FromComponent("wallet")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> AsyncIterable[BridgeProtocol]:
        """
        Provide the bridge protocol.

        Yields
        ------
        BridgeProtocol
            Protocol, its follower tasks cancelled when the container closes
        """
        protocol = BridgeProtocol(
            adapter=adapter,
            contracts=contracts,
            fee_estimator=fee_estimator,
            tracker=tracker,
            logger=logger,
            chain_name=settings.chain_name
        )
        try:
            yield protocol
        finally:
            await protocol.close()

    @provide(scope=Scope.APP)
    def get_auction_estimator(
        self,
        adapter: Annotated[EthereumAdapter, FromComponent("bridge")],
        contracts: Annotated[ContractRegistry, FromComponent("bridge")],
        tracker: Annotated[TransactionTracker, FromComponent("wallet")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> AuctionEstimator:
        return AuctionEstimator(adapter=adapter, contracts=contracts, tracker=tracker, logger=logger)

    @provide(scope=Scope.APP)
    def get_auction_status_watcher(
        self,
        estimator: Annotated[AuctionEstimator, FromComponent("bridge")],
        bus: Annotated[EventBus, FromComponent("events")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> AuctionStatusWatcher:
        return AuctionStatusWatcher(estimator, bus, logger)

    @provide(scope=Scope.REQUEST)
    def get_contract_address_use_case(
        self,
        contracts: Annotated[ContractRegistry, FromComponent("bridge")]
    ) -> GetContractAddressUseCase:
        return GetContractAddressUseCase(contracts=contracts)

    @provide(scope=Scope.REQUEST)
    def get_convert_coin_estimate_use_case(
        self,
        estimator: Annotated[AuctionEstimator, FromComponent("bridge")]
    ) -> GetConvertCoinEstimateUseCase:
        return GetConvertCoinEstimateUseCase(estimator=estimator)

    @provide(scope=Scope.REQUEST)
    def get_convert_coin_gas_limit_use_case(
        self,
        estimator: Annotated[AuctionEstimator, FromComponent("bridge")]
    ) -> GetConvertCoinGasLimitUseCase:
        return GetConvertCoinGasLimitUseCase(estimator=estimator)

    @provide(scope=Scope.REQUEST)
    def get_auction_gas_limit_use_case(
        self,
        estimator: Annotated[AuctionEstimator, FromComponent("bridge")]
    ) -> GetAuctionGasLimitUseCase:
        return GetAuctionGasLimitUseCase(estimator=estimator)
