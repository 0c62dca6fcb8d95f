from dishka import Provider, Scope, provide, FromComponent
from typing import Annotated
from web3 import AsyncWeb3
import logging

from bridge.contracts import ContractRegistry
from core.redis.providers import CacheService
from explorer.services import ExplorerService
from explorer.usecases import GetGasPriceUseCase, GetPastEventsUseCase
from wallet.tracker import TransactionTracker


class ExplorerProvider(Provider):
    """
    Provider for explorer-related dependencies.
    """

    component = "explorer"

    @provide(scope=Scope.APP)
    def get_explorer_service(
        self,
        web3: Annotated[AsyncWeb3, FromComponent("wallet")],
        contracts: Annotated[ContractRegistry, FromComponent("bridge")],
        tracker: Annotated[TransactionTracker, FromComponent("wallet")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> ExplorerService:
        """
        Provide explorer service.

        Parameters
        ----------
        web3 : AsyncWeb3
            Web3 client
        contracts : ContractRegistry
            Configured contracts
        tracker : TransactionTracker
            Ledger receiving reconciled transactions
        logger : logging.Logger
            Logger instance

        Returns
        -------
        ExplorerService
            Explorer service instance
        """
        return ExplorerService(web3=web3, contracts=contracts, tracker=tracker, logger=logger)

    @provide(scope=Scope.REQUEST)
    def get_past_events_use_case(
        self,
        explorer_service: Annotated[ExplorerService, FromComponent("explorer")],
        contracts: Annotated[ContractRegistry, FromComponent("bridge")],
        cache_service: Annotated[CacheService, FromComponent("cache")]
    ) -> GetPastEventsUseCase:
        """
        Provide get past events use case.

        Parameters
        ----------
        explorer_service : ExplorerService
            Explorer service instance
        contracts : ContractRegistry
            Configured contracts
        cache_service : CacheService
            Cache service instance

        Returns
        -------
        GetPastEventsUseCase
            Get past events use case
        """
        return GetPastEventsUseCase(
            explorer_service=explorer_service,
            contracts=contracts,
            cache_service=cache_service
        )

    @provide(scope=Scope.REQUEST)
    def get_gas_price_use_case(
        self,
        explorer_service: Annotated[ExplorerService, FromComponent("explorer")]
    ) -> GetGasPriceUseCase:
        return GetGasPriceUseCase(explorer_service=explorer_service)
