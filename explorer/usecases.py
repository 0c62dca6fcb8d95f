import hashlib
import json

from bridge.contracts import CONTRACT_ABIS, ContractRegistry
from core.redis.providers import CacheService
from explorer.schemas import GasPriceResponse, PastEventResponse, PastEventsResponse
from explorer.services import ExplorerService


class GetPastEventsUseCase:
    """
    Use case for getting past events of a configured contract.

    Results for a fixed block range never change and are cached.

    Parameters
    ----------
    explorer_service : ExplorerService
        Explorer service instance
    contracts : ContractRegistry
        Configured contracts
    cache_service : CacheService
        Cache service instance
    """

    def __init__(
        self,
        explorer_service: ExplorerService,
        contracts: ContractRegistry,
        cache_service: CacheService
    ):
        self.explorer_service = explorer_service
        self.contracts = contracts
        self.cache = cache_service

    async def __call__(
        self,
        contract: str,
        event: str,
        from_block: int,
        to_block: int | None = None,
        filter: dict | None = None
    ) -> PastEventsResponse:
        """
        Execute use case.

        Parameters
        ----------
        contract : str
            Contract name
        event : str
            Event name
        from_block : int
            First block
        to_block : int | None
            Last block; the chain tip when omitted
        filter : dict | None
            Indexed argument values to match

        Returns
        -------
        PastEventsResponse
            Events response
        """
        address = self.contracts.get_contract_address(contract)

        cache_key = None
        if to_block is not None:
            filter_key = hashlib.md5(json.dumps(filter or {}, sort_keys=True).encode()).hexdigest()
            cache_key = f"events:{address.lower()}:{event}:{from_block}:{to_block}:{filter_key}"
            cached = await self.cache.get(cache_key)
            if cached:
                return PastEventsResponse(**cached)
        else:
            to_block = await self.explorer_service.get_block_number()

        events = await self.explorer_service.get_past_events(
            abi=CONTRACT_ABIS[contract],
            address=address,
            event_name=event,
            from_block=from_block,
            to_block=to_block,
            filter=filter
        )

        response = PastEventsResponse(
            contract_address=address,
            from_block=from_block,
            to_block=to_block,
            events=[PastEventResponse.model_validate(event) for event in events],
            total_events=len(events)
        )

        if cache_key:
            await self.cache.set(cache_key, response.model_dump(), ttl=86400)

        return response


class GetGasPriceUseCase:
    """
    Use case for getting the current gas price.

    Parameters
    ----------
    explorer_service : ExplorerService
        Explorer service instance
    """

    def __init__(self, explorer_service: ExplorerService):
        self.explorer_service = explorer_service

    async def __call__(self) -> GasPriceResponse:
        result = await self.explorer_service.get_gas_price()
        return GasPriceResponse(gas_price=result["gasPrice"])
