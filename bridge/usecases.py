from bridge.auction import AuctionEstimator
from bridge.contracts import ContractRegistry
from bridge.schemas import (
    ContractAddressResponse,
    ConvertEstimateResponse,
    GasLimitResponse,
)


class GetContractAddressUseCase:
    """
    Use case for looking up a configured contract address.

    Parameters
    ----------
    contracts : ContractRegistry
        Configured contracts
    """

    def __init__(self, contracts: ContractRegistry):
        self.contracts = contracts

    async def __call__(self, name: str) -> ContractAddressResponse:
        return ContractAddressResponse(name=name, address=self.contracts.get_contract_address(name))


class GetConvertCoinEstimateUseCase:
    """
    Use case for quoting a coin to MET conversion.

    Parameters
    ----------
    estimator : AuctionEstimator
        Auction estimator instance
    """

    def __init__(self, estimator: AuctionEstimator):
        self.estimator = estimator

    async def __call__(self, value: int) -> ConvertEstimateResponse:
        """
        Execute use case.

        Parameters
        ----------
        value : int
            Coin to convert

        Returns
        -------
        ConvertEstimateResponse
            MET the converter would return
        """
        return ConvertEstimateResponse(**await self.estimator.get_convert_coin_estimate(value))


class GetConvertCoinGasLimitUseCase:
    """
    Use case for estimating the gas of a conversion.

    Parameters
    ----------
    estimator : AuctionEstimator
        Auction estimator instance
    """

    def __init__(self, estimator: AuctionEstimator):
        self.estimator = estimator

    async def __call__(self, from_address: str, value: int) -> GasLimitResponse:
        result = await self.estimator.get_convert_coin_gas_limit(from_address, value)
        return GasLimitResponse(gas_limit=result["gasLimit"])


class GetAuctionGasLimitUseCase:
    """
    Use case for estimating the gas of an auction purchase.

    Parameters
    ----------
    estimator : AuctionEstimator
        Auction estimator instance
    """

    def __init__(self, estimator: AuctionEstimator):
        self.estimator = estimator

    async def __call__(self, from_address: str, value: int) -> GasLimitResponse:
        result = await self.estimator.get_auction_gas_limit(from_address, value)
        return GasLimitResponse(gas_limit=result["gasLimit"])
