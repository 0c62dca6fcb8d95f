from fastapi import APIRouter
from dishka.integrations.fastapi import inject
from dishka import FromComponent
from typing import Annotated
from bridge.schemas import (
    ContractAddressResponse,
    ConvertEstimateRequest,
    ConvertEstimateResponse,
    GasLimitRequest,
    GasLimitResponse
)
from bridge.usecases import (
    GetAuctionGasLimitUseCase,
    GetContractAddressUseCase,
    GetConvertCoinEstimateUseCase,
    GetConvertCoinGasLimitUseCase
)

router = APIRouter(
    prefix="/api/bridge",
    tags=["Bridge"]
)


@router.get("/contracts/{name}", response_model=ContractAddressResponse)
@inject
async def get_contract_address(
    name: str,
    use_case: Annotated[
        GetContractAddressUseCase, FromComponent("bridge")
    ]
) -> ContractAddressResponse:
    """
    Get the address of a configured contract.

    Parameters
    ----------
    name : str
        Contract name (METToken, Auctions, AutonomousConverter, TokenPorter)
    use_case : GetContractAddressUseCase
        Use case for contract lookup

    Returns
    -------
    ContractAddressResponse
        Contract address
    """
    return await use_case(name=name)


@router.post("/convert/estimate", response_model=ConvertEstimateResponse)
@inject
async def get_convert_coin_estimate(
    request: ConvertEstimateRequest,
    use_case: Annotated[
        GetConvertCoinEstimateUseCase, FromComponent("bridge")
    ]
) -> ConvertEstimateResponse:
    """
    Quote MET returned for converting coin.

    Parameters
    ----------
    request : ConvertEstimateRequest
        Request with the coin value
    use_case : GetConvertCoinEstimateUseCase
        Use case for conversion quotes

    Returns
    -------
    ConvertEstimateResponse
        MET amount
    """
    return await use_case(value=request.value)


@router.post("/convert/gas-limit", response_model=GasLimitResponse)
@inject
async def get_convert_coin_gas_limit(
    request: GasLimitRequest,
    use_case: Annotated[
        GetConvertCoinGasLimitUseCase, FromComponent("bridge")
    ]
) -> GasLimitResponse:
    """
    Estimate gas for converting coin to MET.

    Parameters
    ----------
    request : GasLimitRequest
        Request with sender and value
    use_case : GetConvertCoinGasLimitUseCase
        Use case for conversion gas

    Returns
    -------
    GasLimitResponse
        Gas limit
    """
    return await use_case(from_address=request.from_address, value=request.value)


@router.post("/auction/gas-limit", response_model=GasLimitResponse)
@inject
async def get_auction_gas_limit(
    request: GasLimitRequest,
    use_case: Annotated[
        GetAuctionGasLimitUseCase, FromComponent("bridge")
    ]
) -> GasLimitResponse:
    """
    Estimate gas for buying MET in the auction.

    Parameters
    ----------
    request : GasLimitRequest
        Request with buyer and value
    use_case : GetAuctionGasLimitUseCase
        Use case for auction gas

    Returns
    -------
    GasLimitResponse
        Gas limit
    """
    return await use_case(from_address=request.from_address, value=request.value)
