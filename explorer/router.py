from fastapi import APIRouter
from dishka.integrations.fastapi import inject
from dishka import FromComponent
from typing import Annotated
from explorer.schemas import GasPriceResponse, GetPastEventsRequest, PastEventsResponse
from explorer.usecases import GetGasPriceUseCase, GetPastEventsUseCase

router = APIRouter(
    prefix="/api/explorer",
    tags=["Explorer"]
)


@router.post("/events", response_model=PastEventsResponse)
@inject
async def get_past_events(
    request: GetPastEventsRequest,
    use_case: Annotated[
        GetPastEventsUseCase, FromComponent("explorer")
    ]
) -> PastEventsResponse:
    """
    Get decoded past events of a configured contract.

    Parameters
    ----------
    request : GetPastEventsRequest
        Request with contract, event, block range and filter
    use_case : GetPastEventsUseCase
        Use case for getting past events

    Returns
    -------
    PastEventsResponse
        Contract events information
    """
    return await use_case(
        contract=request.contract,
        event=request.event,
        from_block=request.from_block,
        to_block=request.to_block,
        filter=request.filter
    )


@router.get("/gas-price", response_model=GasPriceResponse)
@inject
async def get_gas_price(
    use_case: Annotated[
        GetGasPriceUseCase, FromComponent("explorer")
    ]
) -> GasPriceResponse:
    """
    Get the current gas price.

    Parameters
    ----------
    use_case : GetGasPriceUseCase
        Use case for getting the gas price

    Returns
    -------
    GasPriceResponse
        Gas price in wei
    """
    return await use_case()
