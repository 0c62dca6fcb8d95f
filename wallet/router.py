from fastapi import APIRouter
from dishka.integrations.fastapi import inject
from dishka import FromComponent
from typing import Annotated
from wallet.schemas import WalletStateResponse
from wallet.usecases import GetWalletStateUseCase

router = APIRouter(
    prefix="/api/wallet",
    tags=["Wallet"]
)


@router.get("/{wallet_id}/state", response_model=WalletStateResponse)
@inject
async def get_wallet_state(
    wallet_id: str,
    use_case: Annotated[
        GetWalletStateUseCase, FromComponent("wallet")
    ]
) -> WalletStateResponse:
    """
    Get balances and tracked transactions of an open wallet.

    Parameters
    ----------
    wallet_id : str
        Wallet identifier
    use_case : GetWalletStateUseCase
        Use case for reading wallet state

    Returns
    -------
    WalletStateResponse
        Wallet state
    """
    return await use_case(wallet_id=wallet_id)
