from core.exceptions import InvalidInputException
from wallet.schemas import WalletStateResponse
from wallet.services import WalletService


class GetWalletStateUseCase:
    """
    Use case for reading the tracked state of an open wallet.

    Parameters
    ----------
    wallet_service : WalletService
        Wallet service instance
    """

    def __init__(self, wallet_service: WalletService):
        self.wallet_service = wallet_service

    async def __call__(self, wallet_id: str) -> WalletStateResponse:
        """
        Execute use case.

        Parameters
        ----------
        wallet_id : str
            Wallet identifier

        Returns
        -------
        WalletStateResponse
            Addresses with balances and transactions

        Raises
        ------
        InvalidInputException
            If the wallet has not been opened
        """
        snapshot = self.wallet_service.get_state(wallet_id)[wallet_id]
        if not snapshot["addresses"]:
            raise InvalidInputException(f"error.wallet.not_open: {wallet_id}")
        return WalletStateResponse(wallet_id=wallet_id, addresses=snapshot["addresses"])
