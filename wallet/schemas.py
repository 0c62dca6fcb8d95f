from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WalletStateResponse(BaseModel):
    """
    Response schema for the tracked state of a wallet.

    Attributes
    ----------
    wallet_id : str
        Wallet identifier
    addresses : dict
        Address to ``{balance, token, transactions}``
    """
    wallet_id: str = Field(serialization_alias="walletId")
    addresses: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)
