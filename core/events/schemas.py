from pydantic import BaseModel, ConfigDict, Field


OPEN_WALLETS = "open-wallets"
WALLET_STATE_CHANGED = "wallet-state-changed"
WALLET_ERROR = "wallet-error"
ERROR = "error"
COIN_BLOCK = "coin-block"
COIN_PRICE_UPDATED = "coin-price-updated"
AUCTION_STATUS_UPDATED = "auction-status-updated"

EVENTS = (
    OPEN_WALLETS,
    WALLET_STATE_CHANGED,
    WALLET_ERROR,
    ERROR,
    COIN_BLOCK,
    COIN_PRICE_UPDATED,
    AUCTION_STATUS_UPDATED,
)


class BlockHeader(BaseModel):
    """
    Payload of ``coin-block``.

    Attributes
    ----------
    hash : str
        Block hash
    number : int
        Block height
    timestamp : int
        Block timestamp (seconds)
    """
    hash: str
    number: int
    timestamp: int

    model_config = ConfigDict(frozen=True)


class CoinPrice(BaseModel):
    """Payload of ``coin-price-updated``."""
    token: str
    currency: str = "USD"
    price: float

    model_config = ConfigDict(frozen=True)


class AuctionStatus(BaseModel):
    """
    Payload of ``auction-status-updated``.

    Attributes
    ----------
    token_remaining : str
        Tokens left in the current auction
    current_auction : int
        Auction counter
    current_auction_price : str
        Price per token in the coin's smallest unit
    genesis_time : int
        Auction genesis time (seconds)
    next_auction_start_time : int
        Start of the next daily auction (seconds)
    daily_mintable : str
        Tokens mintable per daily auction
    """
    token_remaining: str = Field(alias="tokenRemaining")
    current_auction: int = Field(alias="currentAuction")
    current_auction_price: str = Field(alias="currentAuctionPrice")
    genesis_time: int = Field(alias="genesisTime")
    next_auction_start_time: int = Field(alias="nextAuctionStartTime")
    daily_mintable: str = Field(alias="dailyMintable")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class WalletError(BaseModel):
    """
    Payload of ``wallet-error``.

    Attributes
    ----------
    message : str
        Human readable failure
    kind : str
        Error taxonomy name (InvalidInput, TransportFailure, ...)
    hash : str | None
        Transaction hash when the failure belongs to a submission
    """
    message: str
    kind: str
    hash: str | None = None

    model_config = ConfigDict(frozen=True)


class OpenWallets(BaseModel):
    """
    Payload of ``open-wallets``.

    ``address`` and ``addresses`` are merged; either may be used.
    """
    active_wallet: str = Field(alias="activeWallet")
    wallet_ids: list[str] = Field(default_factory=list, alias="walletIds")
    address: str | None = None
    addresses: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def all_addresses(self) -> list[str]:
        addresses = list(self.addresses)
        if self.address and self.address not in addresses:
            addresses.insert(0, self.address)
        return addresses

