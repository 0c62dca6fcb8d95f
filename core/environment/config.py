import os
from typing import Any, Literal

from pydantic import Field, ImportString
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Wallet core settings using Pydantic Settings.

    Attributes
    ----------
    chain_type : Literal["ethereum", "qtum"]
        Ledger model of the configured chain (account or UTXO)
    chain_id : int
        Numeric chain id used when signing account-chain transactions
    chain_name : str
        Bridge chain identifier of this chain (bytes8 on the porter contract)
    symbol : str
        Native coin symbol
    node_url : str
        Account-chain JSON-RPC endpoint
    explorer_api_url : str
        UTXO-chain insight API endpoint
    rates_api_url : str
        Coin price API endpoint
    rates_coin_id : str
        Coin id on the price API
    rates_update_ms : int
        Price polling interval
    block_poll_ms : int
        New block polling interval
    receipt_poll_ms : int
        Receipt polling interval for in-flight transactions
    receipt_timeout_s : int
        Give up waiting for a receipt after this many seconds
    default_fee_rate : int
        UTXO fee rate per byte used when the caller does not set one
    default_gas_limit : int
        Gas limit for plain value transfers
    derivation_path : str
        BIP-32 path used to derive the account key from a seed
    met_token_address : str
        METToken contract address
    auctions_address : str
        Auctions contract address
    autonomous_converter_address : str
        AutonomousConverter contract address
    token_porter_address : str
        TokenPorter contract address
    utxo_signer : Any
        Dotted path to the UTXO signing collaborator class
    log_level : str
        Level of the ``wallet_core`` logger
    redis_host : str
        Redis host for caching
    redis_port : int
        Redis port
    redis_db : int
        Redis database number
    redis_password : str
        Redis password (optional)
    """

    chain_type: Literal["ethereum", "qtum"] = "ethereum"
    chain_id: int = 3
    chain_name: str = "ETH"
    symbol: str = "ETH"

    node_url: str = "http://localhost:8545"
    explorer_api_url: str = "http://localhost:3001/insight-api"
    rates_api_url: str = "https://api.coingecko.com/api/v3/simple/price"
    rates_coin_id: str = "ethereum"
    rates_update_ms: int = Field(default=30000, gt=0)
    block_poll_ms: int = Field(default=5000, gt=0)
    receipt_poll_ms: int = Field(default=2000, gt=0)
    receipt_timeout_s: int = Field(default=240, gt=0)

    default_fee_rate: int = Field(default=402, gt=0)
    default_gas_limit: int = Field(default=21000, gt=0)
    derivation_path: str = "m/44'/60'/0'/0/0"

    met_token_address: str = ""
    auctions_address: str = ""
    autonomous_converter_address: str = ""
    token_porter_address: str = ""

    utxo_signer: ImportString[Any] | None = None

    log_level: Literal["debug", "info", "warning", "error"] = "info"

    redis_host: str
    redis_port: int
    redis_db: int
    redis_password: str

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True
    )

    def get_contract_addresses(self) -> dict[str, str]:
        """
        Get configured contract addresses by contract name.

        Returns
        -------
        dict[str, str]
            Contract name to address, unset contracts omitted
        """
        addresses = {
            "METToken": self.met_token_address,
            "Auctions": self.auctions_address,
            "AutonomousConverter": self.autonomous_converter_address,
            "TokenPorter": self.token_porter_address
        }
        return {name: address for name, address in addresses.items() if address}
