import asyncio
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from core.events.schemas import BlockHeader
from core.exceptions import (
    BaseCustomException,
    BroadcastRejectedException,
    InsufficientFundsException,
    InvalidInputException,
    TransportFailureException,
)
from wallet.entities import TransferRequest
from wallet.lifecycle import SubmissionHandle


_INSUFFICIENT_FUNDS_MARKERS = ("insufficient funds", "insufficient balance", "not enough")
_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, OSError)


def classify_broadcast_error(error: Exception) -> BaseCustomException:
    """
    Map a raw node or transport failure onto the wallet error taxonomy.

    Parameters
    ----------
    error : Exception
        Error raised while talking to the node

    Returns
    -------
    BaseCustomException
        ``InsufficientFunds``/``BroadcastRejected`` for node rejections,
        ``TransportFailure`` when the node could not be reached
    """
    if isinstance(error, BaseCustomException):
        return error
    if isinstance(error, _TRANSPORT_ERRORS):
        return TransportFailureException(str(error) or type(error).__name__)

    message = str(error)
    if any(marker in message.lower() for marker in _INSUFFICIENT_FUNDS_MARKERS):
        return InsufficientFundsException(message)
    return BroadcastRejectedException(message or type(error).__name__)


def parse_seed(seed: str) -> bytes:
    """
    Decode a hex BIP-39 seed.

    Parameters
    ----------
    seed : str
        Hex seed, optionally ``0x``-prefixed

    Returns
    -------
    bytes
        Seed bytes (16 to 64 bytes, as BIP-32 requires)

    Raises
    ------
    InvalidInputException
        If the seed is not hex or has the wrong length
    """
    text = seed[2:] if seed.startswith("0x") else seed
    try:
        raw = bytes.fromhex(text)
    except (ValueError, TypeError):
        raise InvalidInputException("error.seed.invalid")
    if not 16 <= len(raw) <= 64:
        raise InvalidInputException("error.seed.invalid")
    return raw


class ChainAdapter(ABC):
    """
    Capability set every chain variant implements.

    Attributes
    ----------
    chain_model : str
        ``account`` or ``utxo``
    symbol : str
        Native coin symbol
    """

    chain_model = ""

    def __init__(self, symbol: str):
        self.symbol = symbol

    @abstractmethod
    def create_address(self, seed: str) -> str:
        """
        Derive the wallet address for a seed.

        Raises
        ------
        InvalidAddressException
            If derivation fails
        """

    @abstractmethod
    def create_private_key(self, seed: str) -> str:
        """Derive the wallet private key for a seed."""

    @abstractmethod
    def is_valid_address(self, address: str) -> bool:
        """Check an address against this chain's format."""

    @abstractmethod
    async def send_coin(self, private_key: str, request: TransferRequest) -> SubmissionHandle:
        """
        Sign and broadcast a native coin transfer.

        Parameters
        ----------
        private_key : str
            Sender key
        request : TransferRequest
            Transfer parameters

        Returns
        -------
        SubmissionHandle
            Lifecycle of the broadcast
        """

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Confirmed native balance of an address."""

    @abstractmethod
    async def get_latest_block(self) -> BlockHeader:
        """Header of the chain tip."""

    def normalize_address(self, address: str) -> str:
        """
        Key used to compare addresses of this chain.

        Parameters
        ----------
        address : str
            Address as given by the caller

        Returns
        -------
        str
            Comparable form of the address
        """
        return address

    def transaction_fields(self, request: TransferRequest) -> dict[str, Any]:
        return {
            "from": request.from_address,
            "to": request.to,
            "value": str(request.value)
        }
