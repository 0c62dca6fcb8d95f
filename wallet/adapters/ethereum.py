import asyncio
import logging
from collections.abc import Mapping
from typing import Any, AsyncIterator

from eth_account import Account
from eth_account.hdaccount.deterministic import HDPath
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from core.events.schemas import BlockHeader
from core.exceptions import (
    InvalidAddressException,
    InvalidInputException,
    TransportFailureException,
)
from wallet.adapters.base import ChainAdapter, classify_broadcast_error, parse_seed
from wallet.entities import Milestone, TransferRequest
from wallet.lifecycle import SubmissionHandle, SubmissionLifecycleAdapter
from wallet.meta_parsers import to_hex


def to_plain(value: Any) -> Any:
    """
    Convert web3 results (AttributeDict, HexBytes) into plain JSON values.

    Parameters
    ----------
    value : Any
        Value returned by web3

    Returns
    -------
    Any
        Dicts, lists, ints, bools and ``0x`` hex strings
    """
    if isinstance(value, Mapping):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


def normalize_transaction(transaction: Mapping) -> dict[str, Any]:
    plain = to_plain(transaction)
    plain["value"] = str(plain.get("value", 0))
    if "gasPrice" in plain:
        plain["gasPrice"] = str(plain["gasPrice"])
    return plain


def normalize_receipt(receipt: Mapping) -> dict[str, Any]:
    plain = to_plain(receipt)
    plain["status"] = bool(plain.get("status", 1))
    plain.setdefault("logs", [])
    return plain


class EthereumReceiptWatcher:
    """
    Polls the node for a transaction receipt.

    Parameters
    ----------
    web3 : AsyncWeb3
        Web3 client
    poll_interval : float
        Seconds between receipt polls
    timeout : float
        Seconds to wait before reporting a transport failure
    logger : logging.Logger
        Logger instance
    """

    def __init__(self, web3: AsyncWeb3, poll_interval: float, timeout: float, logger: logging.Logger):
        self.web3 = web3
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.logger = logger

    async def watch(self, tx_hash: str) -> AsyncIterator[Milestone]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            try:
                receipt = await self.web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            if receipt is not None:
                break
            if loop.time() >= deadline:
                raise TransportFailureException(f"Timed out waiting for receipt of {tx_hash}")
            await asyncio.sleep(self.poll_interval)

        yield Milestone(kind="confirmation", confirmations=1)

        receipt = normalize_receipt(receipt)
        try:
            transaction = normalize_transaction(await self.web3.eth.get_transaction(tx_hash))
        except Exception as e:
            # Mined already; keep the fields known at send time.
            self.logger.warning(f"Transaction {tx_hash} unreadable after its receipt: {e}")
            transaction = {
                name: receipt[name] for name in ("blockNumber", "blockHash") if name in receipt
            }
        yield Milestone(
            kind="receipt",
            confirmations=1,
            transaction=transaction,
            receipt=receipt
        )


class EthereumAdapter(ChainAdapter):
    """
    Account-chain adapter: single signed transactions with explicit gas.

    The nonce is read from the node's pending state right before signing.
    Two concurrent sends from one address may still race for the same
    nonce; serializing sends per address is left to the caller.

    Parameters
    ----------
    web3 : AsyncWeb3
        Web3 client
    lifecycle : SubmissionLifecycleAdapter
        Lifecycle adapter wrapping broadcasts
    watcher : EthereumReceiptWatcher
        Receipt source for broadcast transactions
    logger : logging.Logger
        Logger instance
    symbol : str
        Native coin symbol
    chain_id : int
        Chain id used for replay protection
    derivation_path : str
        BIP-32 path of the wallet key
    default_gas_limit : int
        Gas limit for plain transfers
    """

    chain_model = "account"

    def __init__(
        self,
        web3: AsyncWeb3,
        lifecycle: SubmissionLifecycleAdapter,
        watcher: EthereumReceiptWatcher,
        logger: logging.Logger,
        symbol: str = "ETH",
        chain_id: int = 1,
        derivation_path: str = "m/44'/60'/0'/0/0",
        default_gas_limit: int = 21000
    ):
        super().__init__(symbol)
        self.web3 = web3
        self.lifecycle = lifecycle
        self.watcher = watcher
        self.logger = logger
        self.chain_id = chain_id
        self.derivation_path = derivation_path
        self.default_gas_limit = default_gas_limit

    def create_private_key(self, seed: str) -> str:
        return to_hex(HDPath(self.derivation_path).derive(parse_seed(seed)))

    def create_address(self, seed: str) -> str:
        try:
            return Account.from_key(self.create_private_key(seed)).address
        except (InvalidInputException, ValueError) as e:
            raise InvalidAddressException(f"error.address.derivation_failed: {e}")

    def is_valid_address(self, address: str) -> bool:
        return Web3.is_address(address)

    def normalize_address(self, address: str) -> str:
        return address.lower()

    async def get_next_nonce(self, address: str) -> int:
        """
        Next nonce of an address, counting its pending transactions.

        Parameters
        ----------
        address : str
            Account address

        Returns
        -------
        int
            Nonce to sign the next transaction with
        """
        try:
            return await self.web3.eth.get_transaction_count(
                Web3.to_checksum_address(address), "pending"
            )
        except Exception as e:
            raise TransportFailureException(f"Could not fetch nonce for {address}: {e}")

    async def get_gas_price(self) -> int:
        try:
            return await self.web3.eth.gas_price
        except Exception as e:
            raise TransportFailureException(f"Could not fetch gas price: {e}")

    async def get_balance(self, address: str) -> int:
        try:
            return await self.web3.eth.get_balance(Web3.to_checksum_address(address))
        except Exception as e:
            raise TransportFailureException(f"Could not fetch balance of {address}: {e}")

    async def get_latest_block(self) -> BlockHeader:
        try:
            block = await self.web3.eth.get_block("latest")
        except Exception as e:
            raise TransportFailureException(f"Could not fetch latest block: {e}")
        return BlockHeader(
            hash=to_hex(block["hash"]),
            number=block["number"],
            timestamp=block["timestamp"]
        )

    async def send_coin(self, private_key: str, request: TransferRequest) -> SubmissionHandle:
        self._check_address(request.from_address)
        self._check_address(request.to)

        transaction: dict[str, Any] = {
            "to": Web3.to_checksum_address(request.to),
            "value": request.value,
            "gas": request.gas or self.default_gas_limit,
            "gasPrice": request.gas_price
        }
        if request.extra_data:
            transaction["data"] = request.extra_data

        self.logger.info(f"Sending {request.value} {self.symbol} from {request.from_address} to {request.to}")
        return await self.send_transaction(private_key, request.from_address, transaction)

    async def send_transaction(
        self,
        private_key: str,
        from_address: str,
        transaction: dict[str, Any],
        nonce: int | None = None
    ) -> SubmissionHandle:
        """
        Complete, sign and broadcast a transaction.

        Parameters
        ----------
        private_key : str
            Key of ``from_address``
        from_address : str
            Sender address
        transaction : dict
            ``to``, ``value``, ``gas`` and optional ``data``/``gasPrice``
        nonce : int | None
            Nonce already assigned by the caller; fetched when omitted

        Returns
        -------
        SubmissionHandle
            Lifecycle of the broadcast

        Raises
        ------
        InvalidInputException
            If the key does not belong to ``from_address``
        TransportFailureException
            If gas price or nonce could not be fetched
        """
        self._check_address(from_address)
        account = self._account(private_key)
        if account.address.lower() != from_address.lower():
            raise InvalidInputException("error.key.address_mismatch")

        transaction = {key: value for key, value in transaction.items() if key != "from"}
        if transaction.get("gasPrice") is None:
            transaction["gasPrice"] = await self.get_gas_price()
        if nonce is None:
            nonce = await self.get_next_nonce(from_address)
        transaction["nonce"] = nonce
        transaction["chainId"] = self.chain_id
        transaction.setdefault("value", 0)

        try:
            signed = Account.sign_transaction(transaction, private_key)
        except (TypeError, ValueError) as e:
            raise InvalidInputException(f"error.transaction.unsignable: {e}")

        fields = {
            "from": from_address,
            "to": transaction.get("to"),
            "value": str(transaction["value"]),
            "nonce": nonce,
            "gas": transaction.get("gas"),
            "gasPrice": str(transaction["gasPrice"])
        }
        self.logger.debug(f"Signed transaction from {from_address} with nonce {nonce}")
        return self.lifecycle.submit(self._broadcast(signed.raw_transaction), self.watcher, fields)

    async def _broadcast(self, raw_transaction: bytes) -> str:
        try:
            tx_hash = await self.web3.eth.send_raw_transaction(raw_transaction)
        except Exception as e:
            raise classify_broadcast_error(e)
        return to_hex(tx_hash)

    def _check_address(self, address: str) -> None:
        if not self.is_valid_address(address):
            raise InvalidAddressException(f"error.address.invalid: {address}")

    @staticmethod
    def _account(private_key: str):
        try:
            return Account.from_key(private_key)
        except (TypeError, ValueError) as e:
            raise InvalidInputException(f"error.key.invalid: {e}")
