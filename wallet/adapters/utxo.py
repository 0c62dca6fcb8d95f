import asyncio
import logging
from typing import Any, AsyncIterator, Protocol

import aiohttp

from core.events.schemas import BlockHeader
from core.exceptions import (
    InsufficientFundsException,
    InvalidAddressException,
    InvalidInputException,
    TransportFailureException,
)
from wallet.adapters.base import ChainAdapter, classify_broadcast_error, parse_seed
from wallet.entities import CoinSelection, Milestone, TransferRequest, TxOutput, Utxo
from wallet.lifecycle import SubmissionHandle, SubmissionLifecycleAdapter


# The min relay fee is 90400; a typical 225 byte transaction therefore
# needs at least 402 units per byte.
MIN_RELAY_FEE = 90400
REFERENCE_TX_SIZE = 225
DEFAULT_FEE_RATE = -(-MIN_RELAY_FEE // REFERENCE_TX_SIZE)

TX_OVERHEAD_SIZE = 10
INPUT_SIZE = 148
OUTPUT_SIZE = 34
DUST_THRESHOLD = 546


def estimate_size(inputs: int, outputs: int) -> int:
    """
    Estimate the byte size of a pay-to-pubkey-hash transaction.

    Parameters
    ----------
    inputs : int
        Number of inputs
    outputs : int
        Number of outputs

    Returns
    -------
    int
        Estimated size in bytes
    """
    return TX_OVERHEAD_SIZE + inputs * INPUT_SIZE + outputs * OUTPUT_SIZE


def select_coins(utxos: list[Utxo], to: str, value: int, change_address: str, fee_rate: int) -> CoinSelection:
    """
    Pick outputs to spend, largest first, until value plus fee is covered.

    Change below the dust threshold is left to the fee.

    Parameters
    ----------
    utxos : list[Utxo]
        Spendable outputs of the sender
    to : str
        Recipient address
    value : int
        Amount to send
    change_address : str
        Address receiving the change
    fee_rate : int
        Fee per byte

    Returns
    -------
    CoinSelection
        Inputs, outputs, fee and estimated size

    Raises
    ------
    InsufficientFundsException
        If the outputs cannot cover value and fee
    """
    selected: list[Utxo] = []
    total = 0

    for utxo in sorted(utxos, key=lambda u: u.value, reverse=True):
        selected.append(utxo)
        total += utxo.value

        size = estimate_size(len(selected), 2)
        fee = size * fee_rate
        if total < value + fee:
            continue

        change = total - value - fee
        if change >= DUST_THRESHOLD:
            return CoinSelection(
                inputs=selected,
                outputs=[TxOutput(address=to, value=value), TxOutput(address=change_address, value=change)],
                fee=fee,
                size=size
            )

        size = estimate_size(len(selected), 1)
        return CoinSelection(
            inputs=selected,
            outputs=[TxOutput(address=to, value=value)],
            fee=total - value,
            size=size
        )

    raise InsufficientFundsException(
        f"error.funds.insufficient: need {value} plus fee, have {total}"
    )


class UtxoSigner(Protocol):
    """
    Signing collaborator of the UTXO adapter.

    Key derivation, address encoding and transaction signing are
    chain-specific primitives supplied from outside the core.
    """

    def derive_private_key(self, seed: bytes) -> str:
        ...

    def address_from_private_key(self, private_key: str) -> str:
        ...

    def is_valid_address(self, address: str) -> bool:
        ...

    def sign(self, private_key: str, inputs: list[Utxo], outputs: list[TxOutput]) -> str:
        """Return the signed raw transaction as hex."""
        ...


class InsightClient:
    """
    Minimal client of an insight-style UTXO explorer API.

    Parameters
    ----------
    api_url : str
        API base URL
    timeout : float
        Request timeout in seconds
    """

    def __init__(self, api_url: str, timeout: float = 30):
        self.api_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(method, f"{self.api_url}{path}", **kwargs) as response:
                if response.status >= 500:
                    raise TransportFailureException(f"Explorer returned {response.status} for {path}")
                if response.status >= 400:
                    raise ValueError(await response.text())
                return await response.json(content_type=None)

    async def get_utxos(self, address: str) -> list[Utxo]:
        data = await self._request("GET", f"/addr/{address}/utxo")
        return [Utxo.model_validate(item) for item in data]

    async def get_balance(self, address: str) -> int:
        return int(await self._request("GET", f"/addr/{address}/balance"))

    async def get_transaction(self, txid: str) -> dict[str, Any] | None:
        try:
            return await self._request("GET", f"/tx/{txid}")
        except ValueError:
            return None

    async def get_latest_block(self) -> dict[str, Any]:
        data = await self._request("GET", "/blocks", params={"limit": 1})
        return data["blocks"][0]

    async def send_raw_transaction(self, raw_transaction: str) -> str:
        data = await self._request("POST", "/tx/send", json={"rawtx": raw_transaction})
        return data["txid"]


class InsightReceiptWatcher:
    """
    Polls the explorer until a transaction is mined.

    Confirmation depth is reported as it grows; the receipt is built
    once the first confirmation is seen.

    Parameters
    ----------
    client : InsightClient
        Explorer client
    poll_interval : float
        Seconds between polls
    timeout : float
        Seconds to wait before reporting a transport failure
    """

    def __init__(self, client: InsightClient, poll_interval: float, timeout: float):
        self.client = client
        self.poll_interval = poll_interval
        self.timeout = timeout

    async def watch(self, tx_hash: str) -> AsyncIterator[Milestone]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            try:
                transaction = await self.client.get_transaction(tx_hash)
            except aiohttp.ClientError as e:
                raise TransportFailureException(str(e))
            if transaction and transaction.get("confirmations", 0) > 0:
                break
            if loop.time() >= deadline:
                raise TransportFailureException(f"Timed out waiting for {tx_hash} to be mined")
            await asyncio.sleep(self.poll_interval)

        yield Milestone(kind="confirmation", confirmations=transaction["confirmations"])
        yield Milestone(
            kind="receipt",
            confirmations=transaction["confirmations"],
            transaction={
                "hash": tx_hash,
                "blockHash": transaction.get("blockhash"),
                "blockNumber": transaction.get("blockheight"),
                "timestamp": transaction.get("time")
            },
            receipt={
                "transactionHash": tx_hash,
                "blockHash": transaction.get("blockhash"),
                "blockNumber": transaction.get("blockheight"),
                "fee": transaction.get("fees"),
                "logs": [],
                "status": True
            }
        )


class UtxoAdapter(ChainAdapter):
    """
    UTXO-chain adapter: coin selection and fee-rate driven sizing.

    Parameters
    ----------
    client : InsightClient
        Explorer client used for outputs, balances and broadcast
    signer : UtxoSigner
        Signing collaborator
    lifecycle : SubmissionLifecycleAdapter
        Lifecycle adapter wrapping broadcasts
    watcher : InsightReceiptWatcher
        Receipt source for broadcast transactions
    logger : logging.Logger
        Logger instance
    symbol : str
        Native coin symbol
    default_fee_rate : int
        Fee per byte when the caller does not set one
    """

    chain_model = "utxo"

    def __init__(
        self,
        client: InsightClient,
        signer: UtxoSigner,
        lifecycle: SubmissionLifecycleAdapter,
        watcher: InsightReceiptWatcher,
        logger: logging.Logger,
        symbol: str = "QTUM",
        default_fee_rate: int = DEFAULT_FEE_RATE
    ):
        super().__init__(symbol)
        self.client = client
        self.signer = signer
        self.lifecycle = lifecycle
        self.watcher = watcher
        self.logger = logger
        self.default_fee_rate = default_fee_rate

    def create_private_key(self, seed: str) -> str:
        return self.signer.derive_private_key(parse_seed(seed))

    def create_address(self, seed: str) -> str:
        try:
            return self.signer.address_from_private_key(self.create_private_key(seed))
        except (InvalidInputException, ValueError) as e:
            raise InvalidAddressException(f"error.address.derivation_failed: {e}")

    def is_valid_address(self, address: str) -> bool:
        return self.signer.is_valid_address(address)

    async def get_balance(self, address: str) -> int:
        try:
            return await self.client.get_balance(address)
        except Exception as e:
            raise TransportFailureException(f"Could not fetch balance of {address}: {e}")

    async def get_latest_block(self) -> BlockHeader:
        try:
            block = await self.client.get_latest_block()
        except Exception as e:
            raise TransportFailureException(f"Could not fetch latest block: {e}")
        return BlockHeader(hash=block["hash"], number=block["height"], timestamp=block["time"])

    async def send_coin(self, private_key: str, request: TransferRequest) -> SubmissionHandle:
        for address in (request.from_address, request.to):
            if not self.is_valid_address(address):
                raise InvalidAddressException(f"error.address.invalid: {address}")

        fee_rate = request.fee_rate or self.default_fee_rate
        self.logger.info(
            f"Sending {request.value} {self.symbol} from {request.from_address} "
            f"to {request.to} at {fee_rate}/byte"
        )

        try:
            utxos = await self.client.get_utxos(request.from_address)
        except Exception as e:
            raise TransportFailureException(f"Could not fetch outputs of {request.from_address}: {e}")

        selection = select_coins(utxos, request.to, request.value, request.from_address, fee_rate)
        try:
            raw_transaction = self.signer.sign(private_key, selection.inputs, selection.outputs)
        except Exception as e:
            raise InvalidInputException(f"error.signing.failed: {e}")

        fields = self.transaction_fields(request)
        fields.update({"fee": str(selection.fee), "feeRate": fee_rate, "size": selection.size})
        return self.lifecycle.submit(self._broadcast(raw_transaction), self.watcher, fields)

    async def _broadcast(self, raw_transaction: str) -> str:
        try:
            return await self.client.send_raw_transaction(raw_transaction)
        except Exception as e:
            raise classify_broadcast_error(e)
