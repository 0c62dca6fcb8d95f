import pytest
from unittest.mock import AsyncMock, MagicMock
from eth_account import Account
from web3 import Web3

from core.exceptions import (
    BroadcastRejectedException,
    InsufficientFundsException,
    InvalidAddressException,
    InvalidInputException,
)
from wallet.adapters.base import classify_broadcast_error
from wallet.adapters.ethereum import EthereumAdapter, EthereumReceiptWatcher
from wallet.entities import Milestone, TransferRequest
from wallet.lifecycle import SubmissionLifecycleAdapter


PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
SENDER = Account.from_key(PRIVATE_KEY).address
RECIPIENT = "0x" + "cd" * 20
CHECKSUM_RECIPIENT = Web3.to_checksum_address(RECIPIENT)
SEED = "0x" + "5e" * 32


class MinedWatcher:
    async def watch(self, tx_hash):
        yield Milestone(kind="receipt", confirmations=1, receipt={"status": True, "logs": []})


@pytest.fixture
def web3():
    """Web3 double with a node at nonce 7."""
    web3 = MagicMock()
    web3.eth.get_transaction_count = AsyncMock(return_value=7)
    web3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex("aa" * 32))
    return web3


@pytest.fixture
def adapter(web3, logger):
    return EthereumAdapter(
        web3=web3,
        lifecycle=SubmissionLifecycleAdapter(logger),
        watcher=MinedWatcher(),
        logger=logger,
        chain_id=3
    )


class TestEthereumAdapter:
    """
    Unit tests for the account-chain adapter.

    These tests verify:
    1. The nonce comes from the node's pending state, before signing
    2. Node rejections are classified into the error taxonomy
    3. Keys must belong to the sending address
    """

    def test_seed_derivation(self, adapter: EthereumAdapter):
        address = adapter.create_address(SEED)

        assert adapter.is_valid_address(address)
        assert address == adapter.create_address(SEED)
        assert Account.from_key(adapter.create_private_key(SEED)).address == address

    def test_invalid_seed(self, adapter: EthereumAdapter):
        with pytest.raises(InvalidAddressException):
            adapter.create_address("not-a-seed")

    @pytest.mark.asyncio
    async def test_send_coin_signs_with_pending_nonce(self, adapter: EthereumAdapter, web3):
        """
        Test the pending nonce and chain id end up in the signed transaction.

        Parameters
        ----------
        adapter : EthereumAdapter
            Adapter fixture
        web3 : MagicMock
            Web3 double
        """
        request = TransferRequest(**{"from": SENDER, "to": RECIPIENT, "value": 1000, "gasPrice": 10 ** 9})

        handle = await adapter.send_coin(PRIVATE_KEY, request)
        await handle.wait()

        web3.eth.get_transaction_count.assert_awaited_once_with(SENDER, "pending")
        raw = web3.eth.send_raw_transaction.await_args.args[0]
        assert raw == Account.sign_transaction({
            "to": CHECKSUM_RECIPIENT,
            "value": 1000,
            "gas": 21000,
            "gasPrice": 10 ** 9,
            "nonce": 7,
            "chainId": 3
        }, PRIVATE_KEY).raw_transaction
        assert handle.hash == "0x" + "aa" * 32
        assert handle.transaction["nonce"] == 7
        assert handle.transaction["value"] == "1000"

    @pytest.mark.asyncio
    async def test_explicit_nonce_skips_node(self, adapter: EthereumAdapter, web3):
        handle = await adapter.send_transaction(
            PRIVATE_KEY,
            SENDER,
            {"to": CHECKSUM_RECIPIENT, "value": 1, "gas": 21000, "gasPrice": 1},
            nonce=12
        )
        await handle.wait()

        web3.eth.get_transaction_count.assert_not_awaited()
        assert handle.transaction["nonce"] == 12

    @pytest.mark.asyncio
    async def test_key_must_match_sender(self, adapter: EthereumAdapter, web3):
        with pytest.raises(InvalidInputException):
            await adapter.send_transaction(
                PRIVATE_KEY,
                RECIPIENT,
                {"to": SENDER, "value": 1, "gas": 21000, "gasPrice": 1}
            )
        web3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_insufficient_funds(self, adapter: EthereumAdapter, web3):
        """
        Test a node refusal ends the handle with InsufficientFunds.

        Parameters
        ----------
        adapter : EthereumAdapter
            Adapter fixture
        web3 : MagicMock
            Web3 double
        """
        web3.eth.send_raw_transaction = AsyncMock(
            side_effect=ValueError("insufficient funds for gas * price + value")
        )

        handle = await adapter.send_transaction(
            PRIVATE_KEY, SENDER, {"to": CHECKSUM_RECIPIENT, "value": 1, "gas": 21000, "gasPrice": 1}
        )

        with pytest.raises(InsufficientFundsException):
            await handle.wait()
        assert handle.hash is None

    def test_classify_broadcast_error(self):
        assert isinstance(classify_broadcast_error(ValueError("nonce too low")), BroadcastRejectedException)
        assert classify_broadcast_error(ConnectionError("refused")).kind == "TransportFailure"
        assert classify_broadcast_error(ValueError("Insufficient Balance")).kind == "ChainRejected"


class TestEthereumReceiptWatcher:
    """
    Unit tests for receipt polling.
    """

    @pytest.mark.asyncio
    async def test_receipt_delivered_when_transaction_unreadable(self, web3, logger):
        """
        Test a mined transaction still yields its receipt if the transaction read fails.

        Parameters
        ----------
        web3 : MagicMock
            Web3 double
        logger : logging.Logger
            Test logger
        """
        web3.eth.get_transaction_receipt = AsyncMock(return_value={
            "transactionHash": bytes.fromhex("aa" * 32),
            "blockNumber": 12,
            "status": 1,
            "logs": [],
        })
        web3.eth.get_transaction = AsyncMock(side_effect=ConnectionError("node down"))
        watcher = EthereumReceiptWatcher(web3, poll_interval=0.01, timeout=1, logger=logger)

        milestones = [milestone async for milestone in watcher.watch("0x" + "aa" * 32)]

        assert [milestone.kind for milestone in milestones] == ["confirmation", "receipt"]
        assert milestones[1].receipt["status"] is True
        assert milestones[1].receipt["blockNumber"] == 12
        assert milestones[1].transaction == {"blockNumber": 12}
