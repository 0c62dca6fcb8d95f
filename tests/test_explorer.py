import pytest
from unittest.mock import AsyncMock, MagicMock
from eth_abi import encode
from web3 import Web3

from bridge.contracts import MET_TOKEN_ABI
from core.exceptions import InvalidInputException, TransportFailureException
from explorer.entities import PastEventEntity
from explorer.services import ExplorerService
from explorer.usecases import GetPastEventsUseCase
from wallet.meta_parsers import TRANSFER_LOG, to_hex
from wallet.tracker import TransactionTracker


TOKEN = Web3.to_checksum_address("0x" + "11" * 20)
HOLDER = Web3.to_checksum_address("0x" + "ab" * 20)
OTHER = Web3.to_checksum_address("0x" + "cd" * 20)
TX_HASH = bytes.fromhex("42" * 32)


def transfer_log(block_number=5, log_index=0):
    return {
        "address": TOKEN,
        "transactionHash": TX_HASH,
        "blockNumber": block_number,
        "logIndex": log_index,
        "topics": [
            bytes.fromhex(TRANSFER_LOG.topic[2:]),
            encode(["address"], [OTHER]),
            encode(["address"], [HOLDER]),
        ],
        "data": encode(["uint256"], [300]),
    }


@pytest.fixture
def web3():
    web3 = MagicMock()
    web3.eth.get_logs = AsyncMock(return_value=[])
    return web3


@pytest.fixture
def contracts():
    contracts = MagicMock()
    contracts.get_contract_address.return_value = TOKEN
    return contracts


@pytest.fixture
def service(web3, contracts, account_adapter, bus, logger):
    tracker = TransactionTracker(account_adapter, bus, logger)
    return ExplorerService(web3=web3, contracts=contracts, tracker=tracker, logger=logger)


class TestExplorerService:
    """
    Unit tests for historical event reads.

    These tests verify:
    1. Filters on indexed arguments become log topics
    2. Block ranges are read in chunks and decoded in order
    3. Transfers found in history are reconciled into the ledger
    """

    def test_topics_from_filter(self):
        signature = ExplorerService._signature(MET_TOKEN_ABI, "Transfer")

        assert ExplorerService._topics(signature, {}) == [TRANSFER_LOG.topic]
        assert ExplorerService._topics(signature, {"_to": HOLDER.lower()}) == [
            TRANSFER_LOG.topic,
            None,
            to_hex(encode(["address"], [HOLDER])),
        ]

    def test_filter_on_plain_argument_rejected(self):
        signature = ExplorerService._signature(MET_TOKEN_ABI, "Transfer")

        with pytest.raises(InvalidInputException):
            ExplorerService._topics(signature, {"_value": 1})

    def test_unknown_event_rejected(self):
        with pytest.raises(InvalidInputException):
            ExplorerService._signature(MET_TOKEN_ABI, "Approval")

    @pytest.mark.asyncio
    async def test_past_events_chunked(self, service: ExplorerService, web3):
        """
        Test a long range is split into chunks and results are sorted.

        Parameters
        ----------
        service : ExplorerService
            Service fixture
        web3 : MagicMock
            Web3 double
        """
        web3.eth.get_logs = AsyncMock(side_effect=[
            [transfer_log(1500, 2)],
            [],
            [transfer_log(4200, 0), transfer_log(1500, 1)],
        ])

        events = await service.get_past_events(MET_TOKEN_ABI, TOKEN, "Transfer", 0, 4500)

        ranges = [(call.args[0]["fromBlock"], call.args[0]["toBlock"]) for call in web3.eth.get_logs.await_args_list]
        assert ranges == [(0, 1999), (2000, 3999), (4000, 4500)]
        assert [(event.block_number, event.log_index) for event in events] == [(1500, 1), (1500, 2), (4200, 0)]
        assert events[0].transaction_hash == "0x" + "42" * 32
        assert events[0].args["_value"] == "300"
        assert events[0].args["_to"].lower() == HOLDER.lower()

    @pytest.mark.asyncio
    async def test_failed_chunk_fails_query(self, service: ExplorerService, web3):
        web3.eth.get_logs = AsyncMock(side_effect=[[], ConnectionError("timeout")])

        with pytest.raises(TransportFailureException):
            await service.get_past_events(MET_TOKEN_ABI, TOKEN, "Transfer", 0, 3000)

    @pytest.mark.asyncio
    async def test_empty_range(self, service: ExplorerService, web3):
        assert await service.get_past_events(MET_TOKEN_ABI, TOKEN, "Transfer", 10, 5) == []
        web3.eth.get_logs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sync_transactions(self, service: ExplorerService, web3):
        """
        Test a transfer seen in both directions is reconciled once.

        Parameters
        ----------
        service : ExplorerService
            Service fixture
        web3 : MagicMock
            Web3 double
        """
        web3.eth.get_logs = AsyncMock(return_value=[transfer_log()])
        web3.eth.get_transaction = AsyncMock(return_value={"hash": TX_HASH, "from": OTHER, "value": 0})
        web3.eth.get_transaction_receipt = AsyncMock(return_value={
            "transactionHash": TX_HASH,
            "status": 1,
            "logs": [transfer_log()],
        })

        assert await service.sync_transactions(HOLDER, 0, 100) == 1
        assert await service.sync_transactions(HOLDER, 0, 100) == 0

        entries = service.tracker.get_state(HOLDER).transactions
        assert len(entries) == 1
        assert entries[0].hash == "0x" + "42" * 32
        assert entries[0].meta.to_payload() == {"contractCallFailed": False}
        assert entries[0].meta.fields["_value"] == "300"


class TestGetPastEventsUseCase:
    """
    Unit tests for cached past event queries.
    """

    @pytest.mark.asyncio
    async def test_fixed_range_cached(self, contracts):
        """
        Test a fixed block range is served from and written to the cache.

        Parameters
        ----------
        contracts : MagicMock
            Registry double
        """
        event = PastEventEntity(
            transaction_hash="0x" + "42" * 32,
            block_number=5,
            log_index=0,
            event_name="Transfer",
            args={"_value": "300"},
            address=TOKEN
        )
        explorer = MagicMock()
        explorer.get_past_events = AsyncMock(return_value=[event])
        cache = MagicMock()
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock(return_value=True)
        use_case = GetPastEventsUseCase(explorer, contracts, cache)

        response = await use_case("METToken", "Transfer", 0, 100)

        assert response.total_events == 1
        key, value = cache.set.await_args.args
        assert key.startswith(f"events:{TOKEN.lower()}:Transfer:0:100:")
        assert value["events"][0]["args"] == {"_value": "300"}

        cache.get = AsyncMock(return_value=value)
        explorer.get_past_events.reset_mock()
        cached = await use_case("METToken", "Transfer", 0, 100)

        assert cached == response
        explorer.get_past_events.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_range_not_cached(self, contracts):
        explorer = MagicMock()
        explorer.get_block_number = AsyncMock(return_value=900)
        explorer.get_past_events = AsyncMock(return_value=[])
        cache = MagicMock()
        cache.get = AsyncMock()
        cache.set = AsyncMock()

        response = await GetPastEventsUseCase(explorer, contracts, cache)("METToken", "Transfer", 0)

        assert response.to_block == 900
        cache.get.assert_not_awaited()
        cache.set.assert_not_awaited()
