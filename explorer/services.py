import asyncio
import logging
from typing import Any

from eth_abi import encode
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from bridge.contracts import ContractRegistry
from core.exceptions import InvalidInputException, TransportFailureException
from explorer.entities import PastEventEntity
from wallet.adapters.ethereum import normalize_receipt, normalize_transaction
from wallet.meta_parsers import META_PARSERS, TRANSFER_LOG, LogSignature, to_hex
from wallet.tracker import TransactionTracker


class ExplorerService:
    """
    Historical reads against the node: past events and gas price.

    Parameters
    ----------
    web3 : AsyncWeb3
        Web3 client
    contracts : ContractRegistry
        Configured contracts
    tracker : TransactionTracker
        Ledger receiving reconciled transactions
    logger : logging.Logger
        Logger instance
    """

    CHUNK_SIZE = 2000
    BATCH_SIZE = 20

    def __init__(
        self,
        web3: AsyncWeb3,
        contracts: ContractRegistry,
        tracker: TransactionTracker,
        logger: logging.Logger
    ):
        self.web3 = web3
        self.contracts = contracts
        self.tracker = tracker
        self.logger = logger

    async def get_gas_price(self) -> dict[str, str]:
        """
        Current gas price.

        Returns
        -------
        dict[str, str]
            ``{"gasPrice": price}`` in wei
        """
        try:
            price = await self.web3.eth.gas_price
        except Exception as e:
            raise TransportFailureException(f"Could not fetch gas price: {e}")
        return {"gasPrice": str(price)}

    async def get_block_number(self) -> int:
        try:
            return await self.web3.eth.block_number
        except Exception as e:
            raise TransportFailureException(f"Could not fetch block number: {e}")

    async def get_past_events(
        self,
        abi: list[dict[str, Any]],
        address: str,
        event_name: str,
        from_block: int,
        to_block: int | None = None,
        filter: dict[str, Any] | None = None
    ) -> list[PastEventEntity]:
        """
        Decode all logs of one event emitted by a contract in a block range.

        Parameters
        ----------
        abi : list[dict]
            Contract ABI containing the event
        address : str
            Contract address
        event_name : str
            Event name
        from_block : int
            First block
        to_block : int | None
            Last block, the chain tip when omitted
        filter : dict | None
            Indexed argument name to required value

        Returns
        -------
        list[PastEventEntity]
            Events ordered by block and log index

        Raises
        ------
        InvalidInputException
            If the event is not in the ABI or the filter names a
            non-indexed argument
        TransportFailureException
            If any block range could not be fetched
        """
        signature = self._signature(abi, event_name)
        topics = self._topics(signature, filter or {})
        if to_block is None:
            to_block = await self.get_block_number()
        if to_block < from_block:
            return []

        checksum_address = Web3.to_checksum_address(address)
        ranges = [
            (start, min(start + self.CHUNK_SIZE - 1, to_block))
            for start in range(from_block, to_block + 1, self.CHUNK_SIZE)
        ]
        self.logger.info(
            f"Fetching {event_name} logs of {address} in blocks {from_block}-{to_block} ({len(ranges)} chunks)"
        )

        logs = []
        for i in range(0, len(ranges), self.BATCH_SIZE):
            batch = ranges[i:i + self.BATCH_SIZE]
            results = await asyncio.gather(
                *(self._fetch_logs_chunk(checksum_address, start, end, topics) for start, end in batch),
                return_exceptions=True
            )
            for (start, end), result in zip(batch, results):
                if isinstance(result, Exception):
                    raise TransportFailureException(f"Could not fetch logs {start}-{end}: {result}")
                logs.extend(result)

        events = [self._to_entity(signature, log) for log in logs]
        events.sort(key=lambda event: (event.block_number, event.log_index))
        self.logger.info(f"Decoded {len(events)} {event_name} events")
        return events

    async def sync_transactions(self, address: str, from_block: int, to_block: int | None = None) -> int:
        """
        Reconcile MET transfers of an address into its ledger.

        Parameters
        ----------
        address : str
            Wallet address
        from_block : int
            First block
        to_block : int | None
            Last block, the chain tip when omitted

        Returns
        -------
        int
            Number of ledger entries added or completed
        """
        abi = [{
            "type": "event",
            "name": TRANSFER_LOG.name,
            "anonymous": False,
            "inputs": [
                {"name": name, "type": abi_type, "indexed": indexed}
                for name, abi_type, indexed in TRANSFER_LOG.inputs
            ]
        }]
        token = self.contracts.get_contract_address("METToken")
        sent, received = await asyncio.gather(
            self.get_past_events(abi, token, TRANSFER_LOG.name, from_block, to_block, {"_from": address}),
            self.get_past_events(abi, token, TRANSFER_LOG.name, from_block, to_block, {"_to": address})
        )

        hashes = list(dict.fromkeys(event.transaction_hash for event in sent + received))
        merged = 0
        for tx_hash in hashes:
            transaction, receipt = await self._get_mined(tx_hash)
            template = META_PARSERS["transfer"].template(contract_address=token)
            if await self.tracker.reconcile(address, transaction, receipt, template):
                merged += 1
        self.logger.info(f"Reconciled {merged} of {len(hashes)} transactions for {address}")
        return merged

    async def _get_mined(self, tx_hash: str) -> tuple[dict[str, Any], dict[str, Any]]:
        try:
            transaction, receipt = await asyncio.gather(
                self.web3.eth.get_transaction(tx_hash),
                self.web3.eth.get_transaction_receipt(tx_hash)
            )
        except TransactionNotFound as e:
            raise TransportFailureException(f"Transaction {tx_hash} not found: {e}")
        except Exception as e:
            raise TransportFailureException(f"Could not fetch {tx_hash}: {e}")
        return normalize_transaction(transaction), normalize_receipt(receipt)

    async def _fetch_logs_chunk(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: list[str | None]
    ) -> list:
        filter_params = {
            "address": address,
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": topics
        }
        logs = await self.web3.eth.get_logs(filter_params)
        if logs:
            self.logger.debug(f"Chunk {from_block}-{to_block}: found {len(logs)} logs")
        return logs

    @staticmethod
    def _signature(abi: list[dict[str, Any]], event_name: str) -> LogSignature:
        for item in abi:
            if item.get("type") == "event" and item.get("name") == event_name:
                return LogSignature(
                    event_name,
                    tuple((arg["name"], arg["type"], arg.get("indexed", False)) for arg in item["inputs"])
                )
        raise InvalidInputException(f"error.event.not_found: {event_name}")

    @staticmethod
    def _topics(signature: LogSignature, filter: dict[str, Any]) -> list[str | None]:
        indexed = [(name, abi_type) for name, abi_type, is_indexed in signature.inputs if is_indexed]
        unknown = set(filter) - {name for name, _ in indexed}
        if unknown:
            raise InvalidInputException(f"error.event.filter: {', '.join(sorted(unknown))} not indexed")

        topics: list[str | None] = [signature.topic]
        for name, abi_type in indexed:
            value = filter.get(name)
            if value is not None and abi_type == "address":
                value = Web3.to_checksum_address(value)
            topics.append(None if value is None else to_hex(encode([abi_type], [value])))
        while topics[-1] is None:
            topics.pop()
        return topics

    @staticmethod
    def _to_entity(signature: LogSignature, log: Any) -> PastEventEntity:
        return PastEventEntity(
            transaction_hash=to_hex(log["transactionHash"]),
            block_number=log["blockNumber"],
            log_index=log["logIndex"],
            event_name=signature.name,
            address=log["address"],
            args=signature.decode(dict(log))
        )
