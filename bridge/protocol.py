import asyncio
import logging
from typing import Any, Callable

from web3 import Web3

from bridge.contracts import ContractRegistry, chain_hex, to_bytes8
from bridge.entities import (
    BridgeOperation,
    BridgeState,
    BurnReceipt,
    ExportRequest,
    ImportContext,
    ImportProof,
    ImportRequest,
)
from bridge.fees import PorterFeeEstimator
from bridge.proof import compute_merkle_root
from core.exceptions import (
    BaseCustomException,
    ChainRejectedException,
    ContextUnavailableException,
    InvalidInputException,
)
from wallet.adapters.base import classify_broadcast_error
from wallet.adapters.ethereum import EthereumAdapter
from wallet.entities import TransferRequest
from wallet.lifecycle import SubmissionHandle
from wallet.meta_parsers import (
    EXPORT_RECEIPT_LOG,
    IMPORT_REQUEST_LOG,
    META_PARSERS,
    to_bytes,
)
from wallet.tracker import TransactionTracker


class BridgeProtocol:
    """
    Burn/mint MET bridge: export on the source chain, import on the destination.

    Estimates and sends share one call builder per operation, so the
    argument order of an estimate always matches the signed call.

    Callers must serialize sends from one address; the nonce is read
    from the node's pending state and is not reserved.

    Parameters
    ----------
    adapter : EthereumAdapter
        Account-chain adapter used for nonces, signing and broadcast
    contracts : ContractRegistry
        Configured bridge contracts
    fee_estimator : PorterFeeEstimator
        Source of the export fee when the caller gives none
    tracker : TransactionTracker
        Ledger receiving bridge transactions
    logger : logging.Logger
        Logger instance
    chain_name : str
        Bridge identifier of this chain
    """

    def __init__(
        self,
        adapter: EthereumAdapter,
        contracts: ContractRegistry,
        fee_estimator: PorterFeeEstimator,
        tracker: TransactionTracker,
        logger: logging.Logger,
        chain_name: str
    ):
        self.adapter = adapter
        self.contracts = contracts
        self.fee_estimator = fee_estimator
        self.tracker = tracker
        self.logger = logger
        self.chain_name = chain_name
        self._burns: dict[tuple[str, str], BurnReceipt] = {}
        self._imports: dict[str, dict[int, BurnReceipt]] = {}
        self._tasks: set[asyncio.Task] = set()

    def last_burn(self) -> BurnReceipt | None:
        """Last export receipt seen for this chain's MET token."""
        return self._burns.get(self._burn_key())

    def last_import(self, origin_chain: str) -> BurnReceipt | None:
        imported = self._imports.get(origin_chain)
        return imported[max(imported)] if imported else None

    async def join(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def get_export_met_fee(self, value: int) -> int:
        return await self.fee_estimator.get_export_met_fee(value)

    async def estimate_export_met_gas(self, params: ExportRequest) -> int:
        """
        Gas needed by ``export`` with the given parameters.

        Parameters
        ----------
        params : ExportRequest
            Export parameters

        Returns
        -------
        int
            Gas estimate
        """
        arguments = self._encode(lambda: self._export_arguments(params))
        fee = await self._resolve_fee(params)
        return await self._estimate(self._export_call(arguments, params.value, fee), params.from_address)

    async def estimate_import_met_gas(self, params: ImportRequest) -> int:
        """
        Gas needed by ``importMET`` with the given parameters.

        Reads the destination's auction window like a real import does.

        Parameters
        ----------
        params : ImportRequest
            Import parameters

        Returns
        -------
        int
            Gas estimate

        Raises
        ------
        ContextUnavailableException
            If the auction window could not be read
        """
        arguments = self._encode(lambda: self._import_arguments(params))
        context = await self.fetch_import_context()
        proof = ImportProof.assemble(params, context, self._root(params))
        return await self._estimate(self._import_call(arguments, proof), params.from_address)

    async def export_met(self, private_key: str, params: ExportRequest) -> BridgeOperation:
        """
        Burn MET for import on another chain.

        Parameters
        ----------
        private_key : str
            Exporter key
        params : ExportRequest
            Export parameters

        Returns
        -------
        BridgeOperation
            Operation, already signed and broadcasting

        Raises
        ------
        InvalidInputException
            If an address, chain or payload cannot be encoded; nothing
            is read from the chain
        """
        operation = BridgeOperation("export", self.logger)
        try:
            arguments = self._encode(lambda: self._export_arguments(params))
            fee = await self._resolve_fee(params)
            operation.nonce = await self.adapter.get_next_nonce(params.from_address)
            operation.advance(BridgeState.NONCE_ASSIGNED)

            transaction = await self._build(
                self._export_call(arguments, params.value, fee),
                params.from_address,
                params.gas,
                params.gas_price
            )
            operation.handle = await self.adapter.send_transaction(
                private_key, params.from_address, transaction, operation.nonce
            )
            operation.advance(BridgeState.SIGNED)
        except BaseCustomException as e:
            operation.fail(e)
            raise

        template = META_PARSERS["export"].template(
            contract_address=self._met_address(),
            amountToBurn=params.value,
            destinationChain=chain_hex(params.destination_chain),
            destinationRecipientAddr=params.recipient,
            fee=fee
        )
        self.tracker.log_transaction(operation.handle, params.from_address, template)
        self._follow(operation, self._settle_export)
        return operation

    async def import_met(self, private_key: str, params: ImportRequest) -> BridgeOperation:
        """
        Mint MET from a burn on another chain.

        Parameters
        ----------
        private_key : str
            Importer key
        params : ImportRequest
            Burn receipt fields of the export being imported

        Returns
        -------
        BridgeOperation
            Operation, already signed and broadcasting

        Raises
        ------
        InvalidInputException
            If an address, chain or hash cannot be encoded; nothing is
            read from the chain
        ChainRejectedException
            If the burn was already imported or does not link to an
            imported neighbour
        ContextUnavailableException
            If the auction window could not be read; nothing is signed
        """
        operation = BridgeOperation("import", self.logger)
        try:
            arguments = self._encode(lambda: self._import_arguments(params))
            params.burn_receipt().check_import(self._imports.get(params.origin_chain, {}))

            context = await self.fetch_import_context()
            operation.advance(BridgeState.CONTEXT_FETCHED)
            proof = ImportProof.assemble(params, context, self._root(params))

            operation.nonce = await self.adapter.get_next_nonce(params.from_address)
            operation.advance(BridgeState.NONCE_ASSIGNED)

            transaction = await self._build(
                self._import_call(arguments, proof),
                params.from_address,
                params.gas,
                params.gas_price
            )
            operation.handle = await self.adapter.send_transaction(
                private_key, params.from_address, transaction, operation.nonce
            )
            operation.advance(BridgeState.SIGNED)
        except BaseCustomException as e:
            self.logger.warning(f"Import from {params.origin_chain} aborted: {e.message}")
            operation.fail(e)
            raise

        template = META_PARSERS["importRequest"].template(
            contract_address=self._met_address(),
            amountToImport=params.value,
            currentBurnHash=params.current_burn_hash,
            fee=params.fee,
            originChain=chain_hex(params.origin_chain),
            destinationRecipientAddr=params.from_address
        )
        self.tracker.log_transaction(operation.handle, params.from_address, template)
        self._follow(operation, lambda op, receipt: self._settle_import(op, params, receipt))
        return operation

    async def send_met(self, private_key: str, request: TransferRequest) -> SubmissionHandle:
        """
        Transfer MET to another address on this chain.

        Parameters
        ----------
        private_key : str
            Sender key
        request : TransferRequest
            Transfer parameters

        Returns
        -------
        SubmissionHandle
            Lifecycle of the transfer
        """
        call = self.contracts.get_contract("METToken").functions.transfer(
            Web3.to_checksum_address(request.to), request.value
        )
        transaction = await self._build(call, request.from_address, request.gas, request.gas_price)
        handle = await self.adapter.send_transaction(private_key, request.from_address, transaction)

        template = META_PARSERS["transfer"].template(
            contract_address=self._met_address(),
            _from=request.from_address,
            _to=request.to,
            _value=request.value
        )
        return self.tracker.log_transaction(handle, request.from_address, template)

    async def fetch_import_context(self) -> ImportContext:
        """
        Read the destination's auction window.

        Returns
        -------
        ImportContext
            ``genesisTime`` and ``dailyAuctionStartTime``

        Raises
        ------
        ContextUnavailableException
            If either value could not be read
        """
        auctions = self.contracts.get_contract("Auctions")
        try:
            genesis_time, daily_auction_start_time = await asyncio.gather(
                auctions.functions.genesisTime().call(),
                auctions.functions.dailyAuctionStartTime().call()
            )
        except Exception as e:
            raise ContextUnavailableException(f"error.context.unavailable: {e}")
        return ImportContext(genesis_time=genesis_time, daily_auction_start_time=daily_auction_start_time)

    @staticmethod
    def _encode(encode: Callable[[], Any]) -> Any:
        try:
            return encode()
        except (TypeError, ValueError) as e:
            raise InvalidInputException(f"error.bridge.invalid_request: {e}")

    @staticmethod
    def _export_arguments(params: ExportRequest) -> tuple:
        Web3.to_checksum_address(params.from_address)
        return (
            to_bytes8(params.destination_chain),
            Web3.to_checksum_address(params.destination_met_address),
            Web3.to_checksum_address(params.recipient),
            to_bytes(params.extra_data),
        )

    def _import_arguments(self, params: ImportRequest) -> tuple:
        return (
            to_bytes8(params.origin_chain),
            to_bytes8(params.destination_chain),
            [
                Web3.to_checksum_address(params.destination_met_address),
                Web3.to_checksum_address(params.from_address),
            ],
            to_bytes(params.extra_data),
            [to_bytes(params.previous_burn_hash), to_bytes(params.current_burn_hash)],
            to_bytes(self._root(params)),
        )

    def _export_call(self, arguments: tuple, value: int, fee: int):
        destination_chain, destination_met_address, recipient, extra_data = arguments
        return self.contracts.get_contract("METToken").functions.export(
            destination_chain,
            destination_met_address,
            recipient,
            value,
            fee,
            extra_data
        )

    def _import_call(self, arguments: tuple, proof: ImportProof):
        origin_chain, destination_chain, addresses, extra_data, burn_hashes, root = arguments
        return self.contracts.get_contract("METToken").functions.importMET(
            origin_chain,
            destination_chain,
            addresses,
            extra_data,
            burn_hashes,
            proof.supply,
            proof.import_data(),
            root
        )

    @staticmethod
    def _root(params: ImportRequest) -> str:
        return params.root or compute_merkle_root([params.previous_burn_hash, params.current_burn_hash])

    async def _resolve_fee(self, params: ExportRequest) -> int:
        if params.fee:
            return params.fee
        return await self.fee_estimator.get_export_met_fee(params.value)

    async def _estimate(self, call, from_address: str) -> int:
        try:
            return await call.estimate_gas({"from": Web3.to_checksum_address(from_address)})
        except Exception as e:
            raise classify_broadcast_error(e)

    async def _build(self, call, from_address: str, gas: int | None, gas_price: int | None) -> dict[str, Any]:
        params = {
            "from": Web3.to_checksum_address(from_address),
            "gas": gas or await self._estimate(call, from_address),
            "gasPrice": gas_price if gas_price is not None else await self.adapter.get_gas_price(),
            "chainId": self.adapter.chain_id,
        }
        try:
            return dict(await call.build_transaction(params))
        except Exception as e:
            raise classify_broadcast_error(e)

    def _met_address(self) -> str:
        return self.contracts.get_contract_address("METToken")

    def _burn_key(self) -> tuple[str, str]:
        return self.chain_name, self._met_address().lower()

    def _follow(self, operation: BridgeOperation, settle: Callable[[BridgeOperation, dict[str, Any]], None]) -> None:
        task = asyncio.get_running_loop().create_task(self._track(operation, settle))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _track(self, operation: BridgeOperation, settle: Callable[[BridgeOperation, dict[str, Any]], None]) -> None:
        async for event in operation.handle.events():
            if event.kind == "hash":
                operation.advance(BridgeState.BROADCAST)
            elif event.kind == "receipt":
                try:
                    settle(operation, event.receipt)
                except BaseCustomException as e:
                    self.logger.warning(f"Bridge {operation.kind} #{operation.id} rejected: {e.message}")
                    operation.fail(e)
                    return
                operation.advance(BridgeState.RECEIPTED)
            elif event.kind == "error":
                operation.fail(event.error)

    def _settle_export(self, operation: BridgeOperation, receipt: dict[str, Any]) -> None:
        met_address = self._met_address()
        logs = [log for log in receipt.get("logs") or [] if EXPORT_RECEIPT_LOG.matches(log, met_address)]
        if not logs:
            raise ChainRejectedException("error.contract_call.failed: export")

        burn = BurnReceipt.model_validate(EXPORT_RECEIPT_LOG.decode(logs[0]))
        operation.burn_receipt = burn

        key = self._burn_key()
        previous = self._burns.get(key)
        try:
            burn.check_continuity(previous)
        except ChainRejectedException as e:
            self.logger.warning(f"Burn #{burn.burn_sequence} settled out of chain order: {e.message}")
        if previous is None or burn.burn_sequence > previous.burn_sequence:
            self._burns[key] = burn
        self.logger.info(f"Burn #{burn.burn_sequence} recorded: {burn.current_burn_hash}")

    def _settle_import(self, operation: BridgeOperation, params: ImportRequest, receipt: dict[str, Any]) -> None:
        met_address = self._met_address()
        if not any(IMPORT_REQUEST_LOG.matches(log, met_address) for log in receipt.get("logs") or []):
            raise ChainRejectedException("error.contract_call.failed: importRequest")
        operation.burn_receipt = params.burn_receipt()
        self._imports.setdefault(params.origin_chain, {})[params.burn_sequence] = operation.burn_receipt
        self.logger.info(f"Import of burn #{params.burn_sequence} from {params.origin_chain} requested")
