import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

from bridge.contracts import to_bytes8
from core.exceptions import ChainRejectedException, InvalidInputException
from wallet.lifecycle import SubmissionHandle


def check_address(value: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value.lower()):
        raise ValueError(f"Invalid address: {value}")
    return value


def check_hex(value: str, size: int | None = None) -> str:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"Invalid hex: {value}")
    try:
        raw = bytes.fromhex(value[2:])
    except ValueError:
        raise ValueError(f"Invalid hex: {value}")
    if size is not None and len(raw) != size:
        raise ValueError(f"Expected {size} bytes: {value}")
    return value


def check_chain(value: str) -> str:
    try:
        to_bytes8(value)
    except (InvalidInputException, ValueError):
        raise ValueError(f"Invalid chain identifier: {value}")
    return value


class ExportRequest(BaseModel):
    """
    Request to burn MET on this chain for import on another.

    Attributes
    ----------
    from_address : str
        Exporter address
    to : str | None
        Recipient on the destination chain, the exporter when omitted
    value : int
        Amount to burn
    fee : int | None
        Porter fee; resolved by the fee estimator when omitted or zero
    destination_chain : str
        Destination chain identifier
    destination_met_address : str
        METToken address on the destination chain
    extra_data : str
        Opaque hex payload forwarded to the destination
    gas : int | None
        Gas limit
    gas_price : int | None
        Gas price; read from the node when omitted
    """
    from_address: str = Field(alias="from")
    to: str | None = None
    value: int = Field(gt=0)
    fee: int | None = Field(default=None, ge=0)
    destination_chain: str = Field(alias="destinationChain")
    destination_met_address: str = Field(alias="destinationMetAddress")
    extra_data: str = Field(default="0x", alias="extraData")
    gas: int | None = Field(default=None, gt=0)
    gas_price: int | None = Field(default=None, alias="gasPrice", ge=0)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("from_address", "destination_met_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return check_address(v)

    @field_validator("to")
    @classmethod
    def validate_recipient(cls, v: str | None) -> str | None:
        return v if v is None else check_address(v)

    @field_validator("destination_chain")
    @classmethod
    def validate_chain(cls, v: str) -> str:
        return check_chain(v)

    @field_validator("extra_data")
    @classmethod
    def validate_extra_data(cls, v: str) -> str:
        return check_hex(v)

    @property
    def recipient(self) -> str:
        return self.to or self.from_address


class BurnReceipt(BaseModel):
    """
    Record of one burn, as the source chain logged it.

    Successive burns of one token instance form a hash chain: each
    receipt names the previous burn hash and the next sequence number.
    """
    burn_sequence: int = Field(alias="burnSequence", ge=0)
    current_burn_hash: str = Field(alias="currentBurnHash")
    previous_burn_hash: str = Field(alias="prevBurnHash")
    amount: int = Field(alias="amountToBurn")
    fee: int = 0
    destination_chain: str = Field(default="", alias="destinationChain")
    destination_recipient: str = Field(default="", alias="destinationRecipientAddr")
    supply: list[int] = Field(default_factory=list, alias="supplyOnAllChains")
    current_tick: int = Field(default=0, alias="currentTick")
    daily_mintable: int = Field(default=0, alias="dailyMintable")
    block_timestamp: int = Field(default=0, alias="blockTimestamp")
    extra_data: str = Field(default="0x", alias="extraData")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def follows(self, previous: "BurnReceipt") -> bool:
        return (
            self.burn_sequence == previous.burn_sequence + 1
            and self.previous_burn_hash.lower() == previous.current_burn_hash.lower()
        )

    def check_continuity(self, previous: "BurnReceipt | None") -> None:
        """
        Verify this receipt extends the chain ending at ``previous``.

        Gaps are allowed, since other holders burn from the same token
        instance; an older sequence or an unlinked neighbour is not.

        Parameters
        ----------
        previous : BurnReceipt | None
            Last receipt seen for the same token instance

        Raises
        ------
        ChainRejectedException
            If the sequence does not advance or the hashes do not link
        """
        if self.current_burn_hash.lower() == self.previous_burn_hash.lower():
            raise ChainRejectedException("error.burn.hash_not_advanced")
        if previous is None:
            return
        if self.burn_sequence <= previous.burn_sequence:
            raise ChainRejectedException(
                f"error.burn.sequence_not_advanced: {self.burn_sequence} after {previous.burn_sequence}"
            )
        if self.burn_sequence == previous.burn_sequence + 1 and not self.follows(previous):
            raise ChainRejectedException(
                f"error.burn.chain_broken: {self.previous_burn_hash} does not follow {previous.current_burn_hash}"
            )

    def check_import(self, imported: dict[int, "BurnReceipt"]) -> None:
        """
        Verify this burn may be imported next to the burns already imported.

        Older burns that were never imported are accepted. Whether a burn
        was minted elsewhere is for the destination contract to decide.

        Parameters
        ----------
        imported : dict[int, BurnReceipt]
            Burns imported from the same origin, by sequence

        Raises
        ------
        ChainRejectedException
            If the burn was already imported or does not link to an
            imported neighbour
        """
        if self.current_burn_hash.lower() == self.previous_burn_hash.lower():
            raise ChainRejectedException("error.burn.hash_not_advanced")
        for receipt in imported.values():
            if receipt.current_burn_hash.lower() == self.current_burn_hash.lower():
                raise ChainRejectedException(
                    f"error.burn.already_imported: #{receipt.burn_sequence} {receipt.current_burn_hash}"
                )
        previous = imported.get(self.burn_sequence - 1)
        if previous is not None and not self.follows(previous):
            raise ChainRejectedException(
                f"error.burn.chain_broken: {self.previous_burn_hash} does not follow {previous.current_burn_hash}"
            )
        following = imported.get(self.burn_sequence + 1)
        if following is not None and not following.follows(self):
            raise ChainRejectedException(
                f"error.burn.chain_broken: {following.previous_burn_hash} does not follow {self.current_burn_hash}"
            )


class ImportRequest(BaseModel):
    """
    Request to mint MET on this chain from a burn on another.

    Field names follow the source chain's export receipt.
    """
    from_address: str = Field(alias="from")
    origin_chain: str = Field(alias="originChain")
    destination_chain: str = Field(alias="destinationChain")
    destination_met_address: str = Field(alias="destinationMetAddress")
    extra_data: str = Field(default="0x", alias="extraData")
    previous_burn_hash: str = Field(alias="previousBurnHash")
    current_burn_hash: str = Field(alias="currentBurnHash")
    supply: list[int] = Field(default_factory=list)
    block_timestamp: int = Field(alias="blockTimestamp", ge=0)
    value: int = Field(gt=0)
    fee: int = Field(default=0, ge=0)
    current_tick: int = Field(alias="currentTick", ge=0)
    daily_mintable: int = Field(alias="dailyMintable", ge=0)
    burn_sequence: int = Field(alias="burnSequence", ge=0)
    root: str | None = None
    gas: int | None = Field(default=None, gt=0)
    gas_price: int | None = Field(default=None, alias="gasPrice", ge=0)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("from_address", "destination_met_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return check_address(v)

    @field_validator("origin_chain", "destination_chain")
    @classmethod
    def validate_chain(cls, v: str) -> str:
        return check_chain(v)

    @field_validator("previous_burn_hash", "current_burn_hash")
    @classmethod
    def validate_burn_hash(cls, v: str) -> str:
        return check_hex(v, 32)

    @field_validator("root")
    @classmethod
    def validate_root(cls, v: str | None) -> str | None:
        return v if v is None else check_hex(v, 32)

    @field_validator("extra_data")
    @classmethod
    def validate_extra_data(cls, v: str) -> str:
        return check_hex(v)

    def burn_receipt(self) -> BurnReceipt:
        return BurnReceipt(
            burn_sequence=self.burn_sequence,
            current_burn_hash=self.current_burn_hash,
            previous_burn_hash=self.previous_burn_hash,
            amount=self.value,
            fee=self.fee,
            destination_chain=self.destination_chain,
            destination_recipient=self.from_address,
            supply=self.supply,
            current_tick=self.current_tick,
            daily_mintable=self.daily_mintable,
            block_timestamp=self.block_timestamp,
            extra_data=self.extra_data
        )


class ImportContext(BaseModel):
    """Destination-chain auction window read before an import is signed."""
    genesis_time: int = Field(alias="genesisTime")
    daily_auction_start_time: int = Field(alias="dailyAuctionStartTime")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ImportProof(BaseModel):
    """
    Arguments of ``importMET``, each traceable to one burn receipt field
    or to the destination's auction window.
    """
    origin_chain: str
    destination_chain: str
    destination_met_address: str
    recipient: str
    extra_data: str
    previous_burn_hash: str
    current_burn_hash: str
    supply: list[int]
    block_timestamp: int
    value: int
    fee: int
    current_tick: int
    genesis_time: int
    daily_mintable: int
    burn_sequence: int
    daily_auction_start_time: int
    root: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def assemble(cls, request: ImportRequest, context: ImportContext, root: str) -> "ImportProof":
        return cls(
            origin_chain=request.origin_chain,
            destination_chain=request.destination_chain,
            destination_met_address=request.destination_met_address,
            recipient=request.from_address,
            extra_data=request.extra_data,
            previous_burn_hash=request.previous_burn_hash,
            current_burn_hash=request.current_burn_hash,
            supply=request.supply,
            block_timestamp=request.block_timestamp,
            value=request.value,
            fee=request.fee,
            current_tick=request.current_tick,
            genesis_time=context.genesis_time,
            daily_mintable=request.daily_mintable,
            burn_sequence=request.burn_sequence,
            daily_auction_start_time=context.daily_auction_start_time,
            root=root
        )

    def import_data(self) -> list[int]:
        return [
            self.block_timestamp,
            self.value,
            self.fee,
            self.current_tick,
            self.genesis_time,
            self.daily_mintable,
            self.burn_sequence,
            self.daily_auction_start_time,
        ]


class BridgeState(str, Enum):
    """States of an export or import operation."""

    REQUESTED = "requested"
    CONTEXT_FETCHED = "context_fetched"
    NONCE_ASSIGNED = "nonce_assigned"
    SIGNED = "signed"
    BROADCAST = "broadcast"
    RECEIPTED = "receipted"
    FAILED = "failed"


BRIDGE_TRANSITIONS = {
    "export": {
        BridgeState.REQUESTED: {BridgeState.NONCE_ASSIGNED},
        BridgeState.NONCE_ASSIGNED: {BridgeState.SIGNED},
        BridgeState.SIGNED: {BridgeState.BROADCAST},
        BridgeState.BROADCAST: {BridgeState.RECEIPTED},
    },
    "import": {
        BridgeState.REQUESTED: {BridgeState.CONTEXT_FETCHED},
        BridgeState.CONTEXT_FETCHED: {BridgeState.NONCE_ASSIGNED},
        BridgeState.NONCE_ASSIGNED: {BridgeState.SIGNED},
        BridgeState.SIGNED: {BridgeState.BROADCAST},
        BridgeState.BROADCAST: {BridgeState.RECEIPTED},
    },
}

TERMINAL_STATES = (BridgeState.RECEIPTED, BridgeState.FAILED)


class BridgeOperation:
    """
    One export or import, from request to receipt.

    Parameters
    ----------
    kind : Literal["export", "import"]
        Operation kind
    logger : logging.Logger
        Logger instance
    """

    _ids = itertools.count(1)

    def __init__(self, kind: Literal["export", "import"], logger: logging.Logger):
        self.id = next(self._ids)
        self.kind = kind
        self.logger = logger
        self.state = BridgeState.REQUESTED
        self.nonce: int | None = None
        self.handle: SubmissionHandle | None = None
        self.burn_receipt: BurnReceipt | None = None
        self.error: Exception | None = None
        self.history = [BridgeState.REQUESTED]
        self._finished = asyncio.Event()

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: BridgeState) -> None:
        """
        Move to the next state.

        Raises
        ------
        InvalidInputException
            If the transition is not allowed for this operation kind
        """
        if self.done:
            raise InvalidInputException(f"error.bridge.finished: {self.kind} #{self.id} is {self.state.value}")
        allowed = BRIDGE_TRANSITIONS[self.kind].get(self.state, set())
        if state != BridgeState.FAILED and state not in allowed:
            raise InvalidInputException(
                f"error.bridge.transition: {self.state.value} -> {state.value}"
            )
        self.logger.info(f"Bridge {self.kind} #{self.id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        if self.done:
            self._finished.set()

    def fail(self, error: Exception) -> None:
        if self.done:
            return
        self.error = error
        self.advance(BridgeState.FAILED)

    async def wait(self) -> dict[str, Any]:
        """
        Wait until the operation is receipted or failed.

        Returns
        -------
        dict
            Receipt of the operation's transaction

        Raises
        ------
        BaseCustomException
            The failure that ended the operation
        """
        await self._finished.wait()
        if self.error is not None:
            raise self.error
        return self.handle.receipt
