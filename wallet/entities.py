from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class TransferRequest(BaseModel):
    """
    Caller's intent to move native coin.

    Attributes
    ----------
    from_address : str
        Sender address, valid for the adapter's chain model
    to : str
        Recipient address
    value : int
        Amount in the coin's smallest unit
    gas : int | None
        Gas limit (account chains)
    gas_price : int | None
        Gas price (account chains); fetched from the node when omitted
    fee_rate : int | None
        Fee per byte (UTXO chains); adapter default when omitted
    extra_data : str | None
        Optional hex payload
    """
    from_address: str = Field(alias="from")
    to: str
    value: int = Field(gt=0)
    gas: int | None = Field(default=None, gt=0)
    gas_price: int | None = Field(default=None, alias="gasPrice", ge=0)
    fee_rate: int | None = Field(default=None, alias="feeRate", gt=0)
    extra_data: str | None = Field(default=None, alias="extraData")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class SubmissionStage(str, Enum):
    """Stages of one broadcast transaction, in the only order they may occur."""

    PENDING = "pending"
    BROADCAST = "broadcast"
    CONFIRMED = "confirmed"
    RECEIPTED = "receipted"
    FAILED = "failed"


STAGE_ORDER = {
    SubmissionStage.PENDING: 0,
    SubmissionStage.BROADCAST: 1,
    SubmissionStage.CONFIRMED: 2,
    SubmissionStage.RECEIPTED: 3,
    SubmissionStage.FAILED: 3,
}


class LifecycleEvent(BaseModel):
    """
    One normalized milestone of a submission.

    Attributes
    ----------
    kind : Literal["hash", "confirmation", "receipt", "error"]
        Milestone kind
    hash : str | None
        Transaction hash, known from ``hash`` on
    confirmations : int
        Confirmation count for ``confirmation``
    transaction : dict | None
        Raw transaction fields
    receipt : dict | None
        Receipt for ``receipt``
    error : Exception | None
        Failure for ``error``
    """
    kind: Literal["hash", "confirmation", "receipt", "error"]
    hash: str | None = None
    confirmations: int = 0
    transaction: dict[str, Any] | None = None
    receipt: dict[str, Any] | None = None
    error: Exception | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def terminal(self) -> bool:
        return self.kind in ("receipt", "error")


class Milestone(BaseModel):
    """
    Chain-specific progress report produced by a receipt watcher.

    Attributes
    ----------
    kind : Literal["confirmation", "receipt"]
        Milestone kind
    confirmations : int
        Confirmation depth
    transaction : dict | None
        Mined transaction fields (``receipt`` only)
    receipt : dict | None
        Normalized receipt (``receipt`` only)
    """
    kind: Literal["confirmation", "receipt"]
    confirmations: int = 0
    transaction: dict[str, Any] | None = None
    receipt: dict[str, Any] | None = None

    model_config = ConfigDict(frozen=True)


class MetaAction(BaseModel):
    """
    Decoded semantic effect of a transaction.

    ``contract_call_failed`` stays ``None`` until a receipt is known.
    ``fields`` holds the intended and decoded event values; wallet state
    payloads carry only the failure flag.
    """
    kind: str
    contract_call_failed: bool | None = Field(default=None, alias="contractCallFailed")
    fields: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        if self.contract_call_failed is None:
            return {}
        return {"contractCallFailed": self.contract_call_failed}


class TrackedTransaction(BaseModel):
    """
    One ledger entry for an address.

    Attributes
    ----------
    transaction : dict
        Raw transaction fields
    receipt : dict | None
        Receipt, ``None`` while pending
    meta : MetaAction
        Action-specific decoded summary
    """
    transaction: dict[str, Any]
    receipt: dict[str, Any] | None = None
    meta: MetaAction

    model_config = ConfigDict(frozen=True)

    @property
    def hash(self) -> str:
        return self.transaction["hash"]

    @property
    def confirmed(self) -> bool:
        return self.receipt is not None

    def to_payload(self) -> dict[str, Any]:
        return {
            "transaction": self.transaction,
            "receipt": self.receipt,
            "meta": self.meta.to_payload()
        }


class TokenBalance(BaseModel):
    """Balance of one token contract."""
    balance: str

    model_config = ConfigDict(frozen=True)


class WalletAddressState(BaseModel):
    """
    Tracker's external view of one address.

    Attributes
    ----------
    balance : str | None
        Confirmed native balance, ``None`` until first refresh
    token : dict[str, TokenBalance]
        Token balances by contract address
    transactions : list[TrackedTransaction]
        Ledger entries in merge order
    """
    balance: str | None = None
    token: dict[str, TokenBalance] = Field(default_factory=dict)
    transactions: list[TrackedTransaction] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "token": {contract: token.model_dump() for contract, token in self.token.items()},
            "transactions": [tracked.to_payload() for tracked in self.transactions]
        }
        if self.balance is not None:
            payload["balance"] = self.balance
        return payload


class Utxo(BaseModel):
    """
    Unspent output owned by an address.

    Attributes
    ----------
    txid : str
        Funding transaction id
    vout : int
        Output index
    value : int
        Amount in satoshi-equivalent units
    script_pub_key : str
        Locking script (hex)
    confirmations : int
        Confirmation depth
    """
    txid: str
    vout: int
    value: int = Field(alias="satoshis")
    script_pub_key: str = Field(default="", alias="scriptPubKey")
    confirmations: int = 0

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class TxOutput(BaseModel):
    """Output of a transaction under construction."""
    address: str
    value: int

    model_config = ConfigDict(frozen=True)


class CoinSelection(BaseModel):
    """
    Result of UTXO coin selection.

    Attributes
    ----------
    inputs : list[Utxo]
        Selected outputs to spend
    outputs : list[TxOutput]
        Recipient and (optional) change outputs
    fee : int
        Fee paid
    size : int
        Estimated transaction size in bytes
    """
    inputs: list[Utxo]
    outputs: list[TxOutput]
    fee: int
    size: int

    model_config = ConfigDict(frozen=True)
