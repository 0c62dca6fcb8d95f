"""
Receipt log decoding into typed wallet actions.

Every parser is pure: it looks only at the receipt handed to it and the
template captured when the transaction was sent.
"""
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from eth_abi import decode
from web3 import Web3

from wallet.entities import MetaAction


def to_hex(value: Any) -> str:
    """
    Normalize bytes or hex strings to lowercase ``0x`` hex.

    Parameters
    ----------
    value : Any
        ``bytes``, ``HexBytes`` or hex string

    Returns
    -------
    str
        Lowercase ``0x``-prefixed hex
    """
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = str(value)
    return bytes.fromhex(text[2:] if text.startswith("0x") else text)


def _plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


@dataclass(frozen=True)
class LogSignature:
    """
    Solidity event definition used to recognize and decode receipt logs.

    Attributes
    ----------
    name : str
        Event name
    inputs : tuple[tuple[str, str, bool], ...]
        ``(name, type, indexed)`` per argument, in declaration order
    """
    name: str
    inputs: tuple[tuple[str, str, bool], ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(abi_type for _, abi_type, _ in self.inputs)})"

    @cached_property
    def topic(self) -> str:
        return to_hex(Web3.keccak(text=self.signature))

    def matches(self, log: dict[str, Any], address: str | None = None) -> bool:
        """
        Check whether a log was emitted for this event.

        Parameters
        ----------
        log : dict
            Receipt log with ``topics`` and ``address``
        address : str | None
            Contract expected to emit the event; any emitter when omitted

        Returns
        -------
        bool
            True if topic 0 is this event's signature hash and the log
            comes from ``address``
        """
        topics = log.get("topics") or []
        if not topics or to_hex(topics[0]) != self.topic:
            return False
        return address is None or to_hex(log.get("address") or "") == address.lower()

    def decode(self, log: dict[str, Any]) -> dict[str, Any]:
        """
        Decode a matching log into named arguments.

        Integers are returned as decimal strings and bytes as hex, the
        same shape wallet payloads use.

        Parameters
        ----------
        log : dict
            Receipt log with ``topics`` and ``data``

        Returns
        -------
        dict[str, Any]
            Argument name to value
        """
        topics = list(log.get("topics") or [])[1:]
        indexed = [(name, abi_type) for name, abi_type, is_indexed in self.inputs if is_indexed]
        plain = [(name, abi_type) for name, abi_type, is_indexed in self.inputs if not is_indexed]

        values: dict[str, Any] = {}
        for (name, abi_type), topic in zip(indexed, topics):
            values[name] = decode([abi_type], to_bytes(topic))[0]

        data = to_bytes(log.get("data") or b"")
        if plain:
            decoded = decode([abi_type for _, abi_type in plain], data)
            values.update({name: value for (name, _), value in zip(plain, decoded)})

        return {name: _plain(values[name]) for name, _, _ in self.inputs if name in values}


TRANSFER_LOG = LogSignature(
    "Transfer",
    (
        ("_from", "address", True),
        ("_to", "address", True),
        ("_value", "uint256", False),
    )
)

EXPORT_RECEIPT_LOG = LogSignature(
    "LogExportReceipt",
    (
        ("destinationChain", "bytes8", False),
        ("destinationMetronomeAddr", "address", False),
        ("destinationRecipientAddr", "address", True),
        ("amountToBurn", "uint256", False),
        ("fee", "uint256", False),
        ("extraData", "bytes", False),
        ("currentTick", "uint256", False),
        ("burnSequence", "uint256", True),
        ("currentBurnHash", "bytes32", True),
        ("prevBurnHash", "bytes32", False),
        ("dailyMintable", "uint256", False),
        ("supplyOnAllChains", "uint256[]", False),
        ("blockTimestamp", "uint256", False),
        ("exporter", "address", False),
    )
)

IMPORT_REQUEST_LOG = LogSignature(
    "LogImportRequest",
    (
        ("originChain", "bytes8", False),
        ("currentBurnHash", "bytes32", True),
        ("prevHash", "bytes32", False),
        ("destinationRecipientAddr", "address", True),
        ("amountToImport", "uint256", False),
        ("fee", "uint256", False),
        ("exportTimeStamp", "uint256", False),
        ("burnSequence", "uint256", False),
        ("extraData", "bytes", False),
    )
)

AUCTION_FUNDS_IN_LOG = LogSignature(
    "LogAuctionFundsIn",
    (
        ("sender", "address", True),
        ("amount", "uint256", False),
        ("tokens", "uint256", False),
        ("purchasePrice", "uint256", False),
        ("refund", "uint256", False),
    )
)


class MetaTemplate:
    """
    What the sender knew about a transaction's intended effect.

    Parameters
    ----------
    kind : str
        Parser kind
    return_values : dict
        Intended event values
    address : str | None
        Contract expected to emit the event
    """

    def __init__(self, kind: str, return_values: dict[str, Any] | None = None, address: str | None = None):
        self.kind = kind
        self.return_values = dict(return_values or {})
        self.address = address

    def pending(self) -> MetaAction:
        """
        Meta shown before a receipt exists.

        Returns
        -------
        MetaAction
            Intended values, ``contractCallFailed`` left undecided
        """
        return MetaAction(kind=self.kind, fields=_plain_fields(self.return_values))


def _plain_fields(values: dict[str, Any]) -> dict[str, Any]:
    return {name: _plain(value) for name, value in values.items()}


class MetaParser:
    """
    Receipt parser for one action kind.

    Parameters
    ----------
    kind : str
        Action kind
    log : LogSignature | None
        Event whose presence proves the contract call succeeded; plain
        coin transfers have none and rely on the receipt status
    """

    def __init__(self, kind: str, log: LogSignature | None = None):
        self.kind = kind
        self.log = log

    def template(self, contract_address: str | None = None, **return_values: Any) -> MetaTemplate:
        return MetaTemplate(self.kind, return_values, contract_address)

    def __call__(self, receipt: dict[str, Any], template: MetaTemplate | None = None) -> MetaAction:
        """
        Decode a receipt into a ``MetaAction``.

        Parameters
        ----------
        receipt : dict
            Normalized receipt with ``logs`` and ``status``
        template : MetaTemplate | None
            Values captured at send time

        Returns
        -------
        MetaAction
            Decoded action; ``contractCallFailed`` is true iff the
            expected event is absent from the receipt
        """
        fields = _plain_fields(template.return_values) if template else {}
        address = template.address if template else None

        if self.log is None:
            return MetaAction(
                kind=self.kind,
                contract_call_failed=not receipt.get("status", True),
                fields=fields
            )

        matching = [log for log in receipt.get("logs") or [] if self.log.matches(log, address)]
        if not matching:
            return MetaAction(kind=self.kind, contract_call_failed=True, fields=fields)

        decoded = self.log.decode(matching[0])
        fields.update({name: value for name, value in decoded.items() if name not in fields})
        return MetaAction(kind=self.kind, contract_call_failed=False, fields=fields)


META_PARSERS: dict[str, MetaParser] = {
    "coin": MetaParser("coin"),
    "transfer": MetaParser("transfer", TRANSFER_LOG),
    "export": MetaParser("export", EXPORT_RECEIPT_LOG),
    "importRequest": MetaParser("importRequest", IMPORT_REQUEST_LOG),
    "auction": MetaParser("auction", AUCTION_FUNDS_IN_LOG),
}
