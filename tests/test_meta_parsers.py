import pytest
from eth_abi import encode

from wallet.meta_parsers import (
    AUCTION_FUNDS_IN_LOG,
    EXPORT_RECEIPT_LOG,
    META_PARSERS,
    TRANSFER_LOG,
    to_hex,
)


SENDER = "0x" + "ab" * 20
RECIPIENT = "0x" + "cd" * 20


def transfer_log(value=7):
    return {
        "topics": [
            TRANSFER_LOG.topic,
            to_hex(encode(["address"], [SENDER])),
            to_hex(encode(["address"], [RECIPIENT])),
        ],
        "data": to_hex(encode(["uint256"], [value])),
    }


def unrelated_log():
    return {"topics": ["0x" + "00" * 32], "data": "0x"}


class TestMetaParsers:
    """
    Unit tests for receipt meta parsers.

    ``contractCallFailed`` is true exactly when the receipt lacks the
    event the action is expected to emit.
    """

    def test_signature_topics(self):
        assert TRANSFER_LOG.signature == "Transfer(address,address,uint256)"
        assert TRANSFER_LOG.topic == "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

    def test_transfer_decoded(self):
        """Test a matching Transfer log is decoded into plain values."""
        meta = META_PARSERS["transfer"]({"status": True, "logs": [unrelated_log(), transfer_log()]})

        assert meta.contract_call_failed is False
        assert meta.fields["_from"].lower() == SENDER
        assert meta.fields["_to"].lower() == RECIPIENT
        assert meta.fields["_value"] == "7"
        assert meta.to_payload() == {"contractCallFailed": False}

    @pytest.mark.parametrize("kind", ["transfer", "export", "importRequest", "auction"])
    def test_missing_event_marks_failure(self, kind):
        """
        Test every contract action fails when its event is absent.

        Parameters
        ----------
        kind : str
            Parser kind
        """
        meta = META_PARSERS[kind]({"status": True, "logs": [unrelated_log()]})

        assert meta.contract_call_failed is True
        assert meta.to_payload() == {"contractCallFailed": True}

    def test_template_values_kept(self):
        """Test values known at send time survive decoding and win over the log."""
        template = META_PARSERS["transfer"].template(_value=7, note="gift")
        meta = META_PARSERS["transfer"]({"logs": [transfer_log(value=9)]}, template)

        assert meta.fields["_value"] == "7"
        assert meta.fields["note"] == "gift"
        assert meta.fields["_to"].lower() == RECIPIENT

    def test_event_from_other_contract_ignored(self):
        """Test only logs emitted by the expected contract prove success."""
        token = "0x" + "11" * 20
        template = META_PARSERS["transfer"].template(contract_address=token.upper().replace("0X", "0x"))
        foreign = {**transfer_log(), "address": "0x" + "22" * 20}

        assert META_PARSERS["transfer"]({"logs": [foreign]}, template).contract_call_failed is True
        assert META_PARSERS["transfer"](
            {"logs": [foreign, {**transfer_log(), "address": token}]}, template
        ).contract_call_failed is False

    def test_coin_uses_receipt_status(self):
        assert META_PARSERS["coin"]({"status": True, "logs": []}).contract_call_failed is False
        assert META_PARSERS["coin"]({"status": False, "logs": []}).contract_call_failed is True

    def test_pending_meta_has_empty_payload(self):
        pending = META_PARSERS["export"].template(amountToBurn=5).pending()

        assert pending.contract_call_failed is None
        assert pending.fields == {"amountToBurn": "5"}
        assert pending.to_payload() == {}

    def test_auction_funds_in_decoded(self):
        log = {
            "topics": [AUCTION_FUNDS_IN_LOG.topic, to_hex(encode(["address"], [SENDER]))],
            "data": to_hex(encode(["uint256"] * 4, [100, 40, 2, 20])),
        }
        meta = META_PARSERS["auction"]({"logs": [log]})

        assert meta.contract_call_failed is False
        assert meta.fields["tokens"] == "40"
        assert meta.fields["refund"] == "20"

    def test_export_receipt_decoded(self):
        """Test the burn chain fields of an export receipt are decoded."""
        burn_hash = "0x" + "0f" * 32
        log = {
            "topics": [
                EXPORT_RECEIPT_LOG.topic,
                to_hex(encode(["address"], [RECIPIENT])),
                to_hex(encode(["uint256"], [4])),
                burn_hash,
            ],
            "data": to_hex(encode(
                [
                    "bytes8", "address", "uint256", "uint256", "bytes", "uint256",
                    "bytes32", "uint256", "uint256[]", "uint256", "address",
                ],
                [
                    b"ETC".ljust(8, b"\x00"), SENDER, 1000, 10, b"", 77,
                    bytes.fromhex("0e" * 32), 500, [1, 2], 1700000000, SENDER,
                ]
            )),
        }
        fields = EXPORT_RECEIPT_LOG.decode(log)

        assert fields["burnSequence"] == "4"
        assert fields["currentBurnHash"] == burn_hash
        assert fields["prevBurnHash"] == "0x" + "0e" * 32
        assert fields["destinationChain"] == "0x" + b"ETC".ljust(8, b"\x00").hex()
        assert fields["supplyOnAllChains"] == ["1", "2"]
        assert fields["extraData"] == "0x"
