"""
Tests for the Event Log Decoder.
"""

import pytest
from eth_abi import encode

from sandbox_deployer.deploy.decoder import (
    EventDecoder,
    canonical_type,
    event_selector,
    event_signature,
)
from sandbox_deployer.models import Log

TRANSFER_ABI = {
    "type": "event",
    "name": "Transfer",
    "anonymous": False,
    "inputs": [
        {"name": "from", "type": "address", "indexed": True},
        {"name": "to", "type": "address", "indexed": True},
        {"name": "value", "type": "uint256", "indexed": False},
    ],
}

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

SENDER = "0x" + "11" * 20
RECIPIENT = "0x" + "22" * 20


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:]


@pytest.fixture
def decoder():
    return EventDecoder([TRANSFER_ABI])


class TestSignatures:
    """Tests for event signature helpers."""

    def test_signature(self):
        assert event_signature(TRANSFER_ABI) == "Transfer(address,address,uint256)"

    def test_selector(self):
        assert event_selector(TRANSFER_ABI) == TRANSFER_TOPIC

    def test_tuple_expansion(self):
        param = {
            "type": "tuple[]",
            "components": [{"type": "address"}, {"type": "uint96"}],
        }

        assert canonical_type(param) == "(address,uint96)[]"


class TestDecode:
    """Tests for log decoding."""

    def test_transfer(self, decoder):
        log = Log(
            address="0x" + "aa" * 20,
            topics=[TRANSFER_TOPIC, address_topic(SENDER), address_topic(RECIPIENT)],
            data="0x" + encode(["uint256"], [1000]).hex(),
        )

        decoded = decoder.decode(log)

        assert decoded.event == "Transfer"
        assert decoded.args["from"].lower() == SENDER
        assert decoded.args["to"].lower() == RECIPIENT
        assert decoded.args["value"] == 1000
        assert decoded.address == "0x" + "aa" * 20

    def test_unknown_selector(self, decoder):
        log = Log(address="0x1", topics=["0x" + "ab" * 32], data="0x1234")

        decoded = decoder.decode(log)

        assert decoded.event == "Unknown"
        assert decoded.topics == ["0x" + "ab" * 32]
        assert decoded.data == "0x1234"
        assert decoded.args == {}

    def test_no_topics(self, decoder):
        assert decoder.decode(Log(address="0x1", topics=[], data="0x")).event == "Unknown"

    def test_topic_count_mismatch(self, decoder):
        """A log that does not fit the ABI falls back to Unknown."""
        log = Log(address="0x1", topics=[TRANSFER_TOPIC], data="0x")

        assert decoder.decode(log).event == "Unknown"

    def test_truncated_data(self, decoder):
        log = Log(
            address="0x1",
            topics=[TRANSFER_TOPIC, address_topic(SENDER), address_topic(RECIPIENT)],
            data="0x01",
        )

        assert decoder.decode(log).event == "Unknown"

    def test_indexed_dynamic_kept_as_topic(self):
        abi = {
            "type": "event",
            "name": "Named",
            "inputs": [
                {"name": "label", "type": "string", "indexed": True},
                {"name": "", "type": "bytes", "indexed": False},
            ],
        }
        decoder = EventDecoder([abi])
        label_hash = "0x" + "cd" * 32
        log = Log(
            address="0x1",
            topics=[event_selector(abi), label_hash],
            data="0x" + encode(["bytes"], [b"\x01\x02"]).hex(),
        )

        decoded = decoder.decode(log)

        assert decoded.event == "Named"
        assert decoded.args == {"label": label_hash, "arg1": "0x0102"}


class TestAbiSelection:
    """Tests for which ABI entries are registered."""

    def test_anonymous_and_nameless_skipped(self):
        decoder = EventDecoder([
            {**TRANSFER_ABI, "anonymous": True},
            {"type": "event", "inputs": []},
        ])

        assert len(decoder) == 0

    def test_first_abi_wins(self):
        duplicate = {**TRANSFER_ABI, "inputs": [dict(p, name=f"x{i}") for i, p in enumerate(TRANSFER_ABI["inputs"])]}

        decoder = EventDecoder([TRANSFER_ABI, duplicate])

        assert len(decoder) == 1
        assert decoder.lookup(TRANSFER_TOPIC) is TRANSFER_ABI

    def test_lookup_case_insensitive(self, decoder):
        assert decoder.lookup(TRANSFER_TOPIC.upper().replace("0X", "0x")) is TRANSFER_ABI
