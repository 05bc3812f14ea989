"""
Event Log Decoder

Matches receipt logs against event ABIs collected from build artifacts.
Logs whose selector is unknown, or that fail to decode, are passed through
structurally under the "Unknown" event name.
"""

from typing import Any

import structlog
from eth_abi import decode as abi_decode
from web3 import Web3

from sandbox_deployer.models import DecodedLog, Log

logger = structlog.get_logger(__name__)

UNKNOWN_EVENT = "Unknown"


def canonical_type(param: dict[str, Any]) -> str:
    """Canonical ABI type of a parameter, expanding tuples."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def event_signature(event_abi: dict[str, Any]) -> str:
    """e.g. Transfer(address,address,uint256)"""
    types = ",".join(canonical_type(p) for p in event_abi.get("inputs", []))
    return f"{event_abi['name']}({types})"


def event_selector(event_abi: dict[str, Any]) -> str:
    """topic0 of an event: keccak256 of its signature, 0x-prefixed."""
    return "0x" + bytes(Web3.keccak(text=event_signature(event_abi))).hex()


def _is_dynamic(abi_type: str) -> bool:
    # Indexed dynamic values are stored as their hash
    return (
        abi_type in ("string", "bytes")
        or abi_type.endswith("]")
        or abi_type.startswith("(")
    )


def _to_json_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, (list, tuple)):
        return [_to_json_value(v) for v in value]
    return value


def _hex_to_bytes(value: str) -> bytes:
    text = value[2:] if value[:2].lower() == "0x" else value
    return bytes.fromhex(text)


class EventDecoder:
    """Selector-based event decoder."""

    def __init__(self, event_abis: list[dict[str, Any]] | None = None) -> None:
        self._by_selector: dict[str, dict[str, Any]] = {}
        for event_abi in event_abis or []:
            if event_abi.get("anonymous") or not event_abi.get("name"):
                continue
            try:
                selector = event_selector(event_abi)
            except (KeyError, TypeError) as e:
                logger.debug("event_abi_ignored", abi=event_abi, error=str(e))
                continue
            self._by_selector.setdefault(selector, event_abi)

    def __len__(self) -> int:
        return len(self._by_selector)

    def lookup(self, topic0: str) -> dict[str, Any] | None:
        return self._by_selector.get(topic0.lower())

    def decode(self, log: Log) -> DecodedLog:
        """Decode a log, falling back to a raw passthrough."""
        event_abi = self.lookup(log.topics[0]) if log.topics else None
        if event_abi is not None:
            try:
                args = self._decode_args(event_abi, log)
            except Exception as e:  # Intentional broad catch: a bad ABI or log must not stop reconciliation
                logger.debug("event_decode_failed", event_name=event_abi.get("name"), error=str(e))
            else:
                return DecodedLog(
                    event=event_abi["name"],
                    address=log.address,
                    topics=list(log.topics),
                    data=log.data,
                    args=args,
                )

        return DecodedLog(
            event=UNKNOWN_EVENT,
            address=log.address,
            topics=list(log.topics),
            data=log.data,
            args={},
        )

    def _decode_args(self, event_abi: dict[str, Any], log: Log) -> dict[str, Any]:
        inputs = event_abi.get("inputs", [])
        indexed = [i for i, p in enumerate(inputs) if p.get("indexed")]
        plain = [i for i, p in enumerate(inputs) if not p.get("indexed")]

        if len(log.topics) - 1 != len(indexed):
            raise ValueError("topic count does not match indexed inputs")

        values: list[Any] = [None] * len(inputs)
        for position, topic in zip(indexed, log.topics[1:]):
            abi_type = canonical_type(inputs[position])
            if _is_dynamic(abi_type):
                values[position] = topic
            else:
                values[position] = abi_decode([abi_type], _hex_to_bytes(topic))[0]

        if plain:
            decoded = abi_decode(
                [canonical_type(inputs[i]) for i in plain],
                _hex_to_bytes(log.data),
            )
            for position, value in zip(plain, decoded):
                values[position] = value

        return {
            (param.get("name") or f"arg{position}"): _to_json_value(values[position])
            for position, param in enumerate(inputs)
        }
