"""Signature registry - maps event signature hashes (topic0) to decoders."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from hexbytes import HexBytes
from web3 import Web3

from vault_indexer.models.chain import RawLog
from vault_indexer.models.events import VaultEvent

log = logging.getLogger(__name__)

LogDecoder = Callable[[RawLog], VaultEvent]


@dataclass(frozen=True)
class RegisteredEvent:
    name: str
    signature: str
    topic0: bytes
    decoder: LogDecoder


def signature_hash(signature: str) -> bytes:
    """keccak256 of a canonical event signature, e.g. "Deposit(address,address,uint256,uint256)"."""
    return bytes(Web3.keccak(text=signature))


def as_topic_bytes(topic: bytes | str) -> bytes:
    """Accept a topic as raw bytes or 0x-prefixed hex."""
    if isinstance(topic, (bytes, bytearray)):
        return bytes(topic)
    return bytes(HexBytes(topic))


class SignatureRegistry:
    """Vocabulary of known vault events.

    Hashes are computed once at registration; lookups are a dict hit.
    """

    def __init__(self) -> None:
        self._by_topic: dict[bytes, RegisteredEvent] = {}

    def register(self, name: str, signature: str, decoder: LogDecoder) -> bytes:
        topic0 = signature_hash(signature)
        self._by_topic[topic0] = RegisteredEvent(name, signature, topic0, decoder)
        log.debug("Registered %s as 0x%s", signature, topic0.hex())
        return topic0

    def lookup(self, topic0: bytes | str) -> RegisteredEvent | None:
        """Return the registered event for topic0, or None if it is not a vault event."""
        return self._by_topic.get(as_topic_bytes(topic0))

    def topics(self) -> list[str]:
        """0x-hex topic0 values, for subscription filters."""
        return ["0x" + t.hex() for t in self._by_topic]

    def __contains__(self, topic0: bytes | str) -> bool:
        return self.lookup(topic0) is not None

    def __len__(self) -> int:
        return len(self._by_topic)
