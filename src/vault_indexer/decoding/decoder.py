"""Event decoder - classifies raw logs into typed vault events."""

from __future__ import annotations

import logging

from eth_abi import decode as abi_decode
from web3 import Web3

from vault_indexer.decoding.registry import SignatureRegistry
from vault_indexer.errors import DecodeError
from vault_indexer.models.chain import RawLog
from vault_indexer.models.events import EventKind, VaultEvent

log = logging.getLogger(__name__)

DEPOSIT_SIGNATURE = "Deposit(address,address,uint256,uint256)"
WITHDRAW_SIGNATURE = "Withdraw(address,address,address,uint256,uint256)"

WORD_SIZE = 32


def _check_shape(raw: RawLog, name: str, indexed: int, words: int) -> None:
    """Topic count and data length are fixed by the event signature."""
    if len(raw.topics) != indexed + 1:
        raise DecodeError(
            f"{name} log {raw.transaction_hash}:{raw.log_index} has "
            f"{len(raw.topics)} topics, expected {indexed + 1}"
        )
    for i, topic in enumerate(raw.topics):
        if len(topic) != WORD_SIZE:
            raise DecodeError(
                f"{name} log {raw.transaction_hash}:{raw.log_index} topic {i} "
                f"is {len(topic)} bytes"
            )
    if len(raw.data) != words * WORD_SIZE:
        raise DecodeError(
            f"{name} log {raw.transaction_hash}:{raw.log_index} has "
            f"{len(raw.data)} data bytes, expected {words * WORD_SIZE}"
        )


def _topic_address(topic: bytes) -> str:
    # addresses occupy the low 20 bytes of the word
    return Web3.to_checksum_address("0x" + topic[12:].hex())


def _uint_words(data: bytes, count: int) -> tuple[int, ...]:
    return tuple(abi_decode(["uint256"] * count, data))


def decode_deposit(raw: RawLog) -> VaultEvent:
    """Deposit(address indexed sender, address indexed owner, uint256 assets, uint256 shares)"""
    _check_shape(raw, "Deposit", indexed=2, words=2)
    owner = _topic_address(raw.topics[2])
    assets, shares = _uint_words(raw.data, 2)
    return VaultEvent(
        kind=EventKind.DEPOSIT,
        block_number=raw.block_number,
        transaction_hash=raw.transaction_hash,
        log_index=raw.log_index,
        sender=_topic_address(raw.topics[1]),
        receiver=owner,
        owner=owner,
        assets=assets,
        shares=shares,
    )


def decode_withdraw(raw: RawLog) -> VaultEvent:
    """Withdraw(address indexed sender, address indexed receiver, address indexed owner,
    uint256 assets, uint256 shares)"""
    _check_shape(raw, "Withdraw", indexed=3, words=2)
    assets, shares = _uint_words(raw.data, 2)
    return VaultEvent(
        kind=EventKind.WITHDRAW,
        block_number=raw.block_number,
        transaction_hash=raw.transaction_hash,
        log_index=raw.log_index,
        sender=_topic_address(raw.topics[1]),
        receiver=_topic_address(raw.topics[2]),
        owner=_topic_address(raw.topics[3]),
        assets=assets,
        shares=shares,
    )


def default_registry() -> SignatureRegistry:
    """Registry with the ERC-4626 Deposit and Withdraw events."""
    registry = SignatureRegistry()
    registry.register(EventKind.DEPOSIT.value, DEPOSIT_SIGNATURE, decode_deposit)
    registry.register(EventKind.WITHDRAW.value, WITHDRAW_SIGNATURE, decode_withdraw)
    return registry


class EventDecoder:
    """Turns raw logs into VaultEvents.

    Logs whose topic0 is not registered are not vault events and decode to
    None. A matched log with the wrong shape raises DecodeError. The
    returned event carries timestamp 0; the caller fills in the block time.
    """

    def __init__(self, registry: SignatureRegistry | None = None) -> None:
        self._registry = registry or default_registry()

    @property
    def registry(self) -> SignatureRegistry:
        return self._registry

    def decode(self, raw: RawLog) -> VaultEvent | None:
        if not raw.topics:
            return None

        entry = self._registry.lookup(raw.topics[0])
        if entry is None:
            log.debug(
                "Ignoring log %s:%d with unknown topic0",
                raw.transaction_hash, raw.log_index,
            )
            return None

        try:
            return entry.decoder(raw)
        except DecodeError:
            raise
        except Exception as exc:
            raise DecodeError(
                f"{entry.name} log {raw.transaction_hash}:{raw.log_index}: {exc}"
            ) from exc
