"""Typed vault events decoded from raw logs."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class EventKind(str, Enum):
    """ERC-4626 events the indexer understands."""

    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"


@dataclass(frozen=True)
class VaultEvent:
    """A single on-chain vault action.

    Identified by (transaction_hash, log_index); re-delivery of the same
    log must map onto the same record.
    """

    kind: EventKind
    block_number: int
    transaction_hash: str
    log_index: int
    sender: str
    receiver: str | None
    owner: str | None
    assets: int  # underlying asset units
    shares: int  # vault share units
    timestamp: int = 0  # block timestamp, filled in by the sync engine

    @property
    def key(self) -> tuple[str, int]:
        return (self.transaction_hash, self.log_index)

    def with_timestamp(self, timestamp: int) -> VaultEvent:
        return replace(self, timestamp=timestamp)
