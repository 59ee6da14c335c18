"""Raw chain records as delivered by the chain client."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BlockHeader:
    """New-head notification or get_block() result."""

    number: int
    timestamp: int


@dataclass(frozen=True)
class RawLog:
    """One undecoded contract log."""

    topics: tuple[bytes, ...]
    data: bytes
    block_number: int
    transaction_hash: str
    log_index: int
    address: str = ""
    removed: bool = False  # set by the node when the log's block was reorged out

    @property
    def key(self) -> tuple[str, int]:
        return (self.transaction_hash, self.log_index)


@dataclass(frozen=True)
class LogFilter:
    """Subscription filter for vault logs."""

    address: str
    from_block: int | None = None
    topics: list[str] = field(default_factory=list)
