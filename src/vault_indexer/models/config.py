"""Configuration models for the indexer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class StorageBackend(str, Enum):
    """Where events, snapshots and the checkpoint are persisted."""

    SQLITE = "sqlite"
    JSON = "json"
    MEMORY = "memory"


@dataclass
class ChainConfig:
    """Chain connection settings."""

    wss_url: str = ""
    vault_address: str = ""
    abi_path: str = ""  # empty: use the bundled ERC-4626 ABI
    extended_state: bool = False  # also read rate/asset/aToken/rewardTokens
    log_chunk_size: int = 2_000  # blocks per eth_getLogs during catch-up


@dataclass
class StorageConfig:
    backend: StorageBackend = StorageBackend.SQLITE
    db_path: str = "~/.vault_indexer/state.db"
    data_dir: str = "~/.vault_indexer/data"


@dataclass
class IndexerConfig:
    """Complete indexer configuration."""

    # Sync
    read_on_block: bool = True  # snapshot on every new block, not just on vault logs
    persist_retries: int = 5
    persist_backoff: float = 0.5  # seconds, doubled per attempt
    reconnect_attempts: int = 10
    reconnect_backoff: float = 1.0  # seconds, doubled per attempt
    max_backoff: float = 60.0
    timestamp_cache_size: int = 1_024
    log_level: str = "info"

    chain: ChainConfig = field(default_factory=ChainConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
