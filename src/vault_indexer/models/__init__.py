"""Data models for the vault indexer."""

from vault_indexer.models.chain import BlockHeader, LogFilter, RawLog
from vault_indexer.models.config import (
    ChainConfig,
    IndexerConfig,
    StorageBackend,
    StorageConfig,
)
from vault_indexer.models.events import EventKind, VaultEvent
from vault_indexer.models.snapshots import VaultStateSnapshot
from vault_indexer.models.work import NewBlock, NewLog, WorkItem

__all__ = [
    "BlockHeader", "LogFilter", "RawLog",
    "ChainConfig", "IndexerConfig", "StorageBackend", "StorageConfig",
    "EventKind", "VaultEvent",
    "VaultStateSnapshot",
    "NewBlock", "NewLog", "WorkItem",
]
