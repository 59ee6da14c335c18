"""Synchronization pipeline: stream merger and sync engine."""

from vault_indexer.sync.engine import SyncEngine, SyncState, SyncStats
from vault_indexer.sync.merger import StreamMerger

__all__ = ["SyncEngine", "SyncState", "SyncStats", "StreamMerger"]
