"""VaultStore implementations."""

from __future__ import annotations

from vault_indexer.interfaces.store import VaultStore
from vault_indexer.models.config import StorageBackend, StorageConfig
from vault_indexer.storage.jsonfile import JsonFileVaultStore
from vault_indexer.storage.memory import MemoryVaultStore
from vault_indexer.storage.sqlite import SQLiteVaultStore


def open_store(cfg: StorageConfig) -> VaultStore:
    """Build the store selected by the storage config (not yet initialized)."""
    if cfg.backend == StorageBackend.SQLITE:
        return SQLiteVaultStore(cfg.db_path)
    if cfg.backend == StorageBackend.JSON:
        return JsonFileVaultStore(cfg.data_dir)
    return MemoryVaultStore()


__all__ = ["open_store", "JsonFileVaultStore", "MemoryVaultStore", "SQLiteVaultStore"]
