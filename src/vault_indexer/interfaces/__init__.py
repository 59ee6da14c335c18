"""Protocol interfaces for the indexer's external collaborators."""

from vault_indexer.interfaces.chain import BlockRef, ChainClient
from vault_indexer.interfaces.store import VaultStore

__all__ = ["BlockRef", "ChainClient", "VaultStore"]
