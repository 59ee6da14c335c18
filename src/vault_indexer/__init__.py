"""vault_indexer - ERC-4626 vault event and state indexer."""

__version__ = "0.1.0"
