"""Chain access: web3 client, ABI loading and the state reader."""

from vault_indexer.chain.abi import ERC4626_ABI, load_abi
from vault_indexer.chain.reader import StateReader

__all__ = ["ERC4626_ABI", "load_abi", "StateReader"]
