"""Log classification: signature registry and event decoder."""

from vault_indexer.decoding.decoder import (
    DEPOSIT_SIGNATURE,
    WITHDRAW_SIGNATURE,
    EventDecoder,
    default_registry,
)
from vault_indexer.decoding.registry import SignatureRegistry, signature_hash

__all__ = [
    "DEPOSIT_SIGNATURE", "WITHDRAW_SIGNATURE",
    "EventDecoder", "default_registry",
    "SignatureRegistry", "signature_hash",
]
