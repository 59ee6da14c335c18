"""VaultStore protocol - durable, idempotent storage for events and snapshots."""

from __future__ import annotations

from typing import Protocol

from vault_indexer.models.events import VaultEvent
from vault_indexer.models.snapshots import VaultStateSnapshot


class VaultStore(Protocol):
    """Persists events, snapshots and the sync checkpoint.

    Writes are keyed so that a crash-and-resume, which re-delivers already
    processed blocks and logs, never produces duplicates.
    """

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        ...

    # ── Events ─────────────────────────────────────────────

    async def save_event(self, event: VaultEvent) -> None:
        """Insert the event; a second call with the same (tx hash, log index) is a no-op."""
        ...

    async def get_event(self, transaction_hash: str, log_index: int) -> VaultEvent | None:
        ...

    async def get_events(self, limit: int | None = None) -> list[VaultEvent]:
        """Events in chain order (block number, log index)."""
        ...

    async def count_events(self) -> int:
        ...

    # ── Snapshots ──────────────────────────────────────────

    async def save_state(self, state: VaultStateSnapshot) -> None:
        """Upsert the snapshot for its block; last write wins."""
        ...

    async def get_state(self, block_number: int) -> VaultStateSnapshot | None:
        ...

    async def get_latest_state(self) -> VaultStateSnapshot | None:
        ...

    async def count_states(self) -> int:
        ...

    # ── Checkpoint ─────────────────────────────────────────

    async def load_checkpoint(self) -> int | None:
        ...

    async def save_checkpoint(self, block_number: int) -> None:
        ...
