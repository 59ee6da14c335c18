"""In-memory VaultStore, for tests and dry runs."""

from __future__ import annotations

from vault_indexer.models.events import VaultEvent
from vault_indexer.models.snapshots import VaultStateSnapshot


class MemoryVaultStore:
    """Dict-backed implementation of the VaultStore protocol. Nothing survives the process."""

    def __init__(self) -> None:
        self.events: dict[tuple[str, int], VaultEvent] = {}
        self.states: dict[int, VaultStateSnapshot] = {}
        self.checkpoint: int | None = None

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def load_checkpoint(self) -> int | None:
        return self.checkpoint

    async def save_checkpoint(self, block_number: int) -> None:
        self.checkpoint = block_number

    async def save_event(self, event: VaultEvent) -> None:
        self.events.setdefault(event.key, event)

    async def get_event(self, transaction_hash: str, log_index: int) -> VaultEvent | None:
        return self.events.get((transaction_hash, log_index))

    async def get_events(self, limit: int | None = None) -> list[VaultEvent]:
        ordered = sorted(self.events.values(), key=lambda e: (e.block_number, e.log_index))
        return ordered[max(0, len(ordered) - limit):] if limit is not None else ordered

    async def count_events(self) -> int:
        return len(self.events)

    async def save_state(self, state: VaultStateSnapshot) -> None:
        self.states[state.block_number] = state

    async def get_state(self, block_number: int) -> VaultStateSnapshot | None:
        return self.states.get(block_number)

    async def get_latest_state(self) -> VaultStateSnapshot | None:
        if not self.states:
            return None
        return self.states[max(self.states)]

    async def count_states(self) -> int:
        return len(self.states)
