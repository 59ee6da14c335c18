"""JSON-directory implementation of the VaultStore protocol.

Layout under data_dir:

    events/<tx_hash>_<log_index>.json
    states/<block_number>.json
    checkpoint.json

File names are the idempotency keys: an event file is written once, a state
file is overwritten by a later write for the same block.
"""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

from vault_indexer.models.events import EventKind, VaultEvent
from vault_indexer.models.snapshots import VaultStateSnapshot


def _event_to_dict(event: VaultEvent) -> dict[str, Any]:
    d = asdict(event)
    d["kind"] = event.kind.value
    # uint256 values are kept as strings so other JSON readers don't lose precision
    d["assets"] = str(event.assets)
    d["shares"] = str(event.shares)
    return d


def _event_from_dict(d: dict[str, Any]) -> VaultEvent:
    return VaultEvent(
        kind=EventKind(d["kind"]),
        block_number=d["block_number"],
        transaction_hash=d["transaction_hash"],
        log_index=d["log_index"],
        sender=d["sender"],
        receiver=d.get("receiver"),
        owner=d.get("owner"),
        assets=int(d["assets"]),
        shares=int(d["shares"]),
        timestamp=d.get("timestamp", 0),
    )


def _state_to_dict(state: VaultStateSnapshot) -> dict[str, Any]:
    d = asdict(state)
    d["total_assets"] = str(state.total_assets)
    d["total_supply"] = str(state.total_supply)
    d["rate"] = str(state.rate) if state.rate is not None else None
    d["reward_tokens"] = list(state.reward_tokens)
    return d


def _state_from_dict(d: dict[str, Any]) -> VaultStateSnapshot:
    return VaultStateSnapshot(
        block_number=d["block_number"],
        timestamp=d["timestamp"],
        total_assets=int(d["total_assets"]),
        total_supply=int(d["total_supply"]),
        rate=int(d["rate"]) if d.get("rate") is not None else None,
        asset_address=d.get("asset_address"),
        atoken_address=d.get("atoken_address"),
        reward_tokens=tuple(d.get("reward_tokens", [])),
    )


def _write_json(path: Path, data: Any) -> None:
    # write-then-rename so a crash never leaves a half-written file
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
    os.replace(tmp, path)


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class JsonFileVaultStore:
    """One pretty-printed JSON file per event and per snapshot."""

    def __init__(self, data_dir: str) -> None:
        self._root = Path(data_dir).expanduser()
        self._events = self._root / "events"
        self._states = self._root / "states"
        self._checkpoint = self._root / "checkpoint.json"

    async def initialize(self) -> None:
        self._events.mkdir(parents=True, exist_ok=True)
        self._states.mkdir(parents=True, exist_ok=True)

    async def close(self) -> None:
        pass

    def _event_path(self, transaction_hash: str, log_index: int) -> Path:
        return self._events / f"{transaction_hash.lower()}_{log_index}.json"

    def _state_path(self, block_number: int) -> Path:
        return self._states / f"{block_number:012d}.json"

    # ── Checkpoint ─────────────────────────────────────────

    async def load_checkpoint(self) -> int | None:
        if not self._checkpoint.exists():
            return None
        data = await asyncio.to_thread(_read_json, self._checkpoint)
        return int(data["block_number"])

    async def save_checkpoint(self, block_number: int) -> None:
        await asyncio.to_thread(_write_json, self._checkpoint, {"block_number": block_number})

    # ── Events ─────────────────────────────────────────────

    async def save_event(self, event: VaultEvent) -> None:
        path = self._event_path(event.transaction_hash, event.log_index)
        if path.exists():
            return
        await asyncio.to_thread(_write_json, path, _event_to_dict(event))

    async def get_event(self, transaction_hash: str, log_index: int) -> VaultEvent | None:
        path = self._event_path(transaction_hash, log_index)
        if not path.exists():
            return None
        return _event_from_dict(await asyncio.to_thread(_read_json, path))

    async def get_events(self, limit: int | None = None) -> list[VaultEvent]:
        paths = sorted(self._events.glob("*.json"))
        events = [_event_from_dict(await asyncio.to_thread(_read_json, p)) for p in paths]
        events.sort(key=lambda e: (e.block_number, e.log_index))
        return events[max(0, len(events) - limit):] if limit is not None else events

    async def count_events(self) -> int:
        return sum(1 for _ in self._events.glob("*.json"))

    # ── Snapshots ──────────────────────────────────────────

    async def save_state(self, state: VaultStateSnapshot) -> None:
        await asyncio.to_thread(
            _write_json, self._state_path(state.block_number), _state_to_dict(state),
        )

    async def get_state(self, block_number: int) -> VaultStateSnapshot | None:
        path = self._state_path(block_number)
        if not path.exists():
            return None
        return _state_from_dict(await asyncio.to_thread(_read_json, path))

    async def get_latest_state(self) -> VaultStateSnapshot | None:
        paths = sorted(self._states.glob("*.json"))
        if not paths:
            return None
        return _state_from_dict(await asyncio.to_thread(_read_json, paths[-1]))

    async def count_states(self) -> int:
        return sum(1 for _ in self._states.glob("*.json"))
