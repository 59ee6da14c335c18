"""SQLite implementation of the VaultStore protocol."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from vault_indexer.models.events import EventKind, VaultEvent
from vault_indexer.models.snapshots import VaultStateSnapshot

# uint256 amounts overflow SQLite INTEGER, so they are stored as decimal TEXT
SCHEMA = """
-- Sync checkpoint for resumption
CREATE TABLE IF NOT EXISTS checkpoint (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    block_number INTEGER NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Decoded vault events, one row per (tx_hash, log_index)
CREATE TABLE IF NOT EXISTS events (
    tx_hash TEXT NOT NULL,
    log_index INTEGER NOT NULL,
    kind TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    sender TEXT NOT NULL,
    receiver TEXT,
    owner TEXT,
    assets TEXT NOT NULL,
    shares TEXT NOT NULL,
    block_timestamp INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (tx_hash, log_index)
);
CREATE INDEX IF NOT EXISTS idx_events_block ON events(block_number, log_index);

-- Vault state snapshots, one row per block
CREATE TABLE IF NOT EXISTS states (
    block_number INTEGER PRIMARY KEY,
    block_timestamp INTEGER NOT NULL,
    total_assets TEXT NOT NULL,
    total_supply TEXT NOT NULL,
    rate TEXT,
    asset_address TEXT,
    atoken_address TEXT,
    reward_tokens TEXT NOT NULL DEFAULT '[]',
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteVaultStore:
    """SQLite-backed implementation of the VaultStore protocol."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Checkpoint ─────────────────────────────────────────

    async def load_checkpoint(self) -> int | None:
        async with self.db.execute("SELECT block_number FROM checkpoint WHERE id=1") as cur:
            row = await cur.fetchone()
            return row["block_number"] if row else None

    async def save_checkpoint(self, block_number: int) -> None:
        await self.db.execute(
            "INSERT INTO checkpoint (id, block_number, updated_at) VALUES (1, ?, ?)"
            " ON CONFLICT(id) DO UPDATE SET block_number=excluded.block_number,"
            " updated_at=excluded.updated_at",
            (block_number, _now()),
        )
        await self.db.commit()

    # ── Events ─────────────────────────────────────────────

    async def save_event(self, event: VaultEvent) -> None:
        await self.db.execute(
            "INSERT OR IGNORE INTO events"
            " (tx_hash, log_index, kind, block_number, sender, receiver, owner,"
            "  assets, shares, block_timestamp, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                event.transaction_hash, event.log_index, event.kind.value,
                event.block_number, event.sender, event.receiver, event.owner,
                str(event.assets), str(event.shares), event.timestamp, _now(),
            ),
        )
        await self.db.commit()

    async def get_event(self, transaction_hash: str, log_index: int) -> VaultEvent | None:
        async with self.db.execute(
            "SELECT * FROM events WHERE tx_hash=? AND log_index=?",
            (transaction_hash, log_index),
        ) as cur:
            row = await cur.fetchone()
            return _row_to_event(row) if row else None

    async def get_events(self, limit: int | None = None) -> list[VaultEvent]:
        query = "SELECT * FROM events ORDER BY block_number, log_index"
        params: tuple = ()
        if limit is not None:
            # most recent `limit` events, still returned in chain order
            query = (
                "SELECT * FROM (SELECT * FROM events ORDER BY block_number DESC,"
                " log_index DESC LIMIT ?) ORDER BY block_number, log_index"
            )
            params = (limit,)
        async with self.db.execute(query, params) as cur:
            return [_row_to_event(row) async for row in cur]

    async def count_events(self) -> int:
        async with self.db.execute("SELECT COUNT(*) AS c FROM events") as cur:
            row = await cur.fetchone()
            return row["c"] if row else 0

    # ── Snapshots ──────────────────────────────────────────

    async def save_state(self, state: VaultStateSnapshot) -> None:
        await self.db.execute(
            "INSERT INTO states"
            " (block_number, block_timestamp, total_assets, total_supply, rate,"
            "  asset_address, atoken_address, reward_tokens, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
            " ON CONFLICT(block_number) DO UPDATE SET"
            " block_timestamp=excluded.block_timestamp,"
            " total_assets=excluded.total_assets, total_supply=excluded.total_supply,"
            " rate=excluded.rate, asset_address=excluded.asset_address,"
            " atoken_address=excluded.atoken_address,"
            " reward_tokens=excluded.reward_tokens, updated_at=excluded.updated_at",
            (
                state.block_number, state.timestamp,
                str(state.total_assets), str(state.total_supply),
                str(state.rate) if state.rate is not None else None,
                state.asset_address, state.atoken_address,
                json.dumps(list(state.reward_tokens)), _now(),
            ),
        )
        await self.db.commit()

    async def get_state(self, block_number: int) -> VaultStateSnapshot | None:
        async with self.db.execute(
            "SELECT * FROM states WHERE block_number=?", (block_number,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_state(row) if row else None

    async def get_latest_state(self) -> VaultStateSnapshot | None:
        async with self.db.execute(
            "SELECT * FROM states ORDER BY block_number DESC LIMIT 1"
        ) as cur:
            row = await cur.fetchone()
            return _row_to_state(row) if row else None

    async def count_states(self) -> int:
        async with self.db.execute("SELECT COUNT(*) AS c FROM states") as cur:
            row = await cur.fetchone()
            return row["c"] if row else 0


# ── Row mappers ────────────────────────────────────────────


def _row_to_event(row: aiosqlite.Row) -> VaultEvent:
    return VaultEvent(
        kind=EventKind(row["kind"]),
        block_number=row["block_number"],
        transaction_hash=row["tx_hash"],
        log_index=row["log_index"],
        sender=row["sender"],
        receiver=row["receiver"],
        owner=row["owner"],
        assets=int(row["assets"]),
        shares=int(row["shares"]),
        timestamp=row["block_timestamp"],
    )


def _row_to_state(row: aiosqlite.Row) -> VaultStateSnapshot:
    return VaultStateSnapshot(
        block_number=row["block_number"],
        timestamp=row["block_timestamp"],
        total_assets=int(row["total_assets"]),
        total_supply=int(row["total_supply"]),
        rate=int(row["rate"]) if row["rate"] is not None else None,
        asset_address=row["asset_address"],
        atoken_address=row["atoken_address"],
        reward_tokens=tuple(json.loads(row["reward_tokens"])),
    )
