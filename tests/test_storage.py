"""VaultStore backends: idempotence, ordering, uint256 fidelity."""

from __future__ import annotations

import dataclasses

import pytest

from vault_indexer.models.config import StorageBackend, StorageConfig
from vault_indexer.models.events import EventKind, VaultEvent
from vault_indexer.storage import (
    JsonFileVaultStore,
    MemoryVaultStore,
    SQLiteVaultStore,
    open_store,
)

from tests.factories import ALICE, BOB, CAROL, make_snapshot, tx_hash

UINT256_MAX = 2**256 - 1


def make_event(block_number: int = 101, tx: int = 1, log_index: int = 0, **kw) -> VaultEvent:
    fields = dict(
        kind=EventKind.DEPOSIT,
        block_number=block_number,
        transaction_hash=tx_hash(tx),
        log_index=log_index,
        sender=ALICE,
        receiver=BOB,
        owner=BOB,
        assets=100,
        shares=95,
        timestamp=1_700_001_212,
    )
    fields.update(kw)
    return VaultEvent(**fields)


@pytest.fixture(params=["sqlite", "json", "memory"])
async def vault_store(request, tmp_path):
    if request.param == "sqlite":
        s = SQLiteVaultStore(str(tmp_path / "state.db"))
    elif request.param == "json":
        s = JsonFileVaultStore(str(tmp_path / "data"))
    else:
        s = MemoryVaultStore()
    await s.initialize()
    yield s
    await s.close()


# ── Events ────────────────────────────────────────────────────────


async def test_empty_store(vault_store):
    assert await vault_store.load_checkpoint() is None
    assert await vault_store.get_events() == []
    assert await vault_store.count_events() == 0
    assert await vault_store.get_latest_state() is None


async def test_event_round_trip(vault_store):
    event = make_event(
        kind=EventKind.WITHDRAW, receiver=CAROL, assets=UINT256_MAX, shares=2**255,
    )
    await vault_store.save_event(event)

    got = await vault_store.get_event(event.transaction_hash, event.log_index)
    assert got == event


async def test_saving_same_event_twice_keeps_one(vault_store):
    event = make_event()
    await vault_store.save_event(event)
    # a re-delivered copy never replaces the original
    await vault_store.save_event(dataclasses.replace(event, assets=999))

    assert await vault_store.count_events() == 1
    got = await vault_store.get_event(event.transaction_hash, 0)
    assert got.assets == 100


async def test_same_tx_different_log_index_are_distinct(vault_store):
    await vault_store.save_event(make_event(log_index=0))
    await vault_store.save_event(make_event(log_index=3))

    assert await vault_store.count_events() == 2


async def test_events_listed_in_chain_order(vault_store):
    await vault_store.save_event(make_event(block_number=105, tx=3))
    await vault_store.save_event(make_event(block_number=101, tx=1, log_index=4))
    await vault_store.save_event(make_event(block_number=101, tx=2, log_index=1))

    events = await vault_store.get_events()
    assert [(e.block_number, e.log_index) for e in events] == [(101, 1), (101, 4), (105, 0)]

    recent = await vault_store.get_events(limit=2)
    assert [(e.block_number, e.log_index) for e in recent] == [(101, 4), (105, 0)]


async def test_missing_event_is_none(vault_store):
    assert await vault_store.get_event(tx_hash(42), 0) is None


# ── Snapshots ─────────────────────────────────────────────────────


async def test_state_round_trip_with_extended_fields(vault_store):
    snapshot = dataclasses.replace(
        make_snapshot(200, total_assets=UINT256_MAX, total_supply=2**255),
        rate=10**27,
        asset_address="0x" + "dd" * 20,
        atoken_address="0x" + "ee" * 20,
        reward_tokens=("0x" + "ff" * 20,),
    )
    await vault_store.save_state(snapshot)

    assert await vault_store.get_state(200) == snapshot


async def test_state_for_same_block_is_replaced(vault_store):
    await vault_store.save_state(make_snapshot(100, total_assets=1))
    await vault_store.save_state(make_snapshot(100, total_assets=2))

    assert await vault_store.count_states() == 1
    assert (await vault_store.get_state(100)).total_assets == 2


async def test_latest_state_is_highest_block(vault_store):
    for n in (100, 102, 101):
        await vault_store.save_state(make_snapshot(n))

    assert (await vault_store.get_latest_state()).block_number == 102
    assert await vault_store.get_state(99) is None


# ── Checkpoint ────────────────────────────────────────────────────


async def test_checkpoint_overwrites(vault_store):
    await vault_store.save_checkpoint(100)
    await vault_store.save_checkpoint(105)

    assert await vault_store.load_checkpoint() == 105


async def test_sqlite_data_survives_reopen(tmp_path):
    path = str(tmp_path / "state.db")
    first = SQLiteVaultStore(path)
    await first.initialize()
    await first.save_event(make_event())
    await first.save_state(make_snapshot(101))
    await first.save_checkpoint(101)
    await first.close()

    second = SQLiteVaultStore(path)
    await second.initialize()
    try:
        assert await second.load_checkpoint() == 101
        assert await second.count_events() == 1
        assert (await second.get_latest_state()).block_number == 101
    finally:
        await second.close()


async def test_json_store_writes_one_file_per_record(tmp_path):
    s = JsonFileVaultStore(str(tmp_path))
    await s.initialize()
    await s.save_event(make_event())
    await s.save_state(make_snapshot(101))
    await s.save_checkpoint(101)

    assert len(list((tmp_path / "events").glob("*.json"))) == 1
    assert len(list((tmp_path / "states").glob("*.json"))) == 1
    assert (tmp_path / "checkpoint.json").exists()
    assert not list(tmp_path.rglob("*.tmp"))


@pytest.mark.parametrize(
    "backend, expected",
    [
        (StorageBackend.SQLITE, SQLiteVaultStore),
        (StorageBackend.JSON, JsonFileVaultStore),
        (StorageBackend.MEMORY, MemoryVaultStore),
    ],
)
def test_open_store_selects_backend(tmp_path, backend, expected):
    cfg = StorageConfig(
        backend=backend, db_path=str(tmp_path / "x.db"), data_dir=str(tmp_path / "d"),
    )
    assert isinstance(open_store(cfg), expected)
