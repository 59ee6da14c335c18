"""Shared fixtures for vault_indexer tests."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from vault_indexer.models.config import ChainConfig, IndexerConfig, StorageBackend, StorageConfig
from vault_indexer.storage.sqlite import SQLiteVaultStore
from vault_indexer.sync.engine import SyncEngine

from tests.factories import VAULT
from tests.mocks import FlakyStore, MockChainClient


def make_test_config(**overrides) -> IndexerConfig:
    """Build an IndexerConfig suitable for testing (no real sleeps)."""
    defaults = dict(
        read_on_block=True,
        persist_retries=3,
        persist_backoff=0.0,
        reconnect_attempts=3,
        reconnect_backoff=0.01,
        max_backoff=0.01,
        chain=ChainConfig(
            wss_url="ws://127.0.0.1:8546",
            vault_address=VAULT,
            log_chunk_size=10,
        ),
        storage=StorageConfig(backend=StorageBackend.MEMORY, db_path=":memory:"),
    )
    defaults.update(overrides)
    return IndexerConfig(**defaults)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() holds, failing the test on timeout."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def test_config():
    return make_test_config()


@pytest.fixture
async def sqlite_store():
    """Initialized in-memory SQLiteVaultStore."""
    s = SQLiteVaultStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def journal():
    return []


@pytest.fixture
def client(journal):
    return MockChainClient(head=100, journal=journal)


@pytest.fixture
def store(journal):
    return FlakyStore(journal=journal)


@pytest.fixture
def engine(client, store, test_config):
    """SyncEngine wired to the mock client and an in-memory store."""
    return SyncEngine(client=client, store=store, vault_address=VAULT, cfg=test_config)
