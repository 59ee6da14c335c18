"""Indexer daemon - wires the chain client, store and sync engine together."""

from __future__ import annotations

import asyncio
import logging
import signal

from vault_indexer.chain.abi import load_abi, require_functions
from vault_indexer.chain.client import Web3ChainClient
from vault_indexer.chain.reader import StateReader
from vault_indexer.decoding.decoder import EventDecoder
from vault_indexer.errors import StartupError
from vault_indexer.models.config import IndexerConfig
from vault_indexer.storage import open_store
from vault_indexer.sync.engine import SyncEngine

log = logging.getLogger(__name__)


class IndexerDaemon:
    """Long-running vault indexer.

    Owns the connection and the store; the sync engine only borrows them.
    """

    def __init__(self, cfg: IndexerConfig) -> None:
        self._cfg = cfg
        abi = load_abi(cfg.chain.abi_path)

        # Core components
        self.client = Web3ChainClient(cfg.chain.wss_url, abi)
        self.store = open_store(cfg.storage)
        self.reader = StateReader(
            self.client, cfg.chain.vault_address, extended=cfg.chain.extended_state,
        )
        require_functions(abi, self.reader.methods)
        self.engine = SyncEngine(
            client=self.client,
            store=self.store,
            vault_address=cfg.chain.vault_address,
            cfg=cfg,
            reader=self.reader,
            decoder=EventDecoder(),
        )

    async def start(self) -> None:
        """Connect, then run the sync engine until stopped or a fatal error."""
        log.info("Starting vault indexer")
        log.info("  Vault:   %s", self._cfg.chain.vault_address)
        log.info("  RPC:     %s", self._cfg.chain.wss_url)
        log.info("  Storage: %s", self._cfg.storage.backend.value)
        log.info("  Extended state: %s", self._cfg.chain.extended_state)

        await self.store.initialize()
        try:
            try:
                await self.client.connect()
            except Exception as exc:
                raise StartupError(f"Could not connect to {self._cfg.chain.wss_url}: {exc}") from exc
            await self.engine.run()
        finally:
            await self.client.close()
            await self.store.close()
            log.info("Indexer shut down")

    async def stop(self) -> None:
        """Signal the indexer to stop gracefully."""
        await self.engine.stop()


async def run_daemon(cfg: IndexerConfig) -> None:
    """Entry point for running the indexer."""
    daemon = IndexerDaemon(cfg)

    loop = asyncio.get_running_loop()

    def _signal_handler():
        asyncio.ensure_future(daemon.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await daemon.start()
