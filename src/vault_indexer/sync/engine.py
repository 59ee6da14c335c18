"""Sync engine - drives decoding, state reads and persistence per work item."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from vault_indexer.chain.reader import StateReader
from vault_indexer.decoding.decoder import EventDecoder
from vault_indexer.errors import (
    ChainConnectionError,
    DecodeError,
    FeedClosedError,
    PersistenceError,
    StartupError,
    StateReadError,
)
from vault_indexer.interfaces.chain import ChainClient
from vault_indexer.interfaces.store import VaultStore
from vault_indexer.models.chain import BlockHeader, LogFilter, RawLog
from vault_indexer.models.config import IndexerConfig
from vault_indexer.models.snapshots import VaultStateSnapshot
from vault_indexer.models.work import NewBlock, NewLog, WorkItem
from vault_indexer.sync.merger import StreamMerger

log = logging.getLogger(__name__)


class SyncState(str, Enum):
    STARTING = "starting"
    CATCHING_UP = "catching_up"
    LIVE = "live"
    RECONNECTING = "reconnecting"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class SyncStats:
    events_saved: int = 0
    snapshots_saved: int = 0
    duplicate_blocks: int = 0
    ignored_logs: int = 0
    removed_logs: int = 0
    backfills: int = 0
    decode_errors: int = 0
    read_failures: int = 0
    reconnects: int = 0


class SyncEngine:
    """Turns the merged block/log feed into persisted events and snapshots.

    Lifecycle: STARTING -> CATCHING_UP -> LIVE -> DRAINING -> STOPPED, with
    RECONNECTING entered from LIVE whenever a feed ends or errors.

    Work items are processed one at a time in delivery order; an item's
    writes complete before the next item is looked at. The cursor is the
    highest block known to be fully processed and only ever moves forward.
    Store writes are keyed, so the bounded re-delivery that follows a
    reconnect or restart is harmless.

    Subscriptions deliver nothing from before they were opened, so a live
    item that lands more than one block past the cursor (and the first block
    after every (re)subscription) first pulls the skipped range with
    get_logs. The cursor never passes a block whose logs were not fetched.
    """

    def __init__(
        self,
        client: ChainClient,
        store: VaultStore,
        vault_address: str,
        cfg: IndexerConfig | None = None,
        reader: StateReader | None = None,
        decoder: EventDecoder | None = None,
    ) -> None:
        self._cfg = cfg or IndexerConfig()
        self._client = client
        self._store = store
        self._vault = vault_address
        self._reader = reader or StateReader(
            client, vault_address, extended=self._cfg.chain.extended_state,
        )
        self._decoder = decoder or EventDecoder()

        self._state = SyncState.STARTING
        self._cursor: int | None = None
        self._snapshot_block: int | None = None
        self._resume_from: int | None = None
        self._head: VaultStateSnapshot | None = None
        self._timestamps: OrderedDict[int, int] = OrderedDict()
        self._merger: StreamMerger | None = None
        self._fresh_feed = False
        self._stop_event = asyncio.Event()
        self.stats = SyncStats()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def cursor(self) -> int | None:
        return self._cursor

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def _set_state(self, state: SyncState) -> None:
        if state != self._state:
            log.info("Sync state: %s -> %s", self._state.value, state.value)
            self._state = state

    # ── Lifecycle ──────────────────────────────────────────

    async def run(self) -> None:
        """Start, catch up, then follow the chain until stopped.

        Returns after stop(). Raises on fatal conditions: StartupError,
        PersistenceError, ChainConnectionError.
        """
        try:
            await self.start()
            if not self.stopping:
                await self.catch_up()
            while not self.stopping:
                self._set_state(SyncState.LIVE)
                try:
                    await self._follow()
                except FeedClosedError as exc:
                    if self.stopping:
                        break
                    await self._reconnect(exc)
        finally:
            if self._merger is not None:
                await self._merger.close()
                self._merger = None
            self._set_state(SyncState.STOPPED)
            log.info(
                "Sync stopped at block %s (%d events, %d snapshots)",
                self._cursor, self.stats.events_saved, self.stats.snapshots_saved,
            )

    async def start(self) -> None:
        """STARTING: resolve the head, restore the cursor, verify the vault is readable."""
        self._set_state(SyncState.STARTING)
        try:
            head = await self._client.block_number()
            self._head = await self._reader.read(head)
        except StateReadError as exc:
            raise StartupError(f"Initial state read failed: {exc}") from exc
        except Exception as exc:
            raise StartupError(f"Could not reach chain head: {exc}") from exc
        self._remember_timestamp(self._head.block_number, self._head.timestamp)

        checkpoint = await self._persist("load_checkpoint", self._store.load_checkpoint)
        if checkpoint is None:
            log.info("No checkpoint, starting at head block %d", head)
            await self._commit_state(self._head)
        else:
            if checkpoint > head:
                log.warning("Checkpoint %d is ahead of chain head %d", checkpoint, head)
            self._cursor = checkpoint
            self._snapshot_block = checkpoint
            log.info("Restored checkpoint: block %d (head %d)", checkpoint, head)

    async def catch_up(self) -> None:
        """CATCHING_UP: replay vault logs from the cursor (inclusive) to the head.

        The cursor block itself is replayed because its logs may not all have
        been seen before the checkpoint was written.
        """
        self._set_state(SyncState.CATCHING_UP)
        start = self._resume_from if self._resume_from is not None else self._cursor

        head = await self._client.block_number()
        if start is None:
            start = head
        log.info("Catching up blocks %d..%d", start, head)
        await self._replay(start, head)
        if self.stopping:
            return

        if self._cursor is None or head > self._cursor:
            if self._head is not None and self._head.block_number == head:
                await self._commit_state(self._head)
            else:
                await self._advance(await self._client.get_block(head))
        self._head = None
        self._resume_from = None

    async def stop(self) -> None:
        """Stop accepting work. The item being processed is allowed to finish."""
        if self.stopping:
            return
        log.info("Stop requested")
        self._set_state(SyncState.DRAINING)
        self._stop_event.set()
        if self._merger is not None:
            await self._merger.close()

    # ── Live / reconnect ───────────────────────────────────

    def _log_filter(self, from_block: int | None) -> LogFilter:
        return LogFilter(
            address=self._vault,
            from_block=from_block,
            topics=self._decoder.registry.topics(),
        )

    async def _replay(self, start: int, end: int) -> None:
        """Fetch and apply vault logs for blocks start..end in log_chunk_size ranges."""
        chunk = max(1, self._cfg.chain.log_chunk_size)
        for from_block in range(start, end + 1, chunk):
            if self.stopping:
                return
            to_block = min(end, from_block + chunk - 1)
            logs = await self._client.get_logs(self._log_filter(from_block), to_block)
            for raw in logs:
                await self._apply_log(raw)

    async def _backfill(self, start: int, end: int) -> None:
        """Recover logs for blocks the live feed skipped over."""
        if end < start:
            return
        self.stats.backfills += 1
        log.info("Backfilling blocks %d..%d", start, end)
        await self._replay(start, end)

    async def _follow(self) -> None:
        self._merger = StreamMerger(
            self._client.subscribe_new_blocks(),
            self._client.subscribe_logs(self._log_filter(self._cursor)),
        )
        # subscriptions carry no history: anything mined between the last
        # get_logs and the subscription going live is fetched on the first block
        self._fresh_feed = True
        if self.stopping:
            await self._merger.close()

        async for item in self._merger:
            try:
                await self.process(item)
            except PersistenceError:
                raise
            except Exception as exc:
                # Transient I/O while handling the item: reconnect and replay from it
                block = item.block_number
                if self._cursor is not None:
                    block = min(block, self._cursor)
                if self._resume_from is None or block < self._resume_from:
                    self._resume_from = block
                await self._merger.close()
                raise FeedClosedError("pipeline", exc) from exc

    async def _reconnect(self, cause: Exception) -> None:
        """RECONNECTING: re-establish the connection and backfill the gap."""
        self._set_state(SyncState.RECONNECTING)
        log.warning("Feed lost (%s), reconnecting from block %s", cause, self._cursor)
        delay = self._cfg.reconnect_backoff
        attempts = self._cfg.reconnect_attempts

        for attempt in range(1, attempts + 1):
            if await self._sleep(delay):
                return
            try:
                await self._client.close()
                await self._client.connect()
                await self.catch_up()
            except PersistenceError:
                raise
            except Exception as exc:
                log.warning("Reconnect attempt %d/%d failed: %s", attempt, attempts, exc)
                delay = min(delay * 2, self._cfg.max_backoff)
                continue
            self.stats.reconnects += 1
            log.info("Reconnected after %d attempt(s)", attempt)
            return

        raise ChainConnectionError(f"Could not reconnect after {attempts} attempts")

    async def _sleep(self, delay: float) -> bool:
        """Sleep unless stopped first. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    # ── Work items ─────────────────────────────────────────

    async def process(self, item: WorkItem) -> None:
        if isinstance(item, NewBlock):
            await self.handle_block(item.header)
        elif isinstance(item, NewLog):
            await self.handle_log(item.log)

    async def handle_block(self, header: BlockHeader) -> None:
        self._remember_timestamp(header.number, header.timestamp)
        if self._cursor is not None and header.number <= self._cursor:
            self.stats.duplicate_blocks += 1
            log.debug("Discarding block %d (cursor %d)", header.number, self._cursor)
            return

        if self._cursor is not None:
            if self._fresh_feed:
                # the log subscription may have come up after this block's logs
                await self._backfill(self._cursor + 1, header.number)
            elif header.number > self._cursor + 1:
                await self._backfill(self._cursor + 1, header.number - 1)
        self._fresh_feed = False
        await self._advance(header)

    async def _advance(self, header: BlockHeader) -> None:
        if not self._cfg.read_on_block:
            await self._commit_cursor(header.number)
            return

        snapshot = await self._read_state(header.number)
        if snapshot is not None:
            await self._commit_state(snapshot)

    async def handle_log(self, raw: RawLog) -> None:
        if (
            not raw.removed
            and self._cursor is not None
            and raw.block_number > self._cursor + 1
        ):
            await self._backfill(self._cursor + 1, raw.block_number - 1)
        await self._apply_log(raw)

    async def _apply_log(self, raw: RawLog) -> None:
        if raw.removed:
            self.stats.removed_logs += 1
            log.warning(
                "Skipping removed log %s:%d at block %d (reorg)",
                raw.transaction_hash, raw.log_index, raw.block_number,
            )
            return

        try:
            event = self._decoder.decode(raw)
        except DecodeError as exc:
            self.stats.decode_errors += 1
            log.warning("Skipping undecodable log: %s", exc)
            return
        if event is None:
            self.stats.ignored_logs += 1
            return

        timestamp = await self._block_timestamp(raw.block_number)
        event = event.with_timestamp(timestamp)
        await self._persist("save_event", self._store.save_event, event)
        self.stats.events_saved += 1
        log.info(
            "%s at block %d: sender=%s assets=%d shares=%d",
            event.kind.value, event.block_number, event.sender, event.assets, event.shares,
        )

        if self._snapshot_block is None or raw.block_number > self._snapshot_block:
            snapshot = await self._read_state(raw.block_number)
            if snapshot is not None:
                await self._commit_state(snapshot)

    # ── Helpers ────────────────────────────────────────────

    async def _read_state(self, block_number: int) -> VaultStateSnapshot | None:
        try:
            snapshot = await self._reader.read(block_number)
        except StateReadError as exc:
            self.stats.read_failures += 1
            log.warning("State read discarded: %s", exc)
            return None
        self._remember_timestamp(snapshot.block_number, snapshot.timestamp)
        return snapshot

    async def _commit_state(self, snapshot: VaultStateSnapshot) -> None:
        await self._persist("save_state", self._store.save_state, snapshot)
        self.stats.snapshots_saved += 1
        if self._snapshot_block is None or snapshot.block_number > self._snapshot_block:
            self._snapshot_block = snapshot.block_number
        log.info(
            "Snapshot at block %d: total_assets=%d total_supply=%d",
            snapshot.block_number, snapshot.total_assets, snapshot.total_supply,
        )
        await self._commit_cursor(snapshot.block_number)

    async def _commit_cursor(self, block_number: int) -> None:
        if self._cursor is not None and block_number <= self._cursor:
            return
        await self._persist("save_checkpoint", self._store.save_checkpoint, block_number)
        self._cursor = block_number

    async def _block_timestamp(self, block_number: int) -> int:
        cached = self._timestamps.get(block_number)
        if cached is not None:
            self._timestamps.move_to_end(block_number)
            return cached
        header = await self._client.get_block(block_number)
        self._remember_timestamp(header.number, header.timestamp)
        return header.timestamp

    def _remember_timestamp(self, block_number: int, timestamp: int) -> None:
        self._timestamps[block_number] = timestamp
        self._timestamps.move_to_end(block_number)
        while len(self._timestamps) > self._cfg.timestamp_cache_size:
            self._timestamps.popitem(last=False)

    async def _persist(self, what: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run a store operation, retrying with exponential backoff.

        Exhausting the retries raises PersistenceError; the process is
        expected to exit and resume from the last checkpoint.
        """
        retries = max(1, self._cfg.persist_retries)
        delay = self._cfg.persist_backoff
        for attempt in range(1, retries + 1):
            try:
                return await fn(*args)
            except Exception as exc:
                if attempt == retries:
                    log.error("%s failed after %d attempts: %s", what, retries, exc)
                    raise PersistenceError(f"{what} failed after {retries} attempts: {exc}") from exc
                log.warning("%s failed (attempt %d/%d): %s", what, attempt, retries, exc)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._cfg.max_backoff)
