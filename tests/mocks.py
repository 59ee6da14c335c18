"""Mock implementations of the chain client and store."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable

from vault_indexer.models.chain import BlockHeader, LogFilter, RawLog
from vault_indexer.storage.memory import MemoryVaultStore

from tests.factories import block_ts

CLOSE = object()


class QueueFeed:
    """Async iterator over a queue. Push CLOSE to end it, an exception to fail it.

    With live_only, items pushed while nobody is subscribed are dropped into
    `dropped`, the way a node's eth_subscribe never replays what it already sent.
    """

    def __init__(self, live_only: bool = False) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.live_only = live_only
        self.subscribed = False
        self.dropped: list[Any] = []

    def push(self, *items: Any) -> None:
        for item in items:
            if self.live_only and not self.subscribed:
                self.dropped.append(item)
                continue
            self.queue.put_nowait(item)

    def close(self) -> None:
        self.queue.put_nowait(CLOSE)

    def __aiter__(self) -> QueueFeed:
        return self

    async def __anext__(self) -> Any:
        item = await self.queue.get()
        if item is CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class MockChainClient:
    """Implements ChainClient protocol against in-memory feeds and values."""

    def __init__(self, head: int = 100, journal: list[str] | None = None) -> None:
        self.head = head
        self.values: dict[str, Any] = {
            "totalAssets": 1_000,
            "totalSupply": 950,
            "rate": 10**27,
            "asset": "0x" + "dd" * 20,
            "aToken": "0x" + "ee" * 20,
            "rewardTokens": ["0x" + "ff" * 20],
        }
        self.fail_methods: set[str] = set()
        self.historical_logs: list[RawLog] = []
        self.calls: list[tuple[str, Any]] = []
        self.log_filters: list[LogFilter] = []
        self.log_ranges: list[tuple[int | None, int]] = []
        self.on_get_logs: Callable[[], None] | None = None  # runs once, on the next get_logs
        self.journal = journal if journal is not None else []
        self.connects = 0
        self.closes = 0
        self.fail_connect = False
        self.subscribers = 0
        self.blocks = QueueFeed(live_only=True)
        self.logs = QueueFeed(live_only=True)

    async def connect(self) -> None:
        if self.fail_connect:
            raise ConnectionError("mock connect failure")
        self.connects += 1
        self.blocks = QueueFeed(live_only=True)
        self.logs = QueueFeed(live_only=True)

    async def close(self) -> None:
        self.closes += 1

    def push_block(self, number: int) -> None:
        self.head = max(self.head, number)
        self.blocks.push(BlockHeader(number=number, timestamp=block_ts(number)))

    def push_log(self, raw: RawLog) -> None:
        self.logs.push(raw)

    def mine(self, number: int, *logs: RawLog) -> None:
        """Produce block `number` with `logs`: visible to get_logs, and to subscribers if any."""
        self.historical_logs.extend(logs)
        for raw in logs:
            self.logs.push(raw)
        self.push_block(number)

    def drop_connection(self) -> None:
        self.blocks.push(ConnectionError("mock socket closed"))

    async def _feed(self, feed: QueueFeed) -> AsyncIterator[Any]:
        self.subscribers += 1
        feed.subscribed = True
        try:
            async for item in feed:
                yield item
        finally:
            feed.subscribed = False
            self.subscribers -= 1

    def subscribe_new_blocks(self) -> AsyncIterator[BlockHeader]:
        return self._feed(self.blocks)

    def subscribe_logs(self, log_filter: LogFilter) -> AsyncIterator[RawLog]:
        self.log_filters.append(log_filter)
        return self._feed(self.logs)

    async def call(
        self,
        contract_address: str,
        method_name: str,
        args: tuple[Any, ...] = (),
        at_block: Any = "latest",
    ) -> Any:
        self.calls.append((method_name, at_block))
        self.journal.append(f"call:{method_name}:{at_block}")
        if method_name in self.fail_methods:
            raise RuntimeError(f"mock {method_name} reverted")
        value = self.values[method_name]
        return value(at_block) if callable(value) else value

    async def get_block(self, ref: Any) -> BlockHeader:
        number = self.head if ref == "latest" else int(ref)
        return BlockHeader(number=number, timestamp=block_ts(number))

    async def block_number(self) -> int:
        return self.head

    async def get_logs(self, log_filter: LogFilter, to_block: int) -> list[RawLog]:
        self.log_ranges.append((log_filter.from_block, to_block))
        hook, self.on_get_logs = self.on_get_logs, None
        if hook is not None:
            hook()
        start = log_filter.from_block or 0
        return [
            raw for raw in self.historical_logs
            if start <= raw.block_number <= to_block
        ]


class FlakyStore(MemoryVaultStore):
    """MemoryVaultStore whose writes fail a set number of times first."""

    def __init__(
        self,
        fail_events: int = 0,
        fail_states: int = 0,
        journal: list[str] | None = None,
        write_delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.fail_events = fail_events
        self.fail_states = fail_states
        self.journal = journal if journal is not None else []
        self.write_delay = write_delay
        self.checkpoint_history: list[int] = []

    async def save_event(self, event) -> None:
        if self.fail_events > 0:
            self.fail_events -= 1
            raise OSError("mock disk full")
        await asyncio.sleep(self.write_delay)
        self.journal.append(f"save_event:{event.block_number}")
        await super().save_event(event)

    async def save_state(self, state) -> None:
        if self.fail_states > 0:
            self.fail_states -= 1
            raise OSError("mock disk full")
        await asyncio.sleep(self.write_delay)
        self.journal.append(f"save_state:{state.block_number}")
        await super().save_state(state)

    async def save_checkpoint(self, block_number: int) -> None:
        self.checkpoint_history.append(block_number)
        await super().save_checkpoint(block_number)
