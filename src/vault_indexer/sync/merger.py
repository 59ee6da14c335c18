"""Stream merger - fans the block and log feeds into one ordered work sequence."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from vault_indexer.errors import FeedClosedError
from vault_indexer.models.chain import BlockHeader, RawLog
from vault_indexer.models.work import NewBlock, NewLog, WorkItem

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class _EndOfStream:
    source: str
    cause: BaseException | None = None
    shutdown: bool = False


class StreamMerger:
    """Merges two independently arriving feeds into one WorkItem sequence.

    Each feed is drained by its own pump task into a shared FIFO queue, so
    per-feed arrival order is kept and across feeds the first item observed
    is the first delivered. Nothing is reordered.

    When either feed ends or fails the whole merged stream ends: items already
    queued are still delivered, then iteration raises FeedClosedError. An
    explicit close() ends iteration with StopAsyncIteration instead.
    """

    def __init__(
        self,
        blocks: AsyncIterator[BlockHeader],
        logs: AsyncIterator[RawLog],
        maxsize: int = 1_000,
    ) -> None:
        self._sources: dict[str, tuple[AsyncIterator, Callable[..., WorkItem]]] = {
            "blocks": (blocks, NewBlock),
            "logs": (logs, NewLog),
        }
        # bounded: a full queue blocks the pump instead of dropping
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._pumps: list[asyncio.Task] = []
        self._end: _EndOfStream | None = None

    @property
    def closed(self) -> bool:
        return self._end is not None

    def start(self) -> None:
        if self._pumps:
            return
        for name, (source, wrap) in self._sources.items():
            self._pumps.append(
                asyncio.create_task(self._pump(name, source, wrap), name=f"merge-{name}")
            )

    async def _pump(self, name: str, source: AsyncIterator, wrap: Callable[..., WorkItem]) -> None:
        try:
            async for item in source:
                await self._queue.put(wrap(item))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.warning("%s feed failed: %s", name, exc)
            await self._queue.put(_EndOfStream(name, exc))
            return
        log.info("%s feed closed", name)
        await self._queue.put(_EndOfStream(name))

    async def _stop_pumps(self) -> None:
        current = asyncio.current_task()
        for task in self._pumps:
            if task is not current:
                task.cancel()
        for task in self._pumps:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                log.debug("Pump exited with %s", exc)

    async def close(self) -> None:
        """Stop accepting items. Pending iteration ends with StopAsyncIteration."""
        if self._end is not None and self._end.shutdown:
            return
        self._end = _EndOfStream("merger", shutdown=True)
        await self._stop_pumps()
        dropped = self._queue.qsize()
        if dropped:
            log.info("Merger closed with %d undelivered items", dropped)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(self._end)

    def __aiter__(self) -> StreamMerger:
        return self

    async def __anext__(self) -> WorkItem:
        if self._end is not None:
            return self._drain_after_end()

        self.start()
        item = await self._queue.get()
        if isinstance(item, _EndOfStream):
            self._end = item
            await self._stop_pumps()
            return self._drain_after_end()
        return item

    def _drain_after_end(self) -> WorkItem:
        assert self._end is not None
        while not self._end.shutdown and not self._queue.empty():
            item = self._queue.get_nowait()
            if not isinstance(item, _EndOfStream):
                return item
        if self._end.shutdown:
            raise StopAsyncIteration
        raise FeedClosedError(self._end.source, self._end.cause)
