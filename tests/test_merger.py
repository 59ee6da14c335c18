"""Stream merger: fan-in ordering, end-of-stream and shutdown."""

from __future__ import annotations

import asyncio

import pytest

from vault_indexer.errors import FeedClosedError
from vault_indexer.models.work import NewBlock, NewLog
from vault_indexer.sync.merger import StreamMerger

from tests.factories import make_deposit_log, make_header
from tests.mocks import QueueFeed


async def _take(merger: StreamMerger, n: int) -> list:
    return [await asyncio.wait_for(merger.__anext__(), 1.0) for _ in range(n)]


async def test_per_source_order_is_preserved():
    blocks, logs = QueueFeed(), QueueFeed()
    merger = StreamMerger(blocks, logs)
    blocks.push(make_header(101), make_header(102), make_header(103))
    logs.push(make_deposit_log(log_index=0), make_deposit_log(log_index=1))

    items = await _take(merger, 5)
    await merger.close()

    block_numbers = [i.block_number for i in items if isinstance(i, NewBlock)]
    log_indexes = [i.log.log_index for i in items if isinstance(i, NewLog)]
    assert block_numbers == [101, 102, 103]
    assert log_indexes == [0, 1]


async def test_first_observed_first_delivered():
    blocks, logs = QueueFeed(), QueueFeed()
    merger = StreamMerger(blocks, logs)
    merger.start()

    logs.push(make_deposit_log(block_number=101))
    first = await _take(merger, 1)
    blocks.push(make_header(101))
    second = await _take(merger, 1)
    await merger.close()

    assert isinstance(first[0], NewLog)
    assert isinstance(second[0], NewBlock)


async def test_no_reordering_of_out_of_chain_order_blocks():
    blocks, logs = QueueFeed(), QueueFeed()
    merger = StreamMerger(blocks, logs)
    blocks.push(make_header(105), make_header(104), make_header(105))

    items = await _take(merger, 3)
    await merger.close()

    assert [i.block_number for i in items] == [105, 104, 105]


async def test_closed_source_ends_the_whole_stream():
    blocks, logs = QueueFeed(), QueueFeed()
    merger = StreamMerger(blocks, logs)
    blocks.push(make_header(101))
    logs.close()

    delivered = []
    with pytest.raises(FeedClosedError) as excinfo:
        async for item in merger:
            delivered.append(item)

    assert excinfo.value.source == "logs"
    assert excinfo.value.cause is None
    # the block queued before the close was still delivered
    assert [i.block_number for i in delivered] == [101]
    assert merger.closed


async def test_failing_source_surfaces_cause():
    blocks, logs = QueueFeed(), QueueFeed()
    merger = StreamMerger(blocks, logs)
    blocks.push(ConnectionError("socket reset"))

    with pytest.raises(FeedClosedError) as excinfo:
        async for _ in merger:
            pass

    assert excinfo.value.source == "blocks"
    assert isinstance(excinfo.value.cause, ConnectionError)


async def test_close_ends_iteration_cleanly():
    blocks, logs = QueueFeed(), QueueFeed()
    merger = StreamMerger(blocks, logs)
    seen = []

    async def consume():
        async for item in merger:
            seen.append(item)

    task = asyncio.create_task(consume())
    blocks.push(make_header(101))
    await asyncio.sleep(0.05)
    await merger.close()
    await asyncio.wait_for(task, 1.0)

    assert [i.block_number for i in seen] == [101]

    # items arriving after close are not accepted
    blocks.push(make_header(102))
    with pytest.raises(StopAsyncIteration):
        await merger.__anext__()


async def test_bounded_queue_applies_backpressure_without_dropping():
    blocks, logs = QueueFeed(), QueueFeed()
    merger = StreamMerger(blocks, logs, maxsize=2)
    blocks.push(*(make_header(n) for n in range(100, 110)))

    items = await _take(merger, 10)
    await merger.close()

    assert [i.block_number for i in items] == list(range(100, 110))
