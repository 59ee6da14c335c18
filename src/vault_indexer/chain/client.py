"""web3.py websocket implementation of the ChainClient protocol."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from hexbytes import HexBytes
from web3 import AsyncWeb3, WebSocketProvider

from vault_indexer.interfaces.chain import BlockRef
from vault_indexer.models.chain import BlockHeader, LogFilter, RawLog

log = logging.getLogger(__name__)

_CLOSED = object()


def _as_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _as_hex(value: Any) -> str:
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return "0x" + bytes(value).hex()


def to_raw_log(entry: Any) -> RawLog:
    """Normalize a log from a subscription or eth_getLogs into a RawLog.

    Subscriptions may hand back hex strings where eth_getLogs hands back
    HexBytes and ints; both are accepted.
    """
    return RawLog(
        topics=tuple(bytes(HexBytes(t)) for t in entry.get("topics", [])),
        data=bytes(HexBytes(entry.get("data", b""))),
        block_number=_as_int(entry["blockNumber"]),
        transaction_hash=_as_hex(entry["transactionHash"]),
        log_index=_as_int(entry["logIndex"]),
        address=str(entry.get("address", "")),
        removed=bool(entry.get("removed", False)),
    )


def to_block_header(block: Any) -> BlockHeader:
    return BlockHeader(
        number=_as_int(block["number"]),
        timestamp=_as_int(block["timestamp"]),
    )


class Web3ChainClient:
    """ChainClient over a single websocket connection.

    web3 multiplexes every eth_subscribe onto one socket; a dispatcher task
    routes each notification to the queue of its subscription so the block
    and log feeds can be consumed independently.
    """

    def __init__(self, wss_url: str, abi: list[dict[str, Any]]) -> None:
        self._wss_url = wss_url
        self._abi = abi
        self._w3: AsyncWeb3 | None = None
        self._contracts: dict[str, Any] = {}
        self._queues: dict[str, asyncio.Queue] = {}
        self._dispatcher: asyncio.Task | None = None

    @property
    def w3(self) -> AsyncWeb3:
        assert self._w3 is not None, "Client not connected. Call connect() first."
        return self._w3

    async def connect(self) -> None:
        self._w3 = AsyncWeb3(WebSocketProvider(self._wss_url))
        await self._w3.provider.connect()
        self._contracts.clear()
        self._queues.clear()
        log.info("Connected to %s", self._wss_url)

    async def close(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None
        if self._w3 is not None:
            try:
                await self._w3.provider.disconnect()
            except Exception as exc:
                log.debug("Error while disconnecting: %s", exc)
            self._w3 = None

    # ── Subscriptions ──────────────────────────────────────

    async def _dispatch(self) -> None:
        try:
            async for response in self.w3.socket.process_subscriptions():
                sub_id = response["subscription"]
                queue = self._queues.setdefault(sub_id, asyncio.Queue())
                queue.put_nowait(response["result"])
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.warning("Subscription socket failed: %s", exc)
            for queue in self._queues.values():
                queue.put_nowait(exc)
            return
        for queue in self._queues.values():
            queue.put_nowait(_CLOSED)

    async def _subscribe(self, *params: Any) -> AsyncIterator[Any]:
        sub_id = await self.w3.eth.subscribe(*params)
        queue = self._queues.setdefault(sub_id, asyncio.Queue())
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch())
        log.info("Subscribed to %s (%s)", params[0], sub_id)

        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self._queues.pop(sub_id, None)

    async def subscribe_new_blocks(self) -> AsyncIterator[BlockHeader]:
        async for head in self._subscribe("newHeads"):
            yield to_block_header(head)

    async def subscribe_logs(self, log_filter: LogFilter) -> AsyncIterator[RawLog]:
        params: dict[str, Any] = {"address": log_filter.address}
        if log_filter.topics:
            params["topics"] = [log_filter.topics]
        # eth_subscribe ignores fromBlock; history is fetched with get_logs()
        async for entry in self._subscribe("logs", params):
            yield to_raw_log(entry)

    # ── Reads ──────────────────────────────────────────────

    def _contract(self, address: str) -> Any:
        checksum = AsyncWeb3.to_checksum_address(address)
        if checksum not in self._contracts:
            self._contracts[checksum] = self.w3.eth.contract(address=checksum, abi=self._abi)
        return self._contracts[checksum]

    async def call(
        self,
        contract_address: str,
        method_name: str,
        args: tuple[Any, ...] = (),
        at_block: BlockRef = "latest",
    ) -> Any:
        fn = self._contract(contract_address).functions[method_name](*args)
        return await fn.call(block_identifier=at_block)

    async def get_block(self, ref: BlockRef) -> BlockHeader:
        block = await self.w3.eth.get_block(ref)
        return to_block_header(block)

    async def block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def get_logs(self, log_filter: LogFilter, to_block: int) -> list[RawLog]:
        params: dict[str, Any] = {
            "address": AsyncWeb3.to_checksum_address(log_filter.address),
            "fromBlock": log_filter.from_block or 0,
            "toBlock": to_block,
        }
        if log_filter.topics:
            params["topics"] = [log_filter.topics]
        entries = await self.w3.eth.get_logs(params)
        logs = [to_raw_log(e) for e in entries]
        logs.sort(key=lambda raw: (raw.block_number, raw.log_index))
        return logs
