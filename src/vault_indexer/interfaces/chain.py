"""ChainClient protocol - subscriptions and read-only calls against an EVM node."""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol, Union

from vault_indexer.models.chain import BlockHeader, LogFilter, RawLog

BlockRef = Union[int, str]  # block number or a tag such as "latest"


class ChainClient(Protocol):
    """Connection to the chain the vault lives on.

    The handle is shared read-only between the state reader and both
    subscriptions.
    """

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def subscribe_new_blocks(self) -> AsyncIterator[BlockHeader]:
        """Stream of new chain heads. Ends when the connection drops."""
        ...

    def subscribe_logs(self, log_filter: LogFilter) -> AsyncIterator[RawLog]:
        """Stream of logs matching the filter. Ends when the connection drops."""
        ...

    async def call(
        self,
        contract_address: str,
        method_name: str,
        args: tuple[Any, ...] = (),
        at_block: BlockRef = "latest",
    ) -> Any:
        """Read-only contract call evaluated as of at_block."""
        ...

    async def get_block(self, ref: BlockRef) -> BlockHeader:
        ...

    async def block_number(self) -> int:
        ...

    async def get_logs(
        self, log_filter: LogFilter, to_block: int
    ) -> list[RawLog]:
        """Historical logs from log_filter.from_block to to_block inclusive."""
        ...
