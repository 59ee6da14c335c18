"""State reader - assembles a vault snapshot from read-only contract calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from vault_indexer.errors import StateReadError
from vault_indexer.interfaces.chain import BlockRef, ChainClient
from vault_indexer.models.snapshots import VaultStateSnapshot

log = logging.getLogger(__name__)

CORE_METHODS = ("totalAssets", "totalSupply")
EXTENDED_METHODS = ("rate", "asset", "aToken", "rewardTokens")


class StateReader:
    """Reads the vault's aggregate state as of one block.

    A "latest" reference is resolved to a concrete block number first and
    every call is pinned to it, so no sub-call can land on a later block.
    Any failing call fails the whole read.
    """

    def __init__(
        self,
        client: ChainClient,
        vault_address: str,
        extended: bool = False,
    ) -> None:
        self._client = client
        self._vault = vault_address
        self._extended = extended

    @property
    def methods(self) -> tuple[str, ...]:
        return CORE_METHODS + EXTENDED_METHODS if self._extended else CORE_METHODS

    async def read(self, block: BlockRef = "latest") -> VaultStateSnapshot:
        try:
            header = await self._client.get_block(block)
        except Exception as exc:
            raise StateReadError(block, "get_block", exc) from exc

        number = header.number
        values = await asyncio.gather(
            *(self._call(method, number) for method in self.methods)
        )
        v = dict(zip(self.methods, values))

        extra: dict[str, Any] = {}
        if self._extended:
            extra = dict(
                rate=int(v["rate"]),
                asset_address=str(v["asset"]),
                atoken_address=str(v["aToken"]),
                reward_tokens=tuple(str(t) for t in v["rewardTokens"]),
            )
        snapshot = VaultStateSnapshot(
            block_number=number,
            timestamp=header.timestamp,
            total_assets=int(v["totalAssets"]),
            total_supply=int(v["totalSupply"]),
            **extra,
        )
        log.debug(
            "Read state at block %d: assets=%d supply=%d",
            number, snapshot.total_assets, snapshot.total_supply,
        )
        return snapshot

    async def _call(self, method: str, block_number: int) -> Any:
        try:
            return await self._client.call(self._vault, method, (), block_number)
        except Exception as exc:
            raise StateReadError(block_number, method, exc) from exc
