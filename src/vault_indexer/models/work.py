"""Units of work handed from the stream merger to the sync engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from vault_indexer.models.chain import BlockHeader, RawLog


@dataclass(frozen=True)
class NewBlock:
    header: BlockHeader

    @property
    def block_number(self) -> int:
        return self.header.number


@dataclass(frozen=True)
class NewLog:
    log: RawLog

    @property
    def block_number(self) -> int:
        return self.log.block_number


WorkItem = Union[NewBlock, NewLog]
