"""Point-in-time vault state snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class VaultStateSnapshot:
    """Aggregate vault state as of one block.

    The extended fields are only populated when the reader is configured
    for the extended (aToken-wrapping) vault variant.
    """

    block_number: int
    timestamp: int
    total_assets: int
    total_supply: int
    rate: int | None = None
    asset_address: str | None = None
    atoken_address: str | None = None
    reward_tokens: tuple[str, ...] = field(default_factory=tuple)
