"""Exception types raised across the indexer pipeline."""

from __future__ import annotations


class VaultIndexerError(Exception):
    """Base class for all indexer errors."""


class ConfigError(VaultIndexerError):
    """Invalid or missing configuration. Fatal at startup."""


class StartupError(VaultIndexerError):
    """The pipeline could not be started (bad address, ABI mismatch, ...)."""


class DecodeError(VaultIndexerError):
    """A log matched a known signature but its shape does not fit it."""


class StateReadError(VaultIndexerError):
    """One of the batched state queries failed; the snapshot is discarded."""

    def __init__(self, block: int | str, method: str, cause: Exception) -> None:
        super().__init__(f"{method} failed at block {block}: {cause}")
        self.block = block
        self.method = method
        self.cause = cause


class PersistenceError(VaultIndexerError):
    """A store write kept failing after all retries."""


class FeedClosedError(VaultIndexerError):
    """A notification feed ended or errored."""

    def __init__(self, source: str, cause: BaseException | None = None) -> None:
        msg = f"{source} feed closed"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)
        self.source = source
        self.cause = cause


class ChainConnectionError(VaultIndexerError):
    """The chain connection could not be re-established."""
