"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from web3 import Web3

from vault_indexer.errors import ConfigError
from vault_indexer.models.config import IndexerConfig, StorageBackend


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "VAULT_INDEXER_",
) -> IndexerConfig:
    """Load indexer configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (VAULT_INDEXER_WSS_URL, etc.)
        2. TOML config file
        3. Defaults from IndexerConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                try:
                    raw = tomllib.load(f)
                except tomllib.TOMLDecodeError as exc:
                    raise ConfigError(f"Invalid config file {p}: {exc}") from exc

    cfg = IndexerConfig()

    # ── Indexer section ────────────────────────────────────
    indexer = raw.get("indexer", {})
    if (v := indexer.get("read_on_block")) is not None:
        cfg.read_on_block = bool(v)
    if v := indexer.get("persist_retries"):
        cfg.persist_retries = int(v)
    if v := indexer.get("persist_backoff"):
        cfg.persist_backoff = float(v)
    if v := indexer.get("reconnect_attempts"):
        cfg.reconnect_attempts = int(v)
    if v := indexer.get("reconnect_backoff"):
        cfg.reconnect_backoff = float(v)
    if v := indexer.get("max_backoff"):
        cfg.max_backoff = float(v)
    if v := indexer.get("log_level"):
        cfg.log_level = str(v)

    # ── Chain section ──────────────────────────────────────
    chain = raw.get("chain", {})
    if v := chain.get("wss_url"):
        cfg.chain.wss_url = str(v)
    if v := chain.get("vault_address"):
        cfg.chain.vault_address = str(v)
    if v := chain.get("abi_path"):
        cfg.chain.abi_path = str(v)
    if (v := chain.get("extended_state")) is not None:
        cfg.chain.extended_state = bool(v)
    if v := chain.get("log_chunk_size"):
        cfg.chain.log_chunk_size = int(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("backend"):
        cfg.storage.backend = _backend(v)
    if v := storage.get("db_path"):
        cfg.storage.db_path = str(v)
    if v := storage.get("data_dir"):
        cfg.storage.data_dir = str(v)

    # ── Environment variable overrides (highest priority) ──
    if url := os.environ.get(f"{env_prefix}WSS_URL"):
        cfg.chain.wss_url = url
    if addr := os.environ.get(f"{env_prefix}VAULT_ADDRESS"):
        cfg.chain.vault_address = addr
    if abi := os.environ.get(f"{env_prefix}ABI_PATH"):
        cfg.chain.abi_path = abi
    if backend := os.environ.get(f"{env_prefix}BACKEND"):
        cfg.storage.backend = _backend(backend)
    if db := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.storage.db_path = db
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level

    # Expand ~ in paths
    if cfg.storage.db_path != ":memory:":
        cfg.storage.db_path = str(Path(cfg.storage.db_path).expanduser())
    cfg.storage.data_dir = str(Path(cfg.storage.data_dir).expanduser())

    return cfg


def _backend(value: str) -> StorageBackend:
    try:
        return StorageBackend(str(value).lower())
    except ValueError as exc:
        choices = ", ".join(b.value for b in StorageBackend)
        raise ConfigError(f"Unknown storage backend {value!r} (expected one of {choices})") from exc


def resolve_log_level(name: str) -> int:
    """Map a log_level setting such as "info" or "WARNING" to a logging level."""
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ConfigError(f"Unknown log level {name!r}")
    return level


def validate_config(cfg: IndexerConfig) -> None:
    """Raise ConfigError if the config cannot drive the pipeline."""
    if not cfg.chain.wss_url:
        raise ConfigError("No websocket URL configured (VAULT_INDEXER_WSS_URL or [chain] wss_url)")
    if not cfg.chain.vault_address:
        raise ConfigError("No vault address configured (VAULT_INDEXER_VAULT_ADDRESS or [chain] vault_address)")
    if not Web3.is_address(cfg.chain.vault_address):
        raise ConfigError(f"Invalid vault address: {cfg.chain.vault_address}")
    if cfg.persist_retries < 1:
        raise ConfigError("persist_retries must be >= 1")
