"""CLI entry point for the vault indexer."""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from vault_indexer.chain.abi import load_abi
from vault_indexer.chain.client import Web3ChainClient
from vault_indexer.chain.reader import StateReader
from vault_indexer.config import load_config, resolve_log_level, validate_config
from vault_indexer.daemon import run_daemon
from vault_indexer.errors import (
    ChainConnectionError,
    ConfigError,
    PersistenceError,
    StartupError,
    StateReadError,
)
from vault_indexer.models.snapshots import VaultStateSnapshot
from vault_indexer.storage import open_store


def _load(ctx: click.Context, require_chain: bool = True):
    """Load config, exiting with an error if it is unusable."""
    try:
        cfg = load_config(ctx.obj["config_path"])
        level = resolve_log_level(cfg.log_level)
        if require_chain:
            validate_config(cfg)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    # -v wins over the configured level
    logging.getLogger().setLevel(logging.DEBUG if ctx.obj["verbose"] else level)
    return cfg


def _echo_state(state: VaultStateSnapshot) -> None:
    click.echo(f"Block:        {state.block_number}")
    click.echo(f"Timestamp:    {state.timestamp}")
    click.echo(f"Total assets: {state.total_assets}")
    click.echo(f"Total supply: {state.total_supply}")
    if state.rate is not None:
        click.echo(f"Rate:         {state.rate}")
    if state.asset_address:
        click.echo(f"Asset:        {state.asset_address}")
    if state.atoken_address:
        click.echo(f"aToken:       {state.atoken_address}")
    if state.reward_tokens:
        click.echo(f"Rewards:      {', '.join(state.reward_tokens)}")


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """vault-indexer - follow an ERC-4626 vault's events and state."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Indexer ────────────────────────────────────────────


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Start the indexer."""
    cfg = _load(ctx)
    click.echo(f"Indexing vault {cfg.chain.vault_address}")
    try:
        asyncio.run(run_daemon(cfg))
    except (StartupError, ConfigError) as exc:
        click.echo(f"Startup failed: {exc}", err=True)
        sys.exit(1)
    except (PersistenceError, ChainConnectionError) as exc:
        click.echo(f"Fatal: {exc}", err=True)
        sys.exit(1)


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show indexer configuration."""
    cfg = _load(ctx, require_chain=False)
    click.echo(f"WSS URL:        {cfg.chain.wss_url or '(not set)'}")
    click.echo(f"Vault:          {cfg.chain.vault_address or '(not set)'}")
    click.echo(f"ABI:            {cfg.chain.abi_path or '(bundled ERC-4626)'}")
    click.echo(f"Extended state: {cfg.chain.extended_state}")
    click.echo(f"Read on block:  {cfg.read_on_block}")
    click.echo(f"Storage:        {cfg.storage.backend.value}")
    click.echo(f"DB path:        {cfg.storage.db_path}")
    click.echo(f"Data dir:       {cfg.storage.data_dir}")


@cli.command()
@click.option("--block", "block", type=int, default=None, help="Block number (default: latest)")
@click.pass_context
def state(ctx: click.Context, block: int | None) -> None:
    """Read the vault's state from the chain once."""
    cfg = _load(ctx)

    async def _state() -> VaultStateSnapshot:
        client = Web3ChainClient(cfg.chain.wss_url, load_abi(cfg.chain.abi_path))
        try:
            try:
                await client.connect()
            except Exception as exc:
                raise StartupError(f"Could not connect to {cfg.chain.wss_url}: {exc}") from exc
            reader = StateReader(
                client, cfg.chain.vault_address, extended=cfg.chain.extended_state,
            )
            return await reader.read(block if block is not None else "latest")
        finally:
            await client.close()

    try:
        snapshot = asyncio.run(_state())
    except (StateReadError, StartupError, ConfigError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    _echo_state(snapshot)


@cli.command()
@click.option("--limit", default=20, show_default=True, help="Number of most recent events")
@click.pass_context
def events(ctx: click.Context, limit: int) -> None:
    """List stored vault events."""
    cfg = _load(ctx, require_chain=False)

    async def _events():
        store = open_store(cfg.storage)
        await store.initialize()
        try:
            return await store.get_events(limit=limit), await store.count_events()
        finally:
            await store.close()

    rows, total = asyncio.run(_events())
    if not rows:
        click.echo("No events stored.")
        return
    for e in rows:
        click.echo(
            f"{e.block_number:>10}  {e.kind.value:<8}  assets={e.assets}  shares={e.shares}"
            f"  sender={e.sender}  tx={e.transaction_hash}:{e.log_index}"
        )
    click.echo(f"({len(rows)} of {total} events)")


@cli.command()
@click.pass_context
def checkpoint(ctx: click.Context) -> None:
    """Show the stored checkpoint and latest snapshot."""
    cfg = _load(ctx, require_chain=False)

    async def _checkpoint():
        store = open_store(cfg.storage)
        await store.initialize()
        try:
            return await store.load_checkpoint(), await store.get_latest_state()
        finally:
            await store.close()

    block, latest = asyncio.run(_checkpoint())
    click.echo(f"Checkpoint:   {block if block is not None else '(none)'}")
    if latest is not None:
        click.echo("")
        _echo_state(latest)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
