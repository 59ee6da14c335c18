"""Vault ABI: bundled minimal ERC-4626 definition plus loading from disk."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from vault_indexer.errors import ConfigError, StartupError


def _view(name: str, out_type: str) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": out_type}],
    }


def _event(name: str, fields: list[tuple[str, str, bool]]) -> dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [
            {"name": n, "type": t, "indexed": indexed} for n, t, indexed in fields
        ],
    }


ERC4626_ABI: list[dict[str, Any]] = [
    _view("totalAssets", "uint256"),
    _view("totalSupply", "uint256"),
    _view("asset", "address"),
    # Extended (aToken-wrapping) vault variant
    _view("rate", "uint256"),
    _view("aToken", "address"),
    _view("rewardTokens", "address[]"),
    _event("Deposit", [
        ("sender", "address", True),
        ("owner", "address", True),
        ("assets", "uint256", False),
        ("shares", "uint256", False),
    ]),
    _event("Withdraw", [
        ("sender", "address", True),
        ("receiver", "address", True),
        ("owner", "address", True),
        ("assets", "uint256", False),
        ("shares", "uint256", False),
    ]),
]


def load_abi(path: str | Path | None) -> list[dict[str, Any]]:
    """Load an ABI from a raw JSON array or a Hardhat/Foundry artifact with an "abi" field.

    An empty path returns the bundled ERC-4626 ABI.
    """
    if not path:
        return ERC4626_ABI

    p = Path(path).expanduser()
    if not p.exists():
        raise ConfigError(f"ABI file not found: {p}")
    with open(p, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"ABI file {p} is not valid JSON: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise ConfigError(f"ABI file {p} has no ABI array")
    return data


def require_functions(abi: list[dict[str, Any]], names: Iterable[str]) -> None:
    """Fail fast when the ABI lacks a view function the state reader needs."""
    present = {e.get("name") for e in abi if e.get("type") == "function"}
    missing = [n for n in names if n not in present]
    if missing:
        raise StartupError(f"ABI is missing required functions: {', '.join(missing)}")
