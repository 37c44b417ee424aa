"""
celotip.config — YAML Configuration Loader
===========================================

**Why this file exists:**
This module reads ``config.yaml`` for **infrastructure-only** settings
(chain endpoint, contract address, webhook verification mode, timeouts).
Secrets never live in YAML — they come from the environment (``.env``):

* ``DATABASE_URL``         — PostgreSQL URL
* ``WEBHOOK_SECRET``       — shared HMAC secret for the Neynar webhook
* ``RELAYER_PRIVATE_KEY``  — hex private key of the relayer account
* ``NEYNAR_API_KEY``       — Neynar API key for identity lookups
* ``JWT_SECRET``           — admin API token secret

Usage::

    from celotip.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.chain_id)          # 42220
    print(cfg.verification_mode) # "strict"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from celotip.errors import ConfigurationError

VERIFICATION_MODES = ("strict", "permissive")

# Celo mainnet defaults
DEFAULT_RPC_URL = "https://forno.celo.org"
DEFAULT_CHAIN_ID = 42220
DEFAULT_CONTRACT_ADDRESS = "0x6b3A9c2b4b4BB24D5DFa59132499cb4Fd29C733e"
DEFAULT_NEYNAR_API_URL = "https://api.neynar.com/v2"
DEFAULT_APP_URL = "https://celotip.vercel.app"


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CeloTipConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Chain
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = DEFAULT_CHAIN_ID
    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    receipt_timeout_seconds: int = 120
    rpc_timeout_seconds: int = 30

    # Webhook
    verification_mode: str = "strict"
    detect_quotes: bool = False

    # External services
    neynar_api_url: str = DEFAULT_NEYNAR_API_URL
    http_timeout_seconds: float = 10.0

    # Notifications
    app_url: str = DEFAULT_APP_URL

    # Reconciliation
    stale_pending_minutes: int = 30


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CeloTipConfig:
    """Read *path* and return a :class:`CeloTipConfig` instance.

    A missing file yields the Celo mainnet defaults, so local development
    and tests work without one.

    Raises
    ------
    ConfigurationError
        If ``verification_mode`` is not ``strict`` or ``permissive``.
    """
    config_path = Path(path)
    raw: dict = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}

    mode = str(raw.get("verification_mode", "strict")).lower()
    if mode not in VERIFICATION_MODES:
        raise ConfigurationError(
            f"verification_mode must be one of {VERIFICATION_MODES}, got {mode!r}"
        )

    return CeloTipConfig(
        rpc_url=raw.get("rpc_url", DEFAULT_RPC_URL),
        chain_id=int(raw.get("chain_id", DEFAULT_CHAIN_ID)),
        contract_address=raw.get("contract_address", DEFAULT_CONTRACT_ADDRESS),
        receipt_timeout_seconds=int(raw.get("receipt_timeout_seconds", 120)),
        rpc_timeout_seconds=int(raw.get("rpc_timeout_seconds", 30)),
        verification_mode=mode,
        detect_quotes=bool(raw.get("detect_quotes", False)),
        neynar_api_url=raw.get("neynar_api_url", DEFAULT_NEYNAR_API_URL).rstrip("/"),
        http_timeout_seconds=float(raw.get("http_timeout_seconds", 10.0)),
        app_url=raw.get("app_url", DEFAULT_APP_URL).rstrip("/"),
        stale_pending_minutes=int(raw.get("stale_pending_minutes", 30)),
    )
