"""
celotip.constants — Shared Constants
=====================================

Single source of truth for token addresses and notification copy.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Supported Celo tokens
# ---------------------------------------------------------------------------
TOKEN_ADDRESSES: dict[str, str] = {
    "CELO": "0x471EcE3750Da237f93B8E339c536989b8978a438",
    "cUSD": "0x765DE816845861e75A25fCA122bb6898B8B1282a",
    "cEUR": "0xD8763CBa276a3738E6DE85b4b3bF5FDed6D6cA73",
    "cREAL": "0xe8537a3d056DA446677B9E9d6c5dB704EaAb4787",
}

WEBHOOK_SIGNATURE_HEADER = "X-Neynar-Signature"

# ---------------------------------------------------------------------------
# Notification copy
# ---------------------------------------------------------------------------
INTERACTION_PHRASES: dict[str, str] = {
    "like": "liking your cast",
    "recast": "recasting your cast",
    "comment": "replying to your cast",
    "quote": "quoting your cast",
    "follow": "following you",
}


def format_amount(amount) -> str:
    """Render a decimal tip amount without trailing zeros (``0.010`` → ``0.01``)."""
    text = f"{amount:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
