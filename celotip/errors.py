"""
celotip.errors — Exception hierarchy
=====================================
"""

from __future__ import annotations


class CeloTipError(Exception):
    """Base class for all CeloTip errors."""


class ConfigurationError(CeloTipError):
    """Raised at startup when the deployment is misconfigured."""


class IdentityLookupError(CeloTipError):
    """The external identity lookup failed (HTTP error, timeout, bad body)."""


class ChainReadError(CeloTipError):
    """A read-only contract call failed."""


class LedgerStateError(CeloTipError):
    """An illegal ledger transition was attempted (e.g. re-opening a row)."""
