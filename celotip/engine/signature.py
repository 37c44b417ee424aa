"""
celotip.engine.signature — Webhook Signature Verification
==========================================================

Neynar signs every webhook delivery with HMAC-SHA512 over the raw request
body and sends the hex digest in ``X-Neynar-Signature``.

Whether an unsigned deployment is acceptable is decided **once at
startup** by :class:`WebhookVerifier`:

* ``strict``     — no secret configured → :class:`ConfigurationError`.
* ``permissive`` — no secret configured → loud warning, every request
  accepted.  For local development only.

When a secret is configured it is always enforced, whatever the mode.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from celotip.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["WebhookVerifier", "compute_signature", "verify_signature"]


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of *raw_body* keyed by *secret*."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """Return True if *signature* matches the body's HMAC under *secret*."""
    if not signature:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


class WebhookVerifier:
    """Startup-configured webhook authenticator."""

    def __init__(self, secret: str | None, mode: str = "strict") -> None:
        self.secret = secret or None
        self.mode = mode

        if self.secret is None:
            if mode == "strict":
                raise ConfigurationError(
                    "WEBHOOK_SECRET is not set and verification_mode is 'strict'. "
                    "Set the Neynar webhook secret, or switch to 'permissive' "
                    "for local development only."
                )
            logger.warning(
                "!!! WEBHOOK_SECRET is not set — running in PERMISSIVE mode. "
                "Webhook signatures will NOT be checked. Never do this in production. !!!"
            )

    @property
    def enforcing(self) -> bool:
        return self.secret is not None

    def verify(self, raw_body: bytes, signature: str | None) -> bool:
        if self.secret is None:
            logger.warning("Accepting unsigned webhook (permissive mode)")
            return True
        return verify_signature(raw_body, signature, self.secret)
