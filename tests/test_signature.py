"""
tests/test_signature.py — Webhook Signature Verification
=========================================================
"""

from __future__ import annotations

import hashlib
import hmac

import pytest

from celotip.engine.signature import WebhookVerifier, compute_signature, verify_signature
from celotip.errors import ConfigurationError

BODY = b'{"type":"reaction.created","data":{}}'
SECRET = "whsec-test"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


class TestVerifySignature:
    def test_matching_signature_accepted(self):
        assert verify_signature(BODY, _sign(BODY), SECRET)

    def test_compute_matches_hmac_sha512(self):
        assert compute_signature(BODY, SECRET) == _sign(BODY)

    def test_uppercase_hex_accepted(self):
        assert verify_signature(BODY, _sign(BODY).upper(), SECRET)

    def test_tampered_body_rejected(self):
        assert not verify_signature(BODY + b" ", _sign(BODY), SECRET)

    def test_wrong_secret_rejected(self):
        assert not verify_signature(BODY, _sign(BODY, "other"), SECRET)

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature_rejected(self, signature):
        assert not verify_signature(BODY, signature, SECRET)


class TestWebhookVerifier:
    def test_strict_without_secret_refuses_to_start(self):
        with pytest.raises(ConfigurationError, match="WEBHOOK_SECRET"):
            WebhookVerifier(None, "strict")

    def test_strict_with_secret_enforces(self):
        verifier = WebhookVerifier(SECRET, "strict")
        assert verifier.enforcing
        assert verifier.verify(BODY, _sign(BODY))
        assert not verifier.verify(BODY, "deadbeef")

    def test_permissive_without_secret_accepts_everything(self, caplog):
        verifier = WebhookVerifier("", "permissive")
        assert not verifier.enforcing
        assert verifier.verify(BODY, None)
        assert "PERMISSIVE" in caplog.text

    def test_permissive_with_secret_still_enforces(self):
        verifier = WebhookVerifier(SECRET, "permissive")
        assert verifier.enforcing
        assert not verifier.verify(BODY, None)
