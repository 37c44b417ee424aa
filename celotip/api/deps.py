"""
celotip.api.deps — FastAPI dependency injection
================================================

Long-lived collaborators (engine, config, webhook verifier, tip pipeline
context) are built once and cached.  Tests swap them out through
``app.dependency_overrides``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from celotip.config import CeloTipConfig, load_config
from celotip.database.engine import create_db_engine
from celotip.engine.signature import WebhookVerifier
from celotip.services.chain_service import AllowanceGuard, RelayExecutor, build_web3
from celotip.services.neynar_client import NeynarClient
from celotip.services.notification_service import Notifier
from celotip.services.tip_service import TipContext

_WEAK_SECRETS = frozenset({
    "celotip-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> CeloTipConfig:
    return load_config(os.getenv("CELOTIP_CONFIG", "config.yaml"))


@lru_cache(maxsize=1)
def get_verifier() -> WebhookVerifier:
    """Webhook verifier; raises ConfigurationError in strict mode without a secret."""
    return WebhookVerifier(os.getenv("WEBHOOK_SECRET"), get_config().verification_mode)


def build_tip_context(engine: Engine, config: CeloTipConfig) -> TipContext:
    """Wire the pipeline's collaborators from config + environment."""
    w3 = build_web3(config.rpc_url, config.rpc_timeout_seconds)
    return TipContext(
        engine=engine,
        neynar=NeynarClient(
            os.getenv("NEYNAR_API_KEY"),
            config.neynar_api_url,
            timeout=config.http_timeout_seconds,
        ),
        allowance_guard=AllowanceGuard(w3, config.contract_address),
        relay=RelayExecutor(
            w3,
            contract_address=config.contract_address,
            chain_id=config.chain_id,
            private_key=os.getenv("RELAYER_PRIVATE_KEY", ""),
            engine=engine,
            receipt_timeout=config.receipt_timeout_seconds,
        ),
        notifier=Notifier(
            engine,
            app_url=config.app_url,
            timeout=config.http_timeout_seconds,
        ),
        detect_quotes=config.detect_quotes,
    )


@lru_cache(maxsize=1)
def get_context() -> TipContext:
    return build_tip_context(get_engine(), get_config())


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin payload. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload
