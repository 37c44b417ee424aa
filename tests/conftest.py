"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of celotip.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from celotip.constants import TOKEN_ADDRESSES  # noqa: E402
from celotip.database.engine import init_db  # noqa: E402
from celotip.database.models import (  # noqa: E402
    NotificationToken,
    Profile,
    SuperTipConfig,
    TipConfig,
)

SENDER_FID = 100
RECIPIENT_FID = 200
SENDER_ADDRESS = "0x1111111111111111111111111111111111111111"
RECIPIENT_ADDRESS = "0x2222222222222222222222222222222222222222"
CUSD = TOKEN_ADDRESSES["cUSD"]


@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all CeloTip tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------
def seed_profile(engine: Engine, fid: int, address: str | None, username: str = "") -> None:
    with Session(engine) as session:
        session.add(Profile(fid=fid, username=username or f"user{fid}", connected_address=address))
        session.commit()


def seed_tip_config(
    engine: Engine,
    fid: int = SENDER_FID,
    interaction_type: str = "like",
    amount: str = "0.01",
    symbol: str = "cUSD",
    enabled: bool = True,
) -> None:
    with Session(engine) as session:
        session.add(TipConfig(
            fid=fid,
            interaction_type=interaction_type,
            token_address=TOKEN_ADDRESSES[symbol],
            token_symbol=symbol,
            amount=Decimal(amount),
            is_enabled=enabled,
        ))
        session.commit()


def seed_super_tip(
    engine: Engine,
    fid: int = SENDER_FID,
    phrase: str = "great post",
    amount: str = "1",
    symbol: str = "CELO",
    enabled: bool = True,
) -> None:
    with Session(engine) as session:
        session.add(SuperTipConfig(
            fid=fid,
            trigger_phrase=phrase,
            token_address=TOKEN_ADDRESSES[symbol],
            token_symbol=symbol,
            amount=Decimal(amount),
            is_enabled=enabled,
        ))
        session.commit()


def seed_push_token(
    engine: Engine,
    fid: int,
    token: str = "push-token",
    url: str = "https://notify.example/send",
    valid: bool = True,
) -> None:
    with Session(engine) as session:
        session.add(NotificationToken(fid=fid, token=token, notification_url=url, is_valid=valid))
        session.commit()


# ---------------------------------------------------------------------------
# Webhook payload builders (Neynar v2 shapes)
# ---------------------------------------------------------------------------
def reaction_payload(
    reaction_type=1,
    from_fid: int = SENDER_FID,
    to_fid: int = RECIPIENT_FID,
    cast_hash: str = "0xcast1",
) -> dict:
    return {
        "type": "reaction.created",
        "data": {
            "reaction_type": reaction_type,
            "user": {"fid": from_fid, "username": f"user{from_fid}"},
            "cast": {"hash": cast_hash, "author": {"fid": to_fid}},
        },
    }


def reply_payload(
    text: str = "nice",
    from_fid: int = SENDER_FID,
    to_fid: int = RECIPIENT_FID,
    cast_hash: str = "0xreply1",
    parent_hash: str = "0xparent1",
) -> dict:
    return {
        "type": "cast.created",
        "data": {
            "hash": cast_hash,
            "text": text,
            "author": {"fid": from_fid, "username": f"user{from_fid}"},
            "parent_hash": parent_hash,
            "parent_author": {"fid": to_fid},
        },
    }


def follow_payload(from_fid: int = SENDER_FID, to_fid: int = RECIPIENT_FID) -> dict:
    return {
        "type": "follow.created",
        "data": {
            "follower": {"fid": from_fid, "username": f"user{from_fid}"},
            "following": {"fid": to_fid},
        },
    }


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from celotip.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
