"""
celotip.services.identity_service — Actor → Wallet Resolution
==============================================================

Resolves a Farcaster fid to the address tips are paid from / to.

1. ``profiles.connected_address`` if present.
2. Otherwise ask Neynar (verified ETH address first, custody fallback),
   upsert the profile, and return what was found.
3. Nothing anywhere → ``None``.

This module is the only writer of ``profiles``.  Lookup failures are
logged and treated as "not found" so a flaky dependency never leads to a
transfer.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError

from celotip.database.engine import get_session, run_db
from celotip.database.models import Profile
from celotip.errors import IdentityLookupError
from celotip.services.neynar_client import NeynarClient, NeynarUser

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers (sync — run via run_db)
# ---------------------------------------------------------------------------
def load_profile_address(engine: Engine, fid: int) -> str | None:
    with get_session(engine) as session:
        profile = session.get(Profile, fid)
        return profile.connected_address if profile else None


def load_username(engine: Engine, fid: int) -> str | None:
    with get_session(engine) as session:
        profile = session.get(Profile, fid)
        return profile.username or None if profile else None


def _apply_user(profile: Profile, user: NeynarUser, address: str) -> None:
    profile.username = user.username or profile.username
    profile.display_name = user.display_name
    profile.pfp_url = user.pfp_url
    profile.custody_address = user.custody_address
    profile.connected_address = address


def upsert_profile(engine: Engine, user: NeynarUser, address: str) -> None:
    """Insert or refresh the profile for ``user.fid`` (keyed on fid)."""
    try:
        with get_session(engine) as session:
            profile = session.get(Profile, user.fid)
            if profile is None:
                profile = Profile(fid=user.fid)
                session.add(profile)
            _apply_user(profile, user, address)
    except IntegrityError:
        # A concurrent handler inserted the row first; update it instead.
        with get_session(engine) as session:
            profile = session.get(Profile, user.fid)
            if profile is not None:
                _apply_user(profile, user, address)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def resolve_address(engine: Engine, neynar: NeynarClient, fid: int) -> str | None:
    """Return a payable wallet address for *fid*, or ``None``."""
    address = await run_db(load_profile_address, engine, fid)
    if address:
        return address

    try:
        user = await neynar.fetch_user(fid)
    except IdentityLookupError:
        logger.warning("Identity lookup failed for fid %d", fid, exc_info=True)
        return None

    if user is None:
        logger.info("fid %d not found on Neynar", fid)
        return None

    address = user.payable_address
    if not address:
        logger.info("fid %d has neither a verified nor a custody address", fid)
        return None

    await run_db(upsert_profile, engine, user, address)
    logger.info("Resolved fid %d → %s", fid, address)
    return address
