"""
celotip.services.neynar_client — Farcaster Identity Lookup
===========================================================

Thin async wrapper over Neynar's ``GET /farcaster/user/bulk`` endpoint.
Only the fields the tip pipeline needs are kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from celotip.errors import IdentityLookupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NeynarUser:
    fid: int
    username: str
    display_name: str | None = None
    pfp_url: str | None = None
    custody_address: str | None = None
    verified_eth_addresses: list[str] = field(default_factory=list)

    @property
    def payable_address(self) -> str | None:
        """First verified ETH address, else the custody address."""
        if self.verified_eth_addresses:
            return self.verified_eth_addresses[0]
        return self.custody_address or None


def _parse_user(raw: dict) -> NeynarUser:
    verified = (raw.get("verified_addresses") or {}).get("eth_addresses") or []
    return NeynarUser(
        fid=int(raw["fid"]),
        username=raw.get("username") or "",
        display_name=raw.get("display_name"),
        pfp_url=raw.get("pfp_url"),
        custody_address=raw.get("custody_address"),
        verified_eth_addresses=[a for a in verified if a],
    )


class NeynarClient:
    """Looks up Farcaster users by fid."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.neynar.com/v2",
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or None
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.api_key is not None

    async def fetch_user(self, fid: int) -> NeynarUser | None:
        """Return the user for *fid*, or ``None`` if Neynar has no such user.

        Raises
        ------
        IdentityLookupError
            On transport errors, non-2xx responses, or an unreadable body.
        """
        if not self.enabled:
            logger.warning("NEYNAR_API_KEY not configured — skipping lookup for fid %d", fid)
            return None

        headers = {"accept": "application/json", "api_key": self.api_key}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.get(
                    f"{self.base_url}/farcaster/user/bulk",
                    params={"fids": str(fid)},
                    headers=headers,
                )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            raise IdentityLookupError(f"Neynar lookup for fid {fid} failed: {exc}") from exc
        except ValueError as exc:
            raise IdentityLookupError(f"Neynar returned an unreadable body for fid {fid}") from exc

        users = (body.get("users") if isinstance(body, dict) else None) or []
        if not users:
            return None
        try:
            return _parse_user(users[0])
        except (KeyError, TypeError, ValueError) as exc:
            raise IdentityLookupError(f"Unexpected Neynar user shape for fid {fid}") from exc
