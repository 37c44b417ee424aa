"""
celotip.services.notification_service — Push Notifications
============================================================

Delivers Farcaster mini-app notifications to the endpoint stored with each
actor's push token.

Delivery is fire-and-forget: every public coroutine here returns a bool
and never raises for delivery problems.  When the endpoint reports our
token in ``invalidTokens`` the stored token is flagged invalid so it is
not retried forever.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

import httpx
from sqlalchemy import Engine, select

from celotip.constants import INTERACTION_PHRASES, format_amount
from celotip.database.engine import get_session, run_db
from celotip.database.models import NotificationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PushTarget:
    fid: int
    token: str
    url: str


# ---------------------------------------------------------------------------
# Helpers (sync — run via run_db)
# ---------------------------------------------------------------------------
def load_push_target(engine: Engine, fid: int) -> PushTarget | None:
    with get_session(engine) as session:
        row = session.scalar(
            select(NotificationToken).where(
                NotificationToken.fid == fid,
                NotificationToken.is_valid.is_(True),
            )
        )
        if row is None or not row.token or not row.notification_url:
            return None
        return PushTarget(fid=row.fid, token=row.token, url=row.notification_url)


def invalidate_token(engine: Engine, fid: int, token: str) -> None:
    """Flag *token* invalid, unless the actor has re-subscribed with a new one."""
    with get_session(engine) as session:
        row = session.get(NotificationToken, fid)
        if row is not None and row.token == token:
            row.is_valid = False


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------
class Notifier:
    """Builds and delivers the pipeline's outbound notifications."""

    def __init__(
        self,
        engine: Engine,
        *,
        app_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.engine = engine
        self.app_url = app_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def send(
        self,
        fid: int,
        *,
        title: str,
        body: str,
        target_url: str,
        kind: str = "notice",
    ) -> bool:
        """Deliver one notification to *fid*.  Returns True if accepted."""
        target = await run_db(load_push_target, self.engine, fid)
        if target is None:
            logger.debug("No valid notification token for fid %d", fid)
            return False

        payload = {
            "notificationId": f"{kind}-{uuid.uuid4().hex}",
            "title": title,
            "body": body,
            "targetUrl": target_url,
            "tokens": [target.token],
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(target.url, json=payload)
            resp.raise_for_status()
            result = resp.json() if resp.content else {}
        except httpx.HTTPError as exc:
            logger.warning("Notification to fid %d failed: %s", fid, exc)
            return False
        except ValueError:
            logger.warning("Notification endpoint for fid %d returned a non-JSON body", fid)
            return True

        invalid = result.get("invalidTokens") if isinstance(result, dict) else None
        if invalid and target.token in invalid:
            logger.info("Notification token for fid %d reported invalid — flagging", fid)
            await run_db(invalidate_token, self.engine, fid, target.token)
            return False

        logger.info("Notification %s delivered to fid %d", payload["notificationId"], fid)
        return True

    async def notify_tip_received(
        self,
        recipient_fid: int,
        *,
        sender_handle: str,
        amount: Decimal,
        token_symbol: str,
        interaction_type: str,
    ) -> bool:
        phrase = INTERACTION_PHRASES.get(interaction_type, interaction_type)
        return await self.send(
            recipient_fid,
            title=f"You received {format_amount(amount)} {token_symbol}! 🎉",
            body=f"@{sender_handle} tipped you for {phrase}.",
            target_url=f"{self.app_url}/",
            kind="tip",
        )

    async def notify_allowance_exhausted(self, sender_fid: int, *, token_symbol: str) -> bool:
        return await self.send(
            sender_fid,
            title=f"Your {token_symbol} allowance ran out! ⚠️",
            body=f"Top up your {token_symbol} approval in CeloTip to continue auto-tipping.",
            target_url=f"{self.app_url}/settings",
            kind="allowance",
        )
