"""
celotip.services.tip_service — Webhook → Tip Pipeline
======================================================

One call per verified webhook delivery::

    classify → (ignored | self-skip | duplicate)
             → resolve sender → resolve recipient
             → select tip rule
             → allowance pre-check        (insufficient → notify sender, stop)
             → ledger: pending
             → relay sendTip
             → ledger: completed | failed  (unconfirmed → stays pending)
             → notify recipient

Every stop is a normal outcome, reported as a :class:`TipOutcome`; only
unexpected exceptions escape.  Collaborators are passed in through a
:class:`TipContext` built once at startup — the pipeline itself holds no
state between deliveries.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import Engine

from celotip.constants import format_amount
from celotip.database.engine import run_db
from celotip.engine.events import (
    Interaction,
    Malformed,
    NotApplicable,
    SelfInteraction,
    classify_event,
)
from celotip.engine.rules import SelectedTip, select_tip_rule
from celotip.services import ledger_service
from celotip.services.chain_service import AllowanceGuard, RelayExecutor, RelayOutcome
from celotip.services.identity_service import load_username, resolve_address
from celotip.services.neynar_client import NeynarClient
from celotip.services.notification_service import Notifier
from celotip.services.tip_config_service import load_tip_rules

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context & outcome
# ---------------------------------------------------------------------------
@dataclass
class TipContext:
    """Collaborators shared by every delivery (built once at startup)."""

    engine: Engine
    neynar: NeynarClient
    allowance_guard: AllowanceGuard
    relay: RelayExecutor
    notifier: Notifier
    detect_quotes: bool = False


class TipStage(enum.StrEnum):
    """Where a delivery stopped."""
    IGNORED = "ignored"
    MALFORMED = "malformed"
    SELF_SKIP = "self_skip"
    DUPLICATE = "duplicate"
    SENDER_UNRESOLVED = "sender_unresolved"
    RECIPIENT_UNRESOLVED = "recipient_unresolved"
    NO_RULE = "no_rule"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    COMPLETED = "completed"
    FAILED = "failed"
    UNCONFIRMED = "unconfirmed"


@dataclass(frozen=True, slots=True)
class TipOutcome:
    success: bool
    message: str
    stage: TipStage
    transaction_id: str | None = None
    tx_hash: str | None = None
    amount: Decimal | None = None
    token_symbol: str | None = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.transaction_id is not None:
            body["transactionId"] = self.transaction_id
        if self.tx_hash is not None:
            body["txHash"] = self.tx_hash
        if self.amount is not None:
            body["amount"] = format_amount(self.amount)
            body["tokenSymbol"] = self.token_symbol
        return body


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
async def _best_effort(what: str, coro: Awaitable[Any]) -> None:
    """Await a notification; log and swallow any failure."""
    try:
        await coro
    except Exception:
        logger.exception("%s notification failed", what)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
async def process_webhook(ctx: TipContext, payload: object) -> TipOutcome:
    """Run one decoded (and already authenticated) webhook body."""
    classification = classify_event(payload, detect_quotes=ctx.detect_quotes)

    if isinstance(classification, NotApplicable):
        logger.info("Ignoring event: %s", classification.reason)
        return TipOutcome(True, classification.reason, TipStage.IGNORED)
    if isinstance(classification, Malformed):
        return TipOutcome(False, classification.reason, TipStage.MALFORMED)
    if isinstance(classification, SelfInteraction):
        logger.info("Skipping self-interaction by fid %d", classification.interaction.from_fid)
        return TipOutcome(True, "Self-interaction skipped", TipStage.SELF_SKIP)

    return await process_interaction(ctx, classification)


async def process_interaction(ctx: TipContext, interaction: Interaction) -> TipOutcome:
    """Take a classified interaction through resolution, checks and relay."""
    logger.info(
        "Processing %s: fid %d → fid %d (%s)",
        interaction.kind.value, interaction.from_fid, interaction.to_fid, interaction.event_key,
    )

    if await run_db(ledger_service.has_active_attempt, ctx.engine, interaction.event_key):
        return TipOutcome(True, "Event already processed", TipStage.DUPLICATE)

    # 1. Identities
    sender_address = await resolve_address(ctx.engine, ctx.neynar, interaction.from_fid)
    if not sender_address:
        logger.info("Sender fid %d not registered", interaction.from_fid)
        return TipOutcome(True, "Sender not registered in CeloTip", TipStage.SENDER_UNRESOLVED)

    recipient_address = await resolve_address(ctx.engine, ctx.neynar, interaction.to_fid)
    if not recipient_address:
        logger.warning(
            "Recipient fid %d has no wallet address — tip from fid %d dropped",
            interaction.to_fid, interaction.from_fid,
        )
        return TipOutcome(True, "Recipient has no wallet address", TipStage.RECIPIENT_UNRESOLVED)

    # 2. Rule
    tip_rule, super_rule = await run_db(
        load_tip_rules, ctx.engine, interaction.from_fid, interaction.kind
    )
    selected: SelectedTip | None = select_tip_rule(
        interaction.kind, interaction.text, tip_rule, super_rule
    )
    if selected is None:
        return TipOutcome(True, "No tip configuration found", TipStage.NO_RULE)
    if selected.is_super_tip:
        logger.info("Super tip triggered for fid %d", interaction.from_fid)

    # 3. Allowance
    check = await ctx.allowance_guard.check(
        sender_address, selected.token_address, selected.amount
    )
    if not check.sufficient:
        logger.warning(
            "Insufficient allowance: fid=%d token=%s needed=%s available=%s error=%s",
            interaction.from_fid, selected.token_symbol, check.amount_units,
            check.allowance_units, check.error,
        )
        if check.error is None:
            await _best_effort(
                "Low-allowance",
                ctx.notifier.notify_allowance_exhausted(
                    interaction.from_fid, token_symbol=selected.token_symbol
                ),
            )
        return TipOutcome(
            True,
            "Insufficient token allowance. Please approve more tokens.",
            TipStage.INSUFFICIENT_ALLOWANCE,
        )

    # 4. Ledger row before anything irreversible
    draft = ledger_service.LedgerDraft(
        event_key=interaction.event_key,
        from_fid=interaction.from_fid,
        to_fid=interaction.to_fid,
        token_address=selected.token_address,
        token_symbol=selected.token_symbol,
        amount=selected.amount,
        amount_units=check.amount_units,
        interaction_type=interaction.kind.value,
        cast_hash=interaction.cast_hash,
    )
    tx_id = await run_db(ledger_service.create_pending, ctx.engine, draft)
    if tx_id is None:
        return TipOutcome(True, "Event already processed", TipStage.DUPLICATE)

    # 5. Relay — at most once for this row
    result = await ctx.relay.execute(
        sender_address,
        recipient_address,
        selected.token_address,
        check.amount_units,
        interaction.kind.value,
        interaction.cast_hash,
    )

    if result.outcome is RelayOutcome.UNCONFIRMED:
        if result.tx_hash:
            await run_db(ledger_service.record_broadcast, ctx.engine, tx_id, result.tx_hash)
        logger.error(
            "Tip %s left pending for reconciliation (hash %s): %s",
            tx_id, result.tx_hash, result.error,
        )
        return TipOutcome(
            False,
            "Transaction submitted but not confirmed; left pending for reconciliation",
            TipStage.UNCONFIRMED,
            transaction_id=tx_id,
            tx_hash=result.tx_hash,
        )

    if result.outcome is RelayOutcome.FAILED:
        await run_db(ledger_service.mark_failed, ctx.engine, tx_id, result.error or "Transaction failed")
        return TipOutcome(
            False,
            f"Transaction failed: {result.error}",
            TipStage.FAILED,
            transaction_id=tx_id,
        )

    await run_db(ledger_service.mark_completed, ctx.engine, tx_id, result.tx_hash)
    logger.info(
        "Tip sent: %s %s from fid %d to fid %d (%s)",
        format_amount(selected.amount), selected.token_symbol,
        interaction.from_fid, interaction.to_fid, result.tx_hash,
    )

    # 6. Tell the recipient
    handle = interaction.from_username or await run_db(
        load_username, ctx.engine, interaction.from_fid
    )
    await _best_effort(
        "Tip-received",
        ctx.notifier.notify_tip_received(
            interaction.to_fid,
            sender_handle=handle or f"fid:{interaction.from_fid}",
            amount=selected.amount,
            token_symbol=selected.token_symbol,
            interaction_type=interaction.kind.value,
        ),
    )

    return TipOutcome(
        True,
        "Tip sent",
        TipStage.COMPLETED,
        transaction_id=tx_id,
        tx_hash=result.tx_hash,
        amount=selected.amount,
        token_symbol=selected.token_symbol,
    )
