"""
celotip.services.summary_service — Daily Tip Summary
=====================================================

Once a day every actor who sent or received a completed tip in the last
24 hours gets one push notification summarising that activity.

How it works:
    1. Load ``completed`` transactions created since the cutoff.
    2. Aggregate per fid: tips sent / received and the per-token totals.
    3. Send one notification per active fid (concurrently); actors with no
       valid push token are simply skipped by the notifier.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import Engine, select

from celotip.database.engine import get_session, run_db
from celotip.database.models import TipTransaction, TransactionStatus
from celotip.services.notification_service import Notifier

logger = logging.getLogger(__name__)

SUMMARY_WINDOW = timedelta(hours=24)
SUMMARY_TITLE = "Your CeloTip Daily Summary 📊"


@dataclass
class ActorSummary:
    fid: int
    tips_sent: int = 0
    sent_amounts: dict[str, Decimal] = field(default_factory=lambda: defaultdict(Decimal))
    tips_received: int = 0
    received_amounts: dict[str, Decimal] = field(default_factory=lambda: defaultdict(Decimal))


def build_summaries(engine: Engine, since: datetime) -> tuple[int, dict[int, ActorSummary]]:
    """Aggregate completed tips created at or after *since*.

    Returns ``(transaction_count, {fid: ActorSummary})``.
    """
    with get_session(engine) as session:
        rows = session.execute(
            select(
                TipTransaction.from_fid,
                TipTransaction.to_fid,
                TipTransaction.token_symbol,
                TipTransaction.amount,
            ).where(
                TipTransaction.status == TransactionStatus.COMPLETED.value,
                TipTransaction.created_at >= since,
            )
        ).all()

    summaries: dict[int, ActorSummary] = {}
    for row in rows:
        sender = summaries.setdefault(row.from_fid, ActorSummary(row.from_fid))
        sender.tips_sent += 1
        sender.sent_amounts[row.token_symbol] += Decimal(row.amount)

        recipient = summaries.setdefault(row.to_fid, ActorSummary(row.to_fid))
        recipient.tips_received += 1
        recipient.received_amounts[row.token_symbol] += Decimal(row.amount)

    return len(rows), summaries


def _totals(amounts: dict[str, Decimal]) -> str:
    return ", ".join(f"{amount:.2f} {symbol}" for symbol, amount in amounts.items())


def _plural(count: int) -> str:
    return "tip" if count == 1 else "tips"


def summary_body(summary: ActorSummary) -> str | None:
    """Notification text for one actor, or ``None`` if there was no activity."""
    sent, received = summary.tips_sent, summary.tips_received
    if sent and received:
        return (
            f"📤 Sent: {_totals(summary.sent_amounts)} ({sent} {_plural(sent)})\n"
            f"📥 Received: {_totals(summary.received_amounts)} ({received} {_plural(received)})"
        )
    if sent:
        return f"📤 You sent {_totals(summary.sent_amounts)} across {sent} {_plural(sent)}!"
    if received:
        return f"📥 You received {_totals(summary.received_amounts)} from {received} {_plural(received)}!"
    return None


async def send_daily_summaries(
    engine: Engine,
    notifier: Notifier,
    *,
    now: datetime | None = None,
) -> dict:
    """Run the daily summary job.

    Returns ``{"transactions": N, "actors": M, "delivered": K}``.
    """
    since = (now or datetime.now(UTC)) - SUMMARY_WINDOW
    count, summaries = await run_db(build_summaries, engine, since)
    logger.info("Daily summary: %d completed tips since %s", count, since.isoformat())

    jobs = []
    for fid, summary in summaries.items():
        body = summary_body(summary)
        if body is None:
            continue
        jobs.append(notifier.send(
            fid,
            title=SUMMARY_TITLE,
            body=body,
            target_url=f"{notifier.app_url}/",
            kind="daily-summary",
        ))

    results = await asyncio.gather(*jobs, return_exceptions=True)
    delivered = 0
    for result in results:
        if isinstance(result, BaseException):
            logger.error("Daily summary delivery raised: %r", result)
        elif result:
            delivered += 1

    logger.info("Daily summary: delivered %d/%d", delivered, len(jobs))
    return {"transactions": count, "actors": len(summaries), "delivered": delivered}
