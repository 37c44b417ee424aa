"""
tests/test_summary_service.py — Daily Tip Summary
==================================================
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.orm import Session

from conftest import CUSD
from celotip.constants import TOKEN_ADDRESSES
from celotip.database.models import TipTransaction
from celotip.services.notification_service import Notifier
from celotip.services.summary_service import (
    ActorSummary,
    build_summaries,
    send_daily_summaries,
    summary_body,
)

NOW = datetime(2026, 10, 18, 12, 0, 0)


def run_async(coro):
    return asyncio.new_event_loop().run_until_complete(coro)


def _add_tx(engine, from_fid, to_fid, amount="1", symbol="cUSD", status="completed", hours_ago=1):
    with Session(engine) as session:
        n = session.query(TipTransaction).count()
        session.add(TipTransaction(
            event_key=f"evt-{n}",
            attempt=1,
            from_fid=from_fid,
            to_fid=to_fid,
            token_address=TOKEN_ADDRESSES.get(symbol, CUSD),
            token_symbol=symbol,
            amount=Decimal(amount),
            amount_units="1",
            interaction_type="like",
            status=status,
            created_at=NOW - timedelta(hours=hours_ago),
        ))
        session.commit()


class TestBuildSummaries:
    def test_aggregates_sent_and_received(self, db_engine):
        _add_tx(db_engine, 1, 2, "0.5")
        _add_tx(db_engine, 1, 3, "0.25")
        _add_tx(db_engine, 3, 1, "2", symbol="CELO")

        count, summaries = build_summaries(db_engine, NOW - timedelta(hours=24))

        assert count == 3
        assert summaries[1].tips_sent == 2
        assert summaries[1].sent_amounts["cUSD"] == Decimal("0.75")
        assert summaries[1].tips_received == 1
        assert summaries[1].received_amounts["CELO"] == Decimal("2")
        assert summaries[2].tips_received == 1
        assert summaries[2].tips_sent == 0

    def test_ignores_old_and_unfinished(self, db_engine):
        _add_tx(db_engine, 1, 2, hours_ago=30)
        _add_tx(db_engine, 1, 2, status="pending")
        _add_tx(db_engine, 1, 2, status="failed")

        count, summaries = build_summaries(db_engine, NOW - timedelta(hours=24))

        assert count == 0
        assert summaries == {}


class TestSummaryBody:
    def test_sent_only(self):
        summary = ActorSummary(1, tips_sent=1)
        summary.sent_amounts["cUSD"] += Decimal("0.5")
        assert summary_body(summary) == "📤 You sent 0.50 cUSD across 1 tip!"

    def test_received_only(self):
        summary = ActorSummary(1, tips_received=3)
        summary.received_amounts["CELO"] += Decimal("3")
        assert summary_body(summary) == "📥 You received 3.00 CELO from 3 tips!"

    def test_both(self):
        summary = ActorSummary(1, tips_sent=2, tips_received=1)
        summary.sent_amounts["cUSD"] += Decimal("1")
        summary.received_amounts["cUSD"] += Decimal("0.1")
        assert summary_body(summary) == (
            "📤 Sent: 1.00 cUSD (2 tips)\n📥 Received: 0.10 cUSD (1 tip)"
        )

    def test_no_activity(self):
        assert summary_body(ActorSummary(1)) is None


class TestSendDailySummaries:
    def test_one_notification_per_active_actor(self, db_engine):
        _add_tx(db_engine, 1, 2, "0.5")
        _add_tx(db_engine, 2, 3, "0.5")
        notifier = MagicMock(spec=Notifier)
        notifier.app_url = "https://celotip.test"
        notifier.send = AsyncMock(side_effect=[True, False, True])

        report = run_async(send_daily_summaries(db_engine, notifier, now=NOW))

        assert report == {"transactions": 2, "actors": 3, "delivered": 2}
        assert notifier.send.await_count == 3
        fids = sorted(call.args[0] for call in notifier.send.await_args_list)
        assert fids == [1, 2, 3]
        kwargs = notifier.send.await_args_list[0].kwargs
        assert kwargs["title"] == "Your CeloTip Daily Summary 📊"
        assert kwargs["kind"] == "daily-summary"

    def test_delivery_error_is_counted_not_raised(self, db_engine):
        _add_tx(db_engine, 1, 2)
        notifier = MagicMock(spec=Notifier)
        notifier.app_url = "https://celotip.test"
        notifier.send = AsyncMock(side_effect=[RuntimeError("boom"), True])

        report = run_async(send_daily_summaries(db_engine, notifier, now=NOW))

        assert report["delivered"] == 1

    def test_nothing_to_send(self, db_engine):
        notifier = MagicMock(spec=Notifier)
        notifier.app_url = "https://celotip.test"
        notifier.send = AsyncMock()

        report = run_async(send_daily_summaries(db_engine, notifier, now=NOW))

        assert report == {"transactions": 0, "actors": 0, "delivered": 0}
        notifier.send.assert_not_awaited()
