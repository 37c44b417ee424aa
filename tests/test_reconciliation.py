"""
tests/test_reconciliation.py — Stale Pending Tips
==================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from conftest import CUSD
from celotip.database.models import TipTransaction
from celotip.errors import LedgerStateError
from celotip.services import ledger_service
from celotip.services.chain_service import RelayExecutor
from celotip.services.reconciliation_service import (
    list_stale_pending,
    reconcile_stale,
    resolve_pending,
)

NOW = datetime(2026, 10, 18, 12, 0, 0)


def _add_pending(engine, key: str, minutes_ago: int, tx_hash: str | None = None) -> str:
    with Session(engine) as session:
        tx = TipTransaction(
            id=f"tx-{key}",
            event_key=key,
            attempt=1,
            from_fid=1,
            to_fid=2,
            token_address=CUSD,
            token_symbol="cUSD",
            amount=Decimal("0.01"),
            amount_units=str(10**16),
            interaction_type="like",
            status="pending",
            tx_hash=tx_hash,
            created_at=NOW - timedelta(minutes=minutes_ago),
        )
        session.add(tx)
        session.commit()
        return tx.id


class TestListStale:
    def test_only_old_pending_rows(self, db_engine):
        old = _add_pending(db_engine, "old", 90)
        _add_pending(db_engine, "fresh", 5)
        done = _add_pending(db_engine, "done", 120)
        ledger_service.mark_failed(db_engine, done, "boom")

        rows = list_stale_pending(db_engine, 30, now=NOW)

        assert [r["id"] for r in rows] == [old]
        assert rows[0]["amount"].startswith("0.01")


class TestResolvePending:
    def test_resolve_completed(self, db_engine):
        tx_id = _add_pending(db_engine, "a", 90)
        resolve_pending(db_engine, tx_id, "completed", tx_hash="0xfound")
        tx = ledger_service.get_transaction(db_engine, tx_id)
        assert (tx.status, tx.tx_hash) == ("completed", "0xfound")

    def test_resolve_completed_uses_recorded_hash(self, db_engine):
        tx_id = _add_pending(db_engine, "a", 90, tx_hash="0xrecorded")
        resolve_pending(db_engine, tx_id, "completed")
        assert ledger_service.get_transaction(db_engine, tx_id).tx_hash == "0xrecorded"

    def test_resolve_completed_without_any_hash(self, db_engine):
        tx_id = _add_pending(db_engine, "a", 90)
        with pytest.raises(ValueError):
            resolve_pending(db_engine, tx_id, "completed")

    def test_resolve_failed(self, db_engine):
        tx_id = _add_pending(db_engine, "a", 90)
        resolve_pending(db_engine, tx_id, "failed")
        tx = ledger_service.get_transaction(db_engine, tx_id)
        assert tx.status == "failed"
        assert tx.error_message == "Resolved as failed by admin"

    def test_cannot_reopen(self, db_engine):
        tx_id = _add_pending(db_engine, "a", 90)
        resolve_pending(db_engine, tx_id, "failed")
        with pytest.raises(LedgerStateError):
            resolve_pending(db_engine, tx_id, "completed", tx_hash="0x1")

    def test_rejects_pending_target(self, db_engine):
        tx_id = _add_pending(db_engine, "a", 90)
        with pytest.raises(ValueError):
            resolve_pending(db_engine, tx_id, "pending")


class TestReconcileStale:
    def test_settles_by_receipt(self, db_engine):
        mined = _add_pending(db_engine, "mined", 90, tx_hash="0xmined")
        reverted = _add_pending(db_engine, "reverted", 90, tx_hash="0xreverted")
        unmined = _add_pending(db_engine, "unmined", 90, tx_hash="0xunmined")
        no_hash = _add_pending(db_engine, "nohash", 90)

        relay = MagicMock(spec=RelayExecutor)
        relay.receipt_status.side_effect = lambda h: {"0xmined": 1, "0xreverted": 0}.get(h)

        report = reconcile_stale(db_engine, relay, 30, now=NOW)

        assert report["checked"] == 4
        assert report["completed"] == [mined]
        assert report["failed"] == [reverted]
        assert sorted(report["unresolved"]) == sorted([unmined, no_hash])
        assert ledger_service.get_transaction(db_engine, mined).status == "completed"
        assert ledger_service.get_transaction(db_engine, reverted).status == "failed"
        assert ledger_service.get_transaction(db_engine, unmined).status == "pending"

    def test_lookup_error_leaves_row(self, db_engine):
        tx_id = _add_pending(db_engine, "a", 90, tx_hash="0xabc")
        relay = MagicMock(spec=RelayExecutor)
        relay.receipt_status.side_effect = ConnectionError("rpc down")

        report = reconcile_stale(db_engine, relay, 30, now=NOW)

        assert report["unresolved"] == [tx_id]
        assert ledger_service.get_transaction(db_engine, tx_id).status == "pending"

    def test_row_settled_concurrently_is_skipped(self, db_engine):
        raced = _add_pending(db_engine, "raced", 90, tx_hash="0xraced")
        mined = _add_pending(db_engine, "mined", 80, tx_hash="0xmined")

        def receipt_status(tx_hash):
            if tx_hash == "0xraced":
                resolve_pending(db_engine, raced, "failed", error_message="settled by admin")
            return 1

        relay = MagicMock(spec=RelayExecutor)
        relay.receipt_status.side_effect = receipt_status

        report = reconcile_stale(db_engine, relay, 30, now=NOW)

        assert report["unresolved"] == [raced]
        assert report["completed"] == [mined]
        assert ledger_service.get_transaction(db_engine, raced).status == "failed"
        assert ledger_service.get_transaction(db_engine, mined).status == "completed"
