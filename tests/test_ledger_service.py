"""
tests/test_ledger_service.py — Tip Transaction Ledger
======================================================
Pending-before-submit, one-way terminal transitions, and per-event
attempt numbering.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import CUSD
from celotip.database.models import TipTransaction
from celotip.errors import LedgerStateError
from celotip.services import ledger_service
from celotip.services.ledger_service import LedgerDraft


def _draft(event_key: str = "reaction:like:100:0xcast1") -> LedgerDraft:
    return LedgerDraft(
        event_key=event_key,
        from_fid=100,
        to_fid=200,
        token_address=CUSD,
        token_symbol="cUSD",
        amount=Decimal("0.01"),
        amount_units=10**16,
        interaction_type="like",
        cast_hash="0xcast1",
    )


def _rows(engine, event_key: str) -> list[TipTransaction]:
    with Session(engine) as session:
        return list(session.scalars(
            select(TipTransaction)
            .where(TipTransaction.event_key == event_key)
            .order_by(TipTransaction.attempt)
        ))


class TestCreatePending:
    def test_inserts_pending_row(self, db_engine):
        tx_id = ledger_service.create_pending(db_engine, _draft())
        tx = ledger_service.get_transaction(db_engine, tx_id)

        assert tx.status == "pending"
        assert tx.attempt == 1
        assert tx.amount == Decimal("0.01")
        assert tx.amount_units == str(10**16)
        assert tx.tx_hash is None

    def test_duplicate_while_pending(self, db_engine):
        assert ledger_service.create_pending(db_engine, _draft())
        assert ledger_service.create_pending(db_engine, _draft()) is None
        assert len(_rows(db_engine, _draft().event_key)) == 1

    def test_duplicate_after_completion(self, db_engine):
        tx_id = ledger_service.create_pending(db_engine, _draft())
        ledger_service.mark_completed(db_engine, tx_id, "0xhash")
        assert ledger_service.create_pending(db_engine, _draft()) is None
        assert ledger_service.has_active_attempt(db_engine, _draft().event_key)

    def test_retry_after_failure_gets_next_attempt(self, db_engine):
        first = ledger_service.create_pending(db_engine, _draft())
        ledger_service.mark_failed(db_engine, first, "reverted")
        assert not ledger_service.has_active_attempt(db_engine, _draft().event_key)

        second = ledger_service.create_pending(db_engine, _draft())
        assert second and second != first
        assert [r.attempt for r in _rows(db_engine, _draft().event_key)] == [1, 2]

    def test_distinct_events_are_independent(self, db_engine):
        assert ledger_service.create_pending(db_engine, _draft("a"))
        assert ledger_service.create_pending(db_engine, _draft("b"))


class TestTransitions:
    def test_completed_records_hash(self, db_engine):
        tx_id = ledger_service.create_pending(db_engine, _draft())
        ledger_service.mark_completed(db_engine, tx_id, "0xhash")
        tx = ledger_service.get_transaction(db_engine, tx_id)
        assert (tx.status, tx.tx_hash) == ("completed", "0xhash")

    def test_completed_requires_hash(self, db_engine):
        tx_id = ledger_service.create_pending(db_engine, _draft())
        with pytest.raises(ValueError):
            ledger_service.mark_completed(db_engine, tx_id, "")

    def test_failed_records_error(self, db_engine):
        tx_id = ledger_service.create_pending(db_engine, _draft())
        ledger_service.mark_failed(db_engine, tx_id, "Transaction reverted: 0xabc")
        tx = ledger_service.get_transaction(db_engine, tx_id)
        assert tx.status == "failed"
        assert tx.error_message == "Transaction reverted: 0xabc"

    @pytest.mark.parametrize("first,second", [
        ("completed", "failed"),
        ("failed", "completed"),
        ("completed", "completed"),
    ])
    def test_terminal_states_are_final(self, db_engine, first, second):
        tx_id = ledger_service.create_pending(db_engine, _draft())
        finish = {
            "completed": lambda: ledger_service.mark_completed(db_engine, tx_id, "0xhash"),
            "failed": lambda: ledger_service.mark_failed(db_engine, tx_id, "boom"),
        }
        finish[first]()
        with pytest.raises(LedgerStateError):
            finish[second]()
        assert ledger_service.get_transaction(db_engine, tx_id).status == first

    def test_unknown_id(self, db_engine):
        with pytest.raises(LedgerStateError):
            ledger_service.mark_failed(db_engine, "missing", "boom")

    def test_record_broadcast_keeps_pending(self, db_engine):
        tx_id = ledger_service.create_pending(db_engine, _draft())
        ledger_service.record_broadcast(db_engine, tx_id, "0xmaybe")
        tx = ledger_service.get_transaction(db_engine, tx_id)
        assert (tx.status, tx.tx_hash) == ("pending", "0xmaybe")
