"""
celotip.services.ledger_service — Tip Transaction Ledger
==========================================================

The ``transactions`` table is both the audit log and the idempotency
anchor of the pipeline.

Rules:
- A row is inserted ``pending`` **before** the relayer submits anything,
  so a crash mid-submission leaves a durable record to reconcile.
- ``pending`` moves to ``completed`` or ``failed`` exactly once; the
  guarded ``UPDATE ... WHERE status = 'pending'`` makes a second
  transition fail loudly with :class:`LedgerStateError`.
- One logical webhook event (``event_key``) may have several attempts.
  A new attempt is only allowed when every earlier attempt ``failed``;
  ``(event_key, attempt)`` is unique, so two concurrent deliveries of the
  same event cannot both get a row.

All functions are synchronous; call them via ``run_db``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from celotip.database.engine import get_session
from celotip.database.models import TipTransaction, TransactionStatus
from celotip.errors import LedgerStateError

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (TransactionStatus.PENDING.value, TransactionStatus.COMPLETED.value)


@dataclass(frozen=True, slots=True)
class LedgerDraft:
    """Everything recorded about a tip before it is submitted."""

    event_key: str
    from_fid: int
    to_fid: int
    token_address: str
    token_symbol: str
    amount: Decimal
    amount_units: int
    interaction_type: str
    cast_hash: str | None = None


def has_active_attempt(engine: Engine, event_key: str) -> bool:
    """True if *event_key* already has a pending or completed attempt."""
    with Session(engine) as session:
        found = session.scalar(
            select(TipTransaction.id).where(
                TipTransaction.event_key == event_key,
                TipTransaction.status.in_(_ACTIVE_STATUSES),
            ).limit(1)
        )
    return found is not None


def create_pending(engine: Engine, draft: LedgerDraft) -> str | None:
    """Insert a ``pending`` row and return its id.

    Returns ``None`` if the event already has an active attempt (duplicate
    delivery); nothing is written in that case.
    """
    with Session(engine) as session:
        attempts = session.execute(
            select(TipTransaction.attempt, TipTransaction.status).where(
                TipTransaction.event_key == draft.event_key
            )
        ).all()
        if any(row.status in _ACTIVE_STATUSES for row in attempts):
            logger.info("Ledger: event %s already has an active attempt", draft.event_key)
            return None

        tx_id = str(uuid.uuid4())
        session.add(TipTransaction(
            id=tx_id,
            event_key=draft.event_key,
            attempt=max((row.attempt for row in attempts), default=0) + 1,
            from_fid=draft.from_fid,
            to_fid=draft.to_fid,
            token_address=draft.token_address,
            token_symbol=draft.token_symbol,
            amount=draft.amount,
            amount_units=str(draft.amount_units),
            interaction_type=draft.interaction_type,
            cast_hash=draft.cast_hash,
            status=TransactionStatus.PENDING.value,
        ))
        try:
            session.commit()
        except IntegrityError:
            # A concurrent delivery of the same event won the insert.
            session.rollback()
            logger.info("Ledger: concurrent insert for event %s — treating as duplicate", draft.event_key)
            return None

    logger.info("Ledger: pending %s (%s)", tx_id, draft.event_key)
    return tx_id


def _finish(engine: Engine, tx_id: str, **values) -> None:
    with get_session(engine) as session:
        result = session.execute(
            update(TipTransaction)
            .where(
                TipTransaction.id == tx_id,
                TipTransaction.status == TransactionStatus.PENDING.value,
            )
            .values(updated_at=func.now(), **values)
        )
        if result.rowcount != 1:
            current = session.scalar(
                select(TipTransaction.status).where(TipTransaction.id == tx_id)
            )
            raise LedgerStateError(
                f"Transaction {tx_id} cannot move to {values['status']!r} "
                f"(current status: {current!r})"
            )


def mark_completed(engine: Engine, tx_id: str, tx_hash: str) -> None:
    if not tx_hash:
        raise ValueError("A completed transaction needs a transaction hash")
    _finish(engine, tx_id, status=TransactionStatus.COMPLETED.value, tx_hash=tx_hash)
    logger.info("Ledger: completed %s (%s)", tx_id, tx_hash)


def mark_failed(engine: Engine, tx_id: str, error_message: str) -> None:
    _finish(
        engine, tx_id,
        status=TransactionStatus.FAILED.value,
        error_message=error_message or "Transaction failed",
    )
    logger.info("Ledger: failed %s", tx_id)


def record_broadcast(engine: Engine, tx_id: str, tx_hash: str) -> None:
    """Attach the broadcast hash to a row that stays ``pending``."""
    with get_session(engine) as session:
        session.execute(
            update(TipTransaction)
            .where(
                TipTransaction.id == tx_id,
                TipTransaction.status == TransactionStatus.PENDING.value,
            )
            .values(tx_hash=tx_hash, updated_at=func.now())
        )


def get_transaction(engine: Engine, tx_id: str) -> TipTransaction | None:
    """Load a detached copy of one ledger row."""
    with Session(engine, expire_on_commit=False) as session:
        tx = session.get(TipTransaction, tx_id)
        if tx is not None:
            session.expunge(tx)
        return tx
