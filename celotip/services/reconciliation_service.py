"""
celotip.services.reconciliation_service — Stale Pending Tips
=============================================================

A tip whose receipt was not seen in time stays ``pending`` on purpose: it
may still be mined, so it is never resubmitted automatically.  This module
closes those rows.

How it works:
    1. List ``pending`` rows older than the stale cutoff.
    2. For rows carrying a broadcast hash, look the receipt up on-chain:
       status 1 → ``completed``, status 0 → ``failed``, not mined → leave.
    3. Rows without a hash (or still unmined) wait for an admin, who can
       resolve them by hand through :func:`resolve_pending`.

All transitions go through the ledger's guarded one-way updates.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, select

from celotip.database.engine import get_session
from celotip.database.models import TipTransaction, TransactionStatus
from celotip.errors import LedgerStateError
from celotip.services import ledger_service
from celotip.services.chain_service import RelayExecutor

logger = logging.getLogger(__name__)


def list_stale_pending(engine: Engine, older_than_minutes: int, *, now: datetime | None = None) -> list[dict]:
    cutoff = (now or datetime.now(UTC)) - timedelta(minutes=older_than_minutes)
    with get_session(engine) as session:
        rows = session.scalars(
            select(TipTransaction)
            .where(
                TipTransaction.status == TransactionStatus.PENDING.value,
                TipTransaction.created_at < cutoff,
            )
            .order_by(TipTransaction.created_at)
        ).all()
        return [
            {
                "id": tx.id,
                "event_key": tx.event_key,
                "attempt": tx.attempt,
                "from_fid": tx.from_fid,
                "to_fid": tx.to_fid,
                "token_symbol": tx.token_symbol,
                "amount": str(tx.amount),
                "tx_hash": tx.tx_hash,
                "created_at": tx.created_at.isoformat() if tx.created_at else None,
            }
            for tx in rows
        ]


def resolve_pending(
    engine: Engine,
    tx_id: str,
    status: str,
    *,
    tx_hash: str | None = None,
    error_message: str | None = None,
) -> None:
    """Manually settle one pending row.

    Raises ``ValueError`` for an unknown target status and
    :class:`LedgerStateError` if the row is not pending.
    """
    if status == TransactionStatus.COMPLETED.value:
        if not tx_hash:
            current = ledger_service.get_transaction(engine, tx_id)
            tx_hash = current.tx_hash if current else None
        ledger_service.mark_completed(engine, tx_id, tx_hash or "")
    elif status == TransactionStatus.FAILED.value:
        ledger_service.mark_failed(engine, tx_id, error_message or "Resolved as failed by admin")
    else:
        raise ValueError(f"Cannot resolve a transaction to {status!r}")
    logger.warning("Reconciliation: %s resolved to %s by admin", tx_id, status)


def reconcile_stale(
    engine: Engine,
    relay: RelayExecutor,
    older_than_minutes: int,
    *,
    now: datetime | None = None,
) -> dict:
    """Settle stale pending rows whose broadcast hash has a receipt.

    Returns ``{"checked": N, "completed": [...], "failed": [...], "unresolved": [...]}``.
    """
    completed: list[str] = []
    failed: list[str] = []
    unresolved: list[str] = []

    stale = list_stale_pending(engine, older_than_minutes, now=now)
    for row in stale:
        tx_hash = row["tx_hash"]
        if not tx_hash:
            unresolved.append(row["id"])
            continue
        try:
            status = relay.receipt_status(tx_hash)
        except Exception:
            logger.warning("Reconciliation: receipt lookup failed for %s", tx_hash, exc_info=True)
            unresolved.append(row["id"])
            continue

        if status is None:
            unresolved.append(row["id"])
            continue
        try:
            if status == 1:
                ledger_service.mark_completed(engine, row["id"], tx_hash)
                completed.append(row["id"])
            else:
                ledger_service.mark_failed(engine, row["id"], f"Transaction reverted: {tx_hash}")
                failed.append(row["id"])
        except LedgerStateError:
            logger.warning("Reconciliation: %s was settled concurrently", row["id"])
            unresolved.append(row["id"])

    if completed or failed:
        logger.warning(
            "Reconciliation: settled %d completed / %d failed of %d stale",
            len(completed), len(failed), len(stale),
        )
    else:
        logger.info("Reconciliation: %d stale pending, none settled", len(stale))

    return {
        "checked": len(stale),
        "completed": completed,
        "failed": failed,
        "unresolved": unresolved,
        "timestamp": datetime.now(UTC).isoformat(),
    }
