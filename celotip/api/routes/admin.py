"""
celotip.api.routes.admin — Operator endpoints (JWT‑protected)
==============================================================
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from celotip.api.deps import get_config, get_context, get_current_admin, get_engine
from celotip.config import CeloTipConfig
from celotip.database.engine import run_db
from celotip.errors import LedgerStateError
from celotip.services import reconciliation_service, summary_service
from celotip.services.tip_service import TipContext

router = APIRouter(prefix="/admin", tags=["admin"])


class ResolveRequest(BaseModel):
    status: Literal["completed", "failed"]
    tx_hash: str | None = None
    error_message: str | None = None


@router.get("/transactions/stale")
async def stale_transactions(
    older_than_minutes: int | None = Query(None, ge=1),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    cfg: CeloTipConfig = Depends(get_config),
):
    minutes = older_than_minutes or cfg.stale_pending_minutes
    rows = await run_db(reconciliation_service.list_stale_pending, engine, minutes)
    return {"older_than_minutes": minutes, "transactions": rows}


@router.post("/transactions/reconcile")
async def reconcile_transactions(
    admin: dict = Depends(get_current_admin),
    ctx: TipContext = Depends(get_context),
    cfg: CeloTipConfig = Depends(get_config),
):
    return await run_db(
        reconciliation_service.reconcile_stale,
        ctx.engine, ctx.relay, cfg.stale_pending_minutes,
    )


@router.post("/transactions/{tx_id}/resolve")
async def resolve_transaction(
    tx_id: str,
    body: ResolveRequest,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    try:
        await run_db(
            reconciliation_service.resolve_pending,
            engine, tx_id, body.status,
            tx_hash=body.tx_hash, error_message=body.error_message,
        )
    except LedgerStateError as exc:
        raise HTTPException(409, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {"id": tx_id, "status": body.status}


@router.post("/jobs/daily-summary")
async def daily_summary(
    admin: dict = Depends(get_current_admin),
    ctx: TipContext = Depends(get_context),
):
    return await summary_service.send_daily_summaries(ctx.engine, ctx.notifier)
