"""
celotip.api.routes.webhook — Neynar webhook receiver
=====================================================

``POST /api/webhooks/neynar``

* 401 ``{"error": "Invalid signature"}`` — signature check failed.
* 500 ``{"error": "..."}``               — unexpected internal failure.
* 200 ``{"success": bool, "message": str, ...}`` — every other outcome.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from celotip.api.deps import get_context, get_verifier
from celotip.constants import WEBHOOK_SIGNATURE_HEADER
from celotip.engine.signature import WebhookVerifier
from celotip.services.tip_service import TipContext, process_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/neynar")
async def neynar_webhook(
    request: Request,
    verifier: WebhookVerifier = Depends(get_verifier),
    ctx: TipContext = Depends(get_context),
):
    raw_body = await request.body()

    if not verifier.verify(raw_body, request.headers.get(WEBHOOK_SIGNATURE_HEADER)):
        logger.warning("Rejected webhook with invalid signature from %s",
                       request.client.host if request.client else "?")
        return JSONResponse({"error": "Invalid signature"}, status_code=401)

    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {"success": False, "message": "Missing required webhook data"}

    try:
        outcome = await process_webhook(ctx, payload)
    except Exception as exc:
        logger.exception("Webhook processing failed")
        return JSONResponse({"error": str(exc) or type(exc).__name__}, status_code=500)

    return outcome.to_response()
