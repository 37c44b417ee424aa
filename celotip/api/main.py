"""
celotip.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn celotip.api.main:app --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from celotip import __version__  # noqa: E402
from celotip.api.deps import get_config, get_context, get_verifier  # noqa: E402
from celotip.api.routes.admin import router as admin_router  # noqa: E402
from celotip.api.routes.webhook import router as webhook_router  # noqa: E402

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — fail fast on bad configuration."""
    cfg = get_config()
    verifier = get_verifier()
    ctx = get_context()
    logger.info(
        "CeloTip relay started — chain %d, contract %s, relayer %s, verification %s%s",
        cfg.chain_id, cfg.contract_address, ctx.relay.address, cfg.verification_mode,
        "" if verifier.enforcing else " (UNSIGNED WEBHOOKS ACCEPTED)",
    )
    if not ctx.neynar.enabled:
        logger.warning("NEYNAR_API_KEY is not set — only stored profiles can be resolved")
    yield
    logger.info("CeloTip relay shutting down")


app = FastAPI(
    title="CeloTip Relay",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(webhook_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
