"""
RP Conseil Hub — API Server
============================

API layer serving the dossier analytics computed from fresh Supabase
snapshots, plus the per-field record edits of the back office.

Route groups:
  /api/health          - Health check
  /api/metrics/*       - Dashboard, billing, sponsorship, analysis, products
  /api/clients/*       - Client rollup, profile edits, simulation webhooks
  /api/sales/*         - Sale listing and edits
  /api/simulator/*     - N+1 projection
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dashboard.api.middleware import PasswordMiddleware
from scripts.lib.errors import ConfigError

load_dotenv()

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting RP Conseil Hub...")

    # Supabase connection check
    try:
        from scripts.lib.supabase_client import get_client
        get_client()
        logger.info("Supabase connected")
    except ConfigError as e:
        logger.warning("Supabase not available: %s", e)

    if not os.getenv("DASHBOARD_PASSWORD"):
        logger.warning("DASHBOARD_PASSWORD is not set; the API is open")

    logger.info("RP Conseil Hub ready")
    yield
    logger.info("Shutting down RP Conseil Hub...")


# ─── App Setup ────────────────────────────────────────────────

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
).split(",")

app = FastAPI(
    title="RP Conseil Hub",
    version=VERSION,
    description="Back-office analytics for RP Conseil dossiers",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    PasswordMiddleware,
    password=os.getenv("DASHBOARD_PASSWORD", ""),
    require_password=os.getenv("REQUIRE_PASSWORD", "false").lower() == "true",
)


# ─── Include Routers ──────────────────────────────────────────

from dashboard.api.routers.metrics import router as metrics_router
from dashboard.api.routers.clients import router as clients_router
from dashboard.api.routers.sales import router as sales_router
from dashboard.api.routers.simulator import router as simulator_router

app.include_router(metrics_router)
app.include_router(clients_router)
app.include_router(sales_router)
app.include_router(simulator_router)


# ─── Health ───────────────────────────────────────────────────

@app.get("/api/health", tags=["system"])
async def health():
    """Health check with service status."""
    supabase_ok = False
    try:
        from scripts.lib.supabase_client import get_client
        get_client()
        supabase_ok = True
    except ConfigError as e:
        logger.debug("Supabase not configured: %s", e)

    return {
        "status": "healthy",
        "service": "RP Conseil Hub",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": {
            "supabase": supabase_ok,
            "simulation_webhook": bool(os.getenv("SIMULATION_WEBHOOK_URL")),
            "render_webhook": bool(os.getenv("RENDER_WEBHOOK_URL")),
        },
    }
