"""
RP Conseil Hub — Metrics Router
================================
Dashboard analytics computed from a fresh Supabase snapshot.

Endpoints:
  GET /api/metrics/overview          - Headline totals and latest sales
  GET /api/metrics/billing           - Per-year billing table
  GET /api/metrics/sponsorship       - Sponsorship lag and leaderboard
  GET /api/metrics/analysis          - Breakdowns and time series
  GET /api/metrics/products/{name}   - Product drill-down
  GET /api/metrics/snapshot          - Latest saved dossier_metrics document
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dashboard.api.dependencies import Snapshot, get_config, get_snapshot
from scripts.dossier_analyzer import (
    BillingTracker,
    BreakdownAnalyzer,
    ProductAnalyzer,
    SponsorshipAnalyzer,
    TimeSeriesAnalyzer,
    dashboard_overview,
)
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_latest_snapshot
from scripts.lib.utils import load_json

logger = setup_logger("metrics_router")

router = APIRouter(prefix="/api/metrics", tags=["metrics"])

PROCESSED_DIR = Path(__file__).resolve().parent.parent.parent.parent / "data" / "processed"


@router.get("/overview")
async def overview(snapshot: Snapshot = Depends(get_snapshot)):
    """Totals over every sale, per-year chart data and the five latest sales."""
    sales, clients = snapshot
    return dashboard_overview(sales, clients)


@router.get("/billing")
async def billing(
    year: Optional[int] = Query(None, description="Single fiscal year"),
    snapshot: Snapshot = Depends(get_snapshot),
    config: Dict[str, Any] = Depends(get_config),
):
    """Billing and cancellation table, most recent year first."""
    sales, _ = snapshot
    tracker = BillingTracker()
    if year is not None:
        return {"years": [tracker.for_year(sales, year, config)]}
    return {"years": tracker.analyze(sales, config)}


@router.get("/sponsorship")
async def sponsorship(
    year: Optional[int] = Query(None, description="Scope the leaderboard to a year"),
    snapshot: Snapshot = Depends(get_snapshot),
    config: Dict[str, Any] = Depends(get_config),
):
    sales, clients = snapshot
    return SponsorshipAnalyzer().analyze(clients, sales, year=year, config=config)


@router.get("/analysis")
async def analysis(
    year: Optional[int] = Query(None, description="Fiscal year filter"),
    snapshot: Snapshot = Depends(get_snapshot),
    config: Dict[str, Any] = Depends(get_config),
):
    """Source/product/promoter/status breakdowns plus the time series."""
    sales, _ = snapshot
    return {
        "breakdown": BreakdownAnalyzer().analyze(sales, year=year, config=config),
        "time_series": TimeSeriesAnalyzer().analyze(sales, year=year, config=config),
    }


@router.get("/products/{name}")
async def product(
    name: str,
    snapshot: Snapshot = Depends(get_snapshot),
    config: Dict[str, Any] = Depends(get_config),
):
    sales, _ = snapshot
    result = ProductAnalyzer().analyze(sales, name, config=config)
    if result["count"] == 0:
        raise HTTPException(status_code=404, detail=f"No sales for product '{name}'")
    return result


@router.get("/snapshot")
def snapshot():
    """
    Latest processed metrics document.
    Tries Supabase first, falls back to the JSON file.
    """
    data = get_latest_snapshot("dossier_metrics")
    if data:
        return data

    metrics_path = PROCESSED_DIR / "dossier_metrics.json"
    logger.debug("No Supabase snapshot, reading %s", metrics_path)
    if not metrics_path.exists():
        raise HTTPException(
            status_code=404,
            detail="No metrics data. Run: python -m scripts.dossier_analyzer",
        )
    data = load_json(metrics_path)
    if data is None:
        raise HTTPException(status_code=500, detail="Failed to load metrics data")
    return data
