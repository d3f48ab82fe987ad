"""
RP Conseil Hub — Simulator Router
==================================
N+1 projection from a reference year.

Endpoints:
  GET  /api/simulator/baseline   - Reference actuals and seeded inputs
  POST /api/simulator/project    - Projection with overridden inputs
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dashboard.api.dependencies import Snapshot, get_config, get_snapshot
from models.dossier_models import SimulationOverrides
from scripts.lib.errors import SimulationError
from scripts.lib.logger import setup_logger
from scripts.simulator import N1Simulator

logger = setup_logger("simulator_router")

router = APIRouter(prefix="/api/simulator", tags=["simulator"])


@router.get("/baseline")
async def baseline(
    year: Optional[int] = Query(None, description="Reference year (default: latest)"),
    snapshot: Snapshot = Depends(get_snapshot),
    config: Dict[str, Any] = Depends(get_config),
):
    sales, _ = snapshot
    simulator = N1Simulator(sales, year=year, config=config)
    years = sorted({s.annee for s in sales if s.annee is not None}, reverse=True)
    return {
        "years": years,
        "reference": simulator.reference,
        "defaults": simulator.defaults(),
        "seasonal_weights": simulator.weights,
    }


@router.post("/project")
async def project(
    overrides: SimulationOverrides,
    year: Optional[int] = Query(None, description="Reference year (default: latest)"),
    snapshot: Snapshot = Depends(get_snapshot),
    config: Dict[str, Any] = Depends(get_config),
):
    """Projection where unset inputs keep their seeded values."""
    sales, _ = snapshot
    try:
        return N1Simulator(sales, year=year, config=config).project(overrides)
    except SimulationError as e:
        logger.warning("Rejected simulator input: %s", e)
        raise HTTPException(status_code=422, detail=str(e))
