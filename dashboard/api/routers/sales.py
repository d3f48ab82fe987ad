"""
RP Conseil Hub — Sales Router
==============================
Sale ("dossier") listing and per-field edits.

Endpoints:
  GET    /api/sales          - List sales (year, client_id filters)
  PATCH  /api/sales/{id}     - Per-field update
  DELETE /api/sales/{id}     - Delete one sale
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dashboard.api.dependencies import Snapshot, get_snapshot
from models.dossier_models import SaleUpdate
from scripts.lib.errors import ConfigError, DataWriteError, RecordNotFoundError
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import delete_sale, update_sale

logger = setup_logger("sales_router")

router = APIRouter(prefix="/api/sales", tags=["sales"])


@router.get("")
async def list_sales(
    year: Optional[int] = Query(None, description="Filter by fiscal year"),
    client_id: Optional[str] = Query(None, description="Filter by client id"),
    snapshot: Snapshot = Depends(get_snapshot),
):
    sales, _ = snapshot
    if year is not None:
        sales = [s for s in sales if s.annee == year]
    if client_id:
        sales = [s for s in sales if s.client_id == client_id]
    return {"results": sales, "count": len(sales)}


@router.patch("/{sale_id}")
def patch_sale(sale_id: str, body: SaleUpdate):
    """Write only the fields present in the body, under their column names."""
    fields = body.to_row()
    if not fields:
        raise HTTPException(status_code=422, detail="No fields to update")
    try:
        return update_sale(sale_id, fields)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Sale not found")
    except (ConfigError, DataWriteError) as e:
        logger.error("Sale update failed: %s", e)
        raise HTTPException(status_code=502, detail="Sale update failed")


@router.delete("/{sale_id}")
def remove_sale(sale_id: str):
    try:
        delete_sale(sale_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Sale not found")
    except (ConfigError, DataWriteError) as e:
        logger.error("Sale delete failed: %s", e)
        raise HTTPException(status_code=502, detail="Sale delete failed")
    return {"status": "deleted", "id": sale_id}
