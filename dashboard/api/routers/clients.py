"""
RP Conseil Hub — Clients Router
================================
Client list and detail with their sales rollup, profile updates, and
the simulation/restitution round-trips through the webhooks.

Endpoints:
  GET    /api/clients                               - Rollup list (search)
  GET    /api/clients/{id}                          - Client, sales and totals
  PATCH  /api/clients/{id}                          - Per-field profile update
  DELETE /api/clients/{id}                          - Delete (sales cascade)
  GET    /api/clients/{id}/simulation-payload       - Generation webhook body
  POST   /api/clients/{id}/simulation               - Generate and store a simulation
  POST   /api/clients/{id}/restitution              - Render the profile analysis
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dashboard.api.dependencies import Snapshot, get_password, get_snapshot
from models.dossier_models import ClientSummary, ClientUpdate, SimulationType
from scripts.dossier_analyzer import ClientRollup
from scripts.lib.errors import ConfigError, DataWriteError, RecordNotFoundError, WebhookError
from scripts.lib.logger import setup_logger
from scripts.lib.restitution import (
    build_analysis_payload,
    build_simulation_payload,
    request_render,
    request_simulation,
)
from scripts.lib.supabase_client import (
    delete_client,
    fetch_simulation_types,
    update_client,
    update_client_simulation,
)

logger = setup_logger("clients_router")

router = APIRouter(prefix="/api/clients", tags=["clients"])


def _find_summary(snapshot: Snapshot, client_id: str) -> ClientSummary:
    sales, clients = snapshot
    matches = [c for c in clients if str(c.id) == client_id]
    if not matches:
        raise HTTPException(status_code=404, detail="Client not found")
    return ClientRollup().analyze(matches, sales)[0]


def _find_template(template_id: int) -> SimulationType:
    for template in fetch_simulation_types():
        if template.id == template_id:
            return template
    raise HTTPException(status_code=404, detail="Simulation template not found")


@router.get("")
async def list_clients(
    search: Optional[str] = Query(None, description="Substring of the client name"),
    snapshot: Snapshot = Depends(get_snapshot),
):
    """Clients with their totals, most recently active first."""
    sales, clients = snapshot
    summaries = ClientRollup().analyze(clients, sales, search=search)
    return {
        "results": [s.model_dump(mode="json", exclude={"sales"}) for s in summaries],
        "count": len(summaries),
    }


@router.get("/{client_id}")
async def get_client_detail(client_id: str, snapshot: Snapshot = Depends(get_snapshot)):
    return _find_summary(snapshot, client_id)


@router.patch("/{client_id}")
def patch_client(client_id: str, body: ClientUpdate):
    """Write only the fields present in the body."""
    fields = body.to_row()
    if not fields:
        raise HTTPException(status_code=422, detail="No fields to update")
    try:
        return update_client(client_id, fields)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Client not found")
    except (ConfigError, DataWriteError) as e:
        logger.error("Client update failed: %s", e)
        raise HTTPException(status_code=502, detail="Client update failed")


@router.delete("/{client_id}")
def remove_client(client_id: str):
    try:
        delete_client(client_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Client not found")
    except (ConfigError, DataWriteError) as e:
        logger.error("Client delete failed: %s", e)
        raise HTTPException(status_code=502, detail="Client delete failed")
    return {"status": "deleted", "id": client_id}


@router.get("/{client_id}/simulation-payload")
def simulation_payload(
    client_id: str,
    template_id: int = Query(..., description="simulation_types id"),
    snapshot: Snapshot = Depends(get_snapshot),
):
    """Body the generation webhook would receive for this client."""
    summary = _find_summary(snapshot, client_id)
    return build_simulation_payload(_find_template(template_id), summary.client)


@router.post("/{client_id}/simulation")
def run_simulation(
    client_id: str,
    template_id: int = Query(..., description="simulation_types id"),
    slot: int = Query(1, ge=1, le=3, description="simulation_<slot> column"),
    snapshot: Snapshot = Depends(get_snapshot),
    password: Optional[str] = Depends(get_password),
):
    """Generate a simulation through the webhook and store the markdown."""
    summary = _find_summary(snapshot, client_id)
    template = _find_template(template_id)
    try:
        markdown = request_simulation(template, summary.client, password)
        update_client_simulation(client_id, markdown, slot=slot)
    except ConfigError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except (WebhookError, DataWriteError, RecordNotFoundError) as e:
        logger.error("Simulation for client %s failed: %s", client_id, e)
        raise HTTPException(status_code=502, detail="Simulation failed")
    return {"client_id": client_id, "slot": slot, "markdown": markdown}


@router.post("/{client_id}/restitution")
def restitution(
    client_id: str,
    snapshot: Snapshot = Depends(get_snapshot),
    password: Optional[str] = Depends(get_password),
):
    """Render the client's profile analysis to HTML."""
    summary = _find_summary(snapshot, client_id)
    try:
        html = request_render(build_analysis_payload(summary.client), password)
    except ConfigError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except WebhookError as e:
        logger.error("Restitution for client %s failed: %s", client_id, e)
        raise HTTPException(status_code=502, detail="Restitution failed")
    return {"client_id": client_id, "html": html}
