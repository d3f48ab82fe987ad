"""
RP Conseil Hub — Shared Route Dependencies
===========================================
Snapshot loading and analytics config for the routers, as FastAPI
dependencies so tests can swap them through app.dependency_overrides.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, Request

from models.dossier_models import Client, Sale
from scripts.lib.config import load_config
from scripts.lib.errors import ConfigError, DataFetchError
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import fetch_snapshot

logger = setup_logger("api_dependencies")

Snapshot = Tuple[List[Sale], List[Client]]


def get_snapshot() -> Snapshot:
    """Full (sales, clients) snapshot; 502 when the store is unreachable."""
    try:
        return fetch_snapshot()
    except (ConfigError, DataFetchError) as e:
        logger.error("Snapshot unavailable: %s", e)
        raise HTTPException(status_code=502, detail="Data store unavailable")


def get_config() -> Dict[str, Any]:
    return load_config()


def get_password(request: Request) -> Optional[str]:
    """Shared secret forwarded to the webhooks."""
    return getattr(request.state, "password", None)
