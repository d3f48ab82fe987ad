"""
Supabase Client Helper for RP Conseil Hub.
Provides the connection, full-snapshot reads of the dossier tables,
per-field record updates, and dashboard snapshot management.

Usage:
    from scripts.lib.supabase_client import fetch_snapshot, update_sale

    sales, clients = fetch_snapshot()
    update_sale("3f2a...", {"statut": "Réglé"})
"""
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import ValidationError

from models.dossier_models import Client, Product, Sale, SimulationType
from scripts.lib.errors import ConfigError, DataFetchError, DataWriteError, RecordNotFoundError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import retry_on_exception

logger = setup_logger(__name__)

# Load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_KEY = (
    os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    or os.environ.get("SUPABASE_KEY", "")
)

CLIENTS_TABLE = "clients"
SALES_TABLE = "ventes"
PRODUCTS_TABLE = "produits"
SIMULATION_TYPES_TABLE = "simulation_types"
SNAPSHOTS_TABLE = "dashboard_snapshots"

_client = None


def get_client():
    """Create and return a Supabase client (singleton)."""
    global _client
    if _client is not None:
        return _client

    if not SUPABASE_URL or not SUPABASE_KEY:
        raise ConfigError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env",
            setting="SUPABASE_URL",
        )

    from supabase import create_client
    _client = create_client(SUPABASE_URL, SUPABASE_KEY)
    logger.info("Supabase client connected to %s", SUPABASE_URL)
    return _client


# ─── Reads ──────────────────────────────────────────────────

@retry_on_exception(max_attempts=3, delay=1.0)
def _select_all(table: str, order_by: str = None) -> List[Dict[str, Any]]:
    query = get_client().table(table).select("*")
    if order_by:
        query = query.order(order_by)
    result = query.execute()
    return result.data or []


def _validate_rows(model, rows: List[Dict[str, Any]], table: str) -> List:
    records = []
    for row in rows:
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning("Skipping malformed %s row %s: %s", table, row.get("id"), e)
    return records


def fetch_sales() -> List[Sale]:
    """All sales, or [] if the store is unreachable."""
    try:
        return _validate_rows(Sale, _select_all(SALES_TABLE, order_by="id"), SALES_TABLE)
    except Exception as e:
        logger.error("Supabase fetch failed on %s: %s", SALES_TABLE, e)
        return []


def fetch_clients() -> List[Client]:
    """All clients, or [] if the store is unreachable."""
    try:
        return _validate_rows(Client, _select_all(CLIENTS_TABLE, order_by="nom"), CLIENTS_TABLE)
    except Exception as e:
        logger.error("Supabase fetch failed on %s: %s", CLIENTS_TABLE, e)
        return []


def fetch_products() -> List[Product]:
    try:
        return _validate_rows(Product, _select_all(PRODUCTS_TABLE, order_by="nom"), PRODUCTS_TABLE)
    except Exception as e:
        logger.error("Supabase fetch failed on %s: %s", PRODUCTS_TABLE, e)
        return []


def fetch_simulation_types() -> List[SimulationType]:
    """Generation templates offered by the simulation modal."""
    try:
        rows = _select_all(SIMULATION_TYPES_TABLE, order_by="id")
        return _validate_rows(SimulationType, rows, SIMULATION_TYPES_TABLE)
    except Exception as e:
        logger.error("Supabase fetch failed on %s: %s", SIMULATION_TYPES_TABLE, e)
        return []


def fetch_snapshot() -> Tuple[List[Sale], List[Client]]:
    """
    Full (sales, clients) snapshot for the analytics.

    Unlike the other readers this raises, so the API can tell "no data yet"
    apart from "store unreachable".

    Raises:
        DataFetchError: if either table cannot be read.
    """
    try:
        sale_rows = _select_all(SALES_TABLE, order_by="id")
        client_rows = _select_all(CLIENTS_TABLE, order_by="nom")
    except Exception as e:
        logger.error("Supabase snapshot read failed: %s", e)
        raise DataFetchError(f"Could not read the dossier tables: {e}", source="supabase") from e

    sales = _validate_rows(Sale, sale_rows, SALES_TABLE)
    clients = _validate_rows(Client, client_rows, CLIENTS_TABLE)
    logger.info("Snapshot loaded: %d sales, %d clients", len(sales), len(clients))
    return sales, clients


# ─── Writes ─────────────────────────────────────────────────

def _update(table: str, record_id: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    if not fields:
        raise DataWriteError("No fields to update", table=table, record_id=record_id)
    try:
        result = get_client().table(table).update(fields).eq("id", record_id).execute()
    except Exception as e:
        logger.error("Supabase update failed on %s/%s: %s", table, record_id, e)
        raise DataWriteError(str(e), table=table, record_id=record_id) from e
    if not result.data:
        raise RecordNotFoundError(table, record_id)
    logger.info("Updated %s/%s (%s)", table, record_id, ", ".join(sorted(fields)))
    return result.data[0]


def _delete(table: str, record_id: Any) -> None:
    try:
        result = get_client().table(table).delete().eq("id", record_id).execute()
    except Exception as e:
        logger.error("Supabase delete failed on %s/%s: %s", table, record_id, e)
        raise DataWriteError(str(e), table=table, record_id=record_id) from e
    if not result.data:
        raise RecordNotFoundError(table, record_id)
    logger.info("Deleted %s/%s", table, record_id)


def update_sale(sale_id: Any, fields: Dict[str, Any]) -> Sale:
    """
    Write only the given columns of one sale.

    Args:
        sale_id: Stable sale id.
        fields: Column -> value, with store column names (e.g. "caPerso").

    Returns:
        The updated sale.

    Raises:
        RecordNotFoundError: unknown id.
        DataWriteError: the store rejected the update.
    """
    return Sale.model_validate(_update(SALES_TABLE, sale_id, fields))


def delete_sale(sale_id: Any) -> None:
    _delete(SALES_TABLE, sale_id)


def update_client(client_id: Any, fields: Dict[str, Any]) -> Client:
    """Write only the given columns of one client."""
    return Client.model_validate(_update(CLIENTS_TABLE, client_id, fields))


def update_client_simulation(client_id: Any, markdown: str, slot: int = 1) -> Client:
    """Store a generated simulation in the client's simulation_<slot> column."""
    if slot not in (1, 2, 3):
        raise DataWriteError(f"Invalid simulation slot {slot}", table=CLIENTS_TABLE, record_id=client_id)
    return update_client(client_id, {f"simulation_{slot}": markdown})


def delete_client(client_id: Any) -> None:
    """Delete a client; its sales go with it (ON DELETE CASCADE)."""
    _delete(CLIENTS_TABLE, client_id)


# ─── Snapshots ──────────────────────────────────────────────

def upsert_snapshot(source: str, data: Dict) -> bool:
    """
    Insert a new dashboard snapshot for a given source.

    Args:
        source: Source identifier (e.g. "dossier_metrics").
        data: Full processed metrics dict.

    Returns:
        True on success, False on failure.
    """
    try:
        client = get_client()
        row = {
            "source": source,
            "data": data,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
        client.table(SNAPSHOTS_TABLE).insert(row).execute()
        logger.info("Snapshot inserted for source: %s", source)
        return True
    except Exception as e:
        logger.error("Supabase snapshot insert failed for %s: %s", source, e)
        return False


def get_latest_snapshot(source: str) -> Optional[Dict]:
    """Data dict of the latest snapshot for a source, or None."""
    try:
        client = get_client()
        result = (
            client.table(SNAPSHOTS_TABLE)
            .select("data, generated_at")
            .eq("source", source)
            .order("generated_at", desc=True)
            .limit(1)
            .execute()
        )
        if result.data:
            return result.data[0].get("data")
        return None
    except Exception as e:
        logger.error("Supabase fetch failed for %s: %s", source, e)
        return None
