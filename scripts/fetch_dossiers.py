"""
Dossier Data Fetcher
====================

Exports the full Supabase snapshot (sales, clients, products, simulation
templates) to date-stamped raw JSON files under data/raw/, which
run_dossier_analysis reads when it is given no snapshot.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any, List

from dotenv import load_dotenv

from scripts.lib.logger import configure_logging
from scripts.lib.supabase_client import (
    fetch_products,
    fetch_simulation_types,
    fetch_snapshot,
)
from scripts.lib.utils import atomic_write_json

load_dotenv(Path(__file__).parent.parent / ".env")

configure_logging()
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).parent.parent
RAW_DIR = BASE_DIR / "data" / "raw"


def _write_raw(name: str, date_stamp: str, records: List[Any]) -> bool:
    payload = {
        "source": "supabase",
        "object_type": name,
        "captured_at": date_stamp,
        "record_count": len(records),
        "results": [r.model_dump(mode="json", by_alias=True) for r in records],
    }
    out_path = RAW_DIR / f"dossier_{name}_{date_stamp}.json"
    if atomic_write_json(payload, out_path):
        logger.info("Saved %s: %d records -> %s", name, len(records), out_path)
        return True
    return False


def fetch_dossiers() -> None:
    """Main entry: read every dossier table and write raw JSON files.

    Raises:
        DataFetchError: the sales or clients table could not be read.
    """
    logger.info("Starting dossier export")
    date_stamp = time.strftime("%Y-%m-%d")

    sales, clients = fetch_snapshot()
    _write_raw("sales", date_stamp, sales)
    _write_raw("clients", date_stamp, clients)
    _write_raw("products", date_stamp, fetch_products())
    _write_raw("simulation_types", date_stamp, fetch_simulation_types())

    logger.info("Dossier export complete")


if __name__ == "__main__":
    try:
        fetch_dossiers()
    except Exception as e:
        logger.error("Dossier export failed: %s", e, exc_info=True)
        sys.exit(1)
