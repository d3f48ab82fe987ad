"""
Dossier Analytics
=================
Derives every statistic shown by the dashboard from a full snapshot of
sales and clients: client rollups, the per-year billing table, inferred
sponsorship chains, time series and administrative cycles.

All analyzers are pure: they read the snapshot, never mutate it, and
degrade to empty or zeroed structures when there is nothing to read.

Exports:
    ClientRollup, BillingTracker, SponsorshipAnalyzer, TimeSeriesAnalyzer,
    BreakdownAnalyzer, ProductAnalyzer, dashboard_overview,
    run_dossier_analysis
"""

from __future__ import annotations

import glob
import json
import logging
import os
import re
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.dossier_models import (
    Client,
    ClientSummary,
    Sale,
    SaleStatus,
    derive_clients_from_sales,
)
from scripts.lib.config import DEFAULT_CONFIG
from scripts.lib.parsers import (
    days_between,
    is_cancelled,
    normalize_name,
    parse_currency,
    parse_date,
    parse_entry_date,
    round_half_up,
    safe_div,
    sale_source,
)
from scripts.lib.utils import atomic_write_json, load_json

# ---------------------------------------------------------------------------
# Path setup
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
RAW_DIR = BASE_DIR / "data" / "raw"
PROCESSED_DIR = BASE_DIR / "data" / "processed"

logger = logging.getLogger(__name__)

MONTH_LABELS = [
    "Janvier", "Février", "Mars", "Avril", "Mai", "Juin",
    "Juillet", "Août", "Septembre", "Octobre", "Novembre", "Décembre",
]

# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def _sales_of_year(sales: Iterable[Sale], year: Optional[int]) -> List[Sale]:
    """Sales whose fiscal year is ``year``; every sale when year is None."""
    if year is None:
        return list(sales)
    return [s for s in sales if s.annee == year]


def _years(sales: Iterable[Sale]) -> List[int]:
    return sorted({s.annee for s in sales if s.annee is not None})


def _ordinal_desc(value: Optional[date]) -> Tuple[bool, int]:
    """Sort key placing recent dates first and missing dates last."""
    if value is None:
        return (True, 0)
    return (False, -value.toordinal())


def _cycle_days(sale: Sale, ceiling: int) -> Optional[int]:
    """Sale date -> invoice date distance, or None when unusable."""
    sold_on = parse_date(sale.date_vente)
    invoiced_on = parse_date(sale.date_facture)
    if sold_on is None or invoiced_on is None:
        return None
    if invoiced_on <= sold_on:
        return None
    days = days_between(sold_on, invoiced_on)
    if days >= ceiling:
        logger.debug("Cycle outlier discarded for sale %s: %d days", sale.id, days)
        return None
    return days


def _source_split(sales: Iterable[Sale]) -> Dict[str, Dict[str, float]]:
    """Fiche vs Parrainage counts and advisor revenue."""
    split = {
        "fiche": {"count": 0, "ca_perso": 0.0},
        "parrainage": {"count": 0, "ca_perso": 0.0},
    }
    for sale in sales:
        bucket = split["fiche"] if sale_source(sale.type) == "F" else split["parrainage"]
        bucket["count"] += 1
        bucket["ca_perso"] += parse_currency(sale.ca_perso)
    return split


def monthly_counts(sales: Iterable[Sale]) -> List[int]:
    """Sales per calendar month of ``date_vente`` (index 0 = January)."""
    counts = [0] * 12
    for sale in sales:
        sold_on = parse_date(sale.date_vente)
        if sold_on is not None:
            counts[sold_on.month - 1] += 1
    return counts


def group_sales_by_client(
    clients: Iterable[Client], sales: Iterable[Sale]
) -> List[Tuple[Client, List[Sale]]]:
    """Attach each client's sales: by client_id, else by exact client name."""
    by_id: Dict[str, List[Sale]] = defaultdict(list)
    by_name: Dict[str, List[Sale]] = defaultdict(list)
    for sale in sales:
        if sale.client_id:
            by_id[sale.client_id].append(sale)
        else:
            by_name[sale.client_nom].append(sale)

    return [
        (client, by_id.get(str(client.id), []) + by_name.get(client.nom, []))
        for client in clients
    ]


# ============================================================================
# Analyzer Classes
# ============================================================================

class ClientRollup:
    """Per-client revenue totals and recency ordering."""

    def analyze(
        self,
        clients: List[Client],
        sales: List[Sale],
        search: Optional[str] = None,
    ) -> List[ClientSummary]:
        needle = normalize_name(search)
        summaries: List[ClientSummary] = []

        for client, client_sales in group_sales_by_client(clients, sales):
            if needle and needle not in normalize_name(client.display_name):
                continue

            total_ca = 0.0
            total_ca_perso = 0.0
            cancelled = 0
            last_sale: Optional[date] = None
            for sale in client_sales:
                if is_cancelled(sale.statut):
                    cancelled += 1
                else:
                    total_ca += parse_currency(sale.ca_general)
                    total_ca_perso += parse_currency(sale.ca_perso)
                sold_on = parse_date(sale.date_vente)
                if sold_on is not None and (last_sale is None or sold_on > last_sale):
                    last_sale = sold_on

            summaries.append(ClientSummary(
                client=client,
                sales=client_sales,
                total_ca=total_ca,
                total_ca_perso=total_ca_perso,
                sale_count=len(client_sales),
                cancelled_count=cancelled,
                last_sale_date=last_sale,
            ))

        summaries.sort(key=lambda s: (
            _ordinal_desc(s.last_sale_date),
            _ordinal_desc(parse_entry_date(s.client.date_entree)),
        ))
        return summaries


class BillingTracker:
    """Per-year referral, invoicing, payment and cancellation figures."""

    def analyze(
        self, sales: List[Sale], config: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """One row per fiscal year, most recent year first."""
        thresholds = (config or DEFAULT_CONFIG)["thresholds"]
        return [
            self._year_row(year, _sales_of_year(sales, year), thresholds)
            for year in reversed(_years(sales))
        ]

    def for_year(
        self, sales: List[Sale], year: int, config: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """The row for one year; zeroed when the year has no sales."""
        thresholds = (config or DEFAULT_CONFIG)["thresholds"]
        return self._year_row(year, _sales_of_year(sales, year), thresholds)

    def _year_row(
        self, year: int, year_sales: List[Sale], thresholds: Dict[str, float]
    ) -> Dict[str, Any]:
        nb_parrainage = sum(1 for s in year_sales if sale_source(s.type) == "P")
        nb_fiches = sum(1 for s in year_sales if sale_source(s.type) == "F")
        referral_ratio = safe_div(nb_parrainage, nb_parrainage + nb_fiches) * 100

        active = [s for s in year_sales if not is_cancelled(s.statut)]
        cancelled = [s for s in year_sales if is_cancelled(s.statut)]

        def _invoiceable(status: Optional[str] = None) -> float:
            return sum(
                parse_currency(s.montant_facturable)
                for s in active
                if status is None or s.statut.strip() == status
            )

        invoiceable_total = _invoiceable()
        paid = _invoiceable(SaleStatus.PAID)
        awaiting = _invoiceable(SaleStatus.AWAITING_PAYMENT)
        to_invoice = _invoiceable(SaleStatus.TO_INVOICE)
        invoicing_rate = safe_div(paid + awaiting, invoiceable_total) * 100
        payment_rate = safe_div(paid, invoiceable_total) * 100

        cancellation_amount = sum(parse_currency(s.annulation) for s in cancelled)
        cancellation_rate = safe_div(len(cancelled), len(year_sales)) * 100

        advisor_total = sum(
            parse_currency(s.ca_perso) + parse_currency(s.f_ingenierie_rpc) for s in active
        )
        house_total = sum(
            parse_currency(s.ca_general) + parse_currency(s.f_ingenierie) for s in active
        )
        advisor_share = safe_div(advisor_total, house_total) * 100

        return {
            "year": year,
            "nb_parrainage": nb_parrainage,
            "nb_fiches": nb_fiches,
            "referral_ratio": referral_ratio,
            "invoiceable_total": invoiceable_total,
            "paid": paid,
            "awaiting_payment": awaiting,
            "to_invoice": to_invoice,
            "invoicing_rate": invoicing_rate,
            "payment_rate": payment_rate,
            "nb_sales": len(year_sales),
            "nb_cancelled": len(cancelled),
            "cancellation_amount": cancellation_amount,
            "cancellation_rate": cancellation_rate,
            "advisor_revenue_total": advisor_total,
            "house_revenue_total": house_total,
            "advisor_revenue_share": advisor_share,
            "flags": {
                "referral_ratio_low": referral_ratio < thresholds["referral_ratio_min"],
                "invoicing_rate_low": invoicing_rate < thresholds["invoicing_rate_min"],
                "payment_rate_low": payment_rate < thresholds["payment_rate_min"],
                "cancellation_rate_high": cancellation_rate > thresholds["cancellation_rate_max"],
            },
        }


# ---------------------------------------------------------------------------
# Sponsorship inference
# ---------------------------------------------------------------------------

def build_first_sale_index(clients: List[Client], sales: List[Sale]) -> Dict[str, date]:
    """Normalized client name -> earliest parseable sale date.

    Clients sharing a display name collapse into one key holding the
    earliest date of either.
    """
    index: Dict[str, date] = {}
    for client, client_sales in group_sales_by_client(clients, sales):
        dates = [d for d in (parse_date(s.date_vente) for s in client_sales) if d is not None]
        if not dates:
            continue
        key = normalize_name(client.display_name)
        first = min(dates)
        if key not in index or first < index[key]:
            index[key] = first
    return index


def infer_sponsorship_edges(
    clients: List[Client],
    sales: List[Sale],
    ceiling: int = DEFAULT_CONFIG["outlier_ceiling_days"],
) -> List[Dict[str, Any]]:
    """
    Sponsor -> godchild edges inferred from the free-text sponsor field.

    Each godchild yields at most one edge: the first of its sales whose
    sponsor resolves to another client who started strictly earlier, within
    ``ceiling`` days. Sponsors that started later are skipped.
    """
    index = build_first_sale_index(clients, sales)
    edges: List[Dict[str, Any]] = []

    for client, client_sales in group_sales_by_client(clients, sales):
        own_key = normalize_name(client.display_name)
        own_first = index.get(own_key)
        if own_first is None:
            continue

        for sale in client_sales:
            sponsor_key = normalize_name(sale.parrain)
            if not sponsor_key or sponsor_key == own_key or sponsor_key not in index:
                continue

            sponsor_first = index[sponsor_key]
            lag = days_between(sponsor_first, own_first)
            if not (own_first > sponsor_first and 0 < lag < ceiling):
                logger.debug(
                    "Discarded sponsorship %s -> %s (%d days)",
                    sale.parrain, client.display_name, lag,
                )
                continue

            edges.append({
                "sponsor": sale.parrain.strip(),
                "godchild": client.display_name,
                "sponsor_first_sale": sponsor_first,
                "godchild_first_sale": own_first,
                "lag_days": lag,
            })
            break

    return edges


def sponsorship_lag(edges: List[Dict[str, Any]]) -> float:
    """Mean sponsor -> godchild lag in days, one decimal."""
    if not edges:
        return 0.0
    return round_half_up(sum(e["lag_days"] for e in edges) / len(edges), 1)


def sponsor_leaderboard(
    sales: List[Sale],
    year: Optional[int] = None,
    limit: int = DEFAULT_CONFIG["leaderboard_size"],
) -> List[Dict[str, Any]]:
    """Sponsors ranked by the advisor revenue of the sales they brought."""
    board: Dict[str, Dict[str, Any]] = {}
    for sale in _sales_of_year(sales, year):
        key = normalize_name(sale.parrain)
        if not key:
            continue
        entry = board.setdefault(key, {"sponsor": sale.parrain.strip(), "count": 0, "ca_perso": 0.0})
        entry["count"] += 1
        entry["ca_perso"] += parse_currency(sale.ca_perso)

    ranked = sorted(board.values(), key=lambda e: e["ca_perso"], reverse=True)
    return ranked[:limit]


class SponsorshipAnalyzer:
    """Referral chains: lag between sponsor and godchild, top sponsors."""

    def analyze(
        self,
        clients: List[Client],
        sales: List[Sale],
        year: Optional[int] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        config = config or DEFAULT_CONFIG
        edges = infer_sponsorship_edges(clients, sales, config["outlier_ceiling_days"])
        logger.debug("Inferred %d sponsorship edges", len(edges))
        return {
            "year": year,
            "average_lag_days": sponsorship_lag(edges),
            "edge_count": len(edges),
            "edges": edges,
            "leaderboard": sponsor_leaderboard(sales, year, config["leaderboard_size"]),
        }


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------

class TimeSeriesAnalyzer:
    """Yearly evolution, seasonality, admin cycles and cancellation trend."""

    @staticmethod
    def yearly_evolution(sales: List[Sale]) -> List[Dict[str, Any]]:
        rows: Dict[int, Dict[str, Any]] = {}
        for sale in sales:
            if sale.annee is None:
                continue
            row = rows.setdefault(sale.annee, {
                "year": sale.annee, "ca_perso": 0.0, "ca_general": 0.0,
                "count": 0, "fiche": 0, "parrainage": 0,
            })
            row["ca_perso"] += parse_currency(sale.ca_perso)
            row["ca_general"] += parse_currency(sale.ca_general)
            row["count"] += 1
            source = sale_source(sale.type)
            if source == "F":
                row["fiche"] += 1
            else:
                row["parrainage"] += 1
        return [rows[year] for year in sorted(rows)]

    @staticmethod
    def seasonality(sales: List[Sale]) -> List[Dict[str, Any]]:
        counts = monthly_counts(sales)
        return [
            {"month": MONTH_LABELS[i], "index": i, "count": counts[i]}
            for i in range(12)
        ]

    @staticmethod
    def admin_cycle_by_product(
        sales: List[Sale], ceiling: int = DEFAULT_CONFIG["outlier_ceiling_days"]
    ) -> List[Dict[str, Any]]:
        """Average sale -> invoice delay per product, slowest first."""
        cycles: Dict[str, List[int]] = defaultdict(list)
        for sale in sales:
            product = sale.produit.strip()
            if not product:
                continue
            days = _cycle_days(sale, ceiling)
            if days is not None:
                cycles[product].append(days)

        rows = [
            {
                "product": product,
                "avg_days": int(round_half_up(sum(days) / len(days))),
                "count": len(days),
            }
            for product, days in cycles.items()
        ]
        rows.sort(key=lambda r: r["avg_days"], reverse=True)
        return rows

    @staticmethod
    def cancellation_trend(sales: List[Sale]) -> List[Dict[str, Any]]:
        trend = []
        for year in _years(sales):
            year_sales = _sales_of_year(sales, year)
            cancelled = sum(1 for s in year_sales if is_cancelled(s.statut))
            trend.append({
                "year": year,
                "total": len(year_sales),
                "cancelled": cancelled,
                "rate": safe_div(cancelled, len(year_sales)) * 100,
            })
        return trend

    def analyze(
        self,
        sales: List[Sale],
        year: Optional[int] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        config = config or DEFAULT_CONFIG
        scoped = _sales_of_year(sales, year)
        return {
            "year": year,
            "yearly_evolution": self.yearly_evolution(scoped),
            "seasonality": self.seasonality(scoped),
            "admin_cycle": self.admin_cycle_by_product(scoped, config["outlier_ceiling_days"]),
            # The trend line ignores the year filter
            "cancellation_trend": self.cancellation_trend(sales),
        }


# ---------------------------------------------------------------------------
# Dashboard views
# ---------------------------------------------------------------------------

def _recency_key(sale: Sale) -> Tuple[int, date]:
    sequential = sale.id if isinstance(sale.id, int) else -1
    return (sequential, parse_date(sale.date_vente) or date.min)


def dashboard_overview(sales: List[Sale], clients: List[Client]) -> Dict[str, Any]:
    """Headline totals, per-year chart data and the latest sales."""
    by_year = [
        {"year": row["year"], "ca_general": row["ca_general"], "ca_perso": row["ca_perso"]}
        for row in TimeSeriesAnalyzer.yearly_evolution(sales)
    ]
    recent = sorted(sales, key=_recency_key, reverse=True)[:5]
    return {
        "total_ca_general": sum(parse_currency(s.ca_general) for s in sales),
        "total_ca_perso": sum(parse_currency(s.ca_perso) for s in sales),
        "nb_sales": len(sales),
        "nb_clients": len(clients),
        "by_year": by_year,
        "recent_sales": recent,
    }


class BreakdownAnalyzer:
    """Source, product, promoter and status breakdowns of the analysis page."""

    def analyze(
        self,
        sales: List[Sale],
        year: Optional[int] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        config = config or DEFAULT_CONFIG
        scoped = _sales_of_year(sales, year)

        products: Dict[str, Dict[str, Any]] = {}
        promoters: Dict[str, Dict[str, Any]] = {}
        statuses: Dict[str, int] = defaultdict(int)
        for sale in scoped:
            ca_perso = parse_currency(sale.ca_perso)

            product = sale.produit.strip()
            if product:
                entry = products.setdefault(product, {"product": product, "count": 0, "ca_perso": 0.0})
                entry["count"] += 1
                entry["ca_perso"] += ca_perso

            promoter = sale.promoteur.strip()
            if promoter:
                entry = promoters.setdefault(
                    promoter.lower(), {"promoter": promoter, "count": 0, "ca_perso": 0.0},
                )
                entry["count"] += 1
                entry["ca_perso"] += ca_perso

            statuses[sale.statut.strip() or "Sans statut"] += 1

        top_promoters = sorted(promoters.values(), key=lambda e: e["ca_perso"], reverse=True)
        return {
            "year": year,
            "years": list(reversed(_years(sales))),
            "source_split": _source_split(scoped),
            "products": sorted(products.values(), key=lambda e: e["ca_perso"], reverse=True),
            "top_promoters": top_promoters[: config["top_promoters"]],
            "status_distribution": sorted(
                ({"status": k, "count": v} for k, v in statuses.items()),
                key=lambda e: e["count"], reverse=True,
            ),
        }


class ProductAnalyzer:
    """Drill-down on one product."""

    def analyze(
        self,
        sales: List[Sale],
        product: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        config = config or DEFAULT_CONFIG
        ceiling = config["outlier_ceiling_days"]
        key = normalize_name(product)
        product_sales = [s for s in sales if normalize_name(s.produit) == key]

        evolution = [
            {"year": row["year"], "ca_perso": row["ca_perso"], "count": row["count"]}
            for row in TimeSeriesAnalyzer.yearly_evolution(product_sales)
        ]

        cycle_by_year = []
        for year in _years(product_sales):
            days = [
                d for d in (_cycle_days(s, ceiling) for s in _sales_of_year(product_sales, year))
                if d is not None
            ]
            avg = round_half_up(sum(days) / len(days)) if days else 0
            cycle_by_year.append({"year": year, "avg_days": int(avg), "count": len(days)})

        positive = [row["avg_days"] for row in cycle_by_year if row["avg_days"] > 0]
        avg_cycle = int(round_half_up(sum(positive) / len(positive))) if positive else 0

        return {
            "product": product.strip(),
            "count": len(product_sales),
            "total_ca": sum(parse_currency(s.ca_perso) for s in product_sales),
            "avg_cycle": avg_cycle,
            "evolution": evolution,
            "cycle_by_year": cycle_by_year,
            "source_split": _source_split(product_sales),
            "seasonality": TimeSeriesAnalyzer.seasonality(product_sales),
        }


# ============================================================================
# Orchestration
# ============================================================================

def _find_latest_file(kind: str) -> Optional[Path]:
    """Most recent raw export for ``kind``: dossier_{kind}_YYYY-MM-DD.json"""
    files = glob.glob(str(RAW_DIR / f"dossier_{kind}_*.json"))
    date_re = re.compile(r"dossier_" + re.escape(kind) + r"_(\d{4}-\d{2}-\d{2})\.json$")
    dated = []
    for fp in files:
        m = date_re.search(os.path.basename(fp))
        if m:
            dated.append((m.group(1), Path(fp)))
    if not dated:
        logger.warning("No raw export found for '%s' in %s", kind, RAW_DIR)
        return None
    dated.sort(key=lambda x: x[0], reverse=True)
    return dated[0][1]


def _load_raw(kind: str, model) -> Optional[List]:
    path = _find_latest_file(kind)
    if path is None:
        return None
    logger.info("Loading %s from %s", kind, path)
    payload = load_json(path) or {}
    return [model.model_validate(row) for row in payload.get("results", [])]


def run_dossier_analysis(
    sales: Optional[List[Sale]] = None,
    clients: Optional[List[Client]] = None,
    config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Run every analyzer over one snapshot and save the output.

    Missing inputs are read from the latest raw export; without a client
    export the clients are rebuilt from the sales' client names.
    """
    from scripts.simulator import N1Simulator

    config = config or DEFAULT_CONFIG
    logger.info("Starting dossier analysis")

    if sales is None:
        sales = _load_raw("sales", Sale) or []
    if clients is None:
        clients = _load_raw("clients", Client)
        if clients is None:
            clients = derive_clients_from_sales(sales)
    logger.info("Loaded: %d sales, %d clients", len(sales), len(clients))

    logger.info("Running ClientRollup...")
    rollup = ClientRollup().analyze(clients, sales)

    logger.info("Running BillingTracker...")
    billing = BillingTracker().analyze(sales, config)

    logger.info("Running SponsorshipAnalyzer...")
    sponsorship = SponsorshipAnalyzer().analyze(clients, sales, config=config)

    logger.info("Running TimeSeriesAnalyzer...")
    time_series = TimeSeriesAnalyzer().analyze(sales, config=config)

    logger.info("Running BreakdownAnalyzer...")
    breakdown = BreakdownAnalyzer().analyze(sales, config=config)

    logger.info("Computing simulator baseline...")
    simulator = N1Simulator(sales, config=config)

    output = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "data_source": "supabase",
        "record_counts": {"sales": len(sales), "clients": len(clients)},
        "overview": dashboard_overview(sales, clients),
        "clients": [
            summary.model_dump(mode="json", exclude={"sales"}) for summary in rollup
        ],
        "billing": billing,
        "sponsorship": sponsorship,
        "time_series": time_series,
        "breakdown": breakdown,
        "simulator": {
            "reference": simulator.reference,
            "defaults": simulator.defaults(),
            "seasonal_weights": simulator.weights,
        },
        "config_used": config,
    }
    output["overview"]["recent_sales"] = [
        sale.model_dump(mode="json", by_alias=True) for sale in output["overview"]["recent_sales"]
    ]

    output_path = PROCESSED_DIR / "dossier_metrics.json"
    if atomic_write_json(output, output_path):
        logger.info("Analysis complete. Output saved to %s", output_path)

    return output


# ============================================================================
# Standalone entry point
# ============================================================================

if __name__ == "__main__":
    import argparse

    from scripts.lib.config import load_config
    from scripts.lib.logger import configure_logging
    from scripts.lib.supabase_client import upsert_snapshot

    parser = argparse.ArgumentParser(description="RP Conseil Hub dossier analysis")
    parser.add_argument("--push", action="store_true", help="Also store the result as a Supabase snapshot")
    args = parser.parse_args()

    configure_logging()
    results = run_dossier_analysis(config=load_config())
    if args.push and not upsert_snapshot("dossier_metrics", json.loads(json.dumps(results, default=str))):
        logger.warning("Snapshot push failed; the JSON file is still up to date")
    print(f"\nAnalysis complete. {results['record_counts']['sales']} sales processed.")
    print(f"Output: {PROCESSED_DIR / 'dossier_metrics.json'}")
