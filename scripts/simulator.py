"""
N+1 Simulator
=============
Projects next-year revenue from a reference year's actuals.

The reference year (the latest fiscal year by default) seeds four inputs:
sale count, Fiche share, average advisor revenue and average firm revenue
per sale. Any of them can be overridden; the projected advisor revenue is
then spread over the months using the historical seasonality of sales.

Usage:
    from scripts.simulator import N1Simulator

    sim = N1Simulator(sales)
    sim.defaults()                                   # seeded inputs
    sim.project(SimulationOverrides(nb_sales=40))    # projection
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Union

from models.dossier_models import Sale, SimulationOverrides
from scripts.dossier_analyzer import MONTH_LABELS, monthly_counts
from scripts.lib.config import DEFAULT_CONFIG
from scripts.lib.errors import SimulationError
from scripts.lib.parsers import is_cancelled, parse_currency, round_half_up, safe_div, sale_source

logger = logging.getLogger(__name__)


def reference_stats(sales: List[Sale], year: Optional[int] = None) -> Dict[str, Any]:
    """Actuals of the reference year over its non-cancelled sales."""
    if year is None:
        years = [s.annee for s in sales if s.annee is not None]
        year = max(years) if years else None

    active = [
        s for s in sales
        if year is not None and s.annee == year and not is_cancelled(s.statut)
    ]
    nb_sales = len(active)
    nb_fiche = sum(1 for s in active if sale_source(s.type) == "F")
    total_ca_perso = sum(parse_currency(s.ca_perso) for s in active)
    total_ca_general = sum(parse_currency(s.ca_general) for s in active)

    return {
        "year": year,
        "nb_sales": nb_sales,
        "nb_fiche": nb_fiche,
        "nb_parrainage": nb_sales - nb_fiche,
        "total_ca_perso": total_ca_perso,
        "total_ca_general": total_ca_general,
        "avg_ca_perso": safe_div(total_ca_perso, nb_sales),
        "avg_ca_general": safe_div(total_ca_general, nb_sales),
        "fiche_pct": safe_div(nb_fiche, nb_sales) * 100 if nb_sales else 50.0,
    }


def seasonal_weights(sales: List[Sale]) -> List[float]:
    """Share of each month among all dated, non-cancelled sales."""
    counts = monthly_counts(s for s in sales if not is_cancelled(s.statut))
    total = sum(counts)
    if total == 0:
        return [1 / 12] * 12
    return [count / total for count in counts]


def _growth(projected: float, reference: float) -> float:
    return safe_div(projected - reference, reference) * 100


class N1Simulator:
    """What-if projection seeded from one reference year."""

    def __init__(
        self,
        sales: List[Sale],
        year: Optional[int] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.reference = reference_stats(sales, year)
        self.weights = seasonal_weights(sales)

    def defaults(self) -> Dict[str, Any]:
        """Seed values of the four inputs, rounded like the form controls."""
        ref = self.reference
        if ref["nb_sales"] == 0:
            return dict(self.config["simulator_fallback"])
        return {
            "nb_sales": ref["nb_sales"],
            "fiche_pct": int(round_half_up(ref["fiche_pct"])),
            "avg_ca_perso": int(round_half_up(ref["avg_ca_perso"])),
            "avg_ca_general": int(round_half_up(ref["avg_ca_general"])),
        }

    def _inputs(self, overrides: Optional[SimulationOverrides]) -> Dict[str, Any]:
        inputs = self.defaults()
        if overrides is not None:
            inputs.update(overrides.model_dump(exclude_none=True))

        for field in ("nb_sales", "fiche_pct", "avg_ca_perso", "avg_ca_general"):
            value = inputs[field]
            if not math.isfinite(value) or value < 0:
                raise SimulationError(f"{field} must be a non-negative number", field=field, value=value)
        if inputs["fiche_pct"] > 100:
            raise SimulationError(
                "fiche_pct must be between 0 and 100", field="fiche_pct", value=inputs["fiche_pct"],
            )
        return inputs

    def project(
        self, overrides: Union[SimulationOverrides, Dict[str, Any], None] = None
    ) -> Dict[str, Any]:
        """
        Project the next year from the seeded inputs and ``overrides``.

        Returns:
            inputs, projected counts and totals, growth against the reference
            year, a reference-vs-projection comparison and the monthly
            advisor revenue.

        Raises:
            SimulationError: a count or average is negative, or the Fiche
                share lies outside 0-100.
        """
        if isinstance(overrides, dict):
            overrides = SimulationOverrides.model_validate(overrides)
        inputs = self._inputs(overrides)
        ref = self.reference

        nb_sales = inputs["nb_sales"]
        nb_fiche = int(round_half_up(nb_sales * inputs["fiche_pct"] / 100))
        nb_parrainage = nb_sales - nb_fiche
        total_ca_perso = nb_sales * inputs["avg_ca_perso"]
        total_ca_general = nb_sales * inputs["avg_ca_general"]

        growth = {
            "nb_sales": _growth(nb_sales, ref["nb_sales"]),
            "ca_perso": _growth(total_ca_perso, ref["total_ca_perso"]),
            "ca_general": _growth(total_ca_general, ref["total_ca_general"]),
        }

        comparison = [
            {"metric": "nb_sales", "reference": ref["nb_sales"], "projected": nb_sales},
            {"metric": "nb_fiche", "reference": ref["nb_fiche"], "projected": nb_fiche},
            {"metric": "nb_parrainage", "reference": ref["nb_parrainage"], "projected": nb_parrainage},
            {"metric": "ca_perso", "reference": ref["total_ca_perso"], "projected": total_ca_perso},
            {"metric": "ca_general", "reference": ref["total_ca_general"], "projected": total_ca_general},
        ]
        for row in comparison:
            row["growth"] = _growth(row["projected"], row["reference"])

        monthly = [
            {"month": MONTH_LABELS[i], "weight": weight, "ca_perso": total_ca_perso * weight}
            for i, weight in enumerate(self.weights)
        ]

        logger.debug("Projected %d sales for %s+1", nb_sales, ref["year"])
        return {
            "reference": ref,
            "inputs": inputs,
            "projection": {
                "year": ref["year"] + 1 if ref["year"] is not None else None,
                "nb_sales": nb_sales,
                "nb_fiche": nb_fiche,
                "nb_parrainage": nb_parrainage,
                "total_ca_perso": total_ca_perso,
                "total_ca_general": total_ca_general,
            },
            "growth": growth,
            "comparison": comparison,
            "monthly": monthly,
        }
