"""Tests for the per-year billing and cancellation table."""

import pytest

from scripts.dossier_analyzer import BillingTracker
from scripts.lib.config import load_config


class TestBillingTracker:
    def test_referral_ratio_half(self, make_sale):
        sales = [
            make_sale(annee=2023, type="F", statut="Réglé"),
            make_sale(annee=2023, type="F", statut="Réglé"),
            make_sale(annee=2023, type="P", statut="Réglé"),
            make_sale(annee=2023, type="P", statut="Réglé"),
        ]
        row = BillingTracker().for_year(sales, 2023)
        assert row["referral_ratio"] == pytest.approx(50.0)
        assert row["nb_fiches"] == 2
        assert row["nb_parrainage"] == 2

    def test_no_active_sales_gives_zero_rates(self, make_sale):
        sales = [make_sale(annee=2022, type="F", statut="Annulé", montantFacturable="1 000,00 €")]
        row = BillingTracker().for_year(sales, 2022)
        assert row["invoiceable_total"] == 0
        assert row["invoicing_rate"] == 0
        assert row["payment_rate"] == 0
        assert row["advisor_revenue_share"] == 0

    def test_invoicing_breakdown_by_exact_status(self, make_sale):
        sales = [
            make_sale(annee=2024, statut="Réglé", montantFacturable="600,00 €"),
            make_sale(annee=2024, statut="Facturé en attente de paiement", montantFacturable="300,00 €"),
            make_sale(annee=2024, statut="A facturer", montantFacturable="100,00 €"),
            make_sale(annee=2024, statut="Réglé partiellement", montantFacturable="1 000,00 €"),
        ]
        row = BillingTracker().for_year(sales, 2024)
        assert row["invoiceable_total"] == pytest.approx(2000)
        assert row["paid"] == pytest.approx(600)
        assert row["awaiting_payment"] == pytest.approx(300)
        assert row["to_invoice"] == pytest.approx(100)
        assert row["invoicing_rate"] == pytest.approx(45.0)
        assert row["payment_rate"] == pytest.approx(30.0)

    def test_revenue_split(self, make_sale):
        sales = [
            make_sale(
                annee=2021, statut="Réglé", caPerso="1 000,00 €", fIngenierieRPC="200,00 €",
                caGeneral="3 000,00 €", fIngenierie="SO",
            ),
            make_sale(
                annee=2021, statut="Réglé", caPerso="500,00 €", fIngenierieRPC="",
                caGeneral="1 000,00 €", fIngenierie="1 000,00 €",
            ),
            make_sale(annee=2021, statut="Annulé", caPerso="9 999,00 €", caGeneral="9 999,00 €"),
        ]
        row = BillingTracker().for_year(sales, 2021)
        assert row["advisor_revenue_total"] == pytest.approx(1700)
        assert row["house_revenue_total"] == pytest.approx(5000)
        assert row["advisor_revenue_share"] == pytest.approx(34.0)

    def test_end_to_end_scenario(self, make_sale):
        sales = [
            make_sale(
                annee=2023, type="F", statut="Réglé", caPerso="1 000,00 €",
                caGeneral="5 000,00 €", montantFacturable="5 000,00 €",
            ),
            make_sale(
                annee=2023, type="P", statut="Annulé", caPerso="500,00 €",
                annulation="500,00 €", montantFacturable="2 000,00 €",
            ),
        ]
        row = BillingTracker().for_year(sales, 2023)
        assert row["referral_ratio"] == pytest.approx(50.0)
        assert row["cancellation_rate"] == pytest.approx(50.0)
        assert row["cancellation_amount"] == pytest.approx(500)
        assert row["invoiceable_total"] == pytest.approx(5000)
        assert row["paid"] == pytest.approx(5000)
        assert row["nb_sales"] == 2
        assert row["nb_cancelled"] == 1

    def test_years_descending_and_undated_skipped(self, make_sale):
        sales = [
            make_sale(annee=2021),
            make_sale(annee=2023),
            make_sale(annee=None, dateVente=""),
            make_sale(annee=2022),
        ]
        years = [row["year"] for row in BillingTracker().analyze(sales)]
        assert years == [2023, 2022, 2021]

    def test_year_without_sales_is_zeroed(self):
        row = BillingTracker().for_year([], 2030)
        assert row["nb_sales"] == 0
        assert row["referral_ratio"] == 0
        assert row["cancellation_rate"] == 0

    def test_empty_input(self):
        assert BillingTracker().analyze([]) == []

    def test_flags_use_thresholds(self, make_sale):
        sales = [
            make_sale(annee=2023, type="F", statut="Réglé", montantFacturable="100,00 €"),
            make_sale(annee=2023, type="F", statut="Annulé"),
        ]
        row = BillingTracker().for_year(sales, 2023)
        assert row["flags"] == {
            "referral_ratio_low": True,
            "invoicing_rate_low": False,
            "payment_rate_low": False,
            "cancellation_rate_high": True,
        }

        relaxed = load_config({"thresholds": {"cancellation_rate_max": 60.0, "referral_ratio_min": 0.0}})
        row = BillingTracker().for_year(sales, 2023, relaxed)
        assert row["flags"]["cancellation_rate_high"] is False
        assert row["flags"]["referral_ratio_low"] is False
