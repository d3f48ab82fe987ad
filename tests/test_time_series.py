"""Tests for time series, dashboard views and the analysis run."""

import json

import pytest

from scripts import dossier_analyzer
from scripts.dossier_analyzer import (
    BreakdownAnalyzer,
    ProductAnalyzer,
    TimeSeriesAnalyzer,
    dashboard_overview,
    run_dossier_analysis,
)


class TestYearlyEvolution:
    def test_grouped_by_fiscal_year_ascending(self, make_sale):
        sales = [
            make_sale(annee=2022, type="F", caPerso="100,00 €", caGeneral="300,00 €"),
            make_sale(annee=2021, type="P", caPerso="50,00 €"),
            make_sale(annee=2022, type="P", caPerso="10,00 €"),
        ]
        rows = TimeSeriesAnalyzer.yearly_evolution(sales)
        assert [r["year"] for r in rows] == [2021, 2022]
        assert rows[1]["ca_perso"] == pytest.approx(110)
        assert rows[1]["ca_general"] == pytest.approx(300)
        assert rows[1]["count"] == 2
        assert (rows[1]["fiche"], rows[1]["parrainage"]) == (1, 1)

    def test_untyped_sale_counts_as_parrainage(self, make_sale):
        sales = [make_sale(annee=2022, type=""), make_sale(annee=2022, type="F")]
        [row] = TimeSeriesAnalyzer.yearly_evolution(sales)
        assert (row["fiche"], row["parrainage"]) == (1, 1)

    def test_fiscal_year_wins_over_sale_date(self, make_sale):
        sales = [make_sale(annee=2020, dateVente="15/12/2021")]
        assert TimeSeriesAnalyzer.yearly_evolution(sales)[0]["year"] == 2020


class TestSeasonality:
    def test_counts_by_sale_month(self, make_sale):
        sales = [
            make_sale(dateVente="15/03/2021"),
            make_sale(dateVente="01/03/2022"),
            make_sale(dateVente="2020"),
            make_sale(dateVente="bad"),
        ]
        months = TimeSeriesAnalyzer.seasonality(sales)
        assert len(months) == 12
        assert months[0]["count"] == 1
        assert months[2] == {"month": "Mars", "index": 2, "count": 2}
        assert sum(m["count"] for m in months) == 3


class TestAdminCycle:
    def test_average_per_product_slowest_first(self, make_sale):
        sales = [
            make_sale(produit="X", dateVente="01/01/2021", dateFacture="11/01/2021"),
            make_sale(produit="X", dateVente="01/01/2021", dateFacture="21/01/2021"),
            make_sale(produit="Y", dateVente="01/01/2021", dateFacture="31/01/2021"),
            make_sale(produit="Y", dateVente="2015", dateFacture="01/01/2021"),
            make_sale(produit="Y", dateVente="01/02/2021", dateFacture="01/01/2021"),
            make_sale(produit="", dateVente="01/01/2021", dateFacture="02/01/2021"),
            make_sale(produit="Z", dateVente="01/01/2021", dateFacture=""),
        ]
        rows = TimeSeriesAnalyzer.admin_cycle_by_product(sales)
        assert rows == [
            {"product": "Y", "avg_days": 30, "count": 1},
            {"product": "X", "avg_days": 15, "count": 2},
        ]

    def test_half_day_average_rounds_up(self, make_sale):
        sales = [
            make_sale(produit="X", dateVente="01/01/2021", dateFacture="11/01/2021"),
            make_sale(produit="X", dateVente="01/01/2021", dateFacture="12/01/2021"),
        ]
        assert TimeSeriesAnalyzer.admin_cycle_by_product(sales)[0]["avg_days"] == 11


class TestTimeSeriesAnalyzer:
    def test_cancellation_trend_ignores_year_filter(self, make_sale):
        sales = [
            make_sale(annee=2021, statut="Annulé"),
            make_sale(annee=2021, statut="Réglé"),
            make_sale(annee=2022, statut="Réglé"),
        ]
        result = TimeSeriesAnalyzer().analyze(sales, year=2022)
        assert [r["year"] for r in result["yearly_evolution"]] == [2022]
        trend = result["cancellation_trend"]
        assert [(r["year"], r["rate"]) for r in trend] == [(2021, 50.0), (2022, 0.0)]

    def test_empty_input(self):
        result = TimeSeriesAnalyzer().analyze([])
        assert result["yearly_evolution"] == []
        assert result["admin_cycle"] == []
        assert result["cancellation_trend"] == []
        assert [m["count"] for m in result["seasonality"]] == [0] * 12


class TestDashboardViews:
    def test_overview(self, make_client, make_sale):
        sales = [
            make_sale(id=i, annee=2020 + i % 2, caGeneral="100,00 €", caPerso="10,00 €")
            for i in range(1, 8)
        ]
        overview = dashboard_overview(sales, [make_client(1, "A")])
        assert overview["total_ca_general"] == pytest.approx(700)
        assert overview["total_ca_perso"] == pytest.approx(70)
        assert overview["nb_sales"] == 7
        assert overview["nb_clients"] == 1
        assert [r["year"] for r in overview["by_year"]] == [2020, 2021]
        assert [s.id for s in overview["recent_sales"]] == [7, 6, 5, 4, 3]

    def test_breakdown(self, make_sale):
        sales = [
            make_sale(annee=2023, type="F", produit="Pinel", promoteur="Nexity", statut="Réglé", caPerso="300"),
            make_sale(annee=2023, type="P", produit="SCPI", promoteur="nexity ", statut="Réglé", caPerso="100"),
            make_sale(annee=2023, type="", produit="SCPI", promoteur="Kaufman", statut="", caPerso="500"),
            make_sale(annee=2022, type="F", produit="LMNP", promoteur="Other", statut="Annulé", caPerso="50"),
        ]
        result = BreakdownAnalyzer().analyze(sales, year=2023)
        assert result["years"] == [2023, 2022]
        assert result["source_split"]["fiche"] == {"count": 1, "ca_perso": pytest.approx(300)}
        assert result["source_split"]["parrainage"]["count"] == 2
        assert [p["product"] for p in result["products"]] == ["SCPI", "Pinel"]
        assert result["top_promoters"][0] == {"promoter": "Kaufman", "count": 1, "ca_perso": pytest.approx(500)}
        assert result["top_promoters"][1]["count"] == 2
        assert {"status": "Réglé", "count": 2} in result["status_distribution"]
        assert {"status": "Sans statut", "count": 1} in result["status_distribution"]

    def test_product_drill_down(self, make_sale):
        sales = [
            make_sale(annee=2021, produit="Pinel", type="F", caPerso="100",
                      dateVente="01/01/2021", dateFacture="11/01/2021"),
            make_sale(annee=2022, produit=" pinel", type="P", caPerso="200",
                      dateVente="01/01/2022", dateFacture="21/01/2022"),
            make_sale(annee=2023, produit="PINEL", type="P", caPerso="50"),
            make_sale(annee=2023, produit="SCPI", caPerso="999"),
        ]
        result = ProductAnalyzer().analyze(sales, "Pinel")
        assert result["count"] == 3
        assert result["total_ca"] == pytest.approx(350)
        assert [r["avg_days"] for r in result["cycle_by_year"]] == [10, 20, 0]
        assert result["avg_cycle"] == 15
        assert result["source_split"]["parrainage"]["count"] == 2

    def test_unknown_product(self, make_sale):
        result = ProductAnalyzer().analyze([make_sale(produit="SCPI")], "Pinel")
        assert result["count"] == 0
        assert result["avg_cycle"] == 0


class TestRunDossierAnalysis:
    @pytest.fixture(autouse=True)
    def _data_dirs(self, tmp_path, monkeypatch):
        monkeypatch.setattr(dossier_analyzer, "RAW_DIR", tmp_path / "raw")
        monkeypatch.setattr(dossier_analyzer, "PROCESSED_DIR", tmp_path / "processed")
        self.tmp_path = tmp_path

    def test_writes_processed_document(self, make_client, make_sale):
        clients = [make_client("a", "A")]
        sales = [make_sale(client_id="a", annee=2023, type="F", statut="Réglé",
                           caPerso="1 000,00 €", dateVente="10/05/2023")]
        output = run_dossier_analysis(sales=sales, clients=clients)

        path = self.tmp_path / "processed" / "dossier_metrics.json"
        assert path.exists()
        saved = json.loads(path.read_text(encoding="utf-8"))
        assert saved["record_counts"] == {"sales": 1, "clients": 1}
        assert saved["billing"][0]["year"] == 2023
        assert saved["clients"][0]["total_ca_perso"] == pytest.approx(1000)
        assert output["simulator"]["defaults"]["nb_sales"] == 1

    def test_empty_snapshot_gives_zeroed_document(self):
        output = run_dossier_analysis(sales=[], clients=[])
        assert output["billing"] == []
        assert output["overview"]["nb_sales"] == 0
        assert output["simulator"]["defaults"]["nb_sales"] == 30

    def test_reads_latest_raw_export_and_derives_clients(self):
        raw_dir = self.tmp_path / "raw"
        raw_dir.mkdir()
        for stamp, name in (("2024-01-01", "Old"), ("2024-02-01", "New")):
            payload = {"results": [{"id": 1, "client_nom": name, "annee": 2024}]}
            (raw_dir / f"dossier_sales_{stamp}.json").write_text(json.dumps(payload), encoding="utf-8")

        output = run_dossier_analysis()
        assert output["record_counts"] == {"sales": 1, "clients": 1}
        assert output["clients"][0]["client"]["nom"] == "New"
