"""Tests for the scan and diagnostics jobs against a scratch DuckDB."""
import json

import duckdb
import pandas as pd
import pytest

from automatch.entity.profiles import deal_profile_from_record
from automatch.entity.store import latest_year_record, load_cde_records, load_deal_record, load_deal_records
from automatch.jobs.diagnose import (
    SAMPLE_DEAL_RECORD,
    criteria_variance,
    elimination_counts,
    format_report,
    run_diagnostics,
    score_distribution,
)
from automatch.jobs.scan_cde import run_cde_scan
from automatch.jobs.scan_deal import run_deal_scan, run_remote_scan


@pytest.fixture
def db_path(tmp_path):
    deals = pd.DataFrame([
        {
            "id": "D-1",
            "state": "IL",
            "status": "available",
            "project_type": "Community Health Clinic",
            "nmtc_financing_requested": 8_000_000.0,
            "tract_severely_distressed": True,
            "intake_data": json.dumps({"isRural": False, "organizationType": "nonprofit"}),
        },
        {
            "id": "D-2",
            "state": "TX",
            "status": "seeking_capital",
            "project_type": "Charter School",
            "nmtc_financing_requested": 12_000_000.0,
            "tract_severely_distressed": False,
            "intake_data": json.dumps({"isRural": True}),
        },
        {
            "id": "D-3",
            "state": "IL",
            "status": "closed",
            "project_type": "Grocery",
            "nmtc_financing_requested": 6_000_000.0,
            "tract_severely_distressed": False,
            "intake_data": None,
        },
    ])
    cdes = pd.DataFrame([
        {
            "id": "C-1", "name": "Prairie Capital", "year": 2023, "status": "active",
            "service_area_type": "multi-state", "predominant_market": "IL, IN",
            "amount_remaining": 0.0,
        },
        {
            "id": "C-1", "name": "Prairie Capital", "year": 2024, "status": "active",
            "service_area_type": "multi-state", "predominant_market": "IL, IN",
            "amount_remaining": 10_000_000.0,
        },
        {
            "id": "C-2", "name": "Lone Star Fund", "year": 2024, "status": "active",
            "service_area_type": "statewide", "predominant_market": "TX",
            "amount_remaining": 5_000_000.0,
        },
        {
            "id": "C-3", "name": "Retired Fund", "year": 2020, "status": "inactive",
            "service_area_type": "national", "predominant_market": None,
            "amount_remaining": 1_000_000.0,
        },
    ])

    path = tmp_path / "automatch.duckdb"
    conn = duckdb.connect(str(path))
    try:
        conn.register("deals_df", deals)
        conn.execute("CREATE TABLE deals AS SELECT * FROM deals_df")
        conn.register("cdes_df", cdes)
        conn.execute("CREATE TABLE cdes AS SELECT * FROM cdes_df")
    finally:
        conn.close()
    return str(path)


class TestStore:
    """Tests for DuckDB record loading."""

    def test_load_deal_record(self, db_path):
        record = load_deal_record("D-1", db_path)
        assert record["state"] == "IL"

    def test_unknown_deal(self, db_path):
        with pytest.raises(ValueError, match="Deal not found"):
            load_deal_record("nope", db_path)

    def test_status_filter(self, db_path):
        records = load_deal_records(db_path, statuses=["Available", "seeking_capital"])
        assert sorted(r["id"] for r in records) == ["D-1", "D-2"]

    def test_latest_year(self, db_path):
        record = latest_year_record(load_cde_records(db_path, cde_id="C-1"))
        assert record["year"] == 2024
        with pytest.raises(ValueError):
            latest_year_record([])

    def test_missing_values_are_none(self, db_path):
        record = load_deal_record("D-3", db_path)
        assert record["intake_data"] is None


class TestScanJobs:
    """Tests for the deal and CDE scan jobs."""

    def test_deal_scan_keeps_best_year(self, db_path, tmp_path):
        results, csv_path = run_deal_scan("D-1", db_path, min_score=0, max_results=10, out_dir=tmp_path)

        assert [r.cde_id for r in results] == ["C-1", "C-2"]
        # State-list market text still counts as a stated market for the sector check
        assert results[0].breakdown["sector"] == 0
        assert results[0].breakdown["has_allocation"] == 1
        assert results[0].score == 93
        assert results[1].eliminated_by == "geographic"

        df = pd.read_csv(csv_path)
        assert list(df["cde_id"]) == ["C-1", "C-2"]
        assert "has_allocation" in df.columns

    def test_deal_scan_min_score(self, db_path, tmp_path):
        results, _ = run_deal_scan("D-1", db_path, min_score=70, max_results=10, out_dir=tmp_path)
        assert [r.cde_id for r in results] == ["C-1"]

    def test_cde_scan(self, db_path, tmp_path):
        results, csv_path = run_cde_scan("C-2", db_path, min_score=1, max_results=10, out_dir=tmp_path)

        assert [r.deal_id for r in results] == ["D-2"]
        assert csv_path.exists()

    def test_cde_scan_uses_latest_year(self, db_path, tmp_path):
        results, _ = run_cde_scan(
            "C-1", db_path, min_score=0, max_results=10, statuses=["available"], out_dir=tmp_path
        )
        assert results[0].breakdown["has_allocation"] == 1

    def test_cde_scan_unknown(self, db_path, tmp_path):
        with pytest.raises(ValueError, match="CDE not found"):
            run_cde_scan("missing", db_path, out_dir=tmp_path)

    def test_remote_scan_without_token(self, db_path, tmp_path):
        from automatch.crm.automatch_api import AutoMatchClient

        path = run_remote_scan(
            "D-1", db_path, min_score=0, max_results=10, out_dir=tmp_path, client=AutoMatchClient(token="")
        )
        payload = json.loads(path.read_text(encoding="utf-8"))

        assert payload["source"] == "local"
        assert payload["matches"][0]["cdeId"] == "C-1"


class TestDiagnostics:
    """Tests for the diagnostics helpers."""

    def test_sample_deal(self, make_cde):
        deal = deal_profile_from_record(SAMPLE_DEAL_RECORD)
        cdes = [
            make_cde(cde_id="all"),
            make_cde(cde_id="minority", minority_focus=True),
            make_cde(cde_id="far", service_area_type="local", primary_states=["CA"]),
        ]
        diagnostics = run_diagnostics(deal, cdes)

        assert diagnostics["distribution"] == {100: 1, 93: 1, 0: 1}
        assert diagnostics["eliminated"] == {"geographic": 1, "financing": 0, "passed": 2}

        variance = diagnostics["variance"].set_index("criterion")
        assert variance.loc["minority_focus", "status"] == "varies"
        assert variance.loc["minority_focus", "fail_pct"] == 50
        assert variance.loc["geographic", "status"] == "all_pass"

        report = format_report(deal, diagnostics)
        assert "Eliminated by geographic: 1" in report
        assert "SAMPLE-001" in report

    def test_empty_variance(self):
        assert criteria_variance([]).empty
        assert score_distribution([]) == {}
        assert elimination_counts([]) == {"geographic": 0, "financing": 0, "passed": 0}
