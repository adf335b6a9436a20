"""Unit tests for the allocatee (QEI) import."""
import duckdb
import pandas as pd
import pytest

from automatch.ingest.qei import (
    build_cde_rows,
    clean_contact_name,
    clean_email,
    clean_phone,
    ingest_qei,
    organization_id,
    service_area_type,
    slugify,
)
from automatch.jobs.import_qei import summarize_import


@pytest.fixture
def allocatee_frame():
    return pd.DataFrame([
        {
            "Name of Allocatee": "Prairie  Community Capital",
            "Year of Award": "2024",
            "Total Allocation": "$50,000,000",
            "Amount Finalized": "$30,000,000",
            "Amount Remaining": "$20,000,000",
            "Non-Metro Commitment": "45%",
            "Service Area": "Multi-State",
            "Predominant Financing": "Real Estate Financing - Community Facilities",
            "Predominant Market Served": "IL, IN",
            "Innovative Activities": "Small dollar loans; Indian Country investments",
            "Contact Name": "Jane Doe,",
            "Contact Phone": "1-312-555-0100",
            "Contact Email": " Jane@Prairie.org ",
        },
        {
            "Name of Allocatee": "Coastal Impact Fund",
            "Year of Award": "2023",
            "Total Allocation": "40000000",
            "Amount Finalized": "40000000",
            "Amount Remaining": "0",
            "Non-Metro Commitment": "",
            "Service Area": "National",
            "Predominant Financing": "Operating Business",
            "Predominant Market Served": "National",
            "Innovative Activities": "",
            "Contact Name": "",
            "Contact Phone": "",
            "Contact Email": "not-an-email",
        },
        {
            "Name of Allocatee": "",
            "Year of Award": "2024",
            "Total Allocation": "1",
            "Amount Finalized": "",
            "Amount Remaining": "",
            "Non-Metro Commitment": "",
            "Service Area": "",
            "Predominant Financing": "",
            "Predominant Market Served": "",
            "Innovative Activities": "",
            "Contact Name": "",
            "Contact Phone": "",
            "Contact Email": "",
        },
    ])


class TestCleaners:
    """Tests for allocatee field cleaners."""

    def test_organization_id_is_stable(self):
        assert organization_id("Prairie Community Capital") == organization_id("  prairie   community capital ")
        assert organization_id("A") != organization_id("B")

    def test_slugify(self):
        assert slugify("Prairie Community Capital, LLC") == "prairie-community-capital-llc"

    @pytest.mark.parametrize("text,expected", [
        ("National", "national"),
        ("Statewide", "statewide"),
        ("Territory-wide", "statewide"),
        ("Multi-State", "multi-state"),
        ("Local", "local"),
        ("", "national"),
        ("Somewhere", "national"),
    ])
    def test_service_area_type(self, text, expected):
        assert service_area_type(text) == expected

    def test_contacts(self):
        assert clean_phone("312.555.0100") == "(312) 555-0100"
        assert clean_phone("+1 (312) 555-0100") == "(312) 555-0100"
        assert clean_phone("ext 12") == "ext 12"
        assert clean_email(" A@B.ORG ") == "a@b.org"
        assert clean_email("nobody") is None
        assert clean_contact_name("Jane   Doe, ") == "Jane Doe"


class TestBuildCdeRows:
    """Tests for mapping allocatee rows onto CDE rows."""

    def test_rows(self, allocatee_frame):
        rows = build_cde_rows(allocatee_frame)

        assert len(rows) == 2
        prairie = rows[0]
        assert prairie["name"] == "Prairie Community Capital"
        assert prairie["year"] == 2024
        assert prairie["amount_remaining"] == 20_000_000
        assert prairie["service_area_type"] == "multi-state"
        assert prairie["primary_states"] == "IL,IN"
        assert prairie["rural_focus"] is True
        assert prairie["small_deal_fund"] is True
        assert prairie["native_american_focus"] is True
        assert prairie["uts_focus"] is False
        assert prairie["target_sectors"].startswith("Community Facility")
        assert prairie["contact_phone"] == "(312) 555-0100"
        assert prairie["contact_email"] == "jane@prairie.org"
        assert prairie["contact_name"] == "Jane Doe"
        assert prairie["allocation_type"] == "federal"
        assert prairie["status"] == "active"

        coastal = rows[1]
        assert coastal["primary_states"] is None
        assert coastal["service_area_type"] == "national"
        assert coastal["contact_email"] is None

    def test_missing_required_headers(self):
        df = pd.DataFrame([{"Total Allocation": "1", "Service Area": "National"}])
        with pytest.raises(ValueError, match="Missing required headers"):
            build_cde_rows(df)


class TestIngestQei:
    """Tests for ingest_qei against DuckDB."""

    def test_import_and_reimport_keeps_preferences(self, tmp_path, allocatee_frame):
        csv_path = tmp_path / "allocatees.csv"
        allocatee_frame.to_csv(csv_path, index=False)
        db_path = tmp_path / "automatch.duckdb"

        imported = ingest_qei(csv_path, db_path=db_path, table="cdes")
        assert len(imported) == 2

        prairie_id = organization_id("Prairie Community Capital")
        conn = duckdb.connect(str(db_path))
        try:
            conn.execute("ALTER TABLE cdes ADD COLUMN min_deal_size DOUBLE")
            conn.execute("UPDATE cdes SET min_deal_size = 2000000 WHERE id = ?", [prairie_id])
            conn.execute(
                "INSERT INTO cdes (id, name, year, status, rural_focus, native_american_focus, uts_focus, "
                "small_deal_fund, minority_focus) "
                "VALUES ('legacy-1', 'Legacy CDE', 2019, 'active', false, false, false, false, false)"
            )
        finally:
            conn.close()

        allocatee_frame.loc[0, "Amount Remaining"] = "$15,000,000"
        allocatee_frame.to_csv(csv_path, index=False)
        ingest_qei(csv_path, db_path=db_path, table="cdes")

        conn = duckdb.connect(str(db_path))
        try:
            df = conn.execute("SELECT * FROM cdes ORDER BY name").df()
        finally:
            conn.close()

        assert len(df) == 3
        prairie = df[df["id"] == prairie_id].iloc[0]
        assert prairie["amount_remaining"] == 15_000_000
        assert prairie["min_deal_size"] == 2_000_000
        assert "legacy-1" in set(df["id"])

    def test_preview_does_not_write(self, tmp_path, allocatee_frame):
        csv_path = tmp_path / "allocatees.csv"
        allocatee_frame.to_csv(csv_path, index=False)
        db_path = tmp_path / "preview.duckdb"

        df = ingest_qei(csv_path, db_path=db_path, write=False)
        assert len(df) == 2
        assert not db_path.exists()

    def test_summary(self, allocatee_frame):
        df = pd.DataFrame(build_cde_rows(allocatee_frame))
        summary = summarize_import(df, top_n=1)

        assert "Unique CDEs: 2" in summary
        assert "1. Prairie Community Capital (2024): $20.0M remaining of $50.0M; states: IL,IN" in summary
        assert summarize_import(pd.DataFrame()) == "No allocatee rows imported"
