"""Tests for file I/O and header matching utilities."""
import pandas as pd
import pytest

from automatch.utils.fuzzy import find_header_match, map_headers
from automatch.utils.io import read_data_file, timestamped_path, write_results_csv


class TestHeaderMatching:
    """Tests for map_headers and find_header_match."""

    def test_exact_then_substring_then_fuzzy(self):
        expected = {
            "name": ["Name of Allocatee", "CDE Name"],
            "market": ["Predominant Market Served", "Predominant Market"],
            "remaining": "Amount Remaining",
        }
        actual = ["cde name", "Predominant Market (2024)", "Amount Remaning"]

        mapping = map_headers(expected, actual)
        assert mapping == {
            "name": "cde name",
            "market": "Predominant Market (2024)",
            "remaining": "Amount Remaning",
        }

    def test_header_used_once(self):
        expected = {"market": "Predominant Market", "market_served": "Predominant Market Served"}
        mapping = map_headers(expected, ["Predominant Market Served"])
        assert mapping == {"market_served": "Predominant Market Served"}

    def test_below_threshold(self):
        assert find_header_match("Contact Email", ["Year of Award"]) is None
        assert find_header_match("Contact Email", []) is None


class TestFileIO:
    """Tests for reading and writing data files."""

    def test_csv_read_as_text(self, tmp_path):
        path = tmp_path / "input.csv"
        path.write_text("Name,Amount\nAlpha,\"$1,000\"\nBeta,\n", encoding="utf-8")

        df = read_data_file(path)
        assert list(df["Amount"]) == ["$1,000", ""]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_data_file(tmp_path / "missing.csv")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ValueError, match="Unsupported file format"):
            read_data_file(path)

    def test_xlsx(self, tmp_path):
        path = tmp_path / "input.xlsx"
        pd.DataFrame({"Name": ["Alpha"], "Year": [2024]}).to_excel(path, index=False)

        df = read_data_file(path)
        assert df.loc[0, "Year"] == "2024"

    def test_write_results_csv(self, tmp_path):
        path = timestamped_path(tmp_path / "out", "deal_scan_D-1")
        assert path.name.startswith("deal_scan_D-1_")
        assert path.suffix == ".csv"

        written = write_results_csv(pd.DataFrame({"score": [100, 93, 87]}), path, max_rows=2)
        assert written == path
        assert list(pd.read_csv(path)["score"]) == [100, 93]
