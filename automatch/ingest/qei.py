"""CDFI Fund NMTC allocatee (QEI) data ingestion module."""
import logging
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import duckdb
import pandas as pd
from tqdm import tqdm

from automatch.config import settings
from automatch.entity.enrich import derive_target_sectors, detect_focus_flags, is_missing
from automatch.score.normalize import market_state_tokens, to_int, to_number
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables
from automatch.utils.fuzzy import map_headers
from automatch.utils.io import read_data_file

logger = logging.getLogger(__name__)

# Header mapping: canonical name -> accepted header names, most specific first
EXPECTED_HEADERS = {
    "name": ["Name of Allocatee", "Allocatee Name", "CDE Name"],
    "year": ["Year of Award", "Allocation Year", "Award Year"],
    "total_allocation": ["Total Allocation", "Total Allocation Amount"],
    "amount_finalized": ["Amount Finalized", "Amount Finalized to Date"],
    "amount_remaining": ["Amount Remaining", "Amount Remaining to Allocate"],
    "non_metro_commitment": ["Non-Metro Commitment", "Non-Metro"],
    "service_area": ["Service Area"],
    "controlling_entity": ["Controlling Entity", "Name of Controlling Entity"],
    "predominant_financing": ["Predominant Financing"],
    "predominant_market": ["Predominant Market Served", "Predominant Market"],
    "innovative_activities": ["Innovative Activities", "Innovative"],
    "contact_name": ["Contact Name"],
    "contact_phone": ["Contact Phone"],
    "contact_email": ["Contact Email"],
}

REQUIRED_HEADERS = ["name", "year"]

# Columns the import owns; anything else on an existing row is a platform preference and is kept
QEI_COLUMNS = [
    "id", "name", "slug", "year", "allocation_type", "total_allocation", "amount_finalized",
    "amount_remaining", "non_metro_commitment", "service_area", "service_area_type",
    "controlling_entity", "predominant_financing", "predominant_market", "innovative_activities",
    "contact_name", "contact_phone", "contact_email", "primary_states", "rural_focus",
    "native_american_focus", "uts_focus", "small_deal_fund", "minority_focus", "target_sectors",
    "status",
]

ORG_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "cde.automatch")


def clean_name(name: Any) -> Optional[str]:
    """Collapse whitespace in an allocatee name; None when blank."""
    if is_missing(name):
        return None
    cleaned = re.sub(r"\s+", " ", str(name)).strip()
    return cleaned or None


def organization_id(name: str) -> str:
    """
    Derive a deterministic organization id from a CDE name.

    The same name (ignoring case and spacing) yields the same id on every import.
    """
    normalized = re.sub(r"\s+", " ", name.strip()).lower()
    return str(uuid.uuid5(ORG_ID_NAMESPACE, normalized))


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower().strip()).strip("-")
    return slug[:100]


def service_area_type(service_area: Any) -> str:
    """
    Classify a service-area description.

    Returns:
        "national", "statewide", "multi-state" or "local"; blank or
        unrecognized text counts as national
    """
    if is_missing(service_area):
        return "national"
    text = str(service_area).lower()
    if "national" in text:
        return "national"
    if "statewide" in text or "territory-wide" in text:
        return "statewide"
    if "multi-state" in text:
        return "multi-state"
    if "local" in text:
        return "local"
    return "national"


def clean_phone(phone: Any) -> Optional[str]:
    """Format 10-digit (or 1+10-digit) numbers as (XXX) XXX-XXXX."""
    if is_missing(phone):
        return None
    digits = re.sub(r"\D", "", str(phone))
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return str(phone).strip() or None


def clean_email(email: Any) -> Optional[str]:
    if is_missing(email):
        return None
    cleaned = str(email).strip().lower()
    if "@" in cleaned and "." in cleaned:
        return cleaned
    return None


def clean_contact_name(name: Any) -> Optional[str]:
    if is_missing(name):
        return None
    cleaned = re.sub(r",\s*$", "", str(name))
    return re.sub(r"\s+", " ", cleaned).strip() or None


def _cell(row: pd.Series, header_map: Dict[str, Optional[str]], key: str) -> Any:
    header = header_map.get(key)
    if not header:
        return None
    value = row.get(header)
    return None if is_missing(value) else value


def _text_cell(row: pd.Series, header_map: Dict[str, Optional[str]], key: str) -> Optional[str]:
    value = _cell(row, header_map, key)
    return str(value).strip() if value is not None else None


def build_cde_rows(df: pd.DataFrame, tables: ReferenceTables = DEFAULT_TABLES) -> List[Dict[str, Any]]:
    """
    Map allocatee file rows onto CDE rows (one per CDE per allocation year).

    Args:
        df: Raw allocatee DataFrame
        tables: Reference tables with the sector keyword rules

    Returns:
        List of CDE row dicts

    Raises:
        ValueError: If the name or award-year column cannot be found
    """
    header_map = map_headers(EXPECTED_HEADERS, list(df.columns))
    logger.info(f"Header mapping: {header_map}")

    missing = [r for r in REQUIRED_HEADERS if not header_map.get(r)]
    if missing:
        raise ValueError(f"Missing required headers: {missing}")

    rows = []
    skipped = 0

    for _, row in tqdm(df.iterrows(), total=len(df), desc="Processing allocatees"):
        name = clean_name(_cell(row, header_map, "name"))
        year = to_int(_cell(row, header_map, "year"))
        if not name or not year:
            skipped += 1
            continue

        non_metro = to_number(_cell(row, header_map, "non_metro_commitment"))
        service_area = _text_cell(row, header_map, "service_area")
        market = _text_cell(row, header_map, "predominant_market")
        financing = _text_cell(row, header_map, "predominant_financing")
        activities = _text_cell(row, header_map, "innovative_activities")
        controlling = _text_cell(row, header_map, "controlling_entity")

        flags = detect_focus_flags(activities, non_metro)
        states = market_state_tokens(market)
        sectors = derive_target_sectors(financing, market, activities, tables)

        rows.append({
            "id": organization_id(name),
            "name": name,
            "slug": slugify(name),
            "year": year,
            "allocation_type": "federal",
            "total_allocation": to_number(_cell(row, header_map, "total_allocation")),
            "amount_finalized": to_number(_cell(row, header_map, "amount_finalized")),
            "amount_remaining": to_number(_cell(row, header_map, "amount_remaining")),
            "non_metro_commitment": non_metro,
            "service_area": service_area,
            "service_area_type": service_area_type(service_area),
            "controlling_entity": controlling[:255] if controlling else None,
            "predominant_financing": financing,
            "predominant_market": market,
            "innovative_activities": activities,
            "contact_name": clean_contact_name(_cell(row, header_map, "contact_name")),
            "contact_phone": clean_phone(_cell(row, header_map, "contact_phone")),
            "contact_email": clean_email(_cell(row, header_map, "contact_email")),
            # List columns are stored comma-joined
            "primary_states": ",".join(states) if states else None,
            "rural_focus": flags["rural_focus"],
            "native_american_focus": flags["native_american_focus"],
            "uts_focus": flags["uts_focus"],
            "small_deal_fund": flags["small_deal_fund"],
            "minority_focus": flags["minority_focus"],
            "target_sectors": ",".join(sectors) if sectors else None,
            "status": "active",
        })

    if skipped:
        logger.warning(f"Skipped {skipped} rows without an allocatee name or award year")
    return rows


def _merge_with_existing(conn: duckdb.DuckDBPyConnection, table: str, new_df: pd.DataFrame) -> pd.DataFrame:
    """Keep preference columns and untouched rows from an existing table, keyed on (id, year)."""
    exists = conn.execute(
        "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?", [table]
    ).fetchone()[0]
    if not exists:
        return new_df

    existing = conn.execute(f'SELECT * FROM "{table}"').df()
    if existing.empty or not {"id", "year"}.issubset(existing.columns):
        logger.warning(f"Existing table {table} has no (id, year) key; replacing it")
        return new_df

    existing["year"] = existing["year"].astype("Int64")
    new_df = new_df.copy()
    new_df["year"] = new_df["year"].astype("Int64")

    preference_cols = [c for c in existing.columns if c not in new_df.columns]
    merged = new_df.merge(existing[["id", "year", *preference_cols]], on=["id", "year"], how="left")

    keys = new_df[["id", "year"]].assign(_imported=True)
    untouched = existing.merge(keys, on=["id", "year"], how="left")
    untouched = untouched[untouched["_imported"].isna()].drop(columns=["_imported"])

    logger.info(f"Preserved {len(preference_cols)} preference columns and {len(untouched)} rows not in this import")
    return pd.concat([merged, untouched], ignore_index=True, sort=False)


def ingest_qei(
    file_path: Union[str, Path],
    db_path: Optional[Union[str, Path]] = None,
    table: Optional[str] = None,
    tables: ReferenceTables = DEFAULT_TABLES,
    write: bool = True
) -> pd.DataFrame:
    """
    Ingest the CDFI Fund NMTC allocatee file into the CDE table.

    Rows are upserted on (id, year): columns the file does not carry
    (platform preferences such as min_deal_size) survive a re-import.

    Args:
        file_path: Path to input file (CSV or XLSX)
        db_path: DuckDB path (defaults to settings.duckdb_path)
        table: Target table (defaults to settings.cde_table)
        tables: Reference tables
        write: Persist to DuckDB; False only builds the frame (preview)

    Returns:
        DataFrame of imported CDE rows
    """
    logger.info(f"Starting QEI ingestion from {file_path}")

    df = read_data_file(file_path)
    if df.empty:
        raise ValueError("Input file is empty")

    result_df = pd.DataFrame(build_cde_rows(df, tables), columns=QEI_COLUMNS)
    logger.info(
        f"Built {len(result_df)} allocation-year rows for {result_df['id'].nunique()} CDEs"
    )

    if not write:
        return result_df

    db_path = str(db_path or settings.duckdb_path)
    table = table or settings.cde_table

    conn = duckdb.connect(db_path)
    try:
        out_df = _merge_with_existing(conn, table, result_df)
        conn.register("qei_df", out_df)
        conn.execute(f'CREATE OR REPLACE TABLE "{table}" AS SELECT * FROM qei_df')
        conn.unregister("qei_df")
    finally:
        conn.close()

    logger.info(f"QEI ingestion complete. {len(result_df)} rows written to {table}")
    return result_df
