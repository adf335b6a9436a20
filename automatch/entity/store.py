"""Read deal and CDE records from the DuckDB source tables."""
import logging
from typing import Any, Dict, List, Optional, Sequence

import duckdb
import pandas as pd

from automatch.config import settings
from automatch.entity.profiles import cde_profile_from_record, deal_profile_from_record
from automatch.score.models import CDEProfile, DealProfile
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables

logger = logging.getLogger(__name__)


def _query(db_path: Optional[str], sql: str, params: Optional[list] = None) -> pd.DataFrame:
    conn = duckdb.connect(str(db_path or settings.duckdb_path))
    try:
        return conn.execute(sql, params or []).df()
    finally:
        conn.close()


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    # NaN -> None so downstream checks see a plain missing value
    return df.astype(object).where(df.notna(), None).to_dict("records")


def load_deal_record(deal_id: str, db_path: Optional[str] = None, table: Optional[str] = None) -> Dict[str, Any]:
    """
    Load one deal row by id.

    Raises:
        ValueError: If no deal has this id
    """
    table = table or settings.deal_table
    df = _query(db_path, f'SELECT * FROM "{table}" WHERE CAST(id AS VARCHAR) = ?', [str(deal_id)])
    if df.empty:
        raise ValueError(f"Deal not found: {deal_id}")
    return _records(df)[0]


def load_deal_records(
    db_path: Optional[str] = None,
    table: Optional[str] = None,
    statuses: Optional[Sequence[str]] = None
) -> List[Dict[str, Any]]:
    """
    Load deal rows, optionally limited to the given statuses.

    Args:
        db_path: DuckDB path (defaults to settings.duckdb_path)
        table: Deal table (defaults to settings.deal_table)
        statuses: Keep rows whose status is in this list; None keeps all

    Returns:
        List of deal row dicts
    """
    table = table or settings.deal_table
    df = _query(db_path, f'SELECT * FROM "{table}"')
    if statuses is not None and "status" in df.columns:
        wanted = {s.lower() for s in statuses}
        df = df[df["status"].astype(str).str.lower().isin(wanted)]
    logger.info(f"Loaded {len(df)} deals from {table}")
    return _records(df)


def load_cde_records(
    db_path: Optional[str] = None,
    table: Optional[str] = None,
    cde_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Load CDE rows (one per CDE per allocation year), optionally for a single CDE.

    Args:
        db_path: DuckDB path (defaults to settings.duckdb_path)
        table: CDE table (defaults to settings.cde_table)
        cde_id: Restrict to this id

    Returns:
        List of CDE row dicts
    """
    table = table or settings.cde_table
    if cde_id is None:
        df = _query(db_path, f'SELECT * FROM "{table}"')
    else:
        df = _query(db_path, f'SELECT * FROM "{table}" WHERE CAST(id AS VARCHAR) = ?', [str(cde_id)])
    logger.info(f"Loaded {len(df)} CDE rows from {table}")
    return _records(df)


def latest_year_record(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Pick the most recent allocation-year row of a single CDE.

    Raises:
        ValueError: If ``records`` is empty
    """
    if not records:
        raise ValueError("No CDE records to choose from")

    def year_of(record: Dict[str, Any]) -> int:
        try:
            return int(record.get("year") or 0)
        except (TypeError, ValueError):
            return 0

    return max(records, key=year_of)


def load_cde_profiles(
    db_path: Optional[str] = None,
    table: Optional[str] = None,
    tables: ReferenceTables = DEFAULT_TABLES,
    active_only: bool = True
) -> List[CDEProfile]:
    """Load, enrich and profile every CDE row, keeping active CDEs by default."""
    profiles = [cde_profile_from_record(r, tables) for r in load_cde_records(db_path, table)]
    if active_only:
        profiles = [p for p in profiles if p.is_active]
    return profiles


def load_deal_profiles(
    db_path: Optional[str] = None,
    table: Optional[str] = None,
    statuses: Optional[Sequence[str]] = None,
    tables: ReferenceTables = DEFAULT_TABLES
) -> List[DealProfile]:
    return [deal_profile_from_record(r, tables) for r in load_deal_records(db_path, table, statuses)]
