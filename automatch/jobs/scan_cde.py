"""CDE scan job: score every open deal against one CDE."""
import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from automatch.config import settings
from automatch.entity.profiles import cde_profile_from_record
from automatch.entity.store import latest_year_record, load_cde_records, load_deal_profiles
from automatch.score.models import MatchResult
from automatch.score.scorer import results_to_frame, scan_deals_for_cde
from automatch.score.tables import ReferenceTables, load_tables
from automatch.utils.io import timestamped_path, write_results_csv
from automatch.utils.logs import setup_job_logging

logger = logging.getLogger(__name__)


def run_cde_scan(
    cde_id: str,
    db_path: Optional[str] = None,
    min_score: Optional[int] = None,
    max_results: Optional[int] = None,
    statuses: Optional[Sequence[str]] = None,
    tables: Optional[ReferenceTables] = None,
    out_dir: Optional[Path] = None
) -> Tuple[List[MatchResult], Path]:
    """
    Score open deals against a CDE's latest allocation year and write the ranked matches.

    Args:
        cde_id: CDE id in the CDE table
        db_path: DuckDB path (defaults to settings.duckdb_path)
        min_score: Minimum score (defaults to settings.default_min_score)
        max_results: Result cap (defaults to settings.max_results)
        statuses: Deal statuses to scan (defaults to settings.deal_scan_statuses)
        tables: Reference tables (defaults to the configured tables)
        out_dir: Output directory (defaults to settings.out_dir)

    Returns:
        Tuple of (ranked results, CSV path)

    Raises:
        ValueError: If the CDE id is unknown
    """
    tables = tables or load_tables(settings.reference_tables_path)
    min_score = settings.default_min_score if min_score is None else min_score
    max_results = settings.max_results if max_results is None else max_results
    statuses = settings.deal_scan_statuses if statuses is None else statuses

    records = load_cde_records(db_path, cde_id=cde_id)
    if not records:
        raise ValueError(f"CDE not found: {cde_id}")
    cde = cde_profile_from_record(latest_year_record(records), tables)

    deals = load_deal_profiles(db_path, statuses=statuses, tables=tables)
    logger.info(f"Scanning {len(deals)} deals against CDE {cde.name or cde_id} ({cde.year})")

    results = scan_deals_for_cde(cde, deals, tables, min_score=min_score, max_results=max_results, progress=True)

    output_path = timestamped_path(out_dir or settings.out_dir, f"cde_scan_{cde_id}")
    write_results_csv(results_to_frame(results, settings.reasons_limit), output_path)
    return results, output_path


def main(argv=None):
    """Main entry point for the CDE scan job."""
    setup_job_logging("scan_cde")
    start_time = datetime.now()

    parser = argparse.ArgumentParser(description="Score open deals against one CDE")
    parser.add_argument("--cde-id", type=str, required=True, help="CDE id to scan for")
    parser.add_argument("--db", type=str, help="DuckDB path (overrides config)")
    parser.add_argument(
        "--min-score",
        type=int,
        default=settings.default_min_score,
        help=f"Minimum score to keep (default: {settings.default_min_score})"
    )
    parser.add_argument(
        "--max-results",
        type=int,
        default=settings.max_results,
        help=f"Maximum matches to keep (default: {settings.max_results})"
    )
    parser.add_argument(
        "--statuses",
        type=str,
        help="Comma-separated deal statuses to scan (overrides config)"
    )
    parser.add_argument("--tables", type=str, help="Reference tables JSON (overrides config)")
    args = parser.parse_args(argv)

    statuses = [s.strip() for s in args.statuses.split(",")] if args.statuses else None
    tables = load_tables(args.tables or settings.reference_tables_path)

    results, output_path = run_cde_scan(
        args.cde_id, args.db, args.min_score, args.max_results, statuses, tables
    )

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(
        f"CDE scan complete: {len(results)} matches in {duration:.2f} seconds: {output_path}",
        extra={"duration": duration}
    )


if __name__ == "__main__":
    main()
