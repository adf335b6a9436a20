"""Deal scan job: score one deal against every active CDE."""
import argparse
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from automatch.config import settings
from automatch.crm.automatch_api import AutoMatchClient, run_with_fallback
from automatch.entity.profiles import deal_profile_from_record
from automatch.entity.store import load_cde_profiles, load_deal_record
from automatch.score.models import MatchResult
from automatch.score.scorer import best_per_cde, results_to_frame, scan_cdes_for_deal
from automatch.score.tables import ReferenceTables, load_tables
from automatch.utils.io import timestamped_path, write_results_csv
from automatch.utils.logs import setup_job_logging

logger = logging.getLogger(__name__)


def run_deal_scan(
    deal_id: str,
    db_path: Optional[str] = None,
    min_score: Optional[int] = None,
    max_results: Optional[int] = None,
    tables: Optional[ReferenceTables] = None,
    out_dir: Optional[Path] = None
) -> Tuple[List[MatchResult], Path]:
    """
    Score a deal against all active CDEs and write the ranked matches to CSV.

    Each CDE keeps its best allocation year.

    Args:
        deal_id: Deal id in the deal table
        db_path: DuckDB path (defaults to settings.duckdb_path)
        min_score: Minimum score (defaults to settings.default_min_score)
        max_results: Result cap (defaults to settings.max_results)
        tables: Reference tables (defaults to the configured tables)
        out_dir: Output directory (defaults to settings.out_dir)

    Returns:
        Tuple of (ranked results, CSV path)
    """
    tables = tables or load_tables(settings.reference_tables_path)
    min_score = settings.default_min_score if min_score is None else min_score
    max_results = settings.max_results if max_results is None else max_results

    deal = deal_profile_from_record(load_deal_record(deal_id, db_path), tables)
    cdes = load_cde_profiles(db_path, tables=tables)
    logger.info(f"Scanning deal {deal_id} ({deal.state}) against {len(cdes)} active CDE rows")

    results = scan_cdes_for_deal(deal, cdes, tables, progress=True)
    results = [r for r in best_per_cde(results) if r.score >= min_score][:max_results]

    output_path = timestamped_path(out_dir or settings.out_dir, f"deal_scan_{deal_id}")
    write_results_csv(results_to_frame(results, settings.reasons_limit), output_path)
    return results, output_path


def run_remote_scan(
    deal_id: str,
    db_path: Optional[str] = None,
    min_score: Optional[int] = None,
    max_results: Optional[int] = None,
    tables: Optional[ReferenceTables] = None,
    out_dir: Optional[Path] = None,
    client: Optional[AutoMatchClient] = None
) -> Path:
    """
    Ask the AutoMatch service for a deal's matches, scoring locally if it is unavailable.

    Returns:
        Path of the JSON response written to the output directory
    """
    tables = tables or load_tables(settings.reference_tables_path)
    min_score = settings.default_min_score if min_score is None else min_score
    max_results = settings.max_results if max_results is None else max_results

    deal = deal_profile_from_record(load_deal_record(deal_id, db_path), tables)
    response = run_with_fallback(
        deal,
        lambda: load_cde_profiles(db_path, tables=tables),
        client=client or AutoMatchClient(),
        min_score=min_score,
        max_results=max_results,
        tables=tables,
    )
    logger.info(f"Deal {deal_id}: {len(response['matches'])} matches from {response['source']} scoring")

    output_path = timestamped_path(out_dir or settings.out_dir, f"deal_matches_{deal_id}", ".json")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(response, indent=2, default=str), encoding="utf-8")
    return output_path


def main(argv=None):
    """Main entry point for the deal scan job."""
    setup_job_logging("scan_deal")
    start_time = datetime.now()

    parser = argparse.ArgumentParser(description="Score one deal against all active CDEs")
    parser.add_argument("--deal-id", type=str, required=True, help="Deal id to scan")
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
    parser.add_argument("--tables", type=str, help="Reference tables JSON (overrides config)")
    parser.add_argument(
        "--remote",
        action="store_true",
        help="Use the AutoMatch service, falling back to local scoring"
    )
    args = parser.parse_args(argv)

    tables = load_tables(args.tables or settings.reference_tables_path)

    if args.remote:
        output_path = run_remote_scan(args.deal_id, args.db, args.min_score, args.max_results, tables)
    else:
        results, output_path = run_deal_scan(args.deal_id, args.db, args.min_score, args.max_results, tables)
        for result in results[:10]:
            logger.info(f"  {result.score:3d}% [{result.strength}] {result.cde_id}: {'; '.join(result.top_reasons(settings.reasons_limit))}")

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(f"Deal scan complete in {duration:.2f} seconds: {output_path}", extra={"duration": duration})


if __name__ == "__main__":
    main()
