"""AutoMatch diagnostics: explain how a deal scores across the CDE universe.

Reports the score distribution, how many CDEs each gate eliminates, and which
criteria actually differentiate the CDEs that pass both gates (a criterion
that every CDE passes contributes nothing to the ranking).
"""
import argparse
import logging
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import pandas as pd

from automatch.config import settings
from automatch.entity.profiles import deal_profile_from_record
from automatch.entity.store import load_cde_profiles, load_deal_record
from automatch.score.models import CDEProfile, DealProfile, MatchResult
from automatch.score.rules import CRITERIA, GATES
from automatch.score.scorer import scan_cdes_for_deal
from automatch.score.tables import DEFAULT_TABLES, ReferenceTables, load_tables
from automatch.utils.io import timestamped_path
from automatch.utils.logs import setup_job_logging

logger = logging.getLogger(__name__)

# Deal used when no deal id is given
SAMPLE_DEAL_RECORD = {
    "id": "SAMPLE-001",
    "project_name": "Sample Community Center",
    "state": "IL",
    "city": "Chicago",
    "nmtc_financing_requested": 8_000_000,
    "program_level": "federal",
    "project_type": "community facility",
    "tract_severely_distressed": True,
    "tract_eligible": True,
    "intake_data": {
        "sectorCategory": "community facility",
        "isRural": False,
        "isOwnerOccupied": False,
        "isMinorityOwned": False,
        "isTribal": False,
        "organizationType": "nonprofit",
    },
}


def score_distribution(results: List[MatchResult]) -> Dict[int, int]:
    """Count results per score, highest score first."""
    counts = Counter(r.score for r in results)
    return dict(sorted(counts.items(), reverse=True))


def elimination_counts(results: List[MatchResult]) -> Dict[str, int]:
    """Count results eliminated by each gate plus those passing both."""
    counts = {gate: 0 for gate in GATES}
    passed = 0
    for result in results:
        if result.eliminated_by is None:
            passed += 1
        else:
            counts[result.eliminated_by] += 1
    counts["passed"] = passed
    return counts


def criteria_variance(results: List[MatchResult]) -> pd.DataFrame:
    """
    Summarize how each criterion splits the CDEs that passed both gates.

    Returns:
        DataFrame with criterion, passed, failed, fail_pct and status
        ("varies", "all_pass" or "all_fail"); empty when nothing passed the gates
    """
    scored = [r for r in results if r.passed_gates]
    if not scored:
        return pd.DataFrame(columns=["criterion", "passed", "failed", "fail_pct", "status"])

    rows = []
    for criterion in CRITERIA:
        passed = sum(1 for r in scored if r.breakdown.get(criterion) == 1)
        failed = len(scored) - passed
        if passed and failed:
            status = "varies"
        elif failed == 0:
            status = "all_pass"
        else:
            status = "all_fail"
        rows.append({
            "criterion": criterion,
            "passed": passed,
            "failed": failed,
            "fail_pct": round(failed / len(scored) * 100),
            "status": status,
        })
    return pd.DataFrame(rows)


def run_diagnostics(
    deal: DealProfile,
    cdes: List[CDEProfile],
    tables: ReferenceTables = DEFAULT_TABLES
) -> Dict:
    """
    Score a deal against every CDE and collect the diagnostics.

    Returns:
        Dict with results, distribution, eliminated and variance
    """
    results = scan_cdes_for_deal(deal, cdes, tables, progress=True)
    return {
        "results": results,
        "distribution": score_distribution(results),
        "eliminated": elimination_counts(results),
        "variance": criteria_variance(results),
    }


def format_report(deal: DealProfile, diagnostics: Dict) -> str:
    """Render diagnostics as a plain-text report."""
    sections = []

    sections.append("=== DEAL ===")
    sections.append(f"Deal: {deal.deal_id}")
    sections.append(f"  state: {deal.state}, request: ${deal.allocation_request / 1e6:.1f}M")
    sections.append(f"  project_type: {deal.project_type!r}, sector: {deal.sector!r}")
    sections.append(f"  venture_type: {deal.venture_type!r}, real estate: {deal.is_real_estate.value}")
    sections.append(f"  owner_occupied: {deal.is_owner_occupied.value}, allocation_type: {deal.allocation_type}")
    sections.append("")

    sections.append("=== SCORE DISTRIBUTION ===")
    for score, count in diagnostics["distribution"].items():
        bar = "#" * min(count, 50)
        sections.append(f"  {score:3d}%: {bar} ({count} CDEs)")
    sections.append("")

    eliminated = diagnostics["eliminated"]
    sections.append("=== GATES ===")
    sections.append(f"  Eliminated by geographic: {eliminated['geographic']}")
    sections.append(f"  Eliminated by financing: {eliminated['financing']}")
    sections.append(f"  Passed both gates: {eliminated['passed']}")
    sections.append("")

    sections.append("=== CRITERIA VARIANCE (CDEs passing both gates) ===")
    variance = diagnostics["variance"]
    if variance.empty:
        sections.append("  No CDE passed both gates")
    else:
        sections.append(variance.to_string(index=False))
    sections.append("")

    sections.append("=== EXAMPLE PER SCORE LEVEL ===")
    seen = set()
    for result in diagnostics["results"]:
        if result.score in seen:
            continue
        seen.add(result.score)
        failed = [c for c, v in result.breakdown.items() if v == 0]
        sections.append(f"  {result.score:3d}% {result.cde_id}: failed={failed} reasons={result.reasons}")

    return "\n".join(sections)


def main(argv=None):
    """Main entry point for AutoMatch diagnostics."""
    setup_job_logging("diagnose")
    start_time = datetime.now()

    parser = argparse.ArgumentParser(description="Explain AutoMatch scores for one deal")
    parser.add_argument("--deal-id", type=str, help="Deal id (default: built-in sample deal)")
    parser.add_argument("--db", type=str, help="DuckDB path (overrides config)")
    parser.add_argument("--limit", type=int, help="Score only the first N active CDE rows")
    parser.add_argument("--tables", type=str, help="Reference tables JSON (overrides config)")
    args = parser.parse_args(argv)

    tables = load_tables(args.tables or settings.reference_tables_path)

    if args.deal_id:
        record = load_deal_record(args.deal_id, args.db)
    else:
        logger.info("No deal id given, using the sample deal")
        record = SAMPLE_DEAL_RECORD
    deal = deal_profile_from_record(record, tables)

    cdes = load_cde_profiles(args.db, tables=tables)
    if args.limit:
        cdes = cdes[:args.limit]

    diagnostics = run_diagnostics(deal, cdes, tables)
    report = format_report(deal, diagnostics)

    output_path: Path = timestamped_path(settings.out_dir, f"automatch_diagnostics_{deal.deal_id}", ".txt")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(report, encoding="utf-8")
    print(report)

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(f"Diagnostics written to {output_path} in {duration:.2f} seconds", extra={"duration": duration})


if __name__ == "__main__":
    main()
