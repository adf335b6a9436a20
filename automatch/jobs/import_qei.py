"""QEI import job: load the CDFI Fund allocatee file into the CDE table."""
import argparse
import logging
from datetime import datetime

import pandas as pd

from automatch.config import settings
from automatch.ingest.qei import ingest_qei
from automatch.score.tables import load_tables
from automatch.utils.io import timestamped_path, write_results_csv
from automatch.utils.logs import setup_job_logging

logger = logging.getLogger(__name__)


def summarize_import(df: pd.DataFrame, top_n: int = 10) -> str:
    """Summarize imported rows: counts per allocation year and largest remaining allocations."""
    if df.empty:
        return "No allocatee rows imported"

    lines = [
        f"Allocation-year rows: {len(df)}",
        f"Unique CDEs: {df['id'].nunique()}",
        "",
        "By year:",
    ]
    for year, count in df.groupby("year").size().sort_index().items():
        lines.append(f"  {year}: {count}")

    lines.append("")
    lines.append(f"Top {top_n} by remaining allocation:")
    top = df.sort_values("amount_remaining", ascending=False).head(top_n)
    for rank, (_, row) in enumerate(top.iterrows(), start=1):
        states = row["primary_states"] or "National"
        lines.append(
            f"  {rank}. {row['name']} ({row['year']}): "
            f"${row['amount_remaining'] / 1e6:.1f}M remaining of ${row['total_allocation'] / 1e6:.1f}M; "
            f"states: {states}"
        )
    return "\n".join(lines)


def main(argv=None):
    """Main entry point for the QEI import job."""
    setup_job_logging("import_qei")
    start_time = datetime.now()

    parser = argparse.ArgumentParser(description="Import NMTC allocatee (QEI) data into the CDE table")
    parser.add_argument(
        "--input",
        type=str,
        default=str(settings.qei_path),
        help=f"Allocatee CSV or XLSX file (default: {settings.qei_path})"
    )
    parser.add_argument("--db", type=str, help="DuckDB path (overrides config)")
    parser.add_argument("--table", type=str, help="CDE table name (overrides config)")
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Write a preview CSV instead of updating DuckDB"
    )
    parser.add_argument("--tables", type=str, help="Reference tables JSON (overrides config)")
    args = parser.parse_args(argv)

    tables = load_tables(args.tables or settings.reference_tables_path)
    df = ingest_qei(args.input, db_path=args.db, table=args.table, tables=tables, write=not args.preview)

    logger.info(summarize_import(df))

    if args.preview:
        preview_path = timestamped_path(settings.out_dir, "qei_import_preview")
        write_results_csv(df, preview_path)
        logger.info(f"Preview written to {preview_path}; run without --preview to update DuckDB")

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(f"QEI import complete in {duration:.2f} seconds", extra={"duration": duration})


if __name__ == "__main__":
    main()
