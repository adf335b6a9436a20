"""File I/O utilities for CSV and XLSX."""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)


def read_data_file(file_path: Union[str, Path]) -> pd.DataFrame:
    """
    Read CSV or XLSX file into DataFrame.

    Args:
        file_path: Path to CSV or XLSX file

    Returns:
        DataFrame with file contents

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is not supported
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    suffix = file_path.suffix.lower()

    try:
        if suffix == ".csv":
            # Read as text; currency and percent columns are parsed downstream
            df = pd.read_csv(file_path, dtype=str, keep_default_na=False, low_memory=False)
        elif suffix == ".xlsx":
            df = pd.read_excel(file_path, engine="openpyxl", dtype=str)
        elif suffix == ".xls":
            try:
                df = pd.read_excel(file_path, engine="xlrd", dtype=str)
            except Exception as xlrd_error:
                # If xlrd fails, try openpyxl in case file is misnamed
                logger.warning(f"xlrd failed for {file_path}, trying openpyxl: {xlrd_error}")
                try:
                    df = pd.read_excel(file_path, engine="openpyxl", dtype=str)
                except Exception:
                    raise xlrd_error
        else:
            raise ValueError(f"Unsupported file format: {suffix}")

        logger.info(f"Loaded {len(df)} rows from {file_path}")
        return df

    except Exception as e:
        logger.error(f"Error reading {file_path}: {e}")
        raise


def timestamped_path(out_dir: Union[str, Path], stem: str, suffix: str = ".csv") -> Path:
    """Build ``<out_dir>/<stem>_<YYYYmmdd_HHMM><suffix>``."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M")
    return Path(out_dir) / f"{stem}_{timestamp}{suffix}"


def write_results_csv(
    df: pd.DataFrame,
    output_path: Union[str, Path],
    max_rows: Optional[int] = None
) -> Path:
    """
    Write a results CSV, creating the parent directory.

    Args:
        df: DataFrame to write
        output_path: Output file path
        max_rows: Write only the first N rows

    Returns:
        The written path
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    out_df = df.head(max_rows) if max_rows is not None else df
    out_df.to_csv(output_path, index=False, encoding="utf-8")
    logger.info(f"Wrote {len(out_df)} rows to {output_path}")
    return output_path
