"""CSV and Excel reader producing a raw grid of string cells."""
from pathlib import Path
from typing import List, Optional

import pandas as pd


HEADER_HINTS = ["date", "amount", "description", "debit", "credit", "merchant", "payee"]
EXCEL_SUFFIXES = [".xlsx", ".xls"]


def read_grid(file_path: Path, nrows: Optional[int] = None) -> List[List[str]]:
    """Read a CSV or Excel file into rows of string cells.

    The header row is kept as the first row. Fully empty rows are dropped, and
    for CSV files any preamble lines before the detected header are skipped.

    Args:
        file_path: Path to the file
        nrows: Optional limit on data rows (for previews)

    Returns:
        List of rows, each a list of trimmed strings
    """
    path = Path(file_path)

    if path.suffix.lower() in EXCEL_SUFFIXES:
        df = pd.read_excel(path, header=None, dtype=str, nrows=nrows)
    else:
        skip = _detect_header_row(path)
        df = pd.read_csv(
            path,
            header=None,
            dtype=str,
            skiprows=skip,
            nrows=None if nrows is None else nrows + 1,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines="skip",
        )

    df = df.fillna("")
    rows = []
    for values in df.itertuples(index=False, name=None):
        row = [str(v).strip() for v in values]
        if any(cell for cell in row):
            rows.append(row)
    return rows


def _detect_header_row(path: Path) -> int:
    """Find how many raw lines precede the header row (first 20 lines checked)."""
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        lines = f.readlines()

    for line_no, line in enumerate(lines[:20]):
        lower = line.lower().strip()
        if not lower:
            continue
        # Must have a comma and contain a common column name
        if "," in lower and any(hint in lower for hint in HEADER_HINTS):
            return line_no

    return 0
