from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from ..models.membership_request import REQUIRED_COLUMNS
from ..models.row_data import RowData

"""Input table reader.

Accepts a UTF-8 CSV or an .xlsx workbook (first sheet). The first line is the
header; the four required columns must be present by exact name. Every cell is
read as text so account names such as ``007`` keep their leading zeros.
Wholly blank lines are dropped here; rows with some blank required fields are
passed on and become "skipped" in the processor.
"""

__all__ = [
    "InputReadError",
    "InputTable",
    "MissingColumnsError",
    "read_input_table",
]

SUPPORTED_SUFFIXES = (".csv", ".xlsx")


class InputReadError(Exception):
    """Raised when the input file is missing or cannot be parsed."""


class MissingColumnsError(Exception):
    """Raised when required columns are missing from the header."""


@dataclass
class InputTable:
    path: Path
    columns: list[str]
    rows: list[RowData]


def _read_frame(path: Path) -> pd.DataFrame:
    if path.suffix.lower() == ".xlsx":
        return pd.read_excel(path, sheet_name=0, dtype=str, keep_default_na=False)
    return pd.read_csv(path, dtype=str, encoding="utf-8", keep_default_na=False)


def read_input_table(path: Path) -> InputTable:
    """Read and column-check the input table.

    Raises:
        InputReadError: missing file, unsupported type, or unparsable content
        MissingColumnsError: one or more required columns absent
    """
    path = Path(path)
    if not path.exists():
        raise InputReadError(f"input file not found: {path}")
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise InputReadError(
            f"unsupported input type {path.suffix!r} (expected one of {', '.join(SUPPORTED_SUFFIXES)})"
        )
    try:
        df = _read_frame(path)
    except (ValueError, UnicodeDecodeError, pd.errors.ParserError, OSError) as e:
        raise InputReadError(f"cannot read {path.name}: {e}") from e

    columns = [str(c).strip() for c in df.columns]
    df.columns = columns
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        raise MissingColumnsError(f"{path.name} missing columns: {missing}")

    rows: list[RowData] = []
    for idx, raw in enumerate(df[list(REQUIRED_COLUMNS)].itertuples(index=False), start=1):
        values = dict(zip(REQUIRED_COLUMNS, raw, strict=True))
        if all(not str(v).strip() for v in values.values()):
            continue
        rows.append(RowData(row_number=idx, values=values))
    return InputTable(path=path, columns=columns, rows=rows)
