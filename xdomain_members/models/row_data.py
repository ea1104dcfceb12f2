from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""RowData model: one raw input-table row before validation.

The reader produces RowData for every non-blank line; BatchProcessor turns each
one into a MembershipRequest (or counts it as skipped).
"""

__all__ = [
    "RowData",
]


@dataclass(frozen=True)
class RowData:
    """Logical representation of a single input row (column name -> cell value).

    row_number is the 1-based data row, i.e. the first line after the header is 1.
    """
    row_number: int
    values: dict[str, Any]
