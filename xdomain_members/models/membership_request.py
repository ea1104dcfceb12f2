from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""MembershipRequest model for the bulk cross-domain membership tool.

A MembershipRequest represents one validated input row: "add user X of domain A
to group Y of domain B". Rows are parsed exactly once, at ingestion, and the
resulting values are immutable for the rest of the run.
"""

__all__ = [
    "REQUIRED_COLUMNS",
    "InvalidRowError",
    "MembershipRequest",
]

# Input table column names (exact match)
REQUIRED_COLUMNS: tuple[str, ...] = ("SourceDomain", "SourceUser", "TargetDomain", "TargetGroup")


class InvalidRowError(Exception):
    """Raised when an input row lacks one of the four required values."""

    def __init__(self, row_number: int, missing: list[str]) -> None:
        self.row_number = row_number
        self.missing = missing
        super().__init__(f"row {row_number} missing values: {', '.join(missing)}")


def _clean(value: Any) -> str:
    # pandas hands us NaN / None for empty cells
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class MembershipRequest:
    """One (source user -> target group) membership to apply.

    All four fields are non-empty, whitespace-trimmed strings.
    row_number is the 1-based data row in the input table (header excluded).
    """
    source_domain: str
    source_user: str
    target_domain: str
    target_group: str
    row_number: int = 0

    @property
    def source_identity(self) -> str:
        """Display identity ``DOMAIN\\user`` of the source account."""
        return f"{self.source_domain}\\{self.source_user}"

    @property
    def target_identity(self) -> str:
        """Display identity ``DOMAIN\\group`` of the target group."""
        return f"{self.target_domain}\\{self.target_group}"

    @classmethod
    def from_row(cls, values: dict[str, Any], row_number: int = 0) -> MembershipRequest:
        """Build a request from a raw row mapping (column name -> cell value).

        Raises:
            InvalidRowError: if any required column is empty after trimming.
        """
        cleaned = {col: _clean(values.get(col)) for col in REQUIRED_COLUMNS}
        missing = [col for col, val in cleaned.items() if not val]
        if missing:
            raise InvalidRowError(row_number, missing)
        return cls(
            source_domain=cleaned["SourceDomain"],
            source_user=cleaned["SourceUser"],
            target_domain=cleaned["TargetDomain"],
            target_group=cleaned["TargetGroup"],
            row_number=row_number,
        )
