from __future__ import annotations

import logging
import tempfile
from datetime import datetime
from pathlib import Path

import pandas as pd

from xdomain_members.models.operation_record import AUDIT_COLUMNS, OperationRecord

"""Audit log buffering and persistence.

- Records are buffered in run order and written once, at the end of the run
- One CSV per run: ``<output_dir>/membership-audit-YYYYMMDD-HHMMSS.csv``
- If the configured directory cannot be written, the same file name is used
  under the system temp directory and the caller gets a warning back
- Single-threaded use only (the processor owns the buffer)
"""

__all__ = [
    "AuditLogBuffer",
    "PersistenceError",
    "WriteOutcome",
]

TIMESTAMP_FMT = "%Y%m%d-%H%M%S"
FILE_PREFIX = "membership-audit"

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when neither the configured nor the fallback path can be written."""


class WriteOutcome:
    __slots__ = ("path", "warning")

    def __init__(self, path: Path, warning: str | None = None) -> None:
        self.path = path
        self.warning = warning

    @property
    def used_fallback(self) -> bool:
        return self.warning is not None


class AuditLogBuffer:
    """In-memory ordered log of OperationRecords. flush() writes CSV."""

    def __init__(self, output_dir: Path, *, started_at: datetime | None = None) -> None:
        self.output_dir = Path(output_dir)
        self._records: list[OperationRecord] = []
        stamp = (started_at or datetime.now()).strftime(TIMESTAMP_FMT)
        self.file_name = f"{FILE_PREFIX}-{stamp}.csv"

    @property
    def file_path(self) -> Path:
        return self.output_dir / self.file_name

    @property
    def records(self) -> list[OperationRecord]:
        return list(self._records)

    def append(self, record: OperationRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def to_frame(self) -> pd.DataFrame:
        rows = [r.to_audit_row() for r in self._records]
        return pd.DataFrame(rows, columns=list(AUDIT_COLUMNS))

    @staticmethod
    def _write(frame: pd.DataFrame, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(path, index=False, encoding="utf-8")

    def flush(self) -> WriteOutcome:
        """Write every buffered record; fall back to the temp directory on failure.

        Raises:
            PersistenceError: if the fallback write fails too.
        """
        frame = self.to_frame()
        try:
            self._write(frame, self.file_path)
            return WriteOutcome(self.file_path)
        except OSError as primary:
            fallback = Path(tempfile.gettempdir()) / self.file_name
            try:
                self._write(frame, fallback)
            except OSError as e:
                raise PersistenceError(
                    f"audit log could not be written to {self.file_path} ({primary}) "
                    f"or {fallback} ({e})"
                ) from e
            warning = (
                f"audit log could not be written to {self.file_path} ({primary}); "
                f"written to {fallback} instead"
            )
            logger.warning(warning)
            return WriteOutcome(fallback, warning)
