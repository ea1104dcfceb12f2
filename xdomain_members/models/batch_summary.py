from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .operation_record import OperationRecord, OperationStatus

"""Batch summary / result models.

BatchSummary holds the run counters, BatchResult is what the processor hands
back to its caller (CLI or library user). SummaryAccumulator collects the
counters while rows are processed.

Counting rules:
- TEST_SUCCESS counts as a success
- ALREADY_MEMBER is counted separately and never as an error
- SKIPPED rows are those that reached the processor but failed validation
"""

__all__ = [
    "BatchResult",
    "BatchSummary",
    "SummaryAccumulator",
]


@dataclass(frozen=True)
class BatchSummary:
    """Aggregate counters for one batch run.

    Invariant: total_processed == success_count + error_count
                                  + already_member_count + skipped_count
    """
    total_processed: int
    success_count: int
    error_count: int
    already_member_count: int
    skipped_count: int
    total_duration_seconds: float

    def to_message(self) -> str:
        """Render the summary for the SUMMARY audit record's Message column."""
        return (
            f"Total: {self.total_processed}, "
            f"Success: {self.success_count}, "
            f"Errors: {self.error_count}, "
            f"AlreadyMember: {self.already_member_count}, "
            f"Skipped: {self.skipped_count}, "
            f"Duration: {self.total_duration_seconds:.2f}s"
        )


@dataclass(frozen=True)
class BatchResult:
    """Top-level outcome of BatchProcessor.run()."""
    success: bool  # True when no row ended in ERROR and the run was not cancelled
    summary: BatchSummary
    records: list[OperationRecord]  # ordered log, SUMMARY record last
    log_path: Path | None = None  # where the audit CSV ended up (fallback included)
    log_fallback: bool = False  # log_path is under the temp dir, not output_dir
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False


class SummaryAccumulator:
    """Mutable run-scoped counters, turned into a BatchSummary at the end."""

    def __init__(self) -> None:
        self.counts: dict[OperationStatus, int] = {status: 0 for status in OperationStatus}

    def add(self, status: OperationStatus) -> None:
        self.counts[status] += 1

    @property
    def error_count(self) -> int:
        return self.counts[OperationStatus.ERROR]

    def build(self, total_duration_seconds: float) -> BatchSummary:
        success = self.counts[OperationStatus.SUCCESS] + self.counts[OperationStatus.TEST_SUCCESS]
        errors = self.counts[OperationStatus.ERROR]
        already = self.counts[OperationStatus.ALREADY_MEMBER]
        skipped = self.counts[OperationStatus.SKIPPED]
        return BatchSummary(
            total_processed=success + errors + already + skipped,
            success_count=success,
            error_count=errors,
            already_member_count=already,
            skipped_count=skipped,
            total_duration_seconds=total_duration_seconds,
        )
