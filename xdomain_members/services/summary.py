from __future__ import annotations

from ..models.batch_summary import BatchSummary

"""SUMMARY line rendering for console output."""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.2f}"


def render_summary_line(summary: BatchSummary, *, test_mode: bool = False) -> str:
    """Render the SUMMARY console line.

    Format:
    SUMMARY total={n} success={n} errors={n} already_member={n} skipped={n}
    elapsed_sec={s} test_mode={true|false}

    Examples:
        >>> s = BatchSummary(2, 1, 0, 1, 0, 1.5)
        >>> render_summary_line(s)
        'SUMMARY total=2 success=1 errors=0 already_member=1 skipped=0 elapsed_sec=1.50 test_mode=false'
    """
    return (
        f"SUMMARY total={summary.total_processed} "
        f"success={summary.success_count} "
        f"errors={summary.error_count} "
        f"already_member={summary.already_member_count} "
        f"skipped={summary.skipped_count} "
        f"elapsed_sec={_format_seconds(summary.total_duration_seconds)} "
        f"test_mode={'true' if test_mode else 'false'}"
    )
