from __future__ import annotations

import sys
from collections import Counter
from typing import Any

from tqdm import tqdm

"""Row progress bar (tqdm, interactive terminals only).

The bar advances once per input row and shows the running outcome counts
(Success / Error / AlreadyMember / ...) as its postfix. When stdout is not a
TTY the tqdm instance is created disabled, so every call below is a no-op and
log lines are not interleaved with control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """One bar over the batch; use as a context manager."""

    def __init__(
        self,
        total_rows: int,
        *,
        description: str = "Processing rows",
        enabled: bool | None = None,
    ) -> None:
        self.total_rows = total_rows
        self.description = description
        self.current_row = 0
        self.counts: Counter[str] = Counter()
        self.enabled = is_tty_enabled() if enabled is None else enabled
        self.pbar: Any = tqdm(
            total=total_rows,
            desc=description,
            unit="row",
            disable=not self.enabled,
            leave=True,
            ncols=80,
            ascii=True,
        )

    def start_row(self, label: str) -> None:
        """Show which request is in flight, e.g. ``contoso.com\\jdoe``."""
        self.current_row += 1
        self.pbar.set_description_str(f"{self.description} [{label}]", refresh=False)

    def finish_row(self, outcome: str | None = None) -> None:
        if outcome:
            self.counts[outcome] += 1
            self.pbar.set_postfix(dict(self.counts), refresh=False)
        self.pbar.set_description_str(self.description, refresh=False)
        self.pbar.update(1)

    def close(self) -> None:
        self.pbar.close()

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
