from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Row progress display with tqdm (TTY only).

The reconciler advances one tick per UPSERT row. In non-TTY environments
(CI, piped output) no bar is created, so logs stay free of control sequences.
"""

__all__ = [
    "RowProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class RowProgress:
    """Single tqdm bar over the rows of one commit pass."""

    def __init__(self, total_rows: int, *, description: str = "Committing rows") -> None:
        self.total_rows = total_rows
        self.description = description
        self.processed = 0
        self.enabled = is_tty_enabled() and total_rows > 0
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                leave=False,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, n: int = 1) -> None:
        self.processed += n
        if self.pbar is not None:
            self.pbar.update(n)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> RowProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
