"""Batch partitioning utilities."""
from typing import List, Sequence

from ..models import EntryRecord, ImportBatch


def partition(entries: Sequence[EntryRecord], batch_size: int) -> List[ImportBatch]:
    """
    Split entries into contiguous, ordered batches of at most batch_size.

    The last batch may be shorter. Batch index follows entry order.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [
        ImportBatch(index=index, entries=tuple(entries[start:start + batch_size]))
        for index, start in enumerate(range(0, len(entries), batch_size))
    ]


def progress_percent(completed: int, total: int) -> int:
    """completed/total as a whole percent, rounding halves up."""
    if total <= 0:
        return 100
    return (completed * 200 + total) // (2 * total)
