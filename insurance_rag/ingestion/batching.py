"""Batch partitioning and partial-failure accounting for bulk chunk inserts.

- partition: split a sequence into consecutive, order-preserving batches.
- BulkInsertAccumulator: collects per-batch outcomes; entries are only ever appended.
"""
from dataclasses import dataclass, field
from typing import Iterator, List, Sequence, Tuple, TypeVar

from insurance_rag.errors import FieldViolation, ValidationError
from insurance_rag.schemas import BatchError, BulkInsertSummary

T = TypeVar("T")


def partition(items: Sequence[T], batch_size: int) -> Iterator[Tuple[int, int, Sequence[T]]]:
    """Yield (batch_number, start_position, batch) for consecutive batches.

    Args:
        items: Input sequence.
        batch_size: Maximum batch length; must be positive.

    Raises:
        ValidationError: If batch_size is not a positive integer.
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
        raise ValidationError(
            f"batch_size must be a positive integer (got {batch_size!r})",
            [FieldViolation("batch_size", "must be a positive integer")],
        )
    for number, start in enumerate(range(0, len(items), batch_size)):
        yield number, start, items[start:start + batch_size]


def _span_label(first: int, last: int) -> str:
    return f"{first}-{last}"


@dataclass
class BulkInsertAccumulator:
    """Running totals for one bulk insert call.

    Invariant: inserted + failed == number of chunks recorded so far.
    """
    total: int = 0
    inserted: int = 0
    failed: int = 0
    errors: List[BatchError] = field(default_factory=list)

    def record_invalid(self, batch: int, position: int, reason: str, kind: str = "validation") -> None:
        """A single chunk rejected before the write; it is never sent to the store."""
        self.total += 1
        self.failed += 1
        self.errors.append(
            BatchError(kind=kind, batch=batch, batch_range=_span_label(position, position), reason=reason)
        )

    def record_inserted(self, count: int) -> None:
        self.total += count
        self.inserted += count

    def record_batch_failure(self, batch: int, positions: Sequence[int], reason: str) -> None:
        """A whole batch write failed; every chunk in it counts as failed."""
        self.total += len(positions)
        self.failed += len(positions)
        self.errors.append(
            BatchError(
                kind="storage",
                batch=batch,
                batch_range=_span_label(min(positions), max(positions)),
                reason=reason,
            )
        )

    def summary(self) -> BulkInsertSummary:
        return BulkInsertSummary(
            total=self.total, inserted=self.inserted, failed=self.failed, errors=list(self.errors)
        )
