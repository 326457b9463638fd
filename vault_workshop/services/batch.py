"""Per-attendee batch execution with failure isolation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, List, TypeVar

from ..attendees.models import AttendeeEntry
from ..errors import PerAttendeeError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchResult(Generic[T]):
    """Successful results and isolated failures of one batch, in input order."""

    succeeded: List[T] = field(default_factory=list)
    failed: List[PerAttendeeError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def run_batch(
    entries: Iterable[AttendeeEntry], operation: Callable[[AttendeeEntry], T]
) -> BatchResult[T]:
    """Apply ``operation`` to every entry sequentially.

    A ``PerAttendeeError`` is logged and recorded and the batch moves on; any
    other exception aborts the batch.
    """

    result: BatchResult[T] = BatchResult()
    for entry in entries:
        try:
            result.succeeded.append(operation(entry))
        except PerAttendeeError as exc:
            LOGGER.error(
                "Skipping attendee %s: %s",
                exc.attendee_id,
                exc.reason,
                extra={"attendee_id": exc.attendee_id, "email": entry.email},
            )
            result.failed.append(exc)
    return result


__all__ = ["BatchResult", "run_batch"]
