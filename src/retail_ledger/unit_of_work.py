"""Sequential execution of planned gateway writes.

An operation never writes to the gateway directly. It plans a list of
:class:`PlannedWrite` records, one per affected document, and hands them to
:func:`commit`. The gateway offers no multi-document transactions, so a
failure leaves earlier writes in place; :class:`PartialWriteError` says
exactly which ones, and :func:`compensate` can put their before-images back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import Collection
from .data_manager import PersistenceGateway


@dataclass(frozen=True)
class PlannedWrite:
    """One document write.

    ``document`` is the full target document, or ``None`` to delete.
    ``previous`` is the before-image, or ``None`` when the document did not
    exist.
    """

    collection: Collection
    key: str
    document: Optional[Mapping[str, Any]]
    previous: Optional[Mapping[str, Any]]
    description: str = ""

    @property
    def is_delete(self) -> bool:
        return self.document is None

    def __str__(self) -> str:
        action = "delete" if self.is_delete else "upsert"
        label = f"{action} {self.collection.value}/{self.key}"
        return f"{label} ({self.description})" if self.description else label


class PartialWriteError(RuntimeError):
    """Raised when a write fails after zero or more writes already landed."""

    def __init__(
        self,
        applied: Sequence[PlannedWrite],
        failed: PlannedWrite,
        pending: Sequence[PlannedWrite],
    ) -> None:
        self.applied: Tuple[PlannedWrite, ...] = tuple(applied)
        self.failed = failed
        self.pending: Tuple[PlannedWrite, ...] = tuple(pending)
        super().__init__(
            f"Write '{failed}' failed after {len(self.applied)} applied write(s); "
            f"{len(self.pending)} write(s) not attempted"
        )


def commit(gateway: PersistenceGateway, writes: Sequence[PlannedWrite]) -> Tuple[PlannedWrite, ...]:
    """Execute ``writes`` in order.

    Args:
        gateway (PersistenceGateway): Target document store.
        writes (Sequence[PlannedWrite]): Planned writes in execution order.

    Returns:
        tuple[PlannedWrite, ...]: The writes that were applied, which on
            success is all of them.

    Raises:
        PartialWriteError: If any gateway call raises. The original exception
            is chained as ``__cause__``.
    """

    applied: List[PlannedWrite] = []
    for index, write in enumerate(writes):
        try:
            if write.is_delete:
                gateway.delete(write.collection, write.key)
            else:
                gateway.upsert(write.collection, write.key, write.document)
        except Exception as exc:
            log.error("Write %d/%d failed: %s (%s)", index + 1, len(writes), write, exc)
            raise PartialWriteError(applied, write, writes[index + 1:]) from exc
        log.debug("Applied %s", write)
        applied.append(write)
    return tuple(applied)


def compensate(gateway: PersistenceGateway, applied: Sequence[PlannedWrite]) -> None:
    """Restore the before-images of ``applied`` in reverse order.

    Written documents that did not exist before are deleted; deleted or
    overwritten ones are upserted back.
    """

    for write in reversed(applied):
        if write.previous is None:
            gateway.delete(write.collection, write.key)
        else:
            gateway.upsert(write.collection, write.key, write.previous)
    log.warning("Compensated %d write(s)", len(applied))
