"""
VariantGuard -- in-process single-writer-per-variant exclusivity.

Responsibility:
    Serializes mutating operations on the same variant within one process,
    for the whole unit of work including commit.  Operations on different
    variants never share a lock and run in parallel.

Architecture position:
    Kernel > Services.  Used only by AdjustmentService.

Invariants enforced:
    - Multi-variant holds (transfers) acquire locks in sorted id order, so
      two transfers in opposite directions cannot deadlock.

Non-goals:
    - Cross-process exclusion.  That comes from SELECT ... FOR UPDATE on
      PostgreSQL and from the version counter on every store.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class VariantGuard:
    """Registry of one ``threading.Lock`` per variant id."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, variant_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(variant_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[variant_id] = lock
            return lock

    @contextmanager
    def hold(self, *variant_ids: str) -> Iterator[None]:
        """Hold the locks for ``variant_ids`` (deduplicated, sorted)."""
        locks = [self._lock_for(v) for v in sorted(set(variant_ids))]
        acquired: list[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def is_held(self, variant_id: str) -> bool:
        return self._lock_for(variant_id).locked()


# Process-wide guard shared by every AdjustmentService that is not handed
# its own.
default_guard = VariantGuard()
