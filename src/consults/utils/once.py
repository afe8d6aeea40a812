"""Create-if-absent writes keyed by a natural identity.

Relational providers enforce the natural keys through unique columns
(``active_key``, ``pending_key``, ``patient_key``, ``dedupe_key``): the insert
either wins or fails at commit (``TransactionError`` wrapping the driver's
``IntegrityError``), and the loser re-reads the row that won. The in-memory
provider has no unique indexes, so attempts for the same key are additionally
serialized inside the process.
"""

import threading
from collections.abc import Callable
from contextlib import contextmanager

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import TransactionError, ValidationError
from sqlalchemy.exc import IntegrityError

logger = structlog.get_logger(__name__)


class _KeyedLocks:
    """One lock per natural key, discarded once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(key, None)


_locks = _KeyedLocks()


def create_once(repository, key: str, find_existing: Callable, build: Callable):
    """Insert the record produced by ``build`` unless one already exists for ``key``.

    Returns ``(record, created)``. ``find_existing`` must look the record up by
    the same natural key the unique column encodes.
    """
    with _locks.hold(key):
        existing = find_existing()
        if existing is not None:
            return existing, False

        record = build()
        try:
            with UnitOfWork():
                repository.add(record)
        except (IntegrityError, TransactionError, ValidationError) as exc:
            existing = find_existing()
            if existing is None:
                raise
            logger.info("Natural key already claimed", key=key, error=str(exc))
            return existing, False

        return record, True


@contextmanager
def serialized(key: str):
    """Hold the in-process lock for ``key`` around a multi-record sequence."""
    with _locks.hold(key):
        yield


def save_now(repository, record) -> None:
    """Persist ``record`` in its own unit of work, independent of any enclosing one."""
    with UnitOfWork():
        repository.add(record)
