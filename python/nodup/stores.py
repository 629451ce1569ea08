import abc
import contextlib
import os
from typing import Iterator, Literal, Optional, Set

import pybloomfilter
import sqlalchemy as sa
from loguru import logger as logging
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from .exceptions import BackendError

Backend = Literal["memory", "bloom", "sqlite"]


class MembershipStore(abc.ABC):
    """Records identity keys and reports whether a key is new."""

    name: str = "store"

    @abc.abstractmethod
    def test_and_record(self, key: bytes) -> bool:
        """Record ``key`` and return True if it had not been seen before."""

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ExactStore(MembershipStore):
    """In-memory set of keys. Exact, but memory grows with every unique pair."""

    name = "memory"

    def __init__(self):
        self._seen: Set[bytes] = set()

    def __len__(self):
        return len(self._seen)

    def __contains__(self, key: bytes):
        return key in self._seen

    def test_and_record(self, key: bytes) -> bool:
        if key in self._seen:
            return False
        self._seen.add(key)
        return True


class BloomStore(MembershipStore):
    """
    Bloom filter sized for an expected number of keys and a target
    false positive rate.

    Never reports a seen key as new. An unseen key is reported as seen with
    roughly ``error_rate`` probability once ``capacity`` keys are stored, and
    more often beyond that.

    Args:
        capacity: Expected number of distinct keys.
        error_rate: Target false positive probability.
    """

    name = "bloom"

    def __init__(self, capacity: int, error_rate: float = 0.001):
        if not 0 < error_rate < 1:
            raise ValueError(f"error_rate must be between 0 and 1, got {error_rate}")

        self.capacity = max(int(capacity), 1)
        self.error_rate = error_rate
        self._filter = pybloomfilter.BloomFilter(self.capacity, self.error_rate)

        logging.info(
            f"Bloom filter: capacity={self.capacity:,} error_rate={self.error_rate} "
            f"bits={self.num_bits:,} hashes={self.num_hashes}"
        )

    @property
    def num_bits(self) -> int:
        return self._filter.num_bits

    @property
    def num_hashes(self) -> int:
        return self._filter.num_hashes

    def __contains__(self, key: bytes):
        return key in self._filter

    def test_and_record(self, key: bytes) -> bool:
        # add() returns True when the key was (probably) already present
        return not self._filter.add(key)

    def close(self):
        self._filter.close()


class SQLiteStore(MembershipStore):
    """
    Keys stored in an SQLite table whose primary key enforces uniqueness.

    Inserts are committed every ``commit_interval`` keys and on close, so
    reopening the same file restores all committed keys.

    Args:
        path: SQLite database file.
        commit_interval: Number of inserts between commits.
    """

    name = "sqlite"

    def __init__(self, path: os.PathLike = "dedup.sqlite", commit_interval: int = 10_000):
        self.path = os.fspath(path)
        self.commit_interval = commit_interval
        self._pending = 0

        metadata = sa.MetaData()
        self.table = sa.Table(
            "hashes",
            metadata,
            sa.Column("hash", sa.LargeBinary, primary_key=True),
        )

        try:
            self.engine = sa.create_engine(f"sqlite:///{self.path}")
            metadata.create_all(self.engine)
            self._conn = self.engine.connect()
            self._transaction = self._conn.begin()
            n_existing = self._count()
        except sa.exc.SQLAlchemyError as e:
            self._dispose()
            raise BackendError(f"Cannot open SQLite store {self.path}: {e}") from e

        if n_existing:
            logging.warning(
                f"Reusing SQLite store {self.path} with {n_existing:,} existing keys"
            )
        else:
            logging.info(f"Created SQLite store {self.path}")

    def _count(self) -> int:
        return self._conn.execute(
            sa.select(sa.func.count()).select_from(self.table)
        ).scalar_one()

    def __len__(self):
        try:
            return self._count()
        except sa.exc.SQLAlchemyError as e:
            raise BackendError(f"Cannot query SQLite store {self.path}: {e}") from e

    def test_and_record(self, key: bytes) -> bool:
        stmt = sqlite_insert(self.table).values(hash=key).on_conflict_do_nothing()

        try:
            result = self._conn.execute(stmt)
            inserted = result.rowcount == 1

            self._pending += 1
            if self._pending >= self.commit_interval:
                self.commit()

        except sa.exc.SQLAlchemyError as e:
            raise BackendError(f"Cannot write to SQLite store {self.path}: {e}") from e

        return inserted

    def commit(self):
        self._transaction.commit()
        self._transaction = self._conn.begin()
        self._pending = 0

    def close(self):
        if self._conn is None:
            return

        try:
            self._transaction.commit()
        except sa.exc.SQLAlchemyError as e:
            raise BackendError(f"Cannot commit SQLite store {self.path}: {e}") from e
        finally:
            self._dispose()

    def _dispose(self):
        conn = getattr(self, "_conn", None)
        if conn is not None:
            conn.close()
        self._conn = None
        engine = getattr(self, "engine", None)
        if engine is not None:
            engine.dispose()


def make_store(
    backend: Backend = "bloom",
    expected_count: Optional[int] = None,
    error_rate: float = 0.001,
    store_path: os.PathLike = "dedup.sqlite",
    commit_interval: int = 10_000,
) -> MembershipStore:
    """Build the membership store for a backend name."""

    if backend == "memory":
        return ExactStore()
    elif backend == "bloom":
        if expected_count is None:
            raise ValueError("The bloom backend needs an expected number of read pairs")
        return BloomStore(expected_count, error_rate)
    elif backend == "sqlite":
        return SQLiteStore(store_path, commit_interval)
    else:
        raise ValueError(f"Unknown backend: {backend}")


@contextlib.contextmanager
def open_store(**kwargs) -> Iterator[MembershipStore]:
    """
    Open a membership store for the duration of a run.

    Keyword arguments are passed to :func:`make_store`. The store is closed
    on every exit path, including errors raised inside the block.
    """

    store = make_store(**kwargs)
    logging.debug(f"Opened {store.name} store")
    try:
        yield store
    except BaseException:
        # Keep the error that stopped the run, not a later one from closing
        try:
            store.close()
        except BackendError as close_error:
            logging.error(f"Could not close {store.name} store: {close_error}")
        raise
    else:
        store.close()
    logging.debug(f"Closed {store.name} store")
