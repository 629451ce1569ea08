import dataclasses
import enum
import os
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger as logging

from .exceptions import BackendError, DeduplicationError
from .fastq import PairedFastqReader, PairedFastqWriter, count_fastq_records
from .keys import KeyMode, build_key, select_key_mode
from .stores import Backend, MembershipStore, open_store


@dataclasses.dataclass
class DeduplicationOptions:
    """
    Settings for a deduplication run.

    Args:
        backend: Membership store: "memory" (exact set), "bloom" (Bloom filter)
            or "sqlite" (persistent SQLite table).
        barcode_in_name: Include the barcode at the end of the read 1 name in the key.
        expected_count: Expected number of read pairs, used to size the Bloom
            filter. Counted from the read 1 files if not given.
        error_rate: Target false positive rate of the Bloom filter.
        store_path: SQLite database used by the "sqlite" backend.
        commit_interval: Inserts between SQLite commits.
        progress_interval: Read pairs between progress reports.
    """

    backend: Backend = "bloom"
    barcode_in_name: bool = False
    expected_count: Optional[int] = None
    error_rate: float = 0.001
    store_path: os.PathLike = "dedup.sqlite"
    commit_interval: int = 10_000
    progress_interval: int = 100_000

    def __post_init__(self):
        if self.backend not in ("memory", "bloom", "sqlite"):
            raise ValueError(f"Unknown backend: {self.backend}")
        if not 0 < self.error_rate < 1:
            raise ValueError(f"error_rate must be between 0 and 1, got {self.error_rate}")
        if self.expected_count is not None and self.expected_count < 0:
            raise ValueError("expected_count cannot be negative")
        if self.commit_interval < 1 or self.progress_interval < 1:
            raise ValueError("commit_interval and progress_interval must be positive")


class EngineState(enum.Enum):
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"


@dataclasses.dataclass
class RunCounters:
    processed: int = 0
    written: int = 0
    duplicate: int = 0

    @property
    def percentage_duplicated(self) -> float:
        return 100 * self.duplicate / self.processed if self.processed else 0.0

    def to_stats(self) -> Dict[str, int]:
        return {
            "read_pairs_total": self.processed,
            "read_pairs_unique": self.written,
            "read_pairs_duplicated": self.duplicate,
        }


ProgressCallback = Callable[[RunCounters], None]


class DedupEngine:
    """
    Single pass deduplication of synchronised read groups.

    Each group is keyed, tested against the membership store and either
    written or counted as a duplicate. The counters satisfy
    ``processed == written + duplicate`` after every group.

    Args:
        store: Membership store shared by every input handled by this engine.
        key_mode: How identity keys are derived.
        progress: Called with the counters every ``progress_interval`` groups.
        progress_interval: Groups between progress calls.
    """

    def __init__(
        self,
        store: MembershipStore,
        key_mode: KeyMode = KeyMode.SEQUENCE,
        progress: Optional[ProgressCallback] = None,
        progress_interval: int = 100_000,
    ):
        self.store = store
        self.key_mode = key_mode
        self.counters = RunCounters()
        self.progress = progress
        self.progress_interval = progress_interval
        self.state = EngineState.RUNNING
        self.failure: Optional[DeduplicationError] = None

    def step(self, reader: PairedFastqReader, writer: PairedFastqWriter) -> bool:
        """Process one read group. Returns False once the input is exhausted."""

        group = reader.next()
        if group is None:
            return False

        key = build_key(group, self.key_mode)

        if self.store.test_and_record(key):
            writer.write(group)
            self.counters.written += 1
        else:
            self.counters.duplicate += 1

        self.counters.processed += 1

        if self.progress and self.counters.processed % self.progress_interval == 0:
            self.progress(self.counters)

        return True

    def run(self, reader: PairedFastqReader, writer: PairedFastqWriter) -> RunCounters:
        """Process every read group from ``reader``, writing unique ones to ``writer``."""

        if self.state is not EngineState.RUNNING:
            raise RuntimeError(f"Engine is {self.state.value}, cannot run again")

        try:
            while self.step(reader, writer):
                pass
        except DeduplicationError as e:
            self.fail(e)
            raise
        except MemoryError as e:
            failure = BackendError(f"Out of memory in {self.store.name} store")
            self.fail(failure)
            raise failure from e

        return self.counters

    def fail(self, error: DeduplicationError):
        """Move to the failed state, keeping the counters reached so far on the error."""
        self.state = EngineState.FAILED
        self.failure = error
        error.counters = self.counters
        logging.error(f"Deduplication failed: {error}")

    def finish(self) -> RunCounters:
        """Mark the run as complete and report the final counters."""

        if self.state is EngineState.RUNNING:
            self.state = EngineState.FINISHED
        if self.progress:
            self.progress(self.counters)
        return self.counters


def fastq_deduplicate(
    infiles: Sequence[Tuple[os.PathLike, os.PathLike]],
    outfiles: Sequence[Tuple[os.PathLike, os.PathLike]],
    index_files: Optional[Sequence[os.PathLike]] = None,
    options: Optional[DeduplicationOptions] = None,
    progress: Optional[ProgressCallback] = None,
) -> Dict[str, int]:
    """
    Remove PCR duplicates from paired FASTQ files.

    All file pairs share one membership store, so a read pair duplicated
    across files is only written once. Pairs are written in input order.

    Args:
        infiles: (read 1, read 2) FASTQ files.
        outfiles: (read 1, read 2) output files, one pair per input pair.
        index_files: Index read FASTQ files, one per input pair. Takes precedence
            over ``options.barcode_in_name`` for keying.
        options: Run settings.
        progress: Called with the running counters.

    Returns:
        Dictionary of read pair statistics.
    """

    options = options or DeduplicationOptions()
    infiles = list(infiles)
    outfiles = list(outfiles)

    if len(infiles) != len(outfiles):
        raise ValueError("Number of input and output file pairs must be equal")
    if index_files and len(index_files) != len(infiles):
        raise ValueError("Number of index files must match the number of read pairs")

    index_list: List[Optional[os.PathLike]] = (
        list(index_files) if index_files else [None] * len(infiles)
    )
    key_mode = select_key_mode(options.barcode_in_name, has_index=bool(index_files))

    if options.barcode_in_name and index_files:
        logging.warning("Index reads supplied; ignoring barcodes in read names")
    logging.info(f"Key mode: {key_mode.value}")
    logging.info(f"Backend: {options.backend}")

    expected_count = options.expected_count
    if options.backend == "bloom" and expected_count is None:
        expected_count = sum(count_fastq_records(fq1) for fq1, _ in infiles)
        logging.info(f"Total reads: {expected_count:,}")

    with open_store(
        backend=options.backend,
        expected_count=expected_count,
        error_rate=options.error_rate,
        store_path=options.store_path,
        commit_interval=options.commit_interval,
    ) as store:
        engine = DedupEngine(
            store,
            key_mode=key_mode,
            progress=progress,
            progress_interval=options.progress_interval,
        )

        try:
            for (fq1, fq2), (out1, out2), index in zip(infiles, outfiles, index_list):
                logging.debug(f"Deduplicating {fq1} and {fq2} into {out1} and {out2}")
                with PairedFastqReader(fq1, fq2, index) as reader, PairedFastqWriter(
                    out1, out2
                ) as writer:
                    engine.run(reader, writer)
        except DeduplicationError as e:
            if engine.state is EngineState.RUNNING:
                engine.fail(e)
            raise

        counters = engine.finish()

    logging.info(
        f"Processed {counters.processed:,} read pairs, wrote {counters.written:,} "
        f"unique pairs, removed {counters.duplicate:,} duplicates "
        f"({counters.percentage_duplicated:.1f}%)"
    )

    return counters.to_stats()
