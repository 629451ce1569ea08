import gzip
import os
from typing import IO, Iterator, List, NamedTuple, Optional, Tuple

from loguru import logger as logging

from .exceptions import DesynchronisedInputError, InputError


class FastqRecord(NamedTuple):
    """One FASTQ record as four raw lines, terminators included."""

    name: str
    seq: str
    separator: str
    quality: str

    @property
    def header(self) -> str:
        return self.name.rstrip("\r\n")

    @property
    def sequence(self) -> str:
        return self.seq.rstrip("\r\n")

    def lines(self) -> Tuple[str, str, str, str]:
        return (self.name, self.seq, self.separator, self.quality)


class ReadGroup(NamedTuple):
    """Synchronised records that are kept or dropped together."""

    read_1: FastqRecord
    read_2: FastqRecord
    index: Optional[FastqRecord] = None


def open_fastq(path: os.PathLike, mode: str = "r") -> IO[str]:
    """
    Open a plain or gzip compressed FASTQ file in text mode.

    Args:
        path: File path. Names ending in ``.gz`` are (de)compressed with gzip.
        mode: ``"r"`` to read or ``"w"`` to write.

    Returns:
        Text file handle.
    """

    path = os.fspath(path)
    text_mode = mode[0] + "t"

    try:
        if path.endswith(".gz"):
            return gzip.open(path, text_mode, newline="")
        return open(path, text_mode, newline="")
    except OSError as e:
        component = "reader" if mode.startswith("r") else "writer"
        raise InputError(f"Cannot open {path}: {e}", component=component) from e


def read_record(handle: IO[str], source: str = "fastq") -> Optional[FastqRecord]:
    """Read the next four-line record, or None at a clean end of file."""

    try:
        lines = [handle.readline() for _ in range(4)]
    except (OSError, EOFError, UnicodeDecodeError) as e:
        raise InputError(f"Error reading {source}: {e}") from e

    if not lines[0].strip() and not any(lines[1:]):
        return None
    elif not all(lines):
        raise InputError(f"Truncated FASTQ record in {source}: {lines[0].strip()}")
    elif not lines[0].startswith("@") or not lines[2].startswith("+"):
        raise InputError(
            f"Malformed FASTQ record in {source}: expected @name and + lines, "
            f"got {lines[0].strip()!r} and {lines[2].strip()!r}"
        )

    return FastqRecord(*lines)


def count_fastq_records(path: os.PathLike) -> int:
    """Count the records in a FASTQ file (lines / 4)."""

    logging.info(f"Counting reads in {path}")
    with open_fastq(path) as handle:
        try:
            n_lines = sum(1 for _ in handle)
        except (OSError, EOFError, UnicodeDecodeError) as e:
            raise InputError(f"Error reading {path}: {e}") from e
    return n_lines // 4


class PairedFastqReader:
    """
    Reads synchronised record groups from two or three FASTQ files.

    Iteration stops when read 1 is exhausted. Any secondary file (read 2 or
    the index read) that runs out before read 1, or still has records after
    it, raises :class:`DesynchronisedInputError`.

    Args:
        fastq1: Read 1 FASTQ file.
        fastq2: Read 2 FASTQ file.
        index: Optional index read FASTQ file.
    """

    def __init__(
        self,
        fastq1: os.PathLike,
        fastq2: os.PathLike,
        index: Optional[os.PathLike] = None,
    ):
        self.paths = [p for p in (fastq1, fastq2, index) if p is not None]
        self.has_index = index is not None
        self._handles: List[IO[str]] = []

        try:
            for path in self.paths:
                self._handles.append(open_fastq(path))
        except InputError:
            self.close()
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        for handle in self._handles:
            handle.close()
        self._handles = []

    def __iter__(self) -> Iterator[ReadGroup]:
        while True:
            group = self.next()
            if group is None:
                return
            yield group

    def next(self) -> Optional[ReadGroup]:
        """Return the next read group, or None once read 1 is exhausted."""

        read_1 = read_record(self._handles[0], self.paths[0])

        if read_1 is None:
            for path, handle in zip(self.paths[1:], self._handles[1:]):
                if read_record(handle, path) is not None:
                    raise DesynchronisedInputError(
                        f"{path} has more records than {self.paths[0]}"
                    )
            return None

        others = []
        for path, handle in zip(self.paths[1:], self._handles[1:]):
            record = read_record(handle, path)
            if record is None:
                raise DesynchronisedInputError(
                    f"{path} ended before {self.paths[0]} (at read {read_1.header})"
                )
            others.append(record)

        return ReadGroup(read_1, *others)


class PairedFastqWriter:
    """Writes accepted read groups to a read 1 and a read 2 output file."""

    def __init__(self, out1: os.PathLike, out2: os.PathLike):
        self.paths = (out1, out2)
        self._out1 = open_fastq(out1, "w")
        try:
            self._out2 = open_fastq(out2, "w")
        except InputError:
            self._out1.close()
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def write(self, group: ReadGroup):
        try:
            self._out1.writelines(group.read_1.lines())
            self._out2.writelines(group.read_2.lines())
        except OSError as e:
            raise InputError(f"Error writing to {self.paths}: {e}", component="writer") from e

    def close(self):
        self._out1.close()
        self._out2.close()
