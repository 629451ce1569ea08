import enum
import hashlib
import re

from .exceptions import DesynchronisedInputError
from .fastq import ReadGroup

_WHITESPACE = re.compile(r"\s")


class KeyMode(enum.Enum):
    """How the identity key of a read group is derived."""

    SEQUENCE = "sequence"
    BARCODE_IN_NAME = "barcode-in-name"
    INDEX_READ = "index-read"


def select_key_mode(barcode_in_name: bool = False, has_index: bool = False) -> KeyMode:
    """Pick the key mode from the run switches. An index read beats a header barcode."""
    if has_index:
        return KeyMode.INDEX_READ
    elif barcode_in_name:
        return KeyMode.BARCODE_IN_NAME
    return KeyMode.SEQUENCE


def extract_barcode(header: str) -> str:
    """
    Extract the barcode from a FASTQ header.

    The barcode is whatever follows the last ``:`` in the read name, i.e. the
    part of the header before the first whitespace character.

    Args:
        header: FASTQ header line, with or without its terminator.

    Returns:
        The barcode, or an empty string if the read name has no ``:``.

    Example:
        >>> extract_barcode("@run:lane:tile:x:y:ACGT 1:N:0")
        'ACGT'
    """
    name = _WHITESPACE.split(header.rstrip("\r\n"), maxsplit=1)[0]
    _, colon, barcode = name.rpartition(":")
    return barcode if colon else ""


def build_key(group: ReadGroup, mode: KeyMode = KeyMode.SEQUENCE) -> bytes:
    """
    Compute the identity key of a read group.

    Args:
        group: Synchronised read-1, read-2 and optional index records.
        mode: Key derivation mode.

    Returns:
        SHA-256 digest of (barcode or index sequence) + read-1 + read-2 sequences.

    Raises:
        DesynchronisedInputError: Index mode was requested but the group has no index read.
    """

    if mode is KeyMode.INDEX_READ:
        if group.index is None:
            raise DesynchronisedInputError(
                "Index read missing from read group; index stream ended early",
                component="key",
            )
        prefix = group.index.sequence
    elif mode is KeyMode.BARCODE_IN_NAME:
        prefix = extract_barcode(group.read_1.header)
    else:
        prefix = ""

    material = prefix + group.read_1.sequence + group.read_2.sequence
    return hashlib.sha256(material.encode()).digest()

