import gzip
import os

import pytest


@pytest.fixture(scope="module")
def data_path():
    fn = os.path.realpath(__file__)
    dirname = os.path.dirname(fn)
    data_dir = os.path.join(dirname, "fastq_deduplicate")
    return data_dir


@pytest.fixture
def make_fastq(tmp_path):
    """Write (name, sequence) records to a FASTQ file in tmp_path and return its path."""

    def _make_fastq(filename, records, newline="\n"):
        path = tmp_path / filename
        lines = []
        for name, seq in records:
            lines.extend([f"@{name}", seq, "+", "I" * len(seq)])
        text = "".join(line + newline for line in lines)

        if filename.endswith(".gz"):
            with gzip.open(path, "wt", newline="") as f:
                f.write(text)
        else:
            with open(path, "w", newline="") as f:
                f.write(text)
        return str(path)

    return _make_fastq


def read_lines(path):
    opener = gzip.open if str(path).endswith(".gz") else open
    with opener(path, "rt", newline="") as f:
        return f.readlines()


@pytest.fixture
def read_fastq_lines():
    return read_lines
