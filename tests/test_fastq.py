import os

import pytest

from nodup.exceptions import DesynchronisedInputError, InputError
from nodup.fastq import (
    PairedFastqReader,
    PairedFastqWriter,
    count_fastq_records,
    open_fastq,
)


RECORDS_R1 = [("p1/1", "ACGT"), ("p2/1", "GGCC"), ("p3/1", "TTAA")]
RECORDS_R2 = [("p1/2", "CCCC"), ("p2/2", "AAAA"), ("p3/2", "GGGG")]
RECORDS_I1 = [("p1/3", "AC"), ("p2/3", "GT"), ("p3/3", "CA")]


def test_reader_yields_synchronised_groups(make_fastq):
    fq1 = make_fastq("r1.fastq", RECORDS_R1)
    fq2 = make_fastq("r2.fastq", RECORDS_R2)

    with PairedFastqReader(fq1, fq2) as reader:
        groups = list(reader)

    assert len(groups) == 3
    assert [g.read_1.sequence for g in groups] == ["ACGT", "GGCC", "TTAA"]
    assert [g.read_2.header for g in groups] == ["@p1/2", "@p2/2", "@p3/2"]
    assert all(g.index is None for g in groups)


def test_reader_with_index_reads(make_fastq):
    fq1 = make_fastq("r1.fastq.gz", RECORDS_R1)
    fq2 = make_fastq("r2.fastq.gz", RECORDS_R2)
    idx = make_fastq("i1.fastq.gz", RECORDS_I1)

    with PairedFastqReader(fq1, fq2, idx) as reader:
        assert reader.has_index
        groups = list(reader)

    assert [g.index.sequence for g in groups] == ["AC", "GT", "CA"]


def test_reader_returns_none_at_end(make_fastq):
    fq1 = make_fastq("r1.fastq", RECORDS_R1[:1])
    fq2 = make_fastq("r2.fastq", RECORDS_R2[:1])

    with PairedFastqReader(fq1, fq2) as reader:
        assert reader.next() is not None
        assert reader.next() is None


@pytest.mark.parametrize("short", ["read_2", "index"])
def test_short_secondary_stream_is_desynchronised(make_fastq, short):
    fq1 = make_fastq("r1.fastq", RECORDS_R1)
    fq2 = make_fastq("r2.fastq", RECORDS_R2[:2] if short == "read_2" else RECORDS_R2)
    idx = make_fastq("i1.fastq", RECORDS_I1[:2] if short == "index" else RECORDS_I1)

    with PairedFastqReader(fq1, fq2, idx) as reader:
        assert reader.next() is not None
        assert reader.next() is not None
        with pytest.raises(DesynchronisedInputError):
            reader.next()


def test_long_secondary_stream_is_desynchronised(make_fastq):
    fq1 = make_fastq("r1.fastq", RECORDS_R1[:2])
    fq2 = make_fastq("r2.fastq", RECORDS_R2)

    with PairedFastqReader(fq1, fq2) as reader:
        with pytest.raises(DesynchronisedInputError):
            list(reader)


def test_truncated_record_is_input_error(data_path):
    fq1 = os.path.join(data_path, "partial_1.fastq")
    fq2 = os.path.join(data_path, "duplicated_2.fastq")

    with PairedFastqReader(fq1, fq2) as reader:
        assert reader.next() is not None
        with pytest.raises(InputError) as excinfo:
            reader.next()

    assert not isinstance(excinfo.value, DesynchronisedInputError)
    assert excinfo.value.component == "reader"


def test_missing_input_is_input_error(tmp_path, make_fastq):
    fq2 = make_fastq("r2.fastq", RECORDS_R2)

    with pytest.raises(InputError):
        PairedFastqReader(tmp_path / "missing.fastq", fq2)


def test_trailing_blank_line_is_end_of_file(tmp_path, make_fastq):
    fq1 = make_fastq("r1.fastq", RECORDS_R1)
    fq2 = make_fastq("r2.fastq", RECORDS_R2)
    with open(fq1, "a") as f:
        f.write("\n")

    with PairedFastqReader(fq1, fq2) as reader:
        assert len(list(reader)) == 3


def test_writer_keeps_lines_verbatim(tmp_path, make_fastq, read_fastq_lines):
    fq1 = make_fastq("r1.fastq", RECORDS_R1, newline="\r\n")
    fq2 = make_fastq("r2.fastq", RECORDS_R2, newline="\r\n")
    idx = make_fastq("i1.fastq", RECORDS_I1, newline="\r\n")
    out1, out2 = tmp_path / "out_1.fastq.gz", tmp_path / "out_2.fastq"

    with PairedFastqReader(fq1, fq2, idx) as reader, PairedFastqWriter(out1, out2) as writer:
        for group in reader:
            writer.write(group)

    assert read_fastq_lines(out1) == read_fastq_lines(fq1)
    assert read_fastq_lines(out2) == read_fastq_lines(fq2)
    assert read_fastq_lines(out1)[0] == "@p1/1\r\n"


def test_count_fastq_records(make_fastq):
    assert count_fastq_records(make_fastq("r1.fastq.gz", RECORDS_R1)) == 3
    assert count_fastq_records(make_fastq("empty.fastq", [])) == 0


def test_open_fastq_write_failure_names_writer(tmp_path):
    with pytest.raises(InputError) as excinfo:
        open_fastq(tmp_path / "missing_directory" / "out.fastq", "w")

    assert excinfo.value.component == "writer"


def test_record_shifted_by_a_line_is_malformed(tmp_path, make_fastq):
    fq1 = tmp_path / "r1.fastq"
    fq1.write_text("@p1/1\nACGT\n+\nIIII\nACGT\n@p2/1\nGGCC\n+\nIIII\n")
    fq2 = make_fastq("r2.fastq", RECORDS_R2[:2])

    with PairedFastqReader(fq1, fq2) as reader:
        assert reader.next() is not None
        with pytest.raises(InputError, match="Malformed"):
            reader.next()


def test_separator_line_must_start_with_plus(tmp_path, make_fastq):
    fq1 = tmp_path / "r1.fastq"
    fq1.write_text("@p1/1\nACGT\nIIII\n+\n")
    fq2 = make_fastq("r2.fastq", RECORDS_R2[:1])

    with PairedFastqReader(fq1, fq2) as reader:
        with pytest.raises(InputError, match="Malformed"):
            reader.next()
