import os
import pathlib
from typing import List, Optional

import pandas as pd
from loguru import logger as logging

from .deduplicate import DeduplicationOptions, ProgressCallback, fastq_deduplicate


def output_paths(fastqs: List[os.PathLike], output_prefix: str = "nodup_") -> List[str]:
    """
    Name output files by prefixing the input file names.

    A prefix ending in a path separator is treated as an output directory.
    """
    return [output_prefix + pathlib.Path(fq).name for fq in fastqs]


def deduplicate_fastq(
    fastq1: List[os.PathLike],
    fastq2: List[os.PathLike],
    index: Optional[List[os.PathLike]] = None,
    output_prefix: str = "nodup_",
    sample_name: str = "sample",
    options: Optional[DeduplicationOptions] = None,
    progress: Optional[ProgressCallback] = None,
) -> pd.DataFrame:
    """
    Deduplicate paired FASTQ files.

    Args:
        fastq1: List of FASTQ files (R1).
        fastq2: List of FASTQ files (R2).
        index: List of index read FASTQ files (I1), one per R1 file.
        output_prefix: Prefix added to the input file names to name outputs.
        sample_name: Sample name.
        options: Deduplication settings (backend, keying, Bloom filter sizing).
        progress: Called with the running counters.

    Returns:
        DataFrame with deduplicated read stats.

    """

    if not fastq1:
        raise ValueError("At least one pair of FASTQ files is required")
    if len(fastq1) != len(fastq2):
        raise ValueError("Number of FASTQ files in R1 and R2 must be equal")
    if index and len(index) != len(fastq1):
        raise ValueError("Number of index FASTQ files must match the number of R1 files")

    fastq_in = [(str(f1), str(f2)) for f1, f2 in zip(fastq1, fastq2)]
    fastq_out = list(zip(output_paths(fastq1, output_prefix), output_paths(fastq2, output_prefix)))

    output_dir = pathlib.Path(fastq_out[0][0]).parent
    output_dir.mkdir(parents=True, exist_ok=True)

    logging.info("Deduplicating FASTQ files")
    deduplication_results = fastq_deduplicate(
        fastq_in,
        fastq_out,
        index_files=[str(fq) for fq in index] if index else None,
        options=options,
        progress=progress,
    )

    logging.info("Preparing deduplication stats")
    return make_stats_table(deduplication_results, sample_name)


def make_stats_table(stats: dict, sample_name: str = "sample") -> pd.DataFrame:
    return (
        pd.Series(stats)
        .to_frame("stat")
        .reset_index()
        .rename(columns={"index": "stat_type"})
        .assign(
            read_number=0,
            read_type="pe",
            stage="deduplication",
            sample=sample_name,
        )
    )
