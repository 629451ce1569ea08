import pathlib
import sys

import click
import tabulate
import tqdm
from loguru import logger as logging

from .api import deduplicate_fastq, make_stats_table
from .deduplicate import DeduplicationOptions, RunCounters
from .exceptions import DeduplicationError
from .fastq import count_fastq_records


@click.group()
def cli():
    """nodup CLI.
    Remove PCR duplicates from paired-end FASTQ files
    """


def print_stats(df_stats):
    df_vis = df_stats.copy()
    df_vis["stat_type"] = df_vis["stat_type"].str.replace("_", " ").str.title()
    df_vis = df_vis[["stat_type", "stat"]]
    df_vis.columns = ["Stat Type", "Number of Reads"]
    print(tabulate.tabulate(df_vis, headers="keys", tablefmt="psql", showindex=False))


@cli.command()
@click.option("-1", "--fastq1", help="Read 1 FASTQ files", required=True, multiple=True)
@click.option("-2", "--fastq2", help="Read 2 FASTQ files", required=True, multiple=True)
@click.option(
    "-i",
    "--index",
    help="Index read FASTQ files, one per read 1 file. Index sequences are added to the duplicate key",
    multiple=True,
)
@click.option(
    "-o",
    "--output-prefix",
    help="Output prefix for deduplicated FASTQ files",
    default="nodup_",
)
@click.option(
    "--barcode-in-name",
    help="Add the barcode at the end of the read 1 name to the duplicate key",
    is_flag=True,
    default=False,
)
@click.option(
    "-b",
    "--backend",
    help="How seen read pairs are tracked: exact in-memory set, Bloom filter or SQLite database",
    type=click.Choice(["memory", "bloom", "sqlite"]),
    default="bloom",
)
@click.option(
    "-n",
    "--expected-count",
    help="Expected number of read pairs, used to size the Bloom filter. Counted from the read 1 files if not given",
    type=click.IntRange(min=0),
    default=None,
)
@click.option(
    "-e",
    "--error-rate",
    help="False positive rate of the Bloom filter",
    type=click.FloatRange(min=0, max=1, min_open=True, max_open=True),
    default=0.001,
)
@click.option("--store-path", help="SQLite database used by the sqlite backend", default="dedup.sqlite")
@click.option(
    "--sample-name", help="Name of sample e.g. DOX_treated_1", default="sampleX"
)
@click.option(
    "-s", "--statistics", help="Statistics output file name", default="stats.csv"
)
def fastq_deduplicate(*args, **kwargs):
    """Remove PCR duplicates from paired FASTQ files"""

    if len(kwargs["fastq1"]) != len(kwargs["fastq2"]):
        raise click.BadParameter(
            "Number of read 1 and read 2 files must be equal", param_hint="--fastq2"
        )
    if kwargs["index"] and len(kwargs["index"]) != len(kwargs["fastq1"]):
        raise click.BadParameter(
            "Number of index files must match the number of read 1 files",
            param_hint="--index",
        )

    stats_path = pathlib.Path(kwargs["statistics"])
    if not stats_path.parent.exists():
        raise click.BadParameter(
            f"Statistics path {stats_path.parent} does not exist",
            param_hint="--statistics",
        )

    logging.info(f"Output prefix: {kwargs['output_prefix']}")
    logging.info(f"Sample name: {kwargs['sample_name']}")
    logging.info(f"Stats file: {kwargs['statistics']}")

    try:
        expected_count = kwargs["expected_count"]
        if kwargs["backend"] == "bloom" and expected_count is None:
            expected_count = sum(count_fastq_records(fq) for fq in kwargs["fastq1"])
            logging.info(f"Total reads: {expected_count:,}")

        options = DeduplicationOptions(
            backend=kwargs["backend"],
            barcode_in_name=kwargs["barcode_in_name"],
            expected_count=expected_count,
            error_rate=kwargs["error_rate"],
            store_path=kwargs["store_path"],
        )

        with tqdm.tqdm(total=expected_count, unit=" pairs", file=sys.stderr) as pbar:

            def progress(counters: RunCounters):
                pbar.update(counters.processed - pbar.n)
                pbar.set_postfix(duplicates=f"{counters.percentage_duplicated:.1f}%")

            logging.info("Running deduplication")
            df_stats = deduplicate_fastq(
                kwargs["fastq1"],
                kwargs["fastq2"],
                index=kwargs["index"] or None,
                output_prefix=kwargs["output_prefix"],
                sample_name=kwargs["sample_name"],
                options=options,
                progress=progress,
            )

    except DeduplicationError as e:
        logging.error(f"Deduplication aborted in {e.component}: {e.args[0]}")
        counters = e.counters or RunCounters()
        print_stats(make_stats_table(counters.to_stats(), kwargs["sample_name"]))
        sys.exit(1)

    logging.info(f"Saving stats to {stats_path}")
    df_stats.to_csv(stats_path, index=False)

    logging.info("Printing deduplication statistics to stdout")
    print_stats(df_stats)


if __name__ == "__main__":
    cli()
