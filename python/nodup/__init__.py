from .deduplicate import DedupEngine, DeduplicationOptions, RunCounters, fastq_deduplicate
from .exceptions import BackendError, DeduplicationError, DesynchronisedInputError, InputError
from .keys import KeyMode, build_key, extract_barcode
from .stores import BloomStore, ExactStore, MembershipStore, SQLiteStore, open_store

__version__ = "0.1.0"
