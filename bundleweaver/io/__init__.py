"""
Sequence I/O module for BundleWeaver.

CONSOLIDATED MODULES:
- io_core_module.py: Contig records, FASTA I/O with gzip detection, input loading
"""

from .io_core_module import (
    SequenceRecord,
    read_fasta,
    write_fasta,
    load_sequences,
    read_name_list,
    select_records,
    open_file,
    is_gzipped,
)

__all__ = [
    "SequenceRecord",
    "read_fasta",
    "write_fasta",
    "load_sequences",
    "read_name_list",
    "select_records",
    "open_file",
    "is_gzipped",
]
