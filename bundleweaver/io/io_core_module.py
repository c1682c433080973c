#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Core I/O module for BundleWeaver.

Consolidated module containing:
- The immutable contig record (SequenceRecord)
- FASTA file I/O with automatic gzip detection
- Whole-input loading and validation ahead of indexing

All sequences are loaded before indexing begins; nothing downstream reads
from disk again.
"""

# =============================================================================
# SECTION 1: IMPORTS AND DEPENDENCIES
# =============================================================================

import gzip
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, TextIO, Union

from Bio import SeqIO

from ..exceptions import InputError
from ..utils.sequence_utils import ambiguous_runs, reverse_complement

logger = logging.getLogger(__name__)


# =============================================================================
# SECTION 2: CONTIG RECORD
# =============================================================================

@dataclass(frozen=True)
class SequenceRecord:
    """
    A named contig.

    Attributes:
        name: Contig identifier (first word of the FASTA header)
        sequence: Upper-case base string
    """
    name: str
    sequence: str

    @property
    def length(self) -> int:
        return len(self.sequence)

    def __len__(self) -> int:
        return len(self.sequence)

    def reverse_complement(self) -> 'SequenceRecord':
        return SequenceRecord(name=self.name, sequence=reverse_complement(self.sequence))

    def __repr__(self) -> str:
        return f"SequenceRecord(name={self.name!r}, length={self.length})"


# =============================================================================
# SECTION 3: FILE HANDLING
# =============================================================================

def is_gzipped(filepath: Union[str, Path]) -> bool:
    """Check if file is gzip compressed (by suffix)."""
    return Path(filepath).suffix in ('.gz', '.gzip')


def open_file(filepath: Union[str, Path], mode: str = 'r') -> TextIO:
    """
    Open file with automatic gzip detection.

    Args:
        filepath: Path to file
        mode: File mode ('r' or 'w')
    """
    filepath = Path(filepath)

    if is_gzipped(filepath):
        return gzip.open(filepath, 'rt' if 'r' in mode else 'wt')
    return open(filepath, mode)


# =============================================================================
# SECTION 4: FASTA FILE I/O
# =============================================================================

def read_fasta(filepath: Union[str, Path]) -> Iterator[SequenceRecord]:
    """
    Read a FASTA file and yield SequenceRecord objects.

    Args:
        filepath: Path to FASTA file (can be gzipped)

    Yields:
        SequenceRecord objects with upper-cased sequences
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"FASTA file not found: {filepath}")

    with open_file(filepath, 'r') as handle:
        for record in SeqIO.parse(handle, "fasta"):
            yield SequenceRecord(name=record.id, sequence=str(record.seq).upper())


def write_fasta(
    records: Iterable[SequenceRecord],
    filepath: Union[str, Path],
    line_width: int = 80
) -> int:
    """
    Write SequenceRecord objects to a FASTA file.

    Args:
        records: Records to write
        filepath: Output path; a .gz suffix compresses the output
        line_width: Number of bases per line (0 = no wrapping)

    Returns:
        Number of sequences written
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open_file(filepath, 'w') as handle:
        for record in records:
            handle.write(f">{record.name}\n")
            if line_width > 0:
                for i in range(0, len(record.sequence), line_width):
                    handle.write(record.sequence[i:i + line_width] + '\n')
            else:
                handle.write(record.sequence + '\n')
            count += 1

    return count


def load_sequences(paths: Iterable[Union[str, Path]]) -> List[SequenceRecord]:
    """
    Load every contig from one or more FASTA files, in file then record order.

    Raises:
        InputError: No files, no records, an empty sequence, or a contig
            name that occurs twice.
    """
    paths = [Path(p) for p in paths]
    if not paths:
        raise InputError("No input FASTA files given")

    records: List[SequenceRecord] = []
    seen = set()
    for path in paths:
        try:
            for record in read_fasta(path):
                if record.length == 0:
                    raise InputError(f"Empty sequence '{record.name}' in {path}")
                if record.name in seen:
                    raise InputError(f"Duplicate contig name '{record.name}' in {path}")
                runs = ambiguous_runs(record.sequence)
                if runs:
                    masked = sum(e - s for s, e in runs)
                    logger.debug(f"{record.name}: {masked:,} ambiguous bases in {len(runs)} runs")
                seen.add(record.name)
                records.append(record)
        except ValueError as e:
            raise InputError(f"Malformed FASTA {path}: {e}") from e
        logger.info(f"Loaded {path}: {len(records)} contigs so far")

    if not records:
        raise InputError("Input FASTA files contain no sequences")

    total = sum(r.length for r in records)
    logger.info(f"Loaded {len(records)} contigs ({total:,} bp)")
    return records


def read_name_list(filepath: Union[str, Path]) -> List[str]:
    """Contig names, one per line; the first whitespace-separated field counts."""
    names: List[str] = []
    with open_file(filepath) as f:
        for line in f:
            fields = line.split()
            if fields and not fields[0].startswith('#'):
                names.append(fields[0])
    return names


def select_records(records: Sequence[SequenceRecord], names: Iterable[str]) -> List[SequenceRecord]:
    """
    Keep the records named in ``names``, in their original order.

    Raises:
        InputError: A listed name is not among the records, or nothing is left
    """
    wanted = set(names)
    missing = wanted - {r.name for r in records}
    if missing:
        raise InputError(f"Contigs not found in the input: {', '.join(sorted(missing))}")
    selected = [r for r in records if r.name in wanted]
    if not selected:
        raise InputError("The include list selects no contigs")
    logger.info(f"Selected {len(selected)} of {len(records)} contigs")
    return selected

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
