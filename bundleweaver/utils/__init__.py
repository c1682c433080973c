"""
Utilities module for BundleWeaver.

This module provides core utilities for the decomposition pipeline:
- Sequence helpers (reverse complement, ambiguity scanning)
- The run context and pipeline driver (imported from .pipeline directly)
"""

from .sequence_utils import (
    reverse_complement,
    ambiguous_runs,
    interval_overlaps,
)

__all__ = [
    "reverse_complement",
    "ambiguous_runs",
    "interval_overlaps",
]
