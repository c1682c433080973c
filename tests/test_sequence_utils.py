#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Tests for sequence manipulation utilities.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest
from bundleweaver.utils.sequence_utils import (
    ambiguous_runs,
    interval_overlaps,
    reverse_complement,
)


class TestReverseComplement:
    """Test reverse complement generation."""

    def test_simple_reverse_complement(self):
        assert reverse_complement("ATCG") == "CGAT"

    def test_double_reverse_is_identity(self):
        sequence = "ATCGATCGTAGCTAGCTA"
        assert reverse_complement(reverse_complement(sequence)) == sequence

    def test_ambiguous_base_kept(self):
        assert reverse_complement("ANC") == "GNT"

    def test_lowercase(self):
        assert reverse_complement("acgt") == "acgt"

    def test_empty(self):
        assert reverse_complement("") == ""


class TestAmbiguousRuns:
    """Test detection of non-ACGT runs."""

    def test_internal_run(self):
        assert ambiguous_runs("ACNNGT") == [(2, 4)]

    def test_runs_at_both_ends(self):
        assert ambiguous_runs("NNACGTRY") == [(0, 2), (6, 8)]

    def test_min_length_filters_short_runs(self):
        assert ambiguous_runs("ANCGNNNT", min_length=2) == [(4, 7)]

    def test_clean_sequence(self):
        assert ambiguous_runs("acgtACGT") == []


class TestIntervalOverlaps:
    """Test half-open interval intersection."""

    @pytest.mark.parametrize("start,end,expected", [
        (0, 10, True),
        (10, 20, False),
        (5, 6, True),
        (30, 40, False),
        (18, 40, True),
    ])
    def test_against_two_intervals(self, start, end, expected):
        assert interval_overlaps([(5, 10), (20, 30)], start, end) is expected

    def test_empty_interval_list(self):
        assert interval_overlaps([], 0, 100) is False
