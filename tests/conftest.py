#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Pytest configuration and shared fixtures.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import copy
import logging
import pytest
from pathlib import Path
import tempfile
import shutil

import numpy as np

from bundleweaver.bundle_core.shimmer_module import ShimmerParams
from bundleweaver.config.schema import DEFAULT_CONFIG
from bundleweaver.io.io_core_module import SequenceRecord
from bundleweaver.utils.pipeline import RunContext, run_decomposition


@pytest.fixture
def temp_output_dir():
    """Create temporary output directory for tests."""
    temp_dir = tempfile.mkdtemp(prefix="bundleweaver_test_")
    yield Path(temp_dir)
    # Cleanup after test
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def reset_root_logging():
    """Drop handlers a test installed on the root logger (CLI runs do this)."""
    root = logging.getLogger()
    before = list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()


@pytest.fixture
def small_params():
    """Dense sampling suited to contigs of a few kb."""
    return ShimmerParams(k=21, w=24, r=2, min_span=0)


@pytest.fixture
def small_config(small_params):
    """Full configuration with the small shimmer parameters."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg['shimmer'].update(small_params.to_dict())
    cfg['index']['n_shards'] = 4
    return cfg


@pytest.fixture
def random_sequence():
    """Factory: seeded uniform random ACGT sequence."""
    def _make(length, seed=0):
        rng = np.random.default_rng(seed)
        return "".join(rng.choice(list("ACGT"), size=length))
    return _make


@pytest.fixture
def decompose(small_config):
    """Factory: run a full decomposition of (name, sequence) pairs."""
    def _run(pairs, config=None, threads=1):
        cfg = copy.deepcopy(config or small_config)
        cfg['runtime']['threads'] = threads
        records = [SequenceRecord(name, seq) for name, seq in pairs]
        return run_decomposition(records, RunContext.from_config(cfg, cmd="bundleweaver test"))
    return _run

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
