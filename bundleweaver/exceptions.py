#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Exception hierarchy shared by the decomposition pipeline.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""


class BundleWeaverError(Exception):
    """Base exception for all BundleWeaver errors."""
    pass


class InputError(BundleWeaverError):
    """Raised for malformed, empty or duplicated input sequences."""
    pass


class ParameterError(InputError, ValueError):
    """Raised when shimmer or stage parameters fail validation."""
    pass


class ConfigValidationError(BundleWeaverError):
    """Raised when configuration validation fails."""

    def __init__(self, message="", errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class GraphConsistencyError(BundleWeaverError, AssertionError):
    """
    Raised when an internal graph or index invariant is broken.

    Edges naming unknown nodes and writes after a structure has been
    frozen both land here. These indicate a programming error.
    """
    pass


class ArtifactFormatError(BundleWeaverError):
    """Raised when a persisted artifact has an unknown magic or version."""
    pass


class ArtifactMismatchError(ArtifactFormatError):
    """Raised when a persisted artifact was built with different parameters."""

    def __init__(self, message="", expected=None, found=None):
        super().__init__(message)
        self.expected = expected
        self.found = found

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
