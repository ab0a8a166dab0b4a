#!/usr/bin/env python3
"""
Error types for the meta-expression graph pipeline.
Anything derived from MexGraphError aborts the run; per-item problems are
logged and skipped instead of raised.
"""


class MexGraphError(Exception):
    """Base class for fatal pipeline errors."""


class ConfigError(MexGraphError):
    """Emoticon map or pipeline config could not be loaded."""


class SourceReadError(MexGraphError):
    """Source records are unreadable or not structured as expected."""


class EmissionError(MexGraphError):
    """Node or edge table could not be written."""


class FrozenIndexError(MexGraphError):
    """A frozen NodeIndex was asked to change."""
