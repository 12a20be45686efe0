"""
errors.py - Run-level failures.

Per-item failures are not exceptions at this level; they are collected
in the batch result and only their count escapes.
"""


class ConversionError(Exception):
    """Base class for errors that end a conversion run."""


class FatalSetupError(ConversionError):
    """Input directory missing, or output/scratch location not creatable."""


class EmptyInputError(ConversionError):
    """Nothing to put in the document."""


class PersistError(ConversionError):
    """The document could not be written to its destination."""
