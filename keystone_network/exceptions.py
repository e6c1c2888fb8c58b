# keystone_network/exceptions.py
"""
Error classes for the keystone network pipeline.

Each class also derives from the builtin exception that would otherwise be raised
for the same condition, so callers that only know about ``ValueError`` or
``FileNotFoundError`` keep working.
"""


class KeystoneNetworkError(Exception):
    """Base class for recoverable, per-group pipeline failures."""


class MissingInputError(KeystoneNetworkError, FileNotFoundError):
    """A required input file (matrix, metadata, taxonomy) does not exist."""


class InsufficientDataError(KeystoneNetworkError, ValueError):
    """Too few common taxa remain after aligning the inputs of a group."""


class EmptyNetworkError(KeystoneNetworkError, ValueError):
    """Every node is isolated once the correlation threshold is applied."""


class SchemaError(KeystoneNetworkError, ValueError):
    """A tabular input or manifest lacks a required field."""


class MatrixFormatError(KeystoneNetworkError, ValueError):
    """A taxon-by-taxon matrix is not square or its labels do not match."""
