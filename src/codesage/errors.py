"""Exception hierarchy shared across CodeSage."""

from __future__ import annotations


class CodesageError(Exception):
    """Base class for errors reported to the user."""


class InvalidPath(CodesageError):
    """The target path does not exist or is neither a file nor a directory."""


class UnsupportedFileType(CodesageError):
    """A single-file target has an extension no language is mapped to."""


class NoSourceFilesFound(CodesageError):
    """Discovery finished without any indexable file."""


class IndexNotFound(CodesageError):
    """The vector index has not been created yet."""


class EmbeddingServiceError(CodesageError):
    """The embedding collaborator is unreachable or returned unusable output."""


class IndexIntegrityError(CodesageError):
    """The vector index returned data with an unexpected shape."""


class InvalidConfig(CodesageError):
    """Configuration values are out of range."""
