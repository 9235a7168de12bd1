"""
Custom exception hierarchy for photosort.

Configuration errors are raised before any file is processed and abort the
run. Everything else is local to one file: the orchestrator records it and
moves on to the next file.
"""
from pathlib import Path
from typing import Optional


class PhotosortError(Exception):
    """Base exception for all photosort errors."""
    pass


class ConfigurationError(PhotosortError):
    """Raised for an invalid run configuration (strategy names, template, config file)."""
    pass


class TemplateParseError(ConfigurationError):
    """Raised when a destination template is malformed or names an unknown variable."""

    def __init__(self, message: str, index: Optional[int] = None):
        if index is not None:
            message = f"{message} (at index {index})"
        super().__init__(message)
        self.index = index


class VariableUnavailable(PhotosortError):
    """Raised when no provider could produce a value for a variable."""

    def __init__(self, variable: str):
        super().__init__(f"no value available for variable {variable!r}")
        self.variable = variable


class ResolutionError(PhotosortError):
    """Raised when a template cannot be rendered for a file."""

    def __init__(self, variable: str, reason: str = "no value from any source"):
        super().__init__(f"failed to render variable {variable!r}: {reason}")
        self.variable = variable


class MetadataReadError(PhotosortError):
    """Raised when metadata (stat, EXIF) cannot be read from a file."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"failed to read metadata of {path}: {reason}")
        self.path = path
        self.reason = reason


class ReplicationError(PhotosortError):
    """Raised when a file could not be replicated to its destination."""

    def __init__(self, source: Path, destination: Path, reason: str):
        super().__init__(f"failed to replicate {source} to {destination}: {reason}")
        self.source = source
        self.destination = destination


class ReplicationConflictError(ReplicationError):
    """Raised when the destination is already occupied by a different file."""
    pass
