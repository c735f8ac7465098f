"""Exception hierarchy for nopass.

Only fatal faults are exceptions. Missing or expired secrets are reported
through the result types in ``nopass.types``.
"""


class NopassError(Exception):
    """Base exception for all nopass errors."""


class GenerationError(NopassError):
    """Raised when a secret cannot be generated from the requested parameters."""


class StorageError(NopassError):
    """Raised when a repository rejects a write or hands back an unsaved row."""
