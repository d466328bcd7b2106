"""Error taxonomy shared by the codec, storage, and timeline layers."""
from __future__ import annotations


class AutomationEditorError(Exception):
    """Base error for every failure raised by the automation editor."""


class InvalidValueError(AutomationEditorError, ValueError):
    """Raised before any mutation when an input violates a domain bound."""


class NotFoundError(AutomationEditorError, KeyError):
    """Raised when an entity referenced by identifier does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable.
        return str(self.args[0]) if self.args else ""


class DeviceNotFoundError(NotFoundError):
    """Raised when a device identifier cannot be resolved."""


class TrackNotFoundError(NotFoundError):
    """Raised when a track identifier cannot be resolved."""


class ParameterNotFoundError(NotFoundError):
    """Raised when a parameter identifier cannot be resolved."""


class AutomationPointNotFoundError(NotFoundError):
    """Raised when an automation point identifier cannot be resolved."""


class MuteTransitionNotFoundError(NotFoundError):
    """Raised when a mute transition identifier cannot be resolved."""


class AlsFormatError(AutomationEditorError):
    """Raised when a Live set cannot be decoded or parsed."""


class CompressionError(AlsFormatError):
    """Raised when the gzip container is malformed."""


class DatabaseError(AutomationEditorError):
    """Raised when the storage substrate rejects an operation."""


class DatabaseInitializationError(DatabaseError):
    """Raised when the database is used before, or during, initialisation."""


class ConfigurationError(AutomationEditorError):
    """Raised when settings supplied through the environment are invalid."""


__all__ = [
    "AutomationEditorError",
    "InvalidValueError",
    "NotFoundError",
    "DeviceNotFoundError",
    "TrackNotFoundError",
    "ParameterNotFoundError",
    "AutomationPointNotFoundError",
    "MuteTransitionNotFoundError",
    "AlsFormatError",
    "CompressionError",
    "DatabaseError",
    "DatabaseInitializationError",
    "ConfigurationError",
]
