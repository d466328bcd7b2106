"""Domain package exposing automation entities, settings, and errors."""
from .config import EditorSettings
from .errors import (
    AlsFormatError,
    AutomationEditorError,
    AutomationPointNotFoundError,
    CompressionError,
    ConfigurationError,
    DatabaseError,
    DatabaseInitializationError,
    DeviceNotFoundError,
    InvalidValueError,
    MuteTransitionNotFoundError,
    NotFoundError,
    ParameterNotFoundError,
    TrackNotFoundError,
)
from .models import (
    PRE_ROLL_SENTINEL_TIME,
    AutomationPoint,
    Clip,
    Device,
    DeviceSummary,
    ImportedProject,
    MuteEvent,
    MuteTransition,
    Parameter,
    ParameterStats,
    Track,
    TrackSummary,
    ValueEvent,
)
from .naming import MuteMatch, ParameterNameMatcher

__all__ = [
    "PRE_ROLL_SENTINEL_TIME",
    "AutomationPoint",
    "Clip",
    "Device",
    "DeviceSummary",
    "ImportedProject",
    "MuteEvent",
    "MuteTransition",
    "Parameter",
    "ParameterStats",
    "Track",
    "TrackSummary",
    "ValueEvent",
    "EditorSettings",
    "MuteMatch",
    "ParameterNameMatcher",
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
