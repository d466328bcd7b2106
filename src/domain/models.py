"""Pydantic-powered domain models for automation editing.

The entities mirror the relational schema in :mod:`storage.schema`: a
:class:`Device` owns :class:`Track` rows, tracks own :class:`Parameter` rows
and :class:`MuteTransition` rows, and parameters own
:class:`AutomationPoint` rows. :class:`Clip` is derived from mute data and is
never persisted.
"""
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

PRE_ROLL_SENTINEL_TIME = -63072000.0
"""Time Live uses for the value an envelope holds before the arrangement starts."""


def new_identifier() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


def is_sentinel_time(time_position: float) -> bool:
    """Return ``True`` for times that sit before the visible timeline."""

    return time_position < 0


class Device(BaseModel):
    """A vendor plugin instance discovered on a host track."""

    id: str = Field(default_factory=new_identifier)
    device_name: str
    device_type: str
    created_at: datetime = Field(default_factory=utc_now)


class Track(BaseModel):
    """One of a device's internal sequencer tracks (``T1`` .. ``Tn``)."""

    id: str = Field(default_factory=new_identifier)
    device_id: str
    track_number: int = Field(..., ge=1)
    track_name: str
    is_muted: bool = Field(False, description="Static default mute flag of the host track")
    created_at: datetime = Field(default_factory=utc_now)


class Parameter(BaseModel):
    """An automatable plugin parameter attached to a device track."""

    id: str = Field(default_factory=new_identifier)
    track_id: str
    parameter_name: str
    parameter_path: Optional[str] = None
    original_pointee_id: Optional[str] = Field(
        None, description="AutomationTarget id used to re-locate the envelope on export"
    )
    vst_parameter_id: Optional[int] = None
    is_mute: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class AutomationPoint(BaseModel):
    """A normalized automation value at a point in arrangement time."""

    id: str = Field(default_factory=new_identifier)
    parameter_id: str
    time_position: float
    value: float = Field(..., ge=0.0, le=1.0)
    curve_type: str = "linear"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


class MuteTransition(BaseModel):
    """A step in a track's mute state; adjacent transitions alternate."""

    id: str = Field(default_factory=new_identifier)
    track_id: str
    mute_parameter_id: str
    time_position: float
    is_muted: bool
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


class Clip(BaseModel):
    """Derived ``[start, end)`` span during which a track is audible."""

    track_id: str
    track_number: int
    start_time: float = Field(..., ge=0.0)
    end_time: Optional[float] = Field(None, description="None means open-ended")
    is_active: bool = True
    start_transition_id: Optional[str] = None
    end_transition_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_span(self) -> Clip:  # type: ignore[override]
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("Clip end must be after its start")
        return self

    @property
    def is_open_ended(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def contains(self, time_position: float) -> bool:
        if time_position < self.start_time:
            return False
        return self.end_time is None or time_position < self.end_time


class ParameterStats(BaseModel):
    """Aggregate view over a parameter's automation points."""

    parameter_id: str
    min_value: float = 0.0
    max_value: float = 1.0
    min_time: float = 0.0
    max_time: float = 0.0
    point_count: int = Field(0, ge=0)


class DeviceSummary(BaseModel):
    """Device row enriched with its track and parameter counts."""

    device: Device
    track_count: int = 0
    parameter_count: int = 0


class TrackSummary(BaseModel):
    """Track row enriched with parameter and automation counts."""

    track: Track
    parameter_count: int = 0
    automation_point_count: int = 0
    mute_transition_count: int = 0


class ValueEvent(BaseModel):
    """Playback message for a continuous parameter."""

    time_position: float
    value: float


class MuteEvent(BaseModel):
    """Playback message for a track's mute state."""

    time_position: float
    is_muted: bool


class ImportedProject(BaseModel):
    """Normalized entities extracted from a Live set."""

    devices: List[Device] = Field(default_factory=list)
    tracks: List[Track] = Field(default_factory=list)
    parameters: List[Parameter] = Field(default_factory=list)
    automation_points: List[AutomationPoint] = Field(default_factory=list)
    mute_transitions: List[MuteTransition] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return {
            "devices": len(self.devices),
            "tracks": len(self.tracks),
            "parameters": len(self.parameters),
            "automation_points": len(self.automation_points),
            "mute_transitions": len(self.mute_transitions),
        }


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
    "is_sentinel_time",
    "new_identifier",
    "utc_now",
]
