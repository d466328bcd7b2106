"""Runtime settings for the automation editor.

Defaults describe Elektron Overbridge devices hosted in Ableton Live. Each
field can be overridden through ``OVERGLASS_*`` environment variables so the
CLI tools and tests can point the editor at different databases or vendors
without code changes.
"""
from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ConfigurationError

ENVIRONMENT_PREFIX = "OVERGLASS_"

_ENVIRONMENT_FIELDS = {
    "DATABASE_URL": "database_url",
    "VENDOR_SIGNATURE": "vendor_signature",
    "TRACK_NUMBER_PATTERN": "track_number_pattern",
    "MUTE_PARAMETER_PATTERN": "mute_parameter_pattern",
    "DEFAULT_GAP": "default_gap",
    "CLIP_GAP": "clip_gap",
    "PLAYBACK_GRANULARITY": "playback_granularity",
}


class EditorSettings(BaseModel):
    """Tunable constants consumed by the importer and timeline services."""

    database_url: str = Field("sqlite://", description="SQLAlchemy URL; sqlite:// is in-memory")
    vendor_signature: str = Field("Elektron", min_length=1)
    device_names: tuple[str, ...] = (
        "Digitakt II",
        "Digitakt",
        "Digitone II",
        "Digitone",
        "Analog Four",
        "Analog Rytm",
        "Octatrack",
    )
    track_number_pattern: str = r"^T(\d+)\s+"
    mute_parameter_pattern: str = r"(?i)^T(\d+)\s+Muted$"
    parameter_name_clean_pattern: str = r"^T\d+\s+"
    unassigned_parameter_id: int = -1
    default_gap: float = Field(5.0, gt=0)
    clip_gap: float = Field(2.0, gt=0)
    epsilon: float = Field(0.001, gt=0)
    playback_granularity: float = Field(0.01, gt=0)
    value_precision: int = Field(3, ge=0)
    max_time_headroom: float = Field(300.0, ge=0)

    @model_validator(mode="after")
    def validate_epsilon(self) -> EditorSettings:  # type: ignore[override]
        if self.epsilon >= min(self.default_gap, self.clip_gap):
            raise ValueError("epsilon must be smaller than the transition gaps")
        return self

    @classmethod
    def from_environment(cls, env: Optional[Mapping[str, str]] = None) -> EditorSettings:
        """Build settings from ``OVERGLASS_*`` variables layered over the defaults.

        ``env`` defaults to :data:`os.environ`; tests pass a plain mapping.
        """

        environment: Mapping[str, str] = os.environ if env is None else env
        overrides = {
            field: environment[f"{ENVIRONMENT_PREFIX}{suffix}"]
            for suffix, field in _ENVIRONMENT_FIELDS.items()
            if environment.get(f"{ENVIRONMENT_PREFIX}{suffix}")
        }
        try:
            return cls(**overrides)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid {ENVIRONMENT_PREFIX}* settings: {exc}") from exc


__all__ = ["EditorSettings", "ENVIRONMENT_PREFIX"]
