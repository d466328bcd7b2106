"""Parameter-name conventions used by Overbridge plugins.

Overbridge exposes per-track parameters with a ``T<n> `` prefix, e.g.
``T3 Filter Cutoff`` or ``T3 Muted``. The importer relies on these names to
attach parameters to device tracks and to spot the mute lane.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .config import EditorSettings


@dataclass(frozen=True)
class MuteMatch:
    """Outcome of matching a parameter name against the mute pattern."""

    is_mute: bool
    track_number: Optional[int] = None


class ParameterNameMatcher:
    """Apply the configured name patterns to plugin parameter names."""

    def __init__(self, settings: EditorSettings | None = None) -> None:
        settings = settings or EditorSettings()
        self._track_number = re.compile(settings.track_number_pattern)
        self._mute = re.compile(settings.mute_parameter_pattern)
        self._clean = re.compile(settings.parameter_name_clean_pattern)
        # Longest names first so "Digitakt II" wins over "Digitakt".
        self._device_names = sorted(settings.device_names, key=len, reverse=True)

    def extract_track_number(self, parameter_name: str) -> Optional[int]:
        match = self._track_number.match(parameter_name)
        if match is None:
            return None
        return int(match.group(1))

    def parse_mute_parameter(self, parameter_name: str) -> MuteMatch:
        match = self._mute.match(parameter_name.strip())
        if match is None:
            return MuteMatch(is_mute=False)
        return MuteMatch(is_mute=True, track_number=int(match.group(1)))

    def clean_parameter_name(self, parameter_name: str) -> str:
        return self._clean.sub("", parameter_name).strip()

    def match_device_name(self, name: str) -> Optional[str]:
        """Return the canonical device name contained in ``name`` if any."""

        lowered = name.lower()
        for device_name in self._device_names:
            candidate = device_name.lower()
            if candidate in lowered or candidate.replace(" ", "") in lowered:
                return device_name
        return None

    def track_numbers(self, parameter_names: Iterable[str]) -> List[int]:
        numbers = {self.extract_track_number(name) for name in parameter_names}
        return sorted(number for number in numbers if number is not None)


__all__ = ["MuteMatch", "ParameterNameMatcher"]
