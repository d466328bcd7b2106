"""Turn timeline windows into playback messages.

Hardware control surfaces only need to hear about changes, so both emitters
delta-encode: continuous lanes emit a sample only when its rounded value
differs from the last emitted one, and mute lanes emit only the transitions
inside the window. When playback starts, each lane first asserts its current
state.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from domain.config import EditorSettings
from domain.errors import InvalidValueError
from domain.models import MuteEvent, ValueEvent

from .automation_service import AutomationService
from .mute_transition_service import MuteTransitionService

Sample = Tuple[float, float]


def sample_times(start_time: float, end_time: float, granularity: float) -> np.ndarray:
    """Sample grid ``start + i * granularity`` covering ``[start, end]``."""

    count = int(np.floor((end_time - start_time) / granularity + 1e-9)) + 1
    return start_time + np.arange(count) * granularity


def bracketed_values(times: np.ndarray, xp: np.ndarray, fp: np.ndarray) -> np.ndarray:
    """Interpolate each time between the last point at or before it and the next one after.

    ``xp`` must be sorted. Among points sharing a time the last one is taken as
    the left bracket and the first one as the right bracket, so a step pair holds
    the earlier value up to its time and the later value from it on.
    """

    after = np.searchsorted(xp, times, side="right")
    left = np.clip(after - 1, 0, len(xp) - 1)
    right = np.clip(after, 0, len(xp) - 1)
    span = xp[right] - xp[left]
    safe_span = np.where(span > 0, span, 1.0)
    fraction = np.where(span > 0, (times - xp[left]) / safe_span, 0.0)
    values = fp[left] + (fp[right] - fp[left]) * fraction
    # Before the first point the lane holds its first value.
    return np.where(after == 0, fp[0], values)


def interpolate_window(
    previous: Sequence[Sample],
    in_range: Sequence[Sample],
    following: Sequence[Sample],
    start_time: float,
    end_time: float,
    granularity: float,
    *,
    is_beginning_play: bool = False,
    precision: int = 3,
) -> List[ValueEvent]:
    """Delta-encoded samples of the piecewise-linear lane through ``[start, end]``.

    ``previous`` and ``following`` hold at most the single point just before
    and just after the window.
    """

    points = [*previous, *in_range, *following]
    if not points:
        return []
    first_value = points[0][1]
    if all(value == first_value for _, value in points):
        return [ValueEvent(time_position=start_time, value=first_value)] if is_beginning_play else []

    # Stable ordering keeps both halves of a step pair sharing one time.
    ordered = sorted(points, key=lambda point: point[0])
    xp = np.array([time_position for time_position, _ in ordered], dtype=float)
    fp = np.array([value for _, value in ordered], dtype=float)

    times = sample_times(start_time, end_time, granularity)
    values = np.round(bracketed_values(times, xp, fp), precision)
    rounded_times = np.round(times, precision)

    events: List[ValueEvent] = []
    last_emitted: Optional[float] = None
    # Outside playback start, the window's first sample only matters when the
    # lane ramps through a window with no points of its own.
    emit_first = is_beginning_play or (not in_range and bool(previous) and bool(following))
    for index, (time_position, value) in enumerate(zip(rounded_times, values)):
        value = float(value)
        if index == 0:
            if emit_first:
                events.append(ValueEvent(time_position=float(time_position), value=value))
            last_emitted = value
        elif value != last_emitted:
            events.append(ValueEvent(time_position=float(time_position), value=value))
            last_emitted = value
    return events


class PlaybackEmitter:
    """Read lanes from the timeline and produce playback messages."""

    def __init__(
        self,
        automation: AutomationService,
        mute_transitions: MuteTransitionService,
        settings: EditorSettings | None = None,
    ) -> None:
        self._automation = automation
        self._mute_transitions = mute_transitions
        self._settings = settings or EditorSettings()

    async def get_interpolated_values_to_play(
        self,
        parameter_id: str,
        start_time: float,
        end_time: float,
        granularity: Optional[float] = None,
        is_beginning_play: bool = False,
    ) -> List[ValueEvent]:
        step = self._settings.playback_granularity if granularity is None else granularity
        if step <= 0:
            raise InvalidValueError("Granularity must be positive")
        if end_time < start_time:
            raise InvalidValueError("Playback window ends before it starts")

        in_range = await self._automation.get_automation_points(
            parameter_id=parameter_id, start_time=start_time, end_time=end_time
        )
        previous = await self._automation.get_automation_points(
            parameter_id=parameter_id, end_time=start_time, direction="desc", limit=1
        )
        following = await self._automation.get_automation_points(
            parameter_id=parameter_id, start_time=end_time, direction="asc", limit=1
        )
        # The bracket queries are inclusive and may repeat a point from the window.
        seen = {p.id for p in in_range}
        previous = [p for p in previous if p.id not in seen]
        following = [p for p in following if p.id not in seen]
        return interpolate_window(
            [(p.time_position, p.value) for p in previous],
            [(p.time_position, p.value) for p in in_range],
            [(p.time_position, p.value) for p in following],
            start_time,
            end_time,
            step,
            is_beginning_play=is_beginning_play,
            precision=self._settings.value_precision,
        )

    async def get_mute_transitions_to_play(
        self,
        track_id: str,
        start_time: float,
        end_time: float,
        is_beginning_play: bool = False,
    ) -> List[MuteEvent]:
        """Transitions in ``[start, end)``, led by the current state when playback starts."""

        in_range = await self._mute_transitions.get_mute_transitions(
            track_id=track_id, start_time=start_time, end_time=end_time, end_exclusive=True
        )
        events = [
            MuteEvent(time_position=t.time_position, is_muted=t.is_muted) for t in in_range
        ]
        if is_beginning_play and not (events and events[0].time_position == start_time):
            previous = await self._mute_transitions.get_mute_transitions(
                track_id=track_id,
                end_time=start_time,
                end_exclusive=True,
                direction="desc",
                limit=1,
            )
            if previous:
                events.insert(0, MuteEvent(time_position=start_time, is_muted=previous[0].is_muted))
        return events


__all__ = ["PlaybackEmitter", "bracketed_values", "interpolate_window", "sample_times"]
