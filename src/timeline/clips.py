"""Derive clips (audible spans) from mute data.

A clip opens on a muted-to-unmuted edge and closes on the next
unmuted-to-muted edge. Anything before time 0 folds into the state at 0, so
a track unmuted by its pre-roll transition starts a clip at 0.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from domain.models import AutomationPoint, Clip, MuteTransition, Track

MUTE_THRESHOLD = 0.5

StateChange = Tuple[float, bool, Optional[str]]


def derive_clips(
    track: Track, changes: Sequence[StateChange], *, initially_muted: bool = False
) -> List[Clip]:
    """Walk time-ordered ``(time, is_muted, transition_id)`` changes into clips."""

    clips: List[Clip] = []
    open_start: Optional[float] = None if initially_muted else 0.0
    open_id: Optional[str] = None
    for time_position, is_muted, identifier in sorted(changes, key=lambda change: change[0]):
        if is_muted:
            if open_start is not None and time_position > open_start:
                clips.append(
                    Clip(
                        track_id=track.id,
                        track_number=track.track_number,
                        start_time=open_start,
                        end_time=time_position,
                        start_transition_id=open_id,
                        end_transition_id=identifier,
                    )
                )
            open_start = None
            open_id = None
        elif open_start is None:
            open_start = max(time_position, 0.0)
            open_id = identifier
        elif open_id is None and time_position <= 0:
            # Pre-roll transition confirming the default unmuted state.
            open_id = identifier
    if open_start is not None:
        clips.append(
            Clip(
                track_id=track.id,
                track_number=track.track_number,
                start_time=open_start,
                end_time=None,
                start_transition_id=open_id,
            )
        )
    return clips


def clips_from_transitions(track: Track, transitions: Sequence[MuteTransition]) -> List[Clip]:
    return derive_clips(
        track, [(t.time_position, t.is_muted, t.id) for t in transitions]
    )


def clips_from_points(track: Track, points: Sequence[AutomationPoint]) -> List[Clip]:
    """Fallback for mute lanes stored as plain automation points."""

    if not points:
        return [default_clip(track)]
    ordered = sorted(points, key=lambda point: point.time_position)
    return derive_clips(
        track,
        [(point.time_position, point.value > MUTE_THRESHOLD, None) for point in ordered],
        initially_muted=ordered[0].value > MUTE_THRESHOLD,
    )


def default_clip(track: Track) -> Clip:
    """Whole-timeline clip for tracks without mute automation."""

    return Clip(
        track_id=track.id,
        track_number=track.track_number,
        start_time=0.0,
        end_time=None,
        is_active=not track.is_muted,
    )


def clip_containing(clips: Sequence[Clip], time_position: float) -> Optional[Clip]:
    return next((clip for clip in clips if clip.contains(time_position)), None)


__all__ = [
    "MUTE_THRESHOLD",
    "clip_containing",
    "clips_from_points",
    "clips_from_transitions",
    "default_clip",
    "derive_clips",
]
