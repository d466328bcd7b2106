"""Clip listings and clip-level moves and copies."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from domain.errors import InvalidValueError, NotFoundError
from domain.models import Clip, Parameter, is_sentinel_time

from .automation_service import AutomationService
from .clips import clips_from_points, clips_from_transitions, default_clip
from .mute_transition_service import MuteTransitionService
from .tracks_service import TracksService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClipMoveResult:
    """Outcome of :meth:`ClipService.move_clip`."""

    clip: Clip
    applied_offset: float
    moved_parameters: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ClipCopyResult:
    """Outcome of :meth:`ClipService.copy_clip`."""

    clip: Clip
    copied_parameters: List[str] = field(default_factory=list)


class ClipService:
    """Project mute data into clips and edit clips as units."""

    def __init__(
        self,
        tracks: TracksService,
        automation: AutomationService,
        mute_transitions: MuteTransitionService,
    ) -> None:
        self._tracks = tracks
        self._automation = automation
        self._mute_transitions = mute_transitions

    async def get_clips_for_track(self, track_id: str) -> List[Clip]:
        track = await self._tracks.get_track(track_id)
        transitions = await self._mute_transitions.get_mute_transitions_for_track(track_id)
        if transitions:
            return clips_from_transitions(track, transitions)
        mute_parameter = await self._tracks.find_mute_parameter(track_id)
        if mute_parameter is not None:
            points = await self._automation.get_automation_points(parameter_id=mute_parameter.id)
            if points:
                return clips_from_points(track, points)
        return [default_clip(track)]

    async def get_clips_for_device(self, device_id: str) -> List[Clip]:
        clips: List[Clip] = []
        for track in await self._tracks.get_tracks_for_device(device_id):
            clips.extend(await self.get_clips_for_track(track.id))
        return sorted(clips, key=lambda clip: (clip.track_number, clip.start_time))

    async def move_clip(
        self,
        track_id: str,
        clip_start: float,
        clip_end: Optional[float],
        new_start: float,
        *,
        lock_automation: bool = True,
    ) -> ClipMoveResult:
        """Move a clip's boundaries, carrying the track's automation when locked.

        The offset is limited so the clip never crosses time 0 or a
        neighbouring clip; the applied offset is reported.
        """

        clip = await self._find_clip(track_id, clip_start, clip_end)
        boundary_ids = [i for i in (clip.start_transition_id, clip.end_transition_id) if i]
        start = (
            await self._mute_transitions.get_mute_transition(clip.start_transition_id)
            if clip.start_transition_id
            else None
        )
        if start is None or is_sentinel_time(start.time_position):
            raise InvalidValueError("Clips anchored to the start of the timeline cannot be moved")

        moved = await self._mute_transitions.move_mute_transitions(
            boundary_ids, new_start - clip_start
        )
        applied = next(t.time_position for t in moved if t.id == start.id) - start.time_position

        moved_parameters: List[str] = []
        if lock_automation and applied:
            for parameter in await self._automated_parameters(track_id):
                count = await self._automation.move_parameter_automation(
                    parameter.id, clip.start_time, clip.end_time, applied
                )
                if count:
                    moved_parameters.append(parameter.parameter_name)
        logger.info(
            "Moved clip %s-%s on track %s by %s", clip.start_time, clip.end_time, track_id, applied
        )
        moved_clip = clip.model_copy(
            update={
                "start_time": clip.start_time + applied,
                "end_time": None if clip.end_time is None else clip.end_time + applied,
            }
        )
        return ClipMoveResult(clip=moved_clip, applied_offset=applied, moved_parameters=moved_parameters)

    async def copy_clip(
        self,
        track_id: str,
        clip_start: float,
        clip_end: float,
        new_start: float,
        *,
        copy_automation: bool = True,
    ) -> ClipCopyResult:
        """Duplicate a finite clip into a free muted gap starting at ``new_start``."""

        clip = await self._find_clip(track_id, clip_start, clip_end)
        if clip.end_time is None:
            raise InvalidValueError("Open-ended clips cannot be copied")
        if new_start < 0:
            raise InvalidValueError("Clips cannot be copied before time 0")
        new_end = new_start + (clip.end_time - clip.start_time)

        clips = await self.get_clips_for_track(track_id)
        transitions = await self._mute_transitions.get_mute_transitions_for_track(track_id)
        if not transitions:
            # Lanes stored as plain points would lose their clips to new transitions.
            raise InvalidValueError("Only clips on mute-transition lanes can be copied")
        overlaps = any(
            other.start_time < new_end and (other.end_time is None or new_start < other.end_time)
            for other in clips
        )
        occupied = any(new_start <= t.time_position <= new_end for t in transitions)
        if overlaps or occupied:
            raise InvalidValueError(f"No free muted gap for a copy at {new_start}-{new_end}")

        mute_parameter_id = transitions[0].mute_parameter_id
        created_start = await self._mute_transitions.create_mute_transition(
            track_id, new_start, False, mute_parameter_id
        )
        created_end = await self._mute_transitions.create_mute_transition(
            track_id, new_end, True, mute_parameter_id
        )

        copied_parameters: List[str] = []
        if copy_automation:
            for parameter in await self._automated_parameters(track_id):
                count = await self._automation.copy_parameter_automation(
                    parameter.id, clip.start_time, clip.end_time, new_start - clip.start_time
                )
                if count:
                    copied_parameters.append(parameter.parameter_name)
        copied = clip.model_copy(
            update={
                "start_time": new_start,
                "end_time": new_end,
                "start_transition_id": created_start.id,
                "end_transition_id": created_end.id,
            }
        )
        return ClipCopyResult(clip=copied, copied_parameters=copied_parameters)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _find_clip(
        self, track_id: str, clip_start: float, clip_end: Optional[float]
    ) -> Clip:
        for clip in await self.get_clips_for_track(track_id):
            if clip.start_time == clip_start and clip.end_time == clip_end:
                return clip
        raise NotFoundError(f"No clip {clip_start}-{clip_end} on track {track_id!r}")

    async def _automated_parameters(self, track_id: str) -> List[Parameter]:
        parameters = await self._tracks.get_parameters_for_track(track_id)
        return [parameter for parameter in parameters if not parameter.is_mute]


__all__ = ["ClipCopyResult", "ClipMoveResult", "ClipService"]
