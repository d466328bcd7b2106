"""Mute transition editing.

A track's transitions, ordered by time, must alternate between muted and
unmuted after every operation in this module. Operations are expressed in
terms of clips (see :mod:`timeline.clips`): adding a clip splits or fills a
span, deleting removes whole clips, merging fuses neighbouring clips, and
moving shifts a selection without crossing fixed neighbours.

The latest transition before time 0 (normally at
:data:`~domain.models.PRE_ROLL_SENTINEL_TIME`) holds the state the track
starts the arrangement in.
"""
from __future__ import annotations

import logging
import math
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from domain.config import EditorSettings
from domain.errors import (
    InvalidValueError,
    MuteTransitionNotFoundError,
    ParameterNotFoundError,
)
from domain.models import (
    PRE_ROLL_SENTINEL_TIME,
    Clip,
    MuteTransition,
    Track,
    is_sentinel_time,
    utc_now,
)
from storage.database import AutomationDatabase

from .automation_service import validate_direction
from .clips import clip_containing, clips_from_transitions
from .tracks_service import TracksService

logger = logging.getLogger(__name__)

TRANSITION_COLUMNS = (
    "id, track_id, mute_parameter_id, time_position, is_muted, created_at, updated_at"
)


def latest_pre_roll(transitions: Sequence[MuteTransition]) -> Optional[MuteTransition]:
    pre_roll = [t for t in transitions if is_sentinel_time(t.time_position)]
    return max(pre_roll, key=lambda t: t.time_position) if pre_roll else None


def timeline_transitions(transitions: Sequence[MuteTransition]) -> List[MuteTransition]:
    """Transitions at or after time 0, in time order."""

    return sorted(
        (t for t in transitions if not is_sentinel_time(t.time_position)),
        key=lambda t: t.time_position,
    )


def alternates(transitions: Iterable[MuteTransition]) -> bool:
    ordered = sorted(transitions, key=lambda t: t.time_position)
    return all(
        previous.is_muted != current.is_muted and previous.time_position < current.time_position
        for previous, current in zip(ordered, ordered[1:])
    )


class MuteTransitionService:
    """Invariant-preserving edits over a track's mute transitions."""

    def __init__(
        self,
        database: AutomationDatabase,
        tracks: TracksService,
        settings: EditorSettings | None = None,
    ) -> None:
        self._database = database
        self._tracks = tracks
        self._settings = settings or EditorSettings()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def get_mute_transitions_for_track(self, track_id: str) -> List[MuteTransition]:
        return await self.get_mute_transitions(track_id=track_id)

    async def get_mute_transition(self, transition_id: str) -> MuteTransition:
        rows = await self._database.run(
            f"SELECT {TRANSITION_COLUMNS} FROM mute_transitions WHERE id = :id",
            {"id": transition_id},
        )
        if not rows:
            raise MuteTransitionNotFoundError(f"Mute transition {transition_id!r} not found")
        return MuteTransition.model_validate(rows[0])

    async def get_mute_transitions(
        self,
        *,
        track_id: Optional[str] = None,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None,
        direction: str = "asc",
        limit: Optional[int] = None,
        end_exclusive: bool = False,
    ) -> List[MuteTransition]:
        order = validate_direction(direction)
        clauses: List[str] = []
        params: Dict[str, object] = {}
        if track_id is not None:
            clauses.append("track_id = :track_id")
            params["track_id"] = track_id
        if start_time is not None:
            clauses.append("time_position >= :start_time")
            params["start_time"] = start_time
        if end_time is not None:
            clauses.append(f"time_position {'<' if end_exclusive else '<='} :end_time")
            params["end_time"] = end_time
        sql = f"SELECT {TRANSITION_COLUMNS} FROM mute_transitions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY time_position {order}"
        if limit is not None:
            sql += " LIMIT :limit"
            params["limit"] = int(limit)
        rows = await self._database.run(sql, params)
        return [MuteTransition.model_validate(row) for row in rows]

    async def get_mute_transitions_for_device(self, device_id: str) -> List[MuteTransition]:
        columns = ", ".join(f"m.{column.strip()}" for column in TRANSITION_COLUMNS.split(","))
        rows = await self._database.run(
            f"SELECT {columns} FROM mute_transitions m "
            "JOIN tracks t ON t.id = m.track_id "
            "WHERE t.device_id = :device_id "
            "ORDER BY t.track_number, m.time_position",
            {"device_id": device_id},
        )
        return [MuteTransition.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Raw primitives
    # ------------------------------------------------------------------
    async def create_mute_transition(
        self, track_id: str, time_position: float, is_muted: bool, mute_parameter_id: str
    ) -> MuteTransition:
        """Insert one transition without touching its neighbours."""

        await self._tracks.get_track(track_id)
        await self._require_mute_parameter(track_id, mute_parameter_id)
        return await self._insert(track_id, time_position, is_muted, mute_parameter_id)

    async def delete_mute_transition(self, transition_id: str) -> None:
        await self.get_mute_transition(transition_id)
        await self._delete([transition_id])

    async def update_mute_transitions(
        self, updates: Sequence[Tuple[str, float]]
    ) -> List[MuteTransition]:
        """Set transition times directly, rejecting updates that would reorder states."""

        if not updates:
            return []
        new_times: Dict[str, float] = {}
        for transition_id, time_position in updates:
            _validate_time(time_position)
            new_times[transition_id] = time_position
        grouped = await self._group_by_track(list(new_times))

        updated: List[MuteTransition] = []
        for track_id in grouped:
            transitions = await self.get_mute_transitions_for_track(track_id)
            proposed = [
                t.model_copy(update={"time_position": new_times.get(t.id, t.time_position)})
                for t in transitions
            ]
            if not alternates(proposed):
                raise InvalidValueError(
                    f"Updated times would break alternating mute states on track {track_id!r}"
                )
            updated.extend(t for t in proposed if t.id in new_times)
        for transition in updated:
            await self._set_time(transition.id, transition.time_position)
        return updated

    # ------------------------------------------------------------------
    # Invariant-preserving edits
    # ------------------------------------------------------------------
    async def add_mute_transition(
        self, track_id: str, time_position: float, mute_parameter_id: str
    ) -> List[MuteTransition]:
        """Flip the state at ``time_position``, adding a compensating flip if needed."""

        _validate_time(time_position, allow_pre_roll=False)
        await self._tracks.get_track(track_id)
        await self._require_mute_parameter(track_id, mute_parameter_id)
        transitions = await self.get_mute_transitions_for_track(track_id)
        self._reject_occupied(transitions, time_position)

        before = [t for t in transitions if t.time_position < time_position]
        new_state = not (before[-1].is_muted if before else False)
        following = next((t for t in transitions if t.time_position > time_position), None)

        second_time: Optional[float] = None
        if following is not None and following.is_muted == new_state:
            second_time = time_position + self._settings.default_gap
            if following.time_position <= second_time:
                second_time = following.time_position - self._settings.epsilon
            if second_time <= time_position:
                raise InvalidValueError(
                    f"No room for a compensating transition after {time_position}"
                )

        created = [await self._insert(track_id, time_position, new_state, mute_parameter_id)]
        if second_time is not None:
            created.append(
                await self._insert(track_id, second_time, not new_state, mute_parameter_id)
            )
        return created

    async def add_mute_transition_clip(
        self, track_id: str, time_position: float
    ) -> List[MuteTransition]:
        """Toggle clip state around ``time_position``.

        Inside a clip this splits it, in a muted gap it opens a short clip.
        Returns created transitions, plus the pre-roll transition when it was
        flipped.
        """

        _validate_time(time_position, allow_pre_roll=False)
        track = await self._tracks.get_track(track_id)
        transitions = await self.get_mute_transitions_for_track(track_id)
        self._reject_occupied(transitions, time_position)
        mute_parameter_id = await self._resolve_mute_parameter_id(track_id, transitions)
        gap = self._settings.clip_gap
        epsilon = self._settings.epsilon

        clip = clip_containing(clips_from_transitions(track, transitions), time_position)
        if clip is not None:
            if clip.end_time is None:
                return [await self._insert(track_id, time_position, True, mute_parameter_id)]
            resume = min(time_position + gap, clip.end_time - epsilon)
            self._require_room(time_position, resume)
            return [
                await self._insert(track_id, time_position, True, mute_parameter_id),
                await self._insert(track_id, resume, False, mute_parameter_id),
            ]

        on_timeline = timeline_transitions(transitions)
        pre_roll = latest_pre_roll(transitions)
        if pre_roll is not None and on_timeline and time_position < on_timeline[0].time_position:
            flipped = await self._set_state(pre_roll, not pre_roll.is_muted)
            inverted = await self._insert(
                track_id, time_position, not flipped.is_muted, mute_parameter_id
            )
            return [flipped, inverted]

        following = next((t for t in on_timeline if t.time_position > time_position), None)
        if following is None:
            return [await self._insert(track_id, time_position, False, mute_parameter_id)]
        mute_again = min(time_position + gap, following.time_position - epsilon)
        self._require_room(time_position, mute_again)
        return [
            await self._insert(track_id, time_position, False, mute_parameter_id),
            await self._insert(track_id, mute_again, True, mute_parameter_id),
        ]

    async def delete_mute_transitions(self, transition_ids: Sequence[str]) -> List[str]:
        """Delete transitions per track without leaving half a clip behind.

        Deleting only the first on-timeline transition flips the pre-roll
        state instead of leaving two equal states adjacent, and deleting only
        the last transition needs no compensation. Either shortcut applies only
        when it is the whole selection for its track: once other ids come
        along, the first transition is handled like the rest and every clip
        the selection touches is removed, so no other id is deleted on its own.
        Returns the deleted ids.
        """

        grouped = await self._group_by_track(transition_ids)
        deleted: List[str] = []
        for track_id, requested in grouped.items():
            track = await self._tracks.get_track(track_id)
            transitions = await self.get_mute_transitions_for_track(track_id)
            on_timeline = timeline_transitions(transitions)
            pre_roll = latest_pre_roll(transitions)

            if pre_roll is not None and on_timeline and requested == {on_timeline[0].id}:
                await self._delete([on_timeline[0].id])
                await self._set_state(pre_roll, not pre_roll.is_muted)
                deleted.append(on_timeline[0].id)
            elif transitions and requested == {transitions[-1].id}:
                await self._delete([transitions[-1].id])
                deleted.append(transitions[-1].id)
            else:
                deleted.extend(await self._delete_clips(track, transitions, requested))
        return deleted

    async def merge_mute_transition_clips(self, transition_ids: Sequence[str]) -> List[Clip]:
        """Fuse every clip between the selection's earliest start and latest end.

        The first absorbed clip keeps its start and the last keeps its end; an
        open-ended clip anywhere in the span makes the result open-ended.
        Returns the merged clips.
        """

        grouped = await self._group_by_track(transition_ids)
        merged: List[Clip] = []
        for track_id, requested in grouped.items():
            track = await self._tracks.get_track(track_id)
            transitions = await self.get_mute_transitions_for_track(track_id)
            clips = clips_from_transitions(track, transitions)
            touched = _touched_clips(clips, requested)
            if not touched:
                continue
            span_start = min(clip.start_time for clip in touched)
            open_ended = any(clip.end_time is None for clip in touched)
            span_end = None if open_ended else max(clip.end_time or 0.0 for clip in touched)
            absorbed = [
                clip
                for clip in clips
                if clip.start_time >= span_start and (span_end is None or clip.start_time < span_end)
            ]
            if len(absorbed) < 2:
                merged.extend(absorbed)
                continue

            doomed: List[str] = []
            for index, clip in enumerate(absorbed):
                if index > 0 and clip.start_transition_id:
                    doomed.append(clip.start_transition_id)
                if index < len(absorbed) - 1 and clip.end_transition_id:
                    doomed.append(clip.end_transition_id)
            await self._delete(doomed)
            merged.append(
                absorbed[0].model_copy(
                    update={
                        "end_time": absorbed[-1].end_time,
                        "end_transition_id": absorbed[-1].end_transition_id,
                    }
                )
            )
        return merged

    @staticmethod
    def get_moved_mute_transitions(
        selected: Sequence[MuteTransition],
        all_transitions: Sequence[MuteTransition],
        delta_time: float,
        epsilon: float = 0.001,
    ) -> List[MuteTransition]:
        """Return ``selected`` shifted by the largest safe common delta.

        Each selection member may not cross time 0 or come within ``epsilon``
        of the nearest unselected neighbour; the smallest allowed magnitude
        applies to all of them. Pre-roll transitions never move.
        """

        selected_ids = {t.id for t in selected}
        movable = sorted(
            (t for t in selected if not is_sentinel_time(t.time_position)),
            key=lambda t: t.time_position,
        )
        fixed = [t for t in all_transitions if t.id not in selected_ids]

        applied = delta_time
        for transition in movable:
            time_position = transition.time_position
            if delta_time < 0:
                previous = [t.time_position for t in fixed if t.time_position < time_position]
                floor = max(0.0, max(previous) + epsilon) if previous else 0.0
                allowed = min(0.0, max(delta_time, floor - time_position))
            else:
                following = [t.time_position for t in fixed if t.time_position > time_position]
                allowed = delta_time
                if following:
                    allowed = max(0.0, min(delta_time, min(following) - epsilon - time_position))
            if abs(allowed) < abs(applied):
                applied = allowed

        return [
            t.model_copy(update={"time_position": t.time_position + applied}) for t in movable
        ]

    async def move_mute_transitions(
        self, transition_ids: Sequence[str], delta_time: float
    ) -> List[MuteTransition]:
        _validate_time(delta_time)
        grouped = await self._group_by_track(transition_ids)
        moved: List[MuteTransition] = []
        for track_id, requested in grouped.items():
            transitions = await self.get_mute_transitions_for_track(track_id)
            selected = [t for t in transitions if t.id in requested]
            shifted = self.get_moved_mute_transitions(
                selected, transitions, delta_time, self._settings.epsilon
            )
            for transition in shifted:
                await self._set_time(transition.id, transition.time_position)
            moved.extend(shifted)
        return moved

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _delete_clips(
        self, track: Track, transitions: Sequence[MuteTransition], requested: Set[str]
    ) -> List[str]:
        by_id = {t.id: t for t in transitions}
        touched = _touched_clips(clips_from_transitions(track, transitions), requested)
        doomed: List[str] = []
        mute_from_start = False
        for clip in touched:
            start = by_id.get(clip.start_transition_id) if clip.start_transition_id else None
            if clip.start_time == 0.0 and (start is None or is_sentinel_time(start.time_position)):
                mute_from_start = True
            elif clip.start_time == 0.0 and start is not None:
                doomed.append(start.id)
                mute_from_start = True
            elif start is not None:
                doomed.append(start.id)
            if clip.end_transition_id:
                doomed.append(clip.end_transition_id)

        if not touched:
            logger.debug("Transitions %s bound no clip on track %s", sorted(requested), track.id)
        await self._delete(doomed)

        if mute_from_start:
            remaining = [t for t in transitions if t.id not in set(doomed)]
            pre_roll = latest_pre_roll(remaining)
            if pre_roll is None:
                mute_parameter_id = await self._resolve_mute_parameter_id(track.id, transitions)
                await self._insert(track.id, PRE_ROLL_SENTINEL_TIME, True, mute_parameter_id)
            elif not pre_roll.is_muted:
                await self._set_state(pre_roll, True)
        return doomed

    async def _group_by_track(self, transition_ids: Sequence[str]) -> OrderedDict[str, Set[str]]:
        grouped: OrderedDict[str, Set[str]] = OrderedDict()
        for transition_id in transition_ids:
            transition = await self.get_mute_transition(transition_id)
            grouped.setdefault(transition.track_id, set()).add(transition.id)
        return grouped

    async def _resolve_mute_parameter_id(
        self, track_id: str, transitions: Sequence[MuteTransition]
    ) -> str:
        if transitions:
            return transitions[0].mute_parameter_id
        parameter = await self._tracks.find_mute_parameter(track_id)
        if parameter is None:
            raise ParameterNotFoundError(f"Track {track_id!r} has no mute parameter")
        return parameter.id

    async def _require_mute_parameter(self, track_id: str, mute_parameter_id: str) -> None:
        parameter = await self._tracks.get_parameter(mute_parameter_id)
        if not parameter.is_mute or parameter.track_id != track_id:
            raise InvalidValueError(
                f"Parameter {mute_parameter_id!r} is not the mute parameter of track {track_id!r}"
            )

    @staticmethod
    def _reject_occupied(transitions: Sequence[MuteTransition], time_position: float) -> None:
        if any(t.time_position == time_position for t in transitions):
            raise InvalidValueError(f"A mute transition already exists at {time_position}")

    @staticmethod
    def _require_room(start: float, end: float) -> None:
        if end <= start:
            raise InvalidValueError(f"No room for a clip boundary after {start}")

    async def _insert(
        self, track_id: str, time_position: float, is_muted: bool, mute_parameter_id: str
    ) -> MuteTransition:
        transition = MuteTransition(
            track_id=track_id,
            mute_parameter_id=mute_parameter_id,
            time_position=time_position,
            is_muted=is_muted,
        )
        await self._database.insert_record("mute_transitions", transition)
        return transition

    async def _delete(self, transition_ids: Iterable[str]) -> None:
        for transition_id in transition_ids:
            await self._database.run(
                "DELETE FROM mute_transitions WHERE id = :id", {"id": transition_id}
            )

    async def _set_time(self, transition_id: str, time_position: float) -> None:
        await self._database.run(
            "UPDATE mute_transitions SET time_position = :time_position, updated_at = :updated_at "
            "WHERE id = :id",
            {
                "id": transition_id,
                "time_position": time_position,
                "updated_at": utc_now().isoformat(),
            },
        )

    async def _set_state(self, transition: MuteTransition, is_muted: bool) -> MuteTransition:
        updated = transition.model_copy(update={"is_muted": is_muted, "updated_at": utc_now()})
        await self._database.run(
            "UPDATE mute_transitions SET is_muted = :is_muted, updated_at = :updated_at "
            "WHERE id = :id",
            {"id": transition.id, "is_muted": is_muted, "updated_at": updated.updated_at.isoformat()},
        )
        return updated


def _touched_clips(clips: Sequence[Clip], requested: Set[str]) -> List[Clip]:
    return [
        clip
        for clip in clips
        if clip.start_transition_id in requested or clip.end_transition_id in requested
    ]


def _validate_time(time_position: float, *, allow_pre_roll: bool = True) -> None:
    if not math.isfinite(time_position):
        raise InvalidValueError(f"Time position {time_position} must be finite")
    if not allow_pre_roll and time_position < 0:
        raise InvalidValueError(f"Time position {time_position} must not be negative")


__all__ = [
    "MuteTransitionService",
    "alternates",
    "latest_pre_roll",
    "timeline_transitions",
]
