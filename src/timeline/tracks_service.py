"""Track and parameter lookups plus in-session parameter creation."""
from __future__ import annotations

import logging
from typing import List, Optional

from domain.config import EditorSettings
from domain.errors import DeviceNotFoundError, ParameterNotFoundError, TrackNotFoundError
from domain.models import (
    PRE_ROLL_SENTINEL_TIME,
    AutomationPoint,
    Device,
    Parameter,
    Track,
    TrackSummary,
)
from domain.naming import ParameterNameMatcher
from storage.database import AutomationDatabase

logger = logging.getLogger(__name__)

TRACK_COLUMNS = "id, device_id, track_number, track_name, is_muted, created_at"
PARAMETER_COLUMNS = (
    "id, track_id, parameter_name, parameter_path, original_pointee_id, "
    "vst_parameter_id, is_mute, created_at"
)


class TracksService:
    """Read and create tracks and parameters."""

    def __init__(self, database: AutomationDatabase, settings: EditorSettings | None = None) -> None:
        self._database = database
        self._matcher = ParameterNameMatcher(settings or EditorSettings())

    async def get_all_tracks(self) -> List[Track]:
        rows = await self._database.run(
            f"SELECT {TRACK_COLUMNS} FROM tracks ORDER BY device_id, track_number"
        )
        return [Track.model_validate(row) for row in rows]

    async def get_track(self, track_id: str) -> Track:
        rows = await self._database.run(
            f"SELECT {TRACK_COLUMNS} FROM tracks WHERE id = :id", {"id": track_id}
        )
        if not rows:
            raise TrackNotFoundError(f"Track {track_id!r} not found")
        return Track.model_validate(rows[0])

    async def get_tracks_for_device(self, device_id: str) -> List[Track]:
        rows = await self._database.run(
            f"SELECT {TRACK_COLUMNS} FROM tracks WHERE device_id = :device_id ORDER BY track_number",
            {"device_id": device_id},
        )
        return [Track.model_validate(row) for row in rows]

    async def get_track_summaries(self, device_id: str) -> List[TrackSummary]:
        """Tracks of a device with parameter, point, and transition counts."""

        summaries: List[TrackSummary] = []
        for track in await self.get_tracks_for_device(device_id):
            rows = await self._database.run(
                """
                SELECT
                    (SELECT COUNT(*) FROM parameters WHERE track_id = :id) AS parameter_count,
                    (SELECT COUNT(*) FROM automation_points ap
                        JOIN parameters p ON p.id = ap.parameter_id
                        WHERE p.track_id = :id) AS automation_point_count,
                    (SELECT COUNT(*) FROM mute_transitions WHERE track_id = :id)
                        AS mute_transition_count
                """,
                {"id": track.id},
            )
            summaries.append(TrackSummary(track=track, **rows[0]))
        return summaries

    async def create_track(
        self, device_id: str, track_number: int, track_name: str, *, is_muted: bool = False
    ) -> Track:
        await self._require_device(device_id)
        track = Track(
            device_id=device_id,
            track_number=track_number,
            track_name=track_name,
            is_muted=is_muted,
        )
        await self._database.insert_record("tracks", track)
        return track

    async def get_parameter(self, parameter_id: str) -> Parameter:
        rows = await self._database.run(
            f"SELECT {PARAMETER_COLUMNS} FROM parameters WHERE id = :id", {"id": parameter_id}
        )
        if not rows:
            raise ParameterNotFoundError(f"Parameter {parameter_id!r} not found")
        return Parameter.model_validate(rows[0])

    async def get_all_parameters(self) -> List[Parameter]:
        rows = await self._database.run(
            f"SELECT {PARAMETER_COLUMNS} FROM parameters ORDER BY track_id, parameter_name"
        )
        return [Parameter.model_validate(row) for row in rows]

    async def get_parameters_for_track(self, track_id: str) -> List[Parameter]:
        rows = await self._database.run(
            f"SELECT {PARAMETER_COLUMNS} FROM parameters WHERE track_id = :track_id "
            "ORDER BY parameter_name",
            {"track_id": track_id},
        )
        return [Parameter.model_validate(row) for row in rows]

    async def find_mute_parameter(self, track_id: str) -> Optional[Parameter]:
        rows = await self._database.run(
            f"SELECT {PARAMETER_COLUMNS} FROM parameters "
            "WHERE track_id = :track_id AND is_mute = :is_mute ORDER BY created_at LIMIT 1",
            {"track_id": track_id, "is_mute": True},
        )
        return Parameter.model_validate(rows[0]) if rows else None

    async def create_parameter(
        self,
        track_id: str,
        parameter_name: str,
        *,
        vst_parameter_id: Optional[int] = None,
        is_mute: Optional[bool] = None,
        initial_value: Optional[float] = None,
    ) -> Parameter:
        """Create a parameter that did not originate from the Live set.

        Such parameters carry no ``original_pointee_id`` and are therefore not
        written back on export. ``initial_value`` seeds the pre-roll point.
        """

        track = await self.get_track(track_id)
        device = await self._require_device(track.device_id)
        if is_mute is None:
            is_mute = self._matcher.parse_mute_parameter(parameter_name).is_mute
        parameter = Parameter(
            track_id=track.id,
            parameter_name=parameter_name,
            parameter_path=f"/{device.device_name}/{parameter_name}",
            vst_parameter_id=vst_parameter_id,
            is_mute=is_mute,
        )
        await self._database.insert_record("parameters", parameter)
        if initial_value is not None:
            await self._database.insert_record(
                "automation_points",
                AutomationPoint(
                    parameter_id=parameter.id,
                    time_position=PRE_ROLL_SENTINEL_TIME,
                    value=initial_value,
                ),
            )
        return parameter

    async def add_device_parameter(
        self,
        device_id: str,
        parameter_name: str,
        *,
        vst_parameter_id: Optional[int] = None,
        initial_value: Optional[float] = None,
    ) -> Parameter:
        """Attach ``parameter_name`` to the device track named by its ``T<n>`` prefix.

        A mute parameter for a track the device does not have yet creates that
        track; any other parameter requires the track to exist.
        """

        device = await self._require_device(device_id)
        track_number = self._matcher.extract_track_number(parameter_name)
        if track_number is None:
            raise TrackNotFoundError(f"Parameter name {parameter_name!r} has no track prefix")
        mute = self._matcher.parse_mute_parameter(parameter_name)
        tracks = await self.get_tracks_for_device(device_id)
        track = next((t for t in tracks if t.track_number == track_number), None)
        if track is None:
            if not mute.is_mute:
                raise TrackNotFoundError(
                    f"Device {device.device_name!r} has no track {track_number}"
                )
            track = await self.create_track(
                device_id, track_number, f"{device.device_name} T{track_number}"
            )
            logger.info("Created %s for mute parameter %r", track.track_name, parameter_name)
        return await self.create_parameter(
            track.id,
            parameter_name,
            vst_parameter_id=vst_parameter_id,
            is_mute=mute.is_mute,
            initial_value=initial_value,
        )

    async def _require_device(self, device_id: str) -> Device:
        rows = await self._database.run(
            "SELECT id, device_name, device_type, created_at FROM devices WHERE id = :id",
            {"id": device_id},
        )
        if not rows:
            raise DeviceNotFoundError(f"Device {device_id!r} not found")
        return Device.model_validate(rows[0])


__all__ = ["TracksService", "TRACK_COLUMNS", "PARAMETER_COLUMNS"]
