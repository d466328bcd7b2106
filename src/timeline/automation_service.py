"""Automation point editing.

Values are normalised to ``[0, 1]`` and validated before anything is written.
Parameters imported from Live start with a pre-roll point at
:data:`~domain.models.PRE_ROLL_SENTINEL_TIME`; while a lane holds only that
point (or that point plus one edit) the pre-roll value follows the edit so the
flat segment before the arrangement matches the first real value. Longer
lanes leave the pre-roll point alone.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from domain.config import EditorSettings
from domain.errors import AutomationPointNotFoundError, InvalidValueError
from domain.models import AutomationPoint, ParameterStats, is_sentinel_time, utc_now
from storage.database import AutomationDatabase, expand_in

from .simplify import removable_mask
from .tracks_service import TracksService

logger = logging.getLogger(__name__)

POINT_COLUMNS = "id, parameter_id, time_position, value, curve_type, created_at, updated_at"
SIMPLIFY_ATTEMPTS = 3


@dataclass(frozen=True)
class PointEdit:
    """Bulk edit entry; entries with an ``id`` update, others create."""

    parameter_id: str
    time_position: float
    value: float
    id: Optional[str] = None


def validate_value(value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise InvalidValueError(f"Automation value {value} must be between 0 and 1")


def validate_time(time_position: float) -> None:
    if not math.isfinite(time_position):
        raise InvalidValueError(f"Time position {time_position} must be finite")


def validate_direction(direction: str) -> str:
    normalized = direction.lower()
    if normalized not in ("asc", "desc"):
        raise InvalidValueError(f"Direction must be 'asc' or 'desc', got {direction!r}")
    return normalized


class AutomationService:
    """CRUD, range queries, and simplification for automation points."""

    def __init__(
        self,
        database: AutomationDatabase,
        tracks: TracksService,
        settings: EditorSettings | None = None,
    ) -> None:
        self._database = database
        self._tracks = tracks
        self._settings = settings or EditorSettings()

    async def create_automation_point(
        self, parameter_id: str, time_position: float, value: float
    ) -> AutomationPoint:
        validate_value(value)
        validate_time(time_position)
        await self._tracks.get_parameter(parameter_id)

        existing = await self.get_automation_points(parameter_id=parameter_id)
        if len(existing) == 1 and is_sentinel_time(existing[0].time_position):
            await self._set_value(existing[0].id, value)

        point = AutomationPoint(
            parameter_id=parameter_id, time_position=time_position, value=value
        )
        await self._database.insert_record("automation_points", point)
        return point

    async def update_automation_point(
        self, point_id: str, parameter_id: str, time_position: float, value: float
    ) -> AutomationPoint:
        validate_value(value)
        validate_time(time_position)
        current = await self.get_automation_point(point_id)
        await self._tracks.get_parameter(parameter_id)

        existing = await self.get_automation_points(parameter_id=parameter_id)
        if (
            len(existing) == 2
            and is_sentinel_time(existing[0].time_position)
            and existing[0].id != point_id
        ):
            await self._set_value(existing[0].id, value)

        updated = current.model_copy(
            update={
                "parameter_id": parameter_id,
                "time_position": time_position,
                "value": value,
                "updated_at": utc_now(),
            }
        )
        await self._database.run(
            "UPDATE automation_points SET parameter_id = :parameter_id, "
            "time_position = :time_position, value = :value, updated_at = :updated_at "
            "WHERE id = :id",
            {
                "id": point_id,
                "parameter_id": parameter_id,
                "time_position": time_position,
                "value": value,
                "updated_at": updated.updated_at.isoformat(),
            },
        )
        return updated

    async def get_automation_point(self, point_id: str) -> AutomationPoint:
        rows = await self._database.run(
            f"SELECT {POINT_COLUMNS} FROM automation_points WHERE id = :id", {"id": point_id}
        )
        if not rows:
            raise AutomationPointNotFoundError(f"Automation point {point_id!r} not found")
        return AutomationPoint.model_validate(rows[0])

    async def get_automation_points(
        self,
        *,
        parameter_id: Optional[str] = None,
        parameter_ids: Optional[Sequence[str]] = None,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None,
        direction: str = "asc",
        limit: Optional[int] = None,
    ) -> List[AutomationPoint]:
        """Range query with inclusive bounds, ordered by time."""

        order = validate_direction(direction)
        clauses: List[str] = []
        params: Dict[str, object] = {}
        if parameter_id is not None:
            clauses.append("parameter_id = :parameter_id")
            params["parameter_id"] = parameter_id
        if parameter_ids is not None:
            if not parameter_ids:
                return []
            placeholders, id_params = expand_in("pid", list(parameter_ids))
            clauses.append(f"parameter_id IN ({placeholders})")
            params.update(id_params)
        if start_time is not None:
            clauses.append("time_position >= :start_time")
            params["start_time"] = start_time
        if end_time is not None:
            clauses.append("time_position <= :end_time")
            params["end_time"] = end_time

        sql = f"SELECT {POINT_COLUMNS} FROM automation_points"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY time_position {order}, created_at {order}"
        if limit is not None:
            sql += " LIMIT :limit"
            params["limit"] = int(limit)
        rows = await self._database.run(sql, params)
        return [AutomationPoint.model_validate(row) for row in rows]

    async def get_automation_points_in_range(
        self, parameter_id: str, start_time: float, end_time: Optional[float]
    ) -> List[AutomationPoint]:
        return await self.get_automation_points(
            parameter_id=parameter_id, start_time=start_time, end_time=end_time
        )

    async def bulk_set_automation_points(self, edits: Sequence[PointEdit]) -> List[AutomationPoint]:
        """Apply each edit on its own; earlier edits stay applied if a later one fails."""

        results: List[AutomationPoint] = []
        for edit in edits:
            if edit.id:
                result = await self.update_automation_point(
                    edit.id, edit.parameter_id, edit.time_position, edit.value
                )
            else:
                result = await self.create_automation_point(
                    edit.parameter_id, edit.time_position, edit.value
                )
            results.append(result)
        logger.debug("Bulk set %d automation points", len(results))
        return results

    async def remove_automation_point(self, parameter_id: str, time_position: float) -> bool:
        rows = await self._database.run(
            "SELECT id FROM automation_points "
            "WHERE parameter_id = :parameter_id AND time_position = :time_position",
            {"parameter_id": parameter_id, "time_position": time_position},
        )
        if not rows:
            return False
        await self.delete_automation_points([row["id"] for row in rows])
        return True

    async def delete_automation_points(self, point_ids: Sequence[str]) -> int:
        if not point_ids:
            return 0
        placeholders, params = expand_in("id", list(point_ids))
        existing = await self._database.run(
            f"SELECT COUNT(*) AS row_count FROM automation_points WHERE id IN ({placeholders})",
            params,
        )
        await self._database.run(
            f"DELETE FROM automation_points WHERE id IN ({placeholders})", params
        )
        return int(existing[0]["row_count"])

    async def simplify_automation_points(
        self, point_ids: Sequence[str], tolerance: float
    ) -> List[str]:
        """Remove selected points that deviate less than ``tolerance`` from their chord.

        Each parameter's first and last points are never removed. When a pass
        removes nothing the tolerance doubles, for at most three passes.
        Returns the removed ids.
        """

        if tolerance <= 0:
            raise InvalidValueError("Simplification tolerance must be positive")
        if not point_ids:
            return []
        placeholders, params = expand_in("id", list(point_ids))
        rows = await self._database.run(
            f"SELECT {POINT_COLUMNS} FROM automation_points WHERE id IN ({placeholders})",
            params,
        )
        selected: Dict[str, List[AutomationPoint]] = defaultdict(list)
        for row in rows:
            point = AutomationPoint.model_validate(row)
            selected[point.parameter_id].append(point)

        endpoints: Dict[str, set[str]] = {}
        for parameter_id in selected:
            series = await self.get_automation_points(parameter_id=parameter_id)
            endpoints[parameter_id] = {series[0].id, series[-1].id} if series else set()

        removed: List[str] = []
        current = tolerance
        for attempt in range(SIMPLIFY_ATTEMPTS):
            for parameter_id, points in selected.items():
                ordered = sorted(points, key=lambda p: p.time_position)
                mask = removable_mask(
                    [p.time_position for p in ordered],
                    [p.value for p in ordered],
                    current,
                    protected=[p.id in endpoints[parameter_id] for p in ordered],
                )
                removed.extend(point.id for point, drop in zip(ordered, mask) if drop)
            if removed:
                break
            logger.debug("Simplify pass %d removed nothing at tolerance %s", attempt + 1, current)
            current *= 2

        await self.delete_automation_points(removed)
        return removed

    async def get_parameter_stats(self, parameter_id: str) -> ParameterStats:
        rows = await self._database.run(
            """
            SELECT
                MIN(value) AS min_value,
                MAX(value) AS max_value,
                MIN(time_position) AS min_time,
                MAX(time_position) AS max_time,
                COUNT(*) AS point_count
            FROM automation_points
            WHERE parameter_id = :parameter_id
            """,
            {"parameter_id": parameter_id},
        )
        row = rows[0]
        if not row["point_count"]:
            return ParameterStats(parameter_id=parameter_id)
        return ParameterStats(parameter_id=parameter_id, **row)

    async def move_parameter_automation(
        self,
        parameter_id: str,
        start_time: float,
        end_time: Optional[float],
        time_offset: float,
    ) -> int:
        """Shift the points of one parameter inside ``[start, end]`` by ``time_offset``."""

        validate_time(time_offset)
        points = await self.get_automation_points_in_range(parameter_id, start_time, end_time)
        if not points:
            return 0
        placeholders, params = expand_in("id", [point.id for point in points])
        params.update({"offset": time_offset, "updated_at": utc_now().isoformat()})
        await self._database.run(
            "UPDATE automation_points SET time_position = time_position + :offset, "
            f"updated_at = :updated_at WHERE id IN ({placeholders})",
            params,
        )
        return len(points)

    async def copy_parameter_automation(
        self,
        parameter_id: str,
        start_time: float,
        end_time: Optional[float],
        time_offset: float,
    ) -> int:
        validate_time(time_offset)
        points = await self.get_automation_points_in_range(parameter_id, start_time, end_time)
        for point in points:
            await self._database.insert_record(
                "automation_points",
                AutomationPoint(
                    parameter_id=parameter_id,
                    time_position=point.time_position + time_offset,
                    value=point.value,
                    curve_type=point.curve_type,
                ),
            )
        return len(points)

    async def get_max_time(self) -> float:
        """Latest automation time plus editing headroom."""

        rows = await self._database.run(
            "SELECT MAX(time_position) AS max_time FROM automation_points"
        )
        latest = rows[0]["max_time"]
        return max(latest or 0.0, 0.0) + self._settings.max_time_headroom

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _set_value(self, point_id: str, value: float) -> None:
        await self._database.run(
            "UPDATE automation_points SET value = :value, updated_at = :updated_at WHERE id = :id",
            {"id": point_id, "value": value, "updated_at": utc_now().isoformat()},
        )


__all__ = [
    "AutomationService",
    "PointEdit",
    "validate_direction",
    "validate_time",
    "validate_value",
]
