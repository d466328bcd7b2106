"""Device listings."""
from __future__ import annotations

from typing import List, Optional

from domain.errors import DeviceNotFoundError
from domain.models import Device, DeviceSummary
from storage.database import AutomationDatabase

DEVICE_COLUMNS = "id, device_name, device_type, created_at"


class DeviceService:
    def __init__(self, database: AutomationDatabase) -> None:
        self._database = database

    async def get_devices(self) -> List[Device]:
        rows = await self._database.run(
            f"SELECT {DEVICE_COLUMNS} FROM devices ORDER BY device_name"
        )
        return [Device.model_validate(row) for row in rows]

    async def get_device(self, device_id: str) -> Device:
        rows = await self._database.run(
            f"SELECT {DEVICE_COLUMNS} FROM devices WHERE id = :id", {"id": device_id}
        )
        if not rows:
            raise DeviceNotFoundError(f"Device {device_id!r} not found")
        return Device.model_validate(rows[0])

    async def find_device_by_name(self, device_name: str) -> Optional[Device]:
        rows = await self._database.run(
            f"SELECT {DEVICE_COLUMNS} FROM devices WHERE device_name = :name",
            {"name": device_name},
        )
        return Device.model_validate(rows[0]) if rows else None

    async def get_devices_with_stats(self) -> List[DeviceSummary]:
        rows = await self._database.run(
            """
            SELECT
                d.id, d.device_name, d.device_type, d.created_at,
                COUNT(DISTINCT t.id) AS track_count,
                COUNT(DISTINCT p.id) AS parameter_count
            FROM devices d
            LEFT JOIN tracks t ON t.device_id = d.id
            LEFT JOIN parameters p ON p.track_id = t.id
            GROUP BY d.id, d.device_name, d.device_type, d.created_at
            ORDER BY d.device_name
            """
        )
        return [
            DeviceSummary(
                device=Device.model_validate(row),
                track_count=row["track_count"],
                parameter_count=row["parameter_count"],
            )
            for row in rows
        ]


__all__ = ["DeviceService"]
