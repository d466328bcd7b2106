"""Write the database state back into a copy of the imported Live set."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from timeline.automation_service import AutomationService
from timeline.mute_transition_service import MuteTransitionService
from timeline.tracks_service import TracksService

from .document import AlsDocument
from .exporter import AlsExporter, ExportReport, ParameterExport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlsExportResult:
    """Serialized set and the per-parameter outcome of the export."""

    data: bytes
    report: ExportReport
    path: Path | None = None


class AlsExportService:
    """Collect parameter state from the services and project it onto a set."""

    def __init__(
        self,
        tracks: TracksService,
        automation: AutomationService,
        mute_transitions: MuteTransitionService,
        exporter: AlsExporter | None = None,
    ) -> None:
        self._tracks = tracks
        self._automation = automation
        self._mute_transitions = mute_transitions
        self._exporter = exporter or AlsExporter()

    async def collect(self) -> List[ParameterExport]:
        exports: List[ParameterExport] = []
        for parameter in await self._tracks.get_all_parameters():
            points = await self._automation.get_automation_points(parameter_id=parameter.id)
            transitions = []
            if parameter.is_mute:
                transitions = [
                    transition
                    for transition in await self._mute_transitions.get_mute_transitions_for_track(
                        parameter.track_id
                    )
                    if transition.mute_parameter_id == parameter.id
                ]
            exports.append(
                ParameterExport(
                    parameter=parameter, points=tuple(points), transitions=tuple(transitions)
                )
            )
        return exports

    async def export(self, document: AlsDocument) -> AlsExportResult:
        exports = await self.collect()
        projected, report = self._exporter.project_with_report(document, exports)
        return AlsExportResult(data=projected.to_bytes(), report=report)

    async def export_bytes(self, document: AlsDocument) -> bytes:
        result = await self.export(document)
        return result.data

    async def export_file(self, document: AlsDocument, path: Path) -> AlsExportResult:
        path = Path(path)
        result = await self.export(document)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(result.data)
        logger.info("Wrote %s (%d bytes)", path, len(result.data))
        return AlsExportResult(data=result.data, report=result.report, path=path)


__all__ = ["AlsExportResult", "AlsExportService"]
