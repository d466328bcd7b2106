"""Load a Live set into the automation database."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from domain.models import ImportedProject
from storage.database import AutomationDatabase

from .document import AlsDocument
from .importer import AlsImporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlsImportResult:
    """Parsed document plus the entities written to the database."""

    document: AlsDocument
    project: ImportedProject
    source_path: Path | None = None
    counts: Dict[str, int] = field(default_factory=dict)


class AlsImportService:
    """Replace the database contents with the automation of one Live set.

    The load runs in a single transaction: either every entity of the set is
    stored or the previous contents are left as they were.
    """

    def __init__(self, database: AutomationDatabase, importer: AlsImporter | None = None) -> None:
        self._database = database
        self._importer = importer or AlsImporter()

    @property
    def importer(self) -> AlsImporter:
        return self._importer

    async def import_file(self, path: Path) -> AlsImportResult:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Live set '{path}' not found")
        result = await self.import_bytes(path.read_bytes())
        logger.info("Imported %s", path)
        return AlsImportResult(
            document=result.document,
            project=result.project,
            source_path=path,
            counts=result.counts,
        )

    async def import_bytes(self, data: bytes) -> AlsImportResult:
        document = self._importer.parse(data)
        project = self._importer.extract(document)
        await self.load(project)
        return AlsImportResult(document=document, project=project, counts=project.summary())

    async def load(self, project: ImportedProject) -> None:
        await self._database.initialize()
        async with self._database.transaction() as database:
            await database.clear_all_data()
            for device in project.devices:
                await database.insert_record("devices", device)
            for track in project.tracks:
                await database.insert_record("tracks", track)
            for parameter in project.parameters:
                await database.insert_record("parameters", parameter)
            for point in project.automation_points:
                await database.insert_record("automation_points", point)
            for transition in project.mute_transitions:
                await database.insert_record("mute_transitions", transition)
        logger.info("Stored %s", project.summary())


__all__ = ["AlsImportResult", "AlsImportService"]
