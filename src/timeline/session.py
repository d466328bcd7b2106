"""One editing session: a database, its services and the imported set."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from als.document import AlsDocument
from als.exporter import AlsExporter
from als.importer import AlsImporter
from als.project_export_service import AlsExportResult, AlsExportService
from als.project_import_service import AlsImportResult, AlsImportService
from domain.config import EditorSettings
from domain.errors import AutomationEditorError
from storage.database import AutomationDatabase

from .automation_service import AutomationService
from .clip_service import ClipService
from .device_service import DeviceService
from .mute_transition_service import MuteTransitionService
from .playback import PlaybackEmitter
from .tracks_service import TracksService

logger = logging.getLogger(__name__)


class EditorSession:
    """Wire settings, storage and services together.

    ``async with EditorSession.create() as session`` initialises the database
    on entry and closes it on exit.
    """

    def __init__(self, settings: EditorSettings, database: AutomationDatabase) -> None:
        self.settings = settings
        self.database = database
        self.devices = DeviceService(database)
        self.tracks = TracksService(database, settings)
        self.automation = AutomationService(database, self.tracks, settings)
        self.mute_transitions = MuteTransitionService(database, self.tracks, settings)
        self.clips = ClipService(self.tracks, self.automation, self.mute_transitions)
        self.playback = PlaybackEmitter(self.automation, self.mute_transitions, settings)
        importer = AlsImporter(settings)
        self.importer = AlsImportService(database, importer)
        self.exporter = AlsExportService(
            self.tracks, self.automation, self.mute_transitions, AlsExporter(importer)
        )
        self._document: Optional[AlsDocument] = None

    @classmethod
    def create(
        cls,
        settings: EditorSettings | None = None,
        database: AutomationDatabase | None = None,
    ) -> EditorSession:
        settings = settings or EditorSettings()
        database = database or AutomationDatabase.from_url(settings.database_url)
        return cls(settings, database)

    @property
    def document(self) -> Optional[AlsDocument]:
        return self._document

    async def open(self) -> EditorSession:
        await self.database.initialize()
        return self

    async def close(self) -> None:
        await self.database.close()

    async def __aenter__(self) -> EditorSession:
        return await self.open()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def import_file(self, path: Path) -> AlsImportResult:
        result = await self.importer.import_file(path)
        self._document = result.document
        return result

    async def import_bytes(self, data: bytes) -> AlsImportResult:
        result = await self.importer.import_bytes(data)
        self._document = result.document
        return result

    async def export_bytes(self) -> bytes:
        return await self.exporter.export_bytes(self._require_document())

    async def export_file(self, path: Path) -> AlsExportResult:
        return await self.exporter.export_file(self._require_document(), path)

    def _require_document(self) -> AlsDocument:
        if self._document is None:
            raise AutomationEditorError("Nothing to export; import a Live set first")
        return self._document


__all__ = ["EditorSession"]
