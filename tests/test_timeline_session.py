import pytest

from als.codec import compress
from domain.config import EditorSettings
from domain.errors import AlsFormatError, DatabaseError
from domain.models import AutomationPoint, ImportedProject
from timeline.session import EditorSession

from conftest import build_live_set


@pytest.mark.asyncio
async def test_session_imports_files_and_closes(live_set_path):
    async with EditorSession.create(EditorSettings()) as session:
        result = await session.import_file(live_set_path)

        assert result.source_path == live_set_path
        assert result.counts["parameters"] == 3
        assert session.document is result.document
        assert (await session.database.summary())["tracks"] == 2

    assert not session.database.is_initialized


@pytest.mark.asyncio
async def test_import_replaces_previous_contents(imported_session, live_set_bytes):
    await imported_session.import_bytes(live_set_bytes)

    summary = await imported_session.database.summary()
    assert (summary["devices"], summary["tracks"], summary["mute_transitions"]) == (1, 2, 3)


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_contents(imported_session):
    before = await imported_session.database.summary()
    broken = ImportedProject(
        automation_points=[AutomationPoint(parameter_id="missing", time_position=0.0, value=0.5)]
    )

    with pytest.raises(DatabaseError):
        await imported_session.importer.load(broken)

    assert await imported_session.database.summary() == before


@pytest.mark.asyncio
async def test_format_errors_leave_the_database_untouched(imported_session):
    before = await imported_session.database.summary()
    with pytest.raises(AlsFormatError):
        await imported_session.import_bytes(compress(build_live_set(cutoff_events=((0.0, 2.0),))))

    assert await imported_session.database.summary() == before


@pytest.mark.asyncio
async def test_missing_file_is_reported(session, tmp_path):
    with pytest.raises(FileNotFoundError):
        await session.import_file(tmp_path / "absent.als")
