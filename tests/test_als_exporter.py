import pytest
from lxml import etree

from als.codec import decompress
from als.document import parse_text
from als.exporter import (
    AlsExporter,
    ParameterExport,
    format_number,
    mute_transitions_to_events,
    replace_events,
)
from als.importer import AlsImporter
from domain.errors import AutomationEditorError
from domain.models import PRE_ROLL_SENTINEL_TIME, AutomationPoint, MuteTransition, Parameter
from timeline.session import EditorSession


async def _parameter(session, name):
    parameters = await session.tracks.get_all_parameters()
    return next(p for p in parameters if p.parameter_name == name)


def _reimport(data: bytes):
    importer = AlsImporter()
    return importer.extract(importer.parse(data))


def test_format_number_drops_integral_fractions():
    assert format_number(-63072000.0) == "-63072000"
    assert format_number(4.0) == "4"
    assert format_number(0.625) == "0.625"


def test_mute_transitions_are_resynthesised_as_steps():
    transitions = [
        MuteTransition(track_id="t", mute_parameter_id="m", time_position=6.0, is_muted=True),
        MuteTransition(track_id="t", mute_parameter_id="m", time_position=-1.0, is_muted=True),
        MuteTransition(track_id="t", mute_parameter_id="m", time_position=2.0, is_muted=False),
    ]
    assert mute_transitions_to_events(transitions) == [
        (-1.0, 1.0),
        (2.0, 1.0),
        (2.0, 0.0),
        (6.0, 0.0),
        (6.0, 1.0),
    ]


def test_replace_events_fills_an_empty_list_with_indented_events():
    envelope = etree.fromstring(
        "<AutomationEnvelope>\n\t<Automation>\n\t\t<Events/>\n\t</Automation>\n</AutomationEnvelope>"
    )

    assert replace_events(envelope, [(0.0, 0.5), (1.5, 1.0)])
    events = envelope.find("./Automation/Events")
    assert [(e.get("Id"), e.get("Time"), e.get("Value")) for e in events] == [
        ("1", "0", "0.5"),
        ("2", "1.5", "1"),
    ]
    assert events.text == "\n\t\t\t"
    assert events[-1].tail == "\n\t\t"
    assert not replace_events(envelope, [(0.0, 0.5), (1.5, 1.0)])


@pytest.mark.asyncio
async def test_unedited_export_is_identical(imported_session, live_set_text):
    exported = await imported_session.export_bytes()
    assert decompress(exported) == live_set_text


@pytest.mark.asyncio
async def test_round_trip_keeps_entities_and_edits(imported_session, live_set_text):
    cutoff = await _parameter(imported_session, "T1 Filter Cutoff")
    points = await imported_session.automation.get_automation_points(parameter_id=cutoff.id)
    target = next(point for point in points if point.time_position == 4.0)
    await imported_session.automation.update_automation_point(target.id, cutoff.id, 4.0, 0.6)

    first = _reimport(await imported_session.export_bytes())
    second = _reimport(await imported_session.export_bytes())

    assert [d.device_name for d in first.devices] == [d.device_name for d in second.devices]
    assert sorted(t.track_name for t in first.tracks) == ["Digitakt II T1", "Digitakt II T2"]
    assert sorted(p.parameter_name for p in first.parameters) == sorted(
        p.parameter_name for p in second.parameters
    )
    cutoff_values = [
        point.value
        for point in first.automation_points
        if point.parameter_id
        == next(p.id for p in first.parameters if p.parameter_name == "T1 Filter Cutoff")
    ]
    assert cutoff_values == [0.25, 0.25, 0.6, 0.5]
    # The session's source document is never modified by export.
    assert imported_session.document.to_text() == live_set_text


@pytest.mark.asyncio
async def test_mute_edits_are_written_as_stepped_events(imported_session):
    track = next(
        t for t in await imported_session.tracks.get_all_tracks() if t.track_number == 1
    )
    await imported_session.mute_transitions.add_mute_transition_clip(track.id, 10.0)

    project = _reimport(await imported_session.export_bytes())

    assert [(t.time_position, t.is_muted) for t in project.mute_transitions] == [
        (PRE_ROLL_SENTINEL_TIME, True),
        (2.0, False),
        (6.0, True),
        (10.0, False),
    ]


@pytest.mark.asyncio
async def test_unresolved_envelope_survives_export(imported_session):
    text = decompress(await imported_session.export_bytes())
    assert '<PointeeId Value="999"/>' in text
    assert '<PointeeId Value="201"/>' in text


@pytest.mark.asyncio
async def test_session_parameters_are_reported_as_skipped(imported_session, tmp_path):
    track = next(
        t for t in await imported_session.tracks.get_all_tracks() if t.track_number == 1
    )
    created = await imported_session.tracks.create_parameter(
        track.id, "T1 Resonance", initial_value=0.3
    )

    result = await imported_session.export_file(tmp_path / "out" / "edited.als")

    assert result.path.exists()
    assert created.id in result.report.skipped
    assert len(result.report.unchanged) == 2


def test_exporter_leaves_document_alone_for_unknown_targets(live_set_text):
    original = parse_text(live_set_text)
    orphan = Parameter(track_id="t", parameter_name="T1 Ghost", original_pointee_id="555")
    empty = Parameter(track_id="t", parameter_name="T1 Empty", original_pointee_id="556")
    exports = [
        ParameterExport(
            parameter=orphan,
            points=(AutomationPoint(parameter_id=orphan.id, time_position=1.0, value=0.5),),
        ),
        ParameterExport(parameter=empty),
    ]

    projected, report = AlsExporter().project_with_report(original, exports)

    assert projected.to_text() == live_set_text
    assert report.skipped == [orphan.id]
    assert report.written == []


@pytest.mark.asyncio
async def test_export_requires_an_imported_document(session: EditorSession):
    with pytest.raises(AutomationEditorError):
        await session.export_bytes()
