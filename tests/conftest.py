import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from als.codec import compress  # noqa: E402
from als.exporter import format_number  # noqa: E402
from domain.config import EditorSettings  # noqa: E402
from domain.models import PRE_ROLL_SENTINEL_TIME  # noqa: E402
from storage.database import AutomationDatabase  # noqa: E402
from timeline.session import EditorSession  # noqa: E402

Events = Sequence[Tuple[float, float]]

CUTOFF_EVENTS: Events = (
    (PRE_ROLL_SENTINEL_TIME, 0.25),
    (0.0, 0.25),
    (4.0, 0.75),
    (8.0, 0.5),
)
# Stepped lane: muted before the arrangement, audible from 2 to 6.
MUTE_EVENTS: Events = (
    (PRE_ROLL_SENTINEL_TIME, 1.0),
    (2.0, 1.0),
    (2.0, 0.0),
    (6.0, 0.0),
    (6.0, 1.0),
)


def _events_xml(events: Events, depth: int) -> str:
    indent = "\n" + "\t" * depth
    items = "".join(
        f'{indent}\t<FloatEvent Id="{index}" Time="{format_number(time)}" '
        f'Value="{format_number(value)}"/>'
        for index, (time, value) in enumerate(events, start=1)
    )
    return f"<Events>{items}{indent}</Events>"


def _envelope_xml(envelope_id: int, pointee_id: str, events: Events) -> str:
    return (
        f'\n\t\t\t\t\t\t<AutomationEnvelope Id="{envelope_id}">'
        f'\n\t\t\t\t\t\t\t<EnvelopeTarget>'
        f'\n\t\t\t\t\t\t\t\t<PointeeId Value="{pointee_id}"/>'
        f'\n\t\t\t\t\t\t\t</EnvelopeTarget>'
        f'\n\t\t\t\t\t\t\t<Automation>'
        f'\n\t\t\t\t\t\t\t\t{_events_xml(events, 8)}'
        f'\n\t\t\t\t\t\t\t</Automation>'
        f'\n\t\t\t\t\t\t</AutomationEnvelope>'
    )


def _parameter_xml(entry_id: int, name: str, parameter_id: int, pointee_id: str) -> str:
    return (
        f'\n\t\t\t\t\t\t\t\t\t<PluginFloatParameter Id="{entry_id}">'
        f'\n\t\t\t\t\t\t\t\t\t\t<ParameterName Value="{name}"/>'
        f'\n\t\t\t\t\t\t\t\t\t\t<ParameterId Value="{parameter_id}"/>'
        f'\n\t\t\t\t\t\t\t\t\t\t<ParameterValue>'
        f'\n\t\t\t\t\t\t\t\t\t\t\t<Manual Value="0.5"/>'
        f'\n\t\t\t\t\t\t\t\t\t\t\t<AutomationTarget Id="{pointee_id}"/>'
        f'\n\t\t\t\t\t\t\t\t\t\t</ParameterValue>'
        f'\n\t\t\t\t\t\t\t\t\t</PluginFloatParameter>'
    )


def _track_xml(
    tag: str,
    track_id: int,
    name: str,
    browser_path: str,
    plugin_name: str,
    parameters: Iterable[Tuple[str, int, str]],
    envelopes: Iterable[Tuple[str, Events]],
    *,
    speaker_on: bool = True,
) -> str:
    parameter_xml = "".join(
        _parameter_xml(index, *parameter) for index, parameter in enumerate(parameters)
    )
    envelope_xml = "".join(
        _envelope_xml(index, pointee_id, events)
        for index, (pointee_id, events) in enumerate(envelopes)
    )
    return (
        f'\n\t\t\t<{tag} Id="{track_id}">'
        f'\n\t\t\t\t<Name>'
        f'\n\t\t\t\t\t<EffectiveName Value="{name}"/>'
        f'\n\t\t\t\t</Name>'
        f'\n\t\t\t\t<AutomationEnvelopes>'
        f'\n\t\t\t\t\t<Envelopes>{envelope_xml}'
        f'\n\t\t\t\t\t</Envelopes>'
        f'\n\t\t\t\t</AutomationEnvelopes>'
        f'\n\t\t\t\t<DeviceChain>'
        f'\n\t\t\t\t\t<Mixer>'
        f'\n\t\t\t\t\t\t<Speaker>'
        f'\n\t\t\t\t\t\t\t<Manual Value="{"true" if speaker_on else "false"}"/>'
        f'\n\t\t\t\t\t\t</Speaker>'
        f'\n\t\t\t\t\t</Mixer>'
        f'\n\t\t\t\t\t<DeviceChain>'
        f'\n\t\t\t\t\t\t<Devices>'
        f'\n\t\t\t\t\t\t\t<PluginDevice Id="0">'
        f'\n\t\t\t\t\t\t\t\t<SourceContext>'
        f'\n\t\t\t\t\t\t\t\t\t<Value>'
        f'\n\t\t\t\t\t\t\t\t\t\t<BranchSourceContext>'
        f'\n\t\t\t\t\t\t\t\t\t\t\t<BrowserContentPath Value="{browser_path}"/>'
        f'\n\t\t\t\t\t\t\t\t\t\t</BranchSourceContext>'
        f'\n\t\t\t\t\t\t\t\t\t</Value>'
        f'\n\t\t\t\t\t\t\t\t</SourceContext>'
        f'\n\t\t\t\t\t\t\t\t<PluginDesc>'
        f'\n\t\t\t\t\t\t\t\t\t<Vst3PluginInfo>'
        f'\n\t\t\t\t\t\t\t\t\t\t<Name Value="{plugin_name}"/>'
        f'\n\t\t\t\t\t\t\t\t\t</Vst3PluginInfo>'
        f'\n\t\t\t\t\t\t\t\t</PluginDesc>'
        f'\n\t\t\t\t\t\t\t\t<ParameterList>{parameter_xml}'
        f'\n\t\t\t\t\t\t\t\t</ParameterList>'
        f'\n\t\t\t\t\t\t\t</PluginDevice>'
        f'\n\t\t\t\t\t\t</Devices>'
        f'\n\t\t\t\t\t</DeviceChain>'
        f'\n\t\t\t\t</DeviceChain>'
        f'\n\t\t\t</{tag}>'
    )


def build_live_set(
    *,
    cutoff_events: Events = CUTOFF_EVENTS,
    mute_events: Optional[Events] = MUTE_EVENTS,
    speaker_on: bool = True,
) -> str:
    """Live set XML with one Digitakt II track and one third-party reverb track.

    The Digitakt exposes ``T1 Filter Cutoff`` (pointee 101), ``T1 Muted``
    (102), ``T2 Filter Cutoff`` (103, never automated), ``Master Volume``
    (104, no track prefix) and an unassigned slot (105). One envelope points
    at a target the plugin does not expose.
    """

    envelopes = [("101", cutoff_events), ("999", ((0.0, 0.1), (1.0, 0.2)))]
    if mute_events is not None:
        envelopes.insert(1, ("102", mute_events))
    elektron = _track_xml(
        "MidiTrack",
        10,
        "Digitakt",
        "query:Plugins#VST3:Elektron%20Music%20Machines:Digitakt%20II",
        "Digitakt II",
        [
            ("T1 Filter Cutoff", 10, "101"),
            ("T1 Muted", 11, "102"),
            ("T2 Filter Cutoff", 20, "103"),
            ("Master Volume", 5, "104"),
            ("Unassigned", -1, "105"),
        ],
        envelopes,
        speaker_on=speaker_on,
    )
    reverb = _track_xml(
        "AudioTrack",
        11,
        "Verb",
        "query:Plugins#VST3:Acme:Space%20Reverb",
        "Space Reverb",
        [("Mix", 1, "201")],
        [("201", ((0.0, 0.3), (4.0, 0.9)))],
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<Ableton MajorVersion="5" MinorVersion="12.0_12049" Creator="Ableton Live 12.0.5">'
        "\n\t<LiveSet>"
        "\n\t\t<Tracks>"
        f"{elektron}{reverb}"
        "\n\t\t</Tracks>"
        "\n\t</LiveSet>"
        "\n</Ableton>\n"
    )


@pytest.fixture()
def live_set_text() -> str:
    return build_live_set()


@pytest.fixture()
def live_set_bytes(live_set_text: str) -> bytes:
    return compress(live_set_text)


@pytest.fixture()
def live_set_path(tmp_path: Path, live_set_bytes: bytes) -> Path:
    path = tmp_path / "demo.als"
    path.write_bytes(live_set_bytes)
    return path


@pytest.fixture()
def settings() -> EditorSettings:
    return EditorSettings()


@pytest_asyncio.fixture()
async def database():
    db = AutomationDatabase.from_url("sqlite://")
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture()
async def session(settings: EditorSettings):
    editor = EditorSession.create(settings)
    await editor.open()
    yield editor
    await editor.close()


@pytest_asyncio.fixture()
async def imported_session(session: EditorSession, live_set_bytes: bytes):
    await session.import_bytes(live_set_bytes)
    return session
