"""Extract automation entities from a Live set.

Only tracks whose first device is a plugin from the configured vendor are
considered. For each such device the plugin's flat parameter list is mapped
by automation target id, envelopes are resolved against that map, and the
result is normalised into :mod:`domain.models` entities.

Mute lanes are recognised by name (``T<n> Muted``) plus the observation that
every recorded value is exactly 0 or 1. A continuous parameter whose
recorded values happen to be only 0 and 1 under a mute-like name would be
classified as a mute lane as well; this mirrors how the set is edited in
practice and is kept deliberately.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from domain.config import EditorSettings
from domain.errors import AlsFormatError
from domain.models import (
    AutomationPoint,
    Device,
    ImportedProject,
    MuteTransition,
    Parameter,
    Track,
)
from domain.naming import ParameterNameMatcher

from .document import AlsDocument, parse_document
from .xml_paths import (
    Element,
    attribute_value,
    child_path,
    direct_children,
    element_children,
    path_value,
)

logger = logging.getLogger(__name__)

TRACK_TAGS = ("MidiTrack", "AudioTrack")
DEVICES_PATH = ("DeviceChain", "DeviceChain", "Devices")
BROWSER_PATH = ("SourceContext", "Value", "BranchSourceContext", "BrowserContentPath")
PLUGIN_NAME_PATHS = (
    ("PluginDesc", "Vst3PluginInfo", "Name"),
    ("PluginDesc", "VstPluginInfo", "PlugName"),
)
SPEAKER_PATH = ("DeviceChain", "Mixer", "Speaker", "Manual")
ENVELOPES_PATH = ("AutomationEnvelopes", "Envelopes")
EVENTS_PATH = ("Automation", "Events")

Event = Tuple[float, float]


@dataclass(frozen=True)
class DeviceRef:
    """Vendor plugin found at the head of a host track's device chain."""

    name: str
    plugin_name: str
    node: Element = field(compare=False, repr=False)


@dataclass(frozen=True)
class ParameterRef:
    """Entry of a plugin's parameter list keyed by automation target id."""

    pointee_id: str
    name: str
    vst_parameter_id: int


@dataclass(frozen=True)
class Envelope:
    """Automation envelope resolved to a plugin parameter."""

    parameter: ParameterRef
    events: Tuple[Event, ...]
    node: Element = field(compare=False, repr=False)

    @property
    def pointee_id(self) -> str:
        return self.parameter.pointee_id

    @property
    def is_binary(self) -> bool:
        return bool(self.events) and all(value in (0.0, 1.0) for _, value in self.events)


def iter_track_nodes(document: AlsDocument) -> Iterator[Element]:
    tracks = child_path(document.root, ("LiveSet", "Tracks"))
    if tracks is None:
        return
    for node in element_children(tracks):
        if node.tag in TRACK_TAGS:
            yield node


def envelope_target(envelope_node: Element) -> Optional[str]:
    return path_value(envelope_node, ("EnvelopeTarget", "PointeeId"))


def read_events(envelope_node: Element) -> Tuple[Event, ...]:
    """Return ``(time, value)`` pairs of an envelope sorted by time."""

    events_node = child_path(envelope_node, EVENTS_PATH)
    events: List[Event] = []
    for event in direct_children(events_node, "FloatEvent"):
        time_attr = event.get("Time")
        value_attr = event.get("Value")
        if time_attr is None or value_attr is None:
            continue
        try:
            events.append((float(time_attr), float(value_attr)))
        except ValueError as exc:
            raise AlsFormatError(
                f"Malformed FloatEvent Time={time_attr!r} Value={value_attr!r}"
            ) from exc
    events.sort(key=lambda pair: pair[0])
    return tuple(events)


def transitions_from_events(events: Sequence[Event]) -> List[Tuple[float, bool]]:
    """Collapse binary events into state changes.

    Events sharing a time keep the last value, then any event repeating the
    previous state is dropped.
    """

    by_time: Dict[float, float] = {}
    for time_position, value in events:
        by_time[time_position] = value
    transitions: List[Tuple[float, bool]] = []
    for time_position in sorted(by_time):
        is_muted = by_time[time_position] == 1.0
        if transitions and transitions[-1][1] == is_muted:
            continue
        transitions.append((time_position, is_muted))
    return transitions


class AlsImporter:
    """Turn parsed Live set documents into :class:`ImportedProject` bundles."""

    def __init__(self, settings: EditorSettings | None = None) -> None:
        self._settings = settings or EditorSettings()
        self._matcher = ParameterNameMatcher(self._settings)

    @property
    def settings(self) -> EditorSettings:
        return self._settings

    def parse(self, data: bytes) -> AlsDocument:
        return parse_document(data)

    def iter_track_nodes(self, document: AlsDocument) -> Iterator[Element]:
        return iter_track_nodes(document)

    def classify_device(self, track_node: Element) -> Optional[DeviceRef]:
        """Return the vendor device heading ``track_node``'s chain, if any."""

        devices = element_children(child_path(track_node, DEVICES_PATH))
        if not devices:
            return None
        device_node = devices[0]
        browser_path = path_value(device_node, BROWSER_PATH, "") or ""
        if self._settings.vendor_signature.lower() not in browser_path.lower():
            return None
        plugin_name = ""
        for path in PLUGIN_NAME_PATHS:
            plugin_name = path_value(device_node, path, "") or ""
            if plugin_name:
                break
        if not plugin_name:
            plugin_name = path_value(track_node, ("Name", "EffectiveName"), "") or ""
        name = self._matcher.match_device_name(plugin_name) or plugin_name or browser_path
        return DeviceRef(name=name, plugin_name=plugin_name, node=device_node)

    def build_parameter_map(self, device_node: Element) -> Dict[str, ParameterRef]:
        parameter_list = child_path(device_node, ("ParameterList",))
        mapping: Dict[str, ParameterRef] = {}
        for entry in direct_children(parameter_list, "PluginFloatParameter"):
            name = path_value(entry, ("ParameterName",))
            raw_id = path_value(entry, ("ParameterId",))
            target = child_path(entry, ("ParameterValue", "AutomationTarget"))
            pointee_id = target.get("Id") if target is not None else None
            if name is None or raw_id is None or pointee_id is None:
                continue
            try:
                vst_parameter_id = int(raw_id)
            except ValueError:
                logger.debug("Skipping parameter %r with non-numeric id %r", name, raw_id)
                continue
            if vst_parameter_id == self._settings.unassigned_parameter_id:
                continue
            mapping[pointee_id] = ParameterRef(
                pointee_id=pointee_id, name=name, vst_parameter_id=vst_parameter_id
            )
        return mapping

    def extract_envelopes(
        self, track_node: Element, parameter_map: Dict[str, ParameterRef]
    ) -> List[Envelope]:
        envelopes: List[Envelope] = []
        for node in direct_children(child_path(track_node, ENVELOPES_PATH), "AutomationEnvelope"):
            pointee_id = envelope_target(node)
            parameter = parameter_map.get(pointee_id) if pointee_id is not None else None
            if parameter is None:
                logger.debug("Dropping envelope with unresolved target %r", pointee_id)
                continue
            envelopes.append(Envelope(parameter=parameter, events=read_events(node), node=node))
        return envelopes

    def is_host_track_muted(self, track_node: Element) -> bool:
        return attribute_value(child_path(track_node, SPEAKER_PATH)) == "false"

    def extract(self, document: AlsDocument) -> ImportedProject:
        """Classify every resolved parameter and emit normalised entities."""

        project = ImportedProject()
        devices: Dict[str, Device] = {}
        tracks: Dict[Tuple[str, int], Track] = {}
        mute_claimed: Set[str] = set()

        for track_node in self.iter_track_nodes(document):
            device_ref = self.classify_device(track_node)
            if device_ref is None:
                continue
            device = devices.get(device_ref.name)
            if device is None:
                device = Device(
                    device_name=device_ref.name, device_type=self._settings.vendor_signature
                )
                devices[device_ref.name] = device
                project.devices.append(device)

            host_muted = self.is_host_track_muted(track_node)
            parameter_map = self.build_parameter_map(device_ref.node)
            envelopes = {
                envelope.pointee_id: envelope
                for envelope in self.extract_envelopes(track_node, parameter_map)
            }

            for ref in parameter_map.values():
                track_number = self._matcher.extract_track_number(ref.name)
                if track_number is None:
                    logger.warning(
                        "Parameter %r on %s has no track prefix; skipping", ref.name, device.device_name
                    )
                    continue
                mute = self._matcher.parse_mute_parameter(ref.name)
                track = tracks.get((device.id, track_number))
                if track is None:
                    track = Track(
                        device_id=device.id,
                        track_number=track_number,
                        track_name=f"{device.device_name} T{track_number}",
                        is_muted=host_muted,
                    )
                    tracks[(device.id, track_number)] = track
                    project.tracks.append(track)

                parameter = Parameter(
                    track_id=track.id,
                    parameter_name=ref.name,
                    parameter_path=f"/{device.device_name}/{ref.name}",
                    original_pointee_id=ref.pointee_id,
                    vst_parameter_id=ref.vst_parameter_id,
                    is_mute=mute.is_mute,
                )
                project.parameters.append(parameter)

                envelope = envelopes.get(ref.pointee_id)
                if envelope is None:
                    continue
                if mute.is_mute and envelope.is_binary and track.id not in mute_claimed:
                    mute_claimed.add(track.id)
                    project.mute_transitions.extend(
                        MuteTransition(
                            track_id=track.id,
                            mute_parameter_id=parameter.id,
                            time_position=time_position,
                            is_muted=is_muted,
                        )
                        for time_position, is_muted in transitions_from_events(envelope.events)
                    )
                else:
                    project.automation_points.extend(
                        self._automation_points(parameter, envelope.events)
                    )

        logger.info("Extracted %s", project.summary())
        return project

    @staticmethod
    def _automation_points(parameter: Parameter, events: Sequence[Event]) -> List[AutomationPoint]:
        points: List[AutomationPoint] = []
        for time_position, value in events:
            if not 0.0 <= value <= 1.0:
                raise AlsFormatError(
                    f"Automation value {value} for {parameter.parameter_name!r} is outside [0, 1]"
                )
            points.append(
                AutomationPoint(parameter_id=parameter.id, time_position=time_position, value=value)
            )
        return points


__all__ = [
    "AlsImporter",
    "DeviceRef",
    "Envelope",
    "ParameterRef",
    "envelope_target",
    "iter_track_nodes",
    "read_events",
    "transitions_from_events",
]
