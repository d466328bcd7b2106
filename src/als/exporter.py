"""Write edited automation back into a Live set.

Export works on a clone of the imported document. Envelopes are resolved the
same way the importer resolves them, and only the ``FloatEvent`` children of
envelopes matched to a database parameter are rewritten. No envelope is ever
created: parameters added during the session have no envelope to write to
and are skipped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from lxml import etree

from domain.models import AutomationPoint, MuteTransition, Parameter

from .document import AlsDocument
from .importer import EVENTS_PATH, AlsImporter, Event
from .xml_paths import Element, child_path, element_children

logger = logging.getLogger(__name__)


def format_number(number: float) -> str:
    """Render a float the way Live writes it: integral values without a fraction."""

    if float(number).is_integer():
        return str(int(number))
    return repr(float(number))


def mute_transitions_to_events(transitions: Sequence[MuteTransition]) -> List[Event]:
    """Re-synthesise a stepped lane from transitions.

    Every transition after the first is preceded by a point at the same time
    holding the previous state, so the step is instantaneous.
    """

    events: List[Event] = []
    previous: Optional[float] = None
    for transition in sorted(transitions, key=lambda t: t.time_position):
        value = 1.0 if transition.is_muted else 0.0
        if previous is not None:
            events.append((transition.time_position, previous))
        events.append((transition.time_position, value))
        previous = value
    return events


@dataclass(frozen=True)
class ParameterExport:
    """Current automation state of one parameter."""

    parameter: Parameter
    points: Tuple[AutomationPoint, ...] = ()
    transitions: Tuple[MuteTransition, ...] = ()

    def events(self) -> List[Event]:
        combined = mute_transitions_to_events(self.transitions)
        combined.extend((point.time_position, point.value) for point in self.points)
        # Stable sort keeps each step pair in order.
        return sorted(combined, key=lambda event: event[0])


@dataclass(frozen=True)
class ExportReport:
    """Which parameters were written, left unchanged, or skipped."""

    written: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class AlsExporter:
    """Project parameter state onto a clone of the original document."""

    def __init__(self, importer: AlsImporter | None = None) -> None:
        self._importer = importer or AlsImporter()

    def project(
        self, original: AlsDocument, exports: Sequence[ParameterExport]
    ) -> AlsDocument:
        document, _ = self.project_with_report(original, exports)
        return document

    def project_with_report(
        self, original: AlsDocument, exports: Sequence[ParameterExport]
    ) -> Tuple[AlsDocument, ExportReport]:
        document = original.clone()
        report = ExportReport()
        by_pointee: Dict[str, ParameterExport] = {}
        for export in exports:
            pointee_id = export.parameter.original_pointee_id
            if pointee_id is None:
                logger.info(
                    "Parameter %r was created in-session and has no envelope; not exported",
                    export.parameter.parameter_name,
                )
                report.skipped.append(export.parameter.id)
                continue
            by_pointee[pointee_id] = export

        matched: Set[str] = set()
        for track_node in self._importer.iter_track_nodes(document):
            device_ref = self._importer.classify_device(track_node)
            if device_ref is None:
                continue
            parameter_map = self._importer.build_parameter_map(device_ref.node)
            for envelope in self._importer.extract_envelopes(track_node, parameter_map):
                export = by_pointee.get(envelope.pointee_id)
                if export is None:
                    logger.debug("Envelope %s has no parameter state; left untouched", envelope.pointee_id)
                    continue
                matched.add(envelope.pointee_id)
                if replace_events(envelope.node, export.events()):
                    report.written.append(export.parameter.id)
                else:
                    report.unchanged.append(export.parameter.id)

        for pointee_id, export in by_pointee.items():
            if pointee_id not in matched and (export.points or export.transitions):
                logger.warning(
                    "No envelope found for %r (target %s); skipped",
                    export.parameter.parameter_name,
                    pointee_id,
                )
                report.skipped.append(export.parameter.id)
        logger.info(
            "Exported %d envelopes (%d unchanged, %d skipped)",
            len(report.written),
            len(report.unchanged),
            len(report.skipped),
        )
        return document, report

    def export_bytes(self, original: AlsDocument, exports: Sequence[ParameterExport]) -> bytes:
        return self.project(original, exports).to_bytes()


def replace_events(envelope_node: Element, events: Sequence[Event]) -> bool:
    """Rewrite an envelope's events; returns ``False`` when nothing changed."""

    events_node = child_path(envelope_node, EVENTS_PATH)
    if events_node is None:
        logger.warning("Envelope without Automation/Events; left untouched")
        return False
    existing = [
        (float(child.get("Time", "nan")), float(child.get("Value", "nan")))
        for child in element_children(events_node)
        if child.tag == "FloatEvent"
    ]
    if existing == list(events) and len(existing) == len(element_children(events_node)):
        return False
    if not events and not existing:
        return False

    children = list(events_node)
    outer_indent = _indent_before(events_node)
    if children:
        item_indent = events_node.text or outer_indent + "\t"
        closing_indent = children[-1].tail or outer_indent
    else:
        item_indent = outer_indent + "\t"
        closing_indent = outer_indent
    for child in children:
        events_node.remove(child)

    if not events:
        events_node.text = None
        return True
    events_node.text = item_indent
    element: Optional[Element] = None
    for index, (time_position, value) in enumerate(events, start=1):
        element = etree.SubElement(
            events_node,
            "FloatEvent",
            Id=str(index),
            Time=format_number(time_position),
            Value=format_number(value),
        )
        element.tail = item_indent
    if element is not None:
        element.tail = closing_indent
    return True


def _indent_before(node: Element) -> str:
    previous = node.getprevious()
    if previous is not None and previous.tail:
        return previous.tail
    parent = node.getparent()
    if parent is not None and parent.text:
        return parent.text
    return "\n"


__all__ = [
    "AlsExporter",
    "ExportReport",
    "ParameterExport",
    "format_number",
    "mute_transitions_to_events",
    "replace_events",
]
