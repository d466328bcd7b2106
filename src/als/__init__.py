"""Read and write Ableton Live sets carrying vendor plugin automation."""
from .codec import compress, decompress
from .document import AlsDocument, parse_document, parse_text
from .exporter import AlsExporter, ExportReport, ParameterExport, mute_transitions_to_events
from .importer import AlsImporter, transitions_from_events
from .project_export_service import AlsExportResult, AlsExportService
from .project_import_service import AlsImportResult, AlsImportService

__all__ = [
    "AlsDocument",
    "AlsExportResult",
    "AlsExportService",
    "AlsExporter",
    "AlsImportResult",
    "AlsImportService",
    "AlsImporter",
    "ExportReport",
    "ParameterExport",
    "compress",
    "decompress",
    "mute_transitions_to_events",
    "parse_document",
    "parse_text",
    "transitions_from_events",
]
