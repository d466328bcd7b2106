"""CLI entry point that re-projects a Live set through the automation database."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Sequence

from domain.config import EditorSettings
from timeline.session import EditorSession


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import a Live set, optionally thin its automation, and write it back out.",
    )
    parser.add_argument("--als", type=Path, required=True, help="Source .als file.")
    parser.add_argument("--output", type=Path, required=True, help="Destination .als file.")
    parser.add_argument(
        "--simplify-tolerance",
        type=float,
        help="Remove automation points closer than this to their neighbours' chord.",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL for the automation database (defaults to in-memory SQLite).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log progress to stderr.")
    return parser.parse_args(argv)


async def export(
    source: Path,
    output: Path,
    settings: EditorSettings,
    simplify_tolerance: float | None = None,
) -> Dict[str, Any]:
    async with EditorSession.create(settings) as session:
        imported = await session.import_file(source)
        removed = 0
        if simplify_tolerance is not None:
            for parameter in await session.tracks.get_all_parameters():
                if parameter.is_mute:
                    continue
                points = await session.automation.get_automation_points(parameter_id=parameter.id)
                removed += len(
                    await session.automation.simplify_automation_points(
                        [point.id for point in points], simplify_tolerance
                    )
                )
        result = await session.export_file(output)
        return {
            "als": str(source),
            "output": str(result.path),
            "counts": imported.counts,
            "simplified_points": removed,
            "written": len(result.report.written),
            "unchanged": len(result.report.unchanged),
            "skipped": len(result.report.skipped),
        }


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    settings = EditorSettings.from_environment()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})

    summary = asyncio.run(
        export(
            args.als.expanduser().resolve(),
            args.output.expanduser().resolve(),
            settings,
            args.simplify_tolerance,
        )
    )
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
