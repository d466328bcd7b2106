"""CLI entry point that imports a Live set and reports its automation."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Sequence

from domain.config import EditorSettings
from domain.naming import ParameterNameMatcher
from timeline.session import EditorSession


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import an Ableton Live set and summarise its hardware automation.",
    )
    parser.add_argument(
        "--als",
        type=Path,
        required=True,
        help="Path to the .als file to inspect.",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL for the automation database (defaults to in-memory SQLite).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log import progress to stderr.",
    )
    return parser.parse_args(argv)


async def inspect(path: Path, settings: EditorSettings) -> Dict[str, Any]:
    matcher = ParameterNameMatcher(settings)
    async with EditorSession.create(settings) as session:
        result = await session.import_file(path)
        devices = []
        for summary in await session.devices.get_devices_with_stats():
            tracks = []
            parameter_names = []
            for track_summary in await session.tracks.get_track_summaries(summary.device.id):
                clips = await session.clips.get_clips_for_track(track_summary.track.id)
                parameters = await session.tracks.get_parameters_for_track(track_summary.track.id)
                parameter_names.extend(parameter.parameter_name for parameter in parameters)
                tracks.append(
                    {
                        "track_number": track_summary.track.track_number,
                        "track_name": track_summary.track.track_name,
                        "parameters": [
                            matcher.clean_parameter_name(parameter.parameter_name)
                            for parameter in parameters
                        ],
                        "parameter_count": track_summary.parameter_count,
                        "automation_point_count": track_summary.automation_point_count,
                        "mute_transition_count": track_summary.mute_transition_count,
                        "clips": [[clip.start_time, clip.end_time] for clip in clips],
                    }
                )
            transitions = await session.mute_transitions.get_mute_transitions_for_device(
                summary.device.id
            )
            devices.append(
                {
                    "device_name": summary.device.device_name,
                    "track_count": summary.track_count,
                    "parameter_count": summary.parameter_count,
                    "parameter_tracks": matcher.track_numbers(parameter_names),
                    "mute_transition_count": len(transitions),
                    "tracks": tracks,
                }
            )
        return {
            "als": str(path),
            "counts": result.counts,
            "max_time": await session.automation.get_max_time(),
            "devices": devices,
        }


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    settings = EditorSettings.from_environment()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})

    summary = asyncio.run(inspect(args.als.expanduser().resolve(), settings))
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
