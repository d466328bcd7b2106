"""Timeline editing services: automation lanes, mute transitions and clips.

:class:`timeline.session.EditorSession` wires these together with the Live
set import and export services.
"""
from .automation_service import AutomationService, PointEdit
from .clip_service import ClipCopyResult, ClipMoveResult, ClipService
from .clips import clips_from_points, clips_from_transitions, derive_clips
from .device_service import DeviceService
from .mute_transition_service import MuteTransitionService
from .playback import PlaybackEmitter, interpolate_window
from .tracks_service import TracksService

__all__ = [
    "AutomationService",
    "ClipCopyResult",
    "ClipMoveResult",
    "ClipService",
    "DeviceService",
    "MuteTransitionService",
    "PlaybackEmitter",
    "PointEdit",
    "TracksService",
    "clips_from_points",
    "clips_from_transitions",
    "derive_clips",
    "interpolate_window",
]
