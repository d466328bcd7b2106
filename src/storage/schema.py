"""Relational schema for automation entities.

Foreign keys: devices <- tracks <- parameters <- automation_points, and
tracks <- mute_transitions (which also reference the track's mute parameter).
``edit_history`` is reserved for undo support and is not written to yet.
"""
from __future__ import annotations

from typing import List, Tuple

TABLES: Tuple[str, ...] = (
    "devices",
    "tracks",
    "parameters",
    "automation_points",
    "mute_transitions",
    "edit_history",
)

# Children before parents so deletes respect foreign keys.
DELETE_ORDER: Tuple[str, ...] = (
    "edit_history",
    "mute_transitions",
    "automation_points",
    "parameters",
    "tracks",
    "devices",
)

CREATE_TABLES: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS devices (
        id TEXT PRIMARY KEY,
        device_name TEXT NOT NULL,
        device_type TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tracks (
        id TEXT PRIMARY KEY,
        device_id TEXT NOT NULL REFERENCES devices(id),
        track_number INTEGER NOT NULL,
        track_name TEXT NOT NULL,
        is_muted BOOLEAN NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS parameters (
        id TEXT PRIMARY KEY,
        track_id TEXT NOT NULL REFERENCES tracks(id),
        parameter_name TEXT NOT NULL,
        parameter_path TEXT,
        original_pointee_id TEXT,
        vst_parameter_id INTEGER,
        is_mute BOOLEAN NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS automation_points (
        id TEXT PRIMARY KEY,
        parameter_id TEXT NOT NULL REFERENCES parameters(id),
        time_position REAL NOT NULL,
        value REAL NOT NULL CHECK (value >= 0.0 AND value <= 1.0),
        curve_type TEXT NOT NULL DEFAULT 'linear',
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mute_transitions (
        id TEXT PRIMARY KEY,
        track_id TEXT NOT NULL REFERENCES tracks(id),
        mute_parameter_id TEXT NOT NULL REFERENCES parameters(id),
        time_position REAL NOT NULL,
        is_muted BOOLEAN NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS edit_history (
        id TEXT PRIMARY KEY,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        operation TEXT NOT NULL,
        payload TEXT,
        created_at TEXT NOT NULL
    )
    """,
]

CREATE_INDEXES: List[str] = [
    "CREATE INDEX IF NOT EXISTS idx_tracks_device ON tracks(device_id)",
    "CREATE INDEX IF NOT EXISTS idx_parameters_track ON parameters(track_id)",
    "CREATE INDEX IF NOT EXISTS idx_parameters_pointee ON parameters(original_pointee_id)",
    "CREATE INDEX IF NOT EXISTS idx_points_parameter_time "
    "ON automation_points(parameter_id, time_position)",
    "CREATE INDEX IF NOT EXISTS idx_transitions_track_time "
    "ON mute_transitions(track_id, time_position)",
]


def schema_statements() -> List[str]:
    """Return the DDL needed to bootstrap an empty database."""

    return [statement.strip() for statement in CREATE_TABLES + CREATE_INDEXES]


__all__ = ["TABLES", "DELETE_ORDER", "CREATE_TABLES", "CREATE_INDEXES", "schema_statements"]
