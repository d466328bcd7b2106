from datetime import datetime, timedelta, timezone

import pytest

from domain.errors import InvalidValueError
from domain.models import PRE_ROLL_SENTINEL_TIME as PRE
from domain.models import AutomationPoint, Device
from timeline.playback import interpolate_window, sample_times

M, U = True, False


def _pairs(events):
    return [(event.time_position, event.value) for event in events]


def test_ramp_between_bracketing_points_on_playback_start():
    events = interpolate_window([(-2.0, 0.0)], [], [(2.0, 1.0)], 0.0, 1.0, 0.5, is_beginning_play=True)
    assert _pairs(events) == [(0.0, 0.5), (0.5, 0.625), (1.0, 0.75)]


def test_ramp_through_empty_window_emits_its_first_sample():
    events = interpolate_window([(-2.0, 0.0)], [], [(2.0, 1.0)], 0.0, 1.0, 0.5)
    assert _pairs(events) == [(0.0, 0.5), (0.5, 0.625), (1.0, 0.75)]


def test_flat_lane_only_asserts_state_on_playback_start():
    flat = ([(-1.0, 0.3)], [(0.5, 0.3)], [(5.0, 0.3)])

    assert _pairs(interpolate_window(*flat, 0.0, 1.0, 0.1, is_beginning_play=True)) == [(0.0, 0.3)]
    assert interpolate_window(*flat, 0.0, 1.0, 0.1) == []
    assert interpolate_window([], [], [], 0.0, 1.0, 0.1, is_beginning_play=True) == []


def test_change_inside_window_is_delta_encoded():
    events = interpolate_window(
        [(-2.0, 0.0)], [(0.5, 0.0)], [(1.5, 1.0)], 0.0, 1.0, 0.1, is_beginning_play=True
    )
    assert _pairs(events) == [
        (0.0, 0.0),
        (0.6, 0.1),
        (0.7, 0.2),
        (0.8, 0.3),
        (0.9, 0.4),
        (1.0, 0.5),
    ]


def test_window_with_points_skips_first_sample_outside_playback_start():
    events = interpolate_window([(-1.0, 0.0)], [(0.5, 1.0)], [], 0.0, 1.0, 0.25)
    assert _pairs(events) == [(0.25, 0.833), (0.5, 1.0)]


def test_step_pair_holds_value_until_its_time():
    events = interpolate_window(
        [(0.0, 0.0)], [(5.0, 0.0), (5.0, 1.0)], [(10.0, 1.0)], 0.0, 6.0, 1.0, is_beginning_play=True
    )
    assert _pairs(events) == [(0.0, 0.0), (5.0, 1.0)]


def test_step_pair_after_window_is_approached_from_its_first_value():
    events = interpolate_window(
        [(0.0, 0.2)], [], [(4.0, 0.6), (4.0, 0.0)], 0.0, 2.0, 1.0, is_beginning_play=True
    )
    assert _pairs(events) == [(0.0, 0.2), (1.0, 0.3), (2.0, 0.4)]


def test_sample_grid_includes_window_end():
    assert list(sample_times(0.0, 1.0, 0.1))[-1] == pytest.approx(1.0)
    assert len(sample_times(0.0, 1.0, 0.1)) == 11


# ----------------------------------------------------------------------
# PlaybackEmitter
# ----------------------------------------------------------------------
async def _track_with_lanes(session):
    device = Device(device_name="Analog Rytm", device_type="Elektron")
    await session.database.insert_record("devices", device)
    track = await session.tracks.create_track(device.id, 1, "Analog Rytm T1")
    mute = await session.tracks.create_parameter(track.id, "T1 Muted")
    level = await session.tracks.create_parameter(track.id, "T1 Level")
    for time_position, value in [(-2.0, 0.0), (2.0, 1.0)]:
        await session.database.insert_record(
            "automation_points",
            AutomationPoint(parameter_id=level.id, time_position=time_position, value=value),
        )
    for time_position, is_muted in [(PRE, M), (2.0, U), (6.0, M)]:
        await session.mute_transitions.create_mute_transition(
            track.id, time_position, is_muted, mute.id
        )
    return track, level


@pytest.mark.asyncio
async def test_emitter_reads_bracketing_points(session):
    _, level = await _track_with_lanes(session)

    events = await session.playback.get_interpolated_values_to_play(
        level.id, 0.0, 1.0, 0.5, is_beginning_play=True
    )

    assert _pairs(events) == [(0.0, 0.5), (0.5, 0.625), (1.0, 0.75)]
    with pytest.raises(InvalidValueError):
        await session.playback.get_interpolated_values_to_play(level.id, 0.0, 1.0, 0.0)


@pytest.mark.asyncio
async def test_mute_playback_restamps_current_state(session):
    track, _ = await _track_with_lanes(session)
    play = session.playback.get_mute_transitions_to_play

    started = await play(track.id, 0.0, 4.0, is_beginning_play=True)
    assert [(e.time_position, e.is_muted) for e in started] == [(0.0, M), (2.0, U)]

    running = await play(track.id, 2.0, 6.0)
    assert [(e.time_position, e.is_muted) for e in running] == [(2.0, U)]

    at_boundary = await play(track.id, 2.0, 3.0, is_beginning_play=True)
    assert [(e.time_position, e.is_muted) for e in at_boundary] == [(2.0, U)]


@pytest.mark.asyncio
async def test_emitter_keeps_step_pairs_at_window_end(session):
    _, level = await _track_with_lanes(session)
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for offset, value in enumerate([1.0, 0.0]):
        await session.database.insert_record(
            "automation_points",
            AutomationPoint(
                parameter_id=level.id,
                time_position=4.0,
                value=value,
                created_at=base + timedelta(seconds=offset),
            ),
        )

    events = await session.playback.get_interpolated_values_to_play(
        level.id, 2.0, 4.0, 1.0, is_beginning_play=True
    )

    assert _pairs(events) == [(2.0, 1.0), (4.0, 0.0)]
