import numpy as np
import pytest

from domain.errors import AutomationPointNotFoundError, InvalidValueError, ParameterNotFoundError
from domain.models import PRE_ROLL_SENTINEL_TIME, Device
from timeline.automation_service import PointEdit
from timeline.simplify import perpendicular_distances


async def _lane(session, name="T1 Lane", initial_value=None):
    device = Device(device_name="Digitakt II", device_type="Elektron")
    await session.database.insert_record("devices", device)
    track = await session.tracks.create_track(device.id, 1, "Digitakt II T1")
    return await session.tracks.create_parameter(track.id, name, initial_value=initial_value)


async def _values(session, parameter_id):
    points = await session.automation.get_automation_points(parameter_id=parameter_id)
    return [(point.time_position, point.value) for point in points]


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [-0.01, 1.01])
async def test_out_of_range_values_are_rejected(session, value):
    parameter = await _lane(session)
    point = await session.automation.create_automation_point(parameter.id, 1.0, 0.5)

    with pytest.raises(InvalidValueError):
        await session.automation.create_automation_point(parameter.id, 2.0, value)
    with pytest.raises(InvalidValueError):
        await session.automation.update_automation_point(point.id, parameter.id, 1.0, value)

    assert await _values(session, parameter.id) == [(1.0, 0.5)]


@pytest.mark.asyncio
async def test_unknown_ids_raise_not_found(session):
    with pytest.raises(ParameterNotFoundError):
        await session.automation.create_automation_point("missing", 1.0, 0.5)
    with pytest.raises(AutomationPointNotFoundError):
        await session.automation.get_automation_point("missing")


@pytest.mark.asyncio
async def test_first_edit_follows_into_the_pre_roll(session):
    parameter = await _lane(session, initial_value=0.2)

    point = await session.automation.create_automation_point(parameter.id, 0.0, 0.8)
    assert await _values(session, parameter.id) == [(PRE_ROLL_SENTINEL_TIME, 0.8), (0.0, 0.8)]

    await session.automation.update_automation_point(point.id, parameter.id, 0.0, 0.4)
    assert await _values(session, parameter.id) == [(PRE_ROLL_SENTINEL_TIME, 0.4), (0.0, 0.4)]

    await session.automation.create_automation_point(parameter.id, 4.0, 1.0)
    await session.automation.update_automation_point(point.id, parameter.id, 0.0, 0.1)
    assert await _values(session, parameter.id) == [
        (PRE_ROLL_SENTINEL_TIME, 0.4),
        (0.0, 0.1),
        (4.0, 1.0),
    ]


@pytest.mark.asyncio
async def test_range_queries_are_inclusive_and_ordered(session):
    parameter = await _lane(session)
    for time_position, value in [(3.0, 0.3), (1.0, 0.1), (2.0, 0.2), (5.0, 0.5)]:
        await session.automation.create_automation_point(parameter.id, time_position, value)

    inside = await session.automation.get_automation_points_in_range(parameter.id, 1.0, 3.0)
    assert [p.time_position for p in inside] == [1.0, 2.0, 3.0]

    latest = await session.automation.get_automation_points(
        parameter_ids=[parameter.id], direction="desc", limit=2
    )
    assert [p.time_position for p in latest] == [5.0, 3.0]
    assert await session.automation.get_automation_points(parameter_ids=[]) == []
    with pytest.raises(InvalidValueError):
        await session.automation.get_automation_points(direction="sideways")


@pytest.mark.asyncio
async def test_bulk_set_creates_and_updates(session):
    parameter = await _lane(session)
    existing = await session.automation.create_automation_point(parameter.id, 1.0, 0.1)

    results = await session.automation.bulk_set_automation_points(
        [
            PointEdit(parameter_id=parameter.id, time_position=1.0, value=0.9, id=existing.id),
            PointEdit(parameter_id=parameter.id, time_position=2.0, value=0.2),
        ]
    )

    assert [r.value for r in results] == [0.9, 0.2]
    assert await _values(session, parameter.id) == [(1.0, 0.9), (2.0, 0.2)]


@pytest.mark.asyncio
async def test_remove_and_delete_points(session):
    parameter = await _lane(session)
    first = await session.automation.create_automation_point(parameter.id, 1.0, 0.1)
    await session.automation.create_automation_point(parameter.id, 2.0, 0.2)

    assert await session.automation.remove_automation_point(parameter.id, 2.0)
    assert not await session.automation.remove_automation_point(parameter.id, 7.0)
    assert await session.automation.delete_automation_points([first.id, "missing"]) == 1
    assert await _values(session, parameter.id) == []


@pytest.mark.asyncio
async def test_simplify_removes_colinear_middle_point(session):
    parameter = await _lane(session)
    points = [
        await session.automation.create_automation_point(parameter.id, t, v)
        for t, v in [(0.0, 0.0), (1.0, 0.5), (2.0, 1.0)]
    ]

    removed = await session.automation.simplify_automation_points(
        [point.id for point in points], 0.005
    )

    assert removed == [points[1].id]
    assert await _values(session, parameter.id) == [(0.0, 0.0), (2.0, 1.0)]


@pytest.mark.asyncio
async def test_simplify_backs_off_but_keeps_significant_points(session):
    parameter = await _lane(session)
    points = [
        await session.automation.create_automation_point(parameter.id, t, v)
        for t, v in [(0.0, 0.0), (1.0, 0.53), (2.0, 1.0), (3.0, 0.0)]
    ]
    ids = [point.id for point in points]

    # Deviation of the second point is ~0.027: found on the third pass (0.04).
    removed = await session.automation.simplify_automation_points(ids, 0.01)
    assert removed == [points[1].id]

    # The peak at t=2 deviates by 1.0 and survives every back-off.
    assert await session.automation.simplify_automation_points(ids[2:] + ids[:1], 0.01) == []


@pytest.mark.asyncio
async def test_simplify_never_removes_series_endpoints(session):
    parameter = await _lane(session)
    points = [
        await session.automation.create_automation_point(parameter.id, t, 0.5)
        for t in (0.0, 1.0, 2.0, 3.0)
    ]

    removed = await session.automation.simplify_automation_points(
        [point.id for point in points], 0.5
    )

    assert set(removed) == {points[1].id, points[2].id}
    assert [t for t, _ in await _values(session, parameter.id)] == [0.0, 3.0]


def test_perpendicular_distance_of_endpoints_is_infinite():
    distances = perpendicular_distances([0.0, 1.0, 2.0], [0.0, 1.0, 0.0])
    assert np.isinf(distances[0]) and np.isinf(distances[-1])
    assert distances[1] == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_parameter_stats_and_max_time(session):
    parameter = await _lane(session)
    assert (await session.automation.get_parameter_stats(parameter.id)).point_count == 0

    await session.automation.create_automation_point(parameter.id, 2.0, 0.2)
    await session.automation.create_automation_point(parameter.id, 12.0, 0.7)

    stats = await session.automation.get_parameter_stats(parameter.id)
    assert (stats.min_value, stats.max_value, stats.min_time, stats.max_time) == (0.2, 0.7, 2.0, 12.0)
    assert stats.point_count == 2
    assert await session.automation.get_max_time() == 12.0 + session.settings.max_time_headroom


@pytest.mark.asyncio
async def test_move_and_copy_parameter_automation(session):
    parameter = await _lane(session)
    for t, v in [(1.0, 0.1), (2.0, 0.2), (6.0, 0.6)]:
        await session.automation.create_automation_point(parameter.id, t, v)

    assert await session.automation.move_parameter_automation(parameter.id, 0.0, 3.0, 1.5) == 2
    assert await session.automation.copy_parameter_automation(parameter.id, 6.0, None, 4.0) == 1

    assert await _values(session, parameter.id) == [
        (2.5, 0.1),
        (3.5, 0.2),
        (6.0, 0.6),
        (10.0, 0.6),
    ]
