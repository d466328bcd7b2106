"""Geometry for automation simplification."""
from __future__ import annotations

from typing import Sequence

import numpy as np


def perpendicular_distances(times: Sequence[float], values: Sequence[float]) -> np.ndarray:
    """Distance of each point to the chord joining its neighbours.

    The first and last entries have no chord and are reported as ``inf``.
    """

    x = np.asarray(times, dtype=float)
    y = np.asarray(values, dtype=float)
    distances = np.full(x.shape, np.inf)
    if x.size < 3:
        return distances
    x0, y0 = x[:-2], y[:-2]
    x1, y1 = x[1:-1], y[1:-1]
    dx = x[2:] - x0
    dy = y[2:] - y0
    chord = np.hypot(dx, dy)
    cross = np.abs(dy * (x1 - x0) - dx * (y1 - y0))
    with np.errstate(divide="ignore", invalid="ignore"):
        distances[1:-1] = np.where(chord > 0, cross / chord, np.hypot(x1 - x0, y1 - y0))
    return distances


def removable_mask(
    times: Sequence[float],
    values: Sequence[float],
    tolerance: float,
    protected: Sequence[bool] | None = None,
) -> np.ndarray:
    """Points deviating less than ``tolerance`` and not ``protected``."""

    mask = perpendicular_distances(times, values) < tolerance
    if protected is not None:
        mask &= ~np.asarray(protected, dtype=bool)
    return mask


__all__ = ["perpendicular_distances", "removable_mask"]
