"""
Longitudinal profile math used by the elevation harmonizer.

This module provides:
    • ReferenceProfile        - interpolated view of a road's current elevations
    • Influence               - one junction's rewrite of part of a road
    • hermite_quintic()
    • junction_profile()      - quintic blend + smoothstep ease zone
    • dead_end_profile()      - slope-projected taper toward a terminal value
    • combine_influences()
    • clamp_slopes()

Distances are running distances along the road; `u` is the distance from
the junction contact point, measured in the direction the profile runs.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from road_harmonizer.blending.blend_functions import quintic, smoothstep


_TINY = 1e-9


# -------------------------------------------------------------------------
#  Reference profile
# -------------------------------------------------------------------------

class ReferenceProfile:
    """
    Piecewise-linear elevation of a road over running distance, built from
    its finite samples only. Slopes come from np.gradient over those samples.
    """

    def __init__(self, distances: np.ndarray, elevations: np.ndarray):
        distances = np.asarray(distances, dtype=float)
        elevations = np.asarray(elevations, dtype=float)
        valid = np.isfinite(elevations)

        self.distances = distances[valid]
        self.elevations = elevations[valid]
        if len(self.elevations) >= 2:
            self.gradient = np.gradient(self.elevations, self.distances)
        else:
            self.gradient = np.zeros_like(self.elevations)

    @property
    def is_empty(self) -> bool:
        return len(self.elevations) == 0

    def value(self, d):
        if self.is_empty:
            return np.full(np.shape(d), np.nan) if np.ndim(d) else math.nan
        return np.interp(d, self.distances, self.elevations)

    def slope(self, d):
        """Slope along increasing running distance."""
        if self.is_empty:
            return np.zeros(np.shape(d)) if np.ndim(d) else 0.0
        return np.interp(d, self.distances, self.gradient)


# -------------------------------------------------------------------------
#  Basis
# -------------------------------------------------------------------------

def hermite_quintic(u, length: float, v0: float, s0: float, v1: float, s1: float):
    """
    Quintic Hermite interpolant on [0, length] with value/slope (v0, s0) at
    u=0, (v1, s1) at u=length, and zero curvature at both ends.
    """
    tau = np.clip(np.asarray(u, dtype=float) / length, 0.0, 1.0)
    t3 = tau ** 3
    t4 = t3 * tau
    t5 = t4 * tau

    h_v0 = 1.0 - 10.0 * t3 + 15.0 * t4 - 6.0 * t5
    h_s0 = tau - 6.0 * t3 + 8.0 * t4 - 3.0 * t5
    h_s1 = -4.0 * t3 + 7.0 * t4 - 3.0 * t5
    h_v1 = 10.0 * t3 - 15.0 * t4 + 6.0 * t5

    return v0 * h_v0 + length * s0 * h_s0 + length * s1 * h_s1 + v1 * h_v1


# -------------------------------------------------------------------------
#  Influences
# -------------------------------------------------------------------------

@dataclass
class Influence:
    """
    Rewritten elevations for a subset of one road's samples.

    `indices` are local section indices, `tau` the normalized distance from
    the junction (0 at the contact point, < 1 inside the influence), and
    `anchor` the local index held fixed by the slope clamp.
    """

    indices: np.ndarray
    values: np.ndarray
    tau: np.ndarray
    anchor: Optional[int] = None


def available_length(distances: np.ndarray, d0: float, direction: int) -> float:
    if direction > 0:
        return max(float(distances[-1]) - d0, 0.0)
    return max(d0 - float(distances[0]), 0.0)


def _anchor(distances: np.ndarray, d0: float) -> int:
    return int(np.argmin(np.abs(distances - d0)))


def junction_profile(
    ref: ReferenceProfile,
    distances: np.ndarray,
    d0: float,
    direction: int,
    target: float,
    start_slope: float,
    blend_distance: float,
    ease_fraction: float,
) -> Optional[Influence]:
    """
    Profile leaving a junction at running distance `d0` in `direction`
    (+1 toward the road end, -1 toward its start).

    On [0, D] a quintic Hermite goes from (target, start_slope) to the
    reference value and slope at D. On (D, D + ease] the linear continuation
    of that end point is smoothstep-blended into the reference, so value and
    slope are continuous at both ends of both zones. Both lengths are
    truncated to the road available in that direction.
    """
    avail = available_length(distances, d0, direction)
    length = min(blend_distance, avail)
    if length <= _TINY:
        return None
    ease = min(ease_fraction * length, avail - length)
    total = length + ease

    u = direction * (distances - d0)
    mask = (u >= -_TINY) & (u < total)
    if not mask.any():
        return None
    idx = np.flatnonzero(mask)
    u = np.clip(u[idx], 0.0, None)

    d_end = d0 + direction * length
    r_end = float(ref.value(d_end))
    s_end = direction * float(ref.slope(d_end))

    values = hermite_quintic(u, length, target, start_slope, r_end, s_end)

    if ease > _TINY:
        in_ease = u > length
        if in_ease.any():
            ue = u[in_ease]
            continuation = r_end + s_end * (ue - length)
            reference = ref.value(d0 + direction * ue)
            w = smoothstep((ue - length) / ease)
            values[in_ease] = continuation * (1.0 - w) + reference * w

    return Influence(idx, values, u / total, _anchor(distances, d0))


def dead_end_profile(
    ref: ReferenceProfile,
    distances: np.ndarray,
    d0: float,
    direction: int,
    target: float,
    taper_distance: float,
) -> Optional[Influence]:
    """
    Taper toward `target` at a dead end.

    The fade starts from where the road would be if its gradient at the
    taper start continued (slope-projected), so the profile leaves the
    untouched part of the road without a kink and reaches `target` at u=0.
    """
    length = min(taper_distance, available_length(distances, d0, direction))
    if length <= _TINY:
        return None

    u = direction * (distances - d0)
    mask = (u >= -_TINY) & (u < length)
    idx = np.flatnonzero(mask)
    if idx.size == 0:
        return None
    u = np.clip(u[idx], 0.0, None)

    d_start = d0 + direction * length
    r_start = float(ref.value(d_start))
    gradient = direction * float(ref.slope(d_start))

    projected = r_start + gradient * (u - length)
    w = quintic(u / length)
    values = target * (1.0 - w) + projected * w

    return Influence(idx, values, u / length, _anchor(distances, d0))


# -------------------------------------------------------------------------
#  Combination & slope clamp
# -------------------------------------------------------------------------

def combine_influences(base: np.ndarray, influences: List[Influence]):
    """
    Merge every influence on a road into one profile.

    Weights grow without bound toward each contact point and fall to zero at
    the influence edge, so a sample reached by one influence takes that
    profile exactly and junction values are kept where influences overlap.

    Returns:
        (values, touched mask)
    """
    base = np.asarray(base, dtype=float)
    num = np.zeros_like(base)
    den = np.zeros_like(base)

    for inf in influences:
        w = (1.0 - smoothstep(inf.tau)) / (inf.tau ** 2 + _TINY)
        np.add.at(num, inf.indices, w * inf.values)
        np.add.at(den, inf.indices, w)

    touched = den > 0
    values = base.copy()
    values[touched] = num[touched] / den[touched]
    return values, touched


def clamp_slopes(distances: np.ndarray, values: np.ndarray, max_slope: float,
                 free: np.ndarray, iterations: int) -> np.ndarray:
    """
    Limit |v[i+1] - v[i]| to max_slope * (d[i+1] - d[i]) by alternating
    forward and backward passes. Only samples flagged in `free` move; NaN
    samples are skipped.
    """
    v = np.asarray(values, dtype=float).copy()
    n = len(v)

    for _ in range(iterations):
        changed = False

        for i in range(1, n):
            if not free[i] or not (math.isfinite(v[i]) and math.isfinite(v[i - 1])):
                continue
            limit = max_slope * (distances[i] - distances[i - 1])
            clipped = min(max(v[i], v[i - 1] - limit), v[i - 1] + limit)
            if clipped != v[i]:
                v[i] = clipped
                changed = True

        for i in range(n - 2, -1, -1):
            if not free[i] or not (math.isfinite(v[i]) and math.isfinite(v[i + 1])):
                continue
            limit = max_slope * (distances[i + 1] - distances[i])
            clipped = min(max(v[i], v[i + 1] - limit), v[i + 1] + limit)
            if clipped != v[i]:
                v[i] = clipped
                changed = True

        if not changed:
            break

    return v
