"""
Spline sampler: road centerline -> dense, arc-length ordered cross-sections.

This module provides:
    • sample_road(road, road_id, spacing, interpolation, closed)
    • is_closed_curve(road, params)
    • build_network(roads, params, executor)
"""

import logging
import math
from concurrent.futures import Executor
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np
from scipy.interpolate import Akima1DInterpolator, CubicSpline

from road_harmonizer.config import get_active_params
from road_harmonizer.errors import InvalidCurve
from road_harmonizer.models.cross_section import CrossSection
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.models.road import RoadDefinition
from road_harmonizer.utils.workers import map_ordered


logger = logging.getLogger(__name__)

MIN_CURVE_LENGTH = 0.001
DUPLICATE_TOLERANCE = 1e-6


# ========================================================================
# 1. CONTROL POINT CLEANUP
# ========================================================================

def _clean_control_points(points: Sequence) -> np.ndarray:
    """
    Drop non-finite points and merge consecutive duplicates.
    """
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    pts = pts[np.all(np.isfinite(pts), axis=1)]
    if len(pts) == 0:
        raise InvalidCurve("no finite control points")

    keep = [0]
    for i in range(1, len(pts)):
        if np.hypot(*(pts[i] - pts[keep[-1]])) > DUPLICATE_TOLERANCE:
            keep.append(i)
    pts = pts[keep]

    if len(pts) < 2:
        raise InvalidCurve(f"fewer than two distinct control points ({len(pts)})")
    return pts


def is_closed_curve(road: RoadDefinition, params=None) -> bool:
    """
    A road is treated as a ring when flagged, or when its first and last
    points coincide (within RING_CLOSURE_TOLERANCE) and auto detection is on.
    """
    if road.is_ring:
        return True
    if params is None:
        params = get_active_params()
    if not params["AUTO_DETECT_RINGS"] or len(road.control_points) < 4:
        return False
    first, last = road.control_points[0], road.control_points[-1]
    return math.dist(first, last) <= params["RING_CLOSURE_TOLERANCE"]


# ========================================================================
# 2. INTERPOLATION
# ========================================================================

def _fit(pts: np.ndarray, chord: np.ndarray, interpolation: str, closed: bool):
    """
    Returns (position_fn, derivative_fn) over chord-length parameter s.
    derivative_fn is None for the piecewise-linear case.
    """
    n = len(pts)

    if closed and n >= 4:
        spline = CubicSpline(chord, pts, bc_type="periodic", axis=0)
        return spline, spline.derivative()

    if interpolation == "linear" or n == 2:
        def linear(s):
            s = np.atleast_1d(s)
            return np.column_stack([np.interp(s, chord, pts[:, 0]), np.interp(s, chord, pts[:, 1])])
        return linear, None

    if n >= 5:
        spline = Akima1DInterpolator(chord, pts, axis=0)
    else:
        spline = CubicSpline(chord, pts, bc_type="natural", axis=0)
    return spline, spline.derivative()


def _linear_tangents(pts: np.ndarray, chord: np.ndarray, s: np.ndarray) -> np.ndarray:
    idx = np.clip(np.searchsorted(chord, s, side="right") - 1, 0, len(pts) - 2)
    return pts[idx + 1] - pts[idx]


# ========================================================================
# 3. SAMPLING
# ========================================================================

def sample_road(
    road: RoadDefinition,
    road_id: int,
    spacing: float,
    interpolation: str = "spline",
    closed: bool = False,
) -> List[CrossSection]:
    """
    Sample one road centerline into cross-sections.

    Parameters
    ----------
    road : RoadDefinition
    road_id : int
        Input-order id stored on every section.
    spacing : float
        Upper bound of the distance between consecutive samples (m).
    interpolation : str
        "spline" (cubic / Akima depending on point count) or "linear".
    closed : bool
        Treat the centerline as a ring; the curve is closed periodically.

    Returns
    -------
    List[CrossSection]
        Running distance strictly increasing, first and last control points
        always included. Handles (`index`) are assigned later by the network.

    Raises
    ------
    InvalidCurve
        Fewer than two distinct points, or a curve shorter than 1 mm.
    """
    pts = _clean_control_points(road.control_points)

    if closed and np.hypot(*(pts[0] - pts[-1])) > DUPLICATE_TOLERANCE:
        pts = np.vstack([pts, pts[:1]])
    elif closed:
        pts[-1] = pts[0]

    chord = np.concatenate([[0.0], np.cumsum(np.hypot(*np.diff(pts, axis=0).T))])
    total = float(chord[-1])
    if total < MIN_CURVE_LENGTH:
        raise InvalidCurve(f"curve length {total:.6f} m is below {MIN_CURVE_LENGTH} m")

    position_fn, derivative_fn = _fit(pts, chord, interpolation, closed)

    count = max(int(math.ceil(total / spacing)), 1)
    s = np.linspace(0.0, total, count + 1)

    positions = np.asarray(position_fn(s), dtype=float).reshape(-1, 2)
    positions[0] = pts[0]
    positions[-1] = pts[-1]

    if derivative_fn is not None:
        tangents = np.asarray(derivative_fn(s), dtype=float).reshape(-1, 2)
    else:
        tangents = _linear_tangents(pts, chord, s)

    # Drop samples that collapse onto their predecessor
    step = np.hypot(*np.diff(positions, axis=0).T)
    keep = np.concatenate([[True], step > DUPLICATE_TOLERANCE])
    if not keep[-1]:
        kept = np.flatnonzero(keep)
        if len(kept) > 1:
            keep[kept[-1]] = False
        keep[-1] = True
    positions = positions[keep]
    tangents = tangents[keep]
    if len(positions) < 2:
        raise InvalidCurve("sampled curve collapsed to a single point")

    distances = np.concatenate([[0.0], np.cumsum(np.hypot(*np.diff(positions, axis=0).T))])

    # Finite-difference fallback for vanishing derivatives
    norms = np.hypot(tangents[:, 0], tangents[:, 1])
    if np.any(norms < 1e-9):
        fd = np.gradient(positions, axis=0)
        tangents = np.where((norms < 1e-9)[:, None], fd, tangents)
        norms = np.hypot(tangents[:, 0], tangents[:, 1])
    tangents = tangents / np.maximum(norms, 1e-12)[:, None]

    sections = []
    last = len(positions) - 1
    for i in range(len(positions)):
        tx, ty = float(tangents[i, 0]), float(tangents[i, 1])
        sections.append(CrossSection(
            index=-1,
            road_id=road_id,
            local_index=i,
            distance=float(distances[i]),
            position=(float(positions[i, 0]), float(positions[i, 1])),
            tangent=(tx, ty),
            normal=(ty, -tx),
            is_start=(i == 0),
            is_end=(i == last),
        ))
    return sections


# ========================================================================
# 4. NETWORK CONSTRUCTION
# ========================================================================

def _validated_road(road: RoadDefinition) -> RoadDefinition:
    if not road.half_width > 0:
        raise InvalidCurve(f"half width must be > 0 (got {road.half_width})")
    if road.blend_distance < 0:
        raise InvalidCurve(f"blend distance must be >= 0 (got {road.blend_distance})")
    return road


def build_network(
    roads: Sequence[RoadDefinition],
    params=None,
    executor: Optional[Executor] = None,
) -> RoadNetwork:
    """
    Sample every road (on the executor when given) and register the results
    in a new RoadNetwork. Invalid roads are excluded with a warning; the run
    always continues.
    """
    if params is None:
        params = get_active_params()

    network = RoadNetwork(list(roads))
    spacing = params["SAMPLE_SPACING"]
    interpolation = params["INTERPOLATION"]

    # The protected core never reaches past the blend footprint
    for rid, road in enumerate(network.roads):
        if 0 < road.blend_distance < road.half_width:
            network.replace_road(rid, replace(road, blend_distance=road.half_width))
            network.warn("FootprintAdjusted",
                         f"blend distance {road.blend_distance} raised to half width {road.half_width}",
                         rid)

    def job(rid: int):
        road = network.roads[rid]
        try:
            _validated_road(road)
            closed = is_closed_curve(road, params)
            return sample_road(road, rid, spacing, interpolation, closed), closed, None
        except InvalidCurve as err:
            return None, False, err

    ids = list(range(len(network.roads)))
    results = map_ordered(executor, job, ids)

    for rid, (sections, closed, err) in zip(ids, results):
        if err is not None:
            network.exclude_road(rid, err)
            continue
        network.attach_sections(rid, sections, closed=closed)
        logger.debug("Sampled %s: %d sections, %.1f m%s",
                     network.roads[rid].label(rid), len(sections),
                     sections[-1].distance, " (ring)" if closed else "")

    logger.info("Sampled %d/%d roads into %d cross-sections",
                len(network.active_road_ids()), len(network.roads), len(network.sections))
    return network
