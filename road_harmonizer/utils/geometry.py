"""
This module provides:
    - unit
    - calculate_angle
    - angle_from_center
    - segment_intersection
    - polyline_intersections
    - project_onto_polyline
    - finite_difference_slope
    - centroid
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np


_EPS = 1e-9


# ----------------------------------------------------------------------
#  VECTORS
# ----------------------------------------------------------------------

def unit(v) -> np.ndarray:
    """
    Normalized copy of a 2D vector; the zero vector is returned unchanged.
    """
    v = np.asarray(v, dtype=float)
    n = float(np.hypot(v[0], v[1]))
    if n < _EPS:
        return v.copy()
    return v / n


def calculate_angle(v1, v2) -> float:
    """
    Returns the unsigned angle (degrees, 0..180) between two direction vectors.
    """
    a = unit(v1)
    b = unit(v2)
    if not a.any() or not b.any():
        return 0.0
    c = float(np.clip(np.dot(a, b), -1.0, 1.0))
    return math.degrees(math.acos(c))


def angle_from_center(center, point) -> float:
    """
    Direction of `point` as seen from `center`, degrees in [0, 360).
    """
    ang = math.degrees(math.atan2(point[1] - center[1], point[0] - center[0]))
    return ang % 360.0


# ----------------------------------------------------------------------
#  SEGMENT INTERSECTION
# ----------------------------------------------------------------------

def segment_intersection(p1, p2, p3, p4) -> Optional[Tuple[float, float]]:
    """
    Intersection point between segments p1-p2 and p3-p4.

    Returns:
        (x, y) or None if the segments do not cross or are parallel
    """
    r = (p2[0] - p1[0], p2[1] - p1[1])
    s = (p4[0] - p3[0], p4[1] - p3[1])
    denom = r[0] * s[1] - r[1] * s[0]
    if abs(denom) < _EPS:
        return None

    qp = (p3[0] - p1[0], p3[1] - p1[1])
    t = (qp[0] * s[1] - qp[1] * s[0]) / denom
    u = (qp[0] * r[1] - qp[1] * r[0]) / denom
    if not (0.0 <= t <= 1.0 and 0.0 <= u <= 1.0):
        return None
    return p1[0] + t * r[0], p1[1] + t * r[1]


def polyline_intersections(a: np.ndarray, b: np.ndarray, chunk: int = 256):
    """
    All crossings between two sampled polylines.

    Both inputs are (N, 2) arrays. Segment pairs are first filtered by
    bounding-box overlap, then solved in one vectorized step per chunk.

    Returns:
        hits:     list of (x, y, i, ta, j, tb), where i/j are segment indices
                  and ta/tb the parameters along those segments, sorted by (i, j)
        overlaps: number of collinear overlapping segment pairs
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if len(a) < 2 or len(b) < 2:
        return [], 0

    a0, a1 = a[:-1], a[1:]
    b0, b1 = b[:-1], b[1:]
    a_min, a_max = np.minimum(a0, a1), np.maximum(a0, a1)
    b_min, b_max = np.minimum(b0, b1), np.maximum(b0, b1)

    hits = []
    overlaps = 0

    for start in range(0, len(a0), chunk):
        stop = min(start + chunk, len(a0))
        box = (
            (a_min[start:stop, None, 0] <= b_max[None, :, 0] + _EPS)
            & (a_max[start:stop, None, 0] + _EPS >= b_min[None, :, 0])
            & (a_min[start:stop, None, 1] <= b_max[None, :, 1] + _EPS)
            & (a_max[start:stop, None, 1] + _EPS >= b_min[None, :, 1])
        )
        ii, jj = np.nonzero(box)
        if ii.size == 0:
            continue
        ii = ii + start

        p = a0[ii]
        r = a1[ii] - p
        q = b0[jj]
        s = b1[jj] - q
        qp = q - p

        denom = r[:, 0] * s[:, 1] - r[:, 1] * s[:, 0]
        cross_qp_r = qp[:, 0] * r[:, 1] - qp[:, 1] * r[:, 0]
        parallel = np.abs(denom) < _EPS

        # Collinear pairs whose projections overlap cannot yield a single point
        collinear = parallel & (np.abs(cross_qp_r) < _EPS * np.maximum(np.hypot(r[:, 0], r[:, 1]), 1.0))
        if collinear.any():
            rr = np.maximum(np.einsum("ij,ij->i", r, r), _EPS)
            t0 = np.einsum("ij,ij->i", qp, r) / rr
            t1 = np.einsum("ij,ij->i", qp + s, r) / rr
            lo, hi = np.minimum(t0, t1), np.maximum(t0, t1)
            overlaps += int(np.count_nonzero(collinear & (hi > _EPS) & (lo < 1.0 - _EPS)))

        safe = np.where(parallel, 1.0, denom)
        t = (qp[:, 0] * s[:, 1] - qp[:, 1] * s[:, 0]) / safe
        u = cross_qp_r / safe
        ok = ~parallel & (t >= 0.0) & (t <= 1.0) & (u >= 0.0) & (u <= 1.0)

        for k in np.nonzero(ok)[0]:
            x = p[k, 0] + t[k] * r[k, 0]
            y = p[k, 1] + t[k] * r[k, 1]
            hits.append((float(x), float(y), int(ii[k]), float(t[k]), int(jj[k]), float(u[k])))

    hits.sort(key=lambda h: (h[2], h[4]))
    return hits, overlaps


# ----------------------------------------------------------------------
#  PROJECTION ONTO A POLYLINE
# ----------------------------------------------------------------------

def project_onto_polyline(points: np.ndarray, distances: np.ndarray, p) -> Tuple[float, int, float]:
    """
    Closest point of a polyline to `p`.

    Returns:
        (running distance of the foot point, segment index, distance to p)
    """
    pts = np.asarray(points, dtype=float)
    if len(pts) == 1:
        return float(distances[0]), 0, float(np.hypot(*(pts[0] - p)))

    a = pts[:-1]
    seg = pts[1:] - a
    seg_len2 = np.maximum(np.einsum("ij,ij->i", seg, seg), _EPS)
    t = np.clip(np.einsum("ij,ij->i", np.asarray(p, dtype=float) - a, seg) / seg_len2, 0.0, 1.0)
    foot = a + seg * t[:, None]
    dist = np.hypot(foot[:, 0] - p[0], foot[:, 1] - p[1])

    k = int(np.argmin(dist))
    along = distances[k] + t[k] * (distances[k + 1] - distances[k])
    return float(along), k, float(dist[k])


# ----------------------------------------------------------------------
#  SLOPES
# ----------------------------------------------------------------------

def finite_difference_slope(distances: Sequence[float], elevations: Sequence[float], i: int) -> float:
    """
    Slope at sample i from its two nearest neighbors (central difference,
    one-sided at the ends). NaN neighbors are skipped outward; 0.0 when no
    finite pair exists.
    """
    d = np.asarray(distances, dtype=float)
    e = np.asarray(elevations, dtype=float)
    n = len(e)

    lo = i - 1
    while lo >= 0 and not math.isfinite(e[lo]):
        lo -= 1
    hi = i + 1
    while hi < n and not math.isfinite(e[hi]):
        hi += 1

    if lo < 0:
        lo = i if math.isfinite(e[i]) else -1
    if hi >= n:
        hi = i if math.isfinite(e[i]) else n

    if lo < 0 or hi >= n or hi == lo or d[hi] - d[lo] < _EPS:
        return 0.0
    return float((e[hi] - e[lo]) / (d[hi] - d[lo]))


def centroid(points: List[Tuple[float, float]]) -> Tuple[float, float]:
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return sum(xs) / len(xs), sum(ys) / len(ys)
