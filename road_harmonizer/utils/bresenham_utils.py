"""
Utility wrappers around the pybresenham library.

This module provides:
    • bres_line(x1, y1, x2, y2)
    • rasterize_polyline(points, shape)

These functions return integer pixel coordinates as (x, y) = (col, row).
"""

from typing import List, Sequence, Tuple

import numpy as np
import pybresenham as bres


# -----------------------------------------------------------
#   Line drawing wrapper
# -----------------------------------------------------------

def bres_line(x1: int, y1: int, x2: int, y2: int) -> List[Tuple[int, int]]:
    """
    Returns a list of integer pixel coordinates forming a Bresenham line.
    """
    return [(int(x), int(y)) for x, y in bres.line(x1, y1, x2, y2)]


# -----------------------------------------------------------
#   Polyline rasterization into a mask
# -----------------------------------------------------------

def rasterize_polyline(pixel_points: Sequence[Tuple[float, float]], shape: Tuple[int, int],
                       mask: np.ndarray = None) -> np.ndarray:
    """
    Mark every pixel crossed by a polyline given in pixel (col, row)
    coordinates. Pixels outside `shape` are dropped.

    Returns:
        uint8 mask (1 on the polyline), the given `mask` when provided
    """
    if mask is None:
        mask = np.zeros(shape, dtype=np.uint8)
    rows, cols = shape

    pts = [(int(round(x)), int(round(y))) for x, y in pixel_points]
    if len(pts) == 1:
        pts = pts * 2

    for (x1, y1), (x2, y2) in zip(pts[:-1], pts[1:]):
        for x, y in bres_line(x1, y1, x2, y2):
            if 0 <= x < cols and 0 <= y < rows:
                mask[y, x] = 1
    return mask
