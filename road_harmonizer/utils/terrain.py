"""
Heightmap sampling helpers shared by the elevation stages.

This module provides:
    • world_to_pixel(points, cell_size)
    • sample_heightmap(heightmap, cell_size, points)
"""

import numpy as np
from scipy.ndimage import map_coordinates


def world_to_pixel(points, cell_size: float) -> np.ndarray:
    """
    Meters -> fractional (col, row) pixel coordinates.
    """
    return np.asarray(points, dtype=float).reshape(-1, 2) / float(cell_size)


def sample_heightmap(heightmap: np.ndarray, cell_size: float, points) -> np.ndarray:
    """
    Bilinear heightmap lookup at world positions (x, y) in meters.

    Positions outside the grid read the nearest edge cell. A NaN cell
    involved in the interpolation yields NaN.
    """
    px = world_to_pixel(points, cell_size)
    if len(px) == 0:
        return np.zeros(0, dtype=float)
    coords = np.vstack([px[:, 1], px[:, 0]])
    return map_coordinates(np.asarray(heightmap, dtype=float), coords, order=1, mode="nearest")
