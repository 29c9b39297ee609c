"""
Distance-to-road rasters.

This module provides:
    • centerline_mask(network, shape, cell_size)
    • edge_distance_field(core_mask, cell_size)
"""

from typing import Tuple

import cv2
import numpy as np

from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.utils.bresenham_utils import rasterize_polyline
from road_harmonizer.utils.terrain import world_to_pixel


def centerline_mask(network: RoadNetwork, shape: Tuple[int, int], cell_size: float) -> np.ndarray:
    """
    uint8 mask with every active road centerline drawn as a Bresenham
    polyline through its cross-section centers.
    """
    mask = np.zeros(shape, dtype=np.uint8)
    for rid in network.active_road_ids():
        rasterize_polyline(world_to_pixel(network.positions(rid), cell_size), shape, mask)
    return mask


def edge_distance_field(core_mask: np.ndarray, cell_size: float) -> np.ndarray:
    """
    Distance in meters from every cell to the nearest road-core cell
    (0 inside a core). Infinite everywhere when there is no road.
    """
    core_mask = np.asarray(core_mask, dtype=bool)
    if not core_mask.any():
        return np.full(core_mask.shape, np.inf)

    src = np.where(core_mask, 0, 255).astype(np.uint8)
    dist = cv2.distanceTransform(src, cv2.DIST_L2, cv2.DIST_MASK_PRECISE)
    return dist.astype(float) * float(cell_size)
