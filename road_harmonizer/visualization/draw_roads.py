"""
Visualization utilities for rendering roads and ownership rasters.

This module provides:
    • heightmap_preview(heightmap)
    • draw_roads(img, network, cell_size, color, thickness)
    • colorize_ownership(grids)
    • colorize_delta(before, after)
"""

from typing import Tuple

import cv2
import numpy as np

from road_harmonizer.blending.ownership import OwnershipGrids
from road_harmonizer.models.network import RoadNetwork


# ---------------------------------------------------------------------
#  BASIC: Normalized grayscale preview of a heightmap
# ---------------------------------------------------------------------

def heightmap_preview(heightmap: np.ndarray) -> np.ndarray:
    """
    Stretch finite heights to 0..255 and return a BGR image.
    """
    finite = np.isfinite(heightmap)
    gray = np.zeros(heightmap.shape, dtype=np.uint8)
    if finite.any():
        lo, hi = float(heightmap[finite].min()), float(heightmap[finite].max())
        span = hi - lo if hi > lo else 1.0
        gray[finite] = np.round((heightmap[finite] - lo) / span * 255).astype(np.uint8)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


# ---------------------------------------------------------------------
#  Road centerlines
# ---------------------------------------------------------------------

def draw_roads(
    image,
    network: RoadNetwork,
    cell_size: float,
    color: Tuple[int, int, int] = (0, 255, 0),
    thickness: int = 1
):
    """
    Draws every active road as a polyline through its cross-sections.

    Args:
        image: BGR numpy array (modified in-place)
        network: sampled RoadNetwork
        color: (B, G, R)
        thickness: pixel width
    """
    for rid in network.active_road_ids():
        pts = np.round(network.positions(rid) / cell_size).astype(np.int32)
        cv2.polylines(image, [pts.reshape(-1, 1, 2)], network.is_closed(rid), color, thickness)
    return image


# ---------------------------------------------------------------------
#  Ownership map
# ---------------------------------------------------------------------

def colorize_ownership(grids: OwnershipGrids) -> np.ndarray:
    """
    One hue per road. Cores are drawn at full brightness, blend footprints
    at half brightness, unclaimed cells stay black.
    """
    rows, cols = grids.shape
    hsv = np.zeros((rows, cols, 3), dtype=np.uint8)
    claimed = grids.claimed
    if not claimed.any():
        return hsv

    # Golden-ratio hue steps keep neighbouring ids apart
    hue = (np.mod(grids.owner.astype(np.int64) * 0.618034, 1.0) * 179).astype(np.uint8)
    hsv[..., 0] = np.where(claimed, hue, 0)
    hsv[..., 1] = np.where(claimed, 200, 0)
    hsv[..., 2] = np.where(claimed & grids.core, 255, np.where(claimed, 128, 0))
    return cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR)


# ---------------------------------------------------------------------
#  Elevation change map
# ---------------------------------------------------------------------

def colorize_delta(before: np.ndarray, after: np.ndarray) -> np.ndarray:
    """
    Signed height change rendered with a diverging colormap, symmetric around
    zero (cuts blue, fills red).
    """
    delta = np.nan_to_num(np.asarray(after, dtype=float) - np.asarray(before, dtype=float))
    peak = float(np.abs(delta).max()) if delta.size else 0.0
    if peak <= 0:
        peak = 1.0
    scaled = np.round((delta / peak * 0.5 + 0.5) * 255).astype(np.uint8)
    return cv2.applyColorMap(scaled, cv2.COLORMAP_JET)
