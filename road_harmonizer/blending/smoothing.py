"""
Optional smoothing of the blended shoulders.

This module provides:
    • smoothing_mask(grids, extension)
    • smooth_road_surface(blended, grids, params, cancel)

Runs after the protected blender when POST_SMOOTHING is set. Only blend
cells within SMOOTHING_MASK_EXTENSION meters of a core edge are rewritten.
Core cells feed the filter but keep their harmonized elevation, so the
protection of road surfaces survives the pass.
"""

import logging

import cv2
import numpy as np

from road_harmonizer.blending.ownership import OwnershipGrids
from road_harmonizer.config import get_active_params
from road_harmonizer.utils.workers import check_cancel


logger = logging.getLogger(__name__)


def smoothing_mask(grids: OwnershipGrids, extension: float) -> np.ndarray:
    """
    Claimed blend cells no farther than `extension` meters from a core.
    """
    return grids.claimed & ~grids.core & (grids.edge_distance <= extension)


def _filter(values: np.ndarray, kind: str, kernel: int, sigma: float) -> np.ndarray:
    match kind:
        case "gaussian":
            return cv2.GaussianBlur(values, (kernel, kernel), sigma, borderType=cv2.BORDER_REPLICATE)
        case "box":
            return cv2.blur(values, (kernel, kernel), borderType=cv2.BORDER_REPLICATE)
        case _:
            raise ValueError(f"unknown smoothing filter {kind!r}")


def _smooth_once(values: np.ndarray, kind: str, kernel: int, sigma: float) -> np.ndarray:
    """
    One filter pass that ignores NaN cells (normalized convolution). The
    bilateral filter runs on a NaN-free copy, gaps filled from a Gaussian.
    """
    linear = "gaussian" if kind == "bilateral" else kind
    valid = np.isfinite(values)

    weight = _filter(valid.astype(np.float64), linear, kernel, sigma)
    total = _filter(np.where(valid, values, 0.0), linear, kernel, sigma)
    with np.errstate(invalid="ignore", divide="ignore"):
        smoothed = total / weight

    if kind == "bilateral":
        filled = np.where(valid, values, smoothed)
        filled = np.where(np.isfinite(filled), filled, 0.0).astype(np.float32)
        smoothed = cv2.bilateralFilter(filled, kernel, 0.5 * sigma, sigma).astype(np.float64)

    return smoothed


def smooth_road_surface(blended: np.ndarray, grids: OwnershipGrids, params=None, cancel=None) -> np.ndarray:
    """
    Smooth the shoulders of a blended heightmap.

    Parameters
    ----------
    blended : np.ndarray
        Output of blend_heightmap, read only.
    grids : OwnershipGrids
        Needs the claim, core and edge distance grids.
    params : dict, optional
        SMOOTHING_TYPE, SMOOTHING_KERNEL_SIZE, SMOOTHING_SIGMA (cells; the
        bilateral range sigma is half of it, in meters),
        SMOOTHING_MASK_EXTENSION and SMOOTHING_ITERATIONS.
    cancel : object with is_set(), optional
        Checked before every iteration.

    Returns
    -------
    np.ndarray
        New buffer; cells outside the mask are copied unchanged.
    """
    if params is None:
        params = get_active_params()

    kind = params["SMOOTHING_TYPE"]
    kernel = int(params["SMOOTHING_KERNEL_SIZE"])
    sigma = float(params["SMOOTHING_SIGMA"])

    out = np.array(blended, dtype=np.float64, copy=True)
    mask = smoothing_mask(grids, params["SMOOTHING_MASK_EXTENSION"]) & np.isfinite(out)
    if not mask.any():
        return out

    for _ in range(int(params["SMOOTHING_ITERATIONS"])):
        check_cancel(cancel, "smoothing")
        smoothed = _smooth_once(out, kind, kernel, sigma)
        keep = np.isfinite(smoothed) & mask
        out[keep] = smoothed[keep]

    logger.info("Smoothed %d shoulder cells (%s, kernel %d, %d iteration(s))",
                int(mask.sum()), kind, kernel, int(params["SMOOTHING_ITERATIONS"]))
    return out
