"""
Filesystem I/O for the batch driver.

This module provides:
    • scene_id_from_path(filename)
    • load_scene(path)
    • load_heightmap(path, height_scale, height_offset)
    • save_heightmap(path, heightmap, height_scale, height_offset)
    • ensure_output_dir(path)
    • save_image(path, image)

Handles all filesystem interaction in a consistent, testable way. The
harmonization core never touches the disk.
"""

import glob
import json
import os
from typing import Dict, List, Tuple

import cv2
import numpy as np

from road_harmonizer.config import (
    DEFAULT_HALF_WIDTH,
    DEFAULT_ROAD_BLEND,
    DEFAULT_SHOULDER_SLOPE_DEGREES,
    MAX_SLOPE_DEGREES,
)
from road_harmonizer.models.road import RoadDefinition


# -------------------------------------------------------------------------
#  FILENAME HANDLING
# -------------------------------------------------------------------------

def scene_id_from_path(filename: str) -> str:
    """
    Base name without extension, used to name every output of a scene.

    Example:
        'scenes/valley_03.json' → 'valley_03'
    """
    return os.path.splitext(os.path.basename(filename))[0]


def list_scenes(path_pattern: str) -> List[str]:
    return sorted(glob.glob(path_pattern))


# -------------------------------------------------------------------------
#  SCENE LOADING
# -------------------------------------------------------------------------

def _road_from_json(entry: Dict) -> RoadDefinition:
    return RoadDefinition.create(
        entry["points"],
        half_width=float(entry.get("half_width", DEFAULT_HALF_WIDTH)),
        blend_distance=float(entry.get("blend_distance", DEFAULT_ROAD_BLEND)),
        max_slope_deg=float(entry.get("max_slope_deg", MAX_SLOPE_DEGREES)),
        max_shoulder_slope_deg=float(entry.get("max_shoulder_slope_deg", DEFAULT_SHOULDER_SLOPE_DEGREES)),
        priority=int(entry.get("priority", 0)),
        name=str(entry.get("name", "")),
        is_ring=bool(entry.get("is_ring", False)),
        force_uniform_ring=bool(entry.get("force_uniform_ring", False)),
        junction_blend_distance=entry.get("junction_blend_distance"),
    )


def load_scene(path: str) -> Tuple[Dict, List[RoadDefinition]]:
    """
    Reads a scene description.

    Expected layout:
        {
          "heightmap": "terrain.png",          # relative to the scene file
          "cell_size": 1.0,
          "height_scale": 0.01,                # meters per pixel unit
          "height_offset": 0.0,
          "params": {...},                     # optional overrides
          "excluded_junctions": [[x, y], ...],  # optional, left unharmonized
          "roads": [{"points": [[x, y], ...], "half_width": 4, ...}, ...]
        }

    Returns:
        scene:  the raw dictionary, with "heightmap" made absolute
        roads:  list of RoadDefinition in input order
    """
    with open(path, "r", encoding="utf-8") as fh:
        scene = json.load(fh)

    if "heightmap" not in scene or "roads" not in scene:
        raise ValueError(f"{path}: a scene needs 'heightmap' and 'roads'")

    heightmap = scene["heightmap"]
    if not os.path.isabs(heightmap):
        scene["heightmap"] = os.path.join(os.path.dirname(os.path.abspath(path)), heightmap)

    if "excluded_junctions" in scene:
        scene["excluded_junctions"] = [(float(p[0]), float(p[1])) for p in scene["excluded_junctions"]]

    roads = [_road_from_json(entry) for entry in scene["roads"]]
    return scene, roads


# -------------------------------------------------------------------------
#  HEIGHTMAP LOADING / SAVING
# -------------------------------------------------------------------------

def load_heightmap(path: str, height_scale: float = 1.0, height_offset: float = 0.0) -> np.ndarray:
    """
    Loads a single-channel image (8 or 16 bit, or float TIFF) as meters.

        meters = pixel * height_scale + height_offset
    """
    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise FileNotFoundError(f"cannot read heightmap {path}")
    if img.ndim == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    return img.astype(np.float64) * float(height_scale) + float(height_offset)


def save_heightmap(path: str, heightmap: np.ndarray, height_scale: float = 1.0, height_offset: float = 0.0):
    """
    Writes meters back to a 16-bit PNG with the scene's scale and offset.
    Values outside the 16-bit range are clipped.
    """
    scale = float(height_scale) if height_scale else 1.0
    pixels = (np.nan_to_num(heightmap, nan=height_offset) - float(height_offset)) / scale
    pixels = np.clip(np.round(pixels), 0, np.iinfo(np.uint16).max).astype(np.uint16)
    save_image(path, pixels)


# -------------------------------------------------------------------------
#  OUTPUT DIRECTORY HANDLING
# -------------------------------------------------------------------------

def ensure_output_dir(path: str):
    """
    Ensures that an output directory exists.
    """
    if path and not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


# -------------------------------------------------------------------------
#  IMAGE SAVING
# -------------------------------------------------------------------------

def save_image(path: str, image: np.ndarray):
    """
    Save an image to disk, ensuring the directory exists.
    """
    ensure_output_dir(os.path.dirname(path))
    if not cv2.imwrite(path, image):
        raise IOError(f"cannot write {path}")
