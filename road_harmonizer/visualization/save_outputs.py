"""
Centralized output-saving utilities for the harmonization pipeline.

This module provides:
    • save_all_outputs(...)
    • save_heightmap_preview(...)
    • save_junctions(...)
    • save_ownership(...)
    • save_delta(...)

Uses draw modules to visualize and utils.image_io for filesystem handling.
"""

from typing import Optional

import numpy as np

from road_harmonizer.blending.ownership import OwnershipGrids
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.utils.image_io import ensure_output_dir, save_heightmap, save_image
from road_harmonizer.visualization.draw_junctions import draw_junctions
from road_harmonizer.visualization.draw_roads import (
    colorize_delta,
    colorize_ownership,
    draw_roads,
    heightmap_preview,
)


# -------------------------------------------------------------------------
#   Save individual components
# -------------------------------------------------------------------------

def save_heightmap_preview(path: str, heightmap: np.ndarray):
    """
    Saves the normalized 8-bit preview of a heightmap.
    """
    save_image(path, heightmap_preview(heightmap))


def save_junctions(path: str, heightmap: np.ndarray, network: RoadNetwork,
                   cell_size: float, radius: Optional[float] = None):
    """
    Draw roads and junctions over the heightmap preview and save to disk.
    """
    vis = heightmap_preview(heightmap)
    draw_roads(vis, network, cell_size)
    draw_junctions(vis, network, cell_size, radius)
    save_image(path, vis)


def save_ownership(path: str, grids: OwnershipGrids):
    save_image(path, colorize_ownership(grids))


def save_delta(path: str, before: np.ndarray, after: np.ndarray):
    save_image(path, colorize_delta(before, after))


# -------------------------------------------------------------------------
#   Master save function (used by main.py)
# -------------------------------------------------------------------------

def save_all_outputs(
    output_dir: str,
    scene_id: str,
    original: np.ndarray,
    harmonized: np.ndarray,
    network: RoadNetwork,
    grids: OwnershipGrids,
    cell_size: float,
    height_scale: float = 1.0,
    height_offset: float = 0.0,
    radius: Optional[float] = None,
):
    """
    Saves every output artifact for one processed scene.

    Example output:
        <id>_heightmap.png      16-bit harmonized heightmap
        <id>_preview.png        normalized preview
        <id>_junctions.png      roads + junctions by type
        <id>_ownership.png      owner per cell, cores bright
        <id>_delta.png          height change
    """

    ensure_output_dir(output_dir)

    # 1) Harmonized heightmap, same encoding as the input
    save_heightmap(
        f"{output_dir}/{scene_id}_heightmap.png",
        harmonized,
        height_scale,
        height_offset
    )

    # 2) Preview
    save_heightmap_preview(
        f"{output_dir}/{scene_id}_preview.png",
        harmonized
    )

    # 3) Junction overlay
    save_junctions(
        f"{output_dir}/{scene_id}_junctions.png",
        harmonized,
        network,
        cell_size,
        radius
    )

    # 4) Ownership map
    save_ownership(
        f"{output_dir}/{scene_id}_ownership.png",
        grids
    )

    # 5) Elevation delta
    save_delta(
        f"{output_dir}/{scene_id}_delta.png",
        original,
        harmonized
    )
