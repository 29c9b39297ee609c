"""
Utility Functions

Provides geometry operations, Bresenham wrappers, clustering,
heightmap sampling, worker helpers and file I/O used across
the pipeline stages.
"""

from .geometry import (
    unit,
    calculate_angle,
    segment_intersection,
    polyline_intersections,
    project_onto_polyline,
)
from .bresenham_utils import bres_line, rasterize_polyline
from .clustering import (
    cluster_points_radius,
    group_by_links,
    deduplicate_close_points,
)
from .terrain import world_to_pixel, sample_heightmap
from .workers import map_ordered, iter_ordered, check_cancel
from .image_io import load_scene, load_heightmap, save_heightmap, ensure_output_dir, save_image

__all__ = [
    "unit",
    "calculate_angle",
    "segment_intersection",
    "polyline_intersections",
    "project_onto_polyline",
    "bres_line",
    "rasterize_polyline",
    "cluster_points_radius",
    "group_by_links",
    "deduplicate_close_points",
    "world_to_pixel",
    "sample_heightmap",
    "map_ordered",
    "iter_ordered",
    "check_cancel",
    "load_scene",
    "load_heightmap",
    "save_heightmap",
    "ensure_output_dir",
    "save_image",
]
