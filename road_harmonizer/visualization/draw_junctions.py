"""
Visualization utilities for rendering junctions and their contributors.

This module provides:
    • draw_junctions(img, network, cell_size)
    • draw_contributors(img, network, junction, cell_size)

Used by:
    - save_outputs.py
"""

from typing import Optional

import cv2

from road_harmonizer.models.junction import Junction, JunctionType
from road_harmonizer.models.network import RoadNetwork


# ---------------------------------------------------------------------
#  COLOR MAP for junction types (BGR)
# ---------------------------------------------------------------------

JUNCTION_COLORS = {
    JunctionType.ENDPOINT:   (255, 0, 0),       # blue
    JunctionType.T_JUNCTION: (255, 255, 0),     # cyan
    JunctionType.Y_JUNCTION: (0, 255, 255),     # yellow
    JunctionType.CROSSROADS: (255, 0, 255),     # magenta
    JunctionType.COMPLEX:    (0, 128, 255),     # orange
    JunctionType.CROSSING:   (0, 255, 0),       # green
    JunctionType.RING:       (0, 0, 255),       # red
    None:                    (255, 255, 255),   # default
}


def _pixel(point, cell_size: float):
    return int(round(point[0] / cell_size)), int(round(point[1] / cell_size))


# ---------------------------------------------------------------------
#  Draw the contact sections of one junction
# ---------------------------------------------------------------------

def draw_contributors(image, network: RoadNetwork, junction: Junction, cell_size: float):
    """
    Draw a segment from the junction center to each contributor's contact
    section, colored by junction type. Adapting roads are drawn thicker.
    """
    color = JUNCTION_COLORS.get(junction.type, JUNCTION_COLORS[None])
    center = _pixel(junction.position, cell_size)

    for c in junction.contributors:
        section = network.section(c.section)
        cv2.line(
            image,
            center,
            _pixel(section.position, cell_size),
            color,
            thickness=2 if c.adapts else 1
        )


# ---------------------------------------------------------------------
#  Draw full junctions (detection radius + contributors + center)
# ---------------------------------------------------------------------

def draw_junctions(image, network: RoadNetwork, cell_size: float, radius: Optional[float] = None):
    """
    Draws all non-excluded junctions onto the given image.

    For each junction:
      • draw the detection radius (green), when given
      • draw contributor contacts (junction-type dependent colors)
      • draw the center point, filled with the type color
    """
    for j in network.junctions:
        if j.excluded:
            continue

        center = _pixel(j.position, cell_size)

        if radius is not None:
            cv2.circle(image, center, max(int(radius / cell_size), 1), (0, 255, 0), thickness=1)

        draw_contributors(image, network, j, cell_size)

        cv2.circle(
            image,
            center,
            3,
            JUNCTION_COLORS.get(j.type, JUNCTION_COLORS[None]),
            thickness=-1
        )

    return image
