"""
Ring (roundabout) geometry helpers.

This module provides:
    • RingGeometry
    • ring_geometry(network, road_id)
    • ring_road_ids(network)
    • attach_to_ring(junction, network, ring_id)
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from road_harmonizer.models.junction import Junction
from road_harmonizer.models.network import RoadNetwork
from road_harmonizer.utils.geometry import angle_from_center


@dataclass(frozen=True)
class RingGeometry:
    road_id: int
    center: Tuple[float, float]
    radius: float

    def radial_distance(self, point) -> float:
        """Distance of a point to the ring line, |dist to center - radius|."""
        return abs(float(np.hypot(point[0] - self.center[0], point[1] - self.center[1])) - self.radius)

    def angle_of(self, point) -> float:
        return angle_from_center(self.center, point)


def ring_geometry(network: RoadNetwork, road_id: int) -> RingGeometry:
    """
    Center = centroid of the ring's samples (closing sample excluded),
    radius = mean distance of the samples to that center.
    """
    pts = network.positions(road_id)
    if len(pts) > 2:
        pts = pts[:-1]
    center = pts.mean(axis=0)
    radius = float(np.mean(np.hypot(pts[:, 0] - center[0], pts[:, 1] - center[1])))
    return RingGeometry(road_id, (float(center[0]), float(center[1])), radius)


def ring_road_ids(network: RoadNetwork) -> List[int]:
    return [rid for rid in network.active_road_ids() if network.is_closed(rid)]


def attach_to_ring(junction: Junction, network: RoadNetwork, ring_id: int):
    """
    Record which ring a connector junction sits on and at which angle
    (degrees from the ring center) it attaches.
    """
    geom = ring_geometry(network, ring_id)
    junction.ring_road_id = ring_id
    junction.attachment_angle = geom.angle_of(junction.position)
