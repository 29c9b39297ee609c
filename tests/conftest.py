import numpy as np
import pytest

from road_harmonizer.config import get_active_params
from road_harmonizer.detectors.junction_detector import detect_junctions
from road_harmonizer.models.road import RoadDefinition
from road_harmonizer.processing.baseline import assign_raw_elevations
from road_harmonizer.processing.spline_sampler import build_network


# Values fixed here so the suite does not depend on GEOGRAPHIC_MODE
TEST_OVERRIDES = {
    "DETECTION_RADIUS": 10.0,
    "SAMPLE_SPACING": 2.0,
    "INTERPOLATION": "spline",
    "DEFAULT_BLEND_DISTANCE": 30.0,
    "MAX_SLOPE_DEGREES": 8.0,
    "EASE_ZONE_FRACTION": 0.15,
    "RING_ELEVATION_MODE": "terrain",
    "ENDPOINT_TAPER_DISTANCE": 30.0,
    "ENDPOINT_TERRAIN_BLEND": 0.3,
    "BLEND_FUNCTION": "cosine",
    "SHOULDER_SLOPE_LIMIT": True,
    "ROW_BATCH_SIZE": 16,
    "MAX_WORKERS": 1,
}


def make_params(**overrides):
    params = dict(TEST_OVERRIDES)
    params.update(overrides)
    return get_active_params(params)


def make_road(points, **kwargs) -> RoadDefinition:
    return RoadDefinition.create(points, **kwargs)


def flat_heightmap(value: float = 0.0, shape=(121, 121)) -> np.ndarray:
    return np.full(shape, float(value))


def ramp_heightmap(slope_x: float = 0.1, shape=(121, 121)) -> np.ndarray:
    """Height = slope_x * x, with x = col (cell size 1)."""
    cols = np.arange(shape[1], dtype=float)
    return np.tile(cols * slope_x, (shape[0], 1))


class PerRoadEstimator:
    """
    Raw elevation per road id: a constant, or a function of the section
    position (x, y).
    """

    def __init__(self, per_road):
        self.per_road = per_road

    def __call__(self, section):
        value = self.per_road[section.road_id]
        if callable(value):
            return float(value(*section.position))
        return float(value)


def prepare_network(roads, per_road, params=None, detect=True):
    """Sample, assign raw elevations and (optionally) detect junctions."""
    params = params or make_params()
    network = build_network(roads, params)
    assign_raw_elevations(network, PerRoadEstimator(per_road))
    if detect:
        detect_junctions(network, params)
    return network


def junctions_of_type(network, jtype):
    return [j for j in network.junctions if j.type is jtype and not j.excluded]


@pytest.fixture
def params():
    return make_params()
