import numpy as np
import pytest

from road_harmonizer.blending.ownership import build_ownership_grids
from road_harmonizer.blending.smoothing import smooth_road_surface, smoothing_mask

from conftest import make_params, make_road, prepare_network


SHAPE = (100, 100)


@pytest.fixture
def grids():
    roads = [make_road([(10, 50), (90, 50)], half_width=4.0, blend_distance=6.0)]
    network = prepare_network(roads, {0: 7.0}, detect=False)
    return build_ownership_grids(network, SHAPE, 1.0, make_params())


def _rough_shoulders(grids, amplitude=0.2):
    rows, cols = np.mgrid[0:SHAPE[0], 0:SHAPE[1]]
    checker = np.where((rows + cols) % 2 == 0, amplitude, -amplitude)
    surface = np.full(SHAPE, 7.0)
    blend = grids.claimed & ~grids.core
    surface[blend] += checker[blend]
    return surface


def test_mask_covers_blend_cells_near_a_core_only(grids):
    mask = smoothing_mask(grids, 3.0)

    assert not mask[50, 50]                   # core
    assert mask[56, 50]                       # 2 m past the core edge
    assert not mask[59, 50]                   # 5 m past the core edge
    assert not mask[50, 98]                   # unclaimed
    assert smoothing_mask(grids, 10.0)[59, 50]


@pytest.mark.parametrize("kind", ["gaussian", "box", "bilateral"])
def test_smoothing_flattens_shoulders_and_keeps_cores(grids, kind):
    surface = _rough_shoulders(grids)
    surface[0, 0] = np.nan
    params = make_params(SMOOTHING_TYPE=kind, SMOOTHING_MASK_EXTENSION=10.0)

    out = smooth_road_surface(surface, grids, params)

    mask = smoothing_mask(grids, 10.0)
    core = grids.claimed & grids.core
    assert np.abs(out[mask] - 7.0).mean() < 0.1
    np.testing.assert_array_equal(out[core], surface[core])
    np.testing.assert_array_equal(out[~mask & ~np.isnan(surface)], surface[~mask & ~np.isnan(surface)])
    assert np.isnan(out[0, 0])
    assert np.isnan(surface).sum() == 1       # input left alone


def test_more_iterations_smooth_further(grids):
    surface = _rough_shoulders(grids)
    mask = smoothing_mask(grids, 10.0)

    once = smooth_road_surface(surface, grids, make_params(SMOOTHING_KERNEL_SIZE=3, SMOOTHING_SIGMA=0.8,
                                                           SMOOTHING_MASK_EXTENSION=10.0))
    twice = smooth_road_surface(surface, grids, make_params(SMOOTHING_KERNEL_SIZE=3, SMOOTHING_SIGMA=0.8,
                                                            SMOOTHING_MASK_EXTENSION=10.0,
                                                            SMOOTHING_ITERATIONS=2))

    assert np.abs(twice[mask] - 7.0).mean() < np.abs(once[mask] - 7.0).mean()


def test_no_roads_returns_an_identical_copy():
    network = prepare_network([], {}, detect=False)
    empty = build_ownership_grids(network, (8, 8), 1.0, make_params())
    surface = np.arange(64, dtype=float).reshape(8, 8)

    out = smooth_road_surface(surface, empty, make_params())

    np.testing.assert_array_equal(out, surface)
    assert out is not surface
