import numpy as np
import pytest

from road_harmonizer.errors import InvalidCurve
from road_harmonizer.processing.spline_sampler import build_network, is_closed_curve, sample_road

from conftest import make_params, make_road


def test_sample_road_straight_line_is_evenly_spaced():
    road = make_road([(0, 0), (10, 0)])

    sections = sample_road(road, road_id=0, spacing=2.0)

    assert len(sections) == 6
    assert [cs.distance for cs in sections] == pytest.approx([0, 2, 4, 6, 8, 10])
    assert sections[0].position == (0.0, 0.0)
    assert sections[-1].position == (10.0, 0.0)
    assert sections[0].tangent == pytest.approx((1.0, 0.0))
    assert sections[0].normal == pytest.approx((0.0, -1.0))
    assert sections[0].is_start and sections[-1].is_end
    assert not any(cs.is_endpoint for cs in sections[1:-1])


def test_sample_road_curve_keeps_control_endpoints_and_increasing_distance():
    road = make_road([(0, 0), (10, 5), (20, 0), (30, 8), (40, 2)])

    sections = sample_road(road, road_id=3, spacing=1.5)
    distances = np.array([cs.distance for cs in sections])

    assert sections[0].position == pytest.approx((0.0, 0.0))
    assert sections[-1].position == pytest.approx((40.0, 2.0))
    assert np.all(np.diff(distances) > 0)
    assert all(cs.road_id == 3 for cs in sections)
    for cs in sections:
        assert np.hypot(*cs.tangent) == pytest.approx(1.0)


def test_sample_road_linear_mode_follows_control_polygon():
    road = make_road([(0, 0), (10, 0), (10, 10)])

    sections = sample_road(road, road_id=0, spacing=1.0, interpolation="linear")

    assert sections[-1].distance == pytest.approx(20.0)
    corner = min(sections, key=lambda cs: np.hypot(cs.position[0] - 10, cs.position[1]))
    assert corner.position == pytest.approx((10.0, 0.0))


@pytest.mark.parametrize("points", [
    [(5, 5)],
    [(1, 1), (1, 1), (1, 1)],
    [(0, 0), (float("nan"), 3)],
])
def test_sample_road_rejects_degenerate_curves(points):
    with pytest.raises(InvalidCurve):
        sample_road(make_road(points), road_id=0, spacing=1.0)


def test_sample_road_closed_ring_returns_to_start():
    pts = [(50 + 20 * np.cos(a), 50 + 20 * np.sin(a)) for a in np.linspace(0, 2 * np.pi, 12, endpoint=False)]
    road = make_road(pts, is_ring=True)

    sections = sample_road(road, road_id=0, spacing=2.0, closed=True)

    assert sections[0].position == pytest.approx(sections[-1].position)
    assert sections[-1].distance == pytest.approx(2 * np.pi * 20, rel=0.02)


def test_is_closed_curve_auto_detection():
    loop = make_road([(0, 0), (10, 0), (10, 10), (0, 10), (0, 0.5)])
    open_road = make_road([(0, 0), (10, 0), (10, 10), (0, 10)])

    assert is_closed_curve(loop, make_params(RING_CLOSURE_TOLERANCE=1.0))
    assert not is_closed_curve(loop, make_params(AUTO_DETECT_RINGS=False))
    assert not is_closed_curve(open_road, make_params())


def test_build_network_skips_invalid_road_and_records_warning():
    roads = [make_road([(0, 0), (20, 0)]), make_road([(3, 3)]), make_road([(0, 10), (20, 10)])]

    network = build_network(roads, make_params())

    assert network.excluded_roads == {1}
    assert network.active_road_ids() == [0, 2]
    assert [w.kind for w in network.warnings] == ["InvalidCurve"]
    assert network.warnings[0].road_id == 1
    assert network.sections_of(1) == []


def test_build_network_assigns_handles_in_road_order():
    roads = [make_road([(0, 0), (4, 0)]), make_road([(0, 10), (6, 10)])]

    network = build_network(roads, make_params())

    assert [cs.index for cs in network.sections] == list(range(len(network.sections)))
    assert [cs.road_id for cs in network.sections] == [0, 0, 0, 1, 1, 1, 1]


def test_build_network_raises_blend_distance_to_half_width():
    roads = [make_road([(0, 0), (20, 0)], half_width=5.0, blend_distance=2.0)]

    network = build_network(roads, make_params())

    assert network.roads[0].blend_distance == 5.0
    assert [w.kind for w in network.warnings] == ["FootprintAdjusted"]
