import numpy as np
import pytest

from road_harmonizer.detectors.junction_detector import (
    build_section_index,
    classify_contributors,
    detect_junctions,
    exclude_junctions,
    nearest_other_road_section,
    primary_continuous,
)
from road_harmonizer.models.junction import Contributor, JunctionType
from road_harmonizer.processing.spline_sampler import build_network

from conftest import junctions_of_type, make_params, make_road


def _types(network):
    return [j.type for j in network.junctions]


def _ring(center=(50.0, 50.0), radius=20.0, count=12, **kwargs):
    angles = np.linspace(0, 2 * np.pi, count, endpoint=False)
    pts = [(center[0] + radius * np.cos(a), center[1] + radius * np.sin(a)) for a in angles]
    return make_road(pts, is_ring=True, **kwargs)


def test_classify_contributors():
    e = lambda rid: Contributor(rid, 0, True)
    c = lambda rid, ring=False: Contributor(rid, 0, False, on_ring=ring)

    assert classify_contributors([e(0)]) is JunctionType.ENDPOINT
    assert classify_contributors([e(0), c(1)]) is JunctionType.T_JUNCTION
    assert classify_contributors([e(0), c(1, ring=True)]) is JunctionType.RING
    assert classify_contributors([e(0), e(1)]) is JunctionType.Y_JUNCTION
    assert classify_contributors([e(0), e(1), e(2)]) is JunctionType.CROSSROADS
    assert classify_contributors([e(k) for k in range(4)]) is JunctionType.CROSSROADS
    assert classify_contributors([e(k) for k in range(5)]) is JunctionType.COMPLEX


def test_t_junction_endpoint_near_interior():
    roads = [make_road([(0, 0), (100, 0)]), make_road([(50, 5), (50, 60)])]
    network = build_network(roads, make_params())

    junctions = detect_junctions(network, make_params())

    assert _types(network) == [JunctionType.ENDPOINT, JunctionType.ENDPOINT,
                               JunctionType.T_JUNCTION, JunctionType.ENDPOINT]
    assert [j.junction_id for j in junctions] == [0, 1, 2, 3]

    t = junctions[2]
    assert t.position == pytest.approx((50.0, 0.0))
    assert sorted(t.road_ids) == [0, 1]
    (terminating,) = t.endpoints()
    (continuous,) = t.continuous()
    assert terminating.road_id == 1
    assert continuous.road_id == 0
    assert continuous.contact_distance == pytest.approx(50.0)
    assert network.section(continuous.section).position == pytest.approx((50.0, 0.0))


def test_endpoint_outside_radius_is_a_dead_end():
    roads = [make_road([(0, 0), (100, 0)]), make_road([(50, 15), (50, 60)])]
    network = build_network(roads, make_params())

    detect_junctions(network, make_params())

    assert set(_types(network)) == {JunctionType.ENDPOINT}
    assert len(network.junctions) == 4


def test_y_junction_shared_endpoint():
    roads = [make_road([(0, 0), (50, 0)]), make_road([(50, 0), (90, 30)])]
    network = build_network(roads, make_params())

    detect_junctions(network, make_params())

    (y,) = junctions_of_type(network, JunctionType.Y_JUNCTION)
    assert y.position == pytest.approx((50.0, 0.0))
    assert all(c.is_endpoint for c in y.contributors)
    assert len(junctions_of_type(network, JunctionType.ENDPOINT)) == 2
    assert junctions_of_type(network, JunctionType.CROSSING) == []


def test_crossroads_three_shared_endpoints():
    roads = [
        make_road([(0, 50), (50, 50)]),
        make_road([(50, 50), (100, 50)]),
        make_road([(50, 50), (50, 100)]),
    ]
    network = build_network(roads, make_params())

    detect_junctions(network, make_params())

    (x,) = junctions_of_type(network, JunctionType.CROSSROADS)
    assert sorted(x.road_ids) == [0, 1, 2]
    assert network.junction_counts() == {"crossroads": 1, "endpoint": 3}


def test_mid_curve_crossing():
    roads = [make_road([(0, 50), (100, 50)]), make_road([(50, 0), (50, 100)])]
    network = build_network(roads, make_params())

    detect_junctions(network, make_params())

    (m,) = junctions_of_type(network, JunctionType.CROSSING)
    assert m.position == pytest.approx((50.0, 50.0))
    assert all(c.is_continuous for c in m.contributors)
    assert [c.contact_distance for c in m.contributors] == pytest.approx([50.0, 50.0])
    assert len(junctions_of_type(network, JunctionType.ENDPOINT)) == 4


def test_collinear_overlap_is_recorded_as_degenerate():
    roads = [make_road([(0, 0), (100, 0)]),
             make_road([(20, 30), (20, 0), (80, 0), (80, 30)])]
    params = make_params(INTERPOLATION="linear", DETECTION_RADIUS=1.0)
    network = build_network(roads, params)

    detect_junctions(network, params)

    assert junctions_of_type(network, JunctionType.CROSSING) == []
    assert "DegenerateJunction" in [w.kind for w in network.warnings]


def test_ring_attachment():
    roads = [_ring(), make_road([(50, 75), (50, 100)])]
    network = build_network(roads, make_params())

    detect_junctions(network, make_params())

    assert network.is_closed(0)
    (r,) = junctions_of_type(network, JunctionType.RING)
    assert r.ring_road_id == 0
    assert r.attachment_angle == pytest.approx(90.0, abs=2.0)
    assert primary_continuous(network, r).road_id == 0
    assert primary_continuous(network, r).on_ring
    assert _types(network).count(JunctionType.ENDPOINT) == 1


def test_equidistant_match_prefers_higher_priority():
    roads = [
        make_road([(0, 0), (100, 0)], priority=0),
        make_road([(0, 10), (100, 10)], priority=2),
        make_road([(50, 5), (80, 5)]),
    ]
    params = make_params(DETECTION_RADIUS=6.0)
    network = build_network(roads, params)

    detect_junctions(network, params)

    t = next(j for j in junctions_of_type(network, JunctionType.T_JUNCTION) if j.involves(2))
    assert [c.road_id for c in t.continuous()] == [1]


def test_section_index_finds_nearest_section_of_another_road():
    roads = [make_road([(0, 0), (100, 0)]), make_road([(51, 6), (51, 60)])]
    network = build_network(roads, make_params())

    index = build_section_index(network)
    endpoint = network.sections_of(1)[0]

    match = nearest_other_road_section(network, index, endpoint, 10.0)
    assert match.road_id == 0
    assert match.position == pytest.approx((50.0, 0.0))      # tie with x=52 goes to the lower index
    assert nearest_other_road_section(network, index, endpoint, 5.0) is None
    assert nearest_other_road_section(network, None, endpoint, 10.0) is None


def test_road_meeting_itself_through_another_endpoint_is_degenerate():
    # both ends of the open loop and the start of the spur lie within the radius
    roads = [make_road([(0, 0), (40, 0), (40, 8), (0, 8)]), make_road([(0, 4), (-30, 4)])]
    params = make_params(INTERPOLATION="linear")
    network = build_network(roads, params)

    detect_junctions(network, params)

    assert not network.is_closed(0)
    assert _types(network) == [JunctionType.ENDPOINT] * 4
    assert sorted((j.road_ids[0], network.section(j.contributors[0].section).is_start)
                  for j in network.junctions) == [(0, False), (0, True), (1, False), (1, True)]
    degenerate = [w for w in network.warnings if w.kind == "DegenerateJunction"]
    assert len(degenerate) == 1
    assert "meet themselves" in degenerate[0].message


def test_t_junction_pair_can_still_cross_elsewhere():
    roads = [
        make_road([(0, 50), (100, 50)]),
        make_road([(20, 55), (20, 80), (70, 80), (70, 20)]),
    ]
    params = make_params(INTERPOLATION="linear")
    network = build_network(roads, params)

    detect_junctions(network, params)

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    (m,) = junctions_of_type(network, JunctionType.CROSSING)
    assert t.position == pytest.approx((20.0, 50.0))
    assert m.position == pytest.approx((70.0, 50.0))
    assert sorted(m.road_ids) == [0, 1]


def test_shared_endpoint_pair_gets_no_crossing():
    roads = [make_road([(0, 0), (50, 0)]), make_road([(50, 0), (90, 30)])]
    network = build_network(roads, make_params())

    detect_junctions(network, make_params())

    assert junctions_of_type(network, JunctionType.CROSSING) == []


def test_exclude_junctions_marks_only_nearby_junctions():
    roads = [make_road([(0, 0), (100, 0)]), make_road([(50, 5), (50, 60)])]
    params = make_params()
    network = build_network(roads, params)
    detect_junctions(network, params)

    excluded = exclude_junctions(network, [(49.0, 2.0)], reason="bridge deck", params=params)

    (t,) = excluded
    assert t.type is JunctionType.T_JUNCTION
    assert t.excluded and t.exclusion_reason == "bridge deck"
    assert junctions_of_type(network, JunctionType.T_JUNCTION) == []
    assert len(junctions_of_type(network, JunctionType.ENDPOINT)) == 3
    assert network.junction_counts() == {"endpoint": 3}
    assert exclude_junctions(network, [], params=params) == []
