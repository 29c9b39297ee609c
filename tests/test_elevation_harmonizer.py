import math

import numpy as np
import pytest

from road_harmonizer.detectors.junction_detector import exclude_junctions
from road_harmonizer.models.junction import JunctionType
from road_harmonizer.processing.elevation_harmonizer import (
    approach_adjusted_slope,
    assign_roles,
    harmonize_network,
)

from conftest import (
    flat_heightmap,
    junctions_of_type,
    make_params,
    make_road,
    prepare_network,
    ramp_heightmap,
)


def _section_at(network, rid, x, y):
    sections = network.sections_of(rid)
    return min(sections, key=lambda cs: math.hypot(cs.position[0] - x, cs.position[1] - y))


def _run(roads, per_road, heightmap, **overrides):
    params = make_params(**overrides)
    network = prepare_network(roads, per_road, params)
    stats = harmonize_network(network, heightmap, 1.0, params)
    return network, stats


# ----------------------------------------------------------------------
# Approach-adjusted slope
# ----------------------------------------------------------------------

def test_approach_adjusted_slope_sign():
    assert approach_adjusted_slope(0.01, (1.0, 0.0), (-1.0, 0.0)) == pytest.approx(-0.01)
    assert approach_adjusted_slope(0.01, (1.0, 0.0), (1.0, 0.0)) == pytest.approx(0.01)
    assert approach_adjusted_slope(-0.03, (0.0, 1.0), (0.2, -1.0)) == pytest.approx(0.03)


# ----------------------------------------------------------------------
# T junctions
# ----------------------------------------------------------------------

def test_t_junction_takes_surface_elevation_of_continuous_road():
    roads = [
        make_road([(0, 0), (100, 0)], priority=1),
        make_road([(50, 5), (50, 60)], priority=0),
    ]
    network, stats = _run(roads, {0: lambda x, y: x / 10.0, 1: 20.0}, ramp_heightmap(0.1))

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    assert t.harmonized_elevation == pytest.approx(5.0, abs=1e-6)

    # The terminating road now starts on the continuous road's surface,
    # which itself is left alone at the junction.
    assert network.sections_of(1)[0].target_elevation == pytest.approx(5.0, abs=1e-6)
    assert _section_at(network, 0, 50, 0).target_elevation == pytest.approx(5.0, abs=1e-9)
    assert [c.road_id for c in t.adapting()] == [1]
    assert stats.sections_modified > 0


def _first_step_slope(network, rid):
    sections = network.sections_of(rid)
    a, b = sections[0], sections[1]
    return (b.target_elevation - a.target_elevation) / (b.distance - a.distance)


def test_t_junction_slope_continuity_along_approach():
    roads = [
        make_road([(0, 0), (100, 0)], priority=1),
        make_road([(50, 5), (90, 45)], priority=0),
    ]
    network, _ = _run(roads, {0: lambda x, y: x / 10.0, 1: 5.0}, ramp_heightmap(0.1))

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    (terminating,) = t.endpoints()

    # surface slope 0.1 along +x, approach at 45 degrees
    assert terminating.local_slope == pytest.approx(0.1 * math.sqrt(0.5), abs=1e-6)
    assert _first_step_slope(network, 1) == pytest.approx(0.1 * math.sqrt(0.5), abs=0.005)


def test_t_junction_slope_sign_follows_approach_direction():
    roads = [
        make_road([(0, 0), (100, 0)], priority=1),
        make_road([(50, 5), (10, 45)], priority=0),
    ]
    network, _ = _run(roads, {0: lambda x, y: x / 10.0, 1: 5.0}, ramp_heightmap(0.1))

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    (terminating,) = t.endpoints()

    assert terminating.local_slope == pytest.approx(-0.1 * math.sqrt(0.5), abs=1e-6)
    assert _first_step_slope(network, 1) == pytest.approx(-0.1 * math.sqrt(0.5), abs=0.005)


def test_perpendicular_approach_inherits_no_slope():
    roads = [
        make_road([(0, 0), (100, 0)], priority=1),
        make_road([(50, 5), (50, 60)], priority=0),
    ]
    network, _ = _run(roads, {0: lambda x, y: x / 10.0, 1: 5.0}, ramp_heightmap(0.1))

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    assert t.endpoints()[0].local_slope == pytest.approx(0.0, abs=1e-9)


def test_inverted_t_continuous_road_adapts_to_stronger_terminating_road():
    roads = [
        make_road([(0, 0), (100, 0)], priority=0),
        make_road([(50, 5), (50, 60)], priority=2),
    ]
    network, _ = _run(roads, {0: 5.0, 1: 20.0}, flat_heightmap(20.0))

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    dominant = assign_roles(network)[t.junction_id]

    assert dominant.road_id == 1
    assert t.harmonized_elevation == pytest.approx(20.0)
    assert [c.road_id for c in t.adapting()] == [0]
    assert _section_at(network, 0, 50, 0).target_elevation == pytest.approx(20.0, abs=1e-6)
    assert network.sections_of(1)[0].target_elevation == pytest.approx(20.0)


# ----------------------------------------------------------------------
# Shared endpoints and crossings
# ----------------------------------------------------------------------

def test_y_junction_with_equal_priority_averages():
    roads = [make_road([(0, 0), (50, 0)]), make_road([(50, 0), (90, 30)])]
    network, _ = _run(roads, {0: 10.0, 1: 20.0}, flat_heightmap(15.0))

    (y,) = junctions_of_type(network, JunctionType.Y_JUNCTION)
    assert y.harmonized_elevation == pytest.approx(15.0)
    assert len(y.adapting()) == 2
    assert network.sections_of(0)[-1].target_elevation == pytest.approx(15.0, abs=1e-6)
    assert network.sections_of(1)[0].target_elevation == pytest.approx(15.0, abs=1e-6)


def test_y_junction_dominant_road_keeps_its_elevation():
    roads = [make_road([(0, 0), (50, 0)], priority=2), make_road([(50, 0), (90, 30)], priority=1)]
    network, _ = _run(roads, {0: 10.0, 1: 20.0}, flat_heightmap(10.0))

    (y,) = junctions_of_type(network, JunctionType.Y_JUNCTION)
    assert y.harmonized_elevation == pytest.approx(10.0)
    assert [c.road_id for c in y.adapting()] == [1]
    assert network.sections_of(1)[0].target_elevation == pytest.approx(10.0, abs=1e-6)


def test_crossing_weights_by_priority_rank():
    roads = [
        make_road([(0, 50), (100, 50)], priority=1),
        make_road([(50, 0), (50, 100)], priority=0),
    ]
    network, _ = _run(roads, {0: 10.0, 1: 20.0}, flat_heightmap(15.0))

    (m,) = junctions_of_type(network, JunctionType.CROSSING)
    # weights (1 + rank)^2: 4 for the major road, 1 for the minor one
    assert m.harmonized_elevation == pytest.approx((4 * 10.0 + 1 * 20.0) / 5)
    assert _section_at(network, 0, 50, 50).target_elevation == pytest.approx(12.0, abs=1e-6)
    assert _section_at(network, 1, 50, 50).target_elevation == pytest.approx(12.0, abs=1e-6)


# ----------------------------------------------------------------------
# Dead ends and rings
# ----------------------------------------------------------------------

def test_dead_end_fades_toward_terrain():
    roads = [make_road([(0, 50), (100, 50)])]
    network, _ = _run(roads, {0: 10.0}, flat_heightmap(0.0))

    ends = junctions_of_type(network, JunctionType.ENDPOINT)
    assert len(ends) == 2
    assert [j.harmonized_elevation for j in ends] == pytest.approx([7.0, 7.0])

    sections = network.sections_of(0)
    assert sections[0].target_elevation == pytest.approx(7.0, abs=1e-6)
    assert sections[-1].target_elevation == pytest.approx(7.0, abs=1e-6)
    assert _section_at(network, 0, 50, 50).target_elevation == pytest.approx(10.0)
    assert all(7.0 - 1e-9 <= cs.target_elevation <= 10.0 + 1e-9 for cs in sections)


def test_uniform_ring_is_leveled_with_its_connectors():
    angles = np.linspace(0, 2 * np.pi, 12, endpoint=False)
    ring = make_road([(50 + 20 * np.cos(a), 50 + 20 * np.sin(a)) for a in angles], is_ring=True)
    connector = make_road([(50, 75), (50, 110)])

    network, _ = _run([ring, connector], {0: 3.0, 1: 9.0}, flat_heightmap(3.0),
                      RING_ELEVATION_MODE="uniform")

    (r,) = junctions_of_type(network, JunctionType.RING)
    ring_values = np.array([cs.target_elevation for cs in network.sections_of(0)])

    # terrain mean 3 (weight 1) averaged with the connector endpoint 9 (weight 1)
    assert ring_values == pytest.approx(np.full(len(ring_values), 6.0))
    assert r.harmonized_elevation == pytest.approx(6.0)
    assert network.sections_of(1)[0].target_elevation == pytest.approx(6.0, abs=1e-6)


def test_harmonizer_skips_excluded_sections():
    roads = [make_road([(0, 0), (100, 0)])]

    def estimator(x, y):
        return math.nan if 40 <= x <= 60 else 4.0

    network, _ = _run(roads, {0: estimator}, flat_heightmap(4.0))

    middle = _section_at(network, 0, 50, 0)
    assert middle.excluded
    assert not middle.has_elevation
    assert [w.kind for w in network.warnings] == ["UnresolvedElevation"]
    finite = [cs.target_elevation for cs in network.sections_of(0) if not cs.excluded]
    assert np.all(np.isfinite(finite))


def test_excluded_junction_keeps_raw_elevations():
    roads = [
        make_road([(0, 0), (100, 0)], priority=1),
        make_road([(50, 5), (50, 60)], priority=0),
    ]
    params = make_params()
    network = prepare_network(roads, {0: 5.0, 1: 20.0}, params)
    exclude_junctions(network, [(50.0, 0.0)], params=params)

    stats = harmonize_network(network, flat_heightmap(5.0), 1.0, params)

    (t,) = [j for j in network.junctions if j.type is JunctionType.T_JUNCTION]
    assert t.excluded
    assert not t.is_resolved
    assert network.sections_of(1)[0].target_elevation == pytest.approx(20.0)
    assert _section_at(network, 0, 50, 0).target_elevation == pytest.approx(5.0)
    assert stats.junctions_resolved == len(junctions_of_type(network, JunctionType.ENDPOINT))


# ----------------------------------------------------------------------
# Ordering inside a priority tier
# ----------------------------------------------------------------------

def test_equal_priority_t_reads_the_final_continuous_profile():
    roads = [
        make_road([(0, 50), (100, 50)], priority=0),
        make_road([(10, 55), (10, 110)], priority=0),
    ]
    network, _ = _run(roads, {0: 10.0, 1: 10.0}, flat_heightmap(0.0))

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    surface = _section_at(network, 0, 10, 50).target_elevation

    # the continuous road is still inside its dead-end taper at x = 10
    assert surface < 9.0
    assert t.harmonized_elevation == pytest.approx(surface, abs=1e-6)
    assert network.sections_of(1)[0].target_elevation == pytest.approx(surface, abs=1e-6)


# ----------------------------------------------------------------------
# Profile shape
# ----------------------------------------------------------------------

def _smoothstep(t):
    return 3 * t ** 2 - 2 * t ** 3


def test_t_junction_slope_changes_monotonically_to_the_original_slope():
    inherited = 0.1 * math.sqrt(0.5)      # continuous slope 0.1, 45 degree approach
    original = 0.12
    blend = 30.0
    # raw start chosen so the blend end sits on the average of both slopes
    start = 5.0 + blend * (inherited - original) / 2

    roads = [
        make_road([(0, 0), (100, 0)], priority=1),
        make_road([(50, 5), (110, 65)], priority=0),
    ]
    per_road = {
        0: lambda x, y: x / 10.0,
        1: lambda x, y: start + original * math.hypot(x - 50, y - 5),
    }
    network, _ = _run(roads, per_road, ramp_heightmap(0.1),
                      ENDPOINT_TAPER_DISTANCE=10.0, ENDPOINT_TERRAIN_BLEND=0.0)

    (t,) = junctions_of_type(network, JunctionType.T_JUNCTION)
    assert t.harmonized_elevation == pytest.approx(5.0, abs=1e-6)
    assert t.endpoints()[0].blend_distance == pytest.approx(blend)

    sections = network.sections_of(1)
    d = np.array([cs.distance for cs in sections])
    z = np.array([cs.target_elevation for cs in sections])
    slopes = np.gradient(z, d)

    marks = np.array([0.0, blend / 4, blend / 2, 3 * blend / 4, blend])
    sampled = np.interp(marks, d, slopes)
    expected = inherited + (original - inherited) * _smoothstep(marks / blend)

    assert sampled == pytest.approx(expected, abs=0.003)
    assert np.all(np.diff(sampled) >= -1e-6)

    ease = 0.15 * blend
    settled = (d >= blend + ease) & (d <= 70.0)
    assert settled.sum() > 5
    raw = start + original * d[settled]
    assert z[settled] == pytest.approx(raw, abs=1e-9)
    assert slopes[settled][1:-1] == pytest.approx(np.full(settled.sum() - 2, original), abs=1e-6)


def test_crossing_is_a_saddle_keeping_each_road_on_its_own_slope():
    roads = [
        make_road([(0, 50), (100, 50)]),
        make_road([(50, 0), (50, 100)]),
    ]
    per_road = {
        0: lambda x, y: 10.0 + 0.1 * (x - 50),
        1: lambda x, y: 11.0 - 0.1 * (y - 50),
    }
    network, _ = _run(roads, per_road, flat_heightmap(0.0), ENDPOINT_TERRAIN_BLEND=0.0)

    (m,) = junctions_of_type(network, JunctionType.CROSSING)
    assert m.harmonized_elevation == pytest.approx(10.5)

    def z(rid, x, y):
        return _section_at(network, rid, x, y).target_elevation

    assert z(0, 50, 50) == pytest.approx(10.5, abs=1e-6)
    assert z(1, 50, 50) == pytest.approx(10.5, abs=1e-6)

    # road 0 keeps rising eastward on both sides of the crossing
    assert (z(0, 52, 50) - z(0, 50, 50)) / 2 == pytest.approx(0.1, abs=0.01)
    assert (z(0, 50, 50) - z(0, 48, 50)) / 2 == pytest.approx(0.1, abs=0.01)
    # road 1 keeps falling with increasing y on both sides
    assert (z(1, 50, 52) - z(1, 50, 50)) / 2 == pytest.approx(-0.1, abs=0.01)
    assert (z(1, 50, 50) - z(1, 50, 48)) / 2 == pytest.approx(-0.1, abs=0.01)


def test_terrain_ring_connectors_take_their_local_ring_elevation():
    angles = np.linspace(0, 2 * np.pi, 12, endpoint=False)
    ring = make_road([(60 + 20 * np.cos(a), 60 + 20 * np.sin(a)) for a in angles], is_ring=True)
    east = make_road([(85, 60), (115, 60)])
    south = make_road([(60, 85), (60, 115)])

    network, _ = _run([ring, east, south], {0: lambda x, y: x / 10.0, 1: 2.0, 2: 2.0},
                      ramp_heightmap(0.1), RING_ELEVATION_MODE="terrain")

    rings = sorted(junctions_of_type(network, JunctionType.RING), key=lambda j: j.position[0])
    assert len(rings) == 2
    south_j, east_j = rings

    # the ring follows the x/10 ramp, so the two attachments sit at different heights
    assert east_j.harmonized_elevation == pytest.approx(8.0, abs=0.05)
    assert south_j.harmonized_elevation == pytest.approx(6.0, abs=0.1)

    assert network.sections_of(1)[0].target_elevation == pytest.approx(east_j.harmonized_elevation, abs=1e-6)
    assert network.sections_of(2)[0].target_elevation == pytest.approx(south_j.harmonized_elevation, abs=1e-6)

    ring_values = np.array([cs.target_elevation for cs in network.sections_of(0)])
    ring_x = network.positions(0)[:, 0]
    assert ring_values == pytest.approx(ring_x / 10.0)
