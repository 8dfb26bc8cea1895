"""Tests for the Shapely predicate provider."""
import pytest
from shapely.geometry import LineString, MultiLineString, Point, Polygon

from omtg.core.exceptions import PredicateProviderError
from omtg.topology.classes import SpatialPredicate
from omtg.topology.predicates import ShapelyPredicates, endpoints


@pytest.fixture
def predicates():
    return ShapelyPredicates()


class TestLoad:
    """Tests for ShapelyPredicates.load."""

    def test_loads_wkt(self, predicates):
        geometry = predicates.load("POINT (1 2)")
        assert geometry.equals(Point(1, 2))

    def test_loads_wkb(self, predicates):
        geometry = predicates.load(Point(3, 4).wkb)
        assert geometry.equals(Point(3, 4))

    def test_passes_geometry_through(self, predicates):
        geometry = LineString([(0, 0), (1, 1)])
        assert predicates.load(geometry) is geometry

    def test_malformed_wkt(self, predicates):
        with pytest.raises(PredicateProviderError) as exc_info:
            predicates.load("POLYGON ((0 0, 1")
        assert exc_info.value.predicate == "load"

    def test_unsupported_type(self, predicates):
        with pytest.raises(PredicateProviderError, match="unsupported"):
            predicates.load(42)


class TestPrimitives:
    """Tests for primitive predicates."""

    def test_edge_sharing_squares_touch(self, predicates):
        a = Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
        b = Polygon([(1, 0), (2, 0), (2, 1), (1, 1)])
        assert predicates.touches(a, b)
        assert not predicates.disjoint(a, b)
        assert predicates.intersects(a, b)

    def test_relate_dispatches_by_name(self, predicates):
        square = Polygon([(0, 0), (2, 0), (2, 2), (0, 2)])
        inside = Point(1, 1)
        boundary = Point(0, 1)
        assert predicates.relate(SpatialPredicate.CONTAINS, square, inside)
        assert not predicates.relate(SpatialPredicate.CONTAINS, square, boundary)
        assert predicates.relate(SpatialPredicate.COVERS, square, boundary)
        assert predicates.relate(SpatialPredicate.TOUCHES, square, boundary)


class TestVertexCount:
    """Tests for vertex_count."""

    def test_triangle_has_three(self, predicates):
        assert predicates.vertex_count(Polygon([(0, 0), (1, 0), (0, 1)])) == 3

    def test_square_has_four(self, predicates):
        assert predicates.vertex_count(Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])) == 4

    def test_line(self, predicates):
        assert predicates.vertex_count(LineString([(0, 0), (1, 0), (2, 0)])) == 3


class TestCandidates:
    """Spatial index candidates never drop an intersecting pair."""

    def test_pairs_match_full_scan_for_intersections(self, predicates):
        geometries = [
            LineString([(0, 0), (2, 2)]),
            LineString([(0, 2), (2, 0)]),
            LineString([(10, 10), (11, 11)]),
            LineString([(1, 5), (1, 6)]),
        ]
        indexed = set(predicates.candidate_pairs(geometries))
        full = set(predicates.candidate_pairs(geometries, use_index=False))

        assert (0, 1) in indexed
        assert indexed <= full
        intersecting = {
            (i, j) for i, j in full if geometries[i].intersects(geometries[j])
        }
        assert intersecting <= indexed

    def test_pairs_are_ordered(self, predicates):
        geometries = [Point(0, 0), Point(0, 0), Point(0, 0)]
        assert list(predicates.candidate_pairs(geometries)) == [(0, 1), (0, 2), (1, 2)]

    def test_empty_input(self, predicates):
        assert list(predicates.candidate_pairs([])) == []

    def test_matches_have_entry_per_geometry(self, predicates):
        polygons = [Polygon([(0, 0), (1, 0), (1, 1), (0, 1)]), Polygon([(5, 5), (6, 5), (6, 6)])]
        points = [Point(0.5, 0.5)]
        matches = predicates.candidate_matches(polygons, points)
        assert matches == {0: [0], 1: []}

    def test_matches_without_others(self, predicates):
        assert predicates.candidate_matches([Point(0, 0)], []) == {0: []}

    def test_single_geometry_has_no_pairs(self, predicates):
        assert list(predicates.candidate_pairs([Point(0, 0)])) == []
        assert list(predicates.candidate_pairs([Point(0, 0)], use_index=False)) == []

    def test_matches_with_no_geometries(self, predicates):
        assert predicates.candidate_matches([], [Point(0, 0)]) == {}
        assert predicates.candidate_matches([], []) == {}


class TestEndpoints:
    def test_linestring(self):
        ends = endpoints(LineString([(0, 0), (1, 1), (2, 0)]))
        assert [p.coords[0] for p in ends] == [(0.0, 0.0), (2.0, 0.0)]

    def test_multilinestring(self):
        ends = endpoints(MultiLineString([[(0, 0), (1, 0)], [(5, 5), (6, 6)]]))
        assert len(ends) == 4
