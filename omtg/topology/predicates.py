#!/usr/bin/env python3
"""
predicates.py
--------------------
Geometry predicate provider backed by Shapely.

Validators never touch geometry algorithms directly: they go through a
``GeometryPredicates`` provider exposing the primitive predicates
(disjoint, touches, intersects, contains, covers, vertex count) over
opaque geometry values. ``ShapelyPredicates`` is the default provider.

Values stored in governed columns are WKT text. ``load`` parses them
into Shapely geometries; any parse or GEOS failure is raised as
``PredicateProviderError``.

Candidate generation:
    Pairwise validators only need to evaluate pairs whose bounding boxes
    meet, since every predicate that can signal a violation (non-disjoint,
    intersects, contains, covers) implies envelope intersection. An
    STRtree restricts the candidates without ever dropping a true
    violation. Passing ``use_index=False`` falls back to the full
    quadratic scan.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from itertools import combinations
from typing import Any, Callable, Dict, Iterator, List, Protocol, Sequence, Tuple

# --- Third party imports ---
import shapely
import shapely.wkb
import shapely.wkt
from shapely.errors import GEOSException, ShapelyError
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry, BaseMultipartGeometry

# --- Local imports ---
from omtg.core.exceptions import PredicateProviderError
from omtg.topology.classes import SpatialPredicate


class GeometryPredicates(Protocol):
    """Contract every geometry predicate provider satisfies."""

    def load(self, value: Any) -> BaseGeometry: ...

    def disjoint(self, g1: BaseGeometry, g2: BaseGeometry) -> bool: ...

    def touches(self, g1: BaseGeometry, g2: BaseGeometry) -> bool: ...

    def intersects(self, g1: BaseGeometry, g2: BaseGeometry) -> bool: ...

    def contains(self, g1: BaseGeometry, g2: BaseGeometry) -> bool: ...

    def covers(self, g1: BaseGeometry, g2: BaseGeometry) -> bool: ...

    def relate(
        self, predicate: SpatialPredicate, g1: BaseGeometry, g2: BaseGeometry
    ) -> bool: ...

    def vertex_count(self, geometry: BaseGeometry) -> int: ...

    def candidate_pairs(
        self, geometries: Sequence[BaseGeometry], use_index: bool = True
    ) -> Iterator[Tuple[int, int]]: ...

    def candidate_matches(
        self,
        geometries: Sequence[BaseGeometry],
        others: Sequence[BaseGeometry],
        use_index: bool = True,
    ) -> Dict[int, List[int]]: ...


class ShapelyPredicates:
    """Shapely implementation of the geometry predicate contract."""

    def load(self, value: Any) -> BaseGeometry:
        """
        Parse a stored value into a geometry.

        Args:
            value: WKT string, WKB bytes or an existing Shapely geometry

        Returns:
            Shapely geometry

        Raises:
            PredicateProviderError: If the value cannot be parsed
        """
        if isinstance(value, BaseGeometry):
            return value
        try:
            if isinstance(value, (bytes, bytearray, memoryview)):
                return shapely.wkb.loads(bytes(value))
            if isinstance(value, str):
                return shapely.wkt.loads(value)
        except (ShapelyError, ValueError) as e:
            raise PredicateProviderError("load", f"malformed geometry {value!r}: {e}")
        raise PredicateProviderError(
            "load", f"unsupported geometry value of type {type(value).__name__}"
        )

    def _evaluate(self, name: str, function: Callable[[], Any]) -> Any:
        try:
            return function()
        except (GEOSException, ShapelyError, TypeError, ValueError) as e:
            raise PredicateProviderError(name, str(e))

    def disjoint(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return bool(self._evaluate("disjoint", lambda: g1.disjoint(g2)))

    def touches(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return bool(self._evaluate("touches", lambda: g1.touches(g2)))

    def intersects(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return bool(self._evaluate("intersects", lambda: g1.intersects(g2)))

    def contains(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return bool(self._evaluate("contains", lambda: g1.contains(g2)))

    def covers(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return bool(self._evaluate("covers", lambda: g1.covers(g2)))

    def relate(
        self, predicate: SpatialPredicate, g1: BaseGeometry, g2: BaseGeometry
    ) -> bool:
        """Evaluate a named spatial predicate."""
        return getattr(self, predicate.value)(g1, g2)

    def vertex_count(self, geometry: BaseGeometry) -> int:
        """
        Count distinct vertices.

        Polygon rings are closed, so the repeated closing coordinate is not
        counted: a triangle has 3 vertices. Multipart geometries sum
        their parts.
        """
        if isinstance(geometry, Polygon):
            rings = [geometry.exterior, *geometry.interiors]
            return sum(max(len(ring.coords) - 1, 0) for ring in rings)
        if isinstance(geometry, BaseMultipartGeometry):
            return sum(self.vertex_count(part) for part in geometry.geoms)
        return int(
            self._evaluate(
                "vertex_count", lambda: shapely.get_num_coordinates(geometry)
            )
        )

    def candidate_pairs(
        self, geometries: Sequence[BaseGeometry], use_index: bool = True
    ) -> Iterator[Tuple[int, int]]:
        """
        Yield every unordered index pair that may satisfy a non-disjoint predicate.

        Args:
            geometries: Geometries of one governed column
            use_index: Restrict pairs to intersecting envelopes via STRtree

        Yields:
            (i, j) index pairs with i < j, in ascending order
        """
        if len(geometries) < 2:
            return
        if not use_index:
            yield from combinations(range(len(geometries)), 2)
            return

        tree = self._evaluate("strtree", lambda: shapely.STRtree(list(geometries)))
        hits = self._evaluate("strtree", lambda: tree.query(list(geometries)))
        pairs = sorted(
            {(int(i), int(j)) for i, j in zip(hits[0], hits[1]) if int(i) < int(j)}
        )
        yield from pairs

    def candidate_matches(
        self,
        geometries: Sequence[BaseGeometry],
        others: Sequence[BaseGeometry],
        use_index: bool = True,
    ) -> Dict[int, List[int]]:
        """
        Map each geometry index to the indexes of ``others`` it may relate to.

        Args:
            geometries: Geometries of the primary column
            others: Geometries of the secondary column
            use_index: Restrict matches to intersecting envelopes via STRtree

        Returns:
            Dictionary with one (possibly empty) candidate list per geometry
        """
        matches: Dict[int, List[int]] = {i: [] for i in range(len(geometries))}
        # STRtree.query rejects an empty input array
        if not geometries or not others:
            return matches
        if not use_index:
            for i in matches:
                matches[i] = list(range(len(others)))
            return matches

        tree = self._evaluate("strtree", lambda: shapely.STRtree(list(others)))
        hits = self._evaluate("strtree", lambda: tree.query(list(geometries)))
        for i, j in zip(hits[0], hits[1]):
            matches[int(i)].append(int(j))
        for candidates in matches.values():
            candidates.sort()
        return matches


def endpoints(geometry: BaseGeometry) -> List[BaseGeometry]:
    """
    Return the start and end points of every linear part of a geometry.

    Args:
        geometry: LineString or MultiLineString

    Returns:
        List of Point geometries (two per part)
    """
    if isinstance(geometry, BaseMultipartGeometry):
        points: List[BaseGeometry] = []
        for part in geometry.geoms:
            points.extend(endpoints(part))
        return points
    coords = list(geometry.coords)
    return [shapely.Point(coords[0]), shapely.Point(coords[-1])]
