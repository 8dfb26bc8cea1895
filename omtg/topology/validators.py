#!/usr/bin/env python3
"""
validators.py
--------------------
Topological integrity validators, one per OMT-G class.

Each validator receives the table and column(s) it governs, reads the
whole governed extent through the caller's connection (so it sees the
mutating transaction's own view), and returns the list of violations it
found. An empty list means the invariant holds.

Set-wide validators (one column, pairwise predicate):
    - IsolineValidator: no two rows may intersect at all
    - PlanarSubdivisionValidator: rows may touch but never share interior
    - TINValidator: planar subdivision of triangles
    - SampleValidator: no two samples may intersect

Cross-table validators (primary and secondary column):
    - ContainmentValidator: each container row relates to >= 1 contained row
    - ArcNodeNetworkValidator: arc endpoints sit on nodes, nodes are used

Every validator rejects null or empty geometries in the columns it reads.

Usage:
    validator = IsolineValidator(ShapelyPredicates())
    violations = validator.validate(connection, target)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

# --- Third party imports ---
from shapely.geometry import LineString, MultiLineString, Point
from shapely.geometry.base import BaseGeometry
from sqlalchemy import Table, select
from sqlalchemy.engine import Connection

# --- Local imports ---
from omtg.topology.classes import SpatialPredicate
from omtg.topology.predicates import GeometryPredicates, ShapelyPredicates, endpoints


@dataclass(frozen=True)
class Violation:
    """
    A single failed invariant.

    Attributes:
        rule: Name of the rule that failed (e.g. 'isoline')
        message: Headline naming the class whose constraint failed
        detail: Specific invariant and offending rows
        rows: Keys of the offending rows
    """

    rule: str
    message: str
    detail: str
    rows: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class GeometryRow:
    """A governed row: its key (primary key tuple) and parsed geometry."""

    key: Tuple[Any, ...]
    geometry: Optional[BaseGeometry]


@dataclass(frozen=True)
class ValidationTarget:
    """
    Tables and columns a validator governs.

    Attributes:
        table: Primary table
        column: Geometry column of the primary table
        secondary_table: Secondary table for cross-table rules
        secondary_column: Geometry column of the secondary table
        predicate: Spatial predicate for containment rules
    """

    table: Table
    column: str
    secondary_table: Optional[Table] = None
    secondary_column: Optional[str] = None
    predicate: SpatialPredicate = SpatialPredicate.CONTAINS


def _format_key(key: Tuple[Any, ...]) -> str:
    return str(key[0]) if len(key) == 1 else str(key)


def load_rows(
    connection: Connection,
    table: Table,
    column: str,
    predicates: GeometryPredicates,
) -> List[GeometryRow]:
    """
    Read every row of a governed column.

    Rows are keyed by primary key, or by their full column tuple when the
    table has none. Null values are kept as ``None`` so validators can
    report them.

    Args:
        connection: Connection of the mutating transaction
        table: Governed table
        column: Geometry column name
        predicates: Provider used to parse stored values

    Returns:
        List of GeometryRow in primary key order
    """
    key_columns = list(table.primary_key.columns) or [
        c for c in table.columns if c.name != column
    ]
    geometry_column = table.c[column]
    statement = select(*key_columns, geometry_column)
    if key_columns:
        statement = statement.order_by(*key_columns)

    rows: List[GeometryRow] = []
    for index, record in enumerate(connection.execute(statement)):
        values = tuple(record)
        key = values[:-1] or (index,)
        raw = values[-1]
        rows.append(
            GeometryRow(key=key, geometry=None if raw is None else predicates.load(raw))
        )
    return rows


class TopologyValidator(ABC):
    """
    Base class for all validators.

    Subclasses implement ``check``, which works on already-loaded rows
    and is therefore testable without a database.

    Attributes:
        rule_name: Stable rule identifier
        message: Violation headline
        description: Human-readable invariant
    """

    rule_name: str = ""
    message: str = ""
    description: str = ""

    def __init__(
        self,
        predicates: Optional[GeometryPredicates] = None,
        use_spatial_index: bool = True,
        fail_fast: bool = True,
    ) -> None:
        """
        Initialize the validator.

        Args:
            predicates: Geometry predicate provider (Shapely by default)
            use_spatial_index: Restrict candidate pairs with an STRtree
            fail_fast: Stop at the first violation
        """
        self.predicates = predicates or ShapelyPredicates()
        self.use_spatial_index = use_spatial_index
        self.fail_fast = fail_fast

    def violation(self, detail: str, *rows: Tuple[Any, ...]) -> Violation:
        """Build a violation of this validator's rule."""
        return Violation(
            rule=self.rule_name, message=self.message, detail=detail, rows=rows
        )

    def empty_geometries(
        self, rows: Sequence[GeometryRow], label: str
    ) -> List[Violation]:
        """Report rows whose geometry is null or empty."""
        found = []
        for row in rows:
            if row.geometry is None or row.geometry.is_empty:
                found.append(
                    self.violation(
                        f"{label}: null or empty geometry in row {_format_key(row.key)}.",
                        row.key,
                    )
                )
                if self.fail_fast:
                    break
        return found

    @abstractmethod
    def validate(
        self,
        connection: Connection,
        target: ValidationTarget,
        include_deferred: bool = True,
    ) -> List[Violation]:
        """
        Read the governed extent and check the invariant.

        Args:
            connection: Connection of the mutating transaction
            target: Tables and columns to read
            include_deferred: Also check clauses normally deferred to commit
        """


class PairwiseValidator(TopologyValidator):
    """
    Validator asserting a predicate over every unordered pair of rows.

    Subclasses define ``conflicts`` (pair-level violation test) and may
    define ``row_problem`` (row-level violation test).
    """

    pair_detail: str = ""

    @abstractmethod
    def conflicts(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        """Return True when the pair breaks the invariant."""

    def row_problem(self, geometry: BaseGeometry) -> Optional[str]:
        return None

    def validate(
        self,
        connection: Connection,
        target: ValidationTarget,
        include_deferred: bool = True,
    ) -> List[Violation]:
        rows = load_rows(connection, target.table, target.column, self.predicates)
        return self.check(rows)

    def check(self, rows: Sequence[GeometryRow]) -> List[Violation]:
        """
        Check loaded rows.

        Args:
            rows: Every row of the governed column

        Returns:
            List of violations (at most one when fail_fast)
        """
        found = self.empty_geometries(rows, self.description)
        if found and self.fail_fast:
            return found
        rows = [r for r in rows if r.geometry is not None and not r.geometry.is_empty]

        for row in rows:
            problem = self.row_problem(row.geometry)
            if problem:
                found.append(
                    self.violation(f"{problem} Offending row: {_format_key(row.key)}", row.key)
                )
                if self.fail_fast:
                    return found

        geometries = [row.geometry for row in rows]
        for i, j in self.predicates.candidate_pairs(
            geometries, use_index=self.use_spatial_index
        ):
            if self.conflicts(geometries[i], geometries[j]):
                first, second = rows[i].key, rows[j].key
                found.append(
                    self.violation(
                        f"{self.pair_detail} Offending rows: "
                        f"{_format_key(first)} and {_format_key(second)}",
                        first,
                        second,
                    )
                )
                if self.fail_fast:
                    return found
        return found


class IsolineValidator(PairwiseValidator):
    """Isolines must be disjoint from each other."""

    rule_name = "isoline"
    message = "OMT-G Isolines integrity constraint violation."
    description = "Isoline"
    pair_detail = "Isolines must be disjoint from each other."

    def conflicts(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return not self.predicates.disjoint(g1, g2)


class PlanarSubdivisionValidator(PairwiseValidator):
    """Polygons may share boundary but never interior area."""

    rule_name = "planarsubdivision"
    message = "OMT-G Planar Subdivision integrity constraint violation."
    description = "Planar Subdivision"
    pair_detail = "Planar Subdivision polygons cannot have overlaps."

    def conflicts(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return not self.predicates.touches(g1, g2) and not self.predicates.disjoint(
            g1, g2
        )


class TINValidator(PlanarSubdivisionValidator):
    """Planar subdivision restricted to triangles."""

    rule_name = "tin"
    message = "OMT-G TIN integrity constraint violation."
    description = "TIN"
    pair_detail = "TIN polygons must be triangles and cannot contain overlaps."

    def row_problem(self, geometry: BaseGeometry) -> Optional[str]:
        if geometry.geom_type != "Polygon" or self.predicates.vertex_count(geometry) != 3:
            return (
                "TIN polygons must be triangles and cannot contain overlaps. "
                f"Found {geometry.geom_type} with "
                f"{self.predicates.vertex_count(geometry)} vertices."
            )
        return None


class SampleValidator(PairwiseValidator):
    """Samples never coincide or overlap."""

    rule_name = "sample"
    message = "OMT-G Sample integrity constraint violation."
    description = "Sample"
    pair_detail = "Sample points cannot have overlaps."

    def conflicts(self, g1: BaseGeometry, g2: BaseGeometry) -> bool:
        return self.predicates.intersects(g1, g2)


class CrossTableValidator(TopologyValidator):
    """Validator relating a primary column to a secondary column."""

    def validate(
        self,
        connection: Connection,
        target: ValidationTarget,
        include_deferred: bool = True,
    ) -> List[Violation]:
        if target.secondary_table is None or not target.secondary_column:
            raise ValueError(f"{self.rule_name} requires a secondary table and column")
        primary = load_rows(connection, target.table, target.column, self.predicates)
        secondary = load_rows(
            connection,
            target.secondary_table,
            target.secondary_column,
            self.predicates,
        )
        return self.check(primary, secondary, target, include_deferred=include_deferred)

    @abstractmethod
    def check(
        self,
        primary: Sequence[GeometryRow],
        secondary: Sequence[GeometryRow],
        target: ValidationTarget,
        include_deferred: bool = True,
    ) -> List[Violation]:
        """Check loaded rows of both tables."""


class ContainmentValidator(CrossTableValidator):
    """
    Every container row relates to at least one contained row.

    The relation is ``predicate(container, contained)``, ``contains`` by
    default. A container row with no match is a violation (anti-join
    emptiness).
    """

    rule_name = "containment"
    message = "OMT-G Spatial Relationship integrity constraint violation."
    description = "Containment"

    def check(
        self,
        primary: Sequence[GeometryRow],
        secondary: Sequence[GeometryRow],
        target: ValidationTarget,
        include_deferred: bool = True,
    ) -> List[Violation]:
        found = self.empty_geometries(list(primary) + list(secondary), self.description)
        if found and self.fail_fast:
            return found
        primary = [r for r in primary if r.geometry is not None and not r.geometry.is_empty]
        secondary = [
            r for r in secondary if r.geometry is not None and not r.geometry.is_empty
        ]

        predicate = target.predicate
        candidates = self.predicates.candidate_matches(
            [r.geometry for r in primary],
            [r.geometry for r in secondary],
            use_index=self.use_spatial_index,
        )
        secondary_name = (
            target.secondary_table.name if target.secondary_table is not None else "?"
        )
        for i, container in enumerate(primary):
            if not any(
                self.predicates.relate(
                    predicate, container.geometry, secondary[j].geometry
                )
                for j in candidates[i]
            ):
                found.append(
                    self.violation(
                        f"Row {_format_key(container.key)} of {target.table.name} "
                        f"must satisfy '{predicate.value}' with at least one row "
                        f"of {secondary_name}.",
                        container.key,
                    )
                )
                if self.fail_fast:
                    return found
        return found


class ArcNodeNetworkValidator(CrossTableValidator):
    """
    Arcs must end on nodes and every node must be used by an arc.

    Primary rows are arcs ((multi)linestrings); secondary rows are nodes
    (points). An endpoint coincides with a node when they intersect.

    Node coverage is the deferred clause: with ``include_deferred=False``
    only the endpoints are checked.
    """

    rule_name = "arcnodenetwork"
    message = "OMT-G Arc-Node Network integrity constraint violation."
    description = "Arc-Node Network"

    def check(
        self,
        primary: Sequence[GeometryRow],
        secondary: Sequence[GeometryRow],
        target: ValidationTarget,
        include_deferred: bool = True,
    ) -> List[Violation]:
        found = self.empty_geometries(list(primary) + list(secondary), self.description)
        if found and self.fail_fast:
            return found
        arcs = [r for r in primary if r.geometry is not None and not r.geometry.is_empty]
        nodes = [r for r in secondary if r.geometry is not None and not r.geometry.is_empty]

        for arc in arcs:
            if not isinstance(arc.geometry, (LineString, MultiLineString)):
                found.append(
                    self.violation(
                        f"Arcs must be lines, found {arc.geometry.geom_type} "
                        f"in row {_format_key(arc.key)}.",
                        arc.key,
                    )
                )
                if self.fail_fast:
                    return found
        for node in nodes:
            if not isinstance(node.geometry, Point):
                found.append(
                    self.violation(
                        f"Nodes must be points, found {node.geometry.geom_type} "
                        f"in row {_format_key(node.key)}.",
                        node.key,
                    )
                )
                if self.fail_fast:
                    return found
        if found:
            return found

        ends: List[Tuple[GeometryRow, BaseGeometry]] = [
            (arc, point) for arc in arcs for point in endpoints(arc.geometry)
        ]
        end_points = [point for _, point in ends]
        node_points = [node.geometry for node in nodes]

        node_matches = self.predicates.candidate_matches(
            end_points, node_points, use_index=self.use_spatial_index
        )
        for i, (arc, point) in enumerate(ends):
            if not any(
                self.predicates.intersects(point, node_points[j])
                for j in node_matches[i]
            ):
                found.append(
                    self.violation(
                        f"Arc {_format_key(arc.key)} of {target.table.name} has an "
                        f"endpoint {point.wkt} that does not coincide with any node.",
                        arc.key,
                    )
                )
                if self.fail_fast:
                    return found
        if not include_deferred:
            return found

        end_matches = self.predicates.candidate_matches(
            node_points, end_points, use_index=self.use_spatial_index
        )
        for i, node in enumerate(nodes):
            if not any(
                self.predicates.intersects(node.geometry, end_points[j])
                for j in end_matches[i]
            ):
                found.append(
                    self.violation(
                        f"Node {_format_key(node.key)} is not referenced by any arc "
                        f"of {target.table.name}.",
                        node.key,
                    )
                )
                if self.fail_fast:
                    return found
        return found
