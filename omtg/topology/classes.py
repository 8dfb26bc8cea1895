"""
Conceptual Classes
------------------

Enumerations for the OMT-G conceptual model.

Enums:
    - OMTGClass: Closed set of geo-field and geo-object classes a column can declare
    - Relationship: Cross-table topological relationship classes
    - SpatialPredicate: Predicates accepted by spatial relationship rules
    - StatementKind: Kinds of mutating statements that fire hooks
    - LockMode: Concurrency strategy applied before validation

Column domains are tagged ``ast_<class>`` (e.g. ``ast_isoline``).
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from enum import Enum
from typing import FrozenSet, List, Optional, Union

DOMAIN_PREFIX = "ast_"


class OMTGClass(str, Enum):
    """
    Enumeration of OMT-G geometry classes.

    Geo-objects:
    - POLYGON, LINE, POINT, NODE: plain geometric objects
    - UNILINE, BILINE: oriented arcs of a network

    Geo-fields:
    - ISOLINE: contour lines, pairwise disjoint
    - PLANAR_SUBDIVISION: polygons that never overlap in area
    - TIN: planar subdivision of triangles
    - TESSELATION: regular cell grid
    - SAMPLE: sample points, never coincident
    """

    POLYGON = "polygon"
    LINE = "line"
    POINT = "point"
    NODE = "node"
    ISOLINE = "isoline"
    PLANAR_SUBDIVISION = "planarsubdivision"
    TIN = "tin"
    TESSELATION = "tesselation"
    SAMPLE = "sample"
    UNILINE = "uniline"
    BILINE = "biline"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available class names."""
        return [omtg_class.value for omtg_class in cls]

    @classmethod
    def domains(cls) -> List[str]:
        """Get every declared domain tag of the closed class set."""
        return [omtg_class.domain for omtg_class in cls]

    @classmethod
    def from_domain(cls, domain: Optional[str]) -> Optional["OMTGClass"]:
        """
        Resolve a declared domain tag to its class.

        Args:
            domain: Declared column domain (e.g. 'ast_isoline')

        Returns:
            The matching class, or None when the tag is not in the closed set
        """
        if not domain:
            return None
        tag = domain.strip().lower()
        if not tag.startswith(DOMAIN_PREFIX):
            return None
        try:
            return cls(tag[len(DOMAIN_PREFIX):])
        except ValueError:
            return None

    @property
    def domain(self) -> str:
        """Declared domain tag for this class."""
        return f"{DOMAIN_PREFIX}{self.value}"

    @property
    def display_name(self) -> str:
        """Get human-readable display name."""
        display_map = {
            self.PLANAR_SUBDIVISION: "Planar Subdivision",
            self.TIN: "TIN",
        }
        return display_map.get(self, self.value.title())


class Relationship(str, Enum):
    """
    Enumeration of cross-table relationship classes.
    - CONTAINMENT: every container row holds at least one contained row
    - ARC_NODE_NETWORK: arcs end on nodes and every node is used by an arc
    """

    CONTAINMENT = "containment"
    ARC_NODE_NETWORK = "arcnodenetwork"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available relationship names."""
        return [relationship.value for relationship in cls]

    @property
    def display_name(self) -> str:
        """Get human-readable display name."""
        display_map = {
            self.CONTAINMENT: "Containment",
            self.ARC_NODE_NETWORK: "Arc-Node Network",
        }
        return display_map[self]


RuleKind = Union[OMTGClass, Relationship]


def rule_kind(value: str) -> RuleKind:
    """
    Resolve a rule name to its class or relationship.

    Raises:
        ValueError: If the name is neither
    """
    try:
        return OMTGClass(value)
    except ValueError:
        return Relationship(value)


class SpatialPredicate(str, Enum):
    """Predicates a spatial relationship rule may assert."""

    CONTAINS = "contains"
    COVERS = "covers"
    INTERSECTS = "intersects"
    TOUCHES = "touches"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available predicate names."""
        return [predicate.value for predicate in cls]


class StatementKind(str, Enum):
    """Mutating statement kinds."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


ALL_STATEMENTS: FrozenSet[StatementKind] = frozenset(StatementKind)


class LockMode(str, Enum):
    """
    Concurrency strategy taken on governed tables before validators run.
    - NONE: rely on the host's isolation level
    - EXCLUSIVE: lock governed tables against concurrent writers
    """

    NONE = "none"
    EXCLUSIVE = "exclusive"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available lock modes."""
        return [mode.value for mode in cls]


def is_omtg_domain(domain: Optional[str]) -> bool:
    """Check whether a declared domain tag belongs to the closed class set."""
    return OMTGClass.from_domain(domain) is not None
