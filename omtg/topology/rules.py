#!/usr/bin/env python3
"""
rules.py
---------------------------

Declarative rule table: one validation rule per conceptual class.

The table is globally fixed. Classes of the closed set without an entry
(Polygon, Line, Point, Node, Tesselation, Uniline, Biline) have no
invariant of their own yet; attaching them is skipped, not failed.

Cross-table rules also declare on which statements they fire, for the
primary table and for the secondary table:

    Containment       primary: insert, update          secondary: update, delete
    Arc-Node Network  primary: insert, update, delete  secondary: update, delete

Secondary inserts never fire: they cannot break either invariant, and
loading nodes before the arcs that use them must succeed.

Deferred rules split their invariant. After each statement only the
endpoint clause of an arc-node network is checked; node coverage (every
node referenced by an arc) is checked once, when the transaction commits,
so a network can be loaded arc by arc inside one transaction.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Type

# --- Local imports ---
from omtg.topology.classes import (
    ALL_STATEMENTS,
    OMTGClass,
    Relationship,
    RuleKind,
    StatementKind,
)
from omtg.topology.validators import (
    ArcNodeNetworkValidator,
    ContainmentValidator,
    IsolineValidator,
    PlanarSubdivisionValidator,
    SampleValidator,
    TINValidator,
    TopologyValidator,
)


@dataclass(frozen=True)
class ValidationRule:
    """
    Configuration for a single validation rule.

    Attributes:
        kind: Conceptual class or relationship the rule governs
        validator_class: Validator implementing the invariant
        description: Human-readable invariant
        fires_on: Statement kinds on the primary table that run the rule
        secondary_fires_on: Statement kinds on the secondary table that run it
        deferred: Part of the invariant is only checked at commit
    """

    kind: RuleKind
    validator_class: Type[TopologyValidator]
    description: str
    fires_on: FrozenSet[StatementKind] = ALL_STATEMENTS
    secondary_fires_on: FrozenSet[StatementKind] = frozenset()
    deferred: bool = False

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def cross_table(self) -> bool:
        return isinstance(self.kind, Relationship)


RULES: Dict[RuleKind, ValidationRule] = {
    OMTGClass.ISOLINE: ValidationRule(
        kind=OMTGClass.ISOLINE,
        validator_class=IsolineValidator,
        description="No two isolines may intersect.",
    ),
    OMTGClass.PLANAR_SUBDIVISION: ValidationRule(
        kind=OMTGClass.PLANAR_SUBDIVISION,
        validator_class=PlanarSubdivisionValidator,
        description="Polygons share boundaries only, never interior area.",
    ),
    OMTGClass.TIN: ValidationRule(
        kind=OMTGClass.TIN,
        validator_class=TINValidator,
        description="Non-overlapping triangles.",
    ),
    OMTGClass.SAMPLE: ValidationRule(
        kind=OMTGClass.SAMPLE,
        validator_class=SampleValidator,
        description="Samples never coincide or overlap.",
    ),
    Relationship.CONTAINMENT: ValidationRule(
        kind=Relationship.CONTAINMENT,
        validator_class=ContainmentValidator,
        description="Every container row relates to at least one contained row.",
        fires_on=frozenset({StatementKind.INSERT, StatementKind.UPDATE}),
        secondary_fires_on=frozenset({StatementKind.UPDATE, StatementKind.DELETE}),
    ),
    Relationship.ARC_NODE_NETWORK: ValidationRule(
        kind=Relationship.ARC_NODE_NETWORK,
        validator_class=ArcNodeNetworkValidator,
        description="Arc endpoints coincide with nodes; every node is used.",
        fires_on=ALL_STATEMENTS,
        secondary_fires_on=frozenset({StatementKind.UPDATE, StatementKind.DELETE}),
        deferred=True,
    ),
}


def get_rule(kind: RuleKind) -> Optional[ValidationRule]:
    """Return the rule for a class, or None when it has no validator."""
    return RULES.get(kind)


def supported_classes() -> List[OMTGClass]:
    """Classes of the closed set that have a validator."""
    return [omtg_class for omtg_class in OMTGClass if omtg_class in RULES]
