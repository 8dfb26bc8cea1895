#!/usr/bin/env python3
"""
OMT-G Topology Package
----------------------

Database-independent part of the guard:

- classes: Conceptual classes, relationships, predicates and statement kinds
- predicates: Shapely-backed geometry predicate provider
- validators: One validator per class or relationship
- rules: Class -> validator table with firing rules
"""

from .classes import (
    LockMode,
    OMTGClass,
    Relationship,
    SpatialPredicate,
    StatementKind,
)
from .predicates import GeometryPredicates, ShapelyPredicates
from .rules import RULES, ValidationRule, get_rule
from .validators import (
    ArcNodeNetworkValidator,
    ContainmentValidator,
    IsolineValidator,
    PlanarSubdivisionValidator,
    SampleValidator,
    TINValidator,
    Violation,
)

__all__ = [
    # Enums
    "LockMode",
    "OMTGClass",
    "Relationship",
    "SpatialPredicate",
    "StatementKind",
    # Predicates
    "GeometryPredicates",
    "ShapelyPredicates",
    # Rules
    "RULES",
    "ValidationRule",
    "get_rule",
    # Validators
    "ArcNodeNetworkValidator",
    "ContainmentValidator",
    "IsolineValidator",
    "PlanarSubdivisionValidator",
    "SampleValidator",
    "TINValidator",
    "Violation",
]
