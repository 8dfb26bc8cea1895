#!/usr/bin/env python3
"""
exceptions.py
--------------------
Custom exception classes for the OMT-G integrity guard.

This module defines a hierarchy of exceptions used throughout the project
to handle specific error conditions in the classification, attachment and
validation subsystems.

Exception Hierarchy:
    Exception (built-in)
    └── OMTGError - Base for every error raised by this package
        ├── ConfigurationError - Invalid YAML configuration
        ├── DatabaseError - Host database or catalog failures
        ├── SchemaClassificationError - Unrecognized column domain tag
        ├── AttachmentConflict - Duplicate attachment of a validator
        ├── ConstraintViolation - A governed topological invariant failed
        └── PredicateProviderError - Geometry engine could not evaluate input

Usage:
    from omtg.core.exceptions import ConstraintViolation

    try:
        with db.transaction() as conn:
            conn.execute(contours.insert(), rows)
    except ConstraintViolation as e:
        print(e.code, e.detail)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from omtg.topology.validators import Violation


class OMTGError(Exception):
    """Base exception for all OMT-G integrity guard errors."""

    pass


class ConfigurationError(OMTGError):
    """
    Exception for invalid configuration.

    Raised when the YAML configuration cannot be read or contains
    unknown keys, unknown enum values or missing required fields.

    Examples:
        >>> raise ConfigurationError("Unknown lock_mode: 'table'")
    """

    pass


class DatabaseError(OMTGError):
    """
    Base exception for database-related errors.

    Raised when host operations fail due to connection issues,
    query errors, or catalog inconsistencies. SQLAlchemy errors are
    wrapped into this type by ``handle_db_errors``.

    Examples:
        >>> raise DatabaseError("Catalog table omtg_trigger_attachments missing")
    """

    pass


class SchemaClassificationError(OMTGError):
    """
    Exception for malformed or unrecognized column domain tags.

    Never fatal: the classifier logs it and skips the column so that
    future conceptual classes can be declared ahead of their support.

    Attributes:
        table: Table owning the column
        column: Column name
        domain: Declared domain tag
    """

    def __init__(self, table: str, column: str, domain: Optional[str], reason: str):
        self.table = table
        self.column = column
        self.domain = domain
        self.reason = reason
        super().__init__(f"{table}.{column} ({domain}): {reason}")


class AttachmentConflict(OMTGError):
    """
    Exception for a duplicate validator attachment.

    The registry treats this as a no-op; it is never surfaced to callers
    of ``ensure_attached``.
    """

    def __init__(self, hook_id: str):
        self.hook_id = hook_id
        super().__init__(f"Hook '{hook_id}' is already attached")


class ConstraintViolation(OMTGError):
    """
    Exception for a failed topological integrity constraint.

    Fatal to the triggering statement: the enclosing transaction must be
    rolled back and cannot commit while this violation is pending.

    Attributes:
        code: Stable error code ("IntegrityViolation")
        violations: Every violation detected before the abort
        message: Headline of the first violation
        detail: Detail of the first violation

    Examples:
        >>> try:
        ...     conn.execute(isolines.insert(), rows)
        ... except ConstraintViolation as e:
        ...     e.detail
        'Isolines must be disjoint from each other. Offending rows: 1 and 2'
    """

    code = "IntegrityViolation"

    def __init__(self, violations: Sequence["Violation"]):
        if not violations:
            raise ValueError("ConstraintViolation requires at least one violation")
        self.violations: List["Violation"] = list(violations)
        first = self.violations[0]
        self.message = first.message
        self.detail = first.detail
        text = f"{first.message} DETAIL: {first.detail}"
        if len(self.violations) > 1:
            text += f" (+{len(self.violations) - 1} more)"
        super().__init__(text)

    @property
    def rule(self) -> str:
        """Name of the rule that produced the first violation."""
        return self.violations[0].rule


class PredicateProviderError(OMTGError):
    """
    Exception for geometry predicate evaluation failures.

    Raised when the geometry engine cannot parse or evaluate a value
    (malformed WKT, GEOS topology exceptions). Propagated as fatal since
    correctness cannot be asserted on unevaluable input.

    Attributes:
        predicate: Name of the predicate being evaluated
    """

    def __init__(self, predicate: str, reason: str):
        self.predicate = predicate
        self.reason = reason
        super().__init__(f"Geometry predicate '{predicate}' failed: {reason}")
