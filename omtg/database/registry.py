#!/usr/bin/env python3
"""
registry.py
--------------------
Rule registry: attaches validators to tables exactly once.

``ensure_attached`` computes a deterministic key from
(table, class, column[, secondary table, secondary column]) and, when no
hook exists for that key, builds the class's validator scoped to that
table and registers it with the dispatcher. Calling it again for the same
key is a no-op. Classes without a validator (Tesselation, Biline, ...)
are skipped, not failed.

Cross-table rules register one hook id on the primary table and, for the
statement kinds that can break them, on the secondary table too. Rules
with clauses deferred to commit (arc-node networks) register the same id a
second time as a commit-time hook.

Usage:
    registry = RuleRegistry(dispatcher, logger=logger)
    registry.ensure_attached(contours, OMTGClass.ISOLINE, "geom")
    registry.ensure_attached(
        districts, Relationship.CONTAINMENT, "geom",
        secondary_table=stops, secondary_column="geom",
    )
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass
from typing import Dict, List, Optional

# --- Third party imports ---
from sqlalchemy import Table
from sqlalchemy.engine import Connection

# --- Local imports ---
from omtg.core.exceptions import AttachmentConflict, ConfigurationError
from omtg.core.logging_manager import OMTGLogger, safe_logger
from omtg.database.dispatcher import StatementEvent, TriggerDispatcher
from omtg.topology.classes import Relationship, RuleKind, SpatialPredicate
from omtg.topology.predicates import GeometryPredicates, ShapelyPredicates
from omtg.topology.rules import ValidationRule, get_rule
from omtg.topology.validators import TopologyValidator, ValidationTarget, Violation


@dataclass(frozen=True)
class AttachmentKey:
    """
    Deterministic key of an attachment.

    Attributes:
        table: Primary table name
        kind: Conceptual class or relationship
        column: Primary geometry column
        secondary_table: Secondary table name (cross-table rules)
        secondary_column: Secondary geometry column (cross-table rules)
    """

    table: str
    kind: RuleKind
    column: str
    secondary_table: Optional[str] = None
    secondary_column: Optional[str] = None

    @property
    def hook_id(self) -> str:
        """
        Hook identifier: ``<table>:<class>:<column>[:<table2>:<column2>]``.

        A ``:`` or ``\\`` inside a name is backslash-escaped, so distinct
        keys always give distinct ids.
        """
        parts = [self.table, self.kind.value, self.column]
        if self.secondary_table:
            parts += [self.secondary_table, self.secondary_column or ""]
        return ":".join(_escape(part) for part in parts)


def _escape(part: str) -> str:
    return part.replace("\\", "\\\\").replace(":", "\\:")


@dataclass
class AttachedTrigger:
    """
    A validator bound to its governed table(s).

    Attributes:
        key: Attachment key
        rule: Validation rule
        target: Tables and columns the validator reads
        validator: Validator instance
    """

    key: AttachmentKey
    rule: ValidationRule
    target: ValidationTarget
    validator: TopologyValidator

    @property
    def hook_id(self) -> str:
        return self.key.hook_id

    def __call__(
        self, connection: Connection, statement: Optional[StatementEvent] = None
    ) -> List[Violation]:
        # Clauses deferred to commit are skipped after individual statements
        include_deferred = statement is None or not self.rule.deferred
        return self.validator.validate(
            connection, self.target, include_deferred=include_deferred
        )


class RuleRegistry:
    """
    Maps conceptual classes to validators and attaches them once.

    Attributes:
        dispatcher: Dispatcher receiving the hooks
        predicates: Predicate provider shared by every validator
    """

    def __init__(
        self,
        dispatcher: TriggerDispatcher,
        predicates: Optional[GeometryPredicates] = None,
        logger: Optional[OMTGLogger] = None,
        use_spatial_index: bool = True,
        fail_fast: bool = True,
    ) -> None:
        self.dispatcher = dispatcher
        self.predicates = predicates or ShapelyPredicates()
        self.logger = logger
        self.use_spatial_index = use_spatial_index
        self.fail_fast = fail_fast
        self._attached: Dict[AttachmentKey, AttachedTrigger] = {}

    def __len__(self) -> int:
        return len(self._attached)

    def __contains__(self, key: AttachmentKey) -> bool:
        return key in self._attached

    def get(self, key: AttachmentKey) -> Optional[AttachedTrigger]:
        return self._attached.get(key)

    def attachments(self, table: Optional[str] = None) -> List[AttachedTrigger]:
        """Attached triggers, optionally only those whose primary table matches."""
        return [
            trigger
            for key, trigger in self._attached.items()
            if table is None or key.table == table
        ]

    def ensure_attached(
        self,
        table: Table,
        kind: RuleKind,
        column: str,
        secondary_table: Optional[Table] = None,
        secondary_column: Optional[str] = None,
        predicate: SpatialPredicate = SpatialPredicate.CONTAINS,
    ) -> Optional[AttachedTrigger]:
        """
        Attach the validator of a class to a table, once.

        Args:
            table: Governed (primary) table
            kind: Conceptual class or relationship
            column: Geometry column of the primary table
            secondary_table: Secondary table for cross-table rules
            secondary_column: Geometry column of the secondary table
            predicate: Spatial predicate for containment rules

        Returns:
            The attached trigger (new or existing), or None when the class
            has no validator

        Raises:
            ConfigurationError: If a column is missing or a cross-table rule
                lacks its secondary table
        """
        log = safe_logger(self.logger)
        rule = get_rule(kind)
        if rule is None:
            log.log_hook(
                "skipped",
                f"{table.fullname}:{kind.value}:{column}",
                {"reason": "no validator for class"},
            )
            return None

        self._check_column(table, column)
        if rule.cross_table:
            if secondary_table is None or not secondary_column:
                raise ConfigurationError(
                    f"Rule '{rule.name}' on {table.fullname} requires a "
                    f"secondary table and column"
                )
            self._check_column(secondary_table, secondary_column)
        else:
            secondary_table, secondary_column = None, None

        key = AttachmentKey(
            table=table.fullname,
            kind=kind,
            column=column,
            secondary_table=secondary_table.fullname if secondary_table is not None else None,
            secondary_column=secondary_column,
        )
        try:
            return self._attach(key, rule, table, secondary_table, predicate)
        except AttachmentConflict:
            log.log_hook("duplicate", key.hook_id)
            return self._attached[key]

    def _attach(
        self,
        key: AttachmentKey,
        rule: ValidationRule,
        table: Table,
        secondary_table: Optional[Table],
        predicate: SpatialPredicate,
    ) -> AttachedTrigger:
        if key in self._attached:
            raise AttachmentConflict(key.hook_id)

        target = ValidationTarget(
            table=table,
            column=key.column,
            secondary_table=secondary_table,
            secondary_column=key.secondary_column,
            predicate=predicate,
        )
        validator = rule.validator_class(
            self.predicates,
            use_spatial_index=self.use_spatial_index,
            fail_fast=self.fail_fast,
        )
        trigger = AttachedTrigger(key=key, rule=rule, target=target, validator=validator)

        governed = [key.table] + ([key.secondary_table] if key.secondary_table else [])
        firing = [(key.table, rule.fires_on)]
        if key.secondary_table and rule.secondary_fires_on:
            firing.append((key.secondary_table, rule.secondary_fires_on))
        phases = [False, True] if rule.deferred else [False]

        for table_name, _ in firing:
            for at_commit in phases:
                taken = self.dispatcher.hooks_for(table_name, at_commit=at_commit)
                if any(hook.hook_id == key.hook_id for hook in taken):
                    safe_logger(self.logger).log_warning(
                        "Hook id already registered outside the registry",
                        {"table": table_name, "hook_id": key.hook_id},
                    )
                    raise ConfigurationError(
                        f"Hook '{key.hook_id}' is already registered on "
                        f"{table_name} by another caller"
                    )

        for table_name, kinds in firing:
            for at_commit in phases:
                self.dispatcher.register_statement_hook(
                    table_name, key.hook_id, trigger, kinds, governed, at_commit=at_commit
                )

        self._attached[key] = trigger
        safe_logger(self.logger).log_hook(
            "attached",
            key.hook_id,
            {
                "table": key.table,
                "rule": rule.name,
                "column": key.column,
                "secondary_table": key.secondary_table,
                "deferred": rule.deferred,
            },
        )
        return trigger

    def attach_relationship(
        self,
        kind: Relationship,
        table: Table,
        column: str,
        secondary_table: Table,
        secondary_column: str,
        predicate: SpatialPredicate = SpatialPredicate.CONTAINS,
    ) -> Optional[AttachedTrigger]:
        """Attach a cross-table rule."""
        return self.ensure_attached(
            table,
            kind,
            column,
            secondary_table=secondary_table,
            secondary_column=secondary_column,
            predicate=predicate,
        )

    def detach_table(self, table: str) -> List[str]:
        """
        Drop every attachment that reads a table (the table was dropped).

        Returns:
            Hook ids removed
        """
        removed = []
        for key in list(self._attached):
            if table in (key.table, key.secondary_table):
                self.dispatcher.unregister_hook(key.hook_id)
                del self._attached[key]
                removed.append(key.hook_id)
                safe_logger(self.logger).log_hook("detached", key.hook_id, {"table": table})
        return removed

    def run(
        self, connection: Connection, table: Optional[str] = None
    ) -> Dict[str, List[Violation]]:
        """
        Run attached validators on demand, without raising.

        Args:
            connection: Connection to read through
            table: Restrict to attachments whose primary table matches

        Returns:
            Violations per hook id (empty list when the invariant holds)
        """
        return {
            trigger.hook_id: trigger(connection)
            for trigger in self.attachments(table)
        }

    @staticmethod
    def _check_column(table: Table, column: str) -> None:
        if column not in table.c:
            raise ConfigurationError(f"Table {table.fullname} has no column '{column}'")
