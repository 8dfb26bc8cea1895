#!/usr/bin/env python3
"""
classifier.py
--------------------
Schema classifier: maps geometry columns to OMT-G classes.

On every schema-change event (table created or altered) the classifier
inspects each column's declared domain against the closed class set and
returns one ``GeometryColumn`` per recognized column. It is a pure
metadata lookup: no geometry is read.

Classification rules:
    - Columns without an ``ast_`` domain are ignored (ordinary columns).
    - ``ast_`` tags outside the closed set raise SchemaClassificationError
      internally; the error is logged and the column skipped.
    - A column keeps the class it was first classified with. A later event
      declaring a different class is logged and skipped.
    - Re-running on an already classified table yields the same columns.

Usage:
    classifier = SchemaClassifier(logger)
    columns = classifier.classify(SchemaChangeEvent.from_table(contours))
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

# --- Third party imports ---
from sqlalchemy import Table

# --- Local imports ---
from omtg.core.exceptions import SchemaClassificationError
from omtg.core.logging_manager import OMTGLogger, safe_logger
from omtg.database.types import domain_of
from omtg.topology.classes import DOMAIN_PREFIX, OMTGClass


class SchemaChangeKind(str, Enum):
    """Kinds of schema-change events."""

    CREATE = "create"
    ALTER = "alter"


@dataclass(frozen=True)
class GeometryColumn:
    """
    A column classified under an OMT-G class.

    Attributes:
        table: Owning table name
        column: Column name
        omtg_class: Conceptual class (immutable once assigned)
    """

    table: str
    column: str
    omtg_class: OMTGClass


@dataclass(frozen=True)
class SchemaChangeEvent:
    """
    A table was created or altered.

    Attributes:
        kind: create or alter
        table: Table name
        columns: (column name, declared domain) pairs
    """

    kind: SchemaChangeKind
    table: str
    columns: Tuple[Tuple[str, Optional[str]], ...]

    @classmethod
    def from_table(
        cls,
        table: Table,
        kind: SchemaChangeKind = SchemaChangeKind.CREATE,
    ) -> "SchemaChangeEvent":
        """Build an event from a SQLAlchemy table's column declarations."""
        return cls(
            kind=kind,
            table=table.fullname,
            columns=tuple((column.name, domain_of(column.type)) for column in table.columns),
        )


class SchemaClassifier:
    """Classifies geometry columns from schema-change events."""

    def __init__(self, logger: Optional[OMTGLogger] = None) -> None:
        self.logger = logger
        self._known: Dict[Tuple[str, str], OMTGClass] = {}

    def classify(
        self, source: Union[SchemaChangeEvent, Table]
    ) -> List[GeometryColumn]:
        """
        Classify the geometry columns of a table.

        Args:
            source: Schema-change event, or a table (treated as a create event)

        Returns:
            Recognized geometry columns in declaration order
        """
        event = (
            SchemaChangeEvent.from_table(source)
            if isinstance(source, Table)
            else source
        )
        log = safe_logger(self.logger)

        columns: List[GeometryColumn] = []
        for column_name, domain in event.columns:
            try:
                omtg_class = self._resolve(event.table, column_name, domain)
            except SchemaClassificationError as e:
                log.log_warning(
                    "Column skipped during classification",
                    {
                        "table": e.table,
                        "column": e.column,
                        "domain": e.domain,
                        "reason": e.reason,
                    },
                )
                continue

            if omtg_class is None:
                continue
            columns.append(GeometryColumn(event.table, column_name, omtg_class))

        log.log_debug(
            "Schema classified",
            {
                "event": event.kind.value,
                "table": event.table,
                "geometry_columns": [f"{c.column}:{c.omtg_class.value}" for c in columns],
            },
        )
        return columns

    def _resolve(
        self, table: str, column: str, domain: Optional[str]
    ) -> Optional[OMTGClass]:
        if not domain or not domain.strip().lower().startswith(DOMAIN_PREFIX):
            return None

        omtg_class = OMTGClass.from_domain(domain)
        if omtg_class is None:
            raise SchemaClassificationError(
                table, column, domain, "unrecognized OMT-G domain"
            )

        key = (table, column)
        known = self._known.get(key)
        if known is not None and known is not omtg_class:
            raise SchemaClassificationError(
                table,
                column,
                domain,
                f"column is already classified as '{known.value}'",
            )
        self._known[key] = omtg_class
        return omtg_class

    def known_class(self, table: str, column: str) -> Optional[OMTGClass]:
        """Return the class a column was classified with, if any."""
        return self._known.get((table, column))

    def remember(self, column: GeometryColumn) -> None:
        """Seed the classifier with a column recorded in the catalog."""
        self._known.setdefault((column.table, column.column), column.omtg_class)

    def forget_table(self, table: str) -> None:
        """Drop every classification of a dropped table."""
        for key in [key for key in self._known if key[0] == table]:
            del self._known[key]
