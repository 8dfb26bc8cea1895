#!/usr/bin/env python3
"""
manager.py
--------------------
Database manager for the OMT-G integrity guard.

Provides the OMTGDatabase class binding the guard to a SQLAlchemy engine.
Handles:
    - Initialization of the engine, sessionmaker and catalog tables
    - Installing the trigger dispatcher on the engine
    - Schema-change handling: create tables, add columns, drop tables
    - Classification of geometry columns and one-time validator attachment
    - Cross-table relationship rules from the configuration
    - Catalog persistence and restore of attachments in a new process
    - On-demand validation reports

Key Features:
    - Every Insert/Update/Delete on a governed table is validated before
      the statement returns
    - A rejected statement's transaction cannot commit
    - Transaction management with automatic rollback
    - Comprehensive error handling and logging

Usage:
    db = OMTGDatabase("sqlite:///contours.db", log_dir="logs")
    db.create_tables(metadata)

    with db.transaction() as conn:
        conn.execute(contours.insert(), rows)   # ConstraintViolation on overlap
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

# --- Third party ---
from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import Column, Engine, MetaData, Table, create_engine, select
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# --- Local imports ---
from omtg.core.config import GuardConfig, RelationshipSpec, check_isolation_level
from omtg.core.exceptions import ConfigurationError, DatabaseError
from omtg.core.logging_manager import OMTGLogger, safe_logger
from omtg.database.classifier import (
    GeometryColumn,
    SchemaChangeEvent,
    SchemaChangeKind,
    SchemaClassifier,
)
from omtg.database.decorators import handle_db_errors, log_database_operation
from omtg.database.dispatcher import TriggerDispatcher
from omtg.database.models import Base, GeometryColumnRecord, TriggerAttachmentRecord
from omtg.database.registry import AttachedTrigger, RuleRegistry
from omtg.topology.classes import OMTGClass, Relationship, SpatialPredicate, rule_kind
from omtg.topology.predicates import GeometryPredicates
from omtg.topology.validators import Violation


@dataclass
class ValidationReport:
    """
    Result of an on-demand validation run.

    Attributes:
        results: Violations per hook id (empty list when the rule holds)
    """

    results: Dict[str, List[Violation]] = field(default_factory=dict)

    @property
    def violations(self) -> List[Violation]:
        return [v for found in self.results.values() for v in found]

    @property
    def failed_hooks(self) -> List[str]:
        return [hook_id for hook_id, found in self.results.items() if found]

    @property
    def is_valid(self) -> bool:
        return not self.violations


class OMTGDatabase:
    """
    Guarded database.

    Attributes:
        db_url: SQLAlchemy database URL
        engine: SQLAlchemy engine with the dispatcher installed
        SessionLocal: Session factory
        dispatcher: Statement-level trigger dispatcher
        registry: Rule registry holding the attachments
        classifier: Schema classifier
    """

    # ---- Initialization ----
    def __init__(
        self,
        db_url: Optional[str] = None,
        config: Optional[GuardConfig] = None,
        log_dir: Optional[Union[str, Path]] = None,
        predicates: Optional[GeometryPredicates] = None,
    ) -> None:
        """
        Initialize engine, dispatcher, registry and catalog.

        Args:
            db_url: Database URL (defaults to the configured one)
            config: Guard configuration (defaults apply when omitted)
            log_dir: Directory for log files (optional)
            predicates: Geometry predicate provider (Shapely by default)
        """
        self.config = config or GuardConfig()
        self.db_url = db_url or self.config.database.url

        log_dir = log_dir or self.config.logging.log_dir
        if log_dir:
            self.log_dir = Path(log_dir).expanduser().resolve()
            self.logger: Optional[OMTGLogger] = OMTGLogger(
                self.log_dir, component_name="database"
            )
        else:
            self.logger = None

        self._tables: Dict[str, Table] = {}
        self.reflected = MetaData()

        self._setup_engine()

        validation = self.config.validation
        self.dispatcher = TriggerDispatcher(
            self.logger,
            lock_mode=validation.lock_mode,
            collect_all=validation.collect_all,
        )
        self.dispatcher.install(self.engine)
        self.registry = RuleRegistry(
            self.dispatcher,
            predicates=predicates,
            logger=self.logger,
            use_spatial_index=validation.use_spatial_index,
            fail_fast=not validation.collect_all,
        )
        self.classifier = SchemaClassifier(self.logger)

        self.initialize_catalog()

    def _setup_engine(self) -> None:
        """Initialize database engine and session factory."""
        try:
            safe_logger(self.logger).log_operation(
                "database_init_start", {"db_url": self._safe_url()}
            )

            url = make_url(self.db_url)
            options: Dict[str, object] = {"echo": False, "pool_pre_ping": True}
            if url.get_backend_name() == "sqlite":
                if url.database in (None, "", ":memory:"):
                    options["poolclass"] = StaticPool
                    options["connect_args"] = {"check_same_thread": False}
                else:
                    Path(url.database).expanduser().parent.mkdir(
                        parents=True, exist_ok=True
                    )
            if self.config.database.isolation_level:
                options["isolation_level"] = check_isolation_level(
                    self.config.database.isolation_level
                )

            self.engine: Engine = create_engine(url, **options)
            self.SessionLocal: sessionmaker = sessionmaker(
                bind=self.engine,
                autoflush=True,
                expire_on_commit=False,
            )

            safe_logger(self.logger).log_operation(
                "database_init_complete", {"success": True}
            )
        except ConfigurationError:
            raise
        except Exception as e:
            safe_logger(self.logger).log_error(e, {"operation": "database_init"})
            raise DatabaseError(f"Database initialization failed: {e}") from e

    def _safe_url(self) -> str:
        return make_url(self.db_url).render_as_string(hide_password=True)

    @handle_db_errors
    def initialize_catalog(self) -> None:
        """Create the catalog tables if they do not exist."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        """Detach the dispatcher and release pooled connections."""
        self.dispatcher.uninstall(self.engine)
        self.engine.dispose()

    # ---- Transaction Management ----
    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """
        Provide a Core connection inside a transaction.

        Commits on success; rolls back on any exception, including a
        ConstraintViolation raised by a governed statement.

        Usage:
            with db.transaction() as conn:
                conn.execute(contours.insert(), rows)
        """
        transaction_id = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        log = safe_logger(self.logger)
        with self.engine.connect() as connection:
            trans = connection.begin()
            log.log_debug("transaction_start", {"transaction_id": transaction_id})
            try:
                yield connection
                trans.commit()
                log.log_debug("transaction_commit", {"transaction_id": transaction_id})
            except Exception as e:
                if trans.is_active:
                    trans.rollback()
                else:
                    connection.rollback()
                log.log_error(
                    e,
                    {"operation": "transaction_rollback", "transaction_id": transaction_id},
                )
                raise

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional ORM session.

        Usage:
            with db.session_scope() as session:
                session.add(Contour(id=1, geom="LINESTRING (0 0, 1 1)"))
        """
        session = self.SessionLocal()
        session_id = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        log = safe_logger(self.logger)
        log.log_debug("session_start", {"session_id": session_id})

        try:
            yield session
            session.commit()
            log.log_debug("session_commit", {"session_id": session_id})
        except Exception as e:
            session.rollback()
            log.log_error(e, {"operation": "session_rollback", "session_id": session_id})
            raise
        finally:
            session.close()
            log.log_debug("session_close", {"session_id": session_id})

    # ---- Tables ----
    def register_table(self, table: Table) -> None:
        """Make a table object known to the guard."""
        self._tables[table.fullname] = table

    @handle_db_errors
    def table(self, name: str) -> Table:
        """
        Return a known table, reflecting it from the database if needed.

        Args:
            name: Table name, optionally schema-qualified

        Raises:
            DatabaseError: If the table does not exist
        """
        if name in self._tables:
            return self._tables[name]
        schema, _, table_name = name.rpartition(".")
        table = Table(
            table_name,
            self.reflected,
            schema=schema or None,
            autoload_with=self.engine,
        )
        self._tables[name] = table
        return table

    # ---- Schema Changes ----
    @handle_db_errors
    @log_database_operation("create_tables")
    def create_tables(
        self, metadata: MetaData, tables: Optional[Sequence[Table]] = None
    ) -> List[GeometryColumn]:
        """
        Create tables, classify their columns and attach validators.

        Configured relationships are attached once both of their tables
        are known.

        Args:
            metadata: Metadata declaring the tables
            tables: Subset of tables to create (all when omitted)

        Returns:
            Geometry columns classified across the created tables
        """
        metadata.create_all(self.engine, tables=tables)

        classified: List[GeometryColumn] = []
        for table in tables or metadata.sorted_tables:
            classified.extend(
                self.on_schema_change(SchemaChangeEvent.from_table(table), table)
            )
        self.attach_configured_relationships()
        return classified

    def on_schema_change(
        self, event: SchemaChangeEvent, table: Optional[Table] = None
    ) -> List[GeometryColumn]:
        """
        Handle a schema-change notification.

        Classifies the event's columns and attaches each recognized
        column's validator to the table. Safe to re-run: known columns and
        attachments are left untouched.

        Args:
            event: Schema-change event
            table: Table object (resolved by name when omitted)

        Returns:
            Geometry columns recognized in the event
        """
        table = table if table is not None else self.table(event.table)
        self.register_table(table)

        columns = self.classifier.classify(event)
        for column in columns:
            self._record_column(column)
            trigger = self.registry.ensure_attached(
                table, column.omtg_class, column.column
            )
            if trigger is not None:
                self._record_attachment(trigger)
        return columns

    @handle_db_errors
    @log_database_operation("add_column")
    def add_column(self, table: Union[str, Table], column: Column) -> List[GeometryColumn]:
        """
        Add a column to an existing table (ALTER TABLE ... ADD COLUMN).

        Args:
            table: Table or table name
            column: New column; an OMT-G domain type gets its validator attached

        Returns:
            Geometry columns recognized after the change
        """
        target = table if isinstance(table, Table) else self.table(table)
        with self.engine.begin() as connection:
            operations = Operations(MigrationContext.configure(connection))
            operations.add_column(
                target.name,
                Column(column.name, column.type, nullable=column.nullable),
                schema=target.schema,
            )
        target.append_column(column)
        return self.on_schema_change(
            SchemaChangeEvent.from_table(target, SchemaChangeKind.ALTER), target
        )

    @handle_db_errors
    @log_database_operation("drop_table")
    def drop_table(self, table: Union[str, Table]) -> List[str]:
        """
        Drop a table and tear down everything attached to it.

        Returns:
            Hook ids removed
        """
        target = table if isinstance(table, Table) else self.table(table)
        name = target.fullname
        target.drop(self.engine, checkfirst=True)

        removed = self.registry.detach_table(name)
        self.classifier.forget_table(name)
        self._tables.pop(name, None)
        with self.session_scope() as session:
            for record in session.scalars(
                select(GeometryColumnRecord).where(GeometryColumnRecord.table_name == name)
            ):
                session.delete(record)
            for record in session.scalars(
                select(TriggerAttachmentRecord).where(
                    TriggerAttachmentRecord.hook_id.in_(removed)
                )
            ):
                session.delete(record)
        return removed

    # ---- Relationships ----
    def add_relationship(self, spec: RelationshipSpec) -> Optional[AttachedTrigger]:
        """
        Attach a cross-table relationship rule.

        Args:
            spec: Relationship declaration

        Returns:
            The attached trigger
        """
        trigger = self.registry.attach_relationship(
            spec.kind,
            self.table(spec.table),
            spec.column,
            self.table(spec.secondary_table),
            spec.secondary_column,
            predicate=spec.predicate,
        )
        if trigger is not None:
            self._record_attachment(trigger)
        return trigger

    def attach_configured_relationships(self) -> List[AttachedTrigger]:
        """Attach every configured relationship whose tables are known."""
        attached = []
        for spec in self.config.relationships:
            if spec.table in self._tables and spec.secondary_table in self._tables:
                trigger = self.add_relationship(spec)
                if trigger is not None:
                    attached.append(trigger)
        return attached

    # ---- Catalog ----
    @handle_db_errors
    def _record_column(self, column: GeometryColumn) -> None:
        with self.session_scope() as session:
            exists = session.scalar(
                select(GeometryColumnRecord.id).where(
                    GeometryColumnRecord.table_name == column.table,
                    GeometryColumnRecord.column_name == column.column,
                )
            )
            if exists is None:
                session.add(
                    GeometryColumnRecord(
                        table_name=column.table,
                        column_name=column.column,
                        omtg_class=column.omtg_class.value,
                    )
                )

    @handle_db_errors
    def _record_attachment(self, trigger: AttachedTrigger) -> None:
        key = trigger.key
        with self.session_scope() as session:
            exists = session.scalar(
                select(TriggerAttachmentRecord.id).where(
                    TriggerAttachmentRecord.hook_id == key.hook_id
                )
            )
            if exists is None:
                session.add(
                    TriggerAttachmentRecord(
                        hook_id=key.hook_id,
                        table_name=key.table,
                        rule=key.kind.value,
                        column_name=key.column,
                        secondary_table=key.secondary_table,
                        secondary_column=key.secondary_column,
                        predicate=(
                            trigger.target.predicate.value
                            if key.kind is Relationship.CONTAINMENT
                            else None
                        ),
                    )
                )

    @handle_db_errors
    def geometry_columns(self) -> List[GeometryColumn]:
        """Geometry columns recorded in the catalog."""
        with self.session_scope() as session:
            records = session.scalars(
                select(GeometryColumnRecord).order_by(
                    GeometryColumnRecord.table_name, GeometryColumnRecord.column_name
                )
            ).all()
            return [
                GeometryColumn(r.table_name, r.column_name, OMTGClass(r.omtg_class))
                for r in records
            ]

    @handle_db_errors
    def attachment_records(self) -> List[TriggerAttachmentRecord]:
        """Attachments recorded in the catalog."""
        with self.session_scope() as session:
            return list(
                session.scalars(
                    select(TriggerAttachmentRecord).order_by(
                        TriggerAttachmentRecord.table_name, TriggerAttachmentRecord.hook_id
                    )
                ).all()
            )

    @handle_db_errors
    @log_database_operation("restore")
    def restore(self) -> List[AttachedTrigger]:
        """
        Re-attach every hook recorded in the catalog.

        Tables are reflected from the database. Idempotent: hooks already
        attached in this process are left as they are.

        Returns:
            Attached triggers after the restore
        """
        for column in self.geometry_columns():
            self.classifier.remember(column)

        restored = []
        for record in self.attachment_records():
            secondary = (
                self.table(record.secondary_table) if record.secondary_table else None
            )
            trigger = self.registry.ensure_attached(
                self.table(record.table_name),
                rule_kind(record.rule),
                record.column_name,
                secondary_table=secondary,
                secondary_column=record.secondary_column,
                predicate=SpatialPredicate(record.predicate or SpatialPredicate.CONTAINS.value),
            )
            if trigger is not None:
                safe_logger(self.logger).log_hook(
                    "restored", trigger.hook_id, {"table": record.table_name}
                )
                restored.append(trigger)
        return restored

    # ---- Validation ----
    def attachments(self, table: Optional[str] = None) -> List[AttachedTrigger]:
        """Triggers attached in this process."""
        return self.registry.attachments(table)

    @handle_db_errors
    @log_database_operation("validate")
    def validate(self, table: Optional[str] = None) -> ValidationReport:
        """
        Run attached validators against the committed data.

        Args:
            table: Restrict to hooks whose primary table matches

        Returns:
            ValidationReport (never raises on violations)
        """
        with self.engine.connect() as connection:
            return ValidationReport(self.registry.run(connection, table))
