#!/usr/bin/env python3
"""
dispatcher.py
--------------------
Statement-level trigger dispatcher.

The dispatcher holds the attachment table (table -> hooks) and runs every
hook attached to a table each time a mutating statement on that table
completes. It is installed on a SQLAlchemy engine and listens to:

    before_execute     Governed DML is refused on AUTOCOMMIT connections
                       and, in exclusive mode, governed tables are locked
                       before the statement touches any row.
    after_execute      Core/ORM Insert, Update and Delete constructs produce
                       one StatementEvent per executed statement
                       (executemany included), never one per row.
    commit             Deferred hooks run. A connection holding a rejected
                       statement, or failing a deferred hook, cannot commit:
                       its DBAPI transaction is rolled back and the error
                       re-raised.
    rollback           Clears the pending rejection and the deferred hooks.
    savepoint events   Rolling back the savepoint (or an enclosing one) that
                       was active when a statement was rejected clears the
                       rejection; releasing it hands the rejection to the
                       enclosing savepoint.

Per statement: Proposed -> (run hooks) -> Committed | Aborted(detail).
Hooks run synchronously on the connection that executed the statement, so
they see exactly that transaction's view. The first violation aborts the
statement with ConstraintViolation (every violation when ``collect_all``).

Deferred hooks (``at_commit=True``) are queued by the statements that fire
them and run once, right before the transaction commits, against the final
state of the transaction.

Concurrency:
    With ``LockMode.EXCLUSIVE`` every table a hook reads is locked in
    SHARE ROW EXCLUSIVE mode before the governed statement runs
    (PostgreSQL). Concurrent writers then queue on the lock instead of
    deadlocking on each other's row locks and, under READ COMMITTED, each
    validates against the rows the previous one committed. SQLite
    serializes writers on its own and needs no lock.

Textual SQL cannot be attributed to a table; report it with ``notify``.

Usage:
    dispatcher = TriggerDispatcher(logger)
    dispatcher.install(engine)
    dispatcher.register_statement_hook("contours", hook_id, callback)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)
from weakref import WeakKeyDictionary

# --- Third party imports ---
from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql.dml import Delete, Insert, Update

# --- Local imports ---
from omtg.core.exceptions import (
    ConfigurationError,
    ConstraintViolation,
    OMTGError,
    PredicateProviderError,
)
from omtg.core.logging_manager import OMTGLogger, safe_logger
from omtg.topology.classes import ALL_STATEMENTS, LockMode, StatementKind
from omtg.topology.validators import Violation


@dataclass(frozen=True)
class StatementEvent:
    """
    A mutating statement completed on a table.

    Attributes:
        table: Affected table name
        kind: insert, update or delete
    """

    table: str
    kind: StatementKind


HookCallback = Callable[[Connection, Optional[StatementEvent]], List[Violation]]


@dataclass(frozen=True)
class StatementHook:
    """
    A callback attached to a table.

    Attributes:
        hook_id: Identifier, unique per table and phase
        table: Table whose statements fire the hook
        callback: Validator entry point (statement is None at commit)
        kinds: Statement kinds that fire the hook
        governed_tables: Tables the callback reads (locked in exclusive mode)
        at_commit: Run once before commit instead of after each statement
    """

    hook_id: str
    table: str
    callback: HookCallback
    kinds: FrozenSet[StatementKind] = ALL_STATEMENTS
    governed_tables: Tuple[str, ...] = ()
    at_commit: bool = False


@dataclass(frozen=True)
class _Rejection:
    """A rejected statement and the savepoint that was active when it ran."""

    error: OMTGError
    savepoint: Optional[str] = None


_DML_KINDS = (
    (Insert, StatementKind.INSERT),
    (Update, StatementKind.UPDATE),
    (Delete, StatementKind.DELETE),
)


def statement_event(clauseelement: Any) -> Optional[StatementEvent]:
    """
    Derive the statement event of an executed construct.

    Args:
        clauseelement: Object passed to Connection.execute

    Returns:
        StatementEvent for Insert/Update/Delete constructs, else None
    """
    for dml_class, kind in _DML_KINDS:
        if isinstance(clauseelement, dml_class):
            table = clauseelement.table
            name = getattr(table, "fullname", None) or getattr(table, "name", None)
            if not name:
                return None
            return StatementEvent(table=name, kind=kind)
    return None


def is_autocommit(connection: Connection) -> bool:
    """
    Whether statements on a connection commit as soon as they run.

    Checks the connection's own execution options first, then the
    engine-wide isolation level given to ``create_engine``.
    """
    level = connection.get_execution_options().get("isolation_level")
    if level is None:
        level = getattr(connection.dialect, "isolation_level", None)
    return str(level or "").upper() == "AUTOCOMMIT"


class TriggerDispatcher:
    """
    Runs attached hooks after every mutating statement.

    Attributes:
        lock_mode: Lock taken on governed tables before governed statements
        collect_all: Run every hook and report every violation
    """

    def __init__(
        self,
        logger: Optional[OMTGLogger] = None,
        lock_mode: LockMode = LockMode.NONE,
        collect_all: bool = False,
    ) -> None:
        self.logger = logger
        self.lock_mode = lock_mode
        self.collect_all = collect_all
        self._hooks: Dict[str, Dict[str, StatementHook]] = {}
        self._commit_hooks: Dict[str, Dict[str, StatementHook]] = {}
        self._pending: "WeakKeyDictionary[Connection, _Rejection]" = WeakKeyDictionary()
        self._deferred: "WeakKeyDictionary[Connection, Dict[str, StatementHook]]" = (
            WeakKeyDictionary()
        )
        self._savepoints: "WeakKeyDictionary[Connection, List[str]]" = WeakKeyDictionary()
        self._engines: List[Engine] = []

    # ---- Hook table ----
    def register_statement_hook(
        self,
        table: str,
        hook_id: str,
        callback: HookCallback,
        kinds: Iterable[Union[StatementKind, str]] = ALL_STATEMENTS,
        governed_tables: Iterable[str] = (),
        at_commit: bool = False,
    ) -> bool:
        """
        Attach a callback to a table's statements.

        Args:
            table: Table whose statements fire the hook
            hook_id: Identifier, unique per table and phase
            callback: Called with (connection, StatementEvent); returns violations
            kinds: Statement kinds that fire the hook
            governed_tables: Tables the callback reads
            at_commit: Queue the hook and run it once before commit

        Returns:
            True if registered, False if the table already had this hook id
        """
        registry = self._commit_hooks if at_commit else self._hooks
        table_hooks = registry.setdefault(table, {})
        if hook_id in table_hooks:
            return False

        governed = tuple(dict.fromkeys([table, *governed_tables]))
        table_hooks[hook_id] = StatementHook(
            hook_id=hook_id,
            table=table,
            callback=callback,
            kinds=frozenset(StatementKind(kind) for kind in kinds),
            governed_tables=governed,
            at_commit=at_commit,
        )
        safe_logger(self.logger).log_debug(
            "Statement hook registered",
            {"table": table, "hook_id": hook_id, "at_commit": at_commit},
        )
        return True

    def unregister_hook(self, hook_id: str) -> int:
        """
        Remove a hook from every table it is attached to.

        Returns:
            Number of table registrations removed
        """
        removed = 0
        for registry in (self._hooks, self._commit_hooks):
            for table in list(registry):
                if registry[table].pop(hook_id, None) is not None:
                    removed += 1
                if not registry[table]:
                    del registry[table]
        return removed

    def hooks_for(
        self,
        table: str,
        kind: Optional[StatementKind] = None,
        at_commit: bool = False,
    ) -> List[StatementHook]:
        """Hooks attached to a table, optionally only those a kind fires."""
        registry = self._commit_hooks if at_commit else self._hooks
        hooks = list(registry.get(table, {}).values())
        if kind is not None:
            hooks = [hook for hook in hooks if kind in hook.kinds]
        return hooks

    def hook_count(self) -> int:
        return sum(
            len(hooks)
            for registry in (self._hooks, self._commit_hooks)
            for hooks in registry.values()
        )

    def is_governed(self, statement: StatementEvent) -> bool:
        """Whether any hook, immediate or deferred, fires on a statement."""
        return bool(
            self.hooks_for(statement.table, statement.kind)
            or self.hooks_for(statement.table, statement.kind, at_commit=True)
        )

    # ---- Engine binding ----
    def _listeners(self) -> List[Tuple[str, Callable]]:
        return [
            ("before_execute", self._before_execute),
            ("after_execute", self._after_execute),
            ("commit", self._guard_commit),
            ("rollback", self._clear_pending),
            ("savepoint", self._on_savepoint),
            ("rollback_savepoint", self._on_rollback_savepoint),
            ("release_savepoint", self._on_release_savepoint),
        ]

    def install(self, engine: Engine) -> None:
        """Listen to an engine's statement and transaction events."""
        if engine in self._engines:
            return
        for name, listener in self._listeners():
            event.listen(engine, name, listener)
        self._engines.append(engine)

    def uninstall(self, engine: Engine) -> None:
        """Stop listening to an engine."""
        if engine not in self._engines:
            return
        for name, listener in self._listeners():
            event.remove(engine, name, listener)
        self._engines.remove(engine)

    def _before_execute(
        self,
        connection: Connection,
        clauseelement: Any,
        multiparams: Any,
        params: Any,
        execution_options: Any,
    ) -> None:
        statement = statement_event(clauseelement)
        if statement is not None and self.is_governed(statement):
            self.prepare(connection, statement)

    def _after_execute(
        self,
        connection: Connection,
        clauseelement: Any,
        multiparams: Any,
        params: Any,
        execution_options: Any,
        result: Any,
    ) -> None:
        statement = statement_event(clauseelement)
        if statement is not None:
            self.dispatch(connection, statement)

    # ---- Transaction state ----
    def _guard_commit(self, connection: Connection) -> None:
        rejection = self._pending.pop(connection, None)
        deferred = self._deferred.pop(connection, {})
        self._savepoints.pop(connection, None)

        # SQLAlchemy does not roll back after a refused commit; the
        # DBAPI transaction must not reach the pool with rejected rows.
        if rejection is not None:
            error: Optional[OMTGError] = rejection.error
        else:
            try:
                error = self._run_deferred(connection, list(deferred.values()))
            except Exception:
                connection.dialect.do_rollback(connection.connection)
                raise
        if error is None:
            return

        connection.dialect.do_rollback(connection.connection)
        safe_logger(self.logger).log_warning(
            "Commit refused", {"error": type(error).__name__, "detail": str(error)}
        )
        raise error

    def _clear_pending(self, connection: Connection) -> None:
        self._pending.pop(connection, None)
        self._deferred.pop(connection, None)
        self._savepoints.pop(connection, None)

    def _on_savepoint(self, connection: Connection, name: str) -> None:
        self._savepoints.setdefault(connection, []).append(name)

    def _savepoint_index(self, connection: Connection, name: str) -> Optional[int]:
        stack = self._savepoints.get(connection, [])
        return stack.index(name) if name in stack else None

    def _on_rollback_savepoint(
        self, connection: Connection, name: str, context: Any
    ) -> None:
        index = self._savepoint_index(connection, name)
        if index is None:
            return
        stack = self._savepoints[connection]
        rejection = self._pending.get(connection)
        if rejection is not None and rejection.savepoint in stack[index:]:
            del self._pending[connection]
            safe_logger(self.logger).log_debug(
                "Rejected statement discarded with its savepoint", {"savepoint": name}
            )
        del stack[index:]

    def _on_release_savepoint(
        self, connection: Connection, name: str, context: Any
    ) -> None:
        index = self._savepoint_index(connection, name)
        if index is None:
            return
        stack = self._savepoints[connection]
        rejection = self._pending.get(connection)
        if rejection is not None and rejection.savepoint in stack[index:]:
            enclosing = stack[index - 1] if index else None
            self._pending[connection] = _Rejection(rejection.error, enclosing)
        del stack[index:]

    def _reject(self, connection: Connection, error: OMTGError) -> None:
        stack = self._savepoints.get(connection)
        self._pending[connection] = _Rejection(error, stack[-1] if stack else None)

    def has_pending_violation(self, connection: Connection) -> bool:
        return connection in self._pending

    def deferred_hooks(self, connection: Connection) -> List[str]:
        """Ids of the deferred hooks queued on a connection."""
        return list(self._deferred.get(connection, {}))

    # ---- Dispatch ----
    def prepare(self, connection: Connection, statement: StatementEvent) -> None:
        """
        Get a connection ready for a governed statement.

        Raises:
            ConfigurationError: If the connection is in AUTOCOMMIT mode
        """
        if is_autocommit(connection):
            error = ConfigurationError(
                f"Refusing {statement.kind.value} on governed table "
                f"'{statement.table}': AUTOCOMMIT connections cannot roll back "
                f"a rejected statement"
            )
            safe_logger(self.logger).log_warning(
                "Governed statement on AUTOCOMMIT connection",
                {"table": statement.table, "statement": statement.kind.value},
            )
            raise error

        if self.lock_mode is LockMode.EXCLUSIVE:
            hooks = self.hooks_for(statement.table, statement.kind) + self.hooks_for(
                statement.table, statement.kind, at_commit=True
            )
            self._lock(connection, hooks)

    def notify(
        self,
        connection: Connection,
        table: str,
        kind: Union[StatementKind, str],
    ) -> None:
        """
        Report a statement the engine events cannot attribute (textual SQL).

        The statement has already run, so exclusive locks are taken only
        now; in exclusive mode, lock the governed tables before running
        textual DML.
        """
        statement = StatementEvent(table=table, kind=StatementKind(kind))
        if self.is_governed(statement):
            self.prepare(connection, statement)
        self.dispatch(connection, statement)

    def dispatch(self, connection: Connection, statement: StatementEvent) -> None:
        """
        Run every hook a statement fires and queue its deferred hooks.

        Args:
            connection: Connection that executed the statement
            statement: Affected table and statement kind

        Raises:
            ConstraintViolation: If any hook reports a violation
            PredicateProviderError: If geometry could not be evaluated
        """
        deferred = self.hooks_for(statement.table, statement.kind, at_commit=True)
        if deferred:
            queue = self._deferred.setdefault(connection, {})
            for hook in deferred:
                queue.setdefault(hook.hook_id, hook)

        hooks = self.hooks_for(statement.table, statement.kind)
        if not hooks:
            return

        error = self._run_hooks(connection, hooks, statement)
        if error is not None:
            self._reject(connection, error)
            raise error

        safe_logger(self.logger).log_debug(
            "Statement validated",
            {
                "table": statement.table,
                "statement": statement.kind.value,
                "hooks": [hook.hook_id for hook in hooks],
            },
        )

    def _run_deferred(
        self, connection: Connection, hooks: List[StatementHook]
    ) -> Optional[OMTGError]:
        if not hooks:
            return None
        error = self._run_hooks(connection, hooks, None)
        if error is None:
            safe_logger(self.logger).log_debug(
                "Deferred hooks passed", {"hooks": [hook.hook_id for hook in hooks]}
            )
        return error

    def _run_hooks(
        self,
        connection: Connection,
        hooks: List[StatementHook],
        statement: Optional[StatementEvent],
    ) -> Optional[OMTGError]:
        """Run hooks in order; return the error to raise, if any."""
        log = safe_logger(self.logger)
        table = statement.table if statement is not None else "commit"
        kind = statement.kind.value if statement is not None else "commit"

        violations: List[Violation] = []
        for hook in hooks:
            try:
                found = hook.callback(connection, statement)
            except PredicateProviderError as e:
                log.log_predicate_failure(
                    e, {"table": hook.table, "statement": kind, "hook_id": hook.hook_id}
                )
                return e
            if found:
                violations.extend(found)
                if not self.collect_all:
                    break

        if not violations:
            return None
        error = ConstraintViolation(violations)
        log.log_violation(error, table, kind, [hook.hook_id for hook in hooks])
        return error

    def _lock(self, connection: Connection, hooks: List[StatementHook]) -> None:
        if connection.dialect.name != "postgresql":
            return
        preparer = connection.dialect.identifier_preparer
        tables = sorted({name for hook in hooks for name in hook.governed_tables})
        for name in tables:
            quoted = ".".join(preparer.quote(part) for part in name.split("."))
            connection.exec_driver_sql(
                f"LOCK TABLE {quoted} IN SHARE ROW EXCLUSIVE MODE"
            )
