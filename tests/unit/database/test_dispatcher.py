"""Tests for the statement-level trigger dispatcher."""
import pytest
from unittest.mock import MagicMock
from sqlalchemy import Column, Integer, MetaData, Table, Text, create_engine, delete, insert, select, text, update
from sqlalchemy.pool import StaticPool

from omtg.core.exceptions import ConfigurationError, ConstraintViolation, PredicateProviderError
from omtg.database.dispatcher import StatementEvent, TriggerDispatcher, statement_event
from omtg.topology.classes import LockMode, StatementKind
from omtg.topology.validators import Violation


metadata = MetaData()
contours = Table(
    "contours",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("geom", Text),
)

VIOLATION = Violation("isoline", "OMT-G Isolines integrity constraint violation.", "detail")


def reject_bad_rows(connection, event):
    """Hook rejecting the statement once a row holds the geometry 'bad'."""
    geometries = connection.execute(select(contours.c.geom)).scalars().all()
    return [VIOLATION] if "bad" in geometries else []


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def dispatcher(engine):
    dispatcher = TriggerDispatcher()
    dispatcher.install(engine)
    yield dispatcher
    dispatcher.uninstall(engine)


class TestStatementEvent:
    """Tests for statement_event."""

    @pytest.mark.parametrize(
        "statement, kind",
        [
            (insert(contours), StatementKind.INSERT),
            (update(contours).values(geom="x"), StatementKind.UPDATE),
            (delete(contours), StatementKind.DELETE),
        ],
    )
    def test_dml(self, statement, kind):
        assert statement_event(statement) == StatementEvent("contours", kind)

    def test_select_and_text_ignored(self):
        assert statement_event(select(contours)) is None
        assert statement_event(text("DELETE FROM contours")) is None


class TestHookTable:
    """Tests for hook registration."""

    def test_duplicate_hook_id_rejected(self):
        dispatcher = TriggerDispatcher()
        assert dispatcher.register_statement_hook("contours", "h", MagicMock())
        assert not dispatcher.register_statement_hook("contours", "h", MagicMock())
        assert dispatcher.hook_count() == 1

    def test_hooks_filtered_by_kind(self):
        dispatcher = TriggerDispatcher()
        dispatcher.register_statement_hook(
            "districts", "h", MagicMock(), kinds=[StatementKind.INSERT]
        )
        assert dispatcher.hooks_for("districts", StatementKind.INSERT)
        assert dispatcher.hooks_for("districts", StatementKind.DELETE) == []

    def test_unregister_from_every_table(self):
        dispatcher = TriggerDispatcher()
        dispatcher.register_statement_hook("a", "h", MagicMock())
        dispatcher.register_statement_hook("b", "h", MagicMock())
        assert dispatcher.unregister_hook("h") == 2
        assert dispatcher.hook_count() == 0


class TestDispatch:
    """Hooks run once per statement on the executing connection."""

    def test_hook_runs_once_per_executemany(self, engine, dispatcher):
        callback = MagicMock(return_value=[])
        dispatcher.register_statement_hook("contours", "h", callback)

        with engine.begin() as connection:
            connection.execute(
                insert(contours), [{"id": 1, "geom": "a"}, {"id": 2, "geom": "b"}]
            )

        callback.assert_called_once()
        called_connection, event = callback.call_args[0]
        assert event == StatementEvent("contours", StatementKind.INSERT)

    def test_hook_sees_own_transaction(self, engine, dispatcher):
        seen = []

        def callback(connection, event):
            seen.append(connection.execute(select(contours.c.id)).scalars().all())
            return []

        dispatcher.register_statement_hook("contours", "h", callback)
        with engine.begin() as connection:
            connection.execute(insert(contours).values(id=7, geom="g"))
        assert seen == [[7]]

    def test_violation_aborts_statement(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", MagicMock(return_value=[VIOLATION]))

        with pytest.raises(ConstraintViolation) as exc_info:
            with engine.begin() as connection:
                connection.execute(insert(contours).values(id=1, geom="g"))

        assert exc_info.value.code == "IntegrityViolation"
        with engine.connect() as connection:
            assert connection.execute(select(contours)).all() == []

    def test_first_violation_stops_dispatch(self, engine, dispatcher):
        second = MagicMock(return_value=[])
        dispatcher.register_statement_hook("contours", "a", MagicMock(return_value=[VIOLATION]))
        dispatcher.register_statement_hook("contours", "b", second)

        with pytest.raises(ConstraintViolation):
            with engine.begin() as connection:
                connection.execute(insert(contours).values(id=1, geom="g"))
        second.assert_not_called()

    def test_collect_all_reports_every_violation(self, engine):
        dispatcher = TriggerDispatcher(collect_all=True)
        dispatcher.install(engine)
        dispatcher.register_statement_hook("contours", "a", MagicMock(return_value=[VIOLATION]))
        dispatcher.register_statement_hook("contours", "b", MagicMock(return_value=[VIOLATION]))

        with pytest.raises(ConstraintViolation) as exc_info:
            with engine.begin() as connection:
                connection.execute(insert(contours).values(id=1, geom="g"))
        dispatcher.uninstall(engine)
        assert len(exc_info.value.violations) == 2

    def test_predicate_error_propagates(self, engine, dispatcher):
        callback = MagicMock(side_effect=PredicateProviderError("load", "malformed"))
        dispatcher.register_statement_hook("contours", "h", callback)

        with pytest.raises(PredicateProviderError):
            with engine.begin() as connection:
                connection.execute(insert(contours).values(id=1, geom="g"))

    def test_notify_for_textual_sql(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", MagicMock(return_value=[VIOLATION]))

        with pytest.raises(ConstraintViolation):
            with engine.begin() as connection:
                connection.execute(text("INSERT INTO contours (id, geom) VALUES (1, 'g')"))
                dispatcher.notify(connection, "contours", "insert")

        with engine.connect() as connection:
            assert connection.execute(select(contours)).all() == []


class TestCommitGuard:
    """A connection holding a rejected statement cannot commit."""

    def test_swallowed_violation_blocks_commit(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", MagicMock(return_value=[VIOLATION]))

        connection = engine.connect()
        try:
            connection.begin()
            with pytest.raises(ConstraintViolation):
                connection.execute(insert(contours).values(id=1, geom="g"))
            assert dispatcher.has_pending_violation(connection)

            with pytest.raises(ConstraintViolation):
                connection.commit()
        finally:
            connection.close()

        with engine.connect() as check:
            assert check.execute(select(contours)).all() == []

    def test_rollback_clears_pending(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", MagicMock(return_value=[VIOLATION]))

        with engine.connect() as connection:
            connection.begin()
            with pytest.raises(ConstraintViolation):
                connection.execute(insert(contours).values(id=1, geom="g"))
            connection.rollback()
            assert not dispatcher.has_pending_violation(connection)

    def test_savepoint_rollback_discards_rejection(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", reject_bad_rows)

        with engine.connect() as connection:
            connection.begin()
            connection.execute(insert(contours).values(id=1, geom="a"))
            with pytest.raises(ConstraintViolation):
                with connection.begin_nested():
                    connection.execute(insert(contours).values(id=2, geom="bad"))
            assert not dispatcher.has_pending_violation(connection)

            connection.execute(insert(contours).values(id=3, geom="c"))
            connection.commit()

        with engine.connect() as check:
            assert check.execute(select(contours.c.id).order_by(contours.c.id)).scalars().all() == [1, 3]

    def test_released_savepoint_keeps_rejection(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", reject_bad_rows)

        with engine.connect() as connection:
            connection.begin()
            connection.execute(insert(contours).values(id=1, geom="a"))
            nested = connection.begin_nested()
            with pytest.raises(ConstraintViolation):
                connection.execute(insert(contours).values(id=2, geom="bad"))
            nested.commit()
            assert dispatcher.has_pending_violation(connection)

            with pytest.raises(ConstraintViolation):
                connection.commit()

        with engine.connect() as check:
            assert check.execute(select(contours)).all() == []

    def test_enclosing_savepoint_rollback_discards_released_rejection(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", reject_bad_rows)

        with engine.connect() as connection:
            connection.begin()
            connection.execute(insert(contours).values(id=1, geom="a"))
            outer = connection.begin_nested()
            inner = connection.begin_nested()
            with pytest.raises(ConstraintViolation):
                connection.execute(insert(contours).values(id=2, geom="bad"))
            inner.commit()
            assert dispatcher.has_pending_violation(connection)
            outer.rollback()
            assert not dispatcher.has_pending_violation(connection)
            connection.commit()

        with engine.connect() as check:
            assert check.execute(select(contours.c.id)).scalars().all() == [1]

    def test_later_savepoint_does_not_discard_rejection(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", MagicMock(return_value=[VIOLATION]))

        with engine.connect() as connection:
            connection.begin()
            with pytest.raises(ConstraintViolation):
                connection.execute(insert(contours).values(id=1, geom="g"))
            nested = connection.begin_nested()
            nested.rollback()
            assert dispatcher.has_pending_violation(connection)
            connection.rollback()


class TestDeferredHooks:
    """Hooks registered with at_commit run once, right before commit."""

    def test_deferred_hook_runs_at_commit(self, engine, dispatcher):
        callback = MagicMock(return_value=[])
        dispatcher.register_statement_hook("contours", "h", callback, at_commit=True)

        with engine.connect() as connection:
            connection.begin()
            connection.execute(insert(contours).values(id=1, geom="a"))
            connection.execute(insert(contours).values(id=2, geom="b"))
            callback.assert_not_called()
            assert dispatcher.deferred_hooks(connection) == ["h"]
            connection.commit()

        callback.assert_called_once()
        assert callback.call_args[0][1] is None

    def test_deferred_violation_refuses_commit(self, engine, dispatcher):
        dispatcher.register_statement_hook(
            "contours", "h", MagicMock(return_value=[VIOLATION]), at_commit=True
        )

        with engine.connect() as connection:
            connection.begin()
            connection.execute(insert(contours).values(id=1, geom="a"))
            with pytest.raises(ConstraintViolation):
                connection.commit()

        with engine.connect() as check:
            assert check.execute(select(contours)).all() == []

    def test_deferred_hook_sees_final_state(self, engine, dispatcher):
        dispatcher.register_statement_hook("contours", "h", reject_bad_rows, at_commit=True)

        with engine.begin() as connection:
            connection.execute(insert(contours).values(id=1, geom="bad"))
            connection.execute(update(contours).values(geom="fixed"))

        with engine.connect() as check:
            assert check.execute(select(contours.c.geom)).scalars().all() == ["fixed"]

    def test_rollback_clears_deferred_hooks(self, engine, dispatcher):
        callback = MagicMock(return_value=[])
        dispatcher.register_statement_hook("contours", "h", callback, at_commit=True)

        with engine.connect() as connection:
            connection.begin()
            connection.execute(insert(contours).values(id=1, geom="a"))
            connection.rollback()
            assert dispatcher.deferred_hooks(connection) == []

        callback.assert_not_called()

    def test_unfired_deferred_hook_does_not_run(self, engine, dispatcher):
        callback = MagicMock(return_value=[VIOLATION])
        dispatcher.register_statement_hook(
            "contours", "h", callback, kinds=[StatementKind.DELETE], at_commit=True
        )

        with engine.begin() as connection:
            connection.execute(insert(contours).values(id=1, geom="a"))
        callback.assert_not_called()

    def test_same_id_per_phase(self):
        dispatcher = TriggerDispatcher()
        assert dispatcher.register_statement_hook("contours", "h", MagicMock())
        assert dispatcher.register_statement_hook("contours", "h", MagicMock(), at_commit=True)
        assert dispatcher.hook_count() == 2
        assert dispatcher.unregister_hook("h") == 2


class TestPrepare:
    """Checks run before a governed statement touches any row."""

    def test_autocommit_connection_refused(self, engine, dispatcher):
        callback = MagicMock(return_value=[])
        dispatcher.register_statement_hook("contours", "h", callback)

        with engine.connect() as connection:
            connection.execution_options(isolation_level="AUTOCOMMIT")
            with pytest.raises(ConfigurationError, match="AUTOCOMMIT"):
                connection.execute(insert(contours).values(id=1, geom="g"))

        callback.assert_not_called()
        with engine.connect() as check:
            assert check.execute(select(contours)).all() == []

    def test_autocommit_allows_ungoverned_statements(self, engine, dispatcher):
        dispatcher.register_statement_hook(
            "contours", "h", MagicMock(return_value=[]), kinds=[StatementKind.INSERT]
        )

        with engine.connect() as connection:
            connection.execution_options(isolation_level="AUTOCOMMIT")
            connection.execute(delete(contours))

    def _postgres_connection(self):
        connection = MagicMock()
        connection.get_execution_options.return_value = {}
        connection.dialect.name = "postgresql"
        connection.dialect.isolation_level = None
        connection.dialect.identifier_preparer.quote = lambda name: f'"{name}"'
        return connection

    def test_exclusive_lock_taken_before_statement(self):
        dispatcher = TriggerDispatcher(lock_mode=LockMode.EXCLUSIVE)
        callback = MagicMock(return_value=[])
        dispatcher.register_statement_hook(
            "segments", "h", callback, governed_tables=["stops"]
        )
        connection = self._postgres_connection()

        statement = insert(Table("segments", MetaData(), Column("id", Integer)))
        dispatcher._before_execute(connection, statement, [], {}, {})

        locked = [call.args[0] for call in connection.exec_driver_sql.call_args_list]
        assert locked == [
            'LOCK TABLE "segments" IN SHARE ROW EXCLUSIVE MODE',
            'LOCK TABLE "stops" IN SHARE ROW EXCLUSIVE MODE',
        ]
        callback.assert_not_called()

    def test_no_lock_without_exclusive_mode(self):
        dispatcher = TriggerDispatcher()
        dispatcher.register_statement_hook("segments", "h", MagicMock(return_value=[]))
        connection = self._postgres_connection()

        dispatcher.prepare(connection, StatementEvent("segments", StatementKind.INSERT))
        connection.exec_driver_sql.assert_not_called()


class TestInstall:
    def test_install_is_idempotent(self, engine):
        dispatcher = TriggerDispatcher()
        callback = MagicMock(return_value=[])
        dispatcher.register_statement_hook("contours", "h", callback)
        dispatcher.install(engine)
        dispatcher.install(engine)

        with engine.begin() as connection:
            connection.execute(insert(contours).values(id=1, geom="g"))
        dispatcher.uninstall(engine)
        callback.assert_called_once()

    def test_uninstalled_dispatcher_is_silent(self, engine):
        dispatcher = TriggerDispatcher()
        callback = MagicMock(return_value=[VIOLATION])
        dispatcher.register_statement_hook("contours", "h", callback)
        dispatcher.install(engine)
        dispatcher.uninstall(engine)

        with engine.begin() as connection:
            connection.execute(insert(contours).values(id=1, geom="g"))
        callback.assert_not_called()
