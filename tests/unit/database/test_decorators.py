"""Tests for database decorators."""
import pytest
from unittest.mock import MagicMock

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from omtg.database.decorators import handle_db_errors, log_database_operation
from omtg.core.exceptions import ConstraintViolation, DatabaseError
from omtg.core.logging_manager import OMTGLogger
from omtg.database.manager import ValidationReport
from omtg.topology.validators import Violation


VIOLATION = Violation("isoline", "OMT-G Isolines integrity constraint violation.", "detail")


class Holder:
    """Minimal object exposing a logger, like OMTGDatabase."""

    def __init__(self, logger=None):
        self.logger = logger

    @log_database_operation("sample_operation")
    def succeed(self):
        return 42

    @log_database_operation("sample_operation")
    def fail(self):
        raise ValueError("invalid value")

    @log_database_operation("drop_table")
    def drop(self, table):
        return ["contours:isoline:geom", "contours:sample:geom"]

    @log_database_operation("validate")
    def validate(self, table=None):
        return ValidationReport({"contours:isoline:geom": [VIOLATION], "depths:isoline:geom": []})

    @log_database_operation("apply")
    def reject(self):
        raise ConstraintViolation([VIOLATION])


class TestLogDatabaseOperation:
    """Tests for log_database_operation."""

    def test_successful_operation(self):
        """Completion should be logged with duration."""
        mock_logger = MagicMock(spec=OMTGLogger)
        assert Holder(mock_logger).succeed() == 42

        mock_logger.log_debug.assert_called_once()
        call_args = mock_logger.log_operation.call_args
        assert call_args[0][0] == "sample_operation"
        assert isinstance(call_args[0][1]["duration_ms"], float)

    def test_without_logger(self):
        """Operations run without a logger."""
        assert Holder().succeed() == 42

    def test_failure_logged_and_reraised(self):
        mock_logger = MagicMock(spec=OMTGLogger)
        with pytest.raises(ValueError):
            Holder(mock_logger).fail()
        mock_logger.log_error.assert_called_once()
        mock_logger.log_operation.assert_not_called()

        context = mock_logger.log_error.call_args[0][1]
        assert context["operation"] == "sample_operation"

    def test_target_table_and_count_logged(self):
        mock_logger = MagicMock(spec=OMTGLogger)
        Holder(mock_logger).drop("contours")

        name, details = mock_logger.log_operation.call_args[0]
        assert name == "drop_table"
        assert details["table"] == "contours"
        assert details["count"] == 2

    def test_validation_outcome_logged(self):
        mock_logger = MagicMock(spec=OMTGLogger)
        Holder(mock_logger).validate()

        details = mock_logger.log_operation.call_args[0][1]
        assert details["failed_hooks"] == ["contours:isoline:geom"]
        assert details["violations"] == 1
        assert "table" not in details

    def test_rejection_logged_as_warning(self):
        mock_logger = MagicMock(spec=OMTGLogger)
        with pytest.raises(ConstraintViolation):
            Holder(mock_logger).reject()

        message, details = mock_logger.log_warning.call_args[0]
        assert message == "apply rejected"
        assert details == {"code": "IntegrityViolation", "rule": "isoline"}
        mock_logger.log_error.assert_not_called()


class TestHandleDbErrors:
    """Tests for handle_db_errors."""

    def test_integrity_error_raises_database_error(self):
        @handle_db_errors
        def operation():
            raise IntegrityError("statement", {}, Exception("duplicate"))

        with pytest.raises(DatabaseError, match="Data integrity violation"):
            operation()

    def test_sqlalchemy_error_raises_database_error(self):
        @handle_db_errors
        def operation():
            raise SQLAlchemyError("connection failed")

        with pytest.raises(DatabaseError, match="Database operation failed"):
            operation()

    def test_constraint_violation_propagates(self):
        """Guard errors are not wrapped."""
        violation = ConstraintViolation([Violation("sample", "m.", "d")])

        @handle_db_errors
        def operation():
            raise violation

        with pytest.raises(ConstraintViolation) as exc_info:
            operation()
        assert exc_info.value is violation
