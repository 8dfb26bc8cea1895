#!/usr/bin/env python3
"""
decorators.py
--------------------
Decorators shared by OMTGDatabase operations.

    log_database_operation  start/outcome records naming the target table
    handle_db_errors        SQLAlchemy errors surface as DatabaseError
"""
from functools import wraps
from time import perf_counter
from typing import Any, Callable, Dict, Optional, Sequence

from sqlalchemy import Table
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from omtg.core.exceptions import ConstraintViolation, DatabaseError
from omtg.core.logging_manager import safe_logger


def _target_table(args: Sequence[Any]) -> Optional[str]:
    """Table an operation works on, when its first argument names one."""
    if not args:
        return None
    first = args[0]
    if isinstance(first, Table):
        return first.fullname
    if isinstance(first, str):
        return first
    return None


def _outcome(result: Any) -> Dict[str, Any]:
    """Summarize an operation's result for the log."""
    failed = getattr(result, "failed_hooks", None)
    if failed is not None:
        return {"failed_hooks": failed, "violations": len(result.violations)}
    if isinstance(result, (list, tuple)):
        return {"count": len(result)}
    return {}


def log_database_operation(operation_name: str):
    """
    Log a guard operation with its target table, duration and outcome.

    The outcome records how many items came back (columns classified,
    hooks restored or removed) or, for validation reports, which hooks
    failed. A ConstraintViolation escaping the operation has already been
    logged by the dispatcher and is recorded here as a warning only.

    Args:
        operation_name: Name used in the log records
    """

    def decorator(function: Callable) -> Callable:
        @wraps(function)
        def wrapper(self, *args, **kwargs):
            log = safe_logger(getattr(self, "logger", None))
            context: Dict[str, Any] = {}
            table = _target_table(args)
            if table:
                context["table"] = table

            log.log_debug(f"{operation_name} started", context)
            started = perf_counter()
            try:
                result = function(self, *args, **kwargs)
            except ConstraintViolation as e:
                log.log_warning(
                    f"{operation_name} rejected",
                    {**context, "code": e.code, "rule": e.rule},
                )
                raise
            except Exception as e:
                log.log_error(
                    e,
                    {
                        **context,
                        "operation": operation_name,
                        "duration_ms": round((perf_counter() - started) * 1000, 3),
                    },
                )
                raise

            log.log_operation(
                operation_name,
                {
                    **context,
                    **_outcome(result),
                    "duration_ms": round((perf_counter() - started) * 1000, 3),
                },
            )
            return result

        return wrapper

    return decorator


def handle_db_errors(function: Callable) -> Callable:
    """
    Wrap SQLAlchemy errors raised by host or catalog access in DatabaseError.

    Guard errors (ConstraintViolation, PredicateProviderError,
    ConfigurationError) are not SQLAlchemy errors and propagate unchanged.
    """

    @wraps(function)
    def wrapper(*args, **kwargs):
        try:
            return function(*args, **kwargs)
        except IntegrityError as e:
            raise DatabaseError(f"Data integrity violation: {e.orig}") from e
        except OperationalError as e:
            raise DatabaseError(f"Database unavailable or locked: {e.orig}") from e
        except SQLAlchemyError as e:
            raise DatabaseError(f"Database operation failed: {e}") from e

    return wrapper
