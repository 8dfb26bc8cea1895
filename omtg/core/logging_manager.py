#!/usr/bin/env python3
"""
logging_manager.py
--------------------
Logging for the OMT-G integrity guard.

Every component (database manager, dispatcher, registry, classifier, CLI)
takes an optional ``OMTGLogger``. Records are plain lines followed by a
JSON context so log files can be grepped by hook id or table:

    OPERATION create_tables {"duration_ms": 4.1, "table": "contours"}
    HOOK attached contours:isoline:geom {"rule": "isoline", "table": "contours"}
    VIOLATION IntegrityViolation contours/insert {"hooks": [...], "violations": [...]}
    PREDICATE contains failed {"hook_id": "...", "reason": "..."}

Files:
    <component>.log   every record (DEBUG and above)
    errors.log        errors with context and traceback
Warnings and above are echoed on the console.

Components without a logger use ``safe_logger(None)``, a shared
``NullLogger`` that drops everything.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

# --- Third party imports ---
import click

# --- Local imports ---
from omtg.core.exceptions import ConstraintViolation, PredicateProviderError


Context = Optional[Dict[str, Any]]

# Hook events that only matter when tracing attachment order
_QUIET_HOOK_ACTIONS = {"duplicate", "skipped"}


def format_context(details: Context) -> str:
    """Render a context dictionary as sorted, single-line JSON."""
    if not details:
        return ""
    return json.dumps(details, default=str, sort_keys=True, ensure_ascii=False)


def violation_context(error: ConstraintViolation) -> list:
    """One JSON-ready record per violation carried by the error."""
    return [
        {
            "rule": violation.rule,
            "detail": violation.detail,
            "rows": [list(row) for row in violation.rows],
        }
        for violation in error.violations
    ]


class OMTGLogger:
    """
    Rotating file logger shared by the guard's components.

    Attributes:
        log_dir: Directory for log files
        component_name: Component using this logger ('database', 'cli', ...)
        main_logger: Logger writing <component>.log and the console
        error_logger: Logger writing errors.log
    """

    def __init__(
        self,
        log_dir: Path,
        component_name: str = "omtg",
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ) -> None:
        """
        Initialize the logging system.

        Args:
            log_dir: Directory for log files (created if missing)
            component_name: Name for the component logger
            max_bytes: Maximum log file size before rotation (default: 10MB)
            backup_count: Number of rotated files to keep (default: 5)
        """
        self.log_dir = Path(log_dir)
        self.component_name = component_name
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self._setup_loggers()

    def _setup_loggers(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.main_logger = logging.getLogger(f"omtg.{self.component_name}")
        self.main_logger.setLevel(logging.DEBUG)
        self.main_logger.propagate = False
        # Only this component's handlers are replaced
        self.main_logger.handlers = []

        self.error_logger = logging.getLogger(f"omtg.{self.component_name}.errors")
        self.error_logger.setLevel(logging.ERROR)
        self.error_logger.propagate = False
        self.error_logger.handlers = []

        self.main_logger.addHandler(
            self._file_handler(self.log_dir / f"{self.component_name}.log", logging.DEBUG)
        )
        self.error_logger.addHandler(
            self._file_handler(self.log_dir / "errors.log", logging.ERROR)
        )

        console = logging.StreamHandler()
        console.setLevel(logging.WARNING)
        console.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(message)s", datefmt="%H:%M:%S")
        )
        self.main_logger.addHandler(console)

    def _file_handler(self, file_path: Path, level: int) -> RotatingFileHandler:
        handler = RotatingFileHandler(
            file_path,
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        return handler

    def _emit(self, level: int, headline: str, details: Context = None) -> None:
        context = format_context(details)
        self.main_logger.log(level, f"{headline} {context}" if context else headline)

    # ---- Generic records ----
    def log_operation(self, operation: str, details: Context = None) -> None:
        """Log a completed guard operation (create_tables, restore, ...)."""
        self._emit(logging.INFO, f"OPERATION {operation}", details)

    def log_debug(self, message: str, details: Context = None) -> None:
        self._emit(logging.DEBUG, message, details)

    def log_warning(self, message: str, details: Context = None) -> None:
        self._emit(logging.WARNING, message, details)

    def log_error(self, error: Exception, context: Context = None) -> None:
        """
        Log an error with its context and the active traceback.

        Args:
            error: Exception that occurred
            context: Where it happened (operation, table, hook id, ...)
        """
        self.error_logger.error(f"{type(error).__name__}: {error}")
        if context:
            self.error_logger.error(
                "Context: " + ", ".join(f"{k}={v}" for k, v in context.items())
            )
        self.error_logger.error(f"Traceback:\n{traceback.format_exc()}")

    # ---- Guard records ----
    def log_hook(self, action: str, hook_id: str, details: Context = None) -> None:
        """
        Log a hook lifecycle event.

        Args:
            action: attached, restored, detached, duplicate or skipped
            hook_id: Hook identifier
            details: Table, rule and columns of the attachment

        Duplicates and skips are logged at DEBUG, everything else at INFO.
        """
        level = logging.DEBUG if action in _QUIET_HOOK_ACTIONS else logging.INFO
        self._emit(level, f"HOOK {action} {hook_id}", details)

    def log_violation(
        self,
        error: ConstraintViolation,
        table: str,
        statement: str,
        hook_ids: Sequence[str] = (),
    ) -> None:
        """
        Log a rejected statement or refused commit.

        Args:
            error: The violation raised to the caller
            table: Table whose statement was rejected ('commit' for deferred checks)
            statement: insert, update, delete or commit
            hook_ids: Hooks that ran
        """
        self._emit(
            logging.WARNING,
            f"VIOLATION {error.code} {table}/{statement}",
            {"hooks": list(hook_ids), "violations": violation_context(error)},
        )

    def log_predicate_failure(
        self, error: PredicateProviderError, context: Context = None
    ) -> None:
        """Log a geometry the predicate engine could not evaluate."""
        details = {"reason": error.reason, **(context or {})}
        self._emit(logging.ERROR, f"PREDICATE {error.predicate} failed", details)
        self.log_error(error, details)

    def log_cli_error(
        self,
        error: Exception,
        context: Context = None,
        show_traceback: bool = False,
    ) -> str:
        """
        Log an error raised by a CLI command and format it for the terminal.

        Returns:
            One-line message, plus the traceback when requested

        Examples:
            >>> logger.log_cli_error(DatabaseError("Connection failed"))
            '❌ DatabaseError: Connection failed'
        """
        self.log_error(error, context or {"source": "cli"})
        message = f"❌ {type(error).__name__}: {error}"
        if show_traceback:
            return f"{message}\n\n{traceback.format_exc()}"
        return message


def handle_cli_error(
    ctx: "click.Context",
    error: Exception,
    operation: str,
    additional_context: Context = None,
    exit_code: int = 1,
) -> None:
    """
    Report a failed ``omtgdb`` command and exit.

    Args:
        ctx: Click context carrying ``logger`` and ``verbose``
        error: Exception that occurred
        operation: Command name ('apply', 'validate', ...)
        additional_context: Extra context (target module, table, ...)
        exit_code: Process exit code (default: 1)
    """
    logger: Optional[OMTGLogger] = ctx.obj.get("logger")
    verbose: bool = ctx.obj.get("verbose", False)

    context = {"operation": operation, **(additional_context or {})}
    message = safe_logger(logger).log_cli_error(error, context, show_traceback=verbose)

    click.echo(message, err=True)
    sys.exit(exit_code)


class NullLogger:
    """Logger with the OMTGLogger interface that records nothing."""

    def log_operation(self, operation: str, details: Context = None) -> None:
        pass

    def log_debug(self, message: str, details: Context = None) -> None:
        pass

    def log_warning(self, message: str, details: Context = None) -> None:
        pass

    def log_error(self, error: Exception, context: Context = None) -> None:
        pass

    def log_hook(self, action: str, hook_id: str, details: Context = None) -> None:
        pass

    def log_violation(
        self,
        error: ConstraintViolation,
        table: str,
        statement: str,
        hook_ids: Sequence[str] = (),
    ) -> None:
        pass

    def log_predicate_failure(
        self, error: PredicateProviderError, context: Context = None
    ) -> None:
        pass

    def log_cli_error(
        self,
        error: Exception,
        context: Context = None,
        show_traceback: bool = False,
    ) -> str:
        return f"❌ {type(error).__name__}: {error}"


_null_logger = NullLogger()


def safe_logger(logger: Optional[OMTGLogger]) -> OMTGLogger:
    """Return the logger, or the shared NullLogger when it is None."""
    return logger if logger is not None else _null_logger  # type: ignore[return-value]
