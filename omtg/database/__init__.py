#!/usr/bin/env python3
"""
OMT-G Database Package
----------------------
Binds the topology validators to a SQLAlchemy engine.

This package provides:
- Core database operations and schema-change handling (manager)
- Column classification from declared domains (classifier)
- Validator attachment, exactly once per key (registry)
- Statement-level hook execution and commit guard (dispatcher)
- Domain column types (types)
- Catalog models for restoring attachments (models)
"""

from .manager import OMTGDatabase, ValidationReport
from omtg.core.exceptions import (
    ConstraintViolation,
    DatabaseError,
    PredicateProviderError,
)
from .classifier import GeometryColumn, SchemaChangeEvent, SchemaClassifier
from .dispatcher import StatementEvent, TriggerDispatcher
from .registry import AttachedTrigger, AttachmentKey, RuleRegistry
from .decorators import log_database_operation, handle_db_errors

__all__ = [
    # Main manager
    "OMTGDatabase",
    "ValidationReport",
    # Exceptions
    "ConstraintViolation",
    "DatabaseError",
    "PredicateProviderError",
    # Core modules
    "GeometryColumn",
    "SchemaChangeEvent",
    "SchemaClassifier",
    "StatementEvent",
    "TriggerDispatcher",
    "AttachedTrigger",
    "AttachmentKey",
    "RuleRegistry",
    # Decorators
    "log_database_operation",
    "handle_db_errors",
]
