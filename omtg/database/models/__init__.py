"""
Database Models Package
------------------------

SQLAlchemy ORM models for the guard's catalog.

- base: Declarative base
- catalog: Classified geometry columns and attached hooks

Usage:
    from omtg.database.models import Base, GeometryColumnRecord
"""
from .base import Base
from .catalog import GeometryColumnRecord, TriggerAttachmentRecord

__all__ = [
    "Base",
    "GeometryColumnRecord",
    "TriggerAttachmentRecord",
]
