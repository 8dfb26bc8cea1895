"""
Base Classes
------------

Foundational ORM classes for the guard's catalog.

Classes:
    - Base: Declarative base for the catalog models

Catalog models live in their own metadata so that ``create_all`` on a
user schema never touches them and vice versa.
"""
# --- Annotations ---
from __future__ import annotations

# --- Third party ---
from sqlalchemy.orm import DeclarativeBase


# --- Base ORM class ---
class Base(DeclarativeBase):
    """
    Base class for all catalog models.

    Serves as the declarative base and provides access to the metadata
    object for catalog table creation.
    """

    pass
