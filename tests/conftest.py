"""
conftest.py
-----------
Shared pytest fixtures for OMT-G guard tests.

Provides fixtures for:
- Guarded database setup and teardown (in-memory and file-backed)
- Table factories declaring one geometry column of a given class
"""
import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from sqlalchemy import Column, Integer, MetaData, Table


# ----- Path Fixtures -----

@pytest.fixture
def tmp_dir():
    """Create a temporary directory for test file operations."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ----- Database Fixtures -----

@pytest.fixture
def metadata():
    """Fresh MetaData for user tables."""
    return MetaData()


@pytest.fixture
def db():
    """
    Guarded in-memory database.

    The engine is disposed after the test.
    """
    from omtg.database.manager import OMTGDatabase

    database = OMTGDatabase("sqlite://")
    yield database
    database.dispose()


@pytest.fixture
def db_url(tmp_dir):
    """URL of a temporary SQLite file."""
    return f"sqlite:///{tmp_dir / 'guard.db'}"


@pytest.fixture
def file_db(db_url):
    """Guarded file-backed database."""
    from omtg.database.manager import OMTGDatabase

    database = OMTGDatabase(db_url)
    yield database
    database.dispose()


# ----- Table Factories -----

@pytest.fixture
def make_table(metadata):
    """
    Factory for tables with an integer key and one geometry column.

    Usage:
        contours = make_table("contours", Isoline())
    """

    def _make(name, geometry_type, column="geom"):
        return Table(
            name,
            metadata,
            Column("id", Integer, primary_key=True),
            Column(column, geometry_type),
        )

    return _make


@pytest.fixture
def governed(db, metadata, make_table):
    """
    Factory creating a governed table in the in-memory database.

    Usage:
        contours = governed("contours", Isoline())
    """

    def _create(name, geometry_type, column="geom"):
        table = make_table(name, geometry_type, column)
        db.create_tables(metadata, tables=[table])
        return table

    return _create
