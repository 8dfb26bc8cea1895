"""
OMT-G Integrity Guard
=====================

Topological integrity constraints for OMT-G spatial schemas.

Geometry columns declare their conceptual class through their domain
(``ast_isoline``, ``ast_planarsubdivision``, ...). When a table is created
or altered the guard classifies its columns and attaches the class's
validator to the table, once. From then on every insert, update or delete
on a governed table is checked before the statement returns, and a
statement that breaks the invariant aborts its transaction.

Main Components:
    - topology: Conceptual classes, geometry predicates and validators
    - database: Engine binding, classifier, registry, catalog and CLI
    - core: Logging, exceptions, configuration and paths

Primary Interfaces:
    - omtg.database.manager.OMTGDatabase: Main database interface
    - omtg.database.cli: ``omtgdb`` command line

Example Usage:
    >>> from omtg.database import OMTGDatabase
    >>> from omtg.database.types import Isoline
    >>> contours = Table("contours", metadata, Column("id", Integer, primary_key=True),
    ...                  Column("geom", Isoline()))
    >>> db = OMTGDatabase("sqlite:///contours.db")
    >>> db.create_tables(metadata)
"""

__version__ = "1.0.0"
