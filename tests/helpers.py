"""
helpers.py
----------
Geometry and row-count helpers shared by the test suite.
"""
from sqlalchemy import func, select


def square(x0, y0, x1, y1):
    """WKT of an axis-aligned rectangle."""
    return f"POLYGON (({x0} {y0}, {x1} {y0}, {x1} {y1}, {x0} {y1}, {x0} {y0}))"


def triangle(a, b, c):
    """WKT of a triangle from three (x, y) tuples."""
    points = [a, b, c, a]
    return "POLYGON ((" + ", ".join(f"{x} {y}" for x, y in points) + "))"


def line(*points):
    """WKT of a linestring through (x, y) tuples."""
    return "LINESTRING (" + ", ".join(f"{x} {y}" for x, y in points) + ")"


def point(x, y):
    """WKT of a point."""
    return f"POINT ({x} {y})"


def count_rows(database, table):
    """Count committed rows of a table."""
    with database.engine.connect() as connection:
        return connection.execute(select(func.count()).select_from(table)).scalar_one()
