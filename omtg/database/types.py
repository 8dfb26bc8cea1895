"""
Geometry Column Types
---------------------

SQLAlchemy column types that declare an OMT-G domain.

Each conceptual class has a ``TypeDecorator`` over ``Text`` storing WKT.
The declared domain tag (``ast_<class>``) travels with the column type as
``type.domain``; the schema classifier reads it when a table is created
or altered.

Types:
    - OMTGGeometry: generic domain type, accepts any tag
    - Polygon, Line, Point, Node, Isoline, PlanarSubdivision, TIN,
      Tesselation, Sample, Uniline, Biline: one per conceptual class

Usage:
    contours = Table(
        "contours", metadata,
        Column("id", Integer, primary_key=True),
        Column("geom", Isoline()),
    )
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from typing import Any, Dict, Optional, Type

# --- Third party ---
from shapely.geometry.base import BaseGeometry
from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator

# --- Local imports ---
from omtg.topology.classes import OMTGClass


class OMTGGeometry(TypeDecorator):
    """
    Geometry stored as WKT text under a declared OMT-G domain.

    Bind values may be WKT strings or Shapely geometries. Results are
    returned as WKT strings.

    Attributes:
        domain: Declared domain tag (e.g. 'ast_isoline')
    """

    impl = Text
    cache_ok = True

    omtg_class: Optional[OMTGClass] = None
    domain: Optional[str] = None

    def __init__(self, domain: Optional[str] = None) -> None:
        super().__init__()
        if domain is not None:
            self.domain = domain
        elif self.omtg_class is not None:
            self.domain = self.omtg_class.domain

    def process_bind_param(self, value: Any, dialect) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, BaseGeometry):
            return value.wkt
        return str(value)

    def process_result_value(self, value: Any, dialect) -> Optional[str]:
        return value

    def __repr__(self) -> str:
        return f"{type(self).__name__}(domain={self.domain!r})"


class Polygon(OMTGGeometry):
    omtg_class = OMTGClass.POLYGON
    cache_ok = True


class Line(OMTGGeometry):
    omtg_class = OMTGClass.LINE
    cache_ok = True


class Point(OMTGGeometry):
    omtg_class = OMTGClass.POINT
    cache_ok = True


class Node(OMTGGeometry):
    omtg_class = OMTGClass.NODE
    cache_ok = True


class Isoline(OMTGGeometry):
    omtg_class = OMTGClass.ISOLINE
    cache_ok = True


class PlanarSubdivision(OMTGGeometry):
    omtg_class = OMTGClass.PLANAR_SUBDIVISION
    cache_ok = True


class TIN(OMTGGeometry):
    omtg_class = OMTGClass.TIN
    cache_ok = True


class Tesselation(OMTGGeometry):
    omtg_class = OMTGClass.TESSELATION
    cache_ok = True


class Sample(OMTGGeometry):
    omtg_class = OMTGClass.SAMPLE
    cache_ok = True


class Uniline(OMTGGeometry):
    omtg_class = OMTGClass.UNILINE
    cache_ok = True


class Biline(OMTGGeometry):
    omtg_class = OMTGClass.BILINE
    cache_ok = True


DOMAIN_TYPES: Dict[OMTGClass, Type[OMTGGeometry]] = {
    type_class.omtg_class: type_class
    for type_class in (
        Polygon,
        Line,
        Point,
        Node,
        Isoline,
        PlanarSubdivision,
        TIN,
        Tesselation,
        Sample,
        Uniline,
        Biline,
    )
}


def domain_of(column_type: Any) -> Optional[str]:
    """Return the declared domain tag of a column type, if it has one."""
    return getattr(column_type, "domain", None)
