#!/usr/bin/env python3
"""
transportation.py
--------------------
Transportation system schema.

School districts (polygons) must each contain at least one bus stop, and
bus route segments (oriented arcs) form an arc-node network with the bus
stops as nodes. Both cross-table rules are declared in the accompanying
``omtg.yaml``.

Usage:
    omtgdb --config examples/omtg.yaml apply examples.transportation:metadata
"""
from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Time

from omtg.database.types import Node, Polygon, Uniline

metadata = MetaData()

bus_line = Table(
    "bus_line",
    metadata,
    Column("line_number", Integer, primary_key=True),
    Column("description", String(50)),
    Column("operator", String(20)),
)

school_district = Table(
    "school_district",
    metadata,
    Column("district_name", String(50), primary_key=True),
    Column("school_capacity", Integer),
    Column("geom", Polygon()),
)

bus_stop = Table(
    "bus_stop",
    metadata,
    Column("stop_id", Integer, primary_key=True),
    Column("shelter_type", String(50)),
    Column("geom", Node()),
)

# No primary key: rows are identified by their attribute values
bus_route_segment = Table(
    "bus_route_segment",
    metadata,
    Column("traverse_time", Time),
    Column("segment_number", Integer),
    Column("busline", Integer, ForeignKey("bus_line.line_number")),
    Column("geom", Uniline()),
)
