#!/usr/bin/env python3
"""
Integration tests for concurrent writers on a governed table.

SQLite serializes writers: the second insert waits for the first
transaction to finish, then validates against the committed row. Two
mutually intersecting isolines inserted at the same time can therefore
never both commit.
"""
import threading

import pytest
from sqlalchemy import insert
from sqlalchemy.exc import OperationalError

from omtg.core.exceptions import ConstraintViolation, DatabaseError
from omtg.database.types import Isoline

from tests.helpers import count_rows, line


@pytest.mark.integration
def test_concurrent_intersecting_isolines(file_db, metadata, make_table):
    contours = make_table("contours", Isoline())
    file_db.create_tables(metadata)

    barrier = threading.Barrier(2)
    outcomes = {}

    def writer(row_id, geometry):
        barrier.wait()
        try:
            with file_db.transaction() as conn:
                conn.execute(insert(contours).values(id=row_id, geom=geometry))
            outcomes[row_id] = "committed"
        except (ConstraintViolation, OperationalError, DatabaseError) as e:
            outcomes[row_id] = type(e).__name__

    threads = [
        threading.Thread(target=writer, args=(1, line((0, 0), (2, 2)))),
        threading.Thread(target=writer, args=(2, line((0, 2), (2, 0)))),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == [1, 2]
    assert list(outcomes.values()).count("committed") == 1
    assert count_rows(file_db, contours) == 1
