"""
Catalog Models
--------------

Models recording what the guard has classified and attached.

Models:
    - GeometryColumnRecord: A classified geometry column and its class
    - TriggerAttachmentRecord: A validator hook attached to a table

The catalog lets a new process re-attach exactly the hooks a previous
process created (see ``OMTGDatabase.restore``). Both tables are unique on
their natural keys, so recording is idempotent.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeometryColumnRecord(Base):
    """
    A geometry column classified under an OMT-G class.

    The class of a column never changes once recorded.

    Attributes:
        id: Primary key
        table_name: Owning table
        column_name: Column name
        omtg_class: Conceptual class value (e.g. 'isoline')
        created_at: When the column was first classified
    """

    __tablename__ = "omtg_geometry_columns"
    __table_args__ = (
        UniqueConstraint("table_name", "column_name", name="uq_omtg_geometry_column"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    column_name: Mapped[str] = mapped_column(String(255), nullable=False)
    omtg_class: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<GeometryColumnRecord({self.table_name}.{self.column_name}"
            f"={self.omtg_class})>"
        )


class TriggerAttachmentRecord(Base):
    """
    A validator hook attached to a table.

    Attributes:
        id: Primary key
        hook_id: Deterministic hook identifier (unique)
        table_name: Primary table
        rule: Rule name (class or relationship value)
        column_name: Primary geometry column
        secondary_table: Secondary table for cross-table rules
        secondary_column: Secondary geometry column
        predicate: Spatial predicate for containment rules
        created_at: When the hook was first attached
    """

    __tablename__ = "omtg_trigger_attachments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    hook_id: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    table_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    rule: Mapped[str] = mapped_column(String(50), nullable=False)
    column_name: Mapped[str] = mapped_column(String(255), nullable=False)
    secondary_table: Mapped[Optional[str]] = mapped_column(String(255))
    secondary_column: Mapped[Optional[str]] = mapped_column(String(255))
    predicate: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    @property
    def is_cross_table(self) -> bool:
        return self.secondary_table is not None

    def __repr__(self) -> str:
        return f"<TriggerAttachmentRecord({self.hook_id})>"
