"""
Module: rwsplit_kernel.db.base
Responsibility: Declarative base and mixins for records handled by accessors.
    Provides the table-name convention every record satisfies, the timestamp
    columns accessors stamp on save, and the soft-delete column accessors
    filter on.
Architecture position: Kernel > DB.  Lowest-level import target of the db
    package.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Every record advertises its storage name via ``table_name()``.
    - A record is soft-deletable iff its table has a ``deleted_at`` column.
    - datetime columns are timezone-aware (``DateTime(timezone=True)``).

Failure modes:
    - IntegrityError on NOT NULL timestamps if rows are inserted around the
      accessor without values (server defaults cover plain INSERTs).
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

SOFT_DELETE_COLUMN = "deleted_at"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"


class RecordBase(DeclarativeBase):
    """
    Declarative base for records.

    Contract:
        Subclasses set ``__tablename__``; ``table_name()`` returns it.  No
        primary key is imposed -- each record declares its own.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
    }

    @classmethod
    def table_name(cls) -> str:
        return cls.__tablename__


class TimestampMixin:
    """
    ``created_at`` / ``updated_at`` columns.

    Accessors stamp both from their clock on save; the server defaults only
    matter for rows written some other way.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class SoftDeleteMixin:
    """
    ``deleted_at`` column.

    NULL means visible.  Accessors hide rows with a non-NULL value unless
    ``IgnoreSoftDelete`` is given, and ``delete`` sets it instead of removing
    the row.
    """

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
