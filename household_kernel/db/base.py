"""
Module: household_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent column
    types, and the OwnedBase mixin for per-user ownership and instant stamps.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - UUID primary keys stored as String(36) for portability.
    - Decimal maps to Numeric(38, 9).  NEVER use float for monetary amounts.
    - Instants are integer milliseconds since the epoch (BigInteger), stamped
      from the injected Clock by services, never by the database server.
    - Every owned row carries exactly one indexed user_id.
"""

from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - int maps to BigInteger (instants and minor units).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class OwnedBase(Base):
    """
    Abstract base for rows owned by a single user identity.

    Contract:
        Rows are only ever read or written on behalf of their owner.  The
        user id is an already-resolved identity string; authentication is
        not this layer's concern.

    Guarantees:
        - user_id is required and indexed.
        - created_at / updated_at are epoch-millisecond instants.  Legacy
          rows without stamps read as 0.
    """

    __abstract__ = True

    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


# Re-export UUID for convenience
UUID = PyUUID
