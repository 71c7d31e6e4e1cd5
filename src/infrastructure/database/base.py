"""SQLAlchemy declarative base and common record fields.

Every record managed by a collection derives from ``BaseModel``, which
provides:
- **UUID identity**: ``id`` primary key, the sole basis for existence checks,
  identity-directed updates and deletes
- **Timestamps**: timezone-aware ``created_at`` and ``updated_at``; list
  queries order by ``updated_at`` and single-result finds by ``created_at``
- **Identity accessors**: ``get_identity`` / ``set_identity`` satisfy the
  ``Identifiable`` protocol used by the collection manager
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, MetaData, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.infrastructure.constants import NAMING_CONVENTION


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base with constraint naming conventions."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class BaseModel(Base):
    """Abstract base model with identity and timestamps.

    The identity is assigned by the collection manager on create when it is
    unset (``None`` or the nil UUID) and never changes afterwards.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        doc="Record identity (UUID)",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        doc="Timestamp when the record was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
        doc="Timestamp when the record was last updated (UTC)",
    )

    def get_identity(self) -> uuid.UUID | None:
        """Return the record identity, ``None`` when not yet assigned."""
        return self.__dict__.get("id")

    def set_identity(self, identity: uuid.UUID) -> None:
        """Assign the record identity."""
        self.id = identity

    def __repr__(self) -> str:
        """Return a string showing the model class name and identity."""
        return f"<{self.__class__.__name__}(id={self.get_identity()})>"
