"""SQLAlchemy database models."""

import enum
from datetime import date, datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys.

    Returns:
        str: UUID as 36-character string.
    """
    return str(uuid4())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TreeStatus(str, enum.Enum):
    """Active or inactive status of trees, flowers and fruits."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Tree(Base):
    """Jackfruit tree registered in the field.

    Attributes:
        id: Primary key UUID, generated on the device.
        description: Free-text description (e.g., "Mango #1").
        type: Variety or type label.
        latitude: GPS latitude.
        longitude: GPS longitude.
        status: Active or inactive.
        image_path: Local file path or remote URL of the tree photo.
        is_synced: Whether the remote copy matches the local row.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "trees"
    __table_args__ = (
        Index("idx_trees_status", "status"),
        Index("idx_trees_synced", "is_synced"),
        Index("idx_trees_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[TreeStatus] = mapped_column(
        Enum(TreeStatus, values_callable=lambda x: [e.value for e in x]),
        default=TreeStatus.ACTIVE,
        nullable=False,
    )
    image_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class Flower(Base):
    """Flower wrapping event on a tree.

    Attributes:
        id: Primary key UUID.
        tree_id: Tree the flowers were wrapped on.
        quantity: Number of wrapped flowers.
        wrapped_at: Date of wrapping.
        status: Active or inactive.
        image_url: Local file path or remote URL of the photo.
        is_synced: Whether the remote copy matches the local row.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        deleted_at: Soft delete marker.
    """

    __tablename__ = "flowers"
    __table_args__ = (
        Index("idx_flowers_tree_id", "tree_id"),
        Index("idx_flowers_status", "status"),
        Index("idx_flowers_synced", "is_synced"),
        Index("idx_flowers_created", "created_at"),
        Index("idx_flowers_wrapped", "wrapped_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tree_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trees.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    wrapped_at: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[TreeStatus] = mapped_column(
        Enum(TreeStatus, values_callable=lambda x: [e.value for e in x]),
        default=TreeStatus.ACTIVE,
        nullable=False,
    )
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class Fruit(Base):
    """Fruit bagging event, descended from a flower wrapping.

    Attributes:
        id: Primary key UUID.
        flower_id: Flower record the fruit developed from.
        tree_id: Denormalized tree reference.
        quantity: Number of bagged fruits.
        bagged_at: Date of bagging.
        status: Active or inactive.
        image_uri: Local file path or remote URL of the photo.
        is_synced: Whether the remote copy matches the local row.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        deleted_at: Soft delete marker.
    """

    __tablename__ = "fruits"
    __table_args__ = (
        Index("idx_fruits_flower_id", "flower_id"),
        Index("idx_fruits_tree_id", "tree_id"),
        Index("idx_fruits_status", "status"),
        Index("idx_fruits_synced", "is_synced"),
        Index("idx_fruits_created", "created_at"),
        Index("idx_fruits_bagged", "bagged_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    flower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("flowers.id", ondelete="CASCADE"), nullable=False
    )
    tree_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trees.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    bagged_at: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[TreeStatus] = mapped_column(
        Enum(TreeStatus, values_callable=lambda x: [e.value for e in x]),
        default=TreeStatus.ACTIVE,
        nullable=False,
    )
    image_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class User(Base):
    """Field user account.

    Attributes:
        id: Primary key UUID.
        first_name: Given name.
        last_name: Family name.
        email: Email address (unique).
        gender: Free-form gender label.
        is_synced: Whether the remote copy matches the local row.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_synced", "is_synced"),
        Index("idx_users_created", "created_at"),
        Index("idx_users_gender", "gender"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    gender: Mapped[str] = mapped_column(String(20), nullable=False)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class PendingDeletion(Base):
    """Tombstone for a hard-deleted record whose remote copy still exists.

    Attributes:
        kind: Entity kind name (tree, flower, fruit, user).
        record_id: Id of the deleted record.
        deleted_at: When the local row was removed.
    """

    __tablename__ = "pending_deletions"
    __table_args__ = (PrimaryKeyConstraint("kind", "record_id", name="pk_pending_deletions"),)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    record_id: Mapped[str] = mapped_column(String(36), nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
