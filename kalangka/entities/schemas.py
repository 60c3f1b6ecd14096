"""Pydantic schemas for field records."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from kalangka.db.models import TreeStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# --- Records (read side) ---


class TreeRecord(BaseModel):
    """Schema for a stored tree."""

    id: str
    description: str
    type: str | None = None
    latitude: float
    longitude: float
    status: TreeStatus = TreeStatus.ACTIVE
    image_path: str | None = None
    is_synced: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FlowerRecord(BaseModel):
    """Schema for a stored flower wrapping."""

    id: str
    tree_id: str
    quantity: int
    wrapped_at: date
    status: TreeStatus = TreeStatus.ACTIVE
    image_url: str | None = None
    is_synced: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FruitRecord(BaseModel):
    """Schema for a stored fruit bagging."""

    id: str
    flower_id: str
    tree_id: str
    quantity: int
    bagged_at: date
    status: TreeStatus = TreeStatus.ACTIVE
    image_uri: str | None = None
    is_synced: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class UserRecord(BaseModel):
    """Schema for a stored user."""

    id: str
    first_name: str
    last_name: str
    email: str
    gender: str
    is_synced: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


# --- Create ---


class TreeCreate(BaseModel):
    """Schema for registering a tree."""

    description: str = Field(..., min_length=1)
    type: str | None = Field(None, max_length=100)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    status: TreeStatus = TreeStatus.ACTIVE
    image_path: str | None = None


class FlowerCreate(BaseModel):
    """Schema for recording a flower wrapping."""

    tree_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    wrapped_at: date
    status: TreeStatus = TreeStatus.ACTIVE
    image_url: str | None = None


class FruitCreate(BaseModel):
    """Schema for recording a fruit bagging."""

    flower_id: str = Field(..., min_length=1)
    tree_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    bagged_at: date
    status: TreeStatus = TreeStatus.ACTIVE
    image_uri: str | None = None


class UserCreate(BaseModel):
    """Schema for registering a user."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    gender: str = Field(..., min_length=1, max_length=20)


# --- Update (all fields optional) ---


class TreeUpdate(BaseModel):
    """Schema for updating a tree."""

    description: str | None = Field(None, min_length=1)
    type: str | None = Field(None, max_length=100)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    status: TreeStatus | None = None
    image_path: str | None = None


class FlowerUpdate(BaseModel):
    """Schema for updating a flower wrapping."""

    tree_id: str | None = Field(None, min_length=1)
    quantity: int | None = Field(None, gt=0)
    wrapped_at: date | None = None
    status: TreeStatus | None = None
    image_url: str | None = None


class FruitUpdate(BaseModel):
    """Schema for updating a fruit bagging."""

    flower_id: str | None = Field(None, min_length=1)
    tree_id: str | None = Field(None, min_length=1)
    quantity: int | None = Field(None, gt=0)
    bagged_at: date | None = None
    status: TreeStatus | None = None
    image_uri: str | None = None


class UserUpdate(BaseModel):
    """Schema for updating a user."""

    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, pattern=EMAIL_PATTERN, max_length=255)
    gender: str | None = Field(None, min_length=1, max_length=20)


# --- Statistics ---


class EntityStats(BaseModel):
    """Aggregate counts for one entity kind.

    Attributes:
        kind: Entity kind name.
        total: All rows, soft-deleted included.
        synced: Rows whose remote copy is up to date.
        unsynced: Rows waiting for the next sync.
        deleted: Soft-deleted rows.
        pending_deletions: Hard deletes not yet confirmed by the remote.
        categories: Per-category counts (tree, flower and fruit status; user gender).
    """

    kind: str
    total: int = 0
    synced: int = 0
    unsynced: int = 0
    deleted: int = 0
    pending_deletions: int = 0
    categories: dict[str, int] = Field(default_factory=dict)
