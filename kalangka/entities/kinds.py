"""Entity kind descriptors.

Every kind shares the same repository and sync code; the descriptor carries
the per-kind differences (table, mutable columns, soft delete capability,
parent references, image column, statistics categories).
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from kalangka.db.models import Base, Flower, Fruit, Tree, TreeStatus, User
from kalangka.entities.schemas import (
    FlowerCreate,
    FlowerRecord,
    FlowerUpdate,
    FruitCreate,
    FruitRecord,
    FruitUpdate,
    TreeCreate,
    TreeRecord,
    TreeUpdate,
    UserCreate,
    UserRecord,
    UserUpdate,
)
from kalangka.errors import ValidationError

TIMESTAMP_FIELDS = ("created_at", "updated_at")


@dataclass(frozen=True, eq=False)
class EntityKind:
    """Describes one entity kind.

    Attributes:
        name: Kind name, also used in object and file names (e.g. "tree").
        resource: Remote REST resource (e.g. "trees").
        model: SQLAlchemy model.
        record_schema: Pydantic schema for stored rows.
        create_schema: Pydantic schema validating new records.
        update_schema: Pydantic schema validating partial updates.
        mutable_fields: Columns an update may change.
        domain_fields: Columns sent to and accepted from the remote, besides
            id and timestamps.
        soft_delete: Whether deletes are soft (deleted_at) for this kind.
        parent_fields: Foreign reference columns, default parent first.
        order_by: Domain timestamp used for per-parent listings.
        image_field: Column holding a local path or remote URL of a photo.
        category_field: Column counted per category in statistics.
        categories: Known category values; anything else counts as "other".
        count_other: Whether unknown category values are reported as "other".
        date_fields: Date-only columns.
        enum_fields: Enum-typed columns and their enum class.
    """

    name: str
    resource: str
    model: type[Base]
    record_schema: type[BaseModel]
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]
    mutable_fields: frozenset[str]
    domain_fields: tuple[str, ...]
    soft_delete: bool = False
    parent_fields: tuple[str, ...] = ()
    order_by: str = "created_at"
    image_field: str | None = None
    category_field: str | None = None
    categories: tuple[str, ...] = ()
    count_other: bool = False
    date_fields: tuple[str, ...] = ()
    enum_fields: dict[str, type[Enum]] = field(default_factory=dict)

    @property
    def payload_fields(self) -> tuple[str, ...]:
        """Fields exchanged with the remote, in payload order."""
        return ("id", *self.domain_fields, *TIMESTAMP_FIELDS)

    @property
    def datetime_fields(self) -> tuple[str, ...]:
        return TIMESTAMP_FIELDS

    @property
    def columns(self) -> frozenset[str]:
        """All column names of the kind's table."""
        return frozenset(self.model.__table__.columns.keys())


TREE = EntityKind(
    name="tree",
    resource="trees",
    model=Tree,
    record_schema=TreeRecord,
    create_schema=TreeCreate,
    update_schema=TreeUpdate,
    mutable_fields=frozenset(
        {"description", "type", "latitude", "longitude", "status", "image_path"}
    ),
    domain_fields=("description", "type", "latitude", "longitude", "status", "image_path"),
    image_field="image_path",
    category_field="status",
    categories=tuple(s.value for s in TreeStatus),
    enum_fields={"status": TreeStatus},
)

FLOWER = EntityKind(
    name="flower",
    resource="flowers",
    model=Flower,
    record_schema=FlowerRecord,
    create_schema=FlowerCreate,
    update_schema=FlowerUpdate,
    mutable_fields=frozenset({"tree_id", "quantity", "wrapped_at", "status", "image_url"}),
    domain_fields=("tree_id", "quantity", "wrapped_at", "status", "image_url"),
    soft_delete=True,
    parent_fields=("tree_id",),
    order_by="wrapped_at",
    image_field="image_url",
    category_field="status",
    categories=tuple(s.value for s in TreeStatus),
    date_fields=("wrapped_at",),
    enum_fields={"status": TreeStatus},
)

FRUIT = EntityKind(
    name="fruit",
    resource="fruits",
    model=Fruit,
    record_schema=FruitRecord,
    create_schema=FruitCreate,
    update_schema=FruitUpdate,
    mutable_fields=frozenset(
        {"flower_id", "tree_id", "quantity", "bagged_at", "status", "image_uri"}
    ),
    domain_fields=("flower_id", "tree_id", "quantity", "bagged_at", "status", "image_uri"),
    soft_delete=True,
    parent_fields=("flower_id", "tree_id"),
    order_by="bagged_at",
    image_field="image_uri",
    category_field="status",
    categories=tuple(s.value for s in TreeStatus),
    date_fields=("bagged_at",),
    enum_fields={"status": TreeStatus},
)

USER = EntityKind(
    name="user",
    resource="users",
    model=User,
    record_schema=UserRecord,
    create_schema=UserCreate,
    update_schema=UserUpdate,
    mutable_fields=frozenset({"first_name", "last_name", "email", "gender"}),
    domain_fields=("first_name", "last_name", "email", "gender"),
    category_field="gender",
    categories=("male", "female"),
    count_other=True,
)

# Parent-first order: trees before the flowers and fruits that reference them
KINDS: dict[str, EntityKind] = {kind.name: kind for kind in (TREE, FLOWER, FRUIT, USER)}


def get_kind(name: str) -> EntityKind:
    """Look up an entity kind by name.

    Args:
        name: Kind name ("tree", "flower", "fruit", "user").

    Returns:
        EntityKind: The descriptor.

    Raises:
        KeyError: If the kind is unknown.
    """
    try:
        return KINDS[name]
    except KeyError:
        raise KeyError(f"Unknown entity kind: {name}") from None


def _validation_error(kind: EntityKind, exc: PydanticValidationError) -> ValidationError:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    fields = ", ".join(e["field"] for e in errors)
    return ValidationError(f"Invalid {kind.name} data: {fields}", errors=errors)


def parse_create(kind: EntityKind, raw: Mapping[str, Any] | BaseModel) -> BaseModel:
    """Validate raw input for a new record.

    Args:
        kind: Entity kind descriptor.
        raw: Mapping of field values or an already-built create schema.

    Returns:
        BaseModel: The validated create schema.

    Raises:
        ValidationError: If the input fails validation.
    """
    if isinstance(raw, kind.create_schema):
        return raw
    data = raw.model_dump() if isinstance(raw, BaseModel) else dict(raw)
    try:
        return kind.create_schema.model_validate(data)
    except PydanticValidationError as e:
        raise _validation_error(kind, e) from e


def parse_update(kind: EntityKind, raw: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a partial update and keep only the fields that were provided.

    Raises:
        ValidationError: If a provided field fails validation.
    """
    try:
        update = kind.update_schema.model_validate(dict(raw))
    except PydanticValidationError as e:
        raise _validation_error(kind, e) from e
    return update.model_dump(exclude_unset=True)
