"""Entity kinds, schemas and the generic local repository."""

from kalangka.entities.kinds import (
    FLOWER,
    FRUIT,
    KINDS,
    TREE,
    USER,
    EntityKind,
    get_kind,
    parse_create,
    parse_update,
)
from kalangka.entities.repository import EntityRepository

__all__ = [
    "EntityKind",
    "EntityRepository",
    "FLOWER",
    "FRUIT",
    "KINDS",
    "TREE",
    "USER",
    "get_kind",
    "parse_create",
    "parse_update",
]
