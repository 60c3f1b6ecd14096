"""Database module."""

from kalangka.db.database import LocalStore, StoreState
from kalangka.db.models import (
    Base,
    Flower,
    Fruit,
    PendingDeletion,
    Tree,
    TreeStatus,
    User,
    generate_uuid,
    utcnow,
)

__all__ = [
    "LocalStore",
    "StoreState",
    "Base",
    "Tree",
    "TreeStatus",
    "Flower",
    "Fruit",
    "User",
    "PendingDeletion",
    "generate_uuid",
    "utcnow",
]
