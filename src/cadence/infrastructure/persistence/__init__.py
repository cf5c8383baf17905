"""Persistence layer: database, ORM models and library storage."""

from cadence.infrastructure.persistence.database import Database
from cadence.infrastructure.persistence.repositories import LibraryStorage

__all__ = ["Database", "LibraryStorage"]
