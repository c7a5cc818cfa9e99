"""SQLAlchemy ORM models for the repjan cache."""

from repjan.models.base import Base
from repjan.models.repository import MarkedRepo, RepositoryCache
from repjan.models.sync import RepoChange, SyncHistory

__all__ = [
    "Base",
    "MarkedRepo",
    "RepoChange",
    "RepositoryCache",
    "SyncHistory",
]
