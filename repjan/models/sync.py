"""Sync history and change audit models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from repjan.models.base import Base


class SyncHistory(Base):
    """One row per refresh attempt."""

    __tablename__ = "sync_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="running")
    repos_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repos_inserted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repos_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_sync_history_owner", "owner"),
        Index("idx_sync_history_started_at", "started_at"),
        Index("idx_sync_history_owner_status", "owner", "status"),
    )


class RepoChange(Base):
    """Append-only audit log entry for a repository mutation."""

    __tablename__ = "repo_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String, nullable=False)
    repo_name: Mapped[str] = mapped_column(String, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    performed_by: Mapped[str] = mapped_column(String, nullable=False, default="user")
    previous_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_repo_changes_owner", "owner"),
        Index("idx_repo_changes_repo", "owner", "repo_name"),
        Index("idx_repo_changes_action", "action"),
        Index("idx_repo_changes_performed_at", "performed_at"),
    )
