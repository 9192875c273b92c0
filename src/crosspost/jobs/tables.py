"""SQLAlchemy models of the job and platform store."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from crosspost.models import JobStatus

Base = declarative_base()

# Statuses covered by the one-active-job-per-pair constraint.
ACTIVE_STATUSES = (JobStatus.IN_PROGRESS.value, JobStatus.COMPLETED.value)
_ACTIVE_WHERE = text(
    "status IN (" + ", ".join(f"'{status}'" for status in ACTIVE_STATUSES) + ")"
)


def utcnow() -> datetime:
    """Naive UTC timestamp; columns store UTC without an offset."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PlatformRow(Base):
    __tablename__ = "platforms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False, default="")
    config = Column(Text, nullable=False, default="{}")
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class JobRow(Base):
    __tablename__ = "distribution_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    page_id = Column(String(64), nullable=False, index=True)
    platform_id = Column(Integer, ForeignKey("platforms.id"), nullable=False)
    status = Column(String(16), nullable=False, default=JobStatus.PENDING.value)
    content = Column(Text, nullable=False, default="")
    publish_id = Column(String(255), nullable=False, default="")
    url = Column(Text, nullable=False, default="")
    error = Column(Text, nullable=False, default="")
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    platform = relationship(PlatformRow, lazy="joined")

    __table_args__ = (
        # At most one in-progress or completed job per (page, platform).
        Index(
            "uq_distribution_jobs_active",
            "page_id",
            "platform_id",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )
