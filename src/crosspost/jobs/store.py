"""Durable store of distribution jobs and platforms.

The store is the single idempotency authority.  :meth:`JobStore.claim`
is an atomic conditional insert: the partial unique index on
``(page_id, platform_id)`` over active statuses means two orchestrators
racing for the same pair can never both hold an in-progress job, and a
pair can never gain a second completed job.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crosspost.errors import JobStoreError
from crosspost.models import DistributionJob, JobStatus
from crosspost.observability import get_logger

from .tables import ACTIVE_STATUSES, Base, JobRow, PlatformRow, utcnow

log = get_logger("crosspost.jobs")


def _to_db_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: datetime | None) -> datetime | None:
    return value.replace(tzinfo=timezone.utc) if value is not None else None


def _to_job(row: JobRow) -> DistributionJob:
    return DistributionJob(
        id=row.id,
        page_id=row.page_id,
        platform_id=row.platform_id,
        platform_name=row.platform.name if row.platform is not None else "",
        status=JobStatus(row.status),
        content=row.content,
        publish_id=row.publish_id,
        url=row.url,
        error=row.error,
        published_at=_from_db_time(row.published_at),
        created_at=_from_db_time(row.created_at),
        updated_at=_from_db_time(row.updated_at),
    )


@dataclass
class PlatformRecord:
    """Public view of a platform row."""

    id: int
    name: str
    display_name: str
    enabled: bool


@dataclass
class Claim:
    """Result of :meth:`JobStore.claim`.

    ``created`` is ``True`` when the caller now owns a fresh in-progress
    job.  Otherwise ``job`` is the active job that blocked the claim,
    either completed or held by another attempt.
    """

    job: DistributionJob
    created: bool


class JobStore:
    """SQLAlchemy-backed job and platform store.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL.  ``sqlite://`` (in-memory) shares one connection
        across threads so every session sees the same database.
    echo:
        Log emitted SQL.
    """

    def __init__(self, database_url: str = "sqlite:///crosspost.db", echo: bool = False) -> None:
        self.database_url = database_url
        engine_kwargs: dict = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)
        log.info("Job store tables ready", extra={"extra_fields": {"backend": self.engine.name}})

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise JobStoreError(message=f"Job store error: {exc}", cause=exc) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Platforms
    # ------------------------------------------------------------------

    def get_or_create_platform(
        self,
        name: str,
        display_name: str = "",
        enabled: bool = True,
        config: dict[str, str] | None = None,
    ) -> PlatformRecord:
        """Return the platform row for *name*, creating it on first use.

        Two callers creating the same platform concurrently both end up with
        the single row: the loser of the insert re-reads the winner's row.
        """
        with self._session() as session:
            row = session.query(PlatformRow).filter_by(name=name).one_or_none()
            if row is not None:
                return self._platform_record(row)

        try:
            with self._session() as session:
                row = PlatformRow(
                    name=name,
                    display_name=display_name or name,
                    enabled=enabled,
                    config=json.dumps(config or {}, ensure_ascii=False),
                )
                session.add(row)
                session.flush()
                record = self._platform_record(row)
            log.info("Platform created", extra={"extra_fields": {"platform": name, "id": record.id}})
            return record
        except JobStoreError as exc:
            if not isinstance(exc.cause, IntegrityError):
                raise

        with self._session() as session:
            row = session.query(PlatformRow).filter_by(name=name).one()
            return self._platform_record(row)

    @staticmethod
    def _platform_record(row: PlatformRow) -> PlatformRecord:
        return PlatformRecord(
            id=row.id,
            name=row.name,
            display_name=row.display_name,
            enabled=row.enabled,
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def find_completed(self, page_id: str, platform_id: int) -> DistributionJob | None:
        with self._session() as session:
            row = (
                session.query(JobRow)
                .filter_by(page_id=page_id, platform_id=platform_id, status=JobStatus.COMPLETED.value)
                .order_by(JobRow.id.desc())
                .first()
            )
            return _to_job(row) if row is not None else None

    def claim(self, page_id: str, platform_id: int, content: str = "") -> Claim:
        """Atomically create an in-progress job unless an active one exists."""
        with self._session() as session:
            existing = self._active(session, page_id, platform_id)
            if existing is not None:
                return Claim(job=_to_job(existing), created=False)

        try:
            with self._session() as session:
                row = JobRow(
                    page_id=page_id,
                    platform_id=platform_id,
                    status=JobStatus.IN_PROGRESS.value,
                    content=content,
                )
                session.add(row)
                session.flush()
                session.refresh(row)
                job = _to_job(row)
            return Claim(job=job, created=True)
        except JobStoreError as exc:
            if not isinstance(exc.cause, IntegrityError):
                raise

        # Lost the race to a concurrent claim.
        with self._session() as session:
            existing = self._active(session, page_id, platform_id)
            if existing is None:
                raise JobStoreError(
                    message="Claim conflicted but no active job was found",
                    context={"page_id": page_id, "platform_id": platform_id},
                )
            return Claim(job=_to_job(existing), created=False)

    def finish(
        self,
        job_id: int,
        status: JobStatus,
        *,
        error: str = "",
        publish_id: str = "",
        url: str = "",
        published_at: datetime | None = None,
    ) -> DistributionJob:
        """Move an in-progress job to its terminal *status*.

        Raises
        ------
        JobStoreError
            If *status* is not terminal, the job does not exist, or the job
            already reached a terminal status.
        """
        if not status.is_terminal:
            raise JobStoreError(
                message=f"{status.value} is not a terminal status",
                context={"job_id": job_id, "status": status.value},
            )
        with self._session() as session:
            row = session.get(JobRow, job_id)
            if row is None:
                raise JobStoreError(message=f"Job {job_id} not found", context={"job_id": job_id})
            if JobStatus(row.status).is_terminal:
                raise JobStoreError(
                    message=f"Job {job_id} is already {row.status}",
                    context={"job_id": job_id, "status": row.status},
                )
            row.status = status.value
            row.error = error
            row.publish_id = publish_id
            row.url = url
            row.published_at = _to_db_time(published_at)
            row.updated_at = utcnow()
            session.flush()
            return _to_job(row)

    def record(
        self,
        page_id: str,
        platform_id: int,
        status: JobStatus,
        *,
        content: str = "",
        error: str = "",
        publish_id: str = "",
        url: str = "",
        published_at: datetime | None = None,
    ) -> DistributionJob:
        """Insert a job that is already terminal, e.g. a draft-only record."""
        if status in (JobStatus.IN_PROGRESS, JobStatus.COMPLETED):
            raise JobStoreError(
                message=f"{status.value} jobs must go through claim()",
                context={"status": status.value},
            )
        with self._session() as session:
            row = JobRow(
                page_id=page_id,
                platform_id=platform_id,
                status=status.value,
                content=content,
                error=error,
                publish_id=publish_id,
                url=url,
                published_at=_to_db_time(published_at),
            )
            session.add(row)
            session.flush()
            session.refresh(row)
            return _to_job(row)

    def history(self, page_id: str) -> list[DistributionJob]:
        """All jobs of *page_id*, newest first."""
        with self._session() as session:
            rows = (
                session.query(JobRow)
                .filter_by(page_id=page_id)
                .order_by(JobRow.created_at.desc(), JobRow.id.desc())
                .all()
            )
            return [_to_job(row) for row in rows]

    def expire_stale(self, max_age_seconds: float) -> int:
        """Fail in-progress jobs older than *max_age_seconds*; returns the count.

        An attempt that died without a terminal update would otherwise block
        its pair forever.
        """
        cutoff = utcnow() - timedelta(seconds=max_age_seconds)
        with self._session() as session:
            rows = (
                session.query(JobRow)
                .filter(JobRow.status == JobStatus.IN_PROGRESS.value)
                .filter(JobRow.updated_at < cutoff)
                .all()
            )
            for row in rows:
                row.status = JobStatus.FAILED.value
                row.error = row.error or f"abandoned: no terminal update within {max_age_seconds:g}s"
                row.updated_at = utcnow()
            count = len(rows)
        if count:
            log.warning("Expired stale jobs", extra={"extra_fields": {"count": count}})
        return count

    def has_completed_all(self, page_id: str, platform_names: Iterable[str]) -> bool:
        names = set(platform_names)
        if not names:
            return True
        with self._session() as session:
            done = {
                name
                for (name,) in session.query(PlatformRow.name)
                .join(JobRow, JobRow.platform_id == PlatformRow.id)
                .filter(JobRow.page_id == page_id)
                .filter(JobRow.status == JobStatus.COMPLETED.value)
                .filter(PlatformRow.name.in_(names))
                .distinct()
            }
        return names <= done

    @staticmethod
    def _active(session: Session, page_id: str, platform_id: int) -> JobRow | None:
        return (
            session.query(JobRow)
            .filter_by(page_id=page_id, platform_id=platform_id)
            .filter(JobRow.status.in_(ACTIVE_STATUSES))
            .order_by(JobRow.id.desc())
            .first()
        )
