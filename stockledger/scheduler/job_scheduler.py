"""Once-a-day runner for the expiry sweep.

A ``JobLog`` row unique on ``(job_name, run_date)`` records each day's run,
so schedulers running side by side sweep once per day. A failed day is
retried after ``retry_seconds * attempt`` until ``max_retries``. A run left
``running`` for longer than ``stale_seconds`` is reclaimed; the sweep only
raises deduplicated alerts, so running it twice is harmless.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from stockledger.core.dates import as_utc, utc_now
from stockledger.database import SessionLocal, create_schema
from stockledger.models.job_log import JobLog

logger = logging.getLogger(__name__)

STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


def ensure_scheduler_schema(bind=None) -> None:
    create_schema(bind)


def parse_time(value: str) -> time:
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError("SCHEDULER_RUN_AFTER must be in HH:MM format")
    return time(*(int(part) for part in parts[:3]))


@dataclass
class SchedulerConfig:
    job_name: str
    run_after_time: time
    poll_seconds: int
    stale_seconds: int
    retry_seconds: int
    max_retries: int
    timezone_mode: str = "local"

    def now(self) -> datetime:
        if self.timezone_mode.lower() == "utc":
            return datetime.now(timezone.utc)
        return datetime.now()


def _can_retake(log: JobLog, now: datetime, config: SchedulerConfig) -> bool:
    if log.status == STATUS_SUCCESS:
        return False
    if log.status == STATUS_RUNNING:
        return now - as_utc(log.started_at) > timedelta(seconds=config.stale_seconds)
    if log.attempt >= config.max_retries:
        return False
    return log.next_retry_at is None or now >= as_utc(log.next_retry_at)


def claim_run(session_factory, config: SchedulerConfig, run_date: date) -> Optional[JobLog]:
    """Return the day's ``JobLog`` if this process should run the job now."""
    now = utc_now()
    db = session_factory()
    try:
        log = JobLog(job_name=config.job_name, run_date=run_date, status=STATUS_RUNNING, attempt=1, started_at=now)
        db.add(log)
        try:
            db.commit()
            return log
        except IntegrityError:
            db.rollback()

        log = db.execute(
            select(JobLog).where(JobLog.job_name == config.job_name, JobLog.run_date == run_date)
        ).scalar_one()
        if not _can_retake(log, now, config):
            return None

        # Only one scheduler wins a retake: match the row state just read.
        claimed = db.execute(
            update(JobLog)
            .where(JobLog.id == log.id, JobLog.status == log.status, JobLog.attempt == log.attempt)
            .values(
                status=STATUS_RUNNING,
                attempt=log.attempt + 1,
                started_at=now,
                finished_at=None,
                error_message=None,
                next_retry_at=None,
            )
        )
        if claimed.rowcount != 1:
            db.rollback()
            return None
        db.commit()
        db.refresh(log)
        return log
    finally:
        db.close()


def finish_run(
    session_factory,
    config: SchedulerConfig,
    log: JobLog,
    *,
    stats: Optional[dict] = None,
    error: Optional[Exception] = None,
) -> None:
    now = utc_now()
    values = dict(finished_at=now, stats=stats, status=STATUS_SUCCESS, error_message=None, next_retry_at=None)
    if error is not None:
        values["status"] = STATUS_FAILED
        values["error_message"] = "{}: {}".format(type(error).__name__, error)[:1000]
        if log.attempt < config.max_retries:
            values["next_retry_at"] = now + timedelta(seconds=config.retry_seconds * log.attempt)

    db = session_factory()
    try:
        db.execute(update(JobLog).where(JobLog.id == log.id).values(**values))
        db.commit()
    finally:
        db.close()


class DailyJobScheduler:
    def __init__(
        self,
        *,
        config: SchedulerConfig,
        job_func: Callable[[], Optional[dict]],
        session_factory=SessionLocal,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._job_func = job_func
        self._session_factory = session_factory
        self._clock = clock or config.now
        self._stop_event = threading.Event()

    def run_once(self) -> bool:
        """Run the job if today's run is due; ``True`` when it succeeded."""
        now = self._clock()
        if now.time() < self._config.run_after_time:
            return False

        run_date = now.date()
        log = claim_run(self._session_factory, self._config, run_date)
        if log is None:
            return False

        logger.info("Running job %s for %s (attempt %s)", log.job_name, run_date, log.attempt)
        try:
            stats = self._job_func()
        except Exception as exc:
            logger.exception("Job %s failed for %s", log.job_name, run_date)
            finish_run(self._session_factory, self._config, log, error=exc)
            return False
        finish_run(self._session_factory, self._config, log, stats=stats if isinstance(stats, dict) else None)
        logger.info("Job %s completed for %s", log.job_name, run_date)
        return True

    def run_forever(self) -> None:
        poll_seconds = max(1, int(self._config.poll_seconds))
        logger.info("Scheduler started for job %s", self._config.job_name)
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Scheduler loop error.")
            self._stop_event.wait(poll_seconds)

    def stop(self) -> None:
        self._stop_event.set()


__all__ = [
    "DailyJobScheduler",
    "SchedulerConfig",
    "claim_run",
    "ensure_scheduler_schema",
    "finish_run",
    "parse_time",
]
