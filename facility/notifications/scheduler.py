"""
APScheduler-based job scheduler for lesson reminders.

Jobs are persisted to PostgreSQL so they survive restarts.

Jobs are lightweight - they store only the booking_id, and fresh booking
data is fetched at execution time. This avoids stale data issues when a
lesson is moved after the reminder was scheduled.
"""

import fnmatch
import logging
from datetime import datetime, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from facility.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


_scheduler: AsyncIOScheduler | None = None
# Job functions are module-level (the job store pickles references to them),
# so the dispatcher they use is registered here by init_scheduler.
_dispatcher: NotificationDispatcher | None = None

JOB_DEFAULTS = {
    "coalesce": True,  # Combine missed runs into one
    "max_instances": 1,
    "misfire_grace_time": 3600,  # Allow 1 hour late execution
}


# =============================================================================
# Scheduler initialization and shutdown
# =============================================================================


def _get_database_url() -> str:
    """Get sync database URL for APScheduler (it uses sync SQLAlchemy)."""
    from facility.database import get_sync_database_url

    try:
        database_url = get_sync_database_url()
    except ValueError:
        return ""

    # Add connection timeout to prevent hanging when DB is unavailable
    if "?" not in database_url:
        database_url += "?connect_timeout=5"
    elif "connect_timeout" not in database_url:
        database_url += "&connect_timeout=5"

    return database_url


def init_scheduler(
    dispatcher: NotificationDispatcher,
    skip_if_db_unavailable: bool = True,
) -> AsyncIOScheduler:
    """
    Initialize and start the APScheduler.

    Call this during app startup (in FastAPI lifespan).

    Args:
        dispatcher: Dispatcher used by reminder jobs
        skip_if_db_unavailable: If True, fall back to an in-memory scheduler
                                when the DB is unreachable instead of failing.
    """
    global _scheduler, _dispatcher

    _dispatcher = dispatcher
    if _scheduler is not None:
        return _scheduler

    database_url = _get_database_url()

    jobstores = {}
    if database_url:
        jobstores["default"] = SQLAlchemyJobStore(
            url=database_url,
            tablename="apscheduler_jobs",
        )

    _scheduler = AsyncIOScheduler(jobstores=jobstores, job_defaults=JOB_DEFAULTS)

    try:
        _scheduler.start()
        logger.info("Reminder scheduler started")
    except Exception as e:
        if skip_if_db_unavailable and jobstores:
            logger.warning(
                f"Could not connect to database for scheduler ({e}); "
                "running in memory-only mode (jobs won't persist)"
            )
            _scheduler = AsyncIOScheduler(jobstores={}, job_defaults=JOB_DEFAULTS)
            _scheduler.start()
        else:
            raise

    return _scheduler


def shutdown_scheduler() -> None:
    """
    Shutdown the scheduler gracefully.

    Call this during app shutdown.
    """
    global _scheduler, _dispatcher
    if _scheduler:
        _scheduler.shutdown(wait=True)
        _scheduler = None
        logger.info("Reminder scheduler stopped")
    _dispatcher = None


# =============================================================================
# Job scheduling
# =============================================================================


def reminder_job_id(booking_id: int) -> str:
    return f"booking_{booking_id}_reminder"


def schedule_lesson_reminder(booking_id: int, run_at: datetime) -> bool:
    """
    Schedule (or move) the SMS reminder for a booking.

    Only stores booking_id - fresh data is fetched at execution time.

    Returns:
        True if a job was scheduled
    """
    if not _scheduler:
        logger.warning("Scheduler not initialized, cannot schedule reminder")
        return False

    if run_at <= datetime.now(timezone.utc):
        logger.info(f"Reminder time for booking {booking_id} already passed, skipping")
        return False

    _scheduler.add_job(
        _execute_reminder,
        trigger="date",
        run_date=run_at,
        id=reminder_job_id(booking_id),
        replace_existing=True,
        kwargs={"booking_id": booking_id},
    )
    logger.info(f"Scheduled lesson reminder for booking {booking_id} at {run_at}")
    return True


def cancel_reminders(pattern: str) -> int:
    """
    Cancel scheduled reminders matching a pattern.

    Args:
        pattern: Glob pattern to match job IDs (e.g., "booking_123_*")

    Returns:
        Number of jobs cancelled
    """
    if not _scheduler:
        return 0

    cancelled = 0
    for job in _scheduler.get_jobs():
        if fnmatch.fnmatch(job.id, pattern):
            try:
                job.remove()
                cancelled += 1
            except JobLookupError:
                # Already ran or was removed concurrently
                pass

    return cancelled


def cancel_lesson_reminders(booking_id: int) -> int:
    return cancel_reminders(f"booking_{booking_id}_*")


# =============================================================================
# Job execution - fetches fresh context
# =============================================================================


async def _execute_reminder(booking_id: int) -> None:
    """
    Send a lesson reminder with fresh booking data.

    This is the job function called by APScheduler.
    """
    # Import here to avoid circular imports
    from facility.bookings import get_notification_job
    from facility.enums import LifecycleEvent

    if _dispatcher is None:
        logger.warning(f"No dispatcher registered, dropping reminder for booking {booking_id}")
        return

    job = await get_notification_job(booking_id, include_cancelled=False)
    if job is None:
        logger.info(f"Booking {booking_id} not found or cancelled, skipping reminder")
        return

    if job.start_time < datetime.now(timezone.utc):
        logger.info(f"Lesson for booking {booking_id} already started, skipping reminder")
        return

    result = await _dispatcher.dispatch(LifecycleEvent.reminder_due, job)
    logger.info(
        f"Reminder for booking {booking_id}: "
        + ", ".join(
            f"{r.channel.value}={'ok' if r.success else 'skipped' if r.skipped else 'failed'}"
            for r in result.results
        )
    )
