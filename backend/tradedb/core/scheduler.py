"""
Background import worker pool.
Uses APScheduler to run import jobs off the request thread and to purge
finished jobs from the job store periodically.
"""
import logging
from typing import Any, Callable, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tradedb.core.config import settings
from tradedb.services.job_store import job_store

logger = logging.getLogger("tradedb.scheduler")

IMPORT_JOB_PREFIX = "import:"


def _build_scheduler() -> BackgroundScheduler:
    return BackgroundScheduler(
        executors={"default": ThreadPoolExecutor(max_workers=settings.max_import_workers)},
        job_defaults={"coalesce": False, "max_instances": 1, "misfire_grace_time": None},
    )


scheduler = _build_scheduler()


def _import_job_failed(event) -> None:
    """Turn a crashed, missed or rejected import run into a Failed job."""
    if not event.job_id.startswith(IMPORT_JOB_PREFIX):
        if event.code == EVENT_JOB_ERROR:
            logger.error(f"Scheduled job {event.job_id} raised: {event.exception}")
        return

    import_id = event.job_id[len(IMPORT_JOB_PREFIX):]
    if event.code == EVENT_JOB_ERROR:
        message = f"Import worker crashed: {event.exception}"
    elif event.code == EVENT_JOB_MAX_INSTANCES:
        message = "Import worker pool rejected the job: maximum running instances reached"
    else:
        message = "Import job missed its scheduled run time"

    logger.error(f"Import job {import_id} failed in the worker pool: {message}")
    job_store.fail(import_id, message, only_if_active=True)


scheduler.add_listener(_import_job_failed, EVENT_JOB_ERROR | EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES)


def job_purge_expired_imports():
    """Drop finished import jobs older than the configured TTL."""
    try:
        removed = job_store.purge_expired()
        logger.debug(f"Job purge complete: {removed} removed, {len(job_store)} remaining")
    except Exception as e:
        logger.error(f"Job purge failed: {e}", exc_info=True)


def submit_import(func: Callable[..., Any], job_id: str, kwargs: Optional[Dict[str, Any]] = None) -> None:
    """
    Queue ``func(**kwargs)`` to run once, immediately, on the worker pool.
    Raises RuntimeError when the pool is not running.
    """
    if not scheduler.running:
        raise RuntimeError("Import worker pool is not running")

    scheduler.add_job(
        func,
        id=f"{IMPORT_JOB_PREFIX}{job_id}",
        name=f"Trade import {job_id}",
        kwargs=kwargs or {},
        replace_existing=False,
    )
    logger.info(f"Import job {job_id} submitted to worker pool")


def start_scheduler():
    """
    Register housekeeping jobs and start the worker pool.
    Called once at application startup.
    """
    if scheduler.running:
        logger.warning("Scheduler already running, skipping start")
        return

    scheduler.add_job(
        job_purge_expired_imports,
        IntervalTrigger(minutes=settings.job_purge_interval_minutes),
        id="import_job_purge",
        name="Purge finished import jobs",
        replace_existing=True,
    )

    scheduler.start()

    jobs = scheduler.get_jobs()
    logger.info(f"Scheduler started with {len(jobs)} jobs ({settings.max_import_workers} import workers):")
    for job in jobs:
        logger.info(f"  - {job.name} (next run: {job.next_run_time})")


def stop_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler status and queued jobs."""
    jobs = scheduler.get_jobs() if scheduler.running else []
    return {
        "running": scheduler.running,
        "max_import_workers": settings.max_import_workers,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
            }
            for job in jobs
        ],
    }
