"""Background maintenance jobs on an APScheduler thread."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from .auth import sweep_expired_otps
from .cleanup import purge_old_entries
from .config import settings

logger = logging.getLogger("uvicorn.error")

_scheduler: BackgroundScheduler | None = None


def _job_table() -> list[tuple[str, object, dict[str, int]]]:
    return [
        ("retention-purge", purge_old_entries, {"hours": settings.cleanup_interval_hours}),
        ("otp-sweep", sweep_expired_otps, {"minutes": settings.otp_sweep_minutes}),
    ]


def start_scheduler() -> BackgroundScheduler | None:
    """Start the job thread once; returns ``None`` when disabled by config."""
    global _scheduler
    if not settings.enable_scheduler:
        logger.info("Scheduler disabled; maintenance jobs will not run")
        return None
    if _scheduler and _scheduler.running:
        return _scheduler
    scheduler = BackgroundScheduler(timezone="UTC")
    for job_id, func, interval in _job_table():
        scheduler.add_job(
            func,
            "interval",
            id=job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **interval,
        )
    scheduler.start()
    _scheduler = scheduler
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
