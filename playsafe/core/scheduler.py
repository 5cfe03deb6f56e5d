"""
APScheduler setup for periodic maintenance of derived data.
Runs in-process on a background thread.
"""

import asyncio
import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def refresh_active_issues_job():
    """Recompute each playground's active issue count from the issue store"""
    try:
        from ..services.playground_service import playground_service

        logger.info(f"[{datetime.now()}] 🔄 Refreshing playground active issue counts...")
        changed = asyncio.run(playground_service.refresh_active_issues())
        if changed:
            logger.info(f"✅ Updated active issue counts on {changed} playground(s)")
        else:
            logger.info("ℹ️  Playground active issue counts already current")
    except Exception as e:
        logger.error(f"❌ Active issue refresh failed: {str(e)}", exc_info=True)


def start_scheduler():
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    try:
        interval_minutes = settings.ACTIVE_ISSUES_REFRESH_MINUTES
        scheduler.add_job(
            refresh_active_issues_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id='active_issue_refresh',
            name='Playground Active Issue Refresh',
            replace_existing=True,
            misfire_grace_time=30,
            next_run_time=datetime.now(),
        )
        scheduler.start()
        logger.info(f"✅ Scheduler started: active issue refresh every {interval_minutes} minute(s)")
    except Exception as e:
        logger.error(f"❌ Failed to start scheduler: {str(e)}", exc_info=True)


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("✅ Scheduler stopped")
