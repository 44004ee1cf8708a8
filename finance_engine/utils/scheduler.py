"""
Scheduler Service
Runs the recurring-detection alert job and one-shot notification
deliveries on an APScheduler BackgroundScheduler.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from finance_engine.core.config import settings

logger = logging.getLogger(__name__)

RECURRING_JOB_ID = "recurring_detection_rules"

scheduler: BackgroundScheduler = None


def recurring_rules_job():
    """Evaluate RECURRING_DETECTION rules against the owner's transactions."""
    logger.info("Executing recurring-detection rules job...")
    try:
        from finance_engine.core.dependencies import get_alert_evaluator, get_transaction_store

        transactions = get_transaction_store().list_transactions(settings.OWNER_ID)
        events = get_alert_evaluator().evaluate_recurring_rules(transactions, now=datetime.utcnow())
        logger.info(f"Recurring-detection rules job emitted {len(events)} alert(s)")
        return events
    except Exception as e:
        logger.error(f"Error in recurring-detection rules job: {str(e)}", exc_info=True)
        return []


def start_scheduler(hour: int = None, minute: int = None):
    """Start the background scheduler with the daily recurring-detection job."""
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return

    hour = settings.RECURRING_CHECK_HOUR if hour is None else hour
    minute = settings.RECURRING_CHECK_MINUTE if minute is None else minute

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        recurring_rules_job,
        trigger=CronTrigger(hour=hour, minute=minute),
        id=RECURRING_JOB_ID,
        name="Recurring Detection Rules",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started: recurring-detection job at {hour:02d}:{minute:02d}")


def stop_scheduler():
    """Stop the background scheduler"""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Scheduler stopped")


def submit(func, *args) -> bool:
    """Queue ``func(*args)`` to run once as soon as possible.

    Returns False when the scheduler is not running so the caller can run
    the work inline instead.
    """
    if scheduler is None or not scheduler.running:
        return False
    scheduler.add_job(func, args=list(args))
    return True


def get_scheduler_status():
    """Get current scheduler status"""
    if scheduler is None:
        return {"running": False, "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs": jobs
    }
