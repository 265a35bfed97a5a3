# carfinder/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler

from . import config
from .db import SessionLocal
from .services import build_scanner, scan_due
from .utils import logger

scheduler = BackgroundScheduler()


def run_sweep():
    db = SessionLocal()
    scanner = build_scanner()
    try:
        reports = scan_due(db, scanner)
        logger.info("Sweep finished: %d searches scanned", len(reports))
    finally:
        scanner.resolver.client.close()
        db.close()


def start_scheduler():
    if scheduler.running:
        return scheduler
    # a sweep runs alone; the next tick is skipped while one is in progress
    scheduler.add_job(run_sweep, 'interval', minutes=config.SCAN_INTERVAL_MINUTES,
                      id="sweep", max_instances=1, coalesce=True, replace_existing=True)
    scheduler.start()
    logger.info("Scheduler started (every %s min)", config.SCAN_INTERVAL_MINUTES)
    return scheduler


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
