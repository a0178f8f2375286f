import logging

from apscheduler.schedulers.blocking import BlockingScheduler

from crimeintel.config import Settings
from crimeintel.orchestrator import ScrapeOrchestrator
from crimeintel.schemas import RUN_FAILED
from crimeintel.tasks import TaskQueue


logger = logging.getLogger(__name__)


def _run_monthly_scrape(orchestrator: ScrapeOrchestrator) -> None:
    # Must not raise into APScheduler.
    try:
        runs = orchestrator.scrape_latest()
    except Exception:
        logger.exception("scheduled scrape failed")
        return

    failed = [run.target_month for run in runs if run.status == RUN_FAILED]
    if failed:
        logger.error("scheduled scrape finished with failures", extra={"failed_months": failed})
        return
    logger.info(
        "scheduled scrape completed",
        extra={"months": [run.target_month for run in runs]},
    )


def build_scheduler(settings: Settings, orchestrator: ScrapeOrchestrator) -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _run_monthly_scrape,
        "cron",
        args=[orchestrator],
        day=settings.schedule_day,
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="monthly_scrape",
        replace_existing=True,
    )
    return scheduler


def start_scheduler(settings: Settings, orchestrator: ScrapeOrchestrator, *, run_now: bool = False) -> None:
    scheduler = build_scheduler(settings, orchestrator)

    logger.info(
        "scheduler started",
        extra={
            "schedule_day": settings.schedule_day,
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
        },
    )

    # scheduler.start() blocks, so startup work is queued first.
    queue = TaskQueue(orchestrator)
    if settings.run_on_startup:
        queue.submit("backfill", months=settings.backfill_months)
    if run_now:
        queue.submit("latest")

    try:
        scheduler.start()
    finally:
        queue.shutdown(wait=True)
