import argparse
import logging

from stockledger.config import get_settings
from stockledger.core.logging import setup_logging
from stockledger.scheduler.job_scheduler import (
    DailyJobScheduler,
    SchedulerConfig,
    ensure_scheduler_schema,
    parse_time,
)
from stockledger.services.alert_service import run_expiry_sweep

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Run the daily expiry and stock alert sweep.")
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run the sweep once (if due and not yet done today) and exit.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()
    settings = get_settings()

    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler disabled by SCHEDULER_ENABLED.")
        return

    ensure_scheduler_schema()
    config = SchedulerConfig(
        job_name="daily-expiry-sweep",
        run_after_time=parse_time(settings.SCHEDULER_RUN_AFTER),
        poll_seconds=settings.SCHEDULER_POLL_SECONDS,
        stale_seconds=settings.SCHEDULER_STALE_SECONDS,
        retry_seconds=settings.SCHEDULER_RETRY_SECONDS,
        max_retries=settings.SCHEDULER_MAX_RETRIES,
        timezone_mode=settings.SCHEDULER_TZ,
    )
    scheduler = DailyJobScheduler(config=config, job_func=run_expiry_sweep)

    if args.run_once:
        scheduler.run_once()
        return

    scheduler.run_forever()


if __name__ == "__main__":
    main()
