import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from budgets_client import BudgetFeed, BudgetsClient
from config import get_settings
from database import session_scope
from services import InstanceService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, feed: Optional[BudgetFeed] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        if feed is None and settings.budgets_api_url:
            feed = BudgetFeed(BudgetsClient())
        self.feed = feed

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: source={source}")
        budgets = None
        if self.feed is not None:
            # A failed fetch keeps the previous budgets around.
            self.feed.refresh()
            budgets = self.feed.budgets
        with session_scope() as session:
            service = InstanceService(session)
            count = service.refresh(budgets)
            logger.info(f"scheduler_run: source={source} instances_created={count}")

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(hour=3, minute=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_03:15"],
            id="lookahead_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=6)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["budgets_refresh"],
            id="lookahead_budgets_refresh",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 03:15 and 6-hourly budget refresh")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
