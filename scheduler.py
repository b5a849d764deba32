import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from hooks import FetchCache, fetch_cache
from services import clean_expired_sessions


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, cache: Optional[FetchCache] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self.cache = cache if cache is not None else fetch_cache

    def _clean_sessions(self, source: str = "manual") -> int:
        logger.info(f"session_cleanup: source={source}")
        with session_scope() as session:
            removed = clean_expired_sessions(session)
        logger.info(f"session_cleanup: source={source} removed={removed}")
        return removed

    def _prune_cache(self) -> int:
        pruned = self.cache.prune()
        if pruned:
            logger.info(f"cache_prune: pruned={pruned} remaining={len(self.cache)}")
        return pruned

    def start(self) -> None:
        self._clean_sessions("startup")

        self.scheduler.add_job(
            self._clean_sessions,
            IntervalTrigger(hours=1),
            args=["hourly"],
            id="session_cleanup_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )
        self.scheduler.add_job(
            self._prune_cache,
            IntervalTrigger(minutes=5),
            id="fetch_cache_prune",
            replace_existing=True,
            misfire_grace_time=60,
        )

        self.scheduler.start()
        logger.info("Scheduler started with hourly session cleanup and cache pruning")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
