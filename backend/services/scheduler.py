import asyncio
import logging
from typing import Optional

from .news_service import NewsService

logger = logging.getLogger(__name__)


class CacheRefreshScheduler:
    """Runs ``NewsService.refresh_news_cache`` once at startup and then on a fixed interval."""

    def __init__(self, news_service: NewsService, interval_minutes: int = 120):
        self.news_service = news_service
        self.interval_seconds = interval_minutes * 60
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="news-cache-refresh")
        logger.info(f"Scheduled news cache refresh every {self.interval_seconds // 60} minutes")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.news_service.refresh_news_cache()
            except Exception as e:
                logger.error(f"Scheduled news refresh failed: {e}")
            await asyncio.sleep(self.interval_seconds)
