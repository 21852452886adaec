"""Startup rendering mode and the cron driven batch render."""

import logging
from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

if TYPE_CHECKING:
    from .service import ScreensaverService

logger = logging.getLogger(__name__)

RENDER_JOB_ID = 'render_all'


class RenderScheduler:
    """Selects debug, eager or scheduled mode once at startup"""

    def __init__(self, service: 'ScreensaverService'):
        self.service = service
        self.config = service.config
        self.scheduler: Optional[AsyncIOScheduler] = None

    async def start(self):
        if self.config.debug:
            logger.info("Debug mode active, will only render once in non-headless mode and keep page open")
            await self.service.render_all()
        elif self.config.eager_rerender:
            logger.info("Eager render configured, so skipping initial render and disabling cronjob...")
            for page_config in self.config.pages:
                try:
                    self.service.store.clear(page_config)
                except OSError as e:
                    logger.error(f"Failed to delete {page_config.output_path}: {e}")
        else:
            logger.info("Starting first render...")
            await self.service.render_all()
            logger.info(f"Starting rendering cronjob '{self.config.cron_job}'...")
            self.scheduler = AsyncIOScheduler()
            self.scheduler.add_job(
                self.service.render_all,
                trigger=CronTrigger.from_crontab(self.config.cron_job),
                id=RENDER_JOB_ID,
                coalesce=True,
                max_instances=1,
            )
            self.scheduler.start()

    def shutdown(self):
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Rendering cronjob stopped")
        self.scheduler = None
