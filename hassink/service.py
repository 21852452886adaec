"""Process-wide state of the screensaver service."""

import asyncio
import logging
from typing import Optional

from .battery import BatteryTracker, WebhookNotifier
from .browser import BrowserSession
from .config import Config
from .errors import PostProcessError
from .image_processor import ImageProcessor
from .output_store import OutputStore
from .scheduler import RenderScheduler

logger = logging.getLogger(__name__)


class ScreensaverService:
    """Owns the browser session, output store and battery state.

    A single instance is created at startup and handed to the HTTP server
    and the scheduler.
    """

    def __init__(self, config: Config, session=None, store: Optional[OutputStore] = None,
                 notifier: Optional[WebhookNotifier] = None):
        self.config = config
        self.session = session if session is not None else BrowserSession(config)
        self.store = store if store is not None else OutputStore()
        self.battery = BatteryTracker()
        self.notifier = notifier if notifier is not None else WebhookNotifier(
            config.base_url, config.ignore_certificate_errors)
        self.scheduler = RenderScheduler(self)
        # Queues a batch render that starts while another one is still running
        self._batch_lock = asyncio.Lock()

    @property
    def persists_output(self) -> bool:
        return not self.config.eager_rerender

    async def start(self):
        """Open the browser, log in and start the selected rendering mode"""
        await self.session.open()
        await self.session.authenticate()
        await self.scheduler.start()
        logger.info("hassInk service started")

    async def stop(self):
        self.scheduler.shutdown()
        await self.session.close()

    async def render_and_convert_page(self, page_index: int) -> Optional[bytes]:
        """Render one page and convert it for the device; None if either step fails"""
        page_config = self.config.pages[page_index]
        url = f"{self.config.base_url}{page_config.screenshot_url}"

        image = await self.session.render_page(page_config)
        if image is None:
            return None

        logger.info(f"Converting rendered screenshot of {url} to device format...")
        try:
            image = ImageProcessor.convert_for_device(image, page_config)
        except PostProcessError as e:
            logger.error(f"Failed to convert page {page_index + 1}: {e}")
            return None
        logger.info(f"Finished {url}")

        self.notifier.notify(page_index, self.battery.get(page_index), page_config.battery_webhook)
        return image

    async def render_all(self):
        """Render every page in order; a failing page never stops the batch"""
        if self._batch_lock.locked():
            logger.info("A batch render is already running, queueing this one")

        async with self._batch_lock:
            for page_index, page_config in enumerate(self.config.pages):
                try:
                    image = await self.render_and_convert_page(page_index)
                    if not self.persists_output:
                        continue
                    if image is not None:
                        self.store.write(page_config, image)
                    else:
                        logger.warning(f"Failed to render page {page_index + 1}. "
                                       f"Falling back to existing image, if one exists.")
                except OSError as e:
                    logger.error(f"Failed to store page {page_index + 1}: {e}")
