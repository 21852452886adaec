"""
Browser session for rendering Home Assistant pages

One Chromium instance and one browser context are shared by every render, so
the authentication written to local storage once at startup is visible to
every page opened afterwards. Each render runs in its own short-lived page.
"""

import json
import logging
import time
from typing import Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import Config, PageConfig
from .errors import RenderError, SessionLaunchError

logger = logging.getLogger(__name__)

READY_SELECTOR = 'home-assistant'
MIN_READY_TIMEOUT = 1000  # ms


class BrowserSession:
    """Owns the shared Playwright browser session"""

    def __init__(self, config: Config):
        self.config = config
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

    def launch_args(self) -> List[str]:
        args = ['--disable-dev-shm-usage', '--no-sandbox', f"--lang={self.config.language}"]
        if self.config.ignore_certificate_errors:
            args.append('--ignore-certificate-errors')
        return args

    async def open(self):
        """Launch the browser; any failure here is fatal for the service"""
        logger.info("Starting browser...")
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                args=self.launch_args(),
                headless=not self.config.debug,
                timeout=self.config.browser_launch_timeout,
            )
            self.context = await self.browser.new_context(
                ignore_https_errors=self.config.ignore_certificate_errors,
                locale=self.config.language,
            )
        except PlaywrightError as e:
            error_msg = str(e)
            await self.close()
            if "Executable doesn't exist" in error_msg:
                logger.error("Playwright browser not installed. Please run: playwright install chromium")
            raise SessionLaunchError(f"Failed to launch browser: {e}") from e

    async def authenticate(self):
        """Store the access token and language in the session's local storage"""
        if self.context is None:
            raise SessionLaunchError("Browser session is not open")

        base_url = self.config.base_url
        logger.info(f"Visiting '{base_url}' to login...")
        hass_tokens = {
            'hassUrl': base_url,
            'access_token': self.config.access_token,
            'token_type': 'Bearer',
        }

        page = await self.context.new_page()
        try:
            await page.goto(base_url, timeout=self.config.rendering_timeout)
            logger.info("Adding authentication entry to browser's local storage...")
            await page.evaluate(
                """([hassTokens, selectedLanguage]) => {
                    localStorage.setItem('hassTokens', hassTokens);
                    localStorage.setItem('selectedLanguage', selectedLanguage);
                }""",
                [json.dumps(hass_tokens), json.dumps(self.config.language)],
            )
        except PlaywrightError as e:
            raise SessionLaunchError(f"Failed to authenticate against {base_url}: {e}") from e
        finally:
            await page.close()

    def page_url(self, page_config: PageConfig) -> str:
        url = f"{self.config.base_url}{page_config.screenshot_url}"
        if page_config.include_cache_break_query:
            url += f"?{int(time.time() * 1000)}"
        return url

    async def render_page(self, page_config: PageConfig) -> Optional[bytes]:
        """Render one page to a screenshot.

        Returns None instead of raising when the page cannot be rendered;
        callers treat that as an ordinary outcome.
        """
        url = self.page_url(page_config)
        logger.info(f"Rendering {url} to image...")

        page: Optional[Page] = None
        try:
            if self.context is None:
                raise RenderError("Browser session is not open")
            page = await self.context.new_page()
            return await self._capture(page, page_config, url)
        except (PlaywrightError, RenderError) as e:
            logger.error(f"Failed to render {url}: {e}")
            return None
        finally:
            if page is not None and not self.config.debug:
                await page.close()

    async def _capture(self, page: Page, page_config: PageConfig, url: str) -> bytes:
        timeout = self.config.rendering_timeout

        await page.emulate_media(color_scheme=page_config.prefers_color_scheme)

        size: Dict[str, int] = page_config.viewport_size()
        await page.set_viewport_size(size)

        start_time = time.monotonic()
        await page.goto(url, wait_until='networkidle', timeout=timeout)
        navigate_timespan = (time.monotonic() - start_time) * 1000

        await page.wait_for_selector(READY_SELECTOR, timeout=max(timeout - navigate_timespan, MIN_READY_TIMEOUT))

        await page.add_style_tag(content=f"""
            body {{
                zoom: {page_config.scaling * 100}%;
                overflow: hidden;
            }}""")

        if page_config.rendering_delay > 0:
            await page.wait_for_timeout(page_config.rendering_delay)

        return await page.screenshot(
            type=page_config.image_format,
            clip={'x': 0, 'y': 0, **size},
        )

    async def close(self):
        """Close the context, browser and Playwright driver"""
        if self.context is not None:
            await self.context.close()
            self.context = None
        if self.browser is not None:
            await self.browser.close()
            self.browser = None
        if self.playwright is not None:
            await self.playwright.stop()
            self.playwright = None
        logger.info("Browser session closed")
