import logging
import sys
from abc import ABC, abstractmethod
from types import TracebackType

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright_stealth import Stealth

from adaptive_job_crawler.errors import FetchError

logger = logging.getLogger(__name__)

PAGE_TIMEOUT = 30000  # milliseconds
SELECTOR_TIMEOUT = 10000  # milliseconds
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class PageFetcher(ABC):
    """
    Abstract page-fetch collaborator used by the learner and site crawlers.
    """

    @abstractmethod
    async def fetch(
        self,
        url: str,
        wait_for: str | None = None,
        wait_timeout: int = SELECTOR_TIMEOUT,
    ) -> str:
        """
        Navigate to a URL and return the rendered HTML.
        Raises FetchError on navigation failure. When wait_for is given, waits
        for that selector on a best-effort basis.
        """

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None


class PlaywrightFetcher(PageFetcher):
    """
    Fetches pages with a stealth Chromium browser.
    Owns one browser, context and page between __aenter__ and __aexit__.
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: int = PAGE_TIMEOUT,
    ) -> None:
        self.headless = headless
        self.user_agent = user_agent
        self.timeout = timeout
        self._stealth_cm = None
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("PlaywrightFetcher not entered, use 'async with'")
        return self._page

    async def __aenter__(self) -> "PlaywrightFetcher":
        self._stealth_cm = Stealth().use_async(async_playwright())
        self._playwright = await self._stealth_cm.__aenter__()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            self._context = await self._browser.new_context(
                user_agent=self.user_agent,
                viewport={"width": 1920, "height": 1080},
                locale="ko-KR",
            )
            self._page = await self._context.new_page()
        except BaseException:
            await self.__aexit__(*sys.exc_info())
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        finally:
            if self._stealth_cm is not None:
                await self._stealth_cm.__aexit__(exc_type, exc_val, exc_tb)
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None
            self._stealth_cm = None

    async def fetch(
        self,
        url: str,
        wait_for: str | None = None,
        wait_timeout: int = SELECTOR_TIMEOUT,
    ) -> str:
        """
        Navigate to a URL and return the page HTML.
        Raises FetchError on timeout, network failure or an HTTP error status.
        """
        page = self.page
        try:
            response = await page.goto(url, timeout=self.timeout, wait_until="domcontentloaded")
        except PlaywrightError as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise FetchError(url, str(e)) from e

        if response and response.status >= 400:
            logger.error(f"Failed to fetch {url}: HTTP {response.status}")
            raise FetchError(url, f"HTTP {response.status}")

        if wait_for:
            await self._wait_for_selector(page, wait_for, wait_timeout)

        return await page.content()

    @staticmethod
    async def _wait_for_selector(page: Page, selector: str, timeout: int) -> None:
        """Wait for the listing selector; an empty listing is not an error."""
        try:
            await page.wait_for_selector(selector, timeout=timeout)
        except PlaywrightError as e:
            logger.warning(f"Selector '{selector}' not found within {timeout}ms: {e}")
