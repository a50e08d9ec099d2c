import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from urllib.parse import urlencode

from bs4 import BeautifulSoup, Tag

from adaptive_job_crawler.errors import (
    CrawlError,
    FetchError,
    NoCandidateLinksError,
    ParseError,
)
from adaptive_job_crawler.fetcher import (
    DEFAULT_USER_AGENT,
    PAGE_TIMEOUT,
    SELECTOR_TIMEOUT,
    PageFetcher,
    PlaywrightFetcher,
)
from adaptive_job_crawler.models import (
    ExperienceRange,
    Job,
    RawListingRecord,
    SalaryRange,
    ScrapeRequest,
    SitePattern,
)
from adaptive_job_crawler.normalize import (
    absolute_url,
    company_slug,
    determine_work_type,
    extract_job_id,
    parse_deadline,
    parse_experience,
    parse_salary,
    utcnow,
)
from adaptive_job_crawler.patterns.learner import FALLBACK_LIST_SELECTOR, PatternLearner
from adaptive_job_crawler.patterns.store import PatternStore

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "서울"
DEFAULT_INDUSTRY = "IT/소프트웨어"


class SiteCrawler(ABC):
    """
    Base class for all recruiting-site crawlers.

    A subclass describes one site: its search endpoint and query encoding,
    listing selectors, id format and default salary. The shared crawl loop
    makes sure a learned pattern is cached, fetches the search results and
    normalizes every listing entry into a Job.
    """

    SOURCE_NAME: str
    DISPLAY_NAME: str
    DOMAIN: str
    BASE_URL: str
    LEARN_URL: str
    SEARCH_URL: str
    # Listing-entry selectors, tried in order until one matches
    LIST_SELECTORS: list[str]
    ID_PATTERN: re.Pattern[str]
    DEFAULT_SALARY: SalaryRange
    DEFAULT_EDUCATION: str | None = None
    DEFAULT_EMPLOYMENT_TYPE: str | None = None

    def __init__(
        self,
        pattern_store: PatternStore,
        learner: PatternLearner | None = None,
        fetcher_factory: Callable[..., PageFetcher] = PlaywrightFetcher,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: int = PAGE_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.pattern_store = pattern_store
        self.fetcher_factory = fetcher_factory
        self.learner = learner or PatternLearner(fetcher_factory=fetcher_factory, clock=clock)
        self.headless = headless
        self.user_agent = user_agent
        self.timeout = timeout
        self.clock = clock

    @property
    def wait_selector(self) -> str:
        return ", ".join(self.LIST_SELECTORS)

    async def crawl(self, request: ScrapeRequest) -> list[Job]:
        """
        Crawl the site's search results for the request, returning at most
        request.limit jobs. Raises CrawlError when the site cannot be crawled.
        """
        pattern = await self.ensure_pattern()

        search_url = self.build_search_url(request)
        logger.info(f"[{self.SOURCE_NAME}] Crawling {search_url}")

        try:
            async with self.fetcher_factory(
                headless=self.headless, user_agent=self.user_agent, timeout=self.timeout
            ) as fetcher:
                html = await fetcher.fetch(
                    search_url, wait_for=self.wait_selector, wait_timeout=SELECTOR_TIMEOUT
                )
        except FetchError as e:
            raise CrawlError(self.SOURCE_NAME, str(e)) from e
        except Exception as e:
            raise CrawlError(self.SOURCE_NAME, f"Browser failure: {e}") from e

        jobs = self.parse_listings(html, request, pattern)
        logger.info(f"[{self.SOURCE_NAME}] Collected {len(jobs)} jobs")
        return jobs

    async def ensure_pattern(self) -> SitePattern:
        """
        Load the cached pattern for this site, learning and saving one on a miss.
        """
        pattern = self.pattern_store.load(self.DOMAIN)
        if pattern is not None:
            if not self.pattern_store.is_fresh(self.DOMAIN):
                logger.info(f"[{self.SOURCE_NAME}] Cached pattern is stale, re-learning is due")
            return pattern

        logger.info(f"[{self.SOURCE_NAME}] No cached pattern, learning from {self.LEARN_URL}")
        try:
            pattern = await self.learner.learn(
                self.LEARN_URL,
                timeout=self.timeout,
                headless=self.headless,
                user_agent=self.user_agent,
            )
        except (FetchError, NoCandidateLinksError) as e:
            raise CrawlError(self.SOURCE_NAME, f"Pattern learning failed: {e}") from e

        # The learn page can live on a subdomain; cache under the site domain
        if pattern.domain != self.DOMAIN:
            pattern = pattern.model_copy(update={"domain": self.DOMAIN})
        try:
            self.pattern_store.save(pattern)
        except (OSError, sqlite3.Error) as e:
            logger.error(f"[{self.SOURCE_NAME}] Could not cache learned pattern: {e}")
        return pattern

    @abstractmethod
    def build_search_url(self, request: ScrapeRequest) -> str:
        """Encode the request with the site's query parameters and lookup tables."""

    @abstractmethod
    def extract_raw(self, entry: Tag) -> RawListingRecord:
        """Scrape the raw text fields of one listing entry."""

    def _encode(self, params: list[tuple[str, str]]) -> str:
        return f"{self.SEARCH_URL}?{urlencode(params)}"

    def parse_listings(
        self,
        html: str,
        request: ScrapeRequest,
        pattern: SitePattern | None = None,
    ) -> list[Job]:
        """
        Parse up to request.limit listing entries. Entries that fail to parse
        are logged and dropped; the rest of the page is still processed.
        """
        soup = BeautifulSoup(html, "html.parser")
        entries = self._select_entries(soup, pattern)
        if not entries:
            logger.warning(f"[{self.SOURCE_NAME}] No listing entries found")
            return []

        now = self.clock()
        jobs: list[Job] = []
        for index, entry in enumerate(entries[: request.limit]):
            try:
                job = self._parse_entry(entry, request, pattern, index, now)
            except ParseError as e:
                logger.warning(f"[{self.SOURCE_NAME}] Skipping listing {index}: {e}")
                continue
            if job:
                jobs.append(job)
        return jobs

    def _select_entries(self, soup: BeautifulSoup, pattern: SitePattern | None) -> list[Tag]:
        for selector in self.LIST_SELECTORS:
            entries = soup.select(selector)
            if entries:
                return entries

        learned = pattern.selectors.job_list if pattern else None
        if learned and learned != FALLBACK_LIST_SELECTOR:
            entries = soup.select(learned)
            if entries:
                logger.info(f"[{self.SOURCE_NAME}] Using learned list selector '{learned}'")
                return entries
        return []

    def _parse_entry(
        self,
        entry: Tag,
        request: ScrapeRequest,
        pattern: SitePattern | None,
        index: int,
        now: datetime,
    ) -> Job | None:
        try:
            raw = self.extract_raw(entry)
            if pattern:
                self._fill_from_pattern(raw, entry, pattern)
            return self.normalize(raw, request, index, now)
        except Exception as e:
            raise ParseError(str(e)) from e

    @staticmethod
    def _fill_from_pattern(raw: RawListingRecord, entry: Tag, pattern: SitePattern) -> None:
        """Fill fields the site selectors missed using the learned selectors."""
        selectors = pattern.selectors
        if not raw.title:
            raw.title = select_text(entry, selectors.title)
        if not raw.company:
            raw.company = select_text(entry, selectors.company)
        if not raw.location:
            raw.location = select_text(entry, selectors.location)
        if not raw.link:
            link = entry.select_one("a[href]")
            raw.link = str(link["href"]) if link else ""

    def parse_experience(self, raw: RawListingRecord) -> ExperienceRange | None:
        return parse_experience(raw.experience)

    def parse_salary(self, raw: RawListingRecord) -> SalaryRange:
        # Listings without a salary get the site default range
        return parse_salary(raw.salary, self.DEFAULT_SALARY)

    def extra_keywords(self, raw: RawListingRecord) -> list[str]:
        return list(raw.skills)

    def normalize(
        self,
        raw: RawListingRecord,
        request: ScrapeRequest,
        index: int,
        now: datetime,
    ) -> Job | None:
        """Turn a raw listing into a canonical Job, or None without title/company."""
        title = raw.title.strip()
        company = raw.company.strip()
        if not title or not company:
            return None

        source_url = absolute_url(raw.link.strip(), self.BASE_URL)
        return Job(
            id=extract_job_id(self.SOURCE_NAME, source_url, self.ID_PATTERN, index, now),
            title=title,
            company=company,
            company_id=company_slug(company),
            location=raw.location or request.location or DEFAULT_LOCATION,
            salary=self.parse_salary(raw),
            experience=self.parse_experience(raw),
            education=raw.education or self.DEFAULT_EDUCATION,
            employment_type=raw.employment_type or self.DEFAULT_EMPLOYMENT_TYPE,
            work_type=determine_work_type(raw.employment_type),
            description=raw.extra.get("description") or title,
            requirements=[text for text in (raw.experience, raw.education) if text],
            skills=list(raw.skills),
            keywords=self.extra_keywords(raw),
            industry=request.industry or DEFAULT_INDUSTRY,
            deadline=parse_deadline(raw.deadline, now),
            posted_at=now.isoformat(),
            source_url=source_url,
            source=self.SOURCE_NAME,
        )


def select_text(entry: Tag, selector: str) -> str:
    """Text of the first element matching selector, or an empty string."""
    try:
        element = entry.select_one(selector)
    except ValueError:
        return ""
    return element.get_text(" ", strip=True) if element else ""


def select_attr(entry: Tag, selector: str, name: str) -> str:
    try:
        element = entry.select_one(selector)
    except ValueError:
        return ""
    if element is None:
        return ""
    value = element.get(name)
    return str(value).strip() if value else ""
