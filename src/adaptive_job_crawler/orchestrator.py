import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from adaptive_job_crawler.errors import CrawlError
from adaptive_job_crawler.fetcher import (
    DEFAULT_USER_AGENT,
    PAGE_TIMEOUT,
    PageFetcher,
    PlaywrightFetcher,
)
from adaptive_job_crawler.formatter import format_validation_report
from adaptive_job_crawler.models import CrawlAllResult, Job, ScrapeRequest
from adaptive_job_crawler.normalize import utcnow
from adaptive_job_crawler.patterns.learner import PatternLearner
from adaptive_job_crawler.patterns.store import PatternStore
from adaptive_job_crawler.scrapers.base import SiteCrawler
from adaptive_job_crawler.scrapers.incruit import IncruitCrawler
from adaptive_job_crawler.scrapers.jobkorea import JobKoreaCrawler
from adaptive_job_crawler.scrapers.jobplanet import JobPlanetCrawler
from adaptive_job_crawler.scrapers.saramin import SaraminCrawler
from adaptive_job_crawler.scrapers.wanted import WantedCrawler
from adaptive_job_crawler.validator import dedupe as dedupe_jobs
from adaptive_job_crawler.validator import validate_batch

logger = logging.getLogger(__name__)

DEFAULT_SITES = ["saramin", "jobkorea", "wanted", "incruit", "jobplanet"]

SITE_CRAWLERS: dict[str, type[SiteCrawler]] = {
    "saramin": SaraminCrawler,
    "jobkorea": JobKoreaCrawler,
    "wanted": WantedCrawler,
    "incruit": IncruitCrawler,
    "jobplanet": JobPlanetCrawler,
    "사람인": SaraminCrawler,
    "잡코리아": JobKoreaCrawler,
    "원티드": WantedCrawler,
    "인크루트": IncruitCrawler,
    "잡플래닛": JobPlanetCrawler,
}


def get_crawler(name: str) -> type[SiteCrawler]:
    """Look up a crawler class by site name or Korean alias."""
    key = name.strip()
    crawler = SITE_CRAWLERS.get(key) or SITE_CRAWLERS.get(key.lower())
    if crawler is None:
        raise KeyError(f"Unknown site: {name}")
    return crawler


class AggregationOrchestrator:
    """
    Runs several site crawlers concurrently and merges their results.
    One site failing never affects the others.
    """

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
        self.learner = learner
        self.fetcher_factory = fetcher_factory
        self.headless = headless
        self.user_agent = user_agent
        self.timeout = timeout
        self.clock = clock

    def build_crawler(self, name: str) -> SiteCrawler:
        crawler_class = get_crawler(name)
        return crawler_class(
            self.pattern_store,
            learner=self.learner,
            fetcher_factory=self.fetcher_factory,
            headless=self.headless,
            user_agent=self.user_agent,
            timeout=self.timeout,
            clock=self.clock,
        )

    async def _run_site(self, name: str, request: ScrapeRequest) -> list[Job]:
        crawler = self.build_crawler(name)
        return await crawler.crawl(request)

    async def crawl_all(
        self,
        request: ScrapeRequest,
        sites: list[str] | None = None,
        *,
        dedupe: bool = True,
        validate: bool = True,
        drop_invalid: bool = True,
    ) -> CrawlAllResult:
        """
        Crawl every requested site concurrently.

        Jobs are concatenated in site order, then optionally deduplicated
        and validated. Failed and unknown sites are reported in `errors`.
        """
        sites = sites or DEFAULT_SITES
        result = CrawlAllResult()

        runnable: list[str] = []
        for name in sites:
            try:
                get_crawler(name)
            except KeyError as e:
                logger.error(f"Skipping unknown site '{name}'")
                result.errors[name] = str(e.args[0])
                result.per_site_counts[name] = 0
                continue
            runnable.append(name)

        logger.info(f"Crawling {len(runnable)} sites: {', '.join(runnable)}")
        outcomes = await asyncio.gather(
            *(self._run_site(name, request) for name in runnable),
            return_exceptions=True,
        )

        jobs: list[Job] = []
        for name, outcome in zip(runnable, outcomes, strict=True):
            if isinstance(outcome, CrawlError):
                logger.error(f"Crawl failed: {outcome}")
                result.errors[name] = str(outcome)
                result.per_site_counts[name] = 0
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.per_site_counts[name] = len(outcome)
                jobs.extend(outcome)

        if dedupe:
            deduped = dedupe_jobs(jobs)
            if deduped.duplicate_count:
                logger.info(f"Removed {deduped.duplicate_count} duplicate jobs")
            jobs = deduped.unique

        if validate:
            report = validate_batch(jobs, now=self.clock())
            logger.info("\n" + format_validation_report(report))
            result.report = report
            if drop_invalid:
                jobs = [
                    job for job, detail in zip(jobs, report.details, strict=True) if detail.valid
                ]

        result.jobs = jobs
        logger.info(
            f"Crawl finished. "
            f"Sites: {len(sites)}, "
            f"Failed: {len(result.errors)}, "
            f"Jobs: {len(jobs)}"
        )
        return result


async def crawl_all(
    request: ScrapeRequest,
    sites: list[str] | None = None,
    *,
    pattern_store: PatternStore,
    dedupe: bool = True,
    validate: bool = True,
    drop_invalid: bool = True,
    **crawler_options,
) -> CrawlAllResult:
    """Convenience wrapper around AggregationOrchestrator.crawl_all."""
    orchestrator = AggregationOrchestrator(pattern_store, **crawler_options)
    return await orchestrator.crawl_all(
        request, sites, dedupe=dedupe, validate=validate, drop_invalid=drop_invalid
    )
