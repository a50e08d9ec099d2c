import argparse
import asyncio
import json
import logging
import sys

from adaptive_job_crawler import config
from adaptive_job_crawler.errors import CrawlerError
from adaptive_job_crawler.fetcher import PlaywrightFetcher
from adaptive_job_crawler.formatter import ReportFormatter
from adaptive_job_crawler.models import ScrapeRequest
from adaptive_job_crawler.orchestrator import DEFAULT_SITES, AggregationOrchestrator
from adaptive_job_crawler.patterns.inference import OpenAICorroborator, PatternCorroborator
from adaptive_job_crawler.patterns.learner import PatternLearner
from adaptive_job_crawler.patterns.store import PatternStore, create_pattern_store
from adaptive_job_crawler.validator import validate_links_live

# Set up logging once, in the application entry point only
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger(__name__)


def build_pattern_store() -> PatternStore:
    return create_pattern_store(
        backend=config.PATTERN_CACHE_BACKEND,
        cache_dir=config.PATTERN_CACHE_DIR,
        db_path=config.PATTERN_CACHE_DB,
    )


def build_learner() -> PatternLearner:
    """Build a learner, with AI corroboration only when an API key is configured."""
    corroborator: PatternCorroborator | None = None
    if config.OPENAI_API_KEY:
        corroborator = OpenAICorroborator(
            api_key=config.OPENAI_API_KEY,
            base_url=config.OPENAI_BASE_URL,
            model=config.OPENAI_MODEL,
        )
    return PatternLearner(fetcher_factory=PlaywrightFetcher, corroborator=corroborator)


async def learn_site(url: str) -> int:
    """Learn and cache the pattern for one site."""
    store = build_pattern_store()
    learner = build_learner()
    try:
        pattern = await learner.learn(
            url,
            timeout=config.CRAWL_PAGE_TIMEOUT,
            headless=config.CRAWL_HEADLESS,
            user_agent=config.CRAWL_USER_AGENT,
        )
    except CrawlerError as e:
        logger.error(f"Pattern learning failed: {e}")
        return 1
    store.save(pattern)
    print(pattern.model_dump_json(indent=2))
    return 0


def list_patterns() -> int:
    store = build_pattern_store()
    patterns = store.get_all()
    if not patterns:
        logger.info("No cached patterns.")
    for pattern in patterns:
        fresh = "fresh" if store.is_fresh(pattern.domain) else "stale"
        print(
            f"{pattern.domain}\t{pattern.detail_page_pattern}\t"
            f"{pattern.confidence:.1%}\t{pattern.last_updated}\t{fresh}"
        )
    return 0


async def run_crawl(args: argparse.Namespace) -> int:
    """Crawl the requested sites and write the jobs as JSON."""
    request = ScrapeRequest(keyword=args.keyword, location=args.location, limit=args.limit)
    orchestrator = AggregationOrchestrator(
        build_pattern_store(),
        learner=build_learner(),
        headless=config.CRAWL_HEADLESS,
        user_agent=config.CRAWL_USER_AGENT,
        timeout=config.CRAWL_PAGE_TIMEOUT,
    )

    result = await orchestrator.crawl_all(
        request,
        args.sites,
        dedupe=not args.no_dedupe,
        validate=not args.no_validate,
    )

    if args.check_links:
        liveness = await validate_links_live(
            result.jobs,
            concurrency=config.LINK_CHECK_CONCURRENCY,
            timeout=config.LINK_CHECK_TIMEOUT,
            sample_size=args.sample,
            user_agent=config.CRAWL_USER_AGENT,
        )
        logger.info("\n" + ReportFormatter.format_liveness_report(liveness))

    output = json.dumps(
        result.model_dump(mode="json", exclude={"report"}), ensure_ascii=False, indent=2
    )
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        logger.info(f"Wrote {len(result.jobs)} jobs to {args.output}")
    else:
        print(output)

    # Non-zero only when every site failed
    return 1 if len(result.errors) == len(args.sites) else 0


def _site_list(value: str) -> list[str]:
    sites = [site.strip() for site in value.split(",") if site.strip()]
    if not sites:
        raise argparse.ArgumentTypeError("at least one site is required")
    return sites


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: '{value}'") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="adaptive-job-crawler",
        description="Crawl Korean recruiting sites with learned URL patterns.",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--learn",
        metavar="URL",
        default=None,
        help="Learn the URL pattern of a listing page, cache it and exit.",
    )
    mode.add_argument(
        "--list-patterns",
        action="store_true",
        help="List cached site patterns and exit.",
    )

    parser.add_argument(
        "--sites",
        type=_site_list,
        default=list(DEFAULT_SITES),
        help="Comma-separated site names (default: all sites).",
    )
    parser.add_argument("--keyword", default=None, help="Search keyword.")
    parser.add_argument("--location", default=None, help="Region, e.g. 서울.")
    parser.add_argument(
        "--limit", type=_positive_int, default=50, help="Maximum jobs per site (default: 50)."
    )
    parser.add_argument("--no-dedupe", action="store_true", help="Keep duplicate jobs.")
    parser.add_argument("--no-validate", action="store_true", help="Skip job validation.")
    parser.add_argument(
        "--check-links", action="store_true", help="Check that job URLs are still live."
    )
    parser.add_argument(
        "--sample",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Only check the first N links.",
    )
    parser.add_argument(
        "--output", default=None, metavar="PATH", help="Write jobs as JSON to PATH."
    )

    return parser.parse_args(argv)


def cli(argv: list[str] | None = None) -> None:
    """CLI entry point for the package."""
    args = parse_args(argv)

    try:
        if args.learn:
            code = asyncio.run(learn_site(args.learn))
        elif args.list_patterns:
            code = list_patterns()
        else:
            code = asyncio.run(run_crawl(args))
    except ValueError as e:
        # Invalid configuration values surface here
        logger.error(str(e))
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    cli()
