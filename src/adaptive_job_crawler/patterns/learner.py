"""
Learns a recruiting site's detail-page URL template and listing selectors.

The template is inferred structurally: numeric runs in job-like links are
replaced with a placeholder and the most common result wins. An optional
corroborator can suggest a better template, but the majority template is
always the fallback.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from adaptive_job_crawler.errors import FetchError, NoCandidateLinksError
from adaptive_job_crawler.fetcher import (
    DEFAULT_USER_AGENT,
    PAGE_TIMEOUT,
    PageFetcher,
    PlaywrightFetcher,
)
from adaptive_job_crawler.filters import JobLinkFilter
from adaptive_job_crawler.models import SelectorSet, SitePattern
from adaptive_job_crawler.normalize import utcnow
from adaptive_job_crawler.patterns.inference import (
    MAX_SAMPLE_URLS,
    NoOpCorroborator,
    PatternCorroborator,
)

logger = logging.getLogger(__name__)

ID_PLACEHOLDER = "{id}"
# Numeric segments that vary across samples but are not the record id
NUMERIC_WILDCARD = "{n}"

_PATH_DIGITS = re.compile(r"\d+")
_QUERY_DIGITS = re.compile(r"=\d+")

LIST_SELECTOR_CANDIDATES = [
    ".job-list",
    ".recruit-list",
    "#jobList",
    ".list",
    '[class*="job"]',
    '[class*="recruit"]',
    '[class*="list"]',
    "ul.jobs",
    "div.jobs",
    "section.jobs",
]
TITLE_SELECTOR_CANDIDATES = [".job-title", ".job_tit", ".title", "h3", "h4"]
COMPANY_SELECTOR_CANDIDATES = [".company", ".company-name", ".corp_name"]
LOCATION_SELECTOR_CANDIDATES = [".location", ".area", ".loc"]

FALLBACK_LIST_SELECTOR = "body"
FALLBACK_LINK_SELECTOR = 'a[href*="job"], a[href*="recruit"]'
FALLBACK_TITLE_SELECTOR = ".job-title, .title, h3, h4"
FALLBACK_COMPANY_SELECTOR = ".company, .company-name, .corp_name"
FALLBACK_LOCATION_SELECTOR = ".location, .area, .loc"

DEFAULT_QUERY_PARAMS = {"keyword": "keyword", "location": "location", "page": "page"}


@dataclass
class LinkAnalysis:
    url: str
    text: str
    is_job_link: bool
    template: str | None


def site_domain(url: str) -> str:
    """Host name without a leading "www."."""
    host = urlparse(url).hostname or ""
    return host.removeprefix("www.")


def extract_template(url: str) -> str | None:
    """
    Replace numeric runs in the path and numeric query values with {id}.

    "/wd/123456" -> "/wd/{id}", "/view?rec_idx=98765" -> "/view?rec_idx={id}"
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    path = _PATH_DIGITS.sub(ID_PLACEHOLDER, parsed.path)
    if parsed.query:
        return path + "?" + _QUERY_DIGITS.sub("=" + ID_PLACEHOLDER, parsed.query)
    return path


def compile_template(template: str) -> str:
    """Turn a template into a regex that accepts any digits in place of placeholders."""
    regex = re.escape(template)
    for placeholder in (ID_PLACEHOLDER, NUMERIC_WILDCARD):
        regex = regex.replace(re.escape(placeholder), r"\d+")
    return regex


def rank_templates(urls: list[str]) -> list[tuple[str, int]]:
    """
    Count structural templates across URLs, most common first.
    Ties keep first-seen order.
    """
    counts: dict[str, int] = {}
    for url in urls:
        template = extract_template(url)
        if template:
            counts[template] = counts.get(template, 0) + 1
    return sorted(counts.items(), key=lambda item: -item[1])


def _reduce_placeholders(template: str, urls: list[str]) -> str:
    """
    Keep exactly one {id} in a multi-placeholder template.

    The position whose values vary most across the sample URLs is the record
    id. Other positions are restored to their literal value when constant, or
    become a numeric wildcard when they vary too.
    """
    count = template.count(ID_PLACEHOLDER)
    if count <= 1:
        return template

    capture = re.escape(template).replace(re.escape(ID_PLACEHOLDER), r"(\d+)")
    matcher = re.compile(capture)
    samples = []
    for url in urls:
        parsed = urlparse(url)
        target = parsed.path + ("?" + parsed.query if parsed.query else "")
        match = matcher.fullmatch(target)
        if match:
            samples.append(match.groups())
    if not samples:
        return template

    distinct = [len({s[i] for s in samples}) for i in range(count)]
    # Most distinct values first, then longest value, then the rightmost position
    id_position = max(range(count), key=lambda i: (distinct[i], len(samples[0][i]), i))

    pieces = template.split(ID_PLACEHOLDER)
    result = pieces[0]
    for i in range(count):
        if i == id_position:
            result += ID_PLACEHOLDER
        elif distinct[i] == 1:
            result += samples[0][i]
        else:
            result += NUMERIC_WILDCARD
        result += pieces[i + 1]
    return result


def collect_links(
    html: str,
    page_url: str,
    domain: str,
    link_filter: JobLinkFilter | None = None,
) -> list[LinkAnalysis]:
    """Collect same-domain anchors from a page and classify them."""
    link_filter = link_filter or JobLinkFilter()
    soup = BeautifulSoup(html, "html.parser")

    links = []
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.startswith(("javascript:", "mailto:", "#")):
            continue
        url = urljoin(page_url, href)
        host = urlparse(url).hostname or ""
        if domain not in host:
            continue
        text = anchor.get_text(strip=True)
        links.append(
            LinkAnalysis(
                url=url,
                text=text,
                is_job_link=link_filter.is_job_link(url, text),
                template=extract_template(url),
            )
        )
    return links


def _first_matching(soup: BeautifulSoup, candidates: list[str], fallback: str) -> str:
    for selector in candidates:
        try:
            if soup.select(selector):
                return selector
        except ValueError as e:
            logger.debug(f"Skipping unsupported selector '{selector}': {e}")
    return fallback


def detect_selectors(html: str) -> SelectorSet:
    """
    Probe common listing selectors against the document.
    Every category falls back to a generic selector instead of failing.
    """
    soup = BeautifulSoup(html, "html.parser")
    job_list = _first_matching(soup, LIST_SELECTOR_CANDIDATES, FALLBACK_LIST_SELECTOR)
    job_link = (
        f"{job_list} a" if job_list != FALLBACK_LIST_SELECTOR else FALLBACK_LINK_SELECTOR
    )
    return SelectorSet(
        job_list=job_list,
        job_link=job_link,
        title=_first_matching(soup, TITLE_SELECTOR_CANDIDATES, FALLBACK_TITLE_SELECTOR),
        company=_first_matching(soup, COMPANY_SELECTOR_CANDIDATES, FALLBACK_COMPANY_SELECTOR),
        location=_first_matching(soup, LOCATION_SELECTOR_CANDIDATES, FALLBACK_LOCATION_SELECTOR),
    )


def matches_pattern(pattern: SitePattern, url: str) -> bool:
    return re.search(pattern.detail_page_regex, url) is not None


def generate_url(pattern: SitePattern, job_id: str) -> str:
    return f"https://{pattern.domain}{pattern.detail_page_pattern.replace(ID_PLACEHOLDER, job_id)}"


def _accepts_all(template: str, urls: list[str]) -> bool:
    if not template.startswith("/") or template.count(ID_PLACEHOLDER) != 1:
        return False
    regex = re.compile(compile_template(template))
    return all(regex.search(url) for url in urls)


class PatternLearner:
    """
    Derives a SitePattern from a site's listing page.
    Has no side effects: the caller decides whether to persist the result.
    """

    def __init__(
        self,
        fetcher_factory: Callable[..., PageFetcher] = PlaywrightFetcher,
        corroborator: PatternCorroborator | None = None,
        link_filter: JobLinkFilter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.fetcher_factory = fetcher_factory
        self.corroborator = corroborator or NoOpCorroborator()
        self.link_filter = link_filter or JobLinkFilter()
        self.clock = clock

    async def learn(
        self,
        site_url: str,
        timeout: int = PAGE_TIMEOUT,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> SitePattern:
        """
        Learn the URL pattern of a recruiting site.

        Raises FetchError if the page cannot be loaded and
        NoCandidateLinksError if it contains no job-like links with a
        numeric record id.
        """
        logger.info(f"Learning URL pattern for {site_url}")
        html = await self._fetch(site_url, timeout, headless, user_agent)
        domain = site_domain(site_url)

        links = collect_links(html, site_url, domain, self.link_filter)
        job_links = [link for link in links if link.is_job_link]
        logger.info(f"Found {len(links)} links on {domain}, {len(job_links)} job-like")
        if not job_links:
            raise NoCandidateLinksError(site_url)

        # A template without {id} would only ever match the one posting it came from
        candidates = [
            link.url for link in job_links if link.template and ID_PLACEHOLDER in link.template
        ]
        if not candidates:
            logger.warning(f"No job-like link on {domain} carries a numeric record id")
            raise NoCandidateLinksError(site_url)

        template, confidence = await self._choose_template(candidates)
        logger.info(f"Learned pattern for {domain}: {template} (confidence {confidence:.1%})")

        now = self.clock().isoformat()
        return SitePattern(
            domain=domain,
            list_page_pattern=urlparse(site_url).path,
            detail_page_pattern=template,
            detail_page_regex=compile_template(template),
            query_params=dict(DEFAULT_QUERY_PARAMS),
            selectors=detect_selectors(html),
            confidence=confidence,
            created_at=now,
            last_updated=now,
        )

    async def _fetch(self, site_url: str, timeout: int, headless: bool, user_agent: str) -> str:
        try:
            async with self.fetcher_factory(
                headless=headless, user_agent=user_agent, timeout=timeout
            ) as fetcher:
                return await fetcher.fetch(site_url)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(site_url, str(e)) from e

    async def _choose_template(self, job_urls: list[str]) -> tuple[str, float]:
        ranked = rank_templates(job_urls)
        if not ranked:
            raise NoCandidateLinksError(job_urls[0] if job_urls else "")

        majority, count = ranked[0]
        confidence = count / len(job_urls)
        training = [url for url in job_urls if extract_template(url) == majority]
        majority = _reduce_placeholders(majority, training)

        suggestion = await self.corroborator.corroborate(job_urls[:MAX_SAMPLE_URLS])
        if suggestion and suggestion.pattern != majority:
            if suggestion.pattern.count(ID_PLACEHOLDER) == 1 and _accepts_all(
                suggestion.pattern, training
            ):
                logger.info(f"Using corroborated pattern {suggestion.pattern}")
                return suggestion.pattern, suggestion.confidence or confidence
            logger.warning(
                f"Ignoring corroborated pattern {suggestion.pattern}: "
                f"needs exactly one {ID_PLACEHOLDER} and must match the training URLs"
            )
        return majority, confidence
