import os
from datetime import UTC, datetime

import pytest

# Keep tests independent of any local .env before source imports happen
os.environ["PATTERN_CACHE_BACKEND"] = "file"
os.environ.pop("OPENAI_API_KEY", None)

from adaptive_job_crawler.errors import FetchError  # noqa: E402
from adaptive_job_crawler.fetcher import PageFetcher  # noqa: E402
from adaptive_job_crawler.models import (  # noqa: E402
    ExperienceRange,
    Job,
    SalaryRange,
    SelectorSet,
    SitePattern,
)
from adaptive_job_crawler.patterns.store import MemoryKeyValueStore, PatternStore  # noqa: E402

FIXED_NOW = datetime(2025, 3, 1, 0, 0, tzinfo=UTC)


class FakeFetcher(PageFetcher):
    """
    In-memory PageFetcher. Returns `pages[url]`, or `default` for unknown
    URLs; raises FetchError when `error` is set.
    """

    def __init__(self, pages=None, default="", error=None, **kwargs):
        self.pages = pages or {}
        self.default = default
        self.error = error
        self.options = kwargs
        self.calls = []

    async def fetch(self, url, wait_for=None, wait_timeout=10000):
        self.calls.append((url, wait_for))
        if self.error:
            raise FetchError(url, self.error)
        return self.pages.get(url, self.default)


def fetcher_factory(pages=None, default="", error=None):
    """Build a factory with the PlaywrightFetcher signature that records every fetcher."""
    created = []

    def factory(**kwargs):
        fetcher = FakeFetcher(pages=pages, default=default, error=error, **kwargs)
        created.append(fetcher)
        return fetcher

    factory.created = created
    return factory


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def memory_store(clock):
    """A PatternStore over an in-memory backend with a fixed clock."""
    return PatternStore(MemoryKeyValueStore(), clock=clock)


@pytest.fixture
def sample_pattern():
    """A reusable learned pattern for saramin.co.kr."""
    return SitePattern(
        domain="saramin.co.kr",
        list_page_pattern="/zf_user/jobs/list/job-category",
        detail_page_pattern="/zf_user/jobs/relay/view?rec_idx={id}",
        detail_page_regex=r"/zf_user/jobs/relay/view\?rec_idx=\d+",
        query_params={"keyword": "keyword", "location": "location", "page": "page"},
        selectors=SelectorSet(
            job_list=".list",
            job_link=".list a",
            title=".job_tit",
            company=".corp_name",
            location=".area",
        ),
        confidence=0.9,
        created_at=FIXED_NOW.isoformat(),
        last_updated=FIXED_NOW.isoformat(),
    )


@pytest.fixture
def sample_job():
    """A reusable valid Job for tests."""
    return Job(
        id="saramin-49152233",
        title="백엔드 개발자 (Python)",
        company="테크코프",
        company_id="company-테크코프",
        location="서울 강남구",
        salary=SalaryRange(min=4000, max=6000),
        experience=ExperienceRange(min=3, max=5),
        education="학력무관",
        employment_type="정규직",
        work_type="onsite",
        description="Python 백엔드 서비스를 개발할 엔지니어를 찾습니다.",
        requirements=["경력 3~5년"],
        skills=["Python", "Django"],
        keywords=["Python", "Django"],
        industry="IT/소프트웨어",
        deadline="2025-03-31T00:00:00+00:00",
        posted_at=FIXED_NOW.isoformat(),
        source_url="https://www.saramin.co.kr/zf_user/jobs/relay/view?rec_idx=49152233",
        source="saramin",
    )


@pytest.fixture
def make_fetcher_factory():
    return fetcher_factory
