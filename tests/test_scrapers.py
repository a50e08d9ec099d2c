import logging
from datetime import timedelta
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest

from adaptive_job_crawler.errors import CrawlError
from adaptive_job_crawler.models import ScrapeRequest
from adaptive_job_crawler.patterns.store import MemoryKeyValueStore, PatternStore
from adaptive_job_crawler.scrapers.incruit import IncruitCrawler
from adaptive_job_crawler.scrapers.jobkorea import JobKoreaCrawler
from adaptive_job_crawler.scrapers.jobplanet import JobPlanetCrawler
from adaptive_job_crawler.scrapers.saramin import SaraminCrawler
from adaptive_job_crawler.scrapers.wanted import WantedCrawler, experience_from_title

# Sample HTML structures resembling each site's search results

SARAMIN_HTML = """
<html>
<body>
<div class="content">
    <div class="item_recruit">
        <div class="area_job">
            <h2 class="job_tit">
                <a href="/zf_user/jobs/relay/view?view_type=search&amp;rec_idx=49152233">
                    <span>Python 백엔드 개발자</span>
                </a>
            </h2>
            <div class="job_date"><span class="date">~ 03/31(월)</span></div>
            <div class="job_condition">
                <span><a>서울</a> <a>강남구</a></span>
                <span>경력 3~5년</span>
                <span>대학교(4년)↑</span>
                <span>정규직</span>
            </div>
            <div class="job_sector"><a>Python</a><a>Django</a></div>
        </div>
        <div class="area_corp"><strong class="corp_name"><a>(주)테크코프</a></strong></div>
    </div>

    <div class="item_recruit">
        <div class="area_job">
            <h2 class="job_tit">
                <a href="/zf_user/jobs/relay/view?view_type=search&amp;rec_idx=49152234">회사명 없는 공고</a>
            </h2>
        </div>
    </div>

    <div class="item_recruit">
        <div class="area_job">
            <h2 class="job_tit">
                <a href="/zf_user/jobs/relay/view?view_type=search&amp;rec_idx=49152235">재택 프론트엔드 개발자</a>
            </h2>
            <div class="job_date"><span class="date">상시채용</span></div>
            <div class="job_condition">
                <span><a>경기</a></span>
                <span>신입</span>
                <span>학력무관</span>
                <span>재택근무</span>
            </div>
        </div>
        <div class="area_corp"><strong class="corp_name"><a>리모트랩</a></strong></div>
    </div>
</div>
</body>
</html>
"""

SARAMIN_LEARN_HTML = """
<html>
<body>
    <div class="list">
        <a href="/zf_user/jobs/relay/view?rec_idx=49152233">Python 개발자</a>
        <a href="/zf_user/jobs/relay/view?rec_idx=49152234">Java 개발자</a>
    </div>
</body>
</html>
"""

JOBKOREA_HTML = """
<html>
<body>
<ul>
    <li class="list-post">
        <div class="post-list-corp-name">
            <a href="/Recruit/GI_Read/45678901?Oem_Code=C1">Java 서버 개발자</a>
        </div>
        <div class="post-list-info">
            <span class="name">잡코리아테크</span>
            <p class="option-recruit">
                <span class="exp">경력 5년↑</span>
                <span class="loc">경기 성남시</span>
                <span class="date">D-5</span>
            </p>
        </div>
    </li>
</ul>
</body>
</html>
"""

WANTED_HTML = """
<html>
<body>
<ul>
    <li>
        <div data-job-card="">
            <a href="/wd/234567" data-position-name="시니어 백엔드 엔지니어">시니어 백엔드 엔지니어</a>
            <span class="company-name">원티드랩</span>
            <span class="location">서울 송파구</span>
            <span class="reward">합격보상금 100만원</span>
            <span class="skill-tag">Python</span>
            <span class="skill-tag">Kubernetes</span>
        </div>
    </li>
    <li>
        <div data-job-card="">
            <a href="/wd/234568" data-position-name="백엔드 개발자 (3년 이상)">백엔드 개발자 (3년 이상)</a>
            <span class="company-name">스타트업</span>
        </div>
    </li>
</ul>
</body>
</html>
"""

INCRUIT_HTML = """
<html>
<body>
<ul class="c_row">
    <li class="c_col">
        <div class="cell_first"><a class="cpname">인크루트소프트</a></div>
        <div class="cell_mid">
            <div class="cl_top">
                <a href="https://job.incruit.com/jobdb_info/jobpost.asp?job=2502110000123&amp;no=5551234">데이터 엔지니어</a>
            </div>
            <div class="cl_md">
                <span class="c_career">경력 2~4년</span>
                <span class="c_edu">대졸(4년)</span>
                <span class="c_pay">계약직</span>
                <span class="c_local">서울 마포구</span>
            </div>
        </div>
        <div class="cell_last"><span class="c_date">~2025.03.31</span></div>
    </li>
</ul>
</body>
</html>
"""

JOBPLANET_HTML = """
<html>
<body>
    <div class="job_listing_card">
        <div class="job_title"><a href="/job_postings/1234567">ML 엔지니어</a></div>
        <span class="company_name">잡플래닛랩스</span>
        <span class="location">서울 강남구</span>
        <span class="experience">경력 3년 이상</span>
        <span class="salary">5,000만원 ~ 7,000만원</span>
        <span class="deadline">상시채용</span>
        <span class="rating">4.2</span>
    </div>
    <div class="job_listing_card">
        <div class="job_title"><a href="/job_postings/1234568">QA 엔지니어</a></div>
        <span class="company_name">큐에이컴퍼니</span>
        <span class="salary">회사내규에 따름</span>
    </div>
</body>
</html>
"""


def query_of(url):
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}", {
        key: values[0] for key, values in parse_qs(parsed.query).items()
    }


def make_crawler(crawler_class, store, pattern, factory, clock):
    store.save(pattern.model_copy(update={"domain": crawler_class.DOMAIN}))
    return crawler_class(store, fetcher_factory=factory, clock=clock)


# --- Search URLs ---


def test_saramin_search_url(memory_store):
    crawler = SaraminCrawler(memory_store)
    request = ScrapeRequest(
        keyword="python",
        location="서울",
        min_experience=3,
        min_salary=4000,
        employment_type="remote",
        limit=20,
    )
    base, params = query_of(crawler.build_search_url(request))
    assert base == "https://www.saramin.co.kr/zf_user/search"
    assert params == {
        "searchword": "python",
        "loc_mcd": "101000",
        "exp_cd": "3,99",
        "sal_type": "1",
        "sal": "40000000",
        "job_type": "4",
        "count": "20",
    }


def test_saramin_search_url_omits_unknown_values(memory_store):
    crawler = SaraminCrawler(memory_store)
    _, params = query_of(crawler.build_search_url(ScrapeRequest(location="화성", limit=10)))
    assert params == {"count": "10"}


def test_jobkorea_search_url(memory_store):
    crawler = JobKoreaCrawler(memory_store)
    request = ScrapeRequest(keyword="java", location="부산", min_experience=1, max_experience=3)
    base, params = query_of(crawler.build_search_url(request))
    assert base == "https://www.jobkorea.co.kr/Search/"
    assert params == {"stext": "java", "local": "4", "exp_min": "1", "exp_max": "3"}


def test_wanted_search_url(memory_store):
    crawler = WantedCrawler(memory_store)
    request = ScrapeRequest(keyword="백엔드", location="서울", min_experience=3, industry="데이터")
    base, params = query_of(crawler.build_search_url(request))
    assert base == "https://www.wanted.co.kr/search"
    assert params == {
        "query": "백엔드",
        "locations": "locations.all.seoul",
        "years": "3",
        "job_sort": "10110",
    }


def test_incruit_search_url(memory_store):
    crawler = IncruitCrawler(memory_store)
    request = ScrapeRequest(
        keyword="데이터", location="서울", min_experience=2, max_experience=5, employment_type="정규직"
    )
    base, params = query_of(crawler.build_search_url(request))
    assert base == "https://www.incruit.com/job/search.asp"
    assert params == {"keyword": "데이터", "region": "1", "career": "2-5", "emp_type": "1"}


def test_jobplanet_search_url(memory_store):
    crawler = JobPlanetCrawler(memory_store)
    request = ScrapeRequest(
        keyword="ML",
        location="서울",
        min_experience=1,
        max_experience=4,
        min_salary=4000,
        industry="IT/소프트웨어",
    )
    base, params = query_of(crawler.build_search_url(request))
    assert base == "https://www.jobplanet.co.kr/job_postings/search"
    assert params == {
        "query": "ML",
        "location": "서울",
        "career_min": "1",
        "career_max": "4",
        "salary_min": "40000000",
        "industry": "it",
    }


# --- Listing parsing ---


def test_saramin_parse_listings(memory_store, clock):
    crawler = SaraminCrawler(memory_store, clock=clock)
    jobs = crawler.parse_listings(SARAMIN_HTML, ScrapeRequest())

    # The entry without a company is dropped
    assert len(jobs) == 2

    job = jobs[0]
    assert job.id == "saramin-49152233"
    assert job.title == "Python 백엔드 개발자"
    assert job.company == "(주)테크코프"
    assert job.company_id == "company-(주)테크코프"
    assert job.location == "서울 강남구"
    assert (job.experience.min, job.experience.max) == (3, 5)
    assert (job.salary.min, job.salary.max) == (3000, 7000)
    assert job.education == "대학교(4년)↑"
    assert job.employment_type == "정규직"
    assert job.work_type == "onsite"
    assert job.deadline == "2025-03-30T15:00:00+00:00"
    assert job.posted_at == clock().isoformat()
    assert job.skills == ["Python", "Django"]
    assert job.keywords == ["Python", "Django"]
    assert job.requirements == ["경력 3~5년", "대학교(4년)↑"]
    assert job.description == job.title
    assert job.industry == "IT/소프트웨어"
    assert job.source == "saramin"
    assert job.source_url == (
        "https://www.saramin.co.kr/zf_user/jobs/relay/view?view_type=search&rec_idx=49152233"
    )

    remote = jobs[1]
    assert remote.work_type == "remote"
    assert (remote.experience.min, remote.experience.max) == (0, 0)
    assert remote.deadline == "2026-03-01T00:00:00+00:00"


def test_parse_listings_respects_limit(memory_store, clock):
    crawler = SaraminCrawler(memory_store, clock=clock)
    jobs = crawler.parse_listings(SARAMIN_HTML, ScrapeRequest(limit=1))
    assert [job.id for job in jobs] == ["saramin-49152233"]


def test_parse_listings_without_entries(memory_store, clock):
    crawler = SaraminCrawler(memory_store, clock=clock)
    assert crawler.parse_listings("<html><body></body></html>", ScrapeRequest()) == []


def test_request_fills_location_and_industry(memory_store, clock):
    crawler = JobPlanetCrawler(memory_store, clock=clock)
    jobs = crawler.parse_listings(
        JOBPLANET_HTML, ScrapeRequest(location="부산", industry="개발")
    )
    assert jobs[0].location == "서울 강남구"
    assert jobs[1].location == "부산"
    assert jobs[1].industry == "개발"


def test_jobkorea_parse_listings(memory_store, clock):
    crawler = JobKoreaCrawler(memory_store, clock=clock)
    [job] = crawler.parse_listings(JOBKOREA_HTML, ScrapeRequest())

    assert job.id == "jobkorea-45678901"
    assert job.title == "Java 서버 개발자"
    assert job.company == "잡코리아테크"
    assert job.location == "경기 성남시"
    assert (job.experience.min, job.experience.max) == (5, 15)
    assert job.deadline == "2025-03-06T00:00:00+00:00"
    assert job.education is None
    assert job.employment_type is None
    assert job.source_url == "https://www.jobkorea.co.kr/Recruit/GI_Read/45678901?Oem_Code=C1"


def test_wanted_parse_listings(memory_store, clock):
    crawler = WantedCrawler(memory_store, clock=clock)
    senior, mid = crawler.parse_listings(WANTED_HTML, ScrapeRequest())

    assert senior.id == "wanted-234567"
    assert senior.title == "시니어 백엔드 엔지니어"
    assert senior.company == "원티드랩"
    assert senior.location == "서울 송파구"
    assert (senior.experience.min, senior.experience.max) == (5, 15)
    assert (senior.salary.min, senior.salary.max) == (3000, 8000)
    assert senior.skills == ["Python", "Kubernetes"]
    assert senior.keywords == ["Python", "Kubernetes", "추천보상금"]
    assert senior.source_url == "https://www.wanted.co.kr/wd/234567"

    assert (mid.experience.min, mid.experience.max) == (3, 13)
    assert mid.location == "서울"
    assert mid.keywords == []


@pytest.mark.parametrize(
    "title, expected",
    [
        ("신입 백엔드 개발자", (0, 0)),
        ("Junior Frontend Developer", (0, 0)),
        ("Senior Data Engineer", (5, 15)),
        ("백엔드 개발자 (5년 이상)", (5, 15)),
        ("서버 개발자 3~7년", (3, 7)),
    ],
)
def test_wanted_experience_from_title(title, expected):
    result = experience_from_title(title)
    assert (result.min, result.max) == expected


def test_wanted_experience_from_title_absent():
    assert experience_from_title("백엔드 개발자") is None
    assert experience_from_title("") is None


def test_incruit_parse_listings(memory_store, clock):
    crawler = IncruitCrawler(memory_store, clock=clock)
    [job] = crawler.parse_listings(INCRUIT_HTML, ScrapeRequest())

    assert job.id == "incruit-5551234"
    assert job.title == "데이터 엔지니어"
    assert job.company == "인크루트소프트"
    assert job.location == "서울 마포구"
    assert (job.experience.min, job.experience.max) == (2, 4)
    assert (job.salary.min, job.salary.max) == (3000, 6000)
    assert job.education == "대졸(4년)"
    assert job.employment_type == "계약직"
    assert job.work_type == "dispatch"
    assert job.deadline == "2025-03-30T15:00:00+00:00"


def test_jobplanet_parse_listings(memory_store, clock):
    crawler = JobPlanetCrawler(memory_store, clock=clock)
    rated, unrated = crawler.parse_listings(JOBPLANET_HTML, ScrapeRequest())

    assert rated.id == "jobplanet-1234567"
    assert rated.source_url == "https://www.jobplanet.co.kr/job_postings/1234567"
    assert (rated.salary.min, rated.salary.max) == (5000, 7000)
    assert (rated.experience.min, rated.experience.max) == (3, 13)
    assert rated.education == "학력무관"
    assert rated.keywords == ["평점 4.2점"]
    assert rated.deadline == "2026-03-01T00:00:00+00:00"

    assert (unrated.salary.min, unrated.salary.max) == (3000, 6000)
    assert unrated.keywords == []


def test_failing_entries_do_not_abort_batch(memory_store, clock):
    """10 listings where 3 raise during extraction yield exactly 7 jobs."""
    cards = "".join(
        f'<div class="job_listing_card">'
        f'<div class="job_title"><a href="/job_postings/{1000000 + i}">개발자 {i}</a></div>'
        f'<span class="company_name">회사 {i}</span>'
        f"</div>"
        for i in range(10)
    )
    crawler = JobPlanetCrawler(memory_store, clock=clock)
    original = crawler.extract_raw
    failing = {"1000002", "1000005", "1000009"}

    def flaky_extract(entry):
        if entry.select_one("a")["href"].rsplit("/", 1)[-1] in failing:
            raise AttributeError("unexpected markup")
        return original(entry)

    with patch.object(crawler, "extract_raw", side_effect=flaky_extract):
        jobs = crawler.parse_listings(f"<html><body>{cards}</body></html>", ScrapeRequest())

    assert len(jobs) == 7
    assert {job.id for job in jobs}.isdisjoint({f"jobplanet-{job_id}" for job_id in failing})


def test_learned_list_selector_used_when_site_selector_misses(
    memory_store, sample_pattern, clock
):
    html = """
    <div class="list">
        <div class="job_tit"><a href="/zf_user/jobs/relay/view?rec_idx=1234567">QA 엔지니어</a></div>
        <div class="corp_name"><a>큐에이랩</a></div>
    </div>
    """
    crawler = SaraminCrawler(memory_store, clock=clock)

    assert crawler.parse_listings(html, ScrapeRequest()) == []
    [job] = crawler.parse_listings(html, ScrapeRequest(), sample_pattern)
    assert job.id == "saramin-1234567"
    assert job.company == "큐에이랩"


# --- Crawl flow ---


@pytest.mark.asyncio
async def test_crawl_uses_cached_pattern(memory_store, sample_pattern, clock, make_fetcher_factory):
    factory = make_fetcher_factory(default=SARAMIN_HTML)
    crawler = make_crawler(SaraminCrawler, memory_store, sample_pattern, factory, clock)
    request = ScrapeRequest(keyword="python")

    jobs = await crawler.crawl(request)

    assert len(jobs) == 2
    # Only the search page is fetched: no learning round-trip
    [fetcher] = factory.created
    assert fetcher.calls == [(crawler.build_search_url(request), ".item_recruit")]
    assert fetcher.options["headless"] is True


@pytest.mark.asyncio
async def test_crawl_learns_pattern_on_cache_miss(memory_store, clock, make_fetcher_factory):
    factory = make_fetcher_factory(
        pages={SaraminCrawler.LEARN_URL: SARAMIN_LEARN_HTML}, default=SARAMIN_HTML
    )
    crawler = SaraminCrawler(memory_store, fetcher_factory=factory, clock=clock)

    jobs = await crawler.crawl(ScrapeRequest())

    assert len(jobs) == 2
    assert factory.created[0].calls[0][0] == SaraminCrawler.LEARN_URL
    learned = memory_store.load("saramin.co.kr")
    assert learned.detail_page_pattern == "/zf_user/jobs/relay/view?rec_idx={id}"


@pytest.mark.asyncio
async def test_crawl_learning_failure_raises_crawl_error(memory_store, make_fetcher_factory):
    crawler = SaraminCrawler(memory_store, fetcher_factory=make_fetcher_factory(error="timeout"))

    with pytest.raises(CrawlError) as exc_info:
        await crawler.crawl(ScrapeRequest())

    assert exc_info.value.site == "saramin"
    assert "timeout" in str(exc_info.value)
    assert memory_store.list_domains() == []


@pytest.mark.asyncio
async def test_crawl_fetch_failure_raises_crawl_error(
    memory_store, sample_pattern, clock, make_fetcher_factory
):
    factory = make_fetcher_factory(error="HTTP 503")
    crawler = make_crawler(WantedCrawler, memory_store, sample_pattern, factory, clock)

    with pytest.raises(CrawlError, match=r"\[wanted\].*HTTP 503"):
        await crawler.crawl(ScrapeRequest())


@pytest.mark.asyncio
async def test_crawl_browser_failure_raises_crawl_error(memory_store, sample_pattern, clock):
    def broken_factory(**kwargs):
        raise RuntimeError("executable doesn't exist")

    crawler = make_crawler(JobKoreaCrawler, memory_store, sample_pattern, broken_factory, clock)

    with pytest.raises(CrawlError, match="executable"):
        await crawler.crawl(ScrapeRequest())


@pytest.mark.asyncio
async def test_crawl_with_stale_pattern_logs_relearn_due(
    memory_store, sample_pattern, clock, make_fetcher_factory, caplog
):
    stale = sample_pattern.model_copy(
        update={"last_updated": (clock() - timedelta(days=10)).isoformat()}
    )
    memory_store.save(stale)
    factory = make_fetcher_factory(default=SARAMIN_HTML)
    crawler = SaraminCrawler(memory_store, fetcher_factory=factory, clock=clock)

    with caplog.at_level(logging.INFO):
        jobs = await crawler.crawl(ScrapeRequest())

    assert len(jobs) == 2
    assert "re-learning is due" in caplog.text
    assert len(factory.created) == 1


@pytest.mark.asyncio
async def test_crawl_caches_learned_pattern_under_site_domain(
    memory_store, clock, make_fetcher_factory
):
    """Incruit learns from job.incruit.com; the second crawl must hit the cache."""
    factory = make_fetcher_factory(
        pages={IncruitCrawler.LEARN_URL: INCRUIT_HTML}, default=INCRUIT_HTML
    )
    crawler = IncruitCrawler(memory_store, fetcher_factory=factory, clock=clock)

    await crawler.crawl(ScrapeRequest())
    await crawler.crawl(ScrapeRequest())

    assert memory_store.list_domains() == ["incruit.com"]
    learn_fetches = [
        url
        for fetcher in factory.created
        for url, _ in fetcher.calls
        if url == IncruitCrawler.LEARN_URL
    ]
    assert len(learn_fetches) == 1
    assert len(factory.created) == 3


@pytest.mark.asyncio
async def test_crawl_learns_with_crawler_user_agent(memory_store, clock, make_fetcher_factory):
    factory = make_fetcher_factory(
        pages={SaraminCrawler.LEARN_URL: SARAMIN_LEARN_HTML}, default=SARAMIN_HTML
    )
    crawler = SaraminCrawler(
        memory_store, fetcher_factory=factory, user_agent="TestAgent/1.0", clock=clock
    )

    await crawler.crawl(ScrapeRequest())

    assert [fetcher.options["user_agent"] for fetcher in factory.created] == [
        "TestAgent/1.0",
        "TestAgent/1.0",
    ]


@pytest.mark.asyncio
async def test_crawl_survives_unwritable_pattern_cache(clock, make_fetcher_factory, caplog):
    class ReadOnlyBackend(MemoryKeyValueStore):
        def set(self, key, value):
            raise OSError("read-only file system")

    store = PatternStore(ReadOnlyBackend(), clock=clock)
    factory = make_fetcher_factory(
        pages={SaraminCrawler.LEARN_URL: SARAMIN_LEARN_HTML}, default=SARAMIN_HTML
    )
    crawler = SaraminCrawler(store, fetcher_factory=factory, clock=clock)

    with caplog.at_level(logging.ERROR):
        jobs = await crawler.crawl(ScrapeRequest())

    assert len(jobs) == 2
    assert "Could not cache learned pattern" in caplog.text
