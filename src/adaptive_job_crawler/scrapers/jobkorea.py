import re

from bs4 import Tag

from adaptive_job_crawler.models import RawListingRecord, SalaryRange, ScrapeRequest
from adaptive_job_crawler.scrapers.base import SiteCrawler, select_attr, select_text

LOCATION_CODES = {
    "서울": "1",
    "경기": "2",
    "인천": "3",
    "부산": "4",
    "대구": "5",
    "대전": "6",
    "광주": "7",
    "울산": "8",
}


class JobKoreaCrawler(SiteCrawler):
    """Crawls search results from JobKorea (https://www.jobkorea.co.kr)."""

    SOURCE_NAME = "jobkorea"
    DISPLAY_NAME = "잡코리아"
    DOMAIN = "jobkorea.co.kr"
    BASE_URL = "https://www.jobkorea.co.kr"
    LEARN_URL = "https://www.jobkorea.co.kr/recruit/joblist?menucode=duty"
    SEARCH_URL = "https://www.jobkorea.co.kr/Search/"
    LIST_SELECTORS = [".list-post"]
    ID_PATTERN = re.compile(r"GI_Read/(\d+)")
    DEFAULT_SALARY = SalaryRange(min=3000, max=7000)

    def build_search_url(self, request: ScrapeRequest) -> str:
        params: list[tuple[str, str]] = []
        if request.keyword:
            params.append(("stext", request.keyword))
        if request.location and request.location in LOCATION_CODES:
            params.append(("local", LOCATION_CODES[request.location]))
        if request.min_experience is not None:
            params.append(("exp_min", str(request.min_experience)))
        if request.max_experience is not None:
            params.append(("exp_max", str(request.max_experience)))
        return self._encode(params)

    def extract_raw(self, entry: Tag) -> RawListingRecord:
        return RawListingRecord(
            title=select_text(entry, ".post-list-corp-name a"),
            link=select_attr(entry, ".post-list-corp-name a", "href"),
            company=select_text(entry, ".post-list-info .name"),
            location=select_text(entry, ".option-recruit .loc"),
            experience=select_text(entry, ".option-recruit .exp"),
            deadline=select_text(entry, ".option-recruit .date"),
        )
