import re

from bs4 import Tag

from adaptive_job_crawler.models import RawListingRecord, SalaryRange, ScrapeRequest
from adaptive_job_crawler.scrapers.base import SiteCrawler, select_attr, select_text

REGION_CODES = {
    "서울": "1",
    "경기": "2",
    "인천": "3",
    "부산": "4",
    "대구": "5",
    "대전": "6",
    "광주": "7",
    "울산": "8",
    "세종": "9",
    "강원": "10",
    "충북": "11",
    "충남": "12",
    "전북": "13",
    "전남": "14",
    "경북": "15",
    "경남": "16",
    "제주": "17",
}

EMPLOYMENT_TYPE_CODES = {
    "정규직": "1",
    "계약직": "2",
    "파견직": "3",
    "인턴": "4",
    "아르바이트": "5",
}

_TITLE_LINK = ".cl_top a, .job_name a"


class IncruitCrawler(SiteCrawler):
    """Crawls search results from Incruit (https://www.incruit.com)."""

    SOURCE_NAME = "incruit"
    DISPLAY_NAME = "인크루트"
    DOMAIN = "incruit.com"
    BASE_URL = "https://www.incruit.com"
    LEARN_URL = "https://job.incruit.com/jobdb_list/searchjob.asp?occ1=150"
    SEARCH_URL = "https://www.incruit.com/job/search.asp"
    LIST_SELECTORS = [".c_col"]
    ID_PATTERN = re.compile(r"no=(\d+)")
    DEFAULT_SALARY = SalaryRange(min=3000, max=6000)
    DEFAULT_EDUCATION = "학력무관"
    DEFAULT_EMPLOYMENT_TYPE = "정규직"

    def build_search_url(self, request: ScrapeRequest) -> str:
        params: list[tuple[str, str]] = []
        if request.keyword:
            params.append(("keyword", request.keyword))
        if request.location and request.location in REGION_CODES:
            params.append(("region", REGION_CODES[request.location]))
        if request.min_experience is not None or request.max_experience is not None:
            low = request.min_experience or 0
            high = request.max_experience if request.max_experience is not None else 99
            params.append(("career", f"{low}-{high}"))
        if request.employment_type and request.employment_type in EMPLOYMENT_TYPE_CODES:
            params.append(("emp_type", EMPLOYMENT_TYPE_CODES[request.employment_type]))
        return self._encode(params)

    def extract_raw(self, entry: Tag) -> RawListingRecord:
        return RawListingRecord(
            title=select_text(entry, _TITLE_LINK),
            link=select_attr(entry, _TITLE_LINK, "href"),
            company=select_text(entry, ".cpname, .company_name"),
            location=select_text(entry, ".c_local, .location"),
            experience=select_text(entry, ".c_career, .career"),
            education=select_text(entry, ".c_edu, .education"),
            employment_type=select_text(entry, ".c_pay, .employment_type"),
            deadline=select_text(entry, ".c_date, .end_date"),
        )
