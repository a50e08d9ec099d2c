import re

from bs4 import Tag

from adaptive_job_crawler.models import RawListingRecord, SalaryRange, ScrapeRequest
from adaptive_job_crawler.scrapers.base import SiteCrawler, select_attr, select_text

LOCATION_CODES = {
    "서울": "101000",
    "경기": "102000",
    "광주": "103000",
    "대구": "104000",
    "대전": "105000",
    "부산": "106000",
    "울산": "107000",
    "인천": "108000",
    "강원": "109000",
    "충남": "110000",
    "충북": "111000",
    "전북": "112000",
    "전남": "113000",
    "경북": "114000",
    "경남": "115000",
    "제주": "116000",
    "세종": "118000",
}

JOB_TYPE_CODES = {
    "onsite": "1",
    "dispatch": "3",
    "remote": "4",
}


class SaraminCrawler(SiteCrawler):
    """
    Crawls search results from Saramin (https://www.saramin.co.kr).
    Saramin does not show salaries on the listing page.
    """

    SOURCE_NAME = "saramin"
    DISPLAY_NAME = "사람인"
    DOMAIN = "saramin.co.kr"
    BASE_URL = "https://www.saramin.co.kr"
    LEARN_URL = "https://www.saramin.co.kr/zf_user/jobs/list/job-category?cat_cd=214"
    SEARCH_URL = "https://www.saramin.co.kr/zf_user/search"
    LIST_SELECTORS = [".item_recruit"]
    ID_PATTERN = re.compile(r"rec_idx=(\d+)")
    DEFAULT_SALARY = SalaryRange(min=3000, max=7000)
    DEFAULT_EDUCATION = "학력무관"
    DEFAULT_EMPLOYMENT_TYPE = "정규직"

    def build_search_url(self, request: ScrapeRequest) -> str:
        params: list[tuple[str, str]] = []
        if request.keyword:
            params.append(("searchword", request.keyword))
        if request.location and request.location in LOCATION_CODES:
            params.append(("loc_mcd", LOCATION_CODES[request.location]))
        if request.min_experience is not None or request.max_experience is not None:
            low = request.min_experience or 0
            high = request.max_experience if request.max_experience is not None else 99
            params.append(("exp_cd", f"{low},{high}"))
        if request.min_salary:
            params.append(("sal_type", "1"))
            params.append(("sal", str(request.min_salary * 10000)))
        if request.employment_type and request.employment_type in JOB_TYPE_CODES:
            params.append(("job_type", JOB_TYPE_CODES[request.employment_type]))
        params.append(("count", str(request.limit)))
        return self._encode(params)

    def extract_raw(self, entry: Tag) -> RawListingRecord:
        # Condition spans are positional: location, experience, education, employment type
        conditions = [
            span.get_text(" ", strip=True) for span in entry.select(".job_condition > span")
        ]
        conditions += [""] * (4 - len(conditions))

        return RawListingRecord(
            title=select_text(entry, ".job_tit a"),
            link=select_attr(entry, ".job_tit a", "href"),
            company=select_text(entry, ".corp_name a"),
            location=conditions[0],
            experience=conditions[1],
            education=conditions[2],
            employment_type=conditions[3],
            deadline=select_text(entry, ".job_date .date"),
            skills=[
                a.get_text(strip=True)
                for a in entry.select(".job_sector a")
                if a.get_text(strip=True)
            ],
        )
