import re

from bs4 import Tag

from adaptive_job_crawler.models import RawListingRecord, SalaryRange, ScrapeRequest
from adaptive_job_crawler.scrapers.base import SiteCrawler, select_attr, select_text

INDUSTRY_CODES = {
    "IT/소프트웨어": "it",
    "개발": "development",
    "디자인": "design",
    "마케팅": "marketing",
    "영업": "sales",
}

_TITLE_LINK = ".job_title a, .tit a"
_RATING_RE = re.compile(r"\d+(?:\.\d+)?")


class JobPlanetCrawler(SiteCrawler):
    """
    Crawls search results from JobPlanet (https://www.jobplanet.co.kr).
    Listings show salary and the company's review rating.
    """

    SOURCE_NAME = "jobplanet"
    DISPLAY_NAME = "잡플래닛"
    DOMAIN = "jobplanet.co.kr"
    BASE_URL = "https://www.jobplanet.co.kr"
    LEARN_URL = "https://www.jobplanet.co.kr/job"
    SEARCH_URL = "https://www.jobplanet.co.kr/job_postings/search"
    LIST_SELECTORS = [".job_listing_card, .jply_rec_list"]
    ID_PATTERN = re.compile(r"/(\d+)")
    DEFAULT_SALARY = SalaryRange(min=3000, max=6000)
    DEFAULT_EDUCATION = "학력무관"

    def build_search_url(self, request: ScrapeRequest) -> str:
        params: list[tuple[str, str]] = []
        if request.keyword:
            params.append(("query", request.keyword))
        if request.location:
            params.append(("location", request.location))
        if request.min_experience is not None:
            params.append(("career_min", str(request.min_experience)))
        if request.max_experience is not None:
            params.append(("career_max", str(request.max_experience)))
        if request.min_salary:
            params.append(("salary_min", str(request.min_salary * 10000)))
        if request.industry and request.industry in INDUSTRY_CODES:
            params.append(("industry", INDUSTRY_CODES[request.industry]))
        return self._encode(params)

    def extract_raw(self, entry: Tag) -> RawListingRecord:
        extra = {}
        rating = select_text(entry, ".rating, .star_point")
        if rating:
            extra["rating"] = rating

        return RawListingRecord(
            title=select_text(entry, _TITLE_LINK),
            link=select_attr(entry, _TITLE_LINK, "href"),
            company=select_text(entry, ".company_name, .company"),
            location=select_text(entry, ".location, .job_spec_loc"),
            experience=select_text(entry, ".experience, .job_spec_exp"),
            education=select_text(entry, ".education, .job_spec_edu"),
            salary=select_text(entry, ".salary, .job_spec_salary"),
            deadline=select_text(entry, ".deadline, .job_date"),
            extra=extra,
        )

    def extra_keywords(self, raw: RawListingRecord) -> list[str]:
        keywords = list(raw.skills)
        match = _RATING_RE.search(raw.extra.get("rating", ""))
        if match:
            keywords.append(f"평점 {match.group(0)}점")
        return keywords
