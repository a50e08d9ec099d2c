import re

from bs4 import Tag

from adaptive_job_crawler.models import (
    ExperienceRange,
    RawListingRecord,
    SalaryRange,
    ScrapeRequest,
)
from adaptive_job_crawler.normalize import parse_experience
from adaptive_job_crawler.scrapers.base import SiteCrawler, select_attr, select_text

LOCATION_TAGS = {
    "서울": "locations.all.seoul",
    "경기": "locations.all.gyeonggi",
    "부산": "locations.all.busan",
    "대구": "locations.all.daegu",
    "인천": "locations.all.incheon",
    "광주": "locations.all.gwangju",
    "대전": "locations.all.daejeon",
    "울산": "locations.all.ulsan",
    "세종": "locations.all.sejong",
}

JOB_SORT_CODES = {
    "IT/소프트웨어": "518",
    "개발": "518",
    "데이터": "10110",
    "AI": "10111",
    "디자인": "2",
    "마케팅": "523",
}

REFERRAL_REWARD_KEYWORD = "추천보상금"
MAX_SKILL_LENGTH = 20

_TITLE_LINK = "a[data-position-name], a.job-card-title, h2 a"
_SENIOR_RE = re.compile(r"시니어|senior", re.IGNORECASE)
_JUNIOR_RE = re.compile(r"신입|junior|경력\s*무관", re.IGNORECASE)
_YEARS_AT_LEAST_RE = re.compile(r"(\d+)\s*년\s*이상")
_YEARS_RANGE_RE = re.compile(r"(\d+)\s*~\s*(\d+)\s*년")


def experience_from_title(title: str) -> ExperienceRange | None:
    """
    Wanted listings carry no experience column, so infer it from the title:
    "신입"/"Junior" -> 0~0, "시니어"/"Senior" -> 5~15, "N년 이상", "N~M년".
    """
    if not title:
        return None
    if _JUNIOR_RE.search(title):
        return ExperienceRange(min=0, max=0)
    if _SENIOR_RE.search(title):
        return ExperienceRange(min=5, max=15)
    match = _YEARS_AT_LEAST_RE.search(title)
    if match:
        return parse_experience(match.group(0))
    match = _YEARS_RANGE_RE.search(title)
    if match:
        return parse_experience(match.group(0))
    return None


class WantedCrawler(SiteCrawler):
    """
    Crawls search results from Wanted (https://www.wanted.co.kr).
    Wanted is a single-page app whose card markup changes often, so several
    card selectors are tried in order.
    """

    SOURCE_NAME = "wanted"
    DISPLAY_NAME = "원티드"
    DOMAIN = "wanted.co.kr"
    BASE_URL = "https://www.wanted.co.kr"
    LEARN_URL = "https://www.wanted.co.kr/wdlist/518"
    SEARCH_URL = "https://www.wanted.co.kr/search"
    LIST_SELECTORS = [
        "[data-job-card]",
        ".JobCard_container",
        '[class*="JobCard"]',
        'li[data-cy="job-card"]',
    ]
    ID_PATTERN = re.compile(r"/wd/(\d+)")
    DEFAULT_SALARY = SalaryRange(min=3000, max=8000)

    def build_search_url(self, request: ScrapeRequest) -> str:
        params: list[tuple[str, str]] = []
        if request.keyword:
            params.append(("query", request.keyword))
        if request.location and request.location in LOCATION_TAGS:
            params.append(("locations", LOCATION_TAGS[request.location]))
        if request.min_experience is not None:
            params.append(("years", str(request.min_experience)))
        if request.industry and request.industry in JOB_SORT_CODES:
            params.append(("job_sort", JOB_SORT_CODES[request.industry]))
        return self._encode(params)

    def extract_raw(self, entry: Tag) -> RawListingRecord:
        title = (
            select_text(entry, _TITLE_LINK)
            or select_attr(entry, "[data-position-name]", "data-position-name")
            or select_text(entry, "h2, h3, .title")
        )
        link = select_attr(entry, _TITLE_LINK, "href") or select_attr(entry, "a", "href")

        skills = []
        for element in entry.select('[class*="skill"], [class*="tag"], .tag'):
            skill = element.get_text(strip=True)
            if skill and len(skill) < MAX_SKILL_LENGTH:
                skills.append(skill)

        extra = {}
        reward = select_text(entry, '[class*="reward"], [class*="compensation"]')
        if reward:
            extra["reward"] = reward

        return RawListingRecord(
            title=title,
            link=link,
            company=select_text(entry, "[data-company-name], .company-name, .company"),
            location=select_text(entry, "[data-location], .location, .region"),
            skills=skills,
            extra=extra,
        )

    def parse_experience(self, raw: RawListingRecord) -> ExperienceRange | None:
        return experience_from_title(raw.title)

    def extra_keywords(self, raw: RawListingRecord) -> list[str]:
        keywords = list(raw.skills)
        if "원" in raw.extra.get("reward", ""):
            keywords.append(REFERRAL_REWARD_KEYWORD)
        return keywords
