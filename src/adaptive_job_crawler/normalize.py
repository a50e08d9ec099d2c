"""
Pure normalization helpers shared by every site crawler.

Each parser accepts either raw listing text or an already-canonical value,
and returns canonical values unchanged, so normalizing twice is harmless.
"""

import logging
import re
from datetime import UTC, datetime, timedelta, timezone
from urllib.parse import urljoin

from adaptive_job_crawler.models import ExperienceRange, SalaryRange, WorkType

logger = logging.getLogger(__name__)

# Korean recruiting sites publish dates in KST
KST = timezone(timedelta(hours=9))

DEFAULT_DEADLINE_DAYS = 30
ALWAYS_OPEN_DAYS = 365
OPEN_ENDED_EXPERIENCE_SPAN = 10
BARE_EXPERIENCE_SPAN = 3
SALARY_FLOOR_SPAN = 3000
SALARY_AMOUNT_SPAN = 2000
MIN_PLAUSIBLE_SALARY = 1000  # 10M KRW

ALWAYS_OPEN_MARKERS = ("상시", "채용시", "always", "rolling")
ENTRY_LEVEL_MARKERS = ("신입", "무관", "entry", "no experience")
UNDISCLOSED_SALARY_MARKERS = ("내규", "면접", "협의", "negotiable")
REMOTE_MARKERS = ("재택", "원격", "remote")
DISPATCH_MARKERS = ("파견", "계약", "dispatch")

_FULL_DATE_RE = re.compile(r"(\d{4})\s*[-./]\s*(\d{1,2})\s*[-./]\s*(\d{1,2})")
_MONTH_DAY_RE = re.compile(r"(\d{1,2})\s*[./]\s*(\d{1,2})")
_D_DAY_RE = re.compile(r"D\s*-\s*(\d+)", re.IGNORECASE)

_EXPERIENCE_RANGE_RE = re.compile(r"(\d+)\s*년?\s*~\s*(\d+)")
_EXPERIENCE_MIN_RE = re.compile(r"(\d+)\s*년?\s*(?:이상|↑|\+)")
_EXPERIENCE_YEARS_RE = re.compile(r"(\d+)\s*년")

_SALARY_RANGE_RE = re.compile(r"(\d+)\s*(?:만\s*원?)?\s*~\s*(\d+)")
_SALARY_MIN_RE = re.compile(r"(\d+)\s*(?:만\s*원?)?\s*이상")
_SALARY_AMOUNT_RE = re.compile(r"(\d+)")


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _iso(dt: datetime) -> str:
    return dt.astimezone(UTC).isoformat()


def _parse_iso_instant(text: str) -> datetime | None:
    if "T" not in text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_deadline(text: str | None, now: datetime | None = None) -> str:
    """
    Convert deadline text into an ISO-8601 instant.

    Supported forms: "상시" (always open, +365 days), "2025-03-31" or
    "2025.03.31", "~03/31" or "03.31" (current year), "D-5" (+5 days),
    and ISO instants, which are returned as-is. Anything else falls back
    to 30 days from now.
    """
    now = now or utcnow()
    default = _iso(now + timedelta(days=DEFAULT_DEADLINE_DAYS))

    if not text or not text.strip():
        return default
    text = text.strip()

    iso = _parse_iso_instant(text)
    if iso is not None:
        return _iso(iso)

    lowered = text.lower()
    if any(marker in lowered for marker in ALWAYS_OPEN_MARKERS):
        return _iso(now + timedelta(days=ALWAYS_OPEN_DAYS))

    try:
        full = _FULL_DATE_RE.search(text)
        if full:
            year, month, day = (int(g) for g in full.groups())
            return _iso(datetime(year, month, day, tzinfo=KST))

        d_day = _D_DAY_RE.search(text)
        if d_day:
            return _iso(now + timedelta(days=int(d_day.group(1))))

        month_day = _MONTH_DAY_RE.search(text)
        if month_day:
            month, day = (int(g) for g in month_day.groups())
            year = now.astimezone(KST).year
            return _iso(datetime(year, month, day, tzinfo=KST))
    except ValueError as e:
        logger.debug(f"Invalid calendar date in deadline '{text}': {e}")

    return default


def parse_experience(text: str | ExperienceRange | None) -> ExperienceRange | None:
    """
    Convert experience text into a year range.

    "신입"/"경력무관" -> 0~0, "3~5년" -> 3~5, "5년 이상" -> 5~15,
    bare "3년" -> 3~6. Unparseable text yields None.
    """
    if isinstance(text, ExperienceRange):
        return text
    if not text or not text.strip():
        return None

    lowered = text.lower()
    if any(marker in lowered for marker in ENTRY_LEVEL_MARKERS):
        return ExperienceRange(min=0, max=0)

    match = _EXPERIENCE_RANGE_RE.search(text)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        return ExperienceRange(min=min(low, high), max=max(low, high))

    match = _EXPERIENCE_MIN_RE.search(text)
    if match:
        years = int(match.group(1))
        return ExperienceRange(min=years, max=years + OPEN_ENDED_EXPERIENCE_SPAN)

    match = _EXPERIENCE_YEARS_RE.search(text)
    if match:
        years = int(match.group(1))
        return ExperienceRange(min=years, max=years + BARE_EXPERIENCE_SPAN)

    return None


def parse_salary(text: str | SalaryRange | None, default: SalaryRange) -> SalaryRange:
    """
    Convert salary text (in 만원) into a range, substituting the site
    default when the listing omits or withholds the salary.
    """
    if isinstance(text, SalaryRange):
        return text
    if not text or not text.strip():
        return default

    if any(marker in text for marker in UNDISCLOSED_SALARY_MARKERS):
        return default

    cleaned = text.replace(",", "")

    match = _SALARY_RANGE_RE.search(cleaned)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        return SalaryRange(min=min(low, high), max=max(low, high))

    match = _SALARY_MIN_RE.search(cleaned)
    if match:
        low = int(match.group(1))
        return SalaryRange(min=low, max=low + SALARY_FLOOR_SPAN)

    match = _SALARY_AMOUNT_RE.search(cleaned)
    if match:
        amount = int(match.group(1))
        if amount >= MIN_PLAUSIBLE_SALARY:
            return SalaryRange(min=amount, max=amount + SALARY_AMOUNT_SPAN)

    return default


def determine_work_type(text: str | None) -> WorkType:
    """Classify employment-type text as remote, dispatch or onsite."""
    if not text:
        return "onsite"
    lowered = text.lower()
    if any(marker in lowered for marker in REMOTE_MARKERS):
        return "remote"
    if any(marker in lowered for marker in DISPATCH_MARKERS):
        return "dispatch"
    return "onsite"


def company_slug(company: str) -> str:
    return "company-" + re.sub(r"\s+", "-", company.strip()).lower()


def absolute_url(link: str, base_url: str) -> str:
    if not link or link.startswith(("http://", "https://")):
        return link
    return urljoin(base_url, link)


def extract_job_id(
    source: str,
    url: str,
    id_pattern: re.Pattern[str],
    index: int,
    now: datetime | None = None,
) -> str:
    """
    Build a job id from the numeric record id in the detail URL.

    Without one, a "<source>-<epoch ms>-<index>" id is synthesized; such ids
    are not stable across runs.
    """
    match = id_pattern.search(url) if url else None
    if match:
        return f"{source}-{match.group(1)}"
    now = now or utcnow()
    return f"{source}-{int(now.timestamp() * 1000)}-{index}"
