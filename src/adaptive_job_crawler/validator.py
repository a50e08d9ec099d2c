"""
Quality checks for crawled jobs.

Validation findings are data: nothing here raises for a bad job. Link
liveness checks are the only part that touches the network.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

import httpx

from adaptive_job_crawler.fetcher import DEFAULT_USER_AGENT
from adaptive_job_crawler.models import (
    DeadLink,
    DedupeResult,
    Job,
    LivenessReport,
    ValidationError,
    ValidationReport,
    ValidationResult,
    ValidationWarning,
)
from adaptive_job_crawler.normalize import utcnow

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "title", "company", "source", "source_url")
WORK_TYPES = ("onsite", "remote", "dispatch")
MIN_DESCRIPTION_LENGTH = 10
MAX_PLAUSIBLE_SALARY = 50000  # 500M KRW
MAX_PLAUSIBLE_EXPERIENCE = 50

LINK_CHECK_CONCURRENCY = 5
LINK_CHECK_TIMEOUT = 10.0  # seconds
LINK_CHECK_DELAY = 0.5  # seconds between batches


def _as_dict(job: Job | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(job, Job):
        return job.model_dump()
    return dict(job)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _parse_instant(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _check_range(
    data: dict[str, Any],
    name: str,
    errors: list[ValidationError],
) -> dict[str, Any] | None:
    """Shared min/max checks for salary and experience. Returns the range if numeric."""
    value = data.get(name)
    if not isinstance(value, Mapping):
        return None
    low, high = value.get("min"), value.get("max")
    if not (_is_number(low) and _is_number(high)):
        errors.append(
            ValidationError(field=name, message=f"{name} range is not numeric", severity="medium")
        )
        return None
    if low > high:
        errors.append(
            ValidationError(
                field=name, message=f"{name} minimum exceeds maximum", severity="medium"
            )
        )
    if low < 0 or high < 0:
        errors.append(
            ValidationError(field=name, message=f"{name} is negative", severity="medium")
        )
    return {"min": low, "max": high}


def validate_job(job: Job | Mapping[str, Any], now: datetime | None = None) -> ValidationResult:
    """
    Check a single job for missing or implausible data.

    A job is valid when it has no errors; warnings never affect validity.
    """
    data = _as_dict(job)
    now = now or utcnow()
    errors: list[ValidationError] = []
    warnings: list[ValidationWarning] = []

    for name in REQUIRED_FIELDS:
        if not data.get(name):
            errors.append(
                ValidationError(field=name, message=f"Missing {name}", severity="critical")
            )

    source_url = data.get("source_url")
    if source_url and not _is_valid_url(source_url):
        errors.append(
            ValidationError(
                field="source_url", message=f"Invalid URL: {source_url}", severity="critical"
            )
        )

    if data.get("work_type") not in WORK_TYPES:
        errors.append(
            ValidationError(
                field="work_type",
                message=f"Unknown work type: {data.get('work_type')}",
                severity="critical",
            )
        )

    if data.get("salary") is None:
        errors.append(ValidationError(field="salary", message="Missing salary", severity="medium"))
    else:
        salary = _check_range(data, "salary", errors)
        if salary is None and not isinstance(data.get("salary"), Mapping):
            errors.append(
                ValidationError(field="salary", message="Salary is not a range", severity="medium")
            )
        elif salary and salary["max"] > MAX_PLAUSIBLE_SALARY:
            warnings.append(
                ValidationWarning(field="salary", message="Salary is unusually high")
            )

    if data.get("experience") is not None:
        experience = _check_range(data, "experience", errors)
        if experience is None and not isinstance(data.get("experience"), Mapping):
            errors.append(
                ValidationError(
                    field="experience", message="Experience is not a range", severity="medium"
                )
            )
        elif experience and experience["max"] > MAX_PLAUSIBLE_EXPERIENCE:
            warnings.append(
                ValidationWarning(field="experience", message="Experience is unusually long")
            )

    if not data.get("location"):
        warnings.append(ValidationWarning(field="location", message="Missing location"))

    description = data.get("description") or ""
    if not description:
        warnings.append(ValidationWarning(field="description", message="Missing description"))
    elif len(description) < MIN_DESCRIPTION_LENGTH:
        warnings.append(ValidationWarning(field="description", message="Description is too short"))

    deadline = data.get("deadline")
    if not deadline:
        warnings.append(ValidationWarning(field="deadline", message="Missing deadline"))
    else:
        parsed = _parse_instant(deadline)
        if parsed is None:
            errors.append(
                ValidationError(
                    field="deadline", message=f"Invalid deadline: {deadline}", severity="medium"
                )
            )
        elif parsed < now:
            warnings.append(ValidationWarning(field="deadline", message="Deadline has passed"))

    return ValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        job_id=str(data.get("id") or ""),
        source=str(data.get("source") or ""),
    )


def validate_batch(
    jobs: list[Job] | list[Mapping[str, Any]],
    now: datetime | None = None,
) -> ValidationReport:
    """Validate every job and aggregate the findings per field."""
    results = [validate_job(job, now) for job in jobs]
    errors_by_type: Counter[str] = Counter()
    warnings_by_type: Counter[str] = Counter()
    for result in results:
        errors_by_type.update(error.field for error in result.errors)
        warnings_by_type.update(warning.field for warning in result.warnings)

    total = len(results)
    valid = sum(1 for result in results if result.valid)
    return ValidationReport(
        total_jobs=total,
        valid_jobs=valid,
        invalid_jobs=total - valid,
        success_rate=(valid / total * 100) if total else 0.0,
        errors_by_type=dict(errors_by_type),
        warnings_by_type=dict(warnings_by_type),
        details=results,
    )


def dedupe(jobs: list[Job]) -> DedupeResult:
    """
    Drop jobs sharing a source URL (or id, when the URL is empty).
    The first occurrence wins and order is preserved.
    """
    seen: set[str] = set()
    unique: list[Job] = []
    for job in jobs:
        key = job.source_url or job.id
        if key in seen:
            logger.debug(f"Duplicate job skipped: {job.id}")
            continue
        seen.add(key)
        unique.append(job)
    return DedupeResult(unique=unique, duplicate_count=len(jobs) - len(unique))


async def check_link(
    client: httpx.AsyncClient,
    url: str,
    timeout: float = LINK_CHECK_TIMEOUT,
) -> bool:
    """HEAD the URL; 2xx and 3xx count as live, anything else as dead."""
    try:
        response = await client.head(url, timeout=timeout, follow_redirects=False)
    except httpx.HTTPError as e:
        logger.debug(f"Link check failed for {url}: {e}")
        return False
    return 200 <= response.status_code < 400


async def validate_links_live(
    jobs: list[Job],
    *,
    concurrency: int = LINK_CHECK_CONCURRENCY,
    timeout: float = LINK_CHECK_TIMEOUT,
    sample_size: int | None = None,
    delay: float = LINK_CHECK_DELAY,
    user_agent: str = DEFAULT_USER_AGENT,
) -> LivenessReport:
    """
    Check that job source URLs still resolve.

    Links are checked in sequential batches of `concurrency`, in parallel
    within a batch, sleeping `delay` seconds between batches. Requests
    carry `user_agent`.
    """
    if concurrency <= 0:
        raise ValueError("concurrency must be a positive integer")

    sample = jobs[:sample_size] if sample_size is not None else list(jobs)
    invalid_links: list[DeadLink] = []
    valid = 0
    batches = 0

    async with httpx.AsyncClient(headers={"User-Agent": user_agent}) as client:
        for start in range(0, len(sample), concurrency):
            if start > 0 and delay > 0:
                await asyncio.sleep(delay)
            batch = sample[start : start + concurrency]
            batches += 1
            results = await asyncio.gather(
                *(check_link(client, job.source_url, timeout) for job in batch)
            )
            for job, alive in zip(batch, results, strict=True):
                if alive:
                    valid += 1
                else:
                    invalid_links.append(DeadLink(job_id=job.id, url=job.source_url))
            logger.info(f"Checked {min(start + concurrency, len(sample))}/{len(sample)} links")

    total = len(sample)
    return LivenessReport(
        total=total,
        valid=valid,
        invalid=len(invalid_links),
        success_rate=(valid / total * 100) if total else 0.0,
        invalid_links=invalid_links,
        batches=batches,
    )
