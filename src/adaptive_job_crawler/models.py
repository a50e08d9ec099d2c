from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

WorkType = Literal["onsite", "remote", "dispatch"]
Severity = Literal["critical", "high", "medium"]


class ScrapeRequest(BaseModel):
    """
    Search conditions for a single crawl invocation.
    Shared read-only across every site crawled in the same run.
    """

    model_config = ConfigDict(frozen=True)

    keyword: str | None = None
    location: str | None = None
    min_salary: int | None = None
    max_salary: int | None = None
    min_experience: int | None = None
    max_experience: int | None = None
    employment_type: str | None = None
    industry: str | None = None
    limit: int = Field(default=50, ge=1)


class SalaryRange(BaseModel):
    """Annual salary range in units of 10,000 KRW."""

    min: int
    max: int


class ExperienceRange(BaseModel):
    """Required experience in years."""

    min: int
    max: int


class SelectorSet(BaseModel):
    job_list: str
    job_link: str
    title: str
    company: str
    location: str


class SitePattern(BaseModel):
    """
    URL templates and selectors learned for one recruiting site.
    The detail template carries exactly one {id} placeholder and
    detail_page_regex accepts every URL it was learned from.
    """

    domain: str
    list_page_pattern: str
    detail_page_pattern: str
    detail_page_regex: str
    query_params: dict[str, str] = Field(default_factory=dict)
    selectors: SelectorSet
    confidence: float = 0.0
    created_at: str
    last_updated: str


class RawListingRecord(BaseModel):
    """Site-specific text scraped from one listing entry, before normalization."""

    title: str = ""
    link: str = ""
    company: str = ""
    location: str = ""
    experience: str = ""
    education: str = ""
    employment_type: str = ""
    deadline: str = ""
    salary: str = ""
    skills: list[str] = Field(default_factory=list)
    extra: dict[str, str] = Field(default_factory=dict)


class Job(BaseModel):
    """
    Canonical job posting.
    All site crawlers must return instances of this model.
    """

    id: str
    title: str
    company: str
    company_id: str
    location: str
    salary: SalaryRange
    experience: ExperienceRange | None = None
    education: str | None = None
    employment_type: str | None = None
    work_type: WorkType = "onsite"
    description: str
    requirements: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    industry: str
    deadline: str
    posted_at: str
    source_url: str
    source: str


class ValidationError(BaseModel):
    field: str
    message: str
    severity: Severity


class ValidationWarning(BaseModel):
    field: str
    message: str


class ValidationResult(BaseModel):
    valid: bool
    errors: list[ValidationError] = Field(default_factory=list)
    warnings: list[ValidationWarning] = Field(default_factory=list)
    job_id: str = ""
    source: str = ""


class ValidationReport(BaseModel):
    total_jobs: int
    valid_jobs: int
    invalid_jobs: int
    success_rate: float
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    warnings_by_type: dict[str, int] = Field(default_factory=dict)
    details: list[ValidationResult] = Field(default_factory=list)


class DeadLink(BaseModel):
    job_id: str
    url: str


class LivenessReport(BaseModel):
    total: int
    valid: int
    invalid: int
    success_rate: float
    invalid_links: list[DeadLink] = Field(default_factory=list)
    batches: int = 0


class DedupeResult(BaseModel):
    unique: list[Job]
    duplicate_count: int


class CrawlAllResult(BaseModel):
    jobs: list[Job] = Field(default_factory=list)
    per_site_counts: dict[str, int] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    report: ValidationReport | None = None
