import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def get_config() -> dict[str, str]:
    """
    Load configuration from environment variables.
    Called lazily to avoid crashing on import.
    """
    return {
        "PATTERN_CACHE_DIR": os.getenv("PATTERN_CACHE_DIR", ".crawling-cache"),
        "PATTERN_CACHE_BACKEND": os.getenv("PATTERN_CACHE_BACKEND", "file"),
        "PATTERN_CACHE_DB": os.getenv("PATTERN_CACHE_DB", "patterns.db"),
        "CRAWL_HEADLESS": os.getenv("CRAWL_HEADLESS", "true"),
        "CRAWL_USER_AGENT": os.getenv("CRAWL_USER_AGENT", DEFAULT_USER_AGENT),
        "CRAWL_PAGE_TIMEOUT": os.getenv("CRAWL_PAGE_TIMEOUT", "30000"),
        "LINK_CHECK_CONCURRENCY": os.getenv("LINK_CHECK_CONCURRENCY", "5"),
        "LINK_CHECK_TIMEOUT": os.getenv("LINK_CHECK_TIMEOUT", "10"),
        "OPENAI_API_KEY": os.getenv("OPENAI_API_KEY", ""),
        "OPENAI_BASE_URL": os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        "OPENAI_MODEL": os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
    }


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a positive integer, got '{raw}'") from None
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return value


class _Config:
    """Lazy configuration that only validates when values are actually accessed."""

    def __init__(self) -> None:
        self._config: dict[str, str] | None = None

    def _get(self, name: str) -> str:
        if self._config is None:
            self._config = get_config()
        return self._config[name]

    @property
    def PATTERN_CACHE_DIR(self) -> str:
        return self._get("PATTERN_CACHE_DIR")

    @property
    def PATTERN_CACHE_BACKEND(self) -> str:
        """Key-value backend for learned patterns: 'file' or 'sqlite'."""
        raw = self._get("PATTERN_CACHE_BACKEND").strip().lower()
        if raw not in ("file", "sqlite"):
            raise ValueError(f"PATTERN_CACHE_BACKEND must be 'file' or 'sqlite', got '{raw}'")
        return raw

    @property
    def PATTERN_CACHE_DB(self) -> str:
        return self._get("PATTERN_CACHE_DB")

    @property
    def CRAWL_HEADLESS(self) -> bool:
        raw = self._get("CRAWL_HEADLESS").strip().lower()
        if raw in _TRUE_VALUES:
            return True
        if raw in _FALSE_VALUES:
            return False
        raise ValueError(f"CRAWL_HEADLESS must be a boolean, got '{raw}'")

    @property
    def CRAWL_USER_AGENT(self) -> str:
        return self._get("CRAWL_USER_AGENT")

    @property
    def CRAWL_PAGE_TIMEOUT(self) -> int:
        """Navigation timeout in milliseconds."""
        return _positive_int("CRAWL_PAGE_TIMEOUT", self._get("CRAWL_PAGE_TIMEOUT"))

    @property
    def LINK_CHECK_CONCURRENCY(self) -> int:
        return _positive_int("LINK_CHECK_CONCURRENCY", self._get("LINK_CHECK_CONCURRENCY"))

    @property
    def LINK_CHECK_TIMEOUT(self) -> float:
        """Per-request liveness timeout in seconds."""
        raw = self._get("LINK_CHECK_TIMEOUT")
        try:
            value = float(raw)
        except ValueError:
            raise ValueError(f"LINK_CHECK_TIMEOUT must be a positive number, got '{raw}'") from None
        if value <= 0:
            raise ValueError(f"LINK_CHECK_TIMEOUT must be a positive number, got {value}")
        return value

    @property
    def OPENAI_API_KEY(self) -> str:
        return self._get("OPENAI_API_KEY")

    @property
    def OPENAI_BASE_URL(self) -> str:
        return self._get("OPENAI_BASE_URL").rstrip("/")

    @property
    def OPENAI_MODEL(self) -> str:
        return self._get("OPENAI_MODEL")


_cfg = _Config()

# Module-level type declarations for mypy.
# The actual values come from __getattr__ below.
PATTERN_CACHE_DIR: str
PATTERN_CACHE_BACKEND: str
PATTERN_CACHE_DB: str
CRAWL_HEADLESS: bool
CRAWL_USER_AGENT: str
CRAWL_PAGE_TIMEOUT: int
LINK_CHECK_CONCURRENCY: int
LINK_CHECK_TIMEOUT: float
OPENAI_API_KEY: str
OPENAI_BASE_URL: str
OPENAI_MODEL: str

_NAMES = {
    "PATTERN_CACHE_DIR",
    "PATTERN_CACHE_BACKEND",
    "PATTERN_CACHE_DB",
    "CRAWL_HEADLESS",
    "CRAWL_USER_AGENT",
    "CRAWL_PAGE_TIMEOUT",
    "LINK_CHECK_CONCURRENCY",
    "LINK_CHECK_TIMEOUT",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
}


# Module-level lazy access using __getattr__ (PEP 562).
# `from adaptive_job_crawler.config import CRAWL_PAGE_TIMEOUT` still works,
# but the value is only resolved when first accessed, not at import time.
def __getattr__(name: str) -> str | int | float | bool:
    if name in _NAMES:
        return getattr(_cfg, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
