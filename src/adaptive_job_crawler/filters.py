import re
import unicodedata


class JobLinkFilter:
    """
    Classifies hyperlinks as job-detail links using English and Korean
    keyword matching on the URL and anchor text.

    A link is job-like only when it carries both a keyword and a run of
    at least four digits (most postings embed a numeric id).
    """

    ENGLISH_KEYWORDS = [
        "job",
        "recruit",
        "career",
        "position",
        "wd",
        "view",
        "detail",
        "read",
    ]

    KOREAN_KEYWORDS = [
        "채용",
        "공고",
        "구인",
        "모집",
    ]

    DIGIT_RUN = re.compile(r"\d{4,}")

    def __init__(self):
        # Keywords are matched as substrings: URL paths glue them to other
        # tokens (e.g. "GI_Read", "jobs/view").
        keywords = self.ENGLISH_KEYWORDS + self.KOREAN_KEYWORDS
        self.regex = re.compile("|".join(re.escape(kw) for kw in keywords), re.IGNORECASE)

    @staticmethod
    def normalize_text(text: str) -> str:
        """
        Normalize Unicode text to NFKC form so full-width and stylized
        characters match their plain equivalents. NFKC keeps Hangul
        syllables composed.
        """
        return unicodedata.normalize("NFKC", text)

    def has_keyword(self, url: str, text: str = "") -> bool:
        combined = self.normalize_text(f"{url} {text}")
        return bool(self.regex.search(combined))

    def has_numeric_id(self, url: str) -> bool:
        return bool(self.DIGIT_RUN.search(url))

    def is_job_link(self, url: str, text: str = "") -> bool:
        """Check whether a link looks like a job-detail page."""
        if not url:
            return False
        return self.has_keyword(url, text) and self.has_numeric_id(url)
