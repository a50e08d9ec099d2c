class CrawlerError(Exception):
    """Base class for errors raised by the crawling core."""


class FetchError(CrawlerError):
    """The page fetcher failed to load a URL (timeout, network, HTTP error)."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class NoCandidateLinksError(CrawlerError):
    """No job-like link was found while learning a site's URL pattern."""

    def __init__(self, site_url: str) -> None:
        super().__init__(f"No job-like links found on {site_url}")
        self.site_url = site_url


class CrawlError(CrawlerError):
    """A site crawl failed as a whole. Other sites are unaffected."""

    def __init__(self, site: str, message: str) -> None:
        super().__init__(f"[{site}] {message}")
        self.site = site


class ParseError(CrawlerError):
    """A single listing entry could not be parsed. Never fatal to a crawl."""


class NotFoundError(CrawlerError, KeyError):
    """No stored pattern exists for the requested domain."""

    def __init__(self, domain: str) -> None:
        super().__init__(f"No pattern stored for domain: {domain}")
        self.domain = domain

    def __str__(self) -> str:
        return str(self.args[0])
