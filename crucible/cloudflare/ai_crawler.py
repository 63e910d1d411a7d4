"""Build an AI Search web crawler source from URLs."""

from urllib.parse import urlsplit

from ..errors import ValidationError
from .ai_search import WebCrawlerSource


def _parse(url: str) -> tuple[str, str]:
    if "://" not in url:
        url = f"https://{url}"
    parts = urlsplit(url)
    return parts.hostname or "", parts.path


def _include_pattern(path: str) -> str:
    path = path.lstrip("/")
    return f"**/{path}**" if path else "**"


def ai_crawler(urls: list[str]) -> WebCrawlerSource:
    """Web crawler source covering `urls`.

    All URLs must share one domain. Each non-root path becomes an include
    pattern matching that path and everything below it.

    Example:
        >>> source = ai_crawler(["https://example.com/blog", "https://example.com/news"])
        >>> search = await AiSearch(app, "blog-search", source=source)
    """
    if not urls:
        raise ValidationError("ai_crawler requires at least one URL")

    parsed = [_parse(url) for url in urls]
    domains = sorted({domain for domain, _ in parsed})
    if len(domains) > 1:
        raise ValidationError(
            f"All URLs must be from the same domain. Found: {', '.join(domains)}"
        )
    if not domains[0]:
        raise ValidationError(f"Could not find a domain in {urls!r}")

    paths = [path for _, path in parsed if path and path != "/"]
    return WebCrawlerSource(
        domain=domains[0],
        include_paths=[_include_pattern(path) for path in paths] or None,
    )
