from urllib.parse import urlsplit, urlunsplit

from web_fetch.core.errors import InvalidLocator

ALLOWED_SCHEMES = ("http", "https")


def normalize_url(raw: str) -> str:
    """
    Validate a URL and return its canonical form used as cache key and fetch target.

    Strips the leading '@' some callers prepend, requires an absolute
    http(s) URL and upgrades http to https. Host, path and query are untouched.
    """
    cleaned = (raw or "").strip()
    if cleaned.startswith("@"):
        cleaned = cleaned[1:]

    try:
        parts = urlsplit(cleaned)
        # .port raises ValueError for a malformed port
        parts.port
    except ValueError:
        raise InvalidLocator(_invalid_message(cleaned))

    if not parts.scheme or not parts.hostname:
        raise InvalidLocator(_invalid_message(cleaned))

    if parts.scheme not in ALLOWED_SCHEMES:
        raise InvalidLocator(
            f'Unsupported URL scheme: "{parts.scheme}:". Only HTTP and HTTPS URLs are supported.'
        )

    if parts.scheme == "http":
        parts = parts._replace(scheme="https")
    return urlunsplit(parts)


def hostname_of(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def _invalid_message(url: str) -> str:
    return f'Invalid URL: "{url}". Please provide a fully-formed URL (e.g., https://example.com/page).'
