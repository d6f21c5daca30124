"""
URL validation for the HTTP master server setting
"""

from yarl import URL

ALLOWED_SCHEMES = ('http', 'https')


def is_valid_http_url(url: str) -> bool:
    """
    Check that ``url`` is an absolute http or https URL with a host.

    Example:
        >>> is_valid_http_url('http://q2servers.com/?raw=2')
        True
        >>> is_valid_http_url('ftp://example.com/list')
        False
    """
    if not url or not isinstance(url, str) or not url.strip():
        return False

    try:
        parsed = URL(url.strip())
    except (TypeError, ValueError):
        return False

    return parsed.is_absolute() and parsed.scheme in ALLOWED_SCHEMES and bool(parsed.host)
