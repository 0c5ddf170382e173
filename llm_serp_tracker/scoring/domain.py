"""
Domain canonicalization for brand matching.

Brand ownership of an entity or citation is decided by exact hostname
equality after normalization. There is deliberately no fuzzy or substring
matching: "acme.com" does not match "notacme.com" or "acme.com.evil.io".

Examples:
    >>> normalize_domain("https://WWW.Example.com/path?q=1")
    'example.com'
    >>> is_brand_domain("https://example.com/x", ["example.com"])
    True
"""

import re

# Optional scheme, then the host part up to the first path/query/fragment
# delimiter or end of string. Whitespace inside the host means "not a URL".
DOMAIN_PATTERN = re.compile(r"^(?:https?://)?([^\s/?#]+)(?:[/?#]|$)", re.IGNORECASE)

WWW_PREFIX = "www."


def _strip_www(host: str) -> str:
    if host.startswith(WWW_PREFIX):
        return host[len(WWW_PREFIX) :]
    return host


def normalize_domain(value: str) -> str:
    """
    Canonicalize a bare domain or URL into a lower-case hostname.

    Strips the http(s) scheme, anything after the host (path, query,
    fragment), and a leading "www." label. Never raises: input that does not
    look like a URL at all is returned trimmed, lower-cased and www-stripped.

    Args:
        value: Domain or URL, e.g. "acme.com", "https://www.acme.com/about"

    Returns:
        Canonical hostname such as "acme.com"

    Examples:
        >>> normalize_domain("example.com")
        'example.com'
        >>> normalize_domain("HTTP://www.Acme.io#top")
        'acme.io'
        >>> normalize_domain("  not a url  ")
        'not a url'
    """
    candidate = value.strip().lower()

    match = DOMAIN_PATTERN.match(candidate)
    if match is None:
        return _strip_www(candidate)

    return _strip_www(match.group(1))


def is_brand_domain(domain: str, brand_domains: list[str]) -> bool:
    """
    Check whether domain is one of the brand's own domains.

    Both sides are normalized before an exact comparison. An empty
    brand_domains list always yields False.

    Examples:
        >>> is_brand_domain("https://www.acmedental.com/book", ["acmedental.com"])
        True
        >>> is_brand_domain("smileco.com", ["acmedental.com"])
        False
        >>> is_brand_domain("acmedental.com", [])
        False
    """
    if not brand_domains:
        return False

    canonical = normalize_domain(domain)
    return any(canonical == normalize_domain(brand) for brand in brand_domains)
