"""
URL and host helpers used by the page selector, static analyzer and export.
"""

from __future__ import annotations

from urllib import parse


def extract_host(url: str) -> str:
    """Return the lower-cased hostname of *url*, or ``""`` when there is none."""
    try:
        return (parse.urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def host_matches_domain(host: str, domain: str) -> bool:
    """Check whether *host* equals *domain* or is one of its subdomains."""
    host = host.lower().rstrip(".")
    domain = domain.lower().lstrip(".")
    if not host or not domain:
        return False
    return host == domain or host.endswith("." + domain)


def with_query_params(url: str, params: dict[str, str]) -> str:
    """Append *params* to *url*, keeping any query string it already has."""
    parts = parse.urlsplit(url)
    query = parse.parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return parse.urlunsplit(parts._replace(query=parse.urlencode(query)))
