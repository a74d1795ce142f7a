"""URL helpers shared by the matcher, the backends and the coordinator."""
from __future__ import annotations

from urllib.parse import quote, urlsplit

from sitelock.core.config import SiteLockConfig

# Characters ``encodeURIComponent`` leaves untouched besides alphanumerics
# and ``-_.~``, which ``quote`` never escapes.
_URI_COMPONENT_SAFE = "!*'()"


def encode_component(value: str) -> str:
    """Percent-encode *value* for use as a single query-string component."""
    return quote(value, safe=_URI_COMPONENT_SAFE)


def is_internal_url(url: str | None, config: SiteLockConfig) -> bool:
    """Return ``True`` for extension pages and browser-internal pages.

    Such pages are never blocked and never counted as open tabs on a
    site.  An empty URL is not internal.
    """
    if not url:
        return False
    if url.startswith(config.extension_scheme):
        return True
    if url.startswith(config.browser_scheme):
        return True
    return url.startswith("about:")


def blocked_page_url(url: str, site_id: str, config: SiteLockConfig) -> str:
    """Build the blocked-page locator for *url* blocked by *site_id*.

    Both values are percent-encoded query parameters::

        chrome-extension://sitelock/blocked.html?url=https%3A%2F%2F...&siteId=ab12cd34
    """
    return (
        f"{config.blocked_page_url}?url={encode_component(url)}"
        f"&siteId={encode_component(site_id)}"
    )


def extract_domain(url: str) -> str:
    """Return the host of *url* without a leading ``www.``.

    Returns an empty string when *url* has no parsable host.
    """
    try:
        hostname = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    return hostname.removeprefix("www.")
