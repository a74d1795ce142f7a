"""SiteLock pattern matcher.

Decides whether a URL matches a single rule pattern.  Patterns come in
four shapes, all compared case-insensitively:

* ``reddit.com`` -- exact host (``www.`` on either side is ignored).
* ``*.reddit.com`` -- the domain itself or any subdomain of it.
* ``*reddit*`` -- glob over the host; ``*`` matches any run of characters.
* ``x.com/messages`` -- host part as above, then a path part.  A plain
  path matches itself and everything below it (``/messages/123``); a path
  containing ``*`` is a glob over the whole path.

A leading ``http://``/``https://`` and a leading ``www.`` are stripped
from patterns before comparison.

The matcher is a pure function that never raises: an unparsable URL
simply does not match (fail-closed towards "not blocked").
"""
from __future__ import annotations

import re
from functools import lru_cache
from urllib.parse import urlsplit

from sitelock.core.errors import InvalidURL

_SCHEME_PREFIX = re.compile(r"^https?://")


@lru_cache(maxsize=1024)
def compile_glob(glob: str) -> re.Pattern[str]:
    """Compile a ``*`` glob into a case-insensitive regular expression.

    Every regex metacharacter except ``*`` is escaped; each ``*`` becomes
    ``.*``.  Use ``fullmatch`` on the result.
    """
    return re.compile(".*".join(re.escape(part) for part in glob.split("*")), re.IGNORECASE)


def normalize_pattern(pattern: str) -> str:
    """Lower-case *pattern* and strip whitespace, scheme and ``www.``."""
    normalized = _SCHEME_PREFIX.sub("", pattern.lower().strip())
    return normalized.removeprefix("www.")


def split_pattern(pattern: str) -> tuple[str, str | None]:
    """Split a pattern into ``(host_part, path_part)``.

    The split happens at the first ``/``; *path_part* keeps its leading
    slash and is ``None`` for host-only patterns.
    """
    normalized = normalize_pattern(pattern)
    slash = normalized.find("/")
    if slash == -1:
        return normalized, None
    return normalized[:slash], normalized[slash:]


def host_matches(host_pattern: str, hostname: str) -> bool:
    """Return ``True`` if *hostname* matches a normalised host pattern.

    *hostname* must already be lower-cased.
    """
    normalized_host = hostname.removeprefix("www.")

    if host_pattern.startswith("*."):
        domain = host_pattern[2:]
        return normalized_host == domain or normalized_host.endswith("." + domain)

    if "*" in host_pattern:
        regex = compile_glob(host_pattern)
        # The raw-host check catches patterns that spell out "www."
        return bool(regex.fullmatch(normalized_host) or regex.fullmatch(hostname))

    return (
        normalized_host == host_pattern
        or hostname == host_pattern
        or hostname == "www." + host_pattern
    )


def path_matches(path_pattern: str, pathname: str) -> bool:
    """Return ``True`` if *pathname* matches a normalised path pattern."""
    if "*" in path_pattern:
        return compile_glob(path_pattern).fullmatch(pathname) is not None

    clean_pattern = path_pattern.removesuffix("/")
    clean_path = pathname.removesuffix("/")
    return clean_path == clean_pattern or clean_path.startswith(clean_pattern + "/")


def parse_url(url: str) -> tuple[str, str]:
    """Return ``(hostname, pathname)`` lower-cased.

    An empty path is reported as ``/``.

    Raises
    ------
    InvalidURL
        For URLs that do not parse or lack a scheme or a host
        (``reddit.com``, ``mailto:x``).
    """
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except (ValueError, AttributeError) as exc:
        raise InvalidURL(details={"url": url}) from exc
    if not parts.scheme or not hostname:
        raise InvalidURL(details={"url": url})
    return hostname.lower(), (parts.path or "/").lower()


def matches(url: str, pattern: str) -> bool:
    """Return ``True`` if *url* matches the rule *pattern*.

    Never raises; malformed input yields ``False``.
    """
    if not isinstance(url, str) or not isinstance(pattern, str):
        return False
    try:
        hostname, pathname = parse_url(url)
    except InvalidURL:
        return False

    host_pattern, path_pattern = split_pattern(pattern)
    if not host_matches(host_pattern, hostname):
        return False
    if path_pattern is None:
        return True
    return path_matches(path_pattern, pathname)
