"""Tests for SiteLock matching -- patterns, rule evaluation and URL helpers.

Covers:

1. **Wildcard subdomains** -- ``*.domain`` matches the domain and any subdomain.
2. **Exact hosts** -- ``www.`` is ignored on either side.
3. **Globs and paths** -- host globs, path prefixes, path globs.
4. **Malformed input** -- never raises, never matches.
5. **Rule evaluation** -- allow rules short-circuit, disabled sites never block.
6. **Site selection** -- first matching site wins.
7. **URL helpers** -- internal URLs, blocked-page locator, domain extraction.
"""
from __future__ import annotations

import pytest

from sitelock.core.config import SiteLockConfig
from sitelock.core.errors import InvalidURL
from sitelock.core.types import Rule, Site, SiteId
from sitelock.matching.evaluator import evaluate, evaluate_rules, find_matching_site
from sitelock.matching.patterns import matches, normalize_pattern, parse_url, split_pattern
from sitelock.matching.urls import blocked_page_url, extract_domain, is_internal_url


def _site(site_id: str, *patterns: str | tuple[str, bool], enabled: bool = True) -> Site:
    rules = [
        Rule(pattern=p[0], allow=p[1]) if isinstance(p, tuple) else Rule(pattern=p)
        for p in patterns
    ]
    return Site(id=SiteId(site_id), name=site_id, rules=rules, enabled=enabled)


# ---------------------------------------------------------------------------
# Pattern normalisation
# ---------------------------------------------------------------------------

class TestNormalizePattern:
    """Patterns lose case, whitespace, scheme and www. before comparison."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Reddit.com", "reddit.com"),
            ("  reddit.com  ", "reddit.com"),
            ("https://reddit.com", "reddit.com"),
            ("http://www.reddit.com/r/", "reddit.com/r/"),
            ("www.x.com", "x.com"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_pattern(raw) == expected

    def test_split_host_only(self) -> None:
        assert split_pattern("reddit.com") == ("reddit.com", None)

    def test_split_with_path(self) -> None:
        assert split_pattern("x.com/messages") == ("x.com", "/messages")


# ---------------------------------------------------------------------------
# Wildcard subdomains
# ---------------------------------------------------------------------------

class TestWildcardSubdomain:
    """``*.domain`` matches the domain itself and every subdomain."""

    @pytest.mark.parametrize(
        "host",
        ["reddit.com", "www.reddit.com", "old.reddit.com", "a.b.reddit.com"],
    )
    def test_matches_domain_and_subdomains(self, host: str) -> None:
        assert matches(f"https://{host}/r/test", "*.reddit.com")

    @pytest.mark.parametrize("host", ["notreddit.com", "reddit.com.evil.net", "reddit.org"])
    def test_rejects_lookalikes(self, host: str) -> None:
        assert not matches(f"https://{host}/", "*.reddit.com")


# ---------------------------------------------------------------------------
# Exact hosts
# ---------------------------------------------------------------------------

class TestExactHost:
    """Exact patterns compare hosts with www. stripped."""

    def test_plain_host(self) -> None:
        assert matches("https://reddit.com/", "reddit.com")

    def test_www_on_url(self) -> None:
        assert matches("https://www.reddit.com/r/test", "reddit.com")

    def test_www_on_pattern(self) -> None:
        assert matches("https://reddit.com/", "www.reddit.com")

    def test_subdomain_does_not_match(self) -> None:
        assert not matches("https://old.reddit.com/", "reddit.com")

    def test_case_insensitive(self) -> None:
        assert matches("HTTPS://WWW.REDDIT.COM/", "Reddit.COM")

    def test_port_is_ignored(self) -> None:
        assert matches("http://reddit.com:8080/", "reddit.com")

    def test_scheme_in_pattern(self) -> None:
        assert matches("http://reddit.com/", "https://reddit.com")


# ---------------------------------------------------------------------------
# Globs and paths
# ---------------------------------------------------------------------------

class TestGlobAndPath:
    """Host globs, path prefixes and path globs."""

    def test_host_glob(self) -> None:
        assert matches("https://oldreddit.net/", "*reddit*")
        assert not matches("https://example.com/", "*reddit*")

    def test_host_glob_with_www(self) -> None:
        assert matches("https://www.youtube.com/", "you*.com")

    def test_path_scoped_rule(self) -> None:
        assert matches("https://x.com/messages/123", "x.com/messages")
        assert not matches("https://x.com/home", "x.com/messages")

    def test_path_prefix_exact(self) -> None:
        assert matches("https://x.com/messages", "x.com/messages")
        assert matches("https://x.com/messages/", "x.com/messages/")

    def test_path_prefix_is_segment_aware(self) -> None:
        assert not matches("https://x.com/messagesfoo", "x.com/messages")

    def test_path_case_insensitive(self) -> None:
        assert matches("https://x.com/Messages/1", "x.com/messages")

    def test_path_glob(self) -> None:
        assert matches("https://x.com/jack/status/20", "x.com/*/status/*")
        assert not matches("https://x.com/jack", "x.com/*/status/*")

    def test_query_is_not_part_of_path(self) -> None:
        assert matches("https://x.com/messages?tab=1", "x.com/messages")


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------

class TestMalformedInput:
    """Unparsable input is a non-match, never an exception."""

    @pytest.mark.parametrize(
        "url",
        ["", "not a url", "reddit.com", "mailto:someone@reddit.com", "http://[::1"],
    )
    def test_bad_url(self, url: str) -> None:
        assert matches(url, "reddit.com") is False

    def test_empty_pattern(self) -> None:
        assert matches("https://reddit.com/", "") is False

    def test_non_string_input(self) -> None:
        assert matches(None, "reddit.com") is False  # type: ignore[arg-type]
        assert matches("https://reddit.com/", None) is False  # type: ignore[arg-type]

    @pytest.mark.parametrize("url", ["reddit.com", "mailto:someone@reddit.com", "http://[::1"])
    def test_parse_url_reports_invalid_url(self, url: str) -> None:
        with pytest.raises(InvalidURL) as excinfo:
            parse_url(url)
        assert excinfo.value.details == {"url": url}

    def test_pattern_with_port_never_matches(self) -> None:
        assert matches("http://reddit.com:8080/", "reddit.com:8080") is False
        assert matches("http://reddit.com:8080/", "reddit.com") is True


# ---------------------------------------------------------------------------
# Rule evaluation
# ---------------------------------------------------------------------------

class TestEvaluateRules:
    """Allow rules short-circuit; block rules accumulate."""

    URL = "https://reddit.com/r/test"

    def test_block_then_allow(self) -> None:
        rules = [Rule(pattern="reddit.com"), Rule(pattern="reddit.com", allow=True)]
        assert evaluate_rules(self.URL, rules) is False

    def test_allow_then_block(self) -> None:
        rules = [Rule(pattern="reddit.com", allow=True), Rule(pattern="reddit.com")]
        assert evaluate_rules(self.URL, rules) is False

    def test_block_allow_block(self) -> None:
        rules = [
            Rule(pattern="reddit.com"),
            Rule(pattern="reddit.com", allow=True),
            Rule(pattern="reddit.com"),
        ]
        assert evaluate_rules(self.URL, rules) is False

    def test_allow_carves_out_path(self) -> None:
        site = _site("s1", "reddit.com", ("reddit.com/r/python", True))
        assert evaluate("https://reddit.com/r/python/top", site) is False
        assert evaluate("https://reddit.com/r/test", site) is True

    def test_no_rules_blocks_nothing(self) -> None:
        assert evaluate_rules(self.URL, []) is False

    def test_non_matching_allow_is_ignored(self) -> None:
        site = _site("s1", "reddit.com", ("x.com", True))
        assert evaluate(self.URL, site) is True

    def test_disabled_site_never_blocks(self) -> None:
        site = _site("s1", "reddit.com", "*.reddit.com", enabled=False)
        assert evaluate(self.URL, site) is False


# ---------------------------------------------------------------------------
# Site selection
# ---------------------------------------------------------------------------

class TestFindMatchingSite:
    """The first blocking site in list order wins."""

    def test_first_match_wins(self) -> None:
        first = _site("first", "reddit.com")
        second = _site("second", "*.reddit.com")
        assert find_matching_site("https://reddit.com/", [first, second]) is first
        assert find_matching_site("https://reddit.com/", [second, first]) is second

    def test_no_match(self) -> None:
        assert find_matching_site("https://example.com/", [_site("a", "reddit.com")]) is None

    def test_disabled_sites_are_passed_over(self) -> None:
        disabled = _site("off", "reddit.com", enabled=False)
        enabled = _site("on", "reddit.com")
        assert find_matching_site("https://reddit.com/", [disabled, enabled]) is enabled

    def test_skip_predicate(self) -> None:
        first = _site("first", "reddit.com")
        second = _site("second", "reddit.com")
        found = find_matching_site(
            "https://reddit.com/", [first, second], skip=lambda s: s.id == "first"
        )
        assert found is second


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

class TestUrlHelpers:
    """Internal-URL detection, blocked-page locator, domain extraction."""

    @pytest.mark.parametrize(
        "url",
        [
            "chrome-extension://sitelock/blocked.html",
            "chrome://settings",
            "about:blank",
        ],
    )
    def test_internal_urls(self, url: str) -> None:
        assert is_internal_url(url, SiteLockConfig())

    @pytest.mark.parametrize("url", ["https://reddit.com/", "", None])
    def test_regular_urls(self, url: str | None) -> None:
        assert not is_internal_url(url, SiteLockConfig())

    def test_firefox_schemes(self) -> None:
        config = SiteLockConfig(browser="firefox")
        assert is_internal_url("moz-extension://abc/page.html", config)
        assert not is_internal_url("chrome://settings", config)

    def test_blocked_page_url_encodes_both_parameters(self) -> None:
        target = blocked_page_url(
            "https://www.reddit.com/r/test?a=b&c=d", "ab12 cd", SiteLockConfig()
        )
        assert target == (
            "chrome-extension://sitelock/blocked.html"
            "?url=https%3A%2F%2Fwww.reddit.com%2Fr%2Ftest%3Fa%3Db%26c%3Dd"
            "&siteId=ab12%20cd"
        )

    def test_extract_domain(self) -> None:
        assert extract_domain("https://www.reddit.com/r/test") == "reddit.com"
        assert extract_domain("https://old.reddit.com/") == "old.reddit.com"
        assert extract_domain("not a url") == ""
