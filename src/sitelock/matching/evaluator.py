"""SiteLock rule evaluation.

Two policies live here:

* **Within a site** -- rules are scanned in declaration order.  A matching
  block rule marks the URL as blocked and scanning continues; a matching
  allow rule returns "not blocked" immediately, so no later rule can
  re-block it.
* **Across sites** -- the first site (list order) whose rules block the
  URL wins; later sites are not considered.

Both functions are synchronous and never raise.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from sitelock.core.types import Rule, Site
from sitelock.matching.patterns import matches


def evaluate_rules(url: str, rules: Iterable[Rule]) -> bool:
    """Return ``True`` if *rules* block *url*."""
    is_blocked = False
    for rule in rules:
        if not matches(url, rule.pattern):
            continue
        if rule.allow:
            return False
        is_blocked = True
    return is_blocked


def evaluate(url: str, site: Site) -> bool:
    """Return ``True`` if *site* blocks *url*.

    Disabled sites never block.
    """
    if not site.enabled:
        return False
    return evaluate_rules(url, site.rules)


def find_matching_site(
    url: str,
    sites: Sequence[Site],
    *,
    skip: Callable[[Site], bool] | None = None,
) -> Site | None:
    """Return the first site in *sites* that blocks *url*, or ``None``.

    Parameters
    ----------
    url:
        The URL being navigated to.
    sites:
        Candidate sites in user order.
    skip:
        Optional predicate; sites for which it returns ``True`` are
        passed over as if they did not exist (used by the backends to
        ignore unlocked sites).
    """
    for site in sites:
        if skip is not None and skip(site):
            continue
        if evaluate(url, site):
            return site
    return None
