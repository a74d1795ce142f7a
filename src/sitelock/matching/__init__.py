"""SiteLock matching -- patterns, rule evaluation and URL helpers.

* **matches** -- does a URL match one rule pattern.
* **evaluate** / **evaluate_rules** -- does a site's ordered rule list
  block a URL (allow rules short-circuit).
* **find_matching_site** -- first blocking site wins.
* **is_internal_url**, **blocked_page_url**, **extract_domain** -- URL
  helpers used by the enforcement backends and the coordinator.
"""
from __future__ import annotations

from sitelock.matching.evaluator import evaluate, evaluate_rules, find_matching_site
from sitelock.matching.patterns import compile_glob, matches, normalize_pattern
from sitelock.matching.urls import blocked_page_url, extract_domain, is_internal_url

__all__ = [
    "matches",
    "compile_glob",
    "normalize_pattern",
    "evaluate",
    "evaluate_rules",
    "find_matching_site",
    "is_internal_url",
    "blocked_page_url",
    "extract_domain",
]
