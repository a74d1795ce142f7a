"""SiteLock enforcement backends.

* **InterceptionBackend** -- decides each top-level request synchronously
  against a cached site list; cancels, then redirects separately.
* **DeclarativeBackend** -- compiles locked sites into directives the
  platform evaluates itself; recompiles after every change.
* **select_backend** -- picks one of them from a capability probe.
"""
from __future__ import annotations

from sitelock.enforcement.base import (
    BaseBackend,
    Decision,
    EnforcementBackend,
    EnforcementSnapshot,
    RedirectTab,
    run_deferred,
)
from sitelock.enforcement.declarative import (
    DeclarativeBackend,
    Directive,
    DirectiveAction,
    DirectiveCondition,
    compile_directives,
    pattern_to_regex,
)
from sitelock.enforcement.interception import InterceptionBackend
from sitelock.enforcement.selection import PlatformCapabilities, select_backend

__all__ = [
    "BaseBackend",
    "Decision",
    "EnforcementBackend",
    "EnforcementSnapshot",
    "RedirectTab",
    "run_deferred",
    "DeclarativeBackend",
    "Directive",
    "DirectiveAction",
    "DirectiveCondition",
    "compile_directives",
    "pattern_to_regex",
    "InterceptionBackend",
    "PlatformCapabilities",
    "select_backend",
]
