"""SiteLock -- distraction-site blocking core.

Users configure *sites* (ordered allow/block rules); navigations to a
blocked site are redirected to a blocked page until the user earns a
temporary unlock, after which the site relocks on its own.

Components
----------
1. Pattern matching and rule evaluation (:mod:`sitelock.matching`)
2. Unlock ledger (:mod:`sitelock.unlock`)
3. Enforcement backends (:mod:`sitelock.enforcement`)
4. Sync coordinator (:mod:`sitelock.sync`)
5. Site lifecycle and statistics (:mod:`sitelock.sites`, :mod:`sitelock.stats`)
6. Message contract (:mod:`sitelock.wire`)
"""
from __future__ import annotations

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Core types, errors, config
# ---------------------------------------------------------------------------
from sitelock.core.config import SiteLockConfig
from sitelock.core.errors import (
    BackendUnavailableError,
    MalformedInputError,
    RequestError,
    SideEffectError,
    SiteLockError,
)
from sitelock.core.types import (
    Rule,
    Settings,
    Site,
    SiteDraft,
    SiteId,
    SiteStats,
    StatsUpdate,
    TabId,
    UnlockGrant,
    UnlockMethod,
    Verdict,
)

# ---------------------------------------------------------------------------
# Enforcement
# ---------------------------------------------------------------------------
from sitelock.enforcement import (
    DeclarativeBackend,
    Decision,
    EnforcementSnapshot,
    InterceptionBackend,
    PlatformCapabilities,
    select_backend,
)

# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------
from sitelock.matching import evaluate, find_matching_site, matches

# ---------------------------------------------------------------------------
# Main orchestrator
# ---------------------------------------------------------------------------
from sitelock.provider import SiteLockProvider
from sitelock.sites import SiteRegistry
from sitelock.stats import StatsTracker
from sitelock.sync import NavigationSource, SyncCoordinator
from sitelock.unlock import DeadlineResult, UnlockLedger

# ---------------------------------------------------------------------------
# Wire
# ---------------------------------------------------------------------------
from sitelock.wire import MessageType, parse_request

__all__ = [
    # Meta
    "__version__",
    # Core types & enums
    "SiteId",
    "TabId",
    "Rule",
    "Site",
    "SiteDraft",
    "UnlockGrant",
    "UnlockMethod",
    "Verdict",
    "Settings",
    "SiteStats",
    "StatsUpdate",
    # Config
    "SiteLockConfig",
    # Error hierarchy
    "SiteLockError",
    "MalformedInputError",
    "BackendUnavailableError",
    "SideEffectError",
    "RequestError",
    # Matching
    "matches",
    "evaluate",
    "find_matching_site",
    # Unlock
    "UnlockLedger",
    "DeadlineResult",
    # Enforcement
    "Decision",
    "EnforcementSnapshot",
    "InterceptionBackend",
    "DeclarativeBackend",
    "PlatformCapabilities",
    "select_backend",
    # Coordination
    "SyncCoordinator",
    "NavigationSource",
    "SiteRegistry",
    "StatsTracker",
    # Wire
    "MessageType",
    "parse_request",
    # Orchestrator
    "SiteLockProvider",
]
