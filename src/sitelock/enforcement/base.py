"""SiteLock enforcement -- common backend contract.

Both enforcement backends expose the same operations:

* ``initialize`` -- register with the platform mechanism.
* ``refresh`` -- rebuild the :class:`EnforcementSnapshot` from the stored
  site list and the live grants.
* ``decide`` -- verdict for one navigation.
* ``grant_access`` / ``revoke_access`` / ``is_site_unlocked`` /
  ``get_unlock_state`` / ``handle_deadline`` -- delegate to the shared
  :class:`~sitelock.unlock.ledger.UnlockLedger`.

:class:`BaseBackend` implements the ledger delegation once; variants only
override what follows a ledger mutation (:meth:`BaseBackend.
_after_ledger_change`).

Snapshots are immutable and rebuilt wholesale; a backend swaps its
reference to the new snapshot in one assignment, so an event handler
interleaved with a refresh sees either the old or the new state, never a
mix.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, ClassVar, Protocol, runtime_checkable

from sitelock.core.errors import SideEffectError
from sitelock.core.types import (
    Clock,
    RequestContext,
    Site,
    SiteId,
    TabId,
    UnlockGrant,
    Verdict,
    utcnow,
)

if TYPE_CHECKING:
    from sitelock.core.config import SiteLockConfig
    from sitelock.core.interfaces import SiteStore, TabController
    from sitelock.enforcement.declarative import Directive
    from sitelock.unlock.ledger import DeadlineResult, UnlockLedger

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Decisions and deferred side effects
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RedirectTab:
    """Deferred command: navigate a tab to the blocked page."""

    tab_id: TabId
    url: str


@dataclass(frozen=True, slots=True)
class Decision:
    """Immediate verdict for a navigation plus deferred side effects.

    The verdict is final when ``decide`` returns; the ``deferred``
    commands are executed afterwards by the caller, best-effort.
    """

    verdict: Verdict
    site_id: SiteId | None = None
    redirect_url: str | None = None
    deferred: tuple[RedirectTab, ...] = ()

    @property
    def blocked(self) -> bool:
        """Return ``True`` if the navigation must not proceed."""
        return self.verdict is Verdict.BLOCK

    @classmethod
    def allow(cls) -> Decision:
        """Return the pass-through decision."""
        return cls(verdict=Verdict.ALLOW)


async def run_deferred(commands: Sequence[RedirectTab], tabs: TabController) -> int:
    """Execute deferred redirects; return how many succeeded.

    A failing redirect is logged and does not stop the remaining ones.
    """
    done = 0
    for command in commands:
        try:
            await tabs.redirect(command.tab_id, command.url)
        except SideEffectError as exc:
            logger.error("Failed to redirect tab %s: %s", command.tab_id, exc)
            continue
        done += 1
    return done


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class EnforcementSnapshot:
    """Read-optimised materialisation of sites (and compiled directives).

    Attributes
    ----------
    version:
        Monotonic per backend; ``0`` is the empty pre-initialisation state.
    sites:
        The site list as read from storage at build time.
    directives:
        Compiled directives (declarative backend only).
    built_at:
        When the snapshot was built.
    """

    version: int = 0
    sites: tuple[Site, ...] = ()
    directives: tuple[Directive, ...] = ()
    built_at: datetime | None = None

    def find_site(self, site_id: str) -> Site | None:
        """Return the site with *site_id*, or ``None``."""
        return next((s for s in self.sites if s.id == site_id), None)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

@runtime_checkable
class EnforcementBackend(Protocol):
    """Contract shared by every enforcement strategy."""

    name: ClassVar[str]

    @property
    def snapshot(self) -> EnforcementSnapshot:
        """The snapshot used by the hot matching path."""
        ...

    async def initialize(self) -> None:
        """Build the first snapshot and register with the platform."""
        ...

    async def refresh(self) -> None:
        """Rebuild the snapshot from storage and the live grants."""
        ...

    def decide(self, url: str, context: RequestContext | None = None) -> Decision:
        """Return the verdict for a top-level navigation to *url*."""
        ...

    async def grant_access(
        self, site_id: str, duration_minutes: int | None = None
    ) -> UnlockGrant | None:
        """Grant temporary access; ``None`` if the site is unknown."""
        ...

    async def revoke_access(self, site_id: str) -> list[TabId]:
        """Revoke access; return the tabs that must be redirected."""
        ...

    async def is_site_unlocked(self, site_id: str) -> bool:
        """Return ``True`` if the site has a live grant."""
        ...

    async def get_unlock_state(self, site_id: str) -> UnlockGrant | None:
        """Return the live grant, or ``None``."""
        ...

    async def handle_deadline(
        self, tag: str, scheduled_for: datetime | None = None
    ) -> DeadlineResult | None:
        """Handle a fired trigger; ``None`` for foreign or stale tags."""
        ...


class BaseBackend:
    """Ledger delegation and snapshot bookkeeping shared by both variants.

    Parameters
    ----------
    store:
        Storage capability holding the site list.
    ledger:
        The process-wide unlock ledger.
    tabs:
        Tab capability, used to run deferred redirects.
    config:
        Shared configuration.
    clock:
        Source of the current UTC time.
    """

    name: ClassVar[str] = "base"

    def __init__(
        self,
        store: SiteStore,
        ledger: UnlockLedger,
        tabs: TabController,
        config: SiteLockConfig,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._tabs = tabs
        self._config = config
        self._clock = clock
        self._snapshot = EnforcementSnapshot()

    @property
    def snapshot(self) -> EnforcementSnapshot:
        """The snapshot used by the hot matching path."""
        return self._snapshot

    @property
    def ledger(self) -> UnlockLedger:
        """The unlock ledger this backend delegates to."""
        return self._ledger

    # -- To be provided by variants ----------------------------------------

    async def initialize(self) -> None:
        raise NotImplementedError

    async def refresh(self) -> None:
        raise NotImplementedError

    def decide(self, url: str, context: RequestContext | None = None) -> Decision:
        raise NotImplementedError

    async def _after_ledger_change(self) -> None:
        """Hook run after every grant, revoke and deadline eviction."""

    # -- Snapshot helpers ---------------------------------------------------

    def _next_snapshot(
        self,
        sites: Sequence[Site],
        directives: Sequence[Directive] = (),
    ) -> EnforcementSnapshot:
        return EnforcementSnapshot(
            version=self._snapshot.version + 1,
            sites=tuple(sites),
            directives=tuple(directives),
            built_at=self._clock(),
        )

    # -- Ledger delegation --------------------------------------------------

    async def grant_access(
        self, site_id: str, duration_minutes: int | None = None
    ) -> UnlockGrant | None:
        """Grant temporary access to a site known to the snapshot."""
        if self._snapshot.find_site(site_id) is None:
            logger.info("Ignoring unlock request for unknown site %s", site_id)
            return None
        grant = await self._ledger.grant(site_id, duration_minutes)
        await self._after_ledger_change()
        return grant

    async def revoke_access(self, site_id: str) -> list[TabId]:
        """Revoke access and return the tabs still on the site."""
        tabs = await self._ledger.revoke(site_id, self._snapshot.sites)
        await self._after_ledger_change()
        return tabs

    async def is_site_unlocked(self, site_id: str) -> bool:
        """Return ``True`` if the site has a live grant."""
        return self._ledger.is_unlocked(site_id)

    async def get_unlock_state(self, site_id: str) -> UnlockGrant | None:
        """Return the live grant for the site, or ``None``."""
        return self._ledger.get_grant(site_id)

    async def handle_deadline(
        self, tag: str, scheduled_for: datetime | None = None
    ) -> DeadlineResult | None:
        """Evict the grant behind a fired trigger and re-derive state."""
        result = await self._ledger.on_deadline(tag, self._snapshot.sites, scheduled_for)
        if result is not None:
            await self._after_ledger_change()
        return result
