"""SiteLock synchronous-interception backend.

The platform calls :meth:`InterceptionBackend.decide` for every top-level
request and waits for the answer, so the decision cannot touch storage:
it runs against the in-process :class:`~sitelock.enforcement.base.
EnforcementSnapshot` and the unlock ledger only.  The snapshot is rebuilt
by :meth:`InterceptionBackend.refresh` whenever the site list changes.

Some platforms refuse to redirect an intercepted request to an
extension-owned page.  A block is therefore two side effects: the request
is cancelled synchronously, and a separate redirect of the tab to the
blocked page is queued and executed afterwards, best-effort.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, ClassVar

from sitelock.core.types import Clock, RequestContext, Site, Verdict, utcnow
from sitelock.enforcement.base import BaseBackend, Decision, RedirectTab, run_deferred
from sitelock.matching.evaluator import find_matching_site
from sitelock.matching.urls import blocked_page_url, is_internal_url

if TYPE_CHECKING:
    from sitelock.core.config import SiteLockConfig
    from sitelock.core.interfaces import InterceptionPlatform, SiteStore, TabController
    from sitelock.unlock.ledger import UnlockLedger

logger = logging.getLogger(__name__)


class InterceptionBackend(BaseBackend):
    """Per-request blocking against a locally cached site list.

    Parameters
    ----------
    platform:
        The blocking interception mechanism, or ``None`` when the
        platform has none (enforcement is then disabled).
    """

    name: ClassVar[str] = "interception"

    def __init__(
        self,
        store: SiteStore,
        ledger: UnlockLedger,
        tabs: TabController,
        config: SiteLockConfig,
        platform: InterceptionPlatform | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(store, ledger, tabs, config, clock)
        self._platform = platform
        self._registered = False
        self._refresh_generation = 0
        self._pending: list[RedirectTab] = []
        self._tasks: set[asyncio.Task[int]] = set()

    @property
    def registered(self) -> bool:
        """Return ``True`` once the listener is installed."""
        return self._registered

    async def initialize(self) -> None:
        """Load the site cache and install the request listener."""
        await self.refresh()
        if self._platform is None:
            logger.warning("Request interception unavailable; blocking disabled")
            return
        if not self._registered:
            self._platform.add_listener(self._on_before_request)
            self._registered = True
        logger.info("Interception backend ready with %d sites", len(self.snapshot.sites))

    async def refresh(self) -> None:
        """Re-read the site list into a new snapshot.

        If another refresh starts while this one is waiting on storage,
        this one is dropped so an older read never replaces a newer one.
        """
        self._refresh_generation += 1
        generation = self._refresh_generation
        sites = await self._store.get_sites()
        if generation != self._refresh_generation:
            return
        self._snapshot = self._next_snapshot(sites)

    # -- Decision path ------------------------------------------------------

    def blocking_site(self, url: str) -> Site | None:
        """Return the first site that blocks *url*, ignoring unlocked sites."""
        return find_matching_site(
            url,
            self.snapshot.sites,
            skip=lambda site: self._ledger.is_unlocked(site.id),
        )

    def decide(self, url: str, context: RequestContext | None = None) -> Decision:
        """Return the verdict for *url* without awaiting anything."""
        ctx = context or RequestContext()
        if ctx.resource_type != "main_frame" or ctx.frame_id != 0:
            return Decision.allow()
        if is_internal_url(url, self._config):
            return Decision.allow()

        site = self.blocking_site(url)
        if site is None:
            return Decision.allow()

        target = blocked_page_url(url, site.id, self._config)
        deferred: tuple[RedirectTab, ...] = ()
        if ctx.tab_id > 0:
            deferred = (RedirectTab(tab_id=ctx.tab_id, url=target),)
        return Decision(
            verdict=Verdict.BLOCK,
            site_id=site.id,
            redirect_url=target,
            deferred=deferred,
        )

    # -- Platform callback --------------------------------------------------

    def _on_before_request(self, url: str, context: RequestContext) -> bool:
        decision = self.decide(url, context)
        if not decision.blocked:
            return False
        logger.info("Blocking %s (site %s)", url, decision.site_id)
        self._pending.extend(decision.deferred)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop here; the owner drains the queue with flush_deferred().
            return True
        task = loop.create_task(self.flush_deferred())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    @property
    def pending_redirects(self) -> list[RedirectTab]:
        """Redirects queued by the listener and not yet executed."""
        return list(self._pending)

    async def flush_deferred(self) -> int:
        """Execute queued redirects; return how many succeeded."""
        commands, self._pending = self._pending, []
        return await run_deferred(commands, self._tabs)
