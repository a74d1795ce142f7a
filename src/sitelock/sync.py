"""SiteLock sync coordinator.

Keeps the active enforcement backend consistent with storage and with the
unlock ledger, and performs the side effects of a relock:

* site-list change  -> ``backend.refresh()``;
* deadline trigger  -> ``backend.handle_deadline()``, redirect every tab
  still on the site, broadcast ``SITE_RELOCKED``;
* top-level navigation the backend cannot see (history-state updates,
  tab URL changes) -> first matching site, redirect unless unlocked.

Side effects are best-effort: a failed redirect is logged and the next
tab is tried; a failed notification is ignored.
"""
from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sitelock.core.errors import SideEffectError
from sitelock.core.types import Site, TabId
from sitelock.matching.evaluator import find_matching_site
from sitelock.matching.urls import blocked_page_url, is_internal_url
from sitelock.wire.messages import SiteRelockedNotification, to_wire

if TYPE_CHECKING:
    from sitelock.core.config import SiteLockConfig
    from sitelock.core.interfaces import Notifier, SiteStore, TabController
    from sitelock.enforcement.base import BaseBackend
    from sitelock.unlock.ledger import DeadlineResult

logger = logging.getLogger(__name__)


class NavigationSource(enum.StrEnum):
    """Platform event that reported a navigation."""

    BEFORE_NAVIGATE = "before_navigate"
    HISTORY_STATE = "history_state"
    TAB_UPDATED = "tab_updated"


class SyncCoordinator:
    """Reacts to storage changes, deadlines and navigations.

    Parameters
    ----------
    backend:
        The enforcement backend selected at start-up.
    store:
        Storage capability; its site listener is registered by
        :meth:`attach`.
    tabs:
        Tab capability used for redirects.
    notifier:
        Broadcast channel towards the UI pages.
    config:
        Shared configuration.
    """

    def __init__(
        self,
        backend: BaseBackend,
        store: SiteStore,
        tabs: TabController,
        notifier: Notifier,
        config: SiteLockConfig,
    ) -> None:
        self._backend = backend
        self._store = store
        self._tabs = tabs
        self._notifier = notifier
        self._config = config

    @property
    def backend(self) -> BaseBackend:
        """The backend this coordinator drives."""
        return self._backend

    def attach(self) -> None:
        """Subscribe to site-list changes."""
        self._store.add_sites_listener(self.on_sites_changed)

    # -- Site-list changes --------------------------------------------------

    async def on_sites_changed(self, sites: Sequence[Site] | None = None) -> None:
        """Re-derive backend state after a site-list mutation.

        A failing refresh is logged; the previous snapshot stays active
        until the next change.
        """
        logger.info("Blocked sites changed, syncing rules")
        try:
            await self._backend.refresh()
        except Exception:
            logger.exception("Failed to sync rules")

    # -- Deadlines ------------------------------------------------------------

    async def on_deadline(
        self, tag: str, scheduled_for: datetime | None = None
    ) -> DeadlineResult | None:
        """Relock the site behind a fired trigger.

        Returns ``None`` for foreign and stale tags.
        """
        result = await self._backend.handle_deadline(tag, scheduled_for)
        if result is None:
            return None
        await self.redirect_tabs(result.site_id, result.affected_tabs)
        await self.notify(to_wire(SiteRelockedNotification(site_id=result.site_id)))
        logger.info("Relocked site %s", result.site_id)
        return result

    async def relock(self, site_id: str) -> list[TabId]:
        """Revoke a grant immediately and redirect the affected tabs."""
        affected = await self._backend.revoke_access(site_id)
        await self.redirect_tabs(site_id, affected)
        await self.notify(to_wire(SiteRelockedNotification(site_id=site_id)))
        return affected

    # -- Navigations ------------------------------------------------------------

    async def on_navigation(
        self,
        tab_id: TabId,
        url: str,
        *,
        frame_id: int = 0,
        source: NavigationSource = NavigationSource.TAB_UPDATED,
    ) -> bool:
        """Redirect *tab_id* if *url* is blocked; return ``True`` if redirected.

        ``BEFORE_NAVIGATE`` events are ignored for the interception
        backend, which already decides those requests itself.
        """
        if frame_id != 0:
            return False
        if source is NavigationSource.BEFORE_NAVIGATE and self._backend.name == "interception":
            return False
        if is_internal_url(url, self._config):
            return False

        site = find_matching_site(url, await self._store.get_sites())
        if site is None:
            return False
        if await self._backend.is_site_unlocked(site.id):
            return False

        logger.info("Blocking (%s): %s", source, url)
        try:
            await self._tabs.redirect(tab_id, blocked_page_url(url, site.id, self._config))
        except SideEffectError as exc:
            logger.error("Failed to redirect to blocked page: %s", exc)
            return False
        return True

    # -- Side effects -----------------------------------------------------------

    async def redirect_tabs(self, site_id: str, tab_ids: Sequence[TabId]) -> int:
        """Send each tab to the blocked page for its current URL.

        Returns how many tabs were redirected.
        """
        redirected = 0
        for tab_id in tab_ids:
            tab = await self._tabs.get_tab(tab_id)
            if tab is None or not tab.url:
                continue
            target = blocked_page_url(tab.url, site_id, self._config)
            try:
                await self._tabs.redirect(tab_id, target)
            except SideEffectError as exc:
                logger.info("Could not redirect tab %s: %s", tab_id, exc)
                continue
            logger.info("Redirected tab %s after relock", tab_id)
            redirected += 1
        return redirected

    async def notify(self, message: dict[str, Any]) -> None:
        """Broadcast *message*; delivery failures are ignored."""
        try:
            await self._notifier.broadcast(message)
        except SideEffectError as exc:
            logger.debug("Notification %s not delivered: %s", message.get("type"), exc)
