"""SiteLock Provider -- the composition root.

This module implements :class:`SiteLockProvider`, the entry point a
platform shell (browser extension background, test harness) talks to.
It wires the collaborators together once:

1. **Unlock ledger** -- owns every grant and its deadline trigger.
2. **Enforcement backend** -- chosen from a capability probe by
   :func:`~sitelock.enforcement.selection.select_backend`.
3. **Sync coordinator** -- refresh on site changes, relock on deadlines,
   re-check navigations the backend cannot see.
4. **Site registry** and **stats tracker** -- the remaining storage-backed
   operations.

and routes the upward message contract (:mod:`sitelock.wire.messages`)
to them.  A message never raises out of :meth:`SiteLockProvider.
handle_message`; failures come back as an ``{"error": ...}`` payload.

Usage
-----
::

    from sitelock.core.interfaces import (
        InMemoryInterceptionPlatform,
        InMemoryNotifier,
        InMemorySiteStore,
        InMemoryTabController,
    )
    from sitelock.enforcement import PlatformCapabilities
    from sitelock.provider import SiteLockProvider

    provider = SiteLockProvider(
        store=InMemorySiteStore(),
        tabs=InMemoryTabController(),
        notifier=InMemoryNotifier(),
        capabilities=PlatformCapabilities(interception=InMemoryInterceptionPlatform()),
    )
    await provider.initialize()

    response = await provider.handle_message({"type": "CHECK_BLOCKED", "url": url})
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from sitelock.core.config import SiteLockConfig
from sitelock.core.errors import MalformedMessage, SiteLockError
from sitelock.core.interfaces import AsyncioScheduler
from sitelock.core.types import Clock, Site, SiteDraft, TabId, utcnow
from sitelock.enforcement.selection import PlatformCapabilities, select_backend
from sitelock.matching.evaluator import find_matching_site
from sitelock.matching.urls import extract_domain
from sitelock.sites import SiteRegistry
from sitelock.stats import StatsTracker
from sitelock.sync import NavigationSource, SyncCoordinator
from sitelock.unlock.ledger import DeadlineResult, UnlockLedger
from sitelock.wire.messages import (
    CheckBlockedRequest,
    CheckBlockedResponse,
    CheckUnlockStateRequest,
    CurrentTabResponse,
    GetSiteInfoRequest,
    MessageType,
    Request,
    SettingsResponse,
    SiteInfoResponse,
    SiteUnlockedNotification,
    SuccessResponse,
    UnlockSiteRequest,
    UnlockSiteResponse,
    UnlockStateResponse,
    UpdateStatsRequest,
    parse_request,
    to_wire,
)

if TYPE_CHECKING:
    from sitelock.core.interfaces import Notifier, Scheduler, SiteStore, TabController
    from sitelock.enforcement.base import BaseBackend

logger = logging.getLogger(__name__)

_Handler = Callable[[Any], Awaitable[BaseModel]]
"""Handler for one message type; receives that type's request model."""


class SiteLockProvider:
    """Composes the SiteLock core and answers UI messages.

    Parameters
    ----------
    store:
        Storage capability for sites, settings and statistics.
    tabs:
        Tab capability.
    notifier:
        Broadcast channel towards the UI pages.
    capabilities:
        What the platform offers for enforcement.  An empty probe yields
        a backend that initialises without enforcing.
    scheduler:
        Deadline scheduling capability.  Defaults to an
        :class:`~sitelock.core.interfaces.AsyncioScheduler` that calls
        :meth:`on_deadline`.
    config:
        Shared configuration; defaults to ``SiteLockConfig()``.
    clock:
        Source of the current UTC time.
    """

    def __init__(
        self,
        *,
        store: SiteStore,
        tabs: TabController,
        notifier: Notifier,
        capabilities: PlatformCapabilities | None = None,
        scheduler: Scheduler | None = None,
        config: SiteLockConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._config = config or SiteLockConfig()
        self._store = store
        self._tabs = tabs
        self._scheduler: Scheduler = scheduler or AsyncioScheduler(self.on_deadline, clock)

        self._ledger = UnlockLedger(self._scheduler, tabs, self._config, clock)
        self._backend = select_backend(
            capabilities or PlatformCapabilities(),
            store=store,
            ledger=self._ledger,
            tabs=tabs,
            config=self._config,
            clock=clock,
        )
        self._coordinator = SyncCoordinator(self._backend, store, tabs, notifier, self._config)
        self._registry = SiteRegistry(store, clock)
        self._stats = StatsTracker(store, clock)

        self._handlers: dict[MessageType, _Handler] = {
            MessageType.CHECK_BLOCKED: self._check_blocked,
            MessageType.GET_SITE_INFO: self._get_site_info,
            MessageType.CHECK_UNLOCK_STATE: self._check_unlock_state,
            MessageType.UNLOCK_SITE: self._unlock_site,
            MessageType.UPDATE_STATS: self._update_stats,
            MessageType.GET_SETTINGS: self._get_settings,
            MessageType.GET_CURRENT_TAB_URL: self._get_current_tab_url,
            MessageType.SYNC_RULES: self._sync_rules,
        }

    # -- Accessors ----------------------------------------------------------

    @property
    def config(self) -> SiteLockConfig:
        return self._config

    @property
    def backend(self) -> BaseBackend:
        """The enforcement backend selected at construction."""
        return self._backend

    @property
    def ledger(self) -> UnlockLedger:
        return self._ledger

    @property
    def coordinator(self) -> SyncCoordinator:
        return self._coordinator

    @property
    def registry(self) -> SiteRegistry:
        return self._registry

    @property
    def stats(self) -> StatsTracker:
        return self._stats

    # -- Lifecycle ----------------------------------------------------------

    async def initialize(self) -> None:
        """Initialise the backend and subscribe to site-list changes."""
        await self._backend.initialize()
        self._coordinator.attach()
        logger.info("SiteLock started with %s backend", self._backend.name)

    # -- Platform events ----------------------------------------------------

    async def on_deadline(
        self, tag: str, scheduled_for: datetime | None = None
    ) -> DeadlineResult | None:
        """Entry point for fired deadline triggers."""
        return await self._coordinator.on_deadline(tag, scheduled_for)

    async def on_navigation(
        self,
        tab_id: TabId,
        url: str,
        *,
        frame_id: int = 0,
        source: NavigationSource = NavigationSource.TAB_UPDATED,
    ) -> bool:
        """Entry point for navigation events; ``True`` if the tab was redirected."""
        return await self._coordinator.on_navigation(
            tab_id, url, frame_id=frame_id, source=source
        )

    # -- Site management ----------------------------------------------------

    async def add_site(self, draft: SiteDraft | Mapping[str, Any]) -> Site:
        """Create a site; accepts a draft or its camelCase JSON object."""
        if not isinstance(draft, SiteDraft):
            draft = SiteDraft.model_validate(dict(draft))
        return await self._registry.add_site(draft)

    async def update_site(self, site_id: str, **updates: Any) -> Site | None:
        """Partially update a site; ``None`` if it does not exist."""
        return await self._registry.update_site(site_id, **updates)

    async def relock(self, site_id: str) -> list[TabId]:
        """End a grant early and redirect the tabs still on the site."""
        return await self._coordinator.relock(site_id)

    # -- Message routing ----------------------------------------------------

    async def handle_message(self, message: Mapping[str, Any] | str | bytes) -> dict[str, Any]:
        """Answer one UI message.

        Returns the camelCase response object, or ``{"error": {...}}`` for
        unknown types, malformed messages and handler failures.
        """
        try:
            request = parse_request(message)
            response = await self._handlers[request.type](request)
        except SiteLockError as exc:
            logger.info("Rejected message: %s", exc.message)
            return exc.to_dict()
        except ValidationError as exc:
            return MalformedMessage(
                str(exc.errors(include_url=False, include_context=False))
            ).to_dict()
        except Exception as exc:
            logger.exception("Message handler error")
            return SiteLockError(str(exc)).to_dict()
        return to_wire(response)

    # -- Handlers -----------------------------------------------------------

    async def _check_blocked(self, request: CheckBlockedRequest) -> BaseModel:
        site = find_matching_site(request.url, await self._store.get_sites())
        if site is None:
            return CheckBlockedResponse(blocked=False)
        settings = await self._store.get_settings()
        unlocked = await self._backend.is_site_unlocked(site.id)
        return CheckBlockedResponse(
            blocked=not unlocked,
            site=None if unlocked else site,
            stats_enabled=settings.stats_enabled,
        )

    async def _get_site_info(self, request: GetSiteInfoRequest) -> BaseModel:
        site: Site | None = None
        if request.site_id:
            site = await self._registry.get_site(request.site_id)
        if site is None and request.url:
            site = find_matching_site(request.url, await self._store.get_sites())
        if site is None:
            return SiteInfoResponse()

        settings = await self._store.get_settings()
        grant = await self._backend.get_unlock_state(site.id)
        return SiteInfoResponse(
            site=site,
            stats_enabled=settings.stats_enabled,
            already_unlocked=grant is not None,
            expires_at=grant.expires_at if grant else None,
        )

    async def _check_unlock_state(self, request: CheckUnlockStateRequest) -> BaseModel:
        grant = await self._backend.get_unlock_state(request.site_id)
        return UnlockStateResponse(
            unlocked=grant is not None,
            expires_at=grant.expires_at if grant else None,
        )

    async def _unlock_site(self, request: UnlockSiteRequest) -> BaseModel:
        grant = await self._backend.grant_access(request.site_id, request.duration_minutes)
        if grant is None:
            return UnlockSiteResponse(success=False)
        await self._coordinator.notify(
            to_wire(SiteUnlockedNotification(site_id=grant.site_id, expires_at=grant.expires_at))
        )
        return UnlockSiteResponse(success=True, expires_at=grant.expires_at)

    async def _update_stats(self, request: UpdateStatsRequest) -> BaseModel:
        await self._stats.update(request.site_id, request.update)
        return SuccessResponse()

    async def _get_settings(self, request: Request) -> BaseModel:
        return SettingsResponse(settings=await self._store.get_settings())

    async def _get_current_tab_url(self, request: Request) -> BaseModel:
        tab = await self._tabs.get_active_tab()
        url = tab.url if tab is not None else None
        return CurrentTabResponse(url=url, domain=extract_domain(url) if url else "")

    async def _sync_rules(self, request: Request) -> BaseModel:
        await self._backend.refresh()
        return SuccessResponse()
