"""SiteLock unlock ledger.

The ledger owns every temporary-access grant.  It is deliberately
backend-agnostic: both enforcement backends delegate to the same ledger
and only differ in what they re-derive after a ledger mutation.

Key rules:

* At most one live grant per site; a new grant replaces the old one.
* A grant whose ``expires_at`` is in the past is the same as no grant.
  Reads perform lazy expiry and delete such entries.
* Every grant registers a one-shot deadline trigger tagged
  ``<prefix><site_id>`` with the scheduling capability.
* A trigger that fires after a newer grant was issued for the same site
  is stale and leaves the newer grant alone.

The ledger lives for the lifetime of the process; nothing is persisted.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sitelock.core.errors import SchedulingFailed
from sitelock.core.types import Clock, Site, SiteId, TabId, UnlockGrant, utcnow
from sitelock.matching.evaluator import evaluate
from sitelock.matching.urls import is_internal_url

if TYPE_CHECKING:
    from sitelock.core.config import SiteLockConfig
    from sitelock.core.interfaces import Scheduler, TabController

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeadlineResult:
    """Outcome of a deadline trigger that evicted a grant.

    Attributes
    ----------
    site_id:
        The site whose grant expired.
    affected_tabs:
        Open tabs still showing the site; they must be redirected.
    """

    site_id: SiteId
    affected_tabs: list[TabId] = field(default_factory=list)


class UnlockLedger:
    """Tracks per-site temporary-access grants and their deadlines.

    Parameters
    ----------
    scheduler:
        Scheduling capability used for deadline triggers.
    tabs:
        Tab capability used to find tabs affected by a relock.
    config:
        Shared configuration (default duration, tag prefix, schemes).
    clock:
        Source of the current UTC time.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        tabs: TabController,
        config: SiteLockConfig,
        clock: Clock = utcnow,
    ) -> None:
        self._scheduler = scheduler
        self._tabs = tabs
        self._config = config
        self._clock = clock
        self._grants: dict[str, UnlockGrant] = {}

    # -- Tags ---------------------------------------------------------------

    def tag_for(self, site_id: str) -> str:
        """Return the deadline tag for *site_id*."""
        return f"{self._config.deadline_tag_prefix}{site_id}"

    def site_id_from_tag(self, tag: str) -> SiteId | None:
        """Return the site id encoded in *tag*, or ``None`` for foreign tags."""
        prefix = self._config.deadline_tag_prefix
        if not tag.startswith(prefix) or len(tag) == len(prefix):
            return None
        return SiteId(tag[len(prefix):])

    # -- Queries ------------------------------------------------------------

    def get_grant(self, site_id: str) -> UnlockGrant | None:
        """Return the live grant for *site_id*, or ``None``.

        Expired entries are deleted on the way.
        """
        grant = self._grants.get(site_id)
        if grant is None:
            return None
        if grant.expires_at <= self._clock():
            del self._grants[site_id]
            return None
        return grant

    def is_unlocked(self, site_id: str) -> bool:
        """Return ``True`` if *site_id* has a live grant."""
        return self.get_grant(site_id) is not None

    def active_grants(self) -> list[UnlockGrant]:
        """Return every live grant, evicting expired ones."""
        self.evict_expired()
        return list(self._grants.values())

    def evict_expired(self) -> list[SiteId]:
        """Delete every expired grant and return the affected site ids."""
        now = self._clock()
        expired = [sid for sid, g in self._grants.items() if g.expires_at <= now]
        for sid in expired:
            del self._grants[sid]
        return [SiteId(sid) for sid in expired]

    # -- Mutations ----------------------------------------------------------

    async def grant(self, site_id: str, duration_minutes: int | None = None) -> UnlockGrant:
        """Grant temporary access to *site_id*.

        ``None`` uses the configured default duration.  Any earlier grant
        for the same site is replaced and its trigger re-registered.

        Raises
        ------
        SchedulingFailed
            If the deadline trigger could not be registered; no grant is
            stored in that case.
        """
        minutes = self._config.default_unlock_minutes if duration_minutes is None else duration_minutes
        expires_at = self._clock() + timedelta(minutes=minutes)
        grant = UnlockGrant(site_id=SiteId(site_id), expires_at=expires_at)

        await self._scheduler.register_deadline(self.tag_for(site_id), expires_at)
        self._grants[site_id] = grant
        logger.info("Unlocked site %s until %s", site_id, expires_at.isoformat())
        return grant

    async def revoke(self, site_id: str, sites: Iterable[Site] = ()) -> list[TabId]:
        """Remove the grant for *site_id* and cancel its trigger.

        Returns the open tabs whose URL the site blocks, so the caller can
        redirect them.  *sites* is the caller's current site snapshot; an
        id absent from it yields no tabs.  Revoking a site without a
        grant is a no-op apart from the tab scan.
        """
        self._grants.pop(site_id, None)
        try:
            await self._scheduler.cancel_deadline(self.tag_for(site_id))
        except SchedulingFailed as exc:
            # A surviving trigger is harmless: on_deadline re-validates.
            logger.warning("Could not cancel deadline for site %s: %s", site_id, exc)

        site = next((s for s in sites if s.id == site_id), None)
        if site is None:
            return []
        return await self.affected_tabs(site)

    async def on_deadline(
        self,
        tag: str,
        sites: Iterable[Site] = (),
        scheduled_for: datetime | None = None,
    ) -> DeadlineResult | None:
        """Handle a fired trigger.

        Returns ``None`` for tags the ledger does not own and for stale
        triggers.  A trigger is stale when the live grant does not belong
        to it: its ``expires_at`` differs from *scheduled_for*, or, when
        the trigger carries no time, the grant has not expired yet.
        """
        site_id = self.site_id_from_tag(tag)
        if site_id is None:
            return None

        current = self._grants.get(site_id)
        if current is not None:
            if scheduled_for is not None:
                stale = current.expires_at != scheduled_for
            else:
                stale = current.expires_at > self._clock()
            if stale:
                logger.debug("Ignoring stale deadline %s", tag)
                return None

        tabs = await self.revoke(site_id, sites)
        return DeadlineResult(site_id=site_id, affected_tabs=tabs)

    # -- Helpers ------------------------------------------------------------

    async def affected_tabs(self, site: Site) -> list[TabId]:
        """Return the open, non-internal tabs whose URL *site* blocks."""
        matching: list[TabId] = []
        for tab in await self._tabs.list_tabs():
            if not tab.url or is_internal_url(tab.url, self._config):
                continue
            if evaluate(tab.url, site):
                matching.append(tab.id)
        return matching
