"""SiteLock site lifecycle.

Sites are created from a :class:`~sitelock.core.types.SiteDraft` (the
registry assigns the id and creation time) and afterwards only updated in
place.  Every write goes through the storage capability, whose change
listeners keep the enforcement backend in sync.
"""
from __future__ import annotations

import secrets
import string
from typing import TYPE_CHECKING, Any

from sitelock.core.types import Clock, Site, SiteDraft, SiteId, utcnow

if TYPE_CHECKING:
    from sitelock.core.interfaces import SiteStore

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_LENGTH = 8

IMMUTABLE_FIELDS: frozenset[str] = frozenset({"id", "created_at"})
"""Fields that never change once a site exists."""


def generate_site_id() -> SiteId:
    """Return a random 8-character lower-case alphanumeric id."""
    return SiteId("".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH)))


class SiteRegistry:
    """Creates, reads and updates sites.

    Parameters
    ----------
    store:
        Storage capability holding the site list.
    clock:
        Source of creation timestamps.
    """

    def __init__(self, store: SiteStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def list_sites(self) -> list[Site]:
        """Return all sites in user order."""
        return await self._store.get_sites()

    async def get_site(self, site_id: str) -> Site | None:
        """Return the site with *site_id*, or ``None``."""
        return next((s for s in await self._store.get_sites() if s.id == site_id), None)

    async def add_site(self, draft: SiteDraft) -> Site:
        """Create a site from *draft*, append it and persist the list."""
        sites = await self._store.get_sites()
        taken = {s.id for s in sites}
        site_id = generate_site_id()
        while site_id in taken:
            site_id = generate_site_id()

        site = Site(**dict(draft), id=site_id, created_at=self._clock())
        sites.append(site)
        await self._store.save_sites(sites)
        return site

    async def update_site(self, site_id: str, **updates: Any) -> Site | None:
        """Apply a partial update to the site with *site_id*.

        Keys are field names (``enabled=False``, ``rules=[...]``).  Changes
        to immutable fields are ignored.  Changing ``unlock_method``
        without new ``challenge_settings`` resets the settings to the new
        method's defaults.  Returns ``None`` (and writes nothing) when the
        site does not exist.

        Raises
        ------
        pydantic.ValidationError
            If the updated site is invalid; nothing is written.
        """
        sites = await self._store.get_sites()
        index = next((i for i, s in enumerate(sites) if s.id == site_id), None)
        if index is None:
            return None

        changes = {k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS}
        current = dict(sites[index])
        if "unlock_method" in changes and "challenge_settings" not in changes:
            current["challenge_settings"] = None
        updated = Site.model_validate({**current, **changes})

        sites[index] = updated
        await self._store.save_sites(sites)
        return updated
