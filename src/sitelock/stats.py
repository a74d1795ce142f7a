"""SiteLock per-site statistics."""
from __future__ import annotations

from typing import TYPE_CHECKING

from sitelock.core.types import Clock, SiteId, SiteStats, StatsUpdate, utcnow

if TYPE_CHECKING:
    from sitelock.core.interfaces import SiteStore


class StatsTracker:
    """Applies :class:`StatsUpdate` deltas to stored statistics."""

    def __init__(self, store: SiteStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def get(self, site_id: str) -> SiteStats | None:
        """Return the statistics for *site_id*, or ``None``."""
        return next((s for s in await self._store.get_stats() if s.site_id == site_id), None)

    async def update(self, site_id: str, update: StatsUpdate) -> SiteStats:
        """Apply *update* to the entry for *site_id*, creating it if needed."""
        stats = await self._store.get_stats()
        index = next((i for i, s in enumerate(stats) if s.site_id == site_id), None)
        entry = stats[index] if index is not None else SiteStats(site_id=SiteId(site_id))

        entry = entry.model_copy(
            update={
                "visit_count": entry.visit_count + int(update.increment_visit),
                "passed_count": entry.passed_count + int(update.increment_passed),
                "time_spent_ms": entry.time_spent_ms + update.add_time,
                "last_visit": self._clock(),
            }
        )
        if index is None:
            stats.append(entry)
        else:
            stats[index] = entry
        await self._store.save_stats(stats)
        return entry
