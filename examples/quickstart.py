#!/usr/bin/env python3
"""SiteLock quickstart -- block, unlock, relock.

Demonstrates the core workflow:

1. Create a SiteLock provider with in-memory capabilities.
2. Add a site that blocks reddit.com.
3. Navigate to it and watch the request get cancelled and redirected.
4. Unlock the site for a few minutes through the message contract.
5. Let the grant expire and watch open tabs get sent back.

Run:
    python examples/quickstart.py
"""
from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from sitelock import SiteLockProvider
from sitelock.core.interfaces import (
    InMemoryInterceptionPlatform,
    InMemoryNotifier,
    InMemoryScheduler,
    InMemorySiteStore,
    InMemoryTabController,
)
from sitelock.core.types import RequestContext
from sitelock.enforcement import PlatformCapabilities


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now


async def main() -> None:
    # -- Step 1: Create the provider with in-memory capabilities -------------
    clock = ManualClock()
    platform = InMemoryInterceptionPlatform()
    scheduler = InMemoryScheduler()
    tabs = InMemoryTabController()
    notifier = InMemoryNotifier()
    provider = SiteLockProvider(
        store=InMemorySiteStore(),
        tabs=tabs,
        notifier=notifier,
        capabilities=PlatformCapabilities(interception=platform),
        scheduler=scheduler,
        clock=clock,
    )
    await provider.initialize()
    print(f"[1] Provider started with the {provider.backend.name} backend")

    # -- Step 2: Add a site --------------------------------------------------
    site = await provider.add_site(
        {"name": "Reddit", "rules": [{"pattern": "reddit.com"}], "unlockMethod": "timer"}
    )
    print(f"[2] Site added: {site.name} ({site.id})")

    # -- Step 3: Navigate ----------------------------------------------------
    url = "https://www.reddit.com/r/python"
    tabs.open(1, "https://example.com/", active=True)
    cancelled = platform.dispatch(url, RequestContext(tab_id=1))
    await asyncio.sleep(0)
    print(f"[3] Navigation cancelled: {cancelled}; tab 1 now at {tabs.redirects[-1][1]}")

    # -- Step 4: Unlock ------------------------------------------------------
    response = await provider.handle_message(
        {"type": "UNLOCK_SITE", "siteId": site.id, "durationMinutes": 5}
    )
    print(f"[4] Unlocked until {response['expiresAt']}")
    print(f"    CHECK_BLOCKED: {await provider.handle_message({'type': 'CHECK_BLOCKED', 'url': url})}")
    tabs.open(1, url, active=True)

    # -- Step 5: Expire ------------------------------------------------------
    clock.now += timedelta(minutes=5)
    for tag, when in scheduler.due(clock()):
        result = await provider.on_deadline(tag, when)
        if result is not None:
            print(f"[5] Relocked {result.site_id}; redirected tabs {result.affected_tabs}")
    print(f"    Notifications sent: {[m['type'] for m in notifier.messages]}")


if __name__ == "__main__":
    asyncio.run(main())
