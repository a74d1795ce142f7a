"""Tests for SiteLockProvider -- the composition root and message router.

Covers:

1. **End-to-end blocking** -- block, unlock, expire, relock on both backends.
2. **Path-scoped rules** -- through the message contract.
3. **Message handlers** -- every request type and its response shape.
4. **Error payloads** -- unknown types, malformed messages, handler failures.
5. **Site management** -- drafts from camelCase JSON reach the backend.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

import pytest

from sitelock.core.config import SiteLockConfig
from sitelock.core.interfaces import (
    AsyncioScheduler,
    InMemoryDirectiveTable,
    InMemoryInterceptionPlatform,
    InMemoryNotifier,
    InMemoryScheduler,
    InMemorySiteStore,
    InMemoryTabController,
)
from sitelock.core.types import Rule, Settings, Site, SiteDraft, SiteId, StatsUpdate
from sitelock.enforcement.selection import PlatformCapabilities
from sitelock.provider import SiteLockProvider

from .conftest import FakeClock

REDDIT = Site(id=SiteId("reddit01"), name="Reddit", rules=[Rule(pattern="reddit.com")])
X_DMS = Site(id=SiteId("xdms0001"), name="X DMs", rules=[Rule(pattern="x.com/messages")])


def _capabilities(kind: str) -> PlatformCapabilities:
    if kind == "declarative":
        return PlatformCapabilities(directive_table=InMemoryDirectiveTable())
    return PlatformCapabilities(interception=InMemoryInterceptionPlatform())


@pytest.fixture(params=["interception", "declarative"])
def provider(
    request: pytest.FixtureRequest,
    store: InMemorySiteStore,
    tabs: InMemoryTabController,
    notifier: InMemoryNotifier,
    scheduler: InMemoryScheduler,
    clock: FakeClock,
) -> SiteLockProvider:
    """A provider on each backend, wired to in-memory capabilities."""
    return SiteLockProvider(
        store=store,
        tabs=tabs,
        notifier=notifier,
        capabilities=_capabilities(request.param),
        scheduler=scheduler,
        clock=clock,
    )


async def _fire_due(provider: SiteLockProvider, scheduler: InMemoryScheduler, now: datetime) -> None:
    for tag, when in scheduler.due(now):
        await provider.on_deadline(tag, when)


# ---------------------------------------------------------------------------
# End-to-end
# ---------------------------------------------------------------------------

class TestEndToEnd:
    """Block, unlock, expire and relock through the public surface."""

    @pytest.mark.asyncio
    async def test_reddit_scenario(
        self,
        provider: SiteLockProvider,
        store: InMemorySiteStore,
        tabs: InMemoryTabController,
        scheduler: InMemoryScheduler,
        clock: FakeClock,
    ) -> None:
        await store.save_sites([REDDIT])
        await provider.initialize()
        url = "https://www.reddit.com/r/test"
        check = {"type": "CHECK_BLOCKED", "url": url}

        assert (await provider.handle_message(check))["blocked"] is True
        assert provider.backend.decide(url).blocked

        unlocked = await provider.handle_message(
            {"type": "UNLOCK_SITE", "siteId": "reddit01", "durationMinutes": 60}
        )
        assert unlocked["success"] is True
        assert (await provider.handle_message(check))["blocked"] is False
        assert not provider.backend.decide(url).blocked

        tabs.open(1, url)
        tabs.open(2, "https://example.com/")
        tabs.open(3, "https://reddit.com/")
        clock.advance(minutes=61)
        await _fire_due(provider, scheduler, clock())

        assert (await provider.handle_message(check))["blocked"] is True
        assert provider.backend.decide(url).blocked
        assert sorted(tab_id for tab_id, _ in tabs.redirects) == [1, 3]

    @pytest.mark.asyncio
    async def test_path_scoped_rule(self, provider: SiteLockProvider, store: InMemorySiteStore) -> None:
        await store.save_sites([X_DMS])
        await provider.initialize()

        blocked = await provider.handle_message(
            {"type": "CHECK_BLOCKED", "url": "https://x.com/messages/123"}
        )
        allowed = await provider.handle_message(
            {"type": "CHECK_BLOCKED", "url": "https://x.com/home"}
        )

        assert blocked["blocked"] is True
        assert blocked["site"]["id"] == "xdms0001"
        assert allowed == {"blocked": False, "site": None, "statsEnabled": False}

    @pytest.mark.asyncio
    async def test_new_site_is_enforced(
        self, provider: SiteLockProvider, store: InMemorySiteStore
    ) -> None:
        await provider.initialize()
        site = await provider.add_site(
            {"name": "Reddit", "rules": [{"pattern": "reddit.com", "allow": False}]}
        )
        decision = provider.backend.decide("https://reddit.com/")
        assert decision.blocked
        assert decision.site_id == site.id

    @pytest.mark.asyncio
    async def test_disabling_site_stops_enforcement(
        self, provider: SiteLockProvider, store: InMemorySiteStore
    ) -> None:
        await store.save_sites([REDDIT])
        await provider.initialize()
        await provider.update_site("reddit01", enabled=False)
        assert not provider.backend.decide("https://reddit.com/").blocked


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

@pytest.fixture
def interception_provider(
    store: InMemorySiteStore,
    tabs: InMemoryTabController,
    notifier: InMemoryNotifier,
    scheduler: InMemoryScheduler,
    clock: FakeClock,
) -> SiteLockProvider:
    return SiteLockProvider(
        store=store,
        tabs=tabs,
        notifier=notifier,
        capabilities=_capabilities("interception"),
        scheduler=scheduler,
        clock=clock,
    )


class TestHandlers:
    """Response shapes of every request type."""

    @pytest.mark.asyncio
    async def test_check_blocked_reports_settings(
        self, interception_provider: SiteLockProvider, store: InMemorySiteStore
    ) -> None:
        await store.save_sites([REDDIT])
        await store.save_settings(Settings(stats_enabled=False))
        await interception_provider.initialize()

        response = await interception_provider.handle_message(
            {"type": "CHECK_BLOCKED", "url": "https://reddit.com/"}
        )

        assert response["blocked"] is True
        assert response["statsEnabled"] is False
        assert response["site"]["unlockMethod"] == "timer"
        assert response["site"]["challengeSettings"] == {"seconds": 30}

    @pytest.mark.asyncio
    async def test_check_blocked_first_site_unlocked(
        self, interception_provider: SiteLockProvider, store: InMemorySiteStore
    ) -> None:
        later = Site(id=SiteId("later001"), name="Later", rules=[Rule(pattern="*.reddit.com")])
        await store.save_sites([REDDIT, later])
        await interception_provider.initialize()
        await interception_provider.handle_message({"type": "UNLOCK_SITE", "siteId": "reddit01"})

        response = await interception_provider.handle_message(
            {"type": "CHECK_BLOCKED", "url": "https://reddit.com/"}
        )

        assert response == {"blocked": False, "site": None, "statsEnabled": True}

    @pytest.mark.asyncio
    async def test_site_info_by_id_and_url(
        self, interception_provider: SiteLockProvider, store: InMemorySiteStore
    ) -> None:
        await store.save_sites([REDDIT])
        await interception_provider.initialize()

        by_id = await interception_provider.handle_message(
            {"type": "GET_SITE_INFO", "siteId": "reddit01"}
        )
        by_url = await interception_provider.handle_message(
            {"type": "GET_SITE_INFO", "siteId": "missing", "url": "https://reddit.com/"}
        )
        unknown = await interception_provider.handle_message(
            {"type": "GET_SITE_INFO", "url": "https://example.com/"}
        )

        assert by_id["site"]["id"] == "reddit01"
        assert by_id["alreadyUnlocked"] is False
        assert by_id["expiresAt"] is None
        assert by_url["site"]["id"] == "reddit01"
        assert unknown["site"] is None
        assert unknown["statsEnabled"] is False

    @pytest.mark.asyncio
    async def test_site_info_after_unlock(
        self, interception_provider: SiteLockProvider, store: InMemorySiteStore, clock: FakeClock
    ) -> None:
        await store.save_sites([REDDIT])
        await interception_provider.initialize()
        await interception_provider.handle_message(
            {"type": "UNLOCK_SITE", "siteId": "reddit01", "durationMinutes": 15}
        )

        info = await interception_provider.handle_message(
            {"type": "GET_SITE_INFO", "siteId": "reddit01"}
        )

        assert info["alreadyUnlocked"] is True
        assert datetime.fromisoformat(info["expiresAt"]) == clock() + timedelta(minutes=15)

    @pytest.mark.asyncio
    async def test_unlock_state(
        self, interception_provider: SiteLockProvider, store: InMemorySiteStore, clock: FakeClock
    ) -> None:
        await store.save_sites([REDDIT])
        await interception_provider.initialize()
        message = {"type": "CHECK_UNLOCK_STATE", "siteId": "reddit01"}

        assert await interception_provider.handle_message(message) == {
            "unlocked": False,
            "expiresAt": None,
        }
        await interception_provider.handle_message({"type": "UNLOCK_SITE", "siteId": "reddit01"})
        state = await interception_provider.handle_message(message)

        assert state["unlocked"] is True
        assert datetime.fromisoformat(state["expiresAt"]) == clock() + timedelta(minutes=60)

    @pytest.mark.asyncio
    async def test_unlock_broadcasts(
        self,
        interception_provider: SiteLockProvider,
        store: InMemorySiteStore,
        notifier: InMemoryNotifier,
        scheduler: InMemoryScheduler,
    ) -> None:
        await store.save_sites([REDDIT])
        await interception_provider.initialize()

        response = await interception_provider.handle_message(
            {"type": "UNLOCK_SITE", "siteId": "reddit01", "durationMinutes": 5}
        )

        [message] = notifier.messages
        assert message["type"] == "SITE_UNLOCKED"
        assert message["siteId"] == "reddit01"
        assert message["expiresAt"] == response["expiresAt"]
        assert "relock-reddit01" in scheduler.pending()

    @pytest.mark.asyncio
    async def test_unlock_unknown_site(
        self,
        interception_provider: SiteLockProvider,
        notifier: InMemoryNotifier,
        scheduler: InMemoryScheduler,
    ) -> None:
        await interception_provider.initialize()
        response = await interception_provider.handle_message(
            {"type": "UNLOCK_SITE", "siteId": "missing"}
        )
        assert response == {"success": False, "expiresAt": None}
        assert notifier.messages == []
        assert scheduler.pending() == {}

    @pytest.mark.asyncio
    async def test_unlock_survives_silent_ui(
        self,
        interception_provider: SiteLockProvider,
        store: InMemorySiteStore,
        notifier: InMemoryNotifier,
    ) -> None:
        notifier.listening = False
        await store.save_sites([REDDIT])
        await interception_provider.initialize()
        response = await interception_provider.handle_message(
            {"type": "UNLOCK_SITE", "siteId": "reddit01"}
        )
        assert response["success"] is True

    @pytest.mark.asyncio
    async def test_update_stats(
        self, interception_provider: SiteLockProvider, clock: FakeClock
    ) -> None:
        await interception_provider.initialize()
        response = await interception_provider.handle_message(
            {
                "type": "UPDATE_STATS",
                "siteId": "reddit01",
                "update": {"incrementVisit": True, "addTime": 1500},
            }
        )

        assert response == {"success": True}
        stats = await interception_provider.stats.get("reddit01")
        assert stats is not None
        assert stats.visit_count == 1
        assert stats.passed_count == 0
        assert stats.time_spent_ms == 1500
        assert stats.last_visit == clock()

    @pytest.mark.asyncio
    async def test_get_settings(self, interception_provider: SiteLockProvider) -> None:
        response = await interception_provider.handle_message({"type": "GET_SETTINGS"})
        assert response == {"settings": {"statsEnabled": True}}

    @pytest.mark.asyncio
    async def test_current_tab_url(
        self, interception_provider: SiteLockProvider, tabs: InMemoryTabController
    ) -> None:
        tabs.open(1, "https://example.com/")
        tabs.open(2, "https://www.reddit.com/r/test", active=True)
        response = await interception_provider.handle_message({"type": "GET_CURRENT_TAB_URL"})
        assert response == {"url": "https://www.reddit.com/r/test", "domain": "reddit.com"}

    @pytest.mark.asyncio
    async def test_current_tab_url_without_tab(self, interception_provider: SiteLockProvider) -> None:
        response = await interception_provider.handle_message({"type": "GET_CURRENT_TAB_URL"})
        assert response == {"url": None, "domain": ""}

    @pytest.mark.asyncio
    async def test_sync_rules(
        self, interception_provider: SiteLockProvider, store: InMemorySiteStore
    ) -> None:
        await interception_provider.initialize()
        store._sites = [REDDIT]
        assert not interception_provider.backend.decide("https://reddit.com/").blocked

        response = await interception_provider.handle_message({"type": "SYNC_RULES"})

        assert response == {"success": True}
        assert interception_provider.backend.decide("https://reddit.com/").blocked

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            {"type": "CHECK_BLOCKED", "url": "https://reddit.com/"},
            {"type": "GET_SITE_INFO", "siteId": "reddit01"},
            {"type": "CHECK_UNLOCK_STATE", "siteId": "reddit01"},
            {"type": "UNLOCK_SITE", "siteId": "reddit01"},
            {"type": "UPDATE_STATS", "siteId": "reddit01"},
            {"type": "GET_SETTINGS"},
            {"type": "GET_CURRENT_TAB_URL"},
            {"type": "SYNC_RULES"},
        ],
        ids=lambda message: message["type"],
    )
    async def test_every_request_type_is_answered(
        self,
        interception_provider: SiteLockProvider,
        store: InMemorySiteStore,
        message: dict[str, str],
    ) -> None:
        await store.save_sites([REDDIT])
        await interception_provider.initialize()
        response = await interception_provider.handle_message(message)
        assert "error" not in response


# ---------------------------------------------------------------------------
# Error payloads
# ---------------------------------------------------------------------------

class FailingSettingsStore(InMemorySiteStore):
    async def get_settings(self) -> Settings:
        raise RuntimeError("storage corrupted")


class TestErrorPayloads:
    """Failures come back as error payloads, never as exceptions."""

    @pytest.mark.asyncio
    async def test_unknown_type(self, interception_provider: SiteLockProvider) -> None:
        response = await interception_provider.handle_message({"type": "OPEN_POPUP"})
        assert response["error"]["code"] == "SL-E500"

    @pytest.mark.asyncio
    async def test_notification_type_is_not_a_request(
        self, interception_provider: SiteLockProvider
    ) -> None:
        response = await interception_provider.handle_message(
            {"type": "SITE_RELOCKED", "siteId": "reddit01"}
        )
        assert response["error"]["code"] == "SL-E500"

    @pytest.mark.asyncio
    async def test_malformed_message(self, interception_provider: SiteLockProvider) -> None:
        response = await interception_provider.handle_message({"type": "UNLOCK_SITE"})
        assert response["error"]["code"] == "SL-E501"

    @pytest.mark.asyncio
    async def test_json_text(self, interception_provider: SiteLockProvider) -> None:
        response = await interception_provider.handle_message('{"type": "GET_SETTINGS"}')
        assert response == {"settings": {"statsEnabled": True}}

    @pytest.mark.asyncio
    async def test_bytes_not_utf8(
        self, interception_provider: SiteLockProvider, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.ERROR):
            response = await interception_provider.handle_message(b'{"type": "\xff"}')
        assert response["error"]["code"] == "SL-E501"
        assert "Message handler error" not in caplog.text

    @pytest.mark.asyncio
    async def test_handler_failure(
        self,
        tabs: InMemoryTabController,
        notifier: InMemoryNotifier,
        scheduler: InMemoryScheduler,
    ) -> None:
        provider = SiteLockProvider(
            store=FailingSettingsStore(),
            tabs=tabs,
            notifier=notifier,
            scheduler=scheduler,
        )
        response = await provider.handle_message({"type": "GET_SETTINGS"})
        assert response == {"error": {"code": "SL-E000", "message": "storage corrupted"}}


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

class TestComposition:
    """Defaults chosen when collaborators are omitted."""

    def test_default_scheduler_and_config(
        self, store: InMemorySiteStore, tabs: InMemoryTabController, notifier: InMemoryNotifier
    ) -> None:
        provider = SiteLockProvider(store=store, tabs=tabs, notifier=notifier)
        assert isinstance(provider._scheduler, AsyncioScheduler)
        assert provider.config == SiteLockConfig()
        assert provider.backend.name == "interception"

    @pytest.mark.asyncio
    async def test_add_site_accepts_draft(
        self, interception_provider: SiteLockProvider
    ) -> None:
        draft = SiteDraft(name="News", rules=[Rule(pattern="news.ycombinator.com")])
        site = await interception_provider.add_site(draft)
        assert (await interception_provider.registry.get_site(site.id)) == site

    @pytest.mark.asyncio
    async def test_stats_tracker_is_shared(self, interception_provider: SiteLockProvider) -> None:
        await interception_provider.stats.update("a", StatsUpdate(increment_passed=True))
        response = await interception_provider.handle_message(
            {"type": "UPDATE_STATS", "siteId": "a", "update": {"incrementPassed": True}}
        )
        assert response == {"success": True}
        stats = await interception_provider.stats.get("a")
        assert stats is not None
        assert stats.passed_count == 2
