"""SiteLock collaborator interfaces and in-memory implementations.

This module defines the *structural* interfaces (``typing.Protocol``) for
every platform capability the core calls -- storage, scheduling, tabs,
notifications, request interception and the declarative directive table --
plus lightweight in-memory implementations suitable for testing and local
development.

Every Protocol class is decorated with ``@runtime_checkable`` so that
``isinstance`` checks work at run-time in addition to static analysis.

In-memory implementations are **not** thread-safe.  They are meant to run
on a single event loop, which is also the concurrency model of the core.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sitelock.core.errors import NotificationFailed, RedirectFailed
from sitelock.core.types import (
    Clock,
    RequestContext,
    Settings,
    Site,
    SiteStats,
    TabId,
    TabInfo,
    utcnow,
)

if TYPE_CHECKING:
    from sitelock.enforcement.declarative import Directive

SitesListener = Callable[[list[Site]], Awaitable[None]]
"""Async callback invoked with the new site list after it is persisted."""

DeadlineCallback = Callable[[str, datetime], Awaitable[None]]
"""Async callback invoked with ``(tag, scheduled_for)`` when a trigger fires."""

RequestListener = Callable[[str, RequestContext], bool]
"""Synchronous interception callback; returns ``True`` to cancel."""


# ===================================================================
# Protocol (interface) definitions
# ===================================================================

@runtime_checkable
class SiteStore(Protocol):
    """Key-value storage for sites, settings and statistics.

    Absent keys resolve to an empty list or default settings.
    """

    async def get_sites(self) -> list[Site]:
        """Return the stored site list in user order."""
        ...

    async def save_sites(self, sites: Sequence[Site]) -> None:
        """Replace the stored site list and notify change listeners."""
        ...

    async def get_settings(self) -> Settings:
        """Return stored settings merged over the defaults."""
        ...

    async def save_settings(self, settings: Settings) -> None:
        """Replace the stored settings."""
        ...

    async def get_stats(self) -> list[SiteStats]:
        """Return all statistics entries."""
        ...

    async def save_stats(self, stats: Sequence[SiteStats]) -> None:
        """Replace all statistics entries."""
        ...

    def add_sites_listener(self, listener: SitesListener) -> None:
        """Register *listener* for site-list changes."""
        ...


@runtime_checkable
class Scheduler(Protocol):
    """One-shot, tag-addressed deadline triggers.

    Registering a tag that is already pending replaces the earlier
    registration.  Each registration fires at most once.
    """

    async def register_deadline(self, tag: str, when: datetime) -> None:
        """Schedule *tag* to fire at *when*."""
        ...

    async def cancel_deadline(self, tag: str) -> bool:
        """Cancel *tag*; return ``True`` if it was pending."""
        ...


@runtime_checkable
class TabController(Protocol):
    """Access to the open browser tabs."""

    async def list_tabs(self) -> list[TabInfo]:
        """Return every open tab."""
        ...

    async def get_tab(self, tab_id: TabId) -> TabInfo | None:
        """Return the tab, or ``None`` if it no longer exists."""
        ...

    async def get_active_tab(self) -> TabInfo | None:
        """Return the focused tab of the current window, if any."""
        ...

    async def redirect(self, tab_id: TabId, url: str) -> None:
        """Navigate *tab_id* to *url*.

        Raises :class:`RedirectFailed` if the tab is gone.
        """
        ...


@runtime_checkable
class Notifier(Protocol):
    """Broadcast channel towards the UI pages."""

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send *message* to every listening page.

        Raises :class:`NotificationFailed` if nobody receives it.
        """
        ...


@runtime_checkable
class InterceptionPlatform(Protocol):
    """Blocking, synchronous request interception."""

    def add_listener(self, listener: RequestListener) -> None:
        """Call *listener* for every top-level request before it is sent."""
        ...


@runtime_checkable
class DirectiveTable(Protocol):
    """Declarative match/redirect table evaluated by the platform."""

    async def replace_directives(self, directives: Sequence[Directive]) -> None:
        """Atomically replace every installed directive with *directives*.

        Replacements take effect in the order they are requested, even
        when an earlier call completes later.
        """
        ...

    async def get_directives(self) -> list[Directive]:
        """Return the installed directives."""
        ...


# ===================================================================
# In-memory implementations (testing / development)
# ===================================================================

class InMemorySiteStore:
    """In-memory storage for testing and development.

    Sites are deep-copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(
        self,
        sites: Sequence[Site] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._sites: list[Site] = [s.model_copy(deep=True) for s in sites or []]
        self._settings: Settings | None = settings
        self._stats: list[SiteStats] = []
        self._listeners: list[SitesListener] = []

    async def get_sites(self) -> list[Site]:
        """Return a copy of the stored site list."""
        return [s.model_copy(deep=True) for s in self._sites]

    async def save_sites(self, sites: Sequence[Site]) -> None:
        """Replace the site list and await every change listener in turn."""
        self._sites = [s.model_copy(deep=True) for s in sites]
        for listener in list(self._listeners):
            await listener(await self.get_sites())

    async def get_settings(self) -> Settings:
        """Return stored settings, or defaults when nothing is stored."""
        if self._settings is None:
            return Settings()
        return self._settings.model_copy()

    async def save_settings(self, settings: Settings) -> None:
        """Replace the stored settings."""
        self._settings = settings.model_copy()

    async def get_stats(self) -> list[SiteStats]:
        """Return a copy of every statistics entry."""
        return [s.model_copy() for s in self._stats]

    async def save_stats(self, stats: Sequence[SiteStats]) -> None:
        """Replace all statistics entries."""
        self._stats = [s.model_copy() for s in stats]

    def add_sites_listener(self, listener: SitesListener) -> None:
        """Register *listener* for site-list changes."""
        self._listeners.append(listener)


class InMemoryScheduler:
    """Manually driven scheduler for tests.

    Nothing fires on its own; call :meth:`due` with a point in time to
    collect (and consume) the triggers that would have fired by then.
    """

    def __init__(self) -> None:
        self._deadlines: dict[str, datetime] = {}

    async def register_deadline(self, tag: str, when: datetime) -> None:
        """Schedule *tag* at *when*, replacing any pending registration."""
        self._deadlines[tag] = when

    async def cancel_deadline(self, tag: str) -> bool:
        """Cancel *tag*; return ``True`` if it was pending."""
        return self._deadlines.pop(tag, None) is not None

    def pending(self) -> dict[str, datetime]:
        """Return a snapshot of pending ``tag -> when`` registrations."""
        return dict(self._deadlines)

    def due(self, now: datetime) -> list[tuple[str, datetime]]:
        """Pop and return every registration with ``when <= now``."""
        fired = sorted(
            ((tag, when) for tag, when in self._deadlines.items() if when <= now),
            key=lambda item: item[1],
        )
        for tag, _ in fired:
            del self._deadlines[tag]
        return fired


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop.

    Each registration becomes a ``loop.call_later`` handle; when it fires,
    *on_fire* is scheduled as a task with the tag and the registered time.

    Parameters
    ----------
    on_fire:
        Coroutine function receiving ``(tag, scheduled_for)``.
    clock:
        Source of the current time, used to turn *when* into a delay.
    """

    def __init__(self, on_fire: DeadlineCallback, clock: Clock = utcnow) -> None:
        self._on_fire = on_fire
        self._clock = clock
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    async def register_deadline(self, tag: str, when: datetime) -> None:
        """Schedule *tag* at *when*, replacing any pending registration."""
        await self.cancel_deadline(tag)
        delay = max(0.0, (when - self._clock()).total_seconds())
        loop = asyncio.get_running_loop()
        self._handles[tag] = loop.call_later(delay, self._fire, tag, when)

    async def cancel_deadline(self, tag: str) -> bool:
        """Cancel *tag*; return ``True`` if it was pending."""
        handle = self._handles.pop(tag, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _fire(self, tag: str, when: datetime) -> None:
        self._handles.pop(tag, None)
        task = asyncio.ensure_future(self._on_fire(tag, when))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class InMemoryTabController:
    """In-memory tab set for testing and development."""

    def __init__(self, tabs: Sequence[TabInfo] | None = None) -> None:
        self._tabs: dict[int, TabInfo] = {int(t.id): t for t in tabs or []}
        self.redirects: list[tuple[TabId, str]] = []

    # -- mutation helpers (not part of the Protocol) --------------------

    def open(self, tab_id: int, url: str, *, active: bool = False) -> TabInfo:
        """Open (or replace) a tab (test helper)."""
        tab = TabInfo(id=TabId(tab_id), url=url, active=active)
        self._tabs[tab_id] = tab
        return tab

    def close(self, tab_id: int) -> None:
        """Close a tab (test helper)."""
        self._tabs.pop(tab_id, None)

    # -- Protocol implementation ---------------------------------------

    async def list_tabs(self) -> list[TabInfo]:
        """Return every open tab."""
        return list(self._tabs.values())

    async def get_tab(self, tab_id: TabId) -> TabInfo | None:
        """Return the tab, or ``None``."""
        return self._tabs.get(int(tab_id))

    async def get_active_tab(self) -> TabInfo | None:
        """Return the first active tab, if any."""
        return next((t for t in self._tabs.values() if t.active), None)

    async def redirect(self, tab_id: TabId, url: str) -> None:
        """Record the redirect and update the tab URL."""
        tab = self._tabs.get(int(tab_id))
        if tab is None:
            raise RedirectFailed(
                f"Tab {tab_id} no longer exists",
                details={"tab_id": tab_id},
            )
        self._tabs[int(tab_id)] = tab.model_copy(update={"url": url})
        self.redirects.append((tab_id, url))


class InMemoryNotifier:
    """Records broadcast messages; can simulate an empty audience."""

    def __init__(self, *, listening: bool = True) -> None:
        self.listening = listening
        self.messages: list[dict[str, Any]] = []

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Record *message*, or raise when nobody is listening."""
        if not self.listening:
            raise NotificationFailed(
                "Receiving end does not exist",
                details={"type": message.get("type")},
            )
        self.messages.append(dict(message))


class InMemoryInterceptionPlatform:
    """Dispatches requests to registered listeners synchronously."""

    def __init__(self) -> None:
        self._listeners: list[RequestListener] = []

    def add_listener(self, listener: RequestListener) -> None:
        """Register *listener*."""
        self._listeners.append(listener)

    @property
    def listener_count(self) -> int:
        """Return how many listeners are registered."""
        return len(self._listeners)

    def dispatch(self, url: str, context: RequestContext | None = None) -> bool:
        """Run *url* through every listener; return ``True`` if cancelled."""
        ctx = context or RequestContext()
        cancelled = False
        for listener in self._listeners:
            if listener(url, ctx):
                cancelled = True
        return cancelled


class InMemoryDirectiveTable:
    """In-memory directive table that evaluates directives like the platform.

    Directives are consulted in descending ``priority`` order (ties broken
    by ascending ``id``); the first one whose condition matches decides.
    """

    def __init__(self) -> None:
        self._directives: list[Directive] = []
        self.replace_count = 0

    async def replace_directives(self, directives: Sequence[Directive]) -> None:
        """Atomically replace the installed batch."""
        self._directives = sorted(directives, key=lambda d: (-d.priority, d.id))
        self.replace_count += 1

    async def get_directives(self) -> list[Directive]:
        """Return the installed directives in evaluation order."""
        return list(self._directives)

    def lookup(self, url: str, resource_type: str = "main_frame") -> Directive | None:
        """Return the directive the platform would apply to *url*."""
        for directive in self._directives:
            if directive.matches(url, resource_type):
                return directive
        return None

    def redirect_for(self, url: str, resource_type: str = "main_frame") -> str | None:
        """Return where the platform would send *url*, or ``None``."""
        directive = self.lookup(url, resource_type)
        return directive.redirect_target(url) if directive is not None else None
