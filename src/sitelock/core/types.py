"""SiteLock shared domain types.

This module defines every value type, enum, and Pydantic model shared
across the SiteLock implementation.

Key design decisions:
* ``SiteId`` and ``TabId`` are ``NewType`` wrappers for static type-safety
  while remaining JSON-serialisable.
* All Pydantic models use **v2** ``model_config``.  Models that cross the
  UI boundary use a camelCase alias generator so that ``model_dump(
  by_alias=True)`` produces the field names the UI pages expect
  (``siteId``, ``expiresAt``, ...), while Python code keeps snake_case.
* Enums use *string* values so they serialise cleanly to JSON.
* Timestamps are timezone-aware UTC ``datetime`` objects.
"""
from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Value types (NewType wrappers)
# ---------------------------------------------------------------------------

SiteId = NewType("SiteId", str)
"""Opaque, immutable identifier assigned to a :class:`Site` on creation."""

TabId = NewType("TabId", int)
"""Platform tab identifier."""

Clock = Callable[[], datetime]
"""Zero-argument callable returning the current UTC time."""


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone information."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class UnlockMethod(enum.StrEnum):
    """How the user earns a temporary grant for a site.

    The challenge itself is presented and checked by the UI; the core only
    stores the method and its settings.
    """

    TIMER = "timer"
    TYPE_PHRASE = "type_phrase"
    MATH = "math"
    CONFIRM = "confirm"


class Verdict(enum.StrEnum):
    """Outcome of an enforcement decision."""

    ALLOW = "allow"
    BLOCK = "block"


# ---------------------------------------------------------------------------
# Challenge settings (one model per UnlockMethod)
# ---------------------------------------------------------------------------

class _ChallengeSettings(BaseModel):
    model_config = ConfigDict(
        strict=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TimerChallenge(_ChallengeSettings):
    """Wait for a countdown before the unlock button becomes active."""

    seconds: int = Field(default=30, ge=1, le=3600)


class TypePhraseChallenge(_ChallengeSettings):
    """Type a phrase exactly."""

    phrase: str = "I am choosing to get distracted right now"


class MathChallenge(_ChallengeSettings):
    """Solve a number of arithmetic problems."""

    problems: int = Field(default=3, ge=1, le=20)
    difficulty: int = Field(default=1, ge=1, le=3)


class ConfirmChallenge(_ChallengeSettings):
    """Acknowledge a confirmation prompt."""

    message: str = "Do you really want to open this site?"


ChallengeSettings = TimerChallenge | TypePhraseChallenge | MathChallenge | ConfirmChallenge

CHALLENGE_SETTINGS: dict[UnlockMethod, type[_ChallengeSettings]] = {
    UnlockMethod.TIMER: TimerChallenge,
    UnlockMethod.TYPE_PHRASE: TypePhraseChallenge,
    UnlockMethod.MATH: MathChallenge,
    UnlockMethod.CONFIRM: ConfirmChallenge,
}
"""Settings model expected for each :class:`UnlockMethod`."""


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class Rule(BaseModel):
    """A single pattern with an allow/block polarity.

    ``pattern`` is a host/path expression: an exact host
    (``reddit.com``), a wildcard subdomain (``*.reddit.com``), a glob
    (``*reddit*``), optionally followed by a path (``x.com/messages``).
    """

    model_config = ConfigDict(frozen=True)

    pattern: str
    allow: bool = False


class Site(BaseModel):
    """A named, user-configured blocking target.

    ``rules`` are evaluated in declaration order.  An empty rule list
    matches nothing.  ``id`` and ``created_at`` never change once the site
    exists; everything else may be updated in place.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: SiteId
    name: str
    rules: list[Rule] = Field(default_factory=list)
    unlock_method: UnlockMethod = UnlockMethod.TIMER
    challenge_settings: ChallengeSettings | None = None
    auto_relock_after: int | None = Field(
        default=None,
        ge=1,
        description="Minutes before re-locking; ``None`` disables auto-relock.",
    )
    enabled: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _coerce_challenge_settings(cls, data: Any) -> Any:
        """Parse raw challenge settings with the model keyed by the method."""
        if not isinstance(data, dict):
            return data
        method = UnlockMethod(
            data.get("unlock_method", data.get("unlockMethod", UnlockMethod.TIMER))
        )
        key = "challengeSettings" if "challengeSettings" in data else "challenge_settings"
        raw = data.get(key)
        settings_cls = CHALLENGE_SETTINGS[method]
        if raw is None:
            return {**data, key: settings_cls()}
        if isinstance(raw, dict):
            return {**data, key: settings_cls.model_validate(raw)}
        return data

    @model_validator(mode="after")
    def _check_challenge_settings(self) -> Site:
        expected = CHALLENGE_SETTINGS[self.unlock_method]
        if not isinstance(self.challenge_settings, expected):
            raise ValueError(
                f"challenge_settings for unlock method {self.unlock_method!r} "
                f"must be {expected.__name__}"
            )
        return self


class SiteDraft(BaseModel):
    """A site as submitted by the UI, before an id and creation time exist."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    rules: list[Rule] = Field(default_factory=list)
    unlock_method: UnlockMethod = UnlockMethod.TIMER
    challenge_settings: dict[str, Any] | None = None
    auto_relock_after: int | None = Field(default=None, ge=1)
    enabled: bool = True


class UnlockGrant(BaseModel):
    """A temporary, time-bounded suspension of blocking for one site."""

    model_config = ConfigDict(
        strict=True,
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    site_id: SiteId
    expires_at: datetime


class Settings(BaseModel):
    """User settings shared with the UI pages."""

    model_config = ConfigDict(
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    stats_enabled: bool = True


class SiteStats(BaseModel):
    """Usage statistics collected for one site."""

    model_config = ConfigDict(
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    site_id: SiteId
    visit_count: int = 0
    passed_count: int = 0
    time_spent_ms: int = 0
    last_visit: datetime | None = None


class StatsUpdate(BaseModel):
    """A delta applied to a :class:`SiteStats` entry."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    increment_visit: bool = False
    increment_passed: bool = False
    add_time: int = Field(default=0, ge=0, description="Milliseconds to add.")


class TabInfo(BaseModel):
    """A browser tab as reported by the tab capability."""

    model_config = ConfigDict(strict=True, frozen=True)

    id: TabId
    url: str | None = None
    active: bool = False


# ---------------------------------------------------------------------------
# Plain value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RequestContext:
    """Platform details attached to an intercepted request.

    Attributes
    ----------
    tab_id:
        The tab issuing the request, ``-1`` when the request has no tab.
    resource_type:
        Platform resource type; only ``"main_frame"`` is enforced.
    frame_id:
        ``0`` for the top-level frame.
    """

    tab_id: int = -1
    resource_type: str = "main_frame"
    frame_id: int = 0
