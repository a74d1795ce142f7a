"""SiteLock upward message contract.

The UI pages (blocked page, popup, options page) talk to the core through
typed request/response messages.  This module provides:

* **MessageType** -- every request type plus the two outgoing
  notifications.
* **Request models** -- one per request type, parsed from the camelCase
  JSON the pages send (``{"type": "UNLOCK_SITE", "siteId": ...}``).
* **Response models** -- serialised back to camelCase with
  :func:`to_wire`.
* **parse_request** -- validation entry point used by the provider.

All helpers are synchronous and side-effect-free.
"""
from __future__ import annotations

import enum
import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from sitelock.core.errors import MalformedMessage, UnknownMessageType
from sitelock.core.types import Settings, Site, StatsUpdate

# ---------------------------------------------------------------------------
# Message types
# ---------------------------------------------------------------------------

class MessageType(enum.StrEnum):
    """Message types of the upward contract."""

    # Requests
    CHECK_BLOCKED = "CHECK_BLOCKED"
    GET_SITE_INFO = "GET_SITE_INFO"
    CHECK_UNLOCK_STATE = "CHECK_UNLOCK_STATE"
    UNLOCK_SITE = "UNLOCK_SITE"
    UPDATE_STATS = "UPDATE_STATS"
    GET_SETTINGS = "GET_SETTINGS"
    GET_CURRENT_TAB_URL = "GET_CURRENT_TAB_URL"
    SYNC_RULES = "SYNC_RULES"
    # Notifications
    SITE_UNLOCKED = "SITE_UNLOCKED"
    SITE_RELOCKED = "SITE_RELOCKED"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class Request(_WireModel):
    """Base class of every request; ``type`` is set per subclass."""

    type: MessageType


class CheckBlockedRequest(Request):
    """Is *url* blocked right now?"""

    url: str


class GetSiteInfoRequest(Request):
    """Look up a site by id, falling back to the first site matching *url*."""

    site_id: str | None = None
    url: str | None = None


class CheckUnlockStateRequest(Request):
    site_id: str


class UnlockSiteRequest(Request):
    """Grant temporary access; ``None`` minutes uses the default duration."""

    site_id: str
    duration_minutes: int | None = Field(default=None, ge=1)


class UpdateStatsRequest(Request):
    site_id: str
    update: StatsUpdate = Field(default_factory=StatsUpdate)


class GetSettingsRequest(Request):
    pass


class GetCurrentTabUrlRequest(Request):
    pass


class SyncRulesRequest(Request):
    pass


REQUEST_MODELS: dict[MessageType, type[Request]] = {
    MessageType.CHECK_BLOCKED: CheckBlockedRequest,
    MessageType.GET_SITE_INFO: GetSiteInfoRequest,
    MessageType.CHECK_UNLOCK_STATE: CheckUnlockStateRequest,
    MessageType.UNLOCK_SITE: UnlockSiteRequest,
    MessageType.UPDATE_STATS: UpdateStatsRequest,
    MessageType.GET_SETTINGS: GetSettingsRequest,
    MessageType.GET_CURRENT_TAB_URL: GetCurrentTabUrlRequest,
    MessageType.SYNC_RULES: SyncRulesRequest,
}
"""Request model for each accepted message type."""


# ---------------------------------------------------------------------------
# Responses and notifications
# ---------------------------------------------------------------------------

class CheckBlockedResponse(_WireModel):
    blocked: bool
    site: Site | None = None
    stats_enabled: bool = False


class SiteInfoResponse(_WireModel):
    site: Site | None = None
    stats_enabled: bool = False
    already_unlocked: bool = False
    expires_at: datetime | None = None


class UnlockStateResponse(_WireModel):
    unlocked: bool
    expires_at: datetime | None = None


class UnlockSiteResponse(_WireModel):
    success: bool
    expires_at: datetime | None = None


class SuccessResponse(_WireModel):
    success: bool = True


class SettingsResponse(_WireModel):
    settings: Settings


class CurrentTabResponse(_WireModel):
    url: str | None = None
    domain: str = ""


class SiteUnlockedNotification(_WireModel):
    type: MessageType = MessageType.SITE_UNLOCKED
    site_id: str
    expires_at: datetime


class SiteRelockedNotification(_WireModel):
    type: MessageType = MessageType.SITE_RELOCKED
    site_id: str


def to_wire(model: BaseModel) -> dict[str, Any]:
    """Dump *model* to the JSON-compatible camelCase dict the pages read."""
    return model.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_request(raw: Mapping[str, Any] | str | bytes) -> Request:
    """Validate an incoming message and return its typed request.

    *raw* is either the decoded message object or its JSON text.

    Raises
    ------
    MalformedMessage
        If the input is not a JSON object or fails validation.
    UnknownMessageType
        If ``type`` is missing, unknown, or a notification type.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage(f"Message is not UTF-8: {exc.reason}") from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedMessage(f"Invalid JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise MalformedMessage("Message must be an object")

    msg_type = raw.get("type")
    try:
        model = REQUEST_MODELS[MessageType(msg_type)]
    except (ValueError, TypeError, KeyError):
        raise UnknownMessageType(
            f"Unknown message type: {msg_type!r}",
            details={"type": msg_type},
        ) from None

    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        raise MalformedMessage(
            f"Invalid {msg_type} message: {exc.error_count()} validation error(s)",
            details={
                "type": msg_type,
                "errors": exc.errors(include_url=False, include_context=False),
            },
        ) from exc
