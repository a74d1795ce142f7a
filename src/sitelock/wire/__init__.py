"""SiteLock wire layer -- the typed message contract towards the UI pages."""
from __future__ import annotations

from sitelock.wire.messages import (
    REQUEST_MODELS,
    CheckBlockedRequest,
    CheckBlockedResponse,
    CheckUnlockStateRequest,
    CurrentTabResponse,
    GetCurrentTabUrlRequest,
    GetSettingsRequest,
    GetSiteInfoRequest,
    MessageType,
    Request,
    SettingsResponse,
    SiteInfoResponse,
    SiteRelockedNotification,
    SiteUnlockedNotification,
    SuccessResponse,
    SyncRulesRequest,
    UnlockSiteRequest,
    UnlockSiteResponse,
    UnlockStateResponse,
    UpdateStatsRequest,
    parse_request,
    to_wire,
)

__all__ = [
    "MessageType",
    "REQUEST_MODELS",
    "Request",
    "CheckBlockedRequest",
    "GetSiteInfoRequest",
    "CheckUnlockStateRequest",
    "UnlockSiteRequest",
    "UpdateStatsRequest",
    "GetSettingsRequest",
    "GetCurrentTabUrlRequest",
    "SyncRulesRequest",
    "CheckBlockedResponse",
    "SiteInfoResponse",
    "UnlockStateResponse",
    "UnlockSiteResponse",
    "SuccessResponse",
    "SettingsResponse",
    "CurrentTabResponse",
    "SiteUnlockedNotification",
    "SiteRelockedNotification",
    "parse_request",
    "to_wire",
]
