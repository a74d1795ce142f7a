"""SiteLock error-code hierarchy.

Hierarchy
---------
::

    SiteLockError
    +-- MalformedInputError       (SL-E1xx)
    +-- BackendUnavailableError   (SL-E3xx)
    +-- SideEffectError           (SL-E4xx)
    +-- RequestError              (SL-E5xx)

Malformed URLs and patterns never escape matching and evaluation: the
parsers raise :class:`InvalidURL` and :class:`InvalidPattern`, and the
matcher and directive compiler turn them into non-matches.  A missing
platform mechanism is reported when the backend is selected and
enforcement is skipped.  The remaining classes belong to the I/O-adjacent
wrappers (tab redirects, notifications, scheduling) and to the message
router, which turns them into explicit error payloads.

Unknown site or tab ids are not errors: the operations that receive them
return ``None``, ``False`` or an empty list.  The ``SL-E2xx`` range is
kept free for that reason.

Usage
-----
Raise concrete subclasses directly::

    raise RedirectFailed(f"Tab {tab_id} no longer exists")

Catch by category::

    try:
        ...
    except SideEffectError:
        # handles RedirectFailed, NotificationFailed, SchedulingFailed
        ...
"""
from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class SiteLockError(Exception):
    """Base exception for all SiteLock errors.

    Attributes
    ----------
    code : str
        SiteLock error code, e.g. ``"SL-E401"``.
    message : str
        Human-readable description.
    details : dict[str, Any]
        Machine-readable context specific to the error instance.
    resolution : str
        Suggested action for the caller.
    """

    code: str = "SL-E000"
    message: str = "Unknown SiteLock error"
    resolution: str = ""

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        resolution: str | None = None,
    ) -> None:
        self.details: dict[str, Any] = details or {}
        if message is not None:
            self.message = message
        if resolution is not None:
            self.resolution = resolution
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the error to the message-contract error payload."""
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["detail"] = self.details
        if self.resolution:
            payload["resolution"] = self.resolution
        return {"error": payload}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# ===================================================================
# Category base classes
# ===================================================================

class MalformedInputError(SiteLockError):
    """SL-E1xx -- Unparsable URL or pattern."""

    code = "SL-E1XX"


class BackendUnavailableError(SiteLockError):
    """SL-E3xx -- The platform enforcement mechanism is not present."""

    code = "SL-E3XX"


class SideEffectError(SiteLockError):
    """SL-E4xx -- A redirect, notification or timer side effect failed."""

    code = "SL-E4XX"


class RequestError(SiteLockError):
    """SL-E5xx -- A message at the upward contract could not be served."""

    code = "SL-E5XX"


# ===================================================================
# SL-E1xx  Malformed input
# ===================================================================

class InvalidURL(MalformedInputError):
    """SL-E100 -- The URL could not be parsed."""

    code = "SL-E100"
    message = "URL could not be parsed"
    resolution = "Provide an absolute URL including its scheme."


class InvalidPattern(MalformedInputError):
    """SL-E101 -- The rule pattern could not be compiled."""

    code = "SL-E101"
    message = "Rule pattern could not be compiled"
    resolution = "Use a host, '*.domain', a '*' glob, or host/path."


# ===================================================================
# SL-E3xx  Backend unavailable
# ===================================================================

class InterceptionUnavailable(BackendUnavailableError):
    """SL-E300 -- Blocking request interception is not supported."""

    code = "SL-E300"
    message = "Request interception is not available on this platform"


class DirectiveTableUnavailable(BackendUnavailableError):
    """SL-E301 -- The declarative directive table is not supported."""

    code = "SL-E301"
    message = "Declarative directive table is not available on this platform"


# ===================================================================
# SL-E4xx  Side-effect failures
# ===================================================================

class RedirectFailed(SideEffectError):
    """SL-E400 -- A tab could not be redirected."""

    code = "SL-E400"
    message = "Tab could not be redirected"
    resolution = "The tab was probably closed or navigated away; ignore."


class NotificationFailed(SideEffectError):
    """SL-E401 -- A notification could not be delivered."""

    code = "SL-E401"
    message = "Notification could not be delivered"
    resolution = "No UI page is listening; ignore."


class SchedulingFailed(SideEffectError):
    """SL-E402 -- A deadline trigger could not be registered or cancelled."""

    code = "SL-E402"
    message = "Deadline trigger could not be registered"


# ===================================================================
# SL-E5xx  Request errors
# ===================================================================

class UnknownMessageType(RequestError):
    """SL-E500 -- The message type is not part of the contract."""

    code = "SL-E500"
    message = "Unknown message type"
    resolution = "Use one of the documented message types."


class MalformedMessage(RequestError):
    """SL-E501 -- The message payload failed validation."""

    code = "SL-E501"
    message = "Malformed message"
    resolution = "Check the message fields against the contract."


# ===================================================================
# Code -> class lookup
# ===================================================================

_CODE_MAP: dict[str, type[SiteLockError]] = {
    cls.code: cls
    for cls in [
        InvalidURL,
        InvalidPattern,
        InterceptionUnavailable,
        DirectiveTableUnavailable,
        RedirectFailed,
        NotificationFailed,
        SchedulingFailed,
        UnknownMessageType,
        MalformedMessage,
    ]
}


def error_from_code(code: str, message: str | None = None) -> SiteLockError:
    """Instantiate the correct exception class for a SiteLock error code.

    Raises
    ------
    KeyError
        If *code* is not a recognised SiteLock error code.
    """
    cls = _CODE_MAP[code]
    return cls(message) if message else cls()
