"""SiteLock configuration.

Defines the validated configuration model shared by the matcher helpers,
the unlock ledger, both enforcement backends and the sync coordinator.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

EXTENSION_SCHEMES: dict[str, str] = {
    "chrome": "chrome-extension://",
    "edge": "extension://",
    "brave": "chrome-extension://",
    "opera": "chrome-extension://",
    "firefox": "moz-extension://",
    "safari": "safari-web-extension://",
}
"""URL scheme of extension-owned pages, keyed by browser."""

BROWSER_SCHEMES: dict[str, str] = {
    "chrome": "chrome://",
    "edge": "edge://",
    "brave": "brave://",
    "opera": "opera://",
    "firefox": "about:",
    "safari": "safari-resource:",
}
"""URL scheme of browser-internal pages, keyed by browser."""


class SiteLockConfig(BaseModel):
    """Configuration for a SiteLock instance.

    All fields carry defaults so that ``SiteLockConfig()`` is enough for
    development and tests.
    """

    model_config = ConfigDict(strict=True)

    browser: str = Field(
        default="chrome",
        description="Browser family; selects the internal URL schemes.",
    )
    blocked_page_url: str = Field(
        default="chrome-extension://sitelock/blocked.html",
        description="Page tabs are sent to when a navigation is blocked.",
    )
    default_unlock_minutes: int = Field(
        default=60,
        ge=1,
        description="Grant duration used when a request carries none.",
    )
    deadline_tag_prefix: str = Field(
        default="relock-",
        min_length=1,
        description="Prefix of scheduling tags owned by the unlock ledger.",
    )
    preferred_backend: Literal["auto", "interception", "declarative"] = Field(
        default="auto",
        description=(
            "Enforcement strategy.  ``auto`` prefers the declarative "
            "directive table when the platform offers one."
        ),
    )
    max_directives: int = Field(
        default=5000,
        ge=1,
        description="Maximum number of directives the platform accepts.",
    )
    directive_id_start: int = Field(
        default=1,
        ge=1,
        description="Id assigned to the first compiled directive.",
    )

    @property
    def extension_scheme(self) -> str:
        """Return the extension-page scheme for :attr:`browser`."""
        return EXTENSION_SCHEMES.get(self.browser.lower(), EXTENSION_SCHEMES["chrome"])

    @property
    def browser_scheme(self) -> str:
        """Return the browser-internal scheme for :attr:`browser`."""
        return BROWSER_SCHEMES.get(self.browser.lower(), BROWSER_SCHEMES["chrome"])
