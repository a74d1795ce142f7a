"""SiteLock backend selection.

The enforcement strategy is chosen once, when the process starts, from a
probe of what the platform offers.  Nothing else in the package branches
on the platform.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sitelock.core.errors import (
    BackendUnavailableError,
    DirectiveTableUnavailable,
    InterceptionUnavailable,
)
from sitelock.core.types import Clock, utcnow
from sitelock.enforcement.declarative import DeclarativeBackend
from sitelock.enforcement.interception import InterceptionBackend

if TYPE_CHECKING:
    from sitelock.core.config import SiteLockConfig
    from sitelock.core.interfaces import (
        DirectiveTable,
        InterceptionPlatform,
        SiteStore,
        TabController,
    )
    from sitelock.enforcement.base import BaseBackend
    from sitelock.unlock.ledger import UnlockLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlatformCapabilities:
    """Result of probing the platform.

    Attributes
    ----------
    interception:
        Blocking request interception, if available.
    directive_table:
        Declarative directive table, if available.
    """

    interception: InterceptionPlatform | None = None
    directive_table: DirectiveTable | None = None

    def require(self, backend_name: str) -> None:
        """Raise if the mechanism *backend_name* enforces through is missing.

        Raises
        ------
        InterceptionUnavailable
            For ``"interception"`` without an interception platform.
        DirectiveTableUnavailable
            For ``"declarative"`` without a directive table.
        """
        if backend_name == "interception" and self.interception is None:
            raise InterceptionUnavailable()
        if backend_name == "declarative" and self.directive_table is None:
            raise DirectiveTableUnavailable()


def select_backend(
    capabilities: PlatformCapabilities,
    *,
    store: SiteStore,
    ledger: UnlockLedger,
    tabs: TabController,
    config: SiteLockConfig,
    clock: Clock = utcnow,
) -> BaseBackend:
    """Build the enforcement backend for this process.

    ``config.preferred_backend`` forces a variant; ``"auto"`` picks the
    declarative backend when a directive table exists and falls back to
    interception otherwise.  A forced or fallback variant whose mechanism
    is missing is still returned; it initialises without enforcing.
    """
    preferred = config.preferred_backend
    if preferred == "auto":
        preferred = "declarative" if capabilities.directive_table is not None else "interception"

    try:
        capabilities.require(preferred)
    except BackendUnavailableError as exc:
        logger.warning("%s [%s]; %s backend will not enforce", exc.message, exc.code, preferred)

    backend: BaseBackend
    if preferred == "declarative":
        backend = DeclarativeBackend(
            store, ledger, tabs, config, table=capabilities.directive_table, clock=clock
        )
    else:
        backend = InterceptionBackend(
            store, ledger, tabs, config, platform=capabilities.interception, clock=clock
        )
    logger.info("Selected %s enforcement backend", backend.name)
    return backend
