"""SiteLock unlock ledger -- temporary grants with deadline-driven relock."""
from __future__ import annotations

from sitelock.unlock.ledger import DeadlineResult, UnlockLedger

__all__ = [
    "UnlockLedger",
    "DeadlineResult",
]
