"""
API Routers

Passive HTTP surface: reads of the ledger plus the operator actions
(auto-trading toggle, manual close, advisory request).
"""

from aurum.routers import accounts_router
from aurum.routers import system_router

__all__ = [
    "accounts_router",
    "system_router",
]
