"""
Database Models

All model classes are re-exported here:
    from aurum.models import Account, Trade, TradeCommand, ...
"""

from aurum.database import Base  # noqa: F401 (re-exported for tests/conftest.py)
from aurum.models.trading import (
    Account, ActivityLog, DailyRecommendation, Trade, TradeCommand,
)

__all__ = [
    "Base",
    "Account", "Trade", "TradeCommand", "ActivityLog", "DailyRecommendation",
]
