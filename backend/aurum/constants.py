"""
Application Constants

Enumerations shared by the models, the trading engine and the API.
All are str-valued so they persist as plain strings in the ledger.
"""

from enum import Enum


class TradeSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    WON = "WON"
    LOST = "LOST"


TERMINAL_TRADE_STATUSES = (TradeStatus.WON.value, TradeStatus.LOST.value)


class CommandAction(str, Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    MODIFY = "MODIFY"


class CommandStatus(str, Enum):
    PENDING = "PENDING"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    FAILED = "FAILED"


class ActivityCategory(str, Enum):
    ANALYSIS = "ANALYSIS"
    SIGNAL = "SIGNAL"
    RESULT = "RESULT"
    UPDATE = "UPDATE"
    SUMMARY = "SUMMARY"


class Decision(str, Enum):
    OPEN_LONG = "OPEN_LONG"
    OPEN_SHORT = "OPEN_SHORT"
    CLOSE = "CLOSE"
    HOLD = "HOLD"

    @property
    def is_open(self) -> bool:
        return self in (Decision.OPEN_LONG, Decision.OPEN_SHORT)


class EngineState(str, Enum):
    IDLE = "IDLE"
    IN_TRADE = "IN_TRADE"


class CycleOutcome(str, Enum):
    OPENED = "OPENED"
    CLOSED = "CLOSED"
    HELD = "HELD"
    GATED = "GATED"
    SKIPPED = "SKIPPED"  # Feed unavailable / stale
    PAUSED = "PAUSED"  # Auto-trading disabled
    DISPATCH_FAILED = "DISPATCH_FAILED"
