"""Centralized Pydantic schemas for API requests/responses"""

from .trading import (
    AccountResponse,
    AccountStatusResponse,
    ActivityResponse,
    AutoTradingToggleRequest,
    CommandAcknowledgmentRequest,
    CycleResultResponse,
    DailySummaryResponse,
    ManualCloseRequest,
    RecommendationResponse,
    TradeCommandResponse,
    TradeResponse,
)

__all__ = [
    "AccountResponse",
    "AccountStatusResponse",
    "ActivityResponse",
    "AutoTradingToggleRequest",
    "CommandAcknowledgmentRequest",
    "CycleResultResponse",
    "DailySummaryResponse",
    "ManualCloseRequest",
    "RecommendationResponse",
    "TradeCommandResponse",
    "TradeResponse",
]
