"""Account, trade, command and activity Pydantic schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from aurum.constants import CommandAction


class AccountResponse(BaseModel):
    id: int
    name: str
    symbol: str
    starting_balance: float
    current_balance: float
    daily_risk_limit: float
    daily_profit_target: float
    max_position_size: float
    auto_trading_active: bool
    is_paper_trading: bool = False
    last_cycle_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AccountStatusResponse(BaseModel):
    account: AccountResponse
    engine_state: str  # IDLE / IN_TRADE
    todays_realized_pnl: float
    risk_exhausted: bool
    goal_met: bool
    open_trade: Optional["TradeResponse"] = None


class TradeResponse(BaseModel):
    id: str
    account_id: int
    symbol: str
    side: str
    entry_price: float
    volume: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    confidence_level: Optional[str] = None
    opened_at: datetime
    status: str
    exit_price: Optional[float] = None
    profit: Optional[float] = None
    closed_at: Optional[datetime] = None
    close_reason: Optional[str] = None

    class Config:
        from_attributes = True


class TradeCommandResponse(BaseModel):
    id: int
    correlation_id: str
    action: str
    status: str
    symbol: str
    side: str
    volume: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    ticket_id: Optional[str] = None
    attempts: int = 0
    error_message: Optional[str] = None
    created_at: datetime
    acknowledged_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActivityResponse(BaseModel):
    id: int
    timestamp: datetime
    message: str
    category: str

    class Config:
        from_attributes = True


class DailySummaryResponse(BaseModel):
    date: str
    starting_balance: float
    ending_balance: float
    trades_taken: int
    winning_trades: int
    win_rate: float
    total_profit: float
    max_drawdown: float


class RecommendationResponse(BaseModel):
    id: int
    account_id: int
    date: str
    recommended_position_size: str
    size_adjustment_pct: Optional[float] = None
    reasoning: Optional[str] = None
    provider: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Request Models
class AutoTradingToggleRequest(BaseModel):
    enabled: bool


class ManualCloseRequest(BaseModel):
    exit_price: float = Field(gt=0)


class CommandAcknowledgmentRequest(BaseModel):
    """Late acknowledgment posted by the venue bridge"""
    action: CommandAction
    ticket_id: Optional[str] = None


class CycleResultResponse(BaseModel):
    account_id: int
    state_before: str
    state_after: str
    decision: Optional[str] = None
    gated_decision: Optional[str] = None
    outcome: str
    trade_id: Optional[str] = None
    message: str = ""


AccountStatusResponse.model_rebuild()
