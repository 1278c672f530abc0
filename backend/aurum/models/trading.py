"""Trading models: accounts, trades, trade commands, activity log, recommendations."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from aurum.constants import CommandStatus, TradeStatus
from aurum.database import Base
from aurum.utils.time_utils import utcnow


class Account(Base):
    """
    Trading account and its daily risk envelope.

    current_balance is only ever changed by trade closure in the lifecycle
    manager; auto_trading_active is toggled by the operator. The version
    column gives optimistic concurrency: a commit against a stale row raises
    StaleDataError instead of silently overwriting another writer.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, default="Default")
    symbol = Column(String, nullable=False, default="XAUUSD")  # Traded instrument

    starting_balance = Column(Float, nullable=False, default=10000.0)
    current_balance = Column(Float, nullable=False, default=10000.0)
    daily_risk_limit = Column(Float, nullable=False, default=500.0)  # Positive currency amount
    daily_profit_target = Column(Float, nullable=False, default=1000.0)
    max_position_size = Column(Float, nullable=False, default=1.0)  # Lots

    auto_trading_active = Column(Boolean, default=False)
    # Venue mode the account was created under (informational); the venue
    # itself is chosen once per process by settings.paper_trading
    is_paper_trading = Column(Boolean, default=False)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_cycle_at = Column(DateTime, nullable=True)  # Last decision cycle start
    last_update_log_at = Column(DateTime, nullable=True)  # Last in-trade UPDATE narration
    last_summary_date = Column(String, nullable=True)  # YYYY-MM-DD of last SUMMARY entry

    __mapper_args__ = {"version_id_col": version}


class Trade(Base):
    """
    One position lifecycle. Inserted OPEN once the venue acknowledged the
    OPEN command, mutated exactly once on close, immutable afterwards.
    """
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True)  # UUID, doubles as command correlation id
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    symbol = Column(String, nullable=False)
    side = Column(String, nullable=False)  # LONG / SHORT
    entry_price = Column(Float, nullable=False)
    volume = Column(Float, nullable=False)  # Lots
    stop_loss = Column(Float, nullable=True)
    take_profit = Column(Float, nullable=True)
    confidence_level = Column(String, nullable=True)
    opened_at = Column(DateTime, default=utcnow, index=True)
    status = Column(String, nullable=False, default=TradeStatus.OPEN.value, index=True)

    # Set once, on close
    exit_price = Column(Float, nullable=True)
    profit = Column(Float, nullable=True)
    closed_at = Column(DateTime, nullable=True, index=True)
    close_reason = Column(String, nullable=True)  # "signal", "stop_loss", "take_profit", "manual", ...

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN.value


class TradeCommand(Base):
    """
    Outbound instruction to the execution venue.

    Keyed by (correlation_id, action) so the same logical command is never
    created twice. An OPEN command carries every field needed to build its
    Trade, which is only written once the command is acknowledged.
    """
    __tablename__ = "trade_commands"

    id = Column(Integer, primary_key=True, index=True)
    correlation_id = Column(String(36), nullable=False, index=True)  # Trade id
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    action = Column(String, nullable=False)  # OPEN / CLOSE / MODIFY
    status = Column(String, nullable=False, default=CommandStatus.PENDING.value, index=True)

    symbol = Column(String, nullable=False)
    side = Column(String, nullable=False)
    volume = Column(Float, nullable=False)
    entry_price = Column(Float, nullable=True)  # Decision price for OPEN
    stop_loss = Column(Float, nullable=True)
    take_profit = Column(Float, nullable=True)
    exit_price = Column(Float, nullable=True)  # Decision price for CLOSE
    confidence_level = Column(String, nullable=True)
    close_reason = Column(String, nullable=True)

    ticket_id = Column(String, nullable=True)  # Venue-assigned, known only after ack
    attempts = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    acknowledged_at = Column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("correlation_id", "action", name="uq_command_correlation_action"),)


class ActivityLog(Base):
    """Append-only narration of what the engine did and why."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True)
    message = Column(Text, nullable=False)
    category = Column(String, nullable=False)  # ANALYSIS / SIGNAL / RESULT / UPDATE / SUMMARY


class DailyRecommendation(Base):
    """Advisory position-size suggestion for the next trading day (human-facing only)."""
    __tablename__ = "daily_recommendations"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    date = Column(String, nullable=False)  # YYYY-MM-DD the suggestion applies to
    recommended_position_size = Column(String, nullable=False)  # As returned by the provider
    size_adjustment_pct = Column(Float, nullable=True)  # Parsed +/- percentage, if any
    reasoning = Column(Text, nullable=True)
    provider = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
