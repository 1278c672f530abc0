"""
Account API routes

Passive read/toggle surface over the engine:
- Account state, engine state and today's P/L
- Auto-trading toggle
- Trades, trade commands and activity log
- Late command acknowledgments from the venue bridge
- Operator close of the open trade
- Daily summary and next-day advisory
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.config import settings
from aurum.database import get_db
from aurum.exceptions import NotFoundError, ValidationError
from aurum.models import ActivityLog, Trade, TradeCommand
from aurum.schemas import (
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
from aurum.services.account_service import set_auto_trading
from aurum.services.advisory_service import AdvisoryService
from aurum.services.daily_summary_service import compute_daily_summary
from aurum.trading_engine.command_channel import get_command
from aurum.trading_engine.lifecycle_manager import TradeLifecycleManager, engine_state, load_account
from aurum.trading_engine.trade_manager import get_open_trade, get_todays_realized_pnl
from aurum.utils.time_utils import trading_day

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


# Dependencies - will be injected from main.py
def get_lifecycle_manager() -> TradeLifecycleManager:
    """Get lifecycle manager - will be overridden in main.py"""
    raise NotImplementedError("Must override lifecycle_manager dependency")


def get_advisory_service() -> AdvisoryService:
    """Get advisory service - will be overridden in main.py"""
    raise NotImplementedError("Must override advisory_service dependency")


@router.get("/{account_id}", response_model=AccountStatusResponse)
async def get_account_status(account_id: int, db: AsyncSession = Depends(get_db)):
    """Account, engine state and today's realized P/L"""
    account = await load_account(db, account_id)
    open_trade = await get_open_trade(db, account_id)
    todays_pnl = await get_todays_realized_pnl(
        db, account_id, utc_offset_hours=settings.trading_day_utc_offset_hours
    )

    return AccountStatusResponse(
        account=AccountResponse.model_validate(account),
        engine_state=engine_state(open_trade).value,
        todays_realized_pnl=todays_pnl,
        risk_exhausted=todays_pnl <= -account.daily_risk_limit,
        goal_met=todays_pnl >= account.daily_profit_target,
        open_trade=TradeResponse.model_validate(open_trade) if open_trade else None,
    )


@router.post("/{account_id}/auto-trading", response_model=AccountResponse)
async def toggle_auto_trading(
    account_id: int,
    request: AutoTradingToggleRequest,
    db: AsyncSession = Depends(get_db),
    manager: TradeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Enable or disable auto-trading (running cycles finish first)"""
    account = await set_auto_trading(db, account_id, request.enabled, manager)
    return AccountResponse.model_validate(account)


@router.get("/{account_id}/trades", response_model=List[TradeResponse])
async def get_trades(
    account_id: int,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Trades for an account, newest first"""
    await load_account(db, account_id)
    query = select(Trade).where(Trade.account_id == account_id)
    if status:
        query = query.where(Trade.status == status.upper())
    result = await db.execute(query.order_by(desc(Trade.opened_at)).limit(limit))
    return [TradeResponse.model_validate(t) for t in result.scalars().all()]


@router.get("/{account_id}/commands", response_model=List[TradeCommandResponse])
async def get_commands(
    account_id: int,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Trade commands for an account, newest first"""
    await load_account(db, account_id)
    query = (
        select(TradeCommand)
        .where(TradeCommand.account_id == account_id)
        .order_by(desc(TradeCommand.created_at), desc(TradeCommand.id))
        .limit(limit)
    )
    result = await db.execute(query)
    return [TradeCommandResponse.model_validate(c) for c in result.scalars().all()]


@router.get("/{account_id}/activities", response_model=List[ActivityResponse])
async def get_activities(
    account_id: int,
    category: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Activity log for an account, newest first"""
    await load_account(db, account_id)
    query = select(ActivityLog).where(ActivityLog.account_id == account_id)
    if category:
        query = query.where(ActivityLog.category == category.upper())
    result = await db.execute(query.order_by(desc(ActivityLog.timestamp), desc(ActivityLog.id)).limit(limit))
    return [ActivityResponse.model_validate(a) for a in result.scalars().all()]


@router.post("/{account_id}/commands/{correlation_id}/ack", response_model=TradeCommandResponse)
async def acknowledge_command(
    account_id: int,
    correlation_id: str,
    request: CommandAcknowledgmentRequest,
    db: AsyncSession = Depends(get_db),
    manager: TradeLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Record an acknowledgment the bridge delivered after the dispatch gave up.

    Only the command is marked; the Trade insert or closure it implies is
    applied by reconciliation at the start of the next cycle.
    """
    async with manager.account_lock(account_id):
        await load_account(db, account_id)
        command = await get_command(db, correlation_id, request.action.value)
        if command is None or command.account_id != account_id:
            raise NotFoundError(f"No {request.action.value} command {correlation_id} for account {account_id}")
        command = await manager.channel.apply_acknowledgment(
            db, correlation_id, request.action, request.ticket_id
        )
    return TradeCommandResponse.model_validate(command)


@router.post("/{account_id}/close", response_model=CycleResultResponse)
async def close_open_trade(
    account_id: int,
    request: ManualCloseRequest,
    db: AsyncSession = Depends(get_db),
    manager: TradeLifecycleManager = Depends(get_lifecycle_manager),
):
    """Close the open trade at the given price through the normal CLOSE path"""
    result = await manager.close_trade_manually(db, account_id, request.exit_price)
    return CycleResultResponse(**result.to_dict())


@router.get("/{account_id}/summary", response_model=DailySummaryResponse)
async def get_daily_summary(
    account_id: int,
    day: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Performance summary for a trading day (YYYY-MM-DD, default today)"""
    account = await load_account(db, account_id)
    offset = settings.trading_day_utc_offset_hours
    if day:
        try:
            target = date.fromisoformat(day)
        except ValueError:
            raise ValidationError(f"Invalid day: {day} (expected YYYY-MM-DD)")
    else:
        target = trading_day(utc_offset_hours=offset)

    summary = await compute_daily_summary(db, account, target, offset)
    return DailySummaryResponse(**summary.to_dict())


@router.post("/{account_id}/recommendation", response_model=RecommendationResponse)
async def create_recommendation(
    account_id: int,
    db: AsyncSession = Depends(get_db),
    advisory: AdvisoryService = Depends(get_advisory_service),
):
    """Ask the advisory provider for a next-day position size suggestion"""
    recommendation = await advisory.suggest_next_day_position_size(db, account_id)
    return RecommendationResponse.model_validate(recommendation)
