"""
Next-day position size advisory

Asks the configured AI provider for a position-size adjustment for the next
trading day, given yesterday's performance, current market conditions and
the current indicators. The result is stored for the operator and never
read by the trading engine.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from aurum.ai_service import get_ai_analysis, get_ai_client
from aurum.config import Settings, settings as default_settings
from aurum.exceptions import ExchangeUnavailableError, TransientFeedError, ValidationError
from aurum.models import Account, DailyRecommendation
from aurum.price_feeds.base import IndicatorFeed
from aurum.services.daily_summary_service import compute_daily_summary
from aurum.trading_engine.command_channel import commit_or_raise
from aurum.trading_engine.lifecycle_manager import load_account
from aurum.utils.time_utils import trading_day

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are an expert trading assistant that analyzes trading data and market conditions to provide recommendations for position sizes for the next day.

Analyze the following information to determine the suggested position size for the next day:

Previous Trading Data: {previous_trading_data}

Current Market Conditions: {current_market_conditions}

Technical Indicators: {technical_indicators}

Based on this analysis, provide a recommendation for the position size as a percentage increase or decrease, and explain your reasoning. Consider risk management when making your suggestion.

Output:
Suggested Position Size:
Reasoning: """

_SIZE_RE = re.compile(r"Suggested Position Size:\s*(.*?)\s*(?:\n\s*Reasoning:|$)", re.IGNORECASE | re.DOTALL)
_REASONING_RE = re.compile(r"Reasoning:\s*(.*)", re.IGNORECASE | re.DOTALL)
_PERCENT_RE = re.compile(r"([+-]?\d+(?:\.\d+)?)\s*%")


@dataclass
class ParsedRecommendation:
    suggested_position_size: str
    size_adjustment_pct: Optional[float]
    reasoning: str


def parse_recommendation(text: str) -> ParsedRecommendation:
    """
    Split a provider answer into its size and reasoning sections.

    The percentage is signed: "decrease"/"reduce" wording makes an unsigned
    number negative. Answers without the expected headings keep their first
    line as the size and the full text as reasoning.
    """
    text = (text or "").strip()

    size_match = _SIZE_RE.search(text)
    if size_match and size_match.group(1).strip():
        size_text = size_match.group(1).strip()
    else:
        size_text = text.splitlines()[0].strip() if text else ""

    reasoning_match = _REASONING_RE.search(text)
    reasoning = reasoning_match.group(1).strip() if reasoning_match else text

    pct = None
    pct_match = _PERCENT_RE.search(size_text)
    if pct_match:
        pct = float(pct_match.group(1))
        lowered = size_text.lower()
        if pct > 0 and not pct_match.group(1).startswith("+") and ("decrease" in lowered or "reduce" in lowered):
            pct = -pct

    return ParsedRecommendation(
        suggested_position_size=size_text or "No change",
        size_adjustment_pct=pct,
        reasoning=reasoning,
    )


class AdvisoryService:
    """Optional, human-facing position size suggestions."""

    def __init__(self, feed: Optional[IndicatorFeed] = None, config: Optional[Settings] = None):
        self.feed = feed
        self.config = config or default_settings

    async def build_inputs(self, db: AsyncSession, account: Account) -> Dict[str, str]:
        """The three text inputs of the prompt."""
        offset = self.config.trading_day_utc_offset_hours
        yesterday = trading_day(utc_offset_hours=offset) - timedelta(days=1)
        summary = await compute_daily_summary(db, account, yesterday, offset)

        previous = (
            f"Date {summary.date}: P/L {summary.total_profit:+.2f}, {summary.trades_taken} trades, "
            f"win rate {summary.win_rate:.1f}%, max drawdown {summary.max_drawdown:.2f}. "
            f"Current position size {account.max_position_size} lots, daily risk limit "
            f"{account.daily_risk_limit:.2f}, daily profit target {account.daily_profit_target:.2f}."
        )

        conditions = "Market data unavailable."
        indicators = "Indicators unavailable."
        if self.feed is not None:
            try:
                snapshot = await self.feed.fetch_indicators(account.symbol)
                trend = "uptrend" if snapshot.short_avg > snapshot.long_avg else "downtrend"
                conditions = (
                    f"{account.symbol} trading at {snapshot.price:.2f} in a short-term {trend}; "
                    f"ATR {snapshot.volatility:.2f} ({snapshot.volatility / snapshot.price * 100:.3f}% of price)."
                )
                indicators = (
                    f"EMA{self.config.ema_short_period} {snapshot.short_avg:.2f}, "
                    f"EMA{self.config.ema_long_period} {snapshot.long_avg:.2f}, "
                    f"RSI{self.config.rsi_period} {snapshot.momentum:.1f}, "
                    f"ATR{self.config.atr_period} {snapshot.volatility:.2f}."
                )
            except TransientFeedError as e:
                logger.warning(f"Advisory running without live indicators: {e.message}")

        return {
            "previous_trading_data": previous,
            "current_market_conditions": conditions,
            "technical_indicators": indicators,
        }

    async def suggest_next_day_position_size(self, db: AsyncSession, account_id: int) -> DailyRecommendation:
        """
        Ask the provider, store and return the recommendation.

        Raises:
            ValidationError: advisory disabled or provider misconfigured
            ExchangeUnavailableError: provider call failed or timed out
        """
        provider = self.config.advisory_provider
        if not provider:
            raise ValidationError("Advisory provider is not configured")

        account = await load_account(db, account_id)
        inputs = await self.build_inputs(db, account)
        prompt = PROMPT_TEMPLATE.format(**inputs)

        try:
            client = get_ai_client(provider, timeout=self.config.advisory_timeout_seconds)
        except ValueError as e:
            raise ValidationError(str(e))

        try:
            text = await asyncio.wait_for(
                get_ai_analysis(client, provider, prompt, self.config.advisory_model or None),
                timeout=self.config.advisory_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ExchangeUnavailableError(f"Advisory provider {provider} timed out")
        except Exception as e:
            logger.error(f"Advisory provider {provider} failed: {e}")
            raise ExchangeUnavailableError(f"Advisory provider {provider} failed: {e}")

        parsed = parse_recommendation(text)
        next_day = trading_day(utc_offset_hours=self.config.trading_day_utc_offset_hours) + timedelta(days=1)

        recommendation = DailyRecommendation(
            account_id=account.id,
            date=next_day.isoformat(),
            recommended_position_size=parsed.suggested_position_size,
            size_adjustment_pct=parsed.size_adjustment_pct,
            reasoning=parsed.reasoning,
            provider=provider,
        )
        db.add(recommendation)
        await commit_or_raise(db, f"store recommendation for account {account.id}")

        logger.info(
            f"[account {account.id}] Advisory for {recommendation.date}: {parsed.suggested_position_size}"
        )
        return recommendation
