"""
System API routes

- Root/health check
- Scheduler and shutdown status
"""

import logging

from fastapi import APIRouter, Depends

from aurum import __version__
from aurum.auto_trader_monitor import AutoTradingMonitor
from aurum.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


# Dependencies - will be injected from main.py
def get_monitor() -> AutoTradingMonitor:
    """Get auto-trading monitor - will be overridden in main.py"""
    raise NotImplementedError("Must override monitor dependency")


@router.get("/")
async def root():
    return {"message": "Aurum Trader API", "status": "running", "version": __version__}


@router.get("/api/system/status")
async def get_system_status(monitor: AutoTradingMonitor = Depends(get_monitor)):
    """Monitor state, accounts being scheduled and in-flight dispatches"""
    status = await monitor.get_status()
    status["symbol"] = settings.trading_symbol
    status["advisory_enabled"] = bool(settings.advisory_provider)
    return status
