import logging

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aurum.auto_trader_monitor import AutoTradingMonitor
from aurum.config import settings
from aurum.database import async_session_maker, init_db
from aurum.exceptions import AppError
from aurum.exchange_clients import create_venue
from aurum.price_feeds import BridgeIndicatorFeed
from aurum.routers import accounts_router, system_router
from aurum.services.account_service import ensure_default_account
from aurum.services.advisory_service import AdvisoryService
from aurum.services.websocket_manager import ws_manager
from aurum.trading_engine import CommandChannel, TradeLifecycleManager

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Aurum Trader")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One venue per process: the bridge, or the paper venue fed by bridge candles
venue = create_venue(is_paper_trading=settings.paper_trading)
feed = BridgeIndicatorFeed(venue)
channel = CommandChannel(venue)
lifecycle_manager = TradeLifecycleManager(feed, channel)
advisory_service = AdvisoryService(feed)

# Schedules decision cycles for every account with auto-trading enabled
auto_trading_monitor = AutoTradingMonitor(lifecycle_manager)


def override_get_lifecycle_manager():
    return lifecycle_manager


def override_get_advisory_service():
    return advisory_service


def override_get_monitor():
    return auto_trading_monitor


app.include_router(accounts_router.router)
app.include_router(system_router.router)

app.dependency_overrides[accounts_router.get_lifecycle_manager] = override_get_lifecycle_manager
app.dependency_overrides[accounts_router.get_advisory_service] = override_get_advisory_service
app.dependency_overrides[system_router.get_monitor] = override_get_monitor


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Startup/Shutdown events
@app.on_event("startup")
async def startup_event():
    logger.info("Initializing database...")
    await init_db()

    async with async_session_maker() as db:
        account = await ensure_default_account(db, is_paper_trading=settings.paper_trading)
        logger.info(f"Default account {account.id}: auto-trading {'ON' if account.auto_trading_active else 'OFF'}")

    logger.info(f"Starting auto-trading monitor ({venue.get_venue_type()} venue, bridge {settings.bridge_url})...")
    await auto_trading_monitor.start_async()
    logger.info("Startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down - waiting for in-flight dispatches...")

    # Stops scheduling, then waits for in-flight dispatches and running cycles
    shutdown_result = await auto_trading_monitor.stop(timeout=60.0)
    if shutdown_result["ready"]:
        logger.info(shutdown_result["message"])
    else:
        logger.warning(shutdown_result["message"])

    await venue.close()
    logger.info("Shutdown complete")


# WebSocket for real-time updates (trade and activity events)
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await ws_manager.connect(websocket)
    try:
        while True:
            # Keep connection alive; clients are passive subscribers
            data = await websocket.receive_text()
            await websocket.send_json({"type": "echo", "message": f"Received: {data}"})
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
