"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tradegpt.api import accounts, chat, realtime, stop_loss, system, trades
from tradegpt.config import Settings, settings
from tradegpt.engine.staging import TradeStagingOrchestrator
from tradegpt.engine.stop_loss_monitor import StopLossMonitor
from tradegpt.errors import TradeGPTError
from tradegpt.services.ai_router import AiRouter, ChatProvider, select_provider
from tradegpt.services.chain_client import ChainClient
from tradegpt.services.encryption import load_agent_key
from tradegpt.services.market_data import MarketDataService
from tradegpt.services.notifier import SocketHub
from tradegpt.services.price_cache import PriceCache
from tradegpt.services.transaction_builder import TradeTransactionBuilder
from tradegpt.store.conversation_ledger import ConversationLedger
from tradegpt.store.trade_ledger import TradeLedger
from tradegpt.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    app_settings: Settings = app.state.settings
    scheduler: AsyncIOScheduler = app.state.scheduler
    monitor: StopLossMonitor = app.state.monitor

    scheduler.start()
    if app_settings.stop_loss_enabled:
        monitor.start(app_settings.stop_loss_interval_seconds)

    # Start Telegram bot if configured
    telegram_bot = None
    if app_settings.telegram_bot_token:
        from tradegpt.services.telegram_bot import TelegramBot
        telegram_bot = TelegramBot(
            token=app_settings.telegram_bot_token,
            chat_ids=app_settings.telegram_chat_ids,
            monitor=monitor,
        )
        app.state.hub.add_listener(telegram_bot.handle_event)
        telegram_bot.start()

    yield

    if telegram_bot:
        telegram_bot.stop()
    monitor.stop()
    scheduler.shutdown(wait=False)
    await app.state.chain.close()


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI):
    """Render every failure as {"error": message}."""

    @app.exception_handler(TradeGPTError)
    async def _tradegpt_error(request: Request, exc: TradeGPTError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.error(f"{request.method} {request.url.path} crashed: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    app_settings: Settings | None = None,
    *,
    market_data: MarketDataService | None = None,
    chain: ChainClient | None = None,
    chat_provider: ChatProvider | None = None,
) -> FastAPI:
    """Build the application and every collaborator it runs with.

    The keyword arguments replace the network-facing collaborators, which is
    how tests run the full app without touching Hyperliquid or an RPC node.
    """
    app_settings = app_settings or settings
    setup_logging(app_settings.log_level)

    market_data = market_data or MarketDataService(
        base_url=app_settings.hyperliquid_base_url,
        timeout=app_settings.price_fetch_timeout_seconds,
        candle_interval=app_settings.snapshot_candle_interval,
    )
    chain = chain or ChainClient(
        rpc_url=app_settings.rpc_url,
        factory_address=app_settings.factory_address,
        agent_private_key=load_agent_key(app_settings),
        receipt_timeout=app_settings.receipt_timeout_seconds,
    )

    ledger = TradeLedger()
    hub = SocketHub()
    scheduler = AsyncIOScheduler()
    price_cache = PriceCache(market_data.fetch_price, ttl_seconds=app_settings.price_cache_ttl_seconds)
    builder = TradeTransactionBuilder(
        router_address=app_settings.router_address,
        asset_addresses=app_settings.asset_addresses,
        chain_id=app_settings.chain_id,
    )

    app = FastAPI(
        title="TradeGPT",
        description="AI trade suggestions, on-chain staging and stop-loss monitoring",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.ledger = ledger
    app.state.conversations = ConversationLedger(app_settings.conversation_history_limit)
    app.state.hub = hub
    app.state.scheduler = scheduler
    app.state.chain = chain
    app.state.monitor = StopLossMonitor(
        ledger,
        price_cache,
        hub,
        scheduler,
        interval_seconds=app_settings.stop_loss_interval_seconds,
    )
    app.state.orchestrator = TradeStagingOrchestrator(ledger, builder, chain, hub)
    app.state.ai_router = AiRouter(chat_provider or select_provider(app_settings), market_data)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # Mount routers
    app.include_router(system.router)
    app.include_router(stop_loss.router)
    app.include_router(trades.router)
    app.include_router(chat.router)
    app.include_router(accounts.router)
    app.include_router(realtime.router)

    return app


app = create_app()
