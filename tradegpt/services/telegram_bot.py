"""Telegram bot for stop-loss alerts and read-only monitor commands."""

import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes

from tradegpt.engine.stop_loss_monitor import StopLossMonitor
from tradegpt.utils.constants import TRADE_EVENT_STOP_LOSS

logger = logging.getLogger(__name__)


class TelegramBot:
    """Telegram bot running in a background thread with its own event loop.

    The monitor and ledger belong to the application loop, so commands read
    them by scheduling a call back onto that loop.
    """

    def __init__(self, token: str, chat_ids: list[int], monitor: StopLossMonitor):
        self.token = token
        self.chat_ids = set(chat_ids)
        self.monitor = monitor
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._main_loop: Optional[asyncio.AbstractEventLoop] = None

    def _is_authorized(self, user_id: int) -> bool:
        return user_id in self.chat_ids

    async def _check_auth(self, update: Update) -> bool:
        if not update.effective_user or not self._is_authorized(update.effective_user.id):
            if update.message:
                await update.message.reply_text("Unauthorized.")
            return False
        return True

    async def _on_main_loop(self, fn: Callable[[], Any]) -> Any:
        async def _call():
            return fn()

        future = asyncio.run_coroutine_threadsafe(_call(), self._main_loop)
        return await asyncio.wrap_future(future)

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        status = await self._on_main_loop(self.monitor.status)
        monitor_str = "running" if status["isRunning"] else "stopped"
        prices = ", ".join(f"{p['symbol']}={p['price']}" for p in status["cachedPrices"]) or "none"
        text = (
            f"Stop-loss monitor: {monitor_str}\n"
            f"Watched positions: {status['monitoredTrades']}\n"
            f"Cached prices: {prices}"
        )
        await update.message.reply_text(text)

    async def _cmd_positions(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        trades = await self._on_main_loop(self.monitor.watched_trades)
        if not trades:
            await update.message.reply_text("No open positions.")
            return

        lines = [
            f"{t.symbol}: {t.side.value} {t.leverage:g}x | entry ${t.entry_price:,.2f} | stop ${t.stop_loss:,.2f}"
            for t in trades
        ]
        await update.message.reply_text("\n".join(lines))

    async def send_notification(self, message: str):
        """Send a message to all whitelisted chat IDs."""
        if not self._app or not self._app.bot:
            return
        for chat_id in self.chat_ids:
            try:
                await self._app.bot.send_message(chat_id=chat_id, text=message)
            except Exception as e:
                logger.warning(f"Failed to send Telegram notification to {chat_id}: {e}")

    def handle_event(self, event_type: str, payload: dict):
        """SocketHub listener: forward stop-loss triggers to Telegram."""
        if event_type != TRADE_EVENT_STOP_LOSS or not self._loop:
            return
        message = (
            f"Stop-loss triggered: {payload.get('symbol')} {payload.get('side')} "
            f"at ${payload.get('triggeredAtPrice')} (stop ${payload.get('stopLoss')})\n"
            f"Trade {payload.get('id')} for {payload.get('userId')}"
        )
        asyncio.run_coroutine_threadsafe(self.send_notification(message), self._loop)

    def _run_bot(self):
        """Run the bot in a background thread with its own event loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        self._app = (
            Application.builder()
            .token(self.token)
            .build()
        )

        self._app.add_handler(CommandHandler("status", self._cmd_status))
        self._app.add_handler(CommandHandler("positions", self._cmd_positions))

        logger.info("Telegram bot starting...")
        self._loop.run_until_complete(self._app.initialize())
        self._loop.run_until_complete(self._app.start())
        self._loop.run_until_complete(self._app.updater.start_polling())
        self._loop.run_forever()

    def start(self):
        """Start polling; must be called from the application's event loop."""
        self._main_loop = asyncio.get_running_loop()
        self._thread = threading.Thread(target=self._run_bot, daemon=True)
        self._thread.start()

    def stop(self):
        if self._loop and self._app:
            async def _shutdown():
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()

            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(timeout=10)
            self._loop.call_soon_threadsafe(self._loop.stop)
