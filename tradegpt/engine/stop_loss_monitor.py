"""Stop-loss monitor.

Runs as an APScheduler interval job. Each cycle snapshots the ledger, keeps
only open positions (executed with a stop level) and checks them one at a
time against the cached price feed. A trigger re-applies ``executed`` through
the ledger and broadcasts ``trade.stopLoss`` with the trigger price.

A trade stays ``executed`` after its stop fires, so the monitor keeps an
internal marker per trade holding the stop level it fired at. A marked trade
is skipped until its stop level changes or it stops being watched.
"""

import logging
from datetime import datetime, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tradegpt.errors import ExternalFetchError, NotFoundError
from tradegpt.models.trade import Trade, TradeSide, TradeStatus
from tradegpt.services.notifier import SocketHub
from tradegpt.services.price_cache import PriceCache
from tradegpt.store.trade_ledger import TradeLedger
from tradegpt.utils.constants import TRADE_EVENT_STOP_LOSS

logger = logging.getLogger(__name__)

JOB_ID = "stop_loss_monitor"
MISFIRE_GRACE_SECONDS = 60


def is_stop_loss_triggered(side: TradeSide, price: float, stop_loss: float) -> bool:
    """LONG fires at or below the stop, SHORT at or above it."""
    if side == TradeSide.LONG:
        return price <= stop_loss
    return price >= stop_loss


def is_watched(trade: Trade) -> bool:
    return trade.status == TradeStatus.EXECUTED and trade.stop_loss is not None


class StopLossMonitor:
    def __init__(
        self,
        ledger: TradeLedger,
        price_cache: PriceCache,
        hub: SocketHub,
        scheduler: BaseScheduler,
        interval_seconds: float = 15.0,
    ):
        self.ledger = ledger
        self.price_cache = price_cache
        self.hub = hub
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self._job = None
        self._cycle_in_progress = False
        self._triggered: dict[tuple[str, str], float] = {}  # (user_id, trade_id) -> stop level fired at

    @property
    def is_running(self) -> bool:
        return self._job is not None

    def start(self, interval_seconds: float | None = None):
        """Schedule the monitor job; the first cycle runs immediately."""
        if self.is_running:
            logger.warning("Stop-loss monitor is already running")
            return

        if interval_seconds is not None:
            self.interval_seconds = interval_seconds
        if self.interval_seconds <= 0:
            raise ValueError(f"Stop-loss interval must be positive, got {self.interval_seconds}")

        self._job = self.scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Stop-loss monitor",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(f"Stop-loss monitor started (every {self.interval_seconds}s)")

    def stop(self):
        """Unschedule the job. A cycle already running is left to finish."""
        if not self.is_running:
            return
        try:
            self.scheduler.remove_job(JOB_ID)
        except JobLookupError:
            logger.warning("Stop-loss monitor job was already removed")
        self._job = None
        logger.info("Stop-loss monitor stopped")

    def watched_trades(self) -> list[Trade]:
        return [t for t in self.ledger.list_all() if is_watched(t)]

    async def run_cycle(self) -> int:
        """Check every open position once. Returns the number of stops fired."""
        if self._cycle_in_progress:
            logger.warning("Skipping overlapping stop-loss cycle")
            return 0

        self._cycle_in_progress = True
        try:
            return await self._run_cycle_once()
        finally:
            self._cycle_in_progress = False

    async def _run_cycle_once(self) -> int:
        trades = self.watched_trades()
        self._prune_markers(trades)
        if not trades:
            return 0

        logger.info(f"Checking {len(trades)} active positions for stop-loss triggers")
        triggered = 0
        for trade in trades:
            try:
                if await self.check_trade(trade):
                    triggered += 1
            except Exception as e:
                logger.error(f"Error checking trade {trade.id}: {e}", exc_info=True)
        return triggered

    async def check_trade(self, trade: Trade) -> bool:
        """Evaluate one trade and fire its stop if the price has crossed it."""
        if not is_watched(trade):
            return False

        key = (trade.user_id, trade.id)
        if self._triggered.get(key) == trade.stop_loss:
            logger.debug(f"Stop-loss for trade {trade.id} already fired at {trade.stop_loss}")
            return False

        try:
            price = await self.price_cache.get_price(trade.symbol)
        except ExternalFetchError as e:
            logger.warning(f"Skipping trade {trade.id}: no price for {trade.symbol} ({e.message})")
            return False

        if not is_stop_loss_triggered(trade.side, price, trade.stop_loss):
            return False

        # The price await is a suspension point; act only on the record as it is now
        current = self.ledger.get(trade.user_id, trade.id)
        if current is None:
            logger.info(f"Trade {trade.id} disappeared before its stop-loss could fire")
            return False
        if not is_watched(current) or current.stop_loss != trade.stop_loss:
            logger.info(f"Trade {trade.id} changed while fetching price, re-checking next cycle")
            return False
        if self._triggered.get(key) == current.stop_loss:
            return False

        logger.warning(
            f"Stop-loss triggered for trade {trade.id}: {trade.symbol} {trade.side.value} "
            f"price={price} stop={trade.stop_loss}"
        )
        return self._execute_stop_loss(current, price)

    def _execute_stop_loss(self, trade: Trade, price: float) -> bool:
        updated = self.ledger.update(trade.user_id, trade.id, {"status": TradeStatus.EXECUTED})
        if updated is None:
            logger.info(f"Trade {trade.id} disappeared before its stop-loss could fire")
            return False

        self._triggered[(updated.user_id, updated.id)] = updated.stop_loss
        self.hub.broadcast(
            TRADE_EVENT_STOP_LOSS,
            {
                **updated.to_payload(),
                "triggeredAtPrice": price,
                "executedAt": datetime.now(timezone.utc).isoformat(),
            },
        )
        return True

    def _prune_markers(self, watched: list[Trade]):
        live = {(t.user_id, t.id) for t in watched}
        for key in list(self._triggered):
            if key not in live:
                del self._triggered[key]

    async def check_trade_by_id(self, trade_id: str) -> bool:
        """Manual check of a single trade, looked up across all users."""
        trade = next((t for t in self.ledger.list_all() if t.id == trade_id), None)
        if trade is None:
            raise NotFoundError(f"Trade {trade_id} not found")
        return await self.check_trade(trade)

    def status(self) -> dict:
        """Read-only diagnostics for the status endpoint."""
        return {
            "isRunning": self.is_running,
            "cachedPrices": [s.to_payload() for s in self.price_cache.samples()],
            "monitoredTrades": len(self.watched_trades()),
        }
