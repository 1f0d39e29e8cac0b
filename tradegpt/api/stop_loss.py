"""Stop-loss monitor diagnostics and manual checks."""

from fastapi import APIRouter, Depends

from tradegpt.api.deps import get_monitor
from tradegpt.engine.stop_loss_monitor import StopLossMonitor

router = APIRouter(prefix="/api/stop-loss", tags=["stop-loss"])


@router.get("/status")
def monitor_status(monitor: StopLossMonitor = Depends(get_monitor)):
    return monitor.status()


@router.post("/check/{trade_id}")
async def check_trade(trade_id: str, monitor: StopLossMonitor = Depends(get_monitor)):
    """Run the stop-loss check for one trade now, outside the schedule."""
    triggered = await monitor.check_trade_by_id(trade_id)
    return {"tradeId": trade_id, "triggered": triggered}
