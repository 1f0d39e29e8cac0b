"""Trades API: listing, client-driven updates and on-chain confirmation."""

from fastapi import APIRouter, Depends, Query

from tradegpt.api.deps import get_hub, get_ledger, get_orchestrator
from tradegpt.engine.staging import TradeStagingOrchestrator
from tradegpt.errors import NotFoundError
from tradegpt.schemas.trade import ConfirmRequest, TradeUpdate
from tradegpt.services.notifier import SocketHub
from tradegpt.store.trade_ledger import TradeLedger
from tradegpt.utils.constants import TRADE_EVENT_UPDATED

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.get("")
def list_trades(
    user_id: str = Query(alias="userId", min_length=1),
    ledger: TradeLedger = Depends(get_ledger),
):
    return {"trades": [t.to_payload() for t in ledger.list(user_id)]}


@router.patch("/{trade_id}")
def update_trade(
    trade_id: str,
    body: TradeUpdate,
    ledger: TradeLedger = Depends(get_ledger),
    hub: SocketHub = Depends(get_hub),
):
    updated = ledger.update(body.user_id, trade_id, body.changes())
    if updated is None:
        raise NotFoundError("Trade not found")

    payload = updated.to_payload()
    hub.broadcast(TRADE_EVENT_UPDATED, payload)
    return {"trade": payload}


@router.post("/{trade_id}/confirm")
async def confirm_trade(
    trade_id: str,
    body: ConfirmRequest,
    orchestrator: TradeStagingOrchestrator = Depends(get_orchestrator),
):
    """Mark a staged trade executed once the user's transaction is mined."""
    trade = await orchestrator.confirm(body.user_id, trade_id, body.transaction_hash)
    return {"trade": trade.to_payload()}
