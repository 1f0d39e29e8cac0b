"""Chat API: AI replies with trade drafts, and staging drafts for signing."""

import logging

from fastapi import APIRouter, Depends

from tradegpt.api.deps import get_ai_router, get_conversations, get_hub, get_ledger, get_orchestrator
from tradegpt.engine.staging import TradeStagingOrchestrator
from tradegpt.schemas.chat import ChatRequest, StageRequest
from tradegpt.services.ai_router import AiRouter
from tradegpt.services.notifier import SocketHub
from tradegpt.store.conversation_ledger import ConversationLedger
from tradegpt.store.trade_ledger import TradeLedger
from tradegpt.utils.constants import TRADE_EVENT_DRAFT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("")
async def chat(
    body: ChatRequest,
    ai_router: AiRouter = Depends(get_ai_router),
    conversations: ConversationLedger = Depends(get_conversations),
    ledger: TradeLedger = Depends(get_ledger),
    hub: SocketHub = Depends(get_hub),
):
    conversations.append(body.user_id, "user", body.message)
    result = await ai_router.generate(conversations.history(body.user_id))
    conversations.append(body.user_id, result.reply.role, result.reply.content)

    trade_payload = None
    if result.suggestion is not None:
        trade = ledger.insert(body.user_id, result.suggestion)
        trade_payload = trade.to_payload()
        hub.broadcast(TRADE_EVENT_DRAFT, trade_payload)
        logger.info(f"Drafted {trade.side.value} {trade.symbol} trade {trade.id} for {body.user_id}")

    return {
        "reply": result.reply.to_payload(),
        "trade": trade_payload,
        "stagedOnChain": False,
    }


@router.post("/stage")
async def stage_trade(
    body: StageRequest,
    orchestrator: TradeStagingOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.stage(body.user_id, body.trade_id, body.account)
    return result.to_payload()
