"""Shared API dependencies.

Collaborators are built once by ``create_app`` and stored on ``app.state``;
these accessors hand them to route handlers through ``Depends``.
"""

from fastapi import Request

from tradegpt.engine.staging import TradeStagingOrchestrator
from tradegpt.engine.stop_loss_monitor import StopLossMonitor
from tradegpt.services.ai_router import AiRouter
from tradegpt.services.chain_client import ChainClient
from tradegpt.services.notifier import SocketHub
from tradegpt.store.conversation_ledger import ConversationLedger
from tradegpt.store.trade_ledger import TradeLedger


def get_ledger(request: Request) -> TradeLedger:
    return request.app.state.ledger


def get_conversations(request: Request) -> ConversationLedger:
    return request.app.state.conversations


def get_hub(request: Request) -> SocketHub:
    return request.app.state.hub


def get_monitor(request: Request) -> StopLossMonitor:
    return request.app.state.monitor


def get_orchestrator(request: Request) -> TradeStagingOrchestrator:
    return request.app.state.orchestrator


def get_ai_router(request: Request) -> AiRouter:
    return request.app.state.ai_router


def get_chain(request: Request) -> ChainClient:
    return request.app.state.chain
