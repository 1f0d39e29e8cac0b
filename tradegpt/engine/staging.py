"""Trade staging and confirmation.

Staging turns a drafted trade into a transaction the user can sign:

- plain wallet: a direct router ``executeTrade`` call;
- smart account without an agent key: ``prepareTrade`` on the account, for the
  user to sign;
- smart account with an agent key: the agent cancels any pending trade,
  submits ``prepareTrade`` itself and hands back the short ``executeTrade()``
  approval. If any agent step fails, staging falls back to returning the
  full ``prepareTrade`` payload instead of failing the request.

The ledger is only written once the payload exists, so build and
configuration errors leave the trade untouched.
"""

import logging
from dataclasses import dataclass

from tradegpt.errors import InvalidTransitionError, NotFoundError
from tradegpt.models.trade import PreparedTransaction, Trade, TradeStatus
from tradegpt.services.chain_client import ChainClient
from tradegpt.services.notifier import SocketHub
from tradegpt.services.transaction_builder import TradeTransactionBuilder
from tradegpt.store.trade_ledger import TradeLedger
from tradegpt.utils.constants import TRADE_EVENT_STAGED, TRADE_EVENT_UPDATED

logger = logging.getLogger(__name__)

STAGEABLE_STATUSES = {TradeStatus.DRAFT, TradeStatus.STAGED}


@dataclass
class StagingResult:
    staged_on_chain: bool
    transaction: PreparedTransaction
    smart_account_used: bool
    trade: Trade | None = None

    def to_payload(self) -> dict:
        return {
            "stagedOnChain": self.staged_on_chain,
            "transaction": self.transaction.to_payload(),
            "smartAccountUsed": self.smart_account_used,
        }


class TradeStagingOrchestrator:
    def __init__(
        self,
        ledger: TradeLedger,
        builder: TradeTransactionBuilder,
        chain: ChainClient,
        hub: SocketHub,
    ):
        self.ledger = ledger
        self.builder = builder
        self.chain = chain
        self.hub = hub

    def _get_stageable(self, user_id: str, trade_id: str) -> Trade:
        trade = self.ledger.get(user_id, trade_id)
        if trade is None:
            raise NotFoundError("Trade not found")
        if trade.status not in STAGEABLE_STATUSES:
            raise InvalidTransitionError(f"Trade {trade_id} is {trade.status.value} and cannot be staged")
        return trade

    async def stage(self, user_id: str, trade_id: str, wallet: str) -> StagingResult:
        trade = self._get_stageable(user_id, trade_id)

        smart_account = await self.chain.get_smart_account(wallet)
        staged_on_chain = False

        if smart_account:
            logger.info(f"Using smart account {smart_account} for trade {trade_id}")
            if self.chain.has_agent:
                try:
                    transaction = await self._prestage_with_agent(smart_account, trade)
                    staged_on_chain = True
                except Exception as e:
                    logger.error(f"Agent failed to prepare trade {trade_id} on-chain: {e}", exc_info=True)
                    transaction = self.builder.build_smart_account_execute(smart_account, trade)
            else:
                logger.info(f"No agent key configured, user will prepare trade {trade_id}")
                transaction = self.builder.build_smart_account_execute(smart_account, trade)
        else:
            logger.info(f"Using wallet {wallet} for trade {trade_id}")
            transaction = self.builder.build(wallet, trade)

        # Re-check after the RPC awaits; a concurrent request may have moved the trade on
        try:
            self._get_stageable(user_id, trade_id)
        except (NotFoundError, InvalidTransitionError) as e:
            if staged_on_chain:
                logger.error(
                    f"Trade {trade_id} changed while its prepare was in flight; "
                    f"smart account {smart_account} is left with a pending prepared trade: {e}"
                )
            raise
        updated = self.ledger.update(
            user_id,
            trade_id,
            {"status": TradeStatus.STAGED, "prepared_tx": transaction},
        )
        if updated is not None:
            self.hub.broadcast(TRADE_EVENT_STAGED, updated.to_payload())

        return StagingResult(
            staged_on_chain=staged_on_chain,
            transaction=transaction,
            smart_account_used=smart_account is not None,
            trade=updated,
        )

    async def _prestage_with_agent(self, smart_account: str, trade: Trade) -> PreparedTransaction:
        if await self.chain.has_pending_trade(smart_account):
            logger.info(f"Smart account {smart_account} has a pending trade, cancelling it first")
            cancel_hash = await self.chain.send_transaction(self.builder.build_cancel(smart_account))
            await self.chain.wait_for_receipt(cancel_hash)
            logger.info(f"Previous trade cancelled: {cancel_hash}")

        prepare = self.builder.build_smart_account_execute(smart_account, trade)
        prepare_hash = await self.chain.send_transaction(prepare)
        await self.chain.wait_for_receipt(prepare_hash)
        logger.info(f"Trade {trade.id} prepared on-chain: {prepare_hash}")

        return self.builder.build_simple_execute(smart_account)

    async def confirm(self, user_id: str, trade_id: str, tx_hash: str) -> Trade:
        """Mark a staged trade executed once its user-signed transaction is mined."""
        trade = self.ledger.get(user_id, trade_id)
        if trade is None:
            raise NotFoundError("Trade not found")
        if trade.status != TradeStatus.STAGED:
            raise InvalidTransitionError(f"Trade {trade_id} is {trade.status.value}, not staged")

        await self.chain.wait_for_receipt(tx_hash)

        current = self.ledger.get(user_id, trade_id)
        if current is None:
            raise NotFoundError("Trade not found")
        if current.status != TradeStatus.STAGED:
            raise InvalidTransitionError(f"Trade {trade_id} is {current.status.value}, not staged")

        updated = self.ledger.update(
            user_id,
            trade_id,
            {"status": TradeStatus.EXECUTED, "transaction_hash": tx_hash},
        )
        self.hub.broadcast(TRADE_EVENT_UPDATED, updated.to_payload())
        logger.info(f"Trade {trade_id} executed in {tx_hash}")
        return updated
