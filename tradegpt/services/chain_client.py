"""Async JSON-RPC access to the chain: account registry, balances, agent-signed submission."""

import logging

from eth_account import Account
from web3 import AsyncWeb3, Web3

from tradegpt.errors import ConfigurationError, TransactionRevertedError
from tradegpt.models.trade import PreparedTransaction
from tradegpt.utils.abis import FACTORY_ABI, TRADE_ACCOUNT_ABI

logger = logging.getLogger(__name__)


class ChainClient:
    def __init__(
        self,
        rpc_url: str,
        factory_address: str = "",
        agent_private_key: str = "",
        receipt_timeout: float = 120.0,
    ):
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self.factory_address = factory_address
        self.receipt_timeout = receipt_timeout
        self._agent = None
        if agent_private_key:
            try:
                self._agent = Account.from_key(agent_private_key)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid agent private key: {e}") from e
            logger.info(f"Agent signer loaded: {self._agent.address}")

    @property
    def has_agent(self) -> bool:
        return self._agent is not None

    @property
    def agent_address(self) -> str | None:
        return self._agent.address if self._agent else None

    async def get_accounts(self, owner: str) -> list[str]:
        """All smart accounts the factory has registered for ``owner``."""
        if not self.factory_address:
            raise ConfigurationError("Factory address not configured")
        factory = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.factory_address),
            abi=FACTORY_ABI,
        )
        accounts = await factory.functions.getAccountsByOwner(Web3.to_checksum_address(owner)).call()
        return list(accounts)

    async def get_smart_account(self, owner: str) -> str | None:
        """First registered smart account for ``owner``, or None.

        Lookup failures are logged and treated as "no smart account" so the
        caller can fall back to the plain wallet.
        """
        if not self.factory_address:
            return None
        try:
            accounts = await self.get_accounts(owner)
        except Exception as e:
            logger.error(f"Smart account lookup failed for {owner}: {e}")
            return None
        return accounts[0] if accounts else None

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        return await self.w3.eth.get_balance(Web3.to_checksum_address(address))

    async def has_pending_trade(self, account: str) -> bool:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(account), abi=TRADE_ACCOUNT_ABI)
        return bool(await contract.functions.hasPendingTrade().call())

    async def send_transaction(self, tx: PreparedTransaction) -> str:
        """Sign ``tx`` with the agent key and broadcast it. Returns the tx hash."""
        if self._agent is None:
            raise ConfigurationError("Agent private key not configured")

        sender = self._agent.address
        params = {
            "from": sender,
            "to": Web3.to_checksum_address(tx.to),
            "data": tx.data,
            "value": int(tx.value),
            "chainId": tx.chain_id or await self.w3.eth.chain_id,
            "nonce": await self.w3.eth.get_transaction_count(sender, "pending"),
        }
        params["gas"] = await self.w3.eth.estimate_gas(params)
        params["gasPrice"] = await self.w3.eth.gas_price
        params.pop("from")

        signed = self._agent.sign_transaction(params)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info(f"Agent transaction sent to {tx.to}: {Web3.to_hex(tx_hash)}")
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str):
        """Block until mined. Raises TransactionRevertedError on a failed receipt."""
        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            raise TransactionRevertedError(f"Transaction {tx_hash} reverted")
        return receipt

    async def close(self):
        await self.w3.provider.disconnect()
