"""Calldata encoding for the trade router and the smart trade account.

Payloads are encoded directly with eth-abi against the function signatures in
``utils/abis.py``, so no RPC connection is needed to build a transaction.
"""

import json
import logging
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from tradegpt.errors import ConfigurationError, TransactionBuildError
from tradegpt.models.trade import PreparedTransaction, TradeSide, TradeSuggestion
from tradegpt.utils.abis import (
    ACCOUNT_CANCEL_TRADE_SIGNATURE,
    ACCOUNT_EXECUTE_TRADE_SIGNATURE,
    ACCOUNT_PREPARE_TRADE_SIGNATURE,
    ACCOUNT_PREPARE_TRADE_TYPES,
    ROUTER_EXECUTE_TRADE_SIGNATURE,
    ROUTER_EXECUTE_TRADE_TYPES,
)
from tradegpt.utils.constants import (
    ASSET_DECIMALS,
    COLLATERAL_ASSET_LONG,
    DEFAULT_ASSET_DECIMALS,
    PRICE_LEVEL_DECIMALS,
    ZERO_ADDRESS,
)

logger = logging.getLogger(__name__)

_ENCODING_ERRORS = (EncodingError, ValueError, TypeError, ArithmeticError)


def encode_call(signature: str, types: list[str], args: list) -> str:
    """4-byte selector + ABI-encoded arguments, as 0x-prefixed hex."""
    selector = function_signature_to_4byte_selector(signature)
    return "0x" + (selector + encode(types, args)).hex()


def to_base_units(amount: float, decimals: int) -> int:
    """Scale a human amount to integer token units, truncating extra precision."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def to_price_level(price: float | None) -> int:
    """Stop-loss / take-profit level with two implied decimals (0 = unset)."""
    if not price:
        return 0
    quantum = Decimal(1).scaleb(-PRICE_LEVEL_DECIMALS)
    rounded = Decimal(str(price)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded.scaleb(PRICE_LEVEL_DECIMALS))


class TradeTransactionBuilder:
    def __init__(
        self,
        router_address: str,
        asset_addresses: dict[str, str] | None = None,
        chain_id: int = 50312,
    ):
        self.router_address = router_address
        self.asset_addresses = {k.upper(): v for k, v in (asset_addresses or {}).items()}
        self.chain_id = chain_id

    def _require_router(self) -> str:
        if not self.router_address:
            raise ConfigurationError("Router address not configured (set TG_ROUTER_ADDRESS)")
        return self.router_address

    def _trade_params(self, trade: TradeSuggestion) -> dict:
        symbol = trade.symbol.upper()
        is_long = trade.side == TradeSide.LONG
        # Longs post stablecoin collateral, shorts post the asset itself
        collateral_symbol = COLLATERAL_ASSET_LONG if is_long else symbol
        decimals = ASSET_DECIMALS.get(collateral_symbol, DEFAULT_ASSET_DECIMALS)

        return {
            "asset": to_checksum_address(self.asset_addresses.get(symbol, ZERO_ADDRESS)),
            "is_long": is_long,
            "collateral": to_base_units(trade.collateral, decimals),
            "leverage_bps": int(round(trade.leverage * 100)),
            "stop_loss": to_price_level(trade.stop_loss),
            "take_profit": to_price_level(trade.take_profit),
            "metadata": encode(
                ["string"],
                [
                    json.dumps(
                        {
                            "rationale": trade.rationale,
                            "confidence": trade.confidence,
                            "entryPrice": trade.entry_price,
                        },
                        separators=(",", ":"),
                    )
                ],
            ),
        }

    def _router_calldata(self, account: str, params: dict) -> str:
        return encode_call(
            ROUTER_EXECUTE_TRADE_SIGNATURE,
            ROUTER_EXECUTE_TRADE_TYPES,
            [
                to_checksum_address(account),
                params["asset"],
                params["is_long"],
                params["collateral"],
                params["leverage_bps"],
                params["stop_loss"],
                params["take_profit"],
                params["metadata"],
            ],
        )

    def _tx(self, to: str, data: str) -> PreparedTransaction:
        return PreparedTransaction(to=to, data=data, value="0", chain_id=self.chain_id)

    def build(self, account: str, trade: TradeSuggestion) -> PreparedTransaction:
        """Direct router call for a plain wallet (EOA)."""
        router = self._require_router()
        try:
            params = self._trade_params(trade)
            data = self._router_calldata(account, params)
        except _ENCODING_ERRORS as e:
            raise TransactionBuildError(f"Failed to encode trade {trade.id}: {e}") from e
        return self._tx(router, data)

    def build_smart_account_execute(self, smart_account: str, trade: TradeSuggestion) -> PreparedTransaction:
        """prepareTrade(config, execution) on the smart account, wrapping the router call."""
        router = self._require_router()
        try:
            params = self._trade_params(trade)
            router_calldata = self._router_calldata(smart_account, params)
            config = (
                params["asset"],
                params["collateral"],
                params["leverage_bps"],
                params["is_long"],
                params["stop_loss"],
                params["take_profit"],
            )
            execution = (to_checksum_address(router), 0, bytes.fromhex(router_calldata[2:]))
            data = encode_call(
                ACCOUNT_PREPARE_TRADE_SIGNATURE,
                ACCOUNT_PREPARE_TRADE_TYPES,
                [config, execution],
            )
        except _ENCODING_ERRORS as e:
            raise TransactionBuildError(f"Failed to encode trade {trade.id}: {e}") from e
        return self._tx(smart_account, data)

    def build_simple_execute(self, smart_account: str) -> PreparedTransaction:
        """executeTrade() on the smart account: approves the trade the agent prepared."""
        return self._tx(smart_account, encode_call(ACCOUNT_EXECUTE_TRADE_SIGNATURE, [], []))

    def build_cancel(self, smart_account: str) -> PreparedTransaction:
        return self._tx(smart_account, encode_call(ACCOUNT_CANCEL_TRADE_SIGNATURE, [], []))
