"""Minimal contract ABIs and function signatures used by the backend.

Only the read calls go through web3 contract objects; write calls are encoded
by hand from the signatures below (see ``services/transaction_builder.py``).
"""

FACTORY_ABI = [
    {
        "inputs": [{"name": "accountOwner", "type": "address"}],
        "name": "getAccountsByOwner",
        "outputs": [{"name": "", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    },
]

TRADE_ACCOUNT_ABI = [
    {
        "inputs": [],
        "name": "hasPendingTrade",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Router: executeTrade(account, asset, isLong, collateral, leverageBps, stopLoss, takeProfit, metadata)
ROUTER_EXECUTE_TRADE_TYPES = [
    "address", "address", "bool", "uint256", "uint256", "uint256", "uint256", "bytes",
]
ROUTER_EXECUTE_TRADE_SIGNATURE = (
    "executeTrade(address,address,bool,uint256,uint256,uint256,uint256,bytes)"
)

# Smart account: prepareTrade(TradeConfig, Execution)
TRADE_CONFIG_TYPE = "(address,uint256,uint256,bool,uint256,uint256)"
EXECUTION_TYPE = "(address,uint256,bytes)"
ACCOUNT_PREPARE_TRADE_TYPES = [TRADE_CONFIG_TYPE, EXECUTION_TYPE]
ACCOUNT_PREPARE_TRADE_SIGNATURE = f"prepareTrade({TRADE_CONFIG_TYPE},{EXECUTION_TYPE})"

ACCOUNT_EXECUTE_TRADE_SIGNATURE = "executeTrade()"
ACCOUNT_CANCEL_TRADE_SIGNATURE = "cancelTrade()"
