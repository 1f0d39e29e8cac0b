"""Shared constants and defaults."""

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Token decimals used when scaling trade collateral into on-chain units
ASSET_DECIMALS: dict[str, int] = {
    "STT": 18,
    "ETH": 18,
    "BTC": 8,
    "SOL": 9,
    "USDC": 6,
}
DEFAULT_ASSET_DECIMALS = 18
COLLATERAL_ASSET_LONG = "USDC"

# Stop-loss and take-profit levels are encoded with two decimals
PRICE_LEVEL_DECIMALS = 2

# Candle interval to seconds (Hyperliquid resolutions)
INTERVAL_SECONDS: dict[str, int] = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "8h": 28800,
    "1d": 86400,
}

TRADE_EVENT_DRAFT = "trade.draft"
TRADE_EVENT_STAGED = "trade.staged"
TRADE_EVENT_UPDATED = "trade.updated"
TRADE_EVENT_STOP_LOSS = "trade.stopLoss"

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
TX_HASH_PATTERN = r"^0x[0-9a-fA-F]{64}$"
