"""Application configuration via environment variables."""

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Stop-loss monitor
    stop_loss_enabled: bool = True
    stop_loss_interval_seconds: float = Field(default=15.0, gt=0)
    price_cache_ttl_seconds: float = Field(default=5.0, ge=0)
    price_fetch_timeout_seconds: float = Field(default=5.0, gt=0)

    # Market data (Hyperliquid public API; empty base URL = SDK mainnet default)
    hyperliquid_base_url: str = ""
    snapshot_candle_interval: str = "1h"

    # Chain
    rpc_url: str = "https://dream-rpc.somnia.network"
    chain_id: int = 50312
    factory_address: str = ""
    router_address: str = ""
    agent_private_key: str = ""  # raw hex, or Fernet ciphertext when encryption_key is set
    encryption_key: str = ""  # generate with: python -m tradegpt.cli generate-key
    asset_addresses: dict[str, str] = {}  # e.g. TG_ASSET_ADDRESSES='{"ETH": "0x..."}'
    receipt_timeout_seconds: float = 120.0

    # AI providers
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    conversation_history_limit: int = 20

    # Telegram
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []

    model_config = {"env_prefix": "TG_", "env_file": ".env"}


settings = Settings()
