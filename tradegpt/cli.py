"""CLI tool for operator tasks.

Usage:
    python -m tradegpt.cli generate-key
    python -m tradegpt.cli encrypt-agent-key
    python -m tradegpt.cli price <SYMBOL>
"""

import asyncio
import getpass
import sys

from tradegpt.config import settings
from tradegpt.errors import TradeGPTError
from tradegpt.services.encryption import encrypt, generate_key
from tradegpt.services.market_data import MarketDataService

COMMANDS = "generate-key, encrypt-agent-key, price <SYMBOL>"


def print_new_key():
    """Print a fresh Fernet key for TG_ENCRYPTION_KEY."""
    print(generate_key())


def encrypt_agent_key():
    """Encrypt the agent's private key with TG_ENCRYPTION_KEY."""
    if not settings.encryption_key:
        print("TG_ENCRYPTION_KEY is not set. Create one with: python -m tradegpt.cli generate-key")
        sys.exit(1)

    private_key = getpass.getpass("Agent private key: ").strip()
    if not private_key:
        print("Private key cannot be empty.")
        sys.exit(1)

    print("\nSet this as TG_AGENT_PRIVATE_KEY:")
    print(encrypt(private_key, settings.encryption_key))


def print_price(symbol: str):
    service = MarketDataService(
        base_url=settings.hyperliquid_base_url,
        timeout=settings.price_fetch_timeout_seconds,
    )
    try:
        price = asyncio.run(service.fetch_price(symbol))
    except TradeGPTError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    print(f"{symbol.upper()}: {price}")


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m tradegpt.cli <command>")
        print(f"Commands: {COMMANDS}")
        sys.exit(1)

    command = sys.argv[1]
    if command == "generate-key":
        print_new_key()
    elif command == "encrypt-agent-key":
        encrypt_agent_key()
    elif command == "price":
        if len(sys.argv) < 3:
            print("Usage: python -m tradegpt.cli price <SYMBOL>")
            sys.exit(1)
        print_price(sys.argv[2])
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
