"""Fernet symmetric encryption for the agent signing key at rest."""

from cryptography.fernet import Fernet, InvalidToken

from tradegpt.config import Settings
from tradegpt.errors import ConfigurationError


def _get_fernet(key: str) -> Fernet:
    if not key:
        raise ConfigurationError(
            "TG_ENCRYPTION_KEY not set. Generate one with: python -m tradegpt.cli generate-key"
        )
    return Fernet(key.encode() if isinstance(key, str) else key)


def generate_key() -> str:
    return Fernet.generate_key().decode()


def encrypt(plaintext: str, key: str) -> str:
    """Encrypt a string and return base64-encoded ciphertext."""
    return _get_fernet(key).encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str, key: str) -> str:
    """Decrypt a base64-encoded ciphertext and return plaintext."""
    return _get_fernet(key).decrypt(ciphertext.encode()).decode()


def load_agent_key(settings: Settings) -> str:
    """The agent's private key in plaintext, or "" when none is configured.

    With TG_ENCRYPTION_KEY set, TG_AGENT_PRIVATE_KEY is expected to hold the
    Fernet ciphertext produced by ``python -m tradegpt.cli encrypt-agent-key``.
    """
    if not settings.agent_private_key:
        return ""
    if not settings.encryption_key:
        return settings.agent_private_key
    try:
        return decrypt(settings.agent_private_key, settings.encryption_key)
    except InvalidToken as e:
        raise ConfigurationError(
            "TG_AGENT_PRIVATE_KEY could not be decrypted with TG_ENCRYPTION_KEY"
        ) from e
