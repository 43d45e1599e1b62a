"""
Wakegate - Authentication Module
==================================
Single shared-secret authentication for wake requests and the device list.

Security model:
- One admin password, stored only as a bcrypt hash
- The hash comes from config.yaml (auth.hashed_password) or the
  WAKEGATE_HASHED_PASSWORD variable, loaded once at startup
- Every wake request and every device-list request carries the password
  and is checked against the hash; there are no sessions or tokens

Generating a hash:
    python app.py --hash-password "my secret"
"""

import asyncio
import logging
from dataclasses import dataclass

import bcrypt

from gateway.config import HASHED_PASSWORD_ENV, ConfigError

logger = logging.getLogger(__name__)

# bcrypt cost factor for newly generated hashes.
DEFAULT_ROUNDS = 12

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


@dataclass(frozen=True)
class CredentialStore:
    """
    The process-wide reference credential. Immutable once loaded.

    Attributes:
        hashed_password: bcrypt hash of the admin password.
    """

    hashed_password: str

    def __repr__(self) -> str:
        return "CredentialStore(hashed_password=<redacted>)"


def load_credential_store(config: dict, env: dict[str, str] | None = None) -> CredentialStore:
    """
    Build the credential store from configuration.

    The environment value wins over config.yaml so the hash can be kept
    out of the settings file.

    Args:
        config: Merged configuration dict.
        env:    Secrets from ConfigManager.load_env().

    Returns:
        The loaded CredentialStore.

    Raises:
        ConfigError: If no hash is configured or it is not a bcrypt hash.
    """
    env = env or {}
    hashed = env.get(HASHED_PASSWORD_ENV) or (config.get("auth") or {}).get("hashed_password")

    if not hashed:
        raise ConfigError(
            "No password hash configured. Set auth.hashed_password in config.yaml "
            f"or {HASHED_PASSWORD_ENV} in .env (see: python app.py --hash-password)."
        )
    if not isinstance(hashed, str) or not hashed.startswith(_BCRYPT_PREFIXES):
        raise ConfigError("Configured password hash is not a bcrypt hash.")

    return CredentialStore(hashed_password=hashed)


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Hash a plaintext password for config.yaml.

    Args:
        password: The plaintext password.
        rounds:   bcrypt cost factor.

    Returns:
        The bcrypt hash as a string.

    Raises:
        ValueError: If the password is empty.
    """
    if not password:
        raise ValueError("Password must not be empty.")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


class CredentialGate:
    """
    Checks a presented password against the stored hash.

    bcrypt is deliberately slow, so the comparison runs in a worker
    thread and other sessions keep being served meanwhile.
    """

    def __init__(self, store: CredentialStore | None):
        self._store = store

    async def authorize(self, presented_secret: str) -> bool:
        """
        Verify a password. Fails closed.

        Args:
            presented_secret: Plaintext password sent by the client.

        Returns:
            True only if the password matches the stored hash.
        """
        if self._store is None or not self._store.hashed_password:
            return False
        if not isinstance(presented_secret, str) or not presented_secret:
            return False

        try:
            return await asyncio.to_thread(
                bcrypt.checkpw,
                presented_secret.encode("utf-8"),
                self._store.hashed_password.encode("utf-8"),
            )
        except (ValueError, TypeError):
            logger.error("Password check failed: stored hash could not be used")
            return False
