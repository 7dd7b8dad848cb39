"""
Vault Configuration — Validated settings loaded from the environment.

Recognised environment variables:
    WALLET_VAULT_STORAGE = file | memory
    WALLET_VAULT_PATH = <path to the vault JSON file>
    WALLET_VAULT_RP_ID = <relying party id used for authenticator ceremonies>
    WALLET_VAULT_RP_NAME = <relying party display name>
    WALLET_VAULT_MIN_PASSWORD_LENGTH = <integer, at least 8>

The key-derivation constants are not configurable: they are part of the
format of every record already on disk (see ``wallet_vault.vault.crypto``).
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("wallet.vault")

DEFAULT_STORAGE_PATH = Path.home() / ".wallet-vault" / "vault.json"
MIN_PASSWORD_LENGTH = 8


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    storage_backend: str = Field(default="file")
    storage_path: Path = Field(default=DEFAULT_STORAGE_PATH)
    rp_id: str = Field(default="localhost", min_length=1)
    rp_name: str = Field(default="Wallet")
    user_name: str = Field(default="wallet-user")
    user_display_name: str = Field(default="Wallet User")
    min_password_length: int = Field(default=MIN_PASSWORD_LENGTH, ge=MIN_PASSWORD_LENGTH)

    @field_validator("storage_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate storage backend is supported."""
        v = v.lower()
        if v not in ("file", "memory"):
            raise ValueError(f"Unsupported storage backend: {v}")
        return v

    @field_validator("storage_path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return v.expanduser()

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables fall back to the model defaults.

        Returns:
            Populated VaultConfig instance.
        """
        values = {}
        env_map = {
            "WALLET_VAULT_STORAGE": "storage_backend",
            "WALLET_VAULT_PATH": "storage_path",
            "WALLET_VAULT_RP_ID": "rp_id",
            "WALLET_VAULT_RP_NAME": "rp_name",
            "WALLET_VAULT_MIN_PASSWORD_LENGTH": "min_password_length",
        }
        for env_name, field in env_map.items():
            raw = os.environ.get(env_name)
            if raw is not None:
                values[field] = raw
        config = cls(**values)
        logger.debug(
            "Vault config loaded: backend=%s rp_id=%s",
            config.storage_backend, config.rp_id,
        )
        return config
