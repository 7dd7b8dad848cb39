"""
Tests for VaultConfig loading and validation.
"""
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from wallet_vault.conf import DEFAULT_STORAGE_PATH, VaultConfig

ENV_VARS = (
    "WALLET_VAULT_STORAGE",
    "WALLET_VAULT_PATH",
    "WALLET_VAULT_RP_ID",
    "WALLET_VAULT_RP_NAME",
    "WALLET_VAULT_MIN_PASSWORD_LENGTH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestVaultConfig:
    """Tests for configuration defaults and validators."""

    def test_defaults(self):
        config = VaultConfig()
        assert config.storage_backend == "file"
        assert config.storage_path == DEFAULT_STORAGE_PATH
        assert config.rp_id == "localhost"
        assert config.min_password_length == 8

    def test_backend_case_insensitive(self):
        assert VaultConfig(storage_backend="MEMORY").storage_backend == "memory"

    def test_unknown_backend(self):
        with pytest.raises(PydanticValidationError):
            VaultConfig(storage_backend="indexeddb")

    def test_minimum_password_floor(self):
        with pytest.raises(PydanticValidationError):
            VaultConfig(min_password_length=6)

    def test_empty_rp_id(self):
        with pytest.raises(PydanticValidationError):
            VaultConfig(rp_id="")

    def test_path_expanded(self):
        config = VaultConfig(storage_path="~/vault.json")
        assert config.storage_path == Path.home() / "vault.json"


class TestFromEnv:
    """Tests for loading configuration from environment variables."""

    def test_empty_environment(self):
        assert VaultConfig.from_env() == VaultConfig()

    def test_all_variables(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WALLET_VAULT_STORAGE", "memory")
        monkeypatch.setenv("WALLET_VAULT_PATH", str(tmp_path / "v.json"))
        monkeypatch.setenv("WALLET_VAULT_RP_ID", "wallet.example")
        monkeypatch.setenv("WALLET_VAULT_RP_NAME", "Example Wallet")
        monkeypatch.setenv("WALLET_VAULT_MIN_PASSWORD_LENGTH", "14")

        config = VaultConfig.from_env()
        assert config.storage_backend == "memory"
        assert config.storage_path == tmp_path / "v.json"
        assert config.rp_id == "wallet.example"
        assert config.rp_name == "Example Wallet"
        assert config.min_password_length == 14

    def test_invalid_value(self, monkeypatch):
        monkeypatch.setenv("WALLET_VAULT_MIN_PASSWORD_LENGTH", "four")
        with pytest.raises(PydanticValidationError):
            VaultConfig.from_env()
