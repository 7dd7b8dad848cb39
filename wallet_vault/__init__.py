"""Wallet Vault.

Local encrypted storage for EVM private keys. Keys are sealed with
AES-256-GCM under a key derived either from a platform authenticator's PRF
output or from a password, and are decrypted only inside an unlocked
``VaultSession``.
"""
from .version import __version__
from .conf import VaultConfig
from .exceptions import (
    VaultError,
    AuthenticatorError,
    CapabilityUnavailable,
    UserCancelled,
    ValidationError,
    DecryptionError,
    StorageError,
    NotFoundError,
    VaultStateError,
    KeyIndexError,
)
from .storage import VaultStorage, MemoryStorage, FileStorage, open_storage
from .authenticator import Authenticator, Assertion, RegisteredCredential
from .keys import KeyMaterial, EthAccountKeyMaterial, normalize_private_key
from .vault import VaultSession, VaultState, CredentialMethod, KeySummary

__all__ = [
    "__version__",
    "VaultConfig",
    "VaultError",
    "AuthenticatorError",
    "CapabilityUnavailable",
    "UserCancelled",
    "ValidationError",
    "DecryptionError",
    "StorageError",
    "NotFoundError",
    "VaultStateError",
    "KeyIndexError",
    "VaultStorage",
    "MemoryStorage",
    "FileStorage",
    "open_storage",
    "Authenticator",
    "Assertion",
    "RegisteredCredential",
    "KeyMaterial",
    "EthAccountKeyMaterial",
    "normalize_private_key",
    "VaultSession",
    "VaultState",
    "CredentialMethod",
    "KeySummary",
]
