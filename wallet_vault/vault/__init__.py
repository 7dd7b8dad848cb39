"""Wallet Vault — Encrypted EVM private keys unlocked per session.

Security Note (Threat Model):
    While a session is unlocked, the vault key and every decrypted private
    key live in process memory. ``lock()`` overwrites the plaintext buffers
    it owns, but copies made by the interpreter (string decoding, the AEAD
    output) are only released to the garbage collector. A memory dump of an
    unlocked process can therefore expose keys. This is an accepted
    limitation; mitigation requires a secure enclave, which is out of scope.
"""

from .crypto import (
    PRF_SALT,
    HKDF_INFO,
    PBKDF2_ITERATIONS,
    SymmetricKey,
    SealedKey,
    derive_from_prf,
    derive_from_password,
    encrypt_private_key,
    decrypt_private_key,
    generate_salt,
)
from .models import (
    CredentialMethod,
    PRFCredential,
    PasswordCredential,
    KeyRecord,
    KeySummary,
    DecryptedKeyEntry,
)
from .registry import CredentialRegistry
from .records import KeyRecordStore
from .session import VaultSession, VaultState

__all__ = [
    "PRF_SALT",
    "HKDF_INFO",
    "PBKDF2_ITERATIONS",
    "SymmetricKey",
    "SealedKey",
    "derive_from_prf",
    "derive_from_password",
    "encrypt_private_key",
    "decrypt_private_key",
    "generate_salt",
    "CredentialMethod",
    "PRFCredential",
    "PasswordCredential",
    "KeyRecord",
    "KeySummary",
    "DecryptedKeyEntry",
    "CredentialRegistry",
    "KeyRecordStore",
    "VaultSession",
    "VaultState",
]
