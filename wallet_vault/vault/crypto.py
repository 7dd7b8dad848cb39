"""
Vault Crypto Core — Key derivation and private-key encryption.

Two interchangeable ways to obtain the vault key:
- Authenticator: HKDF-SHA256(PRF output, salt=PRF_SALT, info=HKDF_INFO) → AES-256 key
- Password: PBKDF2-HMAC-SHA256(password, 32-byte salt, 600,000 iterations) → AES-256 key

Private keys are sealed with AES-256-GCM under a fresh 96-bit IV, no
associated data.

Security Note:
    PRF_SALT, HKDF_INFO and PBKDF2_ITERATIONS are part of the stored data
    format. Changing any of them makes every existing record undecryptable.
    Never log plaintext, key material, ciphertext or IVs.
"""
import os
import logging
from typing import NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptionError, ValidationError

logger = logging.getLogger("wallet.vault")

PRF_SALT = b"wallet-encryption-v1"
HKDF_INFO = b"AES-GCM Wallet Encryption Key V1"
PBKDF2_ITERATIONS = 600_000

KEY_LENGTH = 32  # AES-256
SALT_SIZE = 32
NONCE_SIZE = 12  # 96-bit IV
TAG_SIZE = 16


class SymmetricKey:
    """Opaque AES-256-GCM key.

    The raw key bytes are handed to the AEAD primitive at construction and
    not retained, so a derived key cannot be exported from this object.
    """

    __slots__ = ("_cipher",)

    def __init__(self, raw: bytes):
        if len(raw) != KEY_LENGTH:
            raise ValueError(f"AES-256 key must be {KEY_LENGTH} bytes")
        self._cipher = AESGCM(raw)

    def __repr__(self) -> str:
        return "<SymmetricKey AES-256-GCM (non-extractable)>"

    def __reduce__(self):
        raise TypeError("SymmetricKey cannot be serialized")


class SealedKey(NamedTuple):
    """Result of ``encrypt_private_key``."""
    ciphertext: bytes
    iv: bytes


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    """Return a random 32-byte PBKDF2 salt."""
    return os.urandom(SALT_SIZE)


def derive_from_prf(prf_output: bytes) -> SymmetricKey:
    """Derive the vault key from an authenticator PRF result.

    Args:
        prf_output: First PRF evaluation result for ``PRF_SALT``.

    Returns:
        Non-extractable AES-256-GCM key.

    Raises:
        ValidationError: If ``prf_output`` is empty.
    """
    if not prf_output:
        raise ValidationError("PRF output is empty")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=PRF_SALT,
        info=HKDF_INFO,
    )
    return SymmetricKey(hkdf.derive(bytes(prf_output)))


def derive_from_password(password: str, salt: bytes) -> SymmetricKey:
    """Derive the vault key from a password using PBKDF2-HMAC-SHA256.

    This is deliberately slow (600,000 iterations); callers on an event
    loop should run it in a worker thread.

    Args:
        password: User password.
        salt: 32-byte salt stored in the password credential.

    Returns:
        Non-extractable AES-256-GCM key.

    Raises:
        ValidationError: If the salt has the wrong size.
    """
    if len(salt) != SALT_SIZE:
        raise ValidationError(f"Password salt must be {SALT_SIZE} bytes")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=PBKDF2_ITERATIONS,
    )
    return SymmetricKey(kdf.derive(password.encode("utf-8")))


# ---------------------------------------------------------------------------
# Private-key encryption
# ---------------------------------------------------------------------------

def encrypt_private_key(plaintext: str, key: SymmetricKey) -> SealedKey:
    """Encrypt a private-key string with AES-GCM.

    Args:
        plaintext: 0x-prefixed hex private key.
        key: Vault key.

    Returns:
        SealedKey with the ciphertext (payload + 16-byte tag) and the IV.
    """
    iv = os.urandom(NONCE_SIZE)
    ct = key._cipher.encrypt(iv, plaintext.encode("utf-8"), None)
    return SealedKey(ciphertext=ct, iv=iv)


def decrypt_private_key(ciphertext: bytes, iv: bytes, key: SymmetricKey) -> str:
    """Decrypt a private-key string sealed by ``encrypt_private_key``.

    Raises:
        DecryptionError: On a wrong key or a tampered/corrupted record.
    """
    if len(iv) != NONCE_SIZE or len(ciphertext) < TAG_SIZE:
        raise DecryptionError("Encrypted key record is malformed")
    try:
        data = key._cipher.decrypt(bytes(iv), bytes(ciphertext), None)
    except InvalidTag as err:
        raise DecryptionError(
            "Unable to decrypt key: wrong password or corrupted record"
        ) from err
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecryptionError("Decrypted key is not valid text") from err
