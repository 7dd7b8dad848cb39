"""
Tests for key derivation and private-key encryption.

Tests cover:
- Fixed derivation constants
- PRF (HKDF) and password (PBKDF2) derivation determinism
- AES-GCM round-trip, fresh IVs and tamper detection
- Wrong-key rejection
"""
import os
import pickle

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from wallet_vault.exceptions import DecryptionError, ValidationError
from wallet_vault.vault.crypto import (
    HKDF_INFO,
    NONCE_SIZE,
    PBKDF2_ITERATIONS,
    PRF_SALT,
    SALT_SIZE,
    TAG_SIZE,
    SymmetricKey,
    decrypt_private_key,
    derive_from_password,
    derive_from_prf,
    encrypt_private_key,
    generate_salt,
)

PRIVATE_KEY = "0x" + "11" * 32


@pytest.fixture
def prf_output():
    return os.urandom(32)


@pytest.fixture
def key(prf_output):
    return derive_from_prf(prf_output)


# --- Constants ---

class TestConstants:
    """The derivation constants are part of the stored data format."""

    def test_prf_salt(self):
        assert PRF_SALT == b"wallet-encryption-v1"

    def test_hkdf_info(self):
        assert HKDF_INFO == b"AES-GCM Wallet Encryption Key V1"

    def test_pbkdf2_iterations(self):
        assert PBKDF2_ITERATIONS == 600_000

    def test_generated_salt(self):
        salt = generate_salt()
        assert len(salt) == SALT_SIZE
        assert salt != generate_salt()


# --- PRF Derivation ---

class TestDeriveFromPRF:
    """Tests for HKDF derivation from PRF output."""

    def test_same_output_decrypts(self, prf_output):
        """A key re-derived from the same PRF output opens earlier data."""
        sealed = encrypt_private_key(PRIVATE_KEY, derive_from_prf(prf_output))
        again = derive_from_prf(prf_output)
        assert decrypt_private_key(sealed.ciphertext, sealed.iv, again) == PRIVATE_KEY

    def test_different_output_rejected(self, key):
        sealed = encrypt_private_key(PRIVATE_KEY, key)
        other = derive_from_prf(os.urandom(32))
        with pytest.raises(DecryptionError):
            decrypt_private_key(sealed.ciphertext, sealed.iv, other)

    def test_matches_hkdf_parameters(self, prf_output):
        """Records must stay readable by any HKDF-SHA256 implementation."""
        raw = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"wallet-encryption-v1",
            info=b"AES-GCM Wallet Encryption Key V1",
        ).derive(prf_output)
        sealed = encrypt_private_key(PRIVATE_KEY, derive_from_prf(prf_output))
        assert AESGCM(raw).decrypt(sealed.iv, sealed.ciphertext, None) == PRIVATE_KEY.encode()

    def test_empty_output_rejected(self):
        with pytest.raises(ValidationError):
            derive_from_prf(b"")


# --- Password Derivation ---

class TestDeriveFromPassword:
    """Tests for PBKDF2 derivation from a password."""

    def test_independent_derivations_interchangeable(self):
        salt = generate_salt()
        sealed = encrypt_private_key(PRIVATE_KEY, derive_from_password("hunter2hunter2", salt))
        again = derive_from_password("hunter2hunter2", salt)
        assert decrypt_private_key(sealed.ciphertext, sealed.iv, again) == PRIVATE_KEY

    def test_wrong_password_rejected(self):
        salt = generate_salt()
        sealed = encrypt_private_key(PRIVATE_KEY, derive_from_password("password-one", salt))
        wrong = derive_from_password("password-two", salt)
        with pytest.raises(DecryptionError):
            decrypt_private_key(sealed.ciphertext, sealed.iv, wrong)

    def test_matches_pbkdf2_parameters(self):
        salt = generate_salt()
        raw = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=600_000,
        ).derive(b"correcthorse1")
        sealed = encrypt_private_key(PRIVATE_KEY, derive_from_password("correcthorse1", salt))
        assert AESGCM(raw).decrypt(sealed.iv, sealed.ciphertext, None) == PRIVATE_KEY.encode()

    def test_bad_salt_size(self):
        with pytest.raises(ValidationError):
            derive_from_password("correcthorse1", b"short")


# --- Symmetric Key ---

class TestSymmetricKey:
    """The vault key is opaque."""

    def test_repr_hides_material(self, key):
        assert "non-extractable" in repr(key)

    def test_not_picklable(self, key):
        with pytest.raises(TypeError):
            pickle.dumps(key)

    def test_no_raw_attribute(self, key):
        assert not hasattr(key, "__dict__")

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            SymmetricKey(b"x" * 16)


# --- Encryption ---

class TestCipher:
    """Tests for AES-GCM sealing of private keys."""

    @pytest.mark.parametrize("plaintext", [
        PRIVATE_KEY,
        "0x" + "ab" * 32,
        "0x" + "FF" * 32,
        "",
    ])
    def test_round_trip(self, key, plaintext):
        sealed = encrypt_private_key(plaintext, key)
        assert decrypt_private_key(sealed.ciphertext, sealed.iv, key) == plaintext

    def test_sizes(self, key):
        sealed = encrypt_private_key(PRIVATE_KEY, key)
        assert len(sealed.iv) == NONCE_SIZE
        assert len(sealed.ciphertext) == len(PRIVATE_KEY) + TAG_SIZE

    def test_fresh_iv_per_call(self, key):
        first = encrypt_private_key(PRIVATE_KEY, key)
        second = encrypt_private_key(PRIVATE_KEY, key)
        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_tampered_ciphertext(self, key):
        sealed = encrypt_private_key(PRIVATE_KEY, key)
        tampered = bytearray(sealed.ciphertext)
        tampered[0] ^= 0x01
        with pytest.raises(DecryptionError):
            decrypt_private_key(bytes(tampered), sealed.iv, key)

    def test_tampered_iv(self, key):
        sealed = encrypt_private_key(PRIVATE_KEY, key)
        iv = bytes([sealed.iv[0] ^ 0x01]) + sealed.iv[1:]
        with pytest.raises(DecryptionError):
            decrypt_private_key(sealed.ciphertext, iv, key)

    def test_malformed_record(self, key):
        with pytest.raises(DecryptionError):
            decrypt_private_key(b"short", b"\x00" * NONCE_SIZE, key)
        with pytest.raises(DecryptionError):
            decrypt_private_key(b"\x00" * 64, b"\x00" * 8, key)

    def test_error_does_not_leak_plaintext(self, key):
        sealed = encrypt_private_key(PRIVATE_KEY, key)
        other = derive_from_prf(os.urandom(32))
        with pytest.raises(DecryptionError) as exc:
            decrypt_private_key(sealed.ciphertext, sealed.iv, other)
        assert PRIVATE_KEY not in str(exc.value)
