"""Shared fixtures for the wallet vault tests."""
import os
import hmac
import hashlib

import pytest
import pytest_asyncio

from wallet_vault import (
    Assertion,
    Authenticator,
    CapabilityUnavailable,
    MemoryStorage,
    RegisteredCredential,
    UserCancelled,
    VaultSession,
)

PASSWORD = "correcthorse1"


class FakeAuthenticator(Authenticator):
    """Deterministic authenticator: PRF = HMAC-SHA256(credential secret, salt)."""

    def __init__(self, prf_supported: bool = True, available: bool = True):
        self.prf_supported = prf_supported
        self._available = available
        self._secrets: dict[bytes, bytes] = {}
        self.cancel_next = False
        self.assertions: list[dict] = []

    @property
    def available(self) -> bool:
        return self._available

    def _maybe_cancel(self) -> None:
        if self.cancel_next:
            self.cancel_next = False
            raise UserCancelled("Biometric prompt was cancelled or timed out.")

    async def create_credential(
        self, *, rp_id, rp_name, user_id, user_name, display_name, challenge
    ) -> RegisteredCredential:
        self._maybe_cancel()
        credential_id = os.urandom(16)
        self._secrets[credential_id] = os.urandom(32)
        return RegisteredCredential(credential_id, ("internal", "hybrid"))

    async def get_assertion(
        self, *, rp_id, credential_id, transports, challenge, prf_salt
    ) -> Assertion:
        self.assertions.append({
            "rp_id": rp_id,
            "credential_id": credential_id,
            "transports": tuple(transports),
            "prf_salt": prf_salt,
        })
        self._maybe_cancel()
        secret = self._secrets.get(credential_id)
        if secret is None:
            raise CapabilityUnavailable("Unknown credential")
        if not self.prf_supported:
            return Assertion(credential_id, None)
        prf = hmac.new(secret, prf_salt, hashlib.sha256).digest()
        return Assertion(credential_id, prf)


@pytest.fixture
def storage():
    """Fresh in-memory storage."""
    return MemoryStorage()


@pytest.fixture
def authenticator():
    """Authenticator with PRF support."""
    return FakeAuthenticator()


@pytest_asyncio.fixture
async def session(storage, authenticator):
    """Initialized session with no wallet."""
    vault = VaultSession(storage, authenticator=authenticator)
    await vault.initialize()
    return vault


@pytest_asyncio.fixture
async def unlocked(session):
    """Session set up with PASSWORD and unlocked."""
    await session.setup_with_password(PASSWORD, PASSWORD)
    return session
