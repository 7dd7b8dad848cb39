"""
Platform Authenticator — Boundary for credential creation and PRF assertions.

The vault never talks to a concrete authenticator API. Hosts supply an
``Authenticator`` implementation bridging to their platform (WebAuthn,
a hardware token, an OS keychain with hmac-secret, ...).

Implementations must report outcomes through the vault exception types:
- ``CapabilityUnavailable`` when no authenticator can be reached.
- ``UserCancelled`` when the user dismisses the prompt or it times out.
"""
from abc import ABC, abstractmethod
from typing import NamedTuple, Optional, Sequence


class RegisteredCredential(NamedTuple):
    """Result of a credential-creation ceremony."""
    credential_id: bytes
    transports: tuple[str, ...] = ()


class Assertion(NamedTuple):
    """Result of an assertion ceremony.

    ``prf_first`` is None when the authenticator returned no PRF result.
    """
    credential_id: bytes
    prf_first: Optional[bytes] = None


class Authenticator(ABC):
    """Abstract platform authenticator with PRF-extension support."""

    @property
    def available(self) -> bool:
        """Whether an authenticator can be used at all."""
        return True

    @abstractmethod
    async def create_credential(
        self,
        *,
        rp_id: str,
        rp_name: str,
        user_id: bytes,
        user_name: str,
        display_name: str,
        challenge: bytes,
    ) -> RegisteredCredential:
        """Create a new resident credential, requesting the PRF extension.

        Raises:
            CapabilityUnavailable: No authenticator present.
            UserCancelled: Prompt dismissed or timed out.
        """

    @abstractmethod
    async def get_assertion(
        self,
        *,
        rp_id: str,
        credential_id: bytes,
        transports: Sequence[str],
        challenge: bytes,
        prf_salt: bytes,
    ) -> Assertion:
        """Assert with ``credential_id``, evaluating PRF with ``prf_salt``.

        Raises:
            CapabilityUnavailable: No authenticator present.
            UserCancelled: Prompt dismissed or timed out.
        """
