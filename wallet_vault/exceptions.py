"""
Vault Exceptions — Error taxonomy shared by every vault component.

Every error carries a ``message`` suitable for display. Messages must never
contain passwords, PRF output or private-key material.
"""


class VaultError(Exception):
    """Base class for all vault errors."""

    def __init__(self, message: str | None = None, *args):
        self.message = message or self.__doc__
        super().__init__(self.message, *args)

    def __str__(self) -> str:
        return self.message


class AuthenticatorError(VaultError):
    """The platform authenticator did not produce a usable result."""


class CapabilityUnavailable(AuthenticatorError):
    """No platform authenticator is available, or it does not support PRF."""


class UserCancelled(AuthenticatorError):
    """Authenticator prompt was cancelled or timed out."""


class ValidationError(VaultError, ValueError):
    """Invalid input."""


class DecryptionError(VaultError):
    """Decryption failed: wrong password or corrupted record."""


class StorageError(VaultError):
    """Persistent storage failure."""


class NotFoundError(VaultError, LookupError):
    """Requested record does not exist."""


class VaultStateError(VaultError):
    """Operation is not valid in the current vault state."""


class KeyIndexError(VaultError, IndexError):
    """Key index out of range."""
