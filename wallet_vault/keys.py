"""
Key Material — Address derivation and private-key generation.

The vault treats this as an external capability: it only stores what the
capability produces. The default implementation uses ``eth-account``.
"""
import re
from abc import ABC, abstractmethod

from eth_account import Account

from .exceptions import ValidationError

_PRIVATE_KEY_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


def normalize_private_key(raw: str) -> str:
    """Return ``raw`` as a 0x-prefixed 64-hex-character private key.

    Raises:
        ValidationError: If the input is empty or not 32 bytes of hex.
    """
    key = (raw or "").strip()
    if not key:
        raise ValidationError("Please enter a private key.")
    if not key.startswith("0x"):
        key = "0x" + key
    if not _PRIVATE_KEY_PATTERN.match(key):
        raise ValidationError("Invalid key format. Expected 64 hex characters.")
    return key


class KeyMaterial(ABC):
    """Derives addresses from private keys and creates new keys."""

    @abstractmethod
    def address_for(self, private_key: str) -> str:
        """Return the 0x-prefixed address controlled by ``private_key``."""

    @abstractmethod
    def generate(self) -> str:
        """Return a fresh random 0x-prefixed private key."""


class EthAccountKeyMaterial(KeyMaterial):
    """EVM key material backed by eth-account (EIP-55 addresses)."""

    def address_for(self, private_key: str) -> str:
        try:
            return Account.from_key(private_key).address
        except Exception:
            # eth-keys raises its own ValidationError for scalars outside the
            # curve order; messages may echo the key, so nothing is chained
            raise ValidationError(
                "Invalid private key: not a valid secp256k1 scalar."
            ) from None

    def generate(self) -> str:
        account = Account.create()
        return "0x" + bytes(account.key).hex()
