"""
Vault Models — Persisted records and session-only decrypted entries.

The credential descriptor is a tagged union selected by ``method``; it is
never inferred from which fields happen to be present.
"""
import re
from enum import Enum
from typing import Annotated, Literal, NamedTuple, Union
from datetime import datetime, timezone

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import StorageError
from .crypto import NONCE_SIZE, SALT_SIZE

PRIMARY_CREDENTIAL_ID = "primary"

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialMethod(str, Enum):
    PRF = "prf"
    PASSWORD = "password"


class PRFCredential(BaseModel):
    """Authenticator credential whose PRF output derives the vault key."""

    id: Literal["primary"] = PRIMARY_CREDENTIAL_ID
    method: Literal["prf"] = "prf"
    credential_id: bytes
    rp_id: str
    transports: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("credential_id")
    @classmethod
    def validate_credential_id(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("credential_id cannot be empty")
        return v


class PasswordCredential(BaseModel):
    """Password credential; only the PBKDF2 salt is stored."""

    id: Literal["primary"] = PRIMARY_CREDENTIAL_ID
    method: Literal["password"] = "password"
    salt: bytes
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: bytes) -> bytes:
        if len(v) != SALT_SIZE:
            raise ValueError(f"salt must be exactly {SALT_SIZE} bytes")
        return v


Credential = Annotated[
    Union[PRFCredential, PasswordCredential],
    Field(discriminator="method"),
]

_credential_adapter = TypeAdapter(Credential)


def parse_credential(record: dict) -> Union[PRFCredential, PasswordCredential]:
    """Validate a stored credential record.

    Raises:
        StorageError: If the record is not a valid credential descriptor.
    """
    try:
        return _credential_adapter.validate_python(record)
    except PydanticValidationError as err:
        raise StorageError("Stored credential is corrupted") from err


class KeyRecord(BaseModel):
    """Encrypted private key as persisted in the ``keys`` partition."""

    id: int | None = None
    label: str = Field(min_length=1)
    address: str
    ciphertext: bytes
    iv: bytes
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not _ADDRESS_PATTERN.match(v):
            raise ValueError("address must be 0x followed by 40 hex characters")
        return v

    @field_validator("iv")
    @classmethod
    def validate_iv(cls, v: bytes) -> bytes:
        if len(v) != NONCE_SIZE:
            raise ValueError(f"iv must be exactly {NONCE_SIZE} bytes")
        return v

    @classmethod
    def from_storage(cls, record: dict) -> "KeyRecord":
        """Validate a stored key record.

        Raises:
            StorageError: If the record is corrupted.
        """
        try:
            return cls.model_validate(record)
        except PydanticValidationError as err:
            raise StorageError(
                f"Stored key record {record.get('id')!r} is corrupted"
            ) from err


class KeySummary(NamedTuple):
    """Public view of an unlocked key: no secret material."""
    id: int
    label: str
    address: str


class DecryptedKeyEntry:
    """A decrypted key, alive only while the vault is unlocked.

    The plaintext lives in a ``bytearray`` so ``wipe()`` can overwrite it in
    place instead of waiting for garbage collection.
    """

    __slots__ = ("id", "label", "address", "_secret")

    def __init__(self, id: int, label: str, address: str, private_key: str):
        self.id = id
        self.label = label
        self.address = address
        self._secret = bytearray(private_key.encode("utf-8"))

    @property
    def private_key(self) -> str:
        return self._secret.decode("utf-8")

    @property
    def wiped(self) -> bool:
        return not any(self._secret)

    def wipe(self) -> None:
        """Overwrite the plaintext with zeros and drop it."""
        for i in range(len(self._secret)):
            self._secret[i] = 0
        self._secret = bytearray()

    def summary(self) -> KeySummary:
        return KeySummary(self.id, self.label, self.address)

    def __repr__(self) -> str:
        return (
            f"<DecryptedKeyEntry id={self.id} label={self.label!r} "
            f"address={self.address}>"
        )
