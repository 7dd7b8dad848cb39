"""
VaultSession — Lock/unlock state machine over the encrypted key vault.

States:
- ``NO_WALLET``: no credential descriptor exists.
- ``LOCKED``: a descriptor exists; no key and no plaintext are held.
- ``UNLOCKED``: the vault key is held and every stored key is decrypted.

Transitions::

    NO_WALLET --setup_with_biometric/setup_with_password--> UNLOCKED
    NO_WALLET --initialize (descriptor found)--> LOCKED
    LOCKED --unlock--> UNLOCKED
    UNLOCKED --lock--> LOCKED

Public API:
- ``initialize()`` — load the descriptor and stored-key count
- ``setup_with_biometric()`` / ``setup_with_password(password, confirmation)``
- ``unlock(password=None)`` / ``lock()``
- ``import_key(label, private_key)`` / ``generate_key(label=None)``
- ``rename_key(key_id, label)`` / ``switch_active_key(index)``

Mutating operations are serialized through one ``asyncio.Lock``, so the
positional index of each decrypted entry stays in step with the id storage
assigned to its record.

Security Note:
    Never log passwords, PRF output, plaintext keys or ciphertext. Only log
    ids, labels, addresses, counts and the credential method.
"""
import os
import asyncio
import logging
from enum import Enum
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..conf import VaultConfig
from ..exceptions import (
    CapabilityUnavailable,
    DecryptionError,
    KeyIndexError,
    NotFoundError,
    ValidationError,
    VaultStateError,
)
from ..authenticator import Authenticator
from ..keys import EthAccountKeyMaterial, KeyMaterial, normalize_private_key
from ..storage import VaultStorage, open_storage
from .crypto import (
    PRF_SALT,
    SymmetricKey,
    decrypt_private_key,
    derive_from_password,
    derive_from_prf,
    encrypt_private_key,
    generate_salt,
)
from .models import (
    CredentialMethod,
    DecryptedKeyEntry,
    KeyRecord,
    KeySummary,
    PasswordCredential,
    PRFCredential,
)
from .records import KeyRecordStore
from .registry import CredentialRegistry

logger = logging.getLogger("wallet.vault")

_CHALLENGE_SIZE = 32
_USER_ID_SIZE = 32


class VaultState(str, Enum):
    NO_WALLET = "none"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class VaultSession:
    """Owns the vault key and the decrypted key list of one running instance.

    Instances sharing a storage backend do not see each other's in-memory
    state: a key added through one session appears in another only after
    that one unlocks again.
    """

    def __init__(
        self,
        storage: VaultStorage,
        authenticator: Optional[Authenticator] = None,
        key_material: Optional[KeyMaterial] = None,
        config: Optional[VaultConfig] = None,
    ):
        self._config = config or VaultConfig()
        self._credentials = CredentialRegistry(storage)
        self._records = KeyRecordStore(storage)
        self._authenticator = authenticator
        self._key_material = key_material or EthAccountKeyMaterial()
        self._state = VaultState.NO_WALLET
        self._method: Optional[CredentialMethod] = None
        self._key: Optional[SymmetricKey] = None
        self._entries: list[DecryptedKeyEntry] = []
        self._active_index = 0
        self._stored_count = 0
        self._ops = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f"<VaultSession state={self._state.value} "
            f"method={self._method.value if self._method else None} "
            f"keys={self.stored_key_count}>"
        )

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def stored_key_count(self) -> int:
        if self._state is VaultState.UNLOCKED:
            return len(self._entries)
        return self._stored_count

    @property
    def credential_method(self) -> Optional[CredentialMethod]:
        return self._method

    @property
    def active_key_index(self) -> int:
        return self._active_index

    @property
    def active_key_address(self) -> Optional[str]:
        entry = self._active_entry()
        return entry.address if entry else None

    @property
    def accounts(self) -> tuple[KeySummary, ...]:
        """Id, label and address of every unlocked key, in insertion order."""
        return tuple(entry.summary() for entry in self._entries)

    def export_active_key(self) -> str:
        """Return the plaintext private key of the active entry.

        Raises:
            VaultStateError: If the vault is not unlocked or holds no keys.
        """
        self._require_unlocked()
        entry = self._active_entry()
        if entry is None:
            raise VaultStateError("The wallet has no keys yet.")
        return entry.private_key

    def _active_entry(self) -> Optional[DecryptedKeyEntry]:
        if self._state is not VaultState.UNLOCKED or not self._entries:
            return None
        return self._entries[self._active_index]

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _require_unlocked(self) -> None:
        if self._state is not VaultState.UNLOCKED:
            raise VaultStateError("Wallet is not unlocked. Please unlock first.")

    async def _require_no_wallet(self) -> None:
        """Refuse setup when a credential already exists.

        Storage is checked as well as the in-memory state, so a session that
        was never initialized cannot overwrite an existing descriptor and
        orphan the records encrypted under it.
        """
        if self._state is not VaultState.NO_WALLET:
            raise VaultStateError("A wallet is already set up.")
        if await self._credentials.get() is not None:
            raise VaultStateError("A wallet is already set up.")

    def _discard_secrets(self) -> None:
        for entry in self._entries:
            entry.wipe()
        self._entries = []
        self._key = None
        self._active_index = 0

    def _enter_unlocked(
        self,
        key: SymmetricKey,
        entries: list[DecryptedKeyEntry],
        method: CredentialMethod,
    ) -> None:
        self._key = key
        self._entries = entries
        self._active_index = 0
        self._method = method
        self._stored_count = len(entries)
        self._state = VaultState.UNLOCKED

    def _authenticator_or_raise(self) -> Authenticator:
        authenticator = self._authenticator
        if authenticator is None or not authenticator.available:
            raise CapabilityUnavailable(
                "No platform authenticator is available. Use password setup instead."
            )
        return authenticator

    def _validate_new_password(self, password: str, confirmation: Optional[str]) -> None:
        if not password:
            raise ValidationError("Please enter a password.")
        minimum = self._config.min_password_length
        if len(password) < minimum:
            raise ValidationError(
                f"Password must be at least {minimum} characters."
            )
        if confirmation is not None and password != confirmation:
            raise ValidationError("Passwords do not match.")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> VaultState:
        """Load the credential descriptor and the stored-key count.

        Nothing is decrypted: the session ends up ``LOCKED`` when a
        descriptor exists and ``NO_WALLET`` otherwise. Any secrets held from
        a previous unlock are wiped first.
        """
        async with self._ops:
            self._discard_secrets()
            credential = await self._credentials.get()
            if credential is None:
                self._method = None
                self._stored_count = 0
                self._state = VaultState.NO_WALLET
            else:
                self._method = CredentialMethod(credential.method)
                self._stored_count = await self._records.count()
                self._state = VaultState.LOCKED
            logger.info(
                "Vault initialized: state=%s method=%s keys=%d",
                self._state.value,
                self._method.value if self._method else None,
                self._stored_count,
            )
            return self._state

    async def setup_with_biometric(self) -> None:
        """Create an authenticator credential and unlock a new, empty vault.

        PRF support is confirmed with an assertion before anything is
        persisted.

        Raises:
            VaultStateError: A wallet already exists.
            CapabilityUnavailable: No authenticator, or no PRF result; the
                caller may fall back to ``setup_with_password``.
            UserCancelled: The prompt was dismissed or timed out.
        """
        async with self._ops:
            await self._require_no_wallet()
            authenticator = self._authenticator_or_raise()
            cfg = self._config
            registered = await authenticator.create_credential(
                rp_id=cfg.rp_id,
                rp_name=cfg.rp_name,
                user_id=os.urandom(_USER_ID_SIZE),
                user_name=cfg.user_name,
                display_name=cfg.user_display_name,
                challenge=os.urandom(_CHALLENGE_SIZE),
            )
            assertion = await authenticator.get_assertion(
                rp_id=cfg.rp_id,
                credential_id=registered.credential_id,
                transports=registered.transports,
                challenge=os.urandom(_CHALLENGE_SIZE),
                prf_salt=PRF_SALT,
            )
            if not assertion.prf_first:
                logger.warning("Biometric setup aborted: authenticator returned no PRF result")
                raise CapabilityUnavailable(
                    "Your authenticator does not support PRF encryption. "
                    "Use password setup instead."
                )
            key = derive_from_prf(assertion.prf_first)
            await self._credentials.save(
                PRFCredential(
                    credential_id=registered.credential_id,
                    rp_id=cfg.rp_id,
                    transports=list(registered.transports),
                )
            )
            self._enter_unlocked(key, [], CredentialMethod.PRF)
            logger.info("Vault set up with authenticator credential (rp_id=%s)", cfg.rp_id)

    async def setup_with_password(
        self,
        password: str,
        confirmation: Optional[str] = None,
    ) -> None:
        """Create a password credential and unlock a new, empty vault.

        Args:
            password: New vault password (at least 8 characters).
            confirmation: Optional repeated entry; must match ``password``.

        Raises:
            ValidationError: Password empty, too short or not confirmed.
            VaultStateError: A wallet already exists.
        """
        self._validate_new_password(password, confirmation)
        async with self._ops:
            await self._require_no_wallet()
            salt = generate_salt()
            key = await asyncio.to_thread(derive_from_password, password, salt)
            await self._credentials.save(PasswordCredential(salt=salt))
            self._enter_unlocked(key, [], CredentialMethod.PASSWORD)
            logger.info("Vault set up with password credential")

    async def unlock(self, password: Optional[str] = None) -> None:
        """Re-derive the vault key and decrypt every stored key.

        The attempt is all-or-nothing: if any record fails to decrypt, the
        derived key and every entry decrypted so far are discarded and the
        session stays ``LOCKED``.

        Args:
            password: Required for password credentials, ignored otherwise.

        Raises:
            VaultStateError: No wallet, or already unlocked.
            NotFoundError: The credential descriptor disappeared from storage.
            ValidationError: Password credential and no password given.
            DecryptionError: Wrong password or corrupted record.
            CapabilityUnavailable / UserCancelled: Authenticator failures.
        """
        async with self._ops:
            if self._state is VaultState.NO_WALLET:
                raise VaultStateError("No wallet has been set up.")
            if self._state is VaultState.UNLOCKED:
                raise VaultStateError("Wallet is already unlocked.")
            credential = await self._credentials.get()
            if credential is None:
                raise NotFoundError("No credential found.")
            if isinstance(credential, PRFCredential):
                key = await self._derive_from_assertion(credential)
            else:
                key = await self._derive_from_password(credential, password)
            entries = await self._decrypt_all(key)
            self._enter_unlocked(key, entries, CredentialMethod(credential.method))
            logger.info(
                "Vault unlocked: method=%s keys=%d", credential.method, len(entries),
            )

    async def _derive_from_assertion(self, credential: PRFCredential) -> SymmetricKey:
        authenticator = self._authenticator_or_raise()
        assertion = await authenticator.get_assertion(
            rp_id=credential.rp_id,
            credential_id=credential.credential_id,
            transports=tuple(credential.transports),
            challenge=os.urandom(_CHALLENGE_SIZE),
            prf_salt=PRF_SALT,
        )
        if not assertion.prf_first:
            logger.warning("Unlock failed: authenticator returned no PRF result")
            raise CapabilityUnavailable("PRF evaluation failed.")
        return derive_from_prf(assertion.prf_first)

    async def _derive_from_password(
        self,
        credential: PasswordCredential,
        password: Optional[str],
    ) -> SymmetricKey:
        if not password:
            raise ValidationError("Please enter your password.")
        return await asyncio.to_thread(derive_from_password, password, credential.salt)

    async def _decrypt_all(self, key: SymmetricKey) -> list[DecryptedKeyEntry]:
        """Decrypt every stored record, in insertion order, or none at all."""
        records = await self._records.records()
        entries: list[DecryptedKeyEntry] = []
        for record in records:
            try:
                plaintext = decrypt_private_key(record.ciphertext, record.iv, key)
            except DecryptionError:
                for entry in entries:
                    entry.wipe()
                logger.warning(
                    "Unlock failed: key record id=%s could not be decrypted", record.id,
                )
                raise
            entries.append(
                DecryptedKeyEntry(record.id, record.label, record.address, plaintext)
            )
        return entries

    async def lock(self) -> None:
        """Wipe every decrypted key, drop the vault key and return to ``LOCKED``.

        Locking a session that is not unlocked does nothing.
        """
        async with self._ops:
            if self._state is not VaultState.UNLOCKED:
                logger.debug("Lock ignored: vault is %s", self._state.value)
                return
            count = len(self._entries)
            self._discard_secrets()
            self._stored_count = count
            self._state = VaultState.LOCKED
            logger.info("Vault locked")

    async def close(self) -> None:
        """Session teardown: wipe secrets without touching storage."""
        async with self._ops:
            count = self.stored_key_count
            self._discard_secrets()
            self._stored_count = count
            if self._state is VaultState.UNLOCKED:
                self._state = VaultState.LOCKED

    # ------------------------------------------------------------------
    # Key management
    # ------------------------------------------------------------------

    async def import_key(self, label: Optional[str], private_key: str) -> KeySummary:
        """Encrypt and store an existing private key, making it active.

        Args:
            label: Display label; blank means ``"Key N"``.
            private_key: 64 hex characters, ``0x`` prefix optional.

        Raises:
            VaultStateError: Vault not unlocked.
            ValidationError: Malformed private key.
            StorageError: The record could not be committed; nothing changes.
        """
        async with self._ops:
            self._require_unlocked()
            normalized = normalize_private_key(private_key)
            address = self._key_material.address_for(normalized)
            return await self._add_entry(label, address, normalized)

    async def generate_key(self, label: Optional[str] = None) -> KeySummary:
        """Create, encrypt and store a new random private key, making it active.

        Raises:
            VaultStateError: Vault not unlocked.
            StorageError: The record could not be committed; nothing changes.
        """
        async with self._ops:
            self._require_unlocked()
            private_key = self._key_material.generate()
            address = self._key_material.address_for(private_key)
            return await self._add_entry(label, address, private_key)

    async def _add_entry(
        self,
        label: Optional[str],
        address: str,
        private_key: str,
    ) -> KeySummary:
        label = (label or "").strip() or f"Key {self.stored_key_count + 1}"
        sealed = encrypt_private_key(private_key, self._key)
        try:
            record = KeyRecord(
                label=label,
                address=address,
                ciphertext=sealed.ciphertext,
                iv=sealed.iv,
            )
        except PydanticValidationError:
            raise ValidationError(
                "Key material returned an invalid address."
            ) from None
        # the entry is appended only once the record is committed
        record_id = await self._records.add(record)
        entry = DecryptedKeyEntry(record_id, label, address, private_key)
        self._entries.append(entry)
        self._active_index = len(self._entries) - 1
        self._stored_count = len(self._entries)
        logger.info("Key added: id=%s label=%s address=%s", record_id, label, address)
        return entry.summary()

    async def rename_key(self, key_id: int, label: str) -> KeySummary:
        """Change the label of a stored key.

        Works while locked too: only the persisted label needs changing
        then, since no decrypted entry is held.

        Raises:
            ValidationError: Label is empty.
            NotFoundError: No record with ``key_id``.
        """
        label = (label or "").strip()
        if not label:
            raise ValidationError("Label cannot be empty.")
        async with self._ops:
            record = await self._records.update_label(key_id, label)
            for entry in self._entries:
                if entry.id == key_id:
                    entry.label = label
            logger.info("Key renamed: id=%s label=%s", key_id, label)
            return KeySummary(record.id, record.label, record.address)

    async def switch_active_key(self, index: int) -> KeySummary:
        """Select the decrypted entry at ``index`` as the active key.

        Raises:
            VaultStateError: Vault not unlocked.
            KeyIndexError: ``index`` outside the decrypted list.
        """
        async with self._ops:
            self._require_unlocked()
            if not 0 <= index < len(self._entries):
                raise KeyIndexError(
                    f"Key index {index} out of range (0..{len(self._entries) - 1})"
                )
            self._active_index = index
            return self._entries[index].summary()

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    async def from_config(
        cls,
        config: Optional[VaultConfig] = None,
        authenticator: Optional[Authenticator] = None,
        key_material: Optional[KeyMaterial] = None,
    ) -> "VaultSession":
        """Build a session on the configured storage and initialize it.

        Args:
            config: Vault configuration; loaded from the environment if None.
            authenticator: Platform authenticator, if the host has one.
            key_material: Address/key capability; eth-account by default.

        Returns:
            Initialized VaultSession (``NO_WALLET`` or ``LOCKED``).
        """
        config = config or VaultConfig.from_env()
        session = cls(
            open_storage(config),
            authenticator=authenticator,
            key_material=key_material,
            config=config,
        )
        await session.initialize()
        return session
