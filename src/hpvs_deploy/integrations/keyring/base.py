"""
hpvs_deploy.integrations.keyring.base - Cryptographic Keyring Interface
=========================================================================

The operations the RegistrationBuilder needs to seal a registration
definition: import keys, encrypt for a recipient while signing with the
vendor key, and (for verification and tests) decrypt.

Unlike the container runtime, keyring implementations raise CryptoError
themselves: the caller cannot do anything with a failed import or
encryption except abort.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, SecretStr


class KeyInfo(BaseModel):
    """Identity of an OpenPGP key.

    Attributes:
        fingerprint: Full uppercase hex fingerprint.
        uid: Primary user ID ("Name <email>").
    """

    model_config = {"frozen": True}

    fingerprint: str
    uid: str = ""

    def matches_fingerprint(self, expected: str) -> bool:
        """Compare against a fingerprint written with or without spaces."""
        return self.fingerprint.upper() == expected.replace(" ", "").upper()


class Keyring(ABC):
    """Abstract OpenPGP keyring."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier ("gpg", "mock")."""

    @abstractmethod
    async def inspect_key(self, key_file: Path) -> KeyInfo:
        """Read the identity of the key in `key_file` without importing it."""

    @abstractmethod
    async def import_public_key(self, key_file: Path) -> KeyInfo:
        """Import a public key. Importing a key that is already present is a no-op."""

    @abstractmethod
    async def import_private_key(self, key_file: Path, passphrase: SecretStr) -> KeyInfo:
        """Import a secret key protected by `passphrase`. Idempotent."""

    @abstractmethod
    async def encrypt_and_sign(
        self,
        source: Path,
        destination: Path,
        *,
        recipient: str,
        signer: str,
        passphrase: SecretStr,
    ) -> None:
        """Encrypt `source` for `recipient`, signed by `signer`, into `destination`."""

    @abstractmethod
    async def decrypt(self, source: Path, passphrase: SecretStr) -> bytes:
        """Decrypt `source` with a secret key present in the keyring."""
