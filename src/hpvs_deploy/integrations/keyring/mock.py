"""
hpvs_deploy.integrations.keyring.mock - Mock Keyring
======================================================

An in-memory keyring for tests and dry runs. It is NOT cryptography: the
"ciphertext" is a base64 envelope that names its recipient and signer. It
does enforce the same rules a real keyring would, so pipeline tests can
observe them:

    - encryption needs the recipient's public key to be imported
    - signing needs the signer's secret key and its passphrase
    - decryption needs the recipient's secret key

Mock Key Files:
    The first non-empty line of a key file is its user ID, e.g.

        acme-vendor <vendor@acme.example>

    The fingerprint is the SHA-1 of that user ID, so the public and private
    files of one key pair share a fingerprint, as real key pairs do.
"""

from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path
from typing import Optional

import structlog
from pydantic import SecretStr

from hpvs_deploy.core.exceptions import CryptoError
from hpvs_deploy.integrations.keyring.base import KeyInfo, Keyring


logger = structlog.get_logger()

_ARMOR_HEADER = "-----BEGIN MOCK PGP MESSAGE-----"
_ARMOR_FOOTER = "-----END MOCK PGP MESSAGE-----"


class MockKeyring(Keyring):
    """Rule-enforcing fake keyring.

    Attributes:
        _public: fingerprint -> KeyInfo of imported public keys.
        _secret: fingerprint -> passphrase of imported secret keys.
        _call_history: Operation names in call order.
        _failures: Operations that raise CryptoError when called.
    """

    def __init__(self) -> None:
        self._public: dict[str, KeyInfo] = {}
        self._secret: dict[str, str] = {}
        self._call_history: list[str] = []
        self._failures: set[str] = set()
        self._logger = logger.bind(component="mock_keyring")

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_history(self) -> list[str]:
        return list(self._call_history)

    def fail(self, operation: str) -> None:
        """Make `operation` (e.g. "encrypt_and_sign") raise CryptoError."""
        self._failures.add(operation)

    def has_secret_key(self, fingerprint: str) -> bool:
        return fingerprint in self._secret

    # =========================================================================
    # Keyring implementation
    # =========================================================================

    async def inspect_key(self, key_file: Path) -> KeyInfo:
        self._enter("inspect_key")
        return self._read_key(key_file)

    async def import_public_key(self, key_file: Path) -> KeyInfo:
        self._enter("import_public_key")
        info = self._read_key(key_file)
        self._public[info.fingerprint] = info
        return info

    async def import_private_key(self, key_file: Path, passphrase: SecretStr) -> KeyInfo:
        self._enter("import_private_key")
        info = self._read_key(key_file)
        self._public.setdefault(info.fingerprint, info)
        self._secret[info.fingerprint] = passphrase.get_secret_value()
        return info

    async def encrypt_and_sign(
        self,
        source: Path,
        destination: Path,
        *,
        recipient: str,
        signer: str,
        passphrase: SecretStr,
    ) -> None:
        self._enter("encrypt_and_sign")

        recipient_key = self._find(recipient)
        if recipient_key is None:
            raise CryptoError(
                message=f"No public key for recipient '{recipient}'",
                error_code="ENCRYPT_SIGN_FAILED",
            )
        signer_key = self._find(signer)
        if signer_key is None or signer_key.fingerprint not in self._secret:
            raise CryptoError(
                message=f"No secret key for signer '{signer}'",
                error_code="ENCRYPT_SIGN_FAILED",
            )
        if self._secret[signer_key.fingerprint] != passphrase.get_secret_value():
            raise CryptoError(
                message=f"Bad passphrase for signer '{signer}'",
                error_code="ENCRYPT_SIGN_FAILED",
            )

        plaintext = source.read_bytes()
        envelope = {
            "recipient": recipient_key.fingerprint,
            "signer": signer_key.fingerprint,
            "signature": hashlib.sha256(signer_key.fingerprint.encode() + plaintext).hexdigest(),
            "payload": base64.b64encode(plaintext).decode(),
        }
        body = base64.b64encode(json.dumps(envelope).encode()).decode()
        destination.write_text(f"{_ARMOR_HEADER}\n{body}\n{_ARMOR_FOOTER}\n")

    async def decrypt(self, source: Path, passphrase: SecretStr) -> bytes:
        self._enter("decrypt")
        lines = [
            line for line in source.read_text().splitlines()
            if line and line not in (_ARMOR_HEADER, _ARMOR_FOOTER)
        ]
        try:
            envelope = json.loads(base64.b64decode("".join(lines)))
        except ValueError as e:
            raise CryptoError(message=f"'{source}' is not a mock PGP message", error_code="DECRYPT_FAILED") from e

        recipient = envelope["recipient"]
        if self._secret.get(recipient) != passphrase.get_secret_value():
            raise CryptoError(
                message=f"No usable secret key for '{recipient}'",
                error_code="DECRYPT_FAILED",
            )

        plaintext = base64.b64decode(envelope["payload"])
        expected = hashlib.sha256(envelope["signer"].encode() + plaintext).hexdigest()
        if envelope["signature"] != expected:
            raise CryptoError(message="Bad signature", error_code="BAD_SIGNATURE")
        return plaintext

    # =========================================================================
    # Helpers
    # =========================================================================

    def _enter(self, operation: str) -> None:
        self._call_history.append(operation)
        if operation in self._failures:
            raise CryptoError(
                message=f"Mock keyring failure in {operation}",
                error_code="MOCK_KEYRING_FAILURE",
            )

    def _find(self, identity: str) -> Optional[KeyInfo]:
        for info in self._public.values():
            if info.fingerprint == identity.upper() or identity in info.uid:
                return info
        return None

    @staticmethod
    def _read_key(key_file: Path) -> KeyInfo:
        try:
            content = key_file.read_bytes()
        except OSError as e:
            raise CryptoError(
                message=f"Unable to read key file '{key_file}': {e}",
                error_code="KEY_IMPORT_FAILED",
                details={"key_file": str(key_file)},
            ) from e

        lines = [line.strip() for line in content.decode(errors="replace").splitlines() if line.strip()]
        uid = lines[0] if lines else key_file.stem
        return KeyInfo(fingerprint=hashlib.sha1(uid.encode()).hexdigest().upper(), uid=uid)
