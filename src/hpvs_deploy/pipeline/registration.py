"""
hpvs_deploy.pipeline.registration - Registration Definition Sealing
=====================================================================

Builds the registration definition that tells the Hyper Protect instance
where its image lives and how to pull it, then encrypts it for the
provisioning service and signs it with the vendor key.

Lifecycle of the file at the configured path:

    (old file) ──remove──→ (none) ──write──→ cleartext
        ──encrypt+sign into <path>.<run>.tmp──→ os.replace ──→ ciphertext

    Any failure or cancellation between "write" and "os.replace" removes
    both the cleartext and the temporary file, so the configured path never
    holds credentials after build_and_seal() returns or raises.

Recipient Key:
    The recipient public key comes from a fixed, operator-configured source
    (DeploySettings.registration), never from the deployment config. An
    optional pinned fingerprint is checked after import.
"""

from __future__ import annotations

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx
import structlog
from pydantic import SecretStr

from hpvs_deploy.core.config import DeploySettings, RegistrationKeyConfig
from hpvs_deploy.core.exceptions import ConfigurationError, CryptoError, TransientError
from hpvs_deploy.core.models import EncryptedRegistrationArtifact, RegistrationDocument
from hpvs_deploy.integrations.keyring.base import KeyInfo, Keyring


logger = structlog.get_logger()


# =============================================================================
# Recipient Key Sources
# =============================================================================
class RecipientKeySource(ABC):
    """Where the provisioning service's public encryption key comes from.

    Attributes:
        fingerprint: Pinned fingerprint the key must have, if any.
    """

    def __init__(self, fingerprint: Optional[str] = None) -> None:
        self.fingerprint = fingerprint

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable origin, for logs and error messages."""

    @abstractmethod
    async def fetch(self, directory: Path) -> Path:
        """Place the recipient public key in `directory` and return its path."""


class FileRecipientKeySource(RecipientKeySource):
    """Recipient key read from a local file."""

    def __init__(self, path: Path, fingerprint: Optional[str] = None) -> None:
        super().__init__(fingerprint)
        self._path = Path(path)

    @property
    def description(self) -> str:
        return str(self._path)

    async def fetch(self, directory: Path) -> Path:
        if not self._path.is_file():
            raise CryptoError(
                message=f"The recipient key file '{self._path}' does not exist",
                error_code="RECIPIENT_KEY_UNAVAILABLE",
                details={"source": self.description},
            )
        return self._path


class HTTPRecipientKeySource(RecipientKeySource):
    """Recipient key downloaded from a fixed HTTPS URL."""

    def __init__(self, url: str, fingerprint: Optional[str] = None, timeout: float = 30.0) -> None:
        super().__init__(fingerprint)
        self._url = url
        self._timeout = timeout

    @property
    def description(self) -> str:
        return self._url

    async def fetch(self, directory: Path) -> Path:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                response = await client.get(self._url)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransientError(
                message=f"Timed out fetching the recipient key from {self._url}",
                error_code="RECIPIENT_KEY_TIMEOUT",
                details={"source": self._url},
            ) from e
        except httpx.HTTPStatusError as e:
            raise CryptoError(
                message=(
                    f"Fetching the recipient key from {self._url} failed "
                    f"with HTTP {e.response.status_code}"
                ),
                error_code="RECIPIENT_KEY_UNAVAILABLE",
                details={"source": self._url, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise TransientError(
                message=f"Network error fetching the recipient key from {self._url}: {e}",
                error_code="RECIPIENT_KEY_UNREACHABLE",
                details={"source": self._url},
            ) from e

        if not response.content.strip():
            raise CryptoError(
                message=f"The recipient key at {self._url} is empty",
                error_code="RECIPIENT_KEY_UNAVAILABLE",
                details={"source": self._url},
            )

        destination = directory / "recipient.pub"
        destination.write_bytes(response.content)
        return destination


def create_recipient_key_source(settings: DeploySettings) -> RecipientKeySource:
    """Build the recipient key source from ``settings.registration``.

    Raises:
        ConfigurationError: If neither a key file nor a URL is configured.
    """
    registration: RegistrationKeyConfig = settings.registration
    if registration.recipient_key_file is not None:
        return FileRecipientKeySource(
            registration.recipient_key_file,
            fingerprint=registration.recipient_key_fingerprint,
        )
    if registration.recipient_key_url:
        return HTTPRecipientKeySource(
            registration.recipient_key_url,
            fingerprint=registration.recipient_key_fingerprint,
            timeout=settings.timeouts.key_fetch,
        )
    raise ConfigurationError(
        message=(
            "No registration recipient key is configured. Set "
            "HPVS_DEPLOY_REGISTRATION__RECIPIENT_KEY_URL or "
            "HPVS_DEPLOY_REGISTRATION__RECIPIENT_KEY_FILE."
        ),
        error_code="RECIPIENT_KEY_UNCONFIGURED",
    )


# =============================================================================
# Registration Builder
# =============================================================================
class RegistrationBuilder:
    """Produces the encrypted, signed registration definition.

    Example:
        >>> builder = RegistrationBuilder(keyring, recipient_source)
        >>> artifact = await builder.build_and_seal(
        ...     reg_file_path=Path("hpvs-fhe-registration.txt"),
        ...     vendor_public_key_file=Path("keys/vendor.pub"),
        ...     ...
        ...     run_id=run_id,
        ... )
    """

    def __init__(self, keyring: Keyring, recipient_source: RecipientKeySource) -> None:
        self._keyring = keyring
        self._recipient_source = recipient_source
        self._logger = logger.bind(component="registration_builder")

    async def build_and_seal(
        self,
        *,
        reg_file_path: Path,
        vendor_public_key_file: Path,
        registry_username: str,
        registry_password: SecretStr,
        namespace: str,
        repository: str,
        registry_url: str,
        vendor_private_key_file: Path,
        vendor_key_name: str,
        vendor_key_passphrase: SecretStr,
        run_id: str,
    ) -> EncryptedRegistrationArtifact:
        """Write, encrypt and sign the registration definition.

        Returns:
            The artifact at `reg_file_path`, which now holds ciphertext.

        Raises:
            CryptoError: A key could not be imported or read, the recipient
                key does not match its pinned fingerprint, encryption or signing
                failed, or the registration file could not be written.
            TransientError: The recipient key could not be downloaded.
        """
        reg_file_path = Path(reg_file_path)
        _remove_previous(reg_file_path)

        await self._keyring.import_public_key(vendor_public_key_file)
        signer = await self._keyring.import_private_key(vendor_private_key_file, vendor_key_passphrase)
        self._logger.info("registration_vendor_key_loaded", key_name=vendor_key_name, fingerprint=signer.fingerprint)

        with tempfile.TemporaryDirectory(prefix="hpvs-recipient-") as scratch:
            recipient = await self._import_recipient_key(Path(scratch))

        document = RegistrationDocument(
            vendor_public_key=self._read_vendor_public_key(vendor_public_key_file),
            registry_username=registry_username,
            registry_password=registry_password,
            namespace=namespace,
            repository=repository,
            registry_url=registry_url,
        )

        sealed = reg_file_path.with_name(f".{reg_file_path.name}.{run_id}.tmp")
        try:
            _write_private(reg_file_path, document.to_json())
            await self._keyring.encrypt_and_sign(
                reg_file_path,
                sealed,
                recipient=recipient.fingerprint,
                signer=vendor_key_name,
                passphrase=vendor_key_passphrase,
            )
            _install(sealed, reg_file_path)
        except BaseException:
            _discard(sealed)
            _discard(reg_file_path)
            raise

        self._logger.info(
            "registration_sealed",
            path=str(reg_file_path),
            recipient=recipient.fingerprint,
            signer=vendor_key_name,
        )
        return EncryptedRegistrationArtifact(
            path=reg_file_path,
            recipient=recipient.fingerprint,
            signer=vendor_key_name,
            run_id=run_id,
        )

    async def _import_recipient_key(self, scratch: Path) -> KeyInfo:
        source = self._recipient_source
        key_file = await source.fetch(scratch)
        recipient = await self._keyring.import_public_key(key_file)

        if source.fingerprint and not recipient.matches_fingerprint(source.fingerprint):
            raise CryptoError(
                message=(
                    f"The recipient key from {source.description} has fingerprint "
                    f"{recipient.fingerprint}, expected {source.fingerprint}"
                ),
                error_code="RECIPIENT_KEY_MISMATCH",
                details={"source": source.description, "fingerprint": recipient.fingerprint},
            )
        if not source.fingerprint:
            self._logger.warning(
                "registration_recipient_key_unpinned",
                source=source.description,
                fingerprint=recipient.fingerprint,
            )
        return recipient

    @staticmethod
    def _read_vendor_public_key(path: Path) -> str:
        try:
            return Path(path).read_text()
        except OSError as e:
            raise CryptoError(
                message=f"Unable to read the vendor public key '{path}': {e}",
                error_code="KEY_IMPORT_FAILED",
                details={"key_file": str(path)},
            ) from e


# =============================================================================
# File Handling
# =============================================================================
# Every OSError on the registration path surfaces as REGISTRATION_WRITE_FAILED.
# =============================================================================
def _write_failed(path: Path, action: str, error: OSError) -> CryptoError:
    return CryptoError(
        message=f"Unable to {action} the registration file '{path}': {error}",
        error_code="REGISTRATION_WRITE_FAILED",
        details={"path": str(path)},
    )


def _remove_previous(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise _write_failed(path, "remove the previous", e) from e


def _write_private(path: Path, text: str) -> None:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as handle:
            handle.write(text)
    except OSError as e:
        raise _write_failed(path, "write", e) from e


def _install(sealed: Path, path: Path) -> None:
    try:
        os.replace(sealed, path)
    except OSError as e:
        raise _write_failed(path, "replace", e) from e


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("registration_cleanup_failed", path=str(path), error=str(e))
