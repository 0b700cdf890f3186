"""
Shared Test Fixtures for hpvs-deploy
=======================================

Fixtures are organized by layer:

    1. Key material (mock-keyring key files on disk)
    2. Configuration (DeploymentConfig factory, DeploySettings)
    3. Collaborators (mock runtime, keyring, cloud API, recipient key source)
    4. Pipeline (orchestrator wired to the mocks)

Mock key files hold a user ID on their first line; the mock keyring derives
the key's fingerprint from it. All files live under pytest's tmp_path.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable

import pytest
from pydantic import SecretStr

from hpvs_deploy.core.config import DeploymentConfig, DeploySettings
from hpvs_deploy.core.models import RegistrationDocument
from hpvs_deploy.integrations.cloud.mock import MockCloudAPI
from hpvs_deploy.integrations.keyring.mock import MockKeyring
from hpvs_deploy.integrations.runtime.mock import MockContainerRuntime
from hpvs_deploy.pipeline.orchestrator import DeploymentOrchestrator
from hpvs_deploy.pipeline.registration import FileRecipientKeySource


VENDOR_UID = "acme-vendor <vendor@acme.example>"
RECIPIENT_UID = "hpvs-registration <registration@cloud.example>"
RECIPIENT_PASSPHRASE = "recipient-secret"


def write_key(path: Path, uid: str, kind: str = "PUBLIC") -> Path:
    path.write_text(f"{uid}\n-----BEGIN MOCK {kind} KEY-----\n{path.name}\n-----END MOCK {kind} KEY-----\n")
    return path


# =============================================================================
# Key Material
# =============================================================================

@pytest.fixture
def key_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "keys"
    directory.mkdir()
    return directory


@pytest.fixture
def vendor_keys(key_dir: Path) -> tuple[Path, Path]:
    """(public, private) vendor key files."""
    return (
        write_key(key_dir / "vendor.pub", VENDOR_UID),
        write_key(key_dir / "vendor.key", VENDOR_UID, kind="PRIVATE"),
    )


@pytest.fixture
def recipient_keys(key_dir: Path) -> tuple[Path, Path]:
    """(public, private) registration recipient key files."""
    return (
        write_key(key_dir / "recipient.pub", RECIPIENT_UID),
        write_key(key_dir / "recipient.key", RECIPIENT_UID, kind="PRIVATE"),
    )


@pytest.fixture
def delegation_keys(key_dir: Path) -> tuple[Path, Path]:
    """(public, private) content-trust delegation key files."""
    return (
        write_key(key_dir / "delegation.pub", "delegate"),
        write_key(key_dir / "delegation.key", "delegate", kind="PRIVATE"),
    )


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def make_config(tmp_path: Path, vendor_keys: tuple[Path, Path]) -> Callable[..., DeploymentConfig]:
    """Factory for DeploymentConfig; keyword sections override the defaults.

    Example:
        >>> config = make_config(platform="ubuntu", cloud={"resource_group": "rg-1"})
    """
    vendor_pub, vendor_pri = vendor_keys

    def _make(**overrides: Any) -> DeploymentConfig:
        data: dict[str, Any] = {
            "platform": "fedora",
            "image_tag": "v1.3.1",
            "registry": {
                "namespace": "acme",
                "username": "acme-bot",
                "password": "registry-secret",
            },
            "trust": {
                "root_passphrase": "root-secret",
                "repository_passphrase": "repo-secret",
            },
            "vendor_key": {
                "name": "acme-vendor",
                "public_key_file": str(vendor_pub),
                "private_key_file": str(vendor_pri),
                "passphrase": "vendor-secret",
            },
            "cloud": {"api_key": "cloud-api-key"},
            "registration_file": str(tmp_path / "registration.txt"),
        }
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return DeploymentConfig(**data)

    return _make


@pytest.fixture
def config(make_config: Callable[..., DeploymentConfig]) -> DeploymentConfig:
    """Default remote-registry fedora deployment without delegation."""
    return make_config()


@pytest.fixture
def settings(recipient_keys: tuple[Path, Path]) -> DeploySettings:
    """Settings selecting every mock backend."""
    return DeploySettings(
        runtime_backend="mock",
        keyring_backend="mock",
        cloud_backend="mock",
        registration={"recipient_key_file": recipient_keys[0]},
    )


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def runtime() -> MockContainerRuntime:
    return MockContainerRuntime()


@pytest.fixture
def keyring() -> MockKeyring:
    return MockKeyring()


@pytest.fixture
def cloud_api() -> MockCloudAPI:
    return MockCloudAPI(instance_id="crn:v1:mock:instance-1")


@pytest.fixture
def recipient_source(recipient_keys: tuple[Path, Path]) -> FileRecipientKeySource:
    return FileRecipientKeySource(recipient_keys[0])


@pytest.fixture
def decrypt_registration(keyring: MockKeyring, recipient_keys: tuple[Path, Path]) -> Callable[[Path], Awaitable[RegistrationDocument]]:
    """Decrypt a sealed registration the way the provisioning service would."""

    async def _decrypt(path: Path) -> RegistrationDocument:
        await keyring.import_private_key(recipient_keys[1], SecretStr(RECIPIENT_PASSPHRASE))
        plaintext = await keyring.decrypt(path, SecretStr(RECIPIENT_PASSPHRASE))
        return RegistrationDocument.from_json(plaintext.decode())

    return _decrypt


# =============================================================================
# Pipeline
# =============================================================================

@pytest.fixture
def make_orchestrator(
    settings: DeploySettings,
    runtime: MockContainerRuntime,
    keyring: MockKeyring,
    cloud_api: MockCloudAPI,
    recipient_source: FileRecipientKeySource,
) -> Callable[..., DeploymentOrchestrator]:
    """Factory for an orchestrator wired to the shared mocks (s390x host)."""

    def _make(config: DeploymentConfig, **kwargs: Any) -> DeploymentOrchestrator:
        options: dict[str, Any] = {
            "runtime": runtime,
            "keyring": keyring,
            "cloud_api": cloud_api,
            "recipient_source": recipient_source,
            "host_architecture": "s390x",
        }
        options.update(kwargs)
        return DeploymentOrchestrator(config, settings, **options)

    return _make
