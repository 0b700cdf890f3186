"""
Tests for hpvs_deploy.core.models
===================================

These tests verify the pipeline data models:
    - SignedImageRef composes the registry reference
    - RegistrationDocument writes the registration definition layout
    - CloudSession / AccessToken expiry arithmetic
    - Models are immutable once produced
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from pydantic import SecretStr, ValidationError

from hpvs_deploy.core.models import (
    AccessToken,
    CloudSession,
    CommandResult,
    EncryptedRegistrationArtifact,
    ProvisionedInstance,
    RegistrationDocument,
    SignedImageRef,
)


# =============================================================================
# Test: CommandResult
# =============================================================================
class TestCommandResult:
    def test_ok_follows_returncode(self) -> None:
        assert CommandResult(returncode=0).ok
        assert not CommandResult(returncode=125).ok

    def test_output_joins_stdout_and_stderr(self) -> None:
        result = CommandResult(stdout="pushed\n", stderr="  warning  ")
        assert result.output == "pushed\nwarning"

    def test_output_skips_empty_streams(self) -> None:
        assert CommandResult(stderr="denied").output == "denied"


# =============================================================================
# Test: SignedImageRef
# =============================================================================
class TestSignedImageRef:
    def test_reference(self) -> None:
        ref = SignedImageRef(
            registry_url="docker.io",
            namespace="acme",
            repository="fhe-toolkit-fedora-s390x",
            tag="v1.3.1",
        )
        assert ref.image_name == "docker.io/acme/fhe-toolkit-fedora-s390x"
        assert ref.reference == "docker.io/acme/fhe-toolkit-fedora-s390x:v1.3.1"

    def test_is_immutable(self) -> None:
        ref = SignedImageRef(registry_url="docker.io", namespace="a", repository="r", tag="t")
        with pytest.raises(ValidationError):
            ref.tag = "other"


# =============================================================================
# Test: RegistrationDocument
# =============================================================================
class TestRegistrationDocument:
    """The document layout consumed by the provisioning service."""

    @pytest.fixture
    def document(self) -> RegistrationDocument:
        return RegistrationDocument(
            vendor_public_key="-----BEGIN PGP PUBLIC KEY BLOCK-----\n...",
            registry_username="acme-bot",
            registry_password=SecretStr("registry-secret"),
            namespace="acme",
            repository="fhe-toolkit-ubuntu-s390x",
            registry_url="docker.io",
        )

    def test_to_json_layout(self, document: RegistrationDocument) -> None:
        payload = json.loads(document.to_json())
        assert payload == {
            "key": "-----BEGIN PGP PUBLIC KEY BLOCK-----\n...",
            "repository_name": "acme/fhe-toolkit-ubuntu-s390x",
            "registry": "docker.io",
            "auth": {"username": "acme-bot", "password": "registry-secret"},
            "envs": {"whitelist": []},
        }

    def test_from_json_restores_every_field(self, document: RegistrationDocument) -> None:
        restored = RegistrationDocument.from_json(document.to_json())
        assert restored.namespace == "acme"
        assert restored.repository == "fhe-toolkit-ubuntu-s390x"
        assert restored.registry_password.get_secret_value() == "registry-secret"
        assert restored.to_json() == document.to_json()

    def test_password_is_masked_in_repr(self, document: RegistrationDocument) -> None:
        assert "registry-secret" not in repr(document)


# =============================================================================
# Test: EncryptedRegistrationArtifact
# =============================================================================
class TestEncryptedRegistrationArtifact:
    def test_read_and_discard(self, tmp_path: Path) -> None:
        path = tmp_path / "registration.txt"
        path.write_bytes(b"ciphertext")
        artifact = EncryptedRegistrationArtifact(path=path, recipient="R", signer="S", run_id="run-1")

        assert artifact.read_bytes() == b"ciphertext"
        artifact.discard()
        assert not path.exists()
        artifact.discard()  # already gone


# =============================================================================
# Test: Cloud session and tokens
# =============================================================================
class TestCloudSession:
    def test_access_token_expiry(self) -> None:
        issued = datetime(2026, 1, 1, tzinfo=timezone.utc)
        token = AccessToken(token=SecretStr("t"), expires_in=3600, issued_at=issued)
        assert token.expires_at == issued + timedelta(hours=1)

    def test_session_expiring_within_margin_is_expired(self) -> None:
        soon = datetime.now(timezone.utc) + timedelta(seconds=30)
        session = CloudSession(access_token=SecretStr("t"), expires_at=soon)
        assert session.is_expired(margin_seconds=60)
        assert not session.is_expired(margin_seconds=0)


class TestProvisionedInstance:
    def test_instance_id_must_not_be_empty(self) -> None:
        with pytest.raises(ValidationError):
            ProvisionedInstance(
                instance_id="",
                instance_name="n",
                location="dal13",
                resource_group_id="rg",
                resource_plan_id="plan",
                source_tag="latest",
            )
