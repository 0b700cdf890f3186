"""
hpvs_deploy.core.models - Pipeline Data Models
================================================

The values that flow from one pipeline component to the next. Each model is
a frozen pydantic model: once a component has produced it, nothing
downstream can change it.

Data Flow:
    TrustSigner         → SignedImageRef
    RegistrationBuilder → EncryptedRegistrationArtifact
                            (built from a RegistrationDocument)
    CloudProvisioner    → CloudSession (internal) → ProvisionedInstance

    ┌─────────────┐ SignedImageRef ┌──────────────┐ Artifact ┌─────────────┐
    │ TrustSigner │ ─────────────→ │ Registration │ ───────→ │   Cloud     │
    └─────────────┘                │   Builder    │          │ Provisioner │
                                   └──────────────┘          └─────────────┘
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, SecretStr


def _generate_run_id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Command Result
# =============================================================================
# What a container runtime or keyring CLI call returns. Components decide
# which typed error a failed result turns into.
# =============================================================================
class CommandResult(BaseModel):
    """Outcome of one external command.

    Attributes:
        args: The argument vector that was executed (no secrets; passphrases
            travel through the environment or stdin).
        returncode: Process exit status.
        stdout: Captured standard output, decoded (undecodable bytes are
            replaced).
        stderr: Captured standard error, decoded.
        raw_stdout: Standard output exactly as the process wrote it, for
            commands whose output is binary (e.g. decrypted payloads).
    """

    model_config = {"frozen": True}

    args: list[str] = Field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    raw_stdout: bytes = Field(default=b"", repr=False)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined, stripped output for error messages."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


# =============================================================================
# Signed Image Reference
# =============================================================================
class SignedImageRef(BaseModel):
    """Coordinates of an image that has been signed and pushed.

    Only TrustSigner creates these, and only after the sign-and-push step
    succeeded. Holding a SignedImageRef is the proof downstream components
    rely on that the image carries valid trust metadata.

    Example:
        >>> ref = SignedImageRef(
        ...     registry_url="docker.io",
        ...     namespace="acme",
        ...     repository="fhe-toolkit-fedora-s390x",
        ...     tag="v1.3.1",
        ... )
        >>> ref.reference
        'docker.io/acme/fhe-toolkit-fedora-s390x:v1.3.1'
    """

    model_config = {"frozen": True}

    registry_url: str
    namespace: str
    repository: str
    tag: str

    @property
    def image_name(self) -> str:
        """Fully qualified image name without the tag."""
        return f"{self.registry_url}/{self.namespace}/{self.repository}"

    @property
    def reference(self) -> str:
        return f"{self.image_name}:{self.tag}"


# =============================================================================
# Registration Document
# =============================================================================
# The cleartext registration definition. It contains registry credentials,
# so it only ever exists on disk between "write" and "encrypt" inside
# RegistrationBuilder.
#
# On-disk layout (JSON):
#   {
#     "key": "<vendor public key, ASCII armored>",
#     "repository_name": "<namespace>/<repository>",
#     "registry": "<registry url>",
#     "auth": {"username": "...", "password": "..."},
#     "envs": {"whitelist": []}
#   }
# =============================================================================
class RegistrationDocument(BaseModel):
    """Cleartext description of where the image lives and how to pull it."""

    model_config = {"frozen": True}

    vendor_public_key: str = Field(description="ASCII-armored vendor public key")
    registry_username: str
    registry_password: SecretStr
    namespace: str
    repository: str
    registry_url: str

    def to_json(self) -> str:
        """Serialize to the registration definition layout."""
        payload = {
            "key": self.vendor_public_key,
            "repository_name": f"{self.namespace}/{self.repository}",
            "registry": self.registry_url,
            "auth": {
                "username": self.registry_username,
                "password": self.registry_password.get_secret_value(),
            },
            "envs": {"whitelist": []},
        }
        return json.dumps(payload, indent=2)

    @classmethod
    def from_json(cls, text: str) -> RegistrationDocument:
        """Parse a registration definition produced by :meth:`to_json`."""
        payload = json.loads(text)
        namespace, _, repository = payload["repository_name"].partition("/")
        return cls(
            vendor_public_key=payload["key"],
            registry_username=payload["auth"]["username"],
            registry_password=SecretStr(payload["auth"]["password"]),
            namespace=namespace,
            repository=repository,
            registry_url=payload["registry"],
        )


class EncryptedRegistrationArtifact(BaseModel):
    """The sealed registration definition, ready to submit.

    Attributes:
        path: File holding the encrypted and signed document.
        recipient: Key identity the document was encrypted for.
        signer: Vendor key identity that signed it.
        run_id: Deployment run that produced it. An artifact from another
            run is stale and must not be provisioned.
        created_at: Creation timestamp (UTC).
    """

    model_config = {"frozen": True}

    path: Path
    recipient: str
    signer: str
    run_id: str
    created_at: datetime = Field(default_factory=_now)

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def discard(self) -> None:
        """Delete the artifact file if it is still on disk."""
        self.path.unlink(missing_ok=True)


# =============================================================================
# Cloud Session
# =============================================================================
class CloudSession(BaseModel):
    """Short-lived credentials and account context for cloud API calls.

    Derived from the API key; never persisted.
    """

    model_config = {"frozen": True}

    access_token: SecretStr
    expires_at: datetime
    account_id: Optional[str] = None
    resource_group_id: Optional[str] = None

    def is_expired(self, margin_seconds: float = 60.0) -> bool:
        """Whether the token expires within `margin_seconds` from now."""
        return _now() + timedelta(seconds=margin_seconds) >= self.expires_at


class AccessToken(BaseModel):
    """Result of exchanging an API key for a bearer token."""

    model_config = {"frozen": True}

    token: SecretStr
    expires_in: int = Field(default=3600, ge=0)
    issued_at: datetime = Field(default_factory=_now)

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)


class ProvisioningRequest(BaseModel):
    """Everything the cloud API needs to create an instance."""

    model_config = {"frozen": True}

    instance_name: str
    location: str
    resource_group_id: str
    resource_plan_id: str
    image_tag: str
    registration: bytes = Field(repr=False)


class ProvisionedInstance(BaseModel):
    """Terminal output of a deployment run.

    A non-empty ``instance_id`` means the provisioning request was
    accepted. It does not mean the instance is running yet.
    """

    model_config = {"frozen": True}

    instance_id: str = Field(min_length=1)
    instance_name: str
    location: str
    resource_group_id: str
    resource_plan_id: str
    source_tag: str
    run_id: str = Field(default_factory=_generate_run_id)
