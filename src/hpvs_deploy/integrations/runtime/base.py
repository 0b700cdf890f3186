"""
hpvs_deploy.integrations.runtime.base - Container Runtime Interface
=====================================================================

The primitives the TrustSigner needs from a container runtime. Every method
returns a CommandResult; the TrustSigner decides which typed error a failed
result becomes. Implementations raise TransientError only when a call
exceeds its timeout.

    ┌─────────────┐    tag / login / push    ┌──────────────────┐
    │ TrustSigner │ ───────────────────────→ │ ContainerRuntime │
    │             │ ←──── CommandResult ──── │    (abstract)    │
    └─────────────┘                          └────────┬─────────┘
                                            ┌─────────┴─────────┐
                                       ┌────▼─────┐     ┌───────▼──────┐
                                       │  Docker  │     │     Mock     │
                                       │   CLI    │     │   Runtime    │
                                       └──────────┘     └──────────────┘

Passphrases are passed as SecretStr and must never appear in an argument
vector or a log line.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import SecretStr

from hpvs_deploy.core.models import CommandResult


class ContainerRuntime(ABC):
    """Abstract container runtime with content-trust support."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier ("docker", "mock")."""

    @abstractmethod
    async def pull(self, image: str) -> CommandResult:
        """Fetch `image` from its registry into the local image store."""

    @abstractmethod
    async def tag(self, source: str, target: str) -> CommandResult:
        """Create `target` as a new name for local image `source`."""

    @abstractmethod
    async def login(self, registry_url: str, username: str, password: SecretStr) -> CommandResult:
        """Authenticate against a registry."""

    @abstractmethod
    async def logout(self, registry_url: str) -> CommandResult:
        """Drop stored registry credentials."""

    @abstractmethod
    async def load_trust_key(
        self,
        key_name: str,
        private_key_file: Path,
        passphrase: SecretStr,
    ) -> CommandResult:
        """Import a delegation private key into the local trust store."""

    @abstractmethod
    async def add_trust_signer(
        self,
        key_name: str,
        public_key_file: Path,
        image_name: str,
        *,
        root_passphrase: SecretStr,
        repository_passphrase: SecretStr,
        trust_server: str,
    ) -> CommandResult:
        """Register a delegation public key for `image_name`.

        Adds the key to the shared "targets/releases" delegation and creates
        the "targets/<key_name>" delegation, initialising the repository on
        the trust server if needed.
        """

    @abstractmethod
    async def sign_and_push(
        self,
        reference: str,
        *,
        root_passphrase: SecretStr,
        signing_passphrase: SecretStr,
        trust_server: str,
    ) -> CommandResult:
        """Sign `reference` and push image layers and trust metadata together."""
