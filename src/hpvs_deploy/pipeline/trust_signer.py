"""
hpvs_deploy.pipeline.trust_signer - Content-Trust Signing and Push
====================================================================

The TrustSigner turns a local FHE Toolkit image into a signed image in the
target registry, or fails without leaving anything the rest of the pipeline
may use.

Steps (each one aborts the run on failure; there is no retry here):

    1. Check the source mode against the host architecture.
       local-build on a non-s390x host → ConfigurationError, before any
       runtime call.
    2. remote-registry only: pull ibmcom/<repository>.        → BuildError
    3. Tag <local image> as <registry>/<namespace>/<repo>:<tag> → BuildError
    4. Log in to the registry.                                 → AuthError
    5. With a delegation: load the delegation private key (unless it is
       already in the trust store) and register its public key as a
       signer of the repository.                               → CryptoError
       Without one: sign with the repository key only (logged for audit).
    6. Sign and push image layers and trust metadata in one step.

Only after step 6 succeeds does a SignedImageRef exist.
"""

from __future__ import annotations

import os
from typing import Optional

import structlog

from hpvs_deploy.core.config import DeploymentConfig, TrustDelegation
from hpvs_deploy.core.enums import (
    TARGET_ARCHITECTURE,
    SourceMode,
    detect_host_architecture,
    is_target_compatible,
)
from hpvs_deploy.core.exceptions import AuthError, BuildError, ConfigurationError, CryptoError
from hpvs_deploy.core.models import CommandResult, SignedImageRef
from hpvs_deploy.integrations.runtime.base import ContainerRuntime


logger = structlog.get_logger()

_AUTH_FAILURE_MARKERS = ("unauthorized", "denied", "authentication required")


class TrustSigner:
    """Establishes content trust for one image and pushes it.

    Attributes:
        _config: The deployment being run.
        _runtime: Container runtime the commands go to.
        _host_architecture: Normalized architecture of this host.
        _login_attempted: Whether a registry login was started; the
            orchestrator only logs out when this is True.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        runtime: ContainerRuntime,
        *,
        host_architecture: Optional[str] = None,
    ) -> None:
        self._config = config
        self._runtime = runtime
        self._host_architecture = host_architecture or detect_host_architecture()
        self._login_attempted = False
        self._logger = logger.bind(
            component="trust_signer",
            repository=config.repository,
            tag=config.image_tag,
        )

    @property
    def login_attempted(self) -> bool:
        return self._login_attempted

    # =========================================================================
    # Main Entry Point
    # =========================================================================

    async def establish_trust(self) -> SignedImageRef:
        """Sign and push the configured image.

        Returns:
            The SignedImageRef of the pushed image.

        Raises:
            ConfigurationError: local-build on an incompatible host.
            BuildError: The local image cannot be pulled or tagged.
            AuthError: Registry login or push authorization failed.
            CryptoError: Delegation keys missing or rejected, or signing failed.
        """
        config = self._config
        self._check_host_architecture()

        target = f"{config.target_image}:{config.image_tag}"

        if config.source_mode is SourceMode.REMOTE_REGISTRY:
            self._logger.info("trust_pulling_image", image=config.local_image)
            result = await self._runtime.pull(config.local_image)
            if not result.ok:
                raise BuildError(
                    message=f"Failed to pull the image '{config.local_image}': {result.output}",
                    error_code="IMAGE_PULL_FAILED",
                    details={"image": config.local_image},
                )

        self._logger.info("trust_tagging_image", source=config.local_image, target=target)
        result = await self._runtime.tag(config.local_image, target)
        if not result.ok:
            raise BuildError(
                message=f"Failed to tag the image '{config.local_image}' as '{target}': {result.output}",
                error_code="IMAGE_TAG_FAILED",
                details={"image": config.local_image, "target": target},
            )

        await self._login()

        if config.uses_delegation:
            await self._init_delegation(config.trust.delegation)
        else:
            self._logger.info(
                "trust_delegation_not_used",
                reason="no delegation key configured; signing with the repository key",
            )

        return await self._sign_and_push()

    async def logout(self) -> Optional[CommandResult]:
        """Log out of the registry if a login was attempted.

        Returns:
            The runtime's result, or None when there was nothing to undo.
        """
        if not self._login_attempted:
            return None
        return await self._runtime.logout(self._config.registry.url)

    # =========================================================================
    # Steps
    # =========================================================================

    def _check_host_architecture(self) -> None:
        if self._config.source_mode is not SourceMode.LOCAL_BUILD:
            return
        if is_target_compatible(self._host_architecture):
            return
        raise ConfigurationError(
            message=(
                f"Images built on {self._host_architecture} hosts do not run on Hyper Protect, "
                f"which requires {TARGET_ARCHITECTURE}. Deploy the image pre-built for "
                f"{TARGET_ARCHITECTURE} instead by running without the local-build option."
            ),
            error_code="ARCHITECTURE_MISMATCH",
            details={
                "host_architecture": self._host_architecture,
                "target_architecture": TARGET_ARCHITECTURE,
            },
        )

    async def _login(self) -> None:
        registry = self._config.registry
        self._login_attempted = True
        result = await self._runtime.login(registry.url, registry.username, registry.password)
        if not result.ok:
            raise AuthError(
                message=f"Failed to log in to '{registry.url}' as '{registry.username}': {result.output}",
                error_code="REGISTRY_LOGIN_FAILED",
                details={"registry_url": registry.url, "username": registry.username},
            )
        self._logger.info("trust_registry_login_succeeded", registry_url=registry.url)

    async def _init_delegation(self, delegation: TrustDelegation) -> None:
        trust = self._config.trust

        for label, path in (
            ("private key", delegation.private_key_file),
            ("public key", delegation.public_key_file),
        ):
            if path is None:
                continue
            if not (path.is_file() and os.access(path, os.R_OK)):
                raise CryptoError(
                    message=f"The delegation {label} file '{path}' does not exist or is not readable",
                    error_code="DELEGATION_KEY_MISSING",
                    details={"key_name": delegation.key_name, "path": str(path)},
                )

        if delegation.private_key_file is None:
            self._logger.info(
                "trust_delegation_key_preloaded",
                key_name=delegation.key_name,
                reason="no private key file configured; using the key already in the trust store",
            )
        else:
            await self._load_delegation_key(delegation)

        result = await self._runtime.add_trust_signer(
            delegation.key_name,
            delegation.public_key_file,
            self._config.target_image,
            root_passphrase=trust.root_passphrase,
            repository_passphrase=trust.repository_passphrase or trust.root_passphrase,
            trust_server=trust.server,
        )
        if not result.ok:
            raise CryptoError(
                message=(
                    f"Failed to add delegation '{delegation.key_name}' to "
                    f"'{self._config.target_image}': {result.output}"
                ),
                error_code="DELEGATION_INIT_FAILED",
                details={"key_name": delegation.key_name, "trust_server": trust.server},
            )

        self._logger.info(
            "trust_delegation_initialized",
            key_name=delegation.key_name,
            trust_server=trust.server,
        )

    async def _load_delegation_key(self, delegation: TrustDelegation) -> None:
        result = await self._runtime.load_trust_key(
            delegation.key_name,
            delegation.private_key_file,
            delegation.passphrase,
        )
        if not result.ok:
            raise CryptoError(
                message=f"Failed to load the delegation key '{delegation.key_name}': {result.output}",
                error_code="DELEGATION_KEY_LOAD_FAILED",
                details={"key_name": delegation.key_name},
            )

    async def _sign_and_push(self) -> SignedImageRef:
        config = self._config
        ref = SignedImageRef(
            registry_url=config.registry.url,
            namespace=config.registry.namespace,
            repository=config.repository,
            tag=config.image_tag,
        )

        if config.signing_passphrase_is_root:
            self._logger.warning(
                "trust_signing_with_root_passphrase",
                reason="no repository passphrase configured",
            )

        result = await self._runtime.sign_and_push(
            ref.reference,
            root_passphrase=config.trust.root_passphrase,
            signing_passphrase=config.resolve_signing_passphrase(),
            trust_server=config.trust.server,
        )
        if not result.ok:
            output = result.output
            if any(marker in output.lower() for marker in _AUTH_FAILURE_MARKERS):
                raise AuthError(
                    message=f"The registry refused the push of '{ref.reference}': {output}",
                    error_code="PUSH_UNAUTHORIZED",
                    details={"reference": ref.reference},
                )
            raise CryptoError(
                message=f"Failed to sign and push '{ref.reference}': {output}",
                error_code="SIGN_AND_PUSH_FAILED",
                details={"reference": ref.reference, "trust_server": config.trust.server},
            )

        self._logger.info("trust_image_signed_and_pushed", reference=ref.reference)
        return ref
