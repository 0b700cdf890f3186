"""
hpvs_deploy.pipeline.orchestrator - Deployment Orchestrator
=============================================================

Runs one deployment from a resolved DeploymentConfig to a provisioned
instance, strictly in order and fail-fast:

    ┌─────────┐    ┌──────────────┐    ┌──────────────┐    ┌─────────┐
    │  TRUST  │ ─→ │ REGISTRATION │ ─→ │ PROVISIONING │ ─→ │ CLEANUP │
    └─────────┘    └──────────────┘    └──────────────┘    └─────────┘
         │                │                   │                 ▲
         └────────────────┴───── error ───────┴─────────────────┘

The orchestrator never recovers from an error. It only:
    - records the failing stage (plus repository, instance name and run id)
      in ``error.details`` before re-raising,
    - deletes a sealed registration artifact from a failed or cancelled run,
    - logs out of the registry exactly once, whenever a login was attempted.
      A failed logout is logged and never replaces the run's outcome.

Usage:
    >>> orchestrator = DeploymentOrchestrator(config, settings)
    >>> instance = await orchestrator.run()
    >>> instance.instance_id
    'crn:v1:...'
"""

from __future__ import annotations

from typing import Optional
from uuid import uuid4

import structlog

from hpvs_deploy.core.config import DeploymentConfig, DeploySettings
from hpvs_deploy.core.enums import PipelineStage
from hpvs_deploy.core.exceptions import CryptoError, DeployError
from hpvs_deploy.core.models import (
    EncryptedRegistrationArtifact,
    ProvisionedInstance,
    SignedImageRef,
)
from hpvs_deploy.integrations.cloud import create_cloud_api
from hpvs_deploy.integrations.cloud.base import CloudAPI
from hpvs_deploy.integrations.keyring import create_keyring
from hpvs_deploy.integrations.keyring.base import Keyring
from hpvs_deploy.integrations.runtime import create_container_runtime
from hpvs_deploy.integrations.runtime.base import ContainerRuntime
from hpvs_deploy.pipeline.provisioner import CloudProvisioner
from hpvs_deploy.pipeline.registration import (
    RecipientKeySource,
    RegistrationBuilder,
    create_recipient_key_source,
)
from hpvs_deploy.pipeline.trust_signer import TrustSigner


logger = structlog.get_logger()


class DeploymentOrchestrator:
    """Single entry point for one deployment run.

    Collaborators not passed explicitly are created from `settings` by the
    backend factories.

    Attributes:
        _run_id: Identifier of this run; the sealed artifact must carry it.
        _stage: Stage currently executing, None before and after the run.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        settings: Optional[DeploySettings] = None,
        *,
        runtime: Optional[ContainerRuntime] = None,
        keyring: Optional[Keyring] = None,
        cloud_api: Optional[CloudAPI] = None,
        recipient_source: Optional[RecipientKeySource] = None,
        host_architecture: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self._config = config
        self._settings = settings or DeploySettings()
        self._run_id = run_id or str(uuid4())

        self._runtime = runtime or create_container_runtime(self._settings)
        self._keyring = keyring or create_keyring(self._settings)
        self._cloud_api = cloud_api or create_cloud_api(self._settings)
        self._recipient_source = recipient_source or create_recipient_key_source(self._settings)

        self._signer = TrustSigner(config, self._runtime, host_architecture=host_architecture)
        self._builder = RegistrationBuilder(self._keyring, self._recipient_source)
        self._provisioner = CloudProvisioner(
            self._cloud_api,
            self._settings.retry,
            token_refresh_margin=self._settings.token_refresh_margin,
        )

        self._stage: Optional[PipelineStage] = None
        self._logger = logger.bind(
            component="orchestrator",
            run_id=self._run_id,
            platform=config.platform.value,
            source_mode=config.source_mode.value,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def stage(self) -> Optional[PipelineStage]:
        return self._stage

    @property
    def signer(self) -> TrustSigner:
        return self._signer

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> ProvisionedInstance:
        """Execute trust, registration and provisioning, then log out.

        Returns:
            The accepted ProvisionedInstance.

        Raises:
            DeployError: The first component error, with ``details["stage"]``
                set to the stage that raised it.
        """
        config = self._config
        artifact: Optional[EncryptedRegistrationArtifact] = None
        succeeded = False

        self._logger.info(
            "deployment_started",
            repository=config.repository,
            instance_name=config.resolve_instance_name(),
        )

        try:
            self._stage = PipelineStage.TRUST
            signed_image = await self._signer.establish_trust()

            self._stage = PipelineStage.REGISTRATION
            artifact = await self._seal_registration(signed_image)

            self._stage = PipelineStage.PROVISIONING
            instance = await self._provisioner.provision(config, artifact, signed_image)

            succeeded = True
            self._logger.info(
                "deployment_completed",
                instance_id=instance.instance_id,
                instance_name=instance.instance_name,
                image=signed_image.reference,
            )
            return instance

        except DeployError as e:
            self._annotate(e)
            self._logger.error("deployment_failed", **e.to_dict())
            raise

        finally:
            if not succeeded and artifact is not None:
                artifact.discard()
                self._logger.info("registration_artifact_discarded", path=str(artifact.path))
            await self._cleanup()
            self._stage = None

    async def _seal_registration(self, signed_image: SignedImageRef) -> EncryptedRegistrationArtifact:
        config = self._config
        artifact = await self._builder.build_and_seal(
            reg_file_path=config.resolve_registration_file(),
            vendor_public_key_file=config.vendor_key.public_key_file,
            registry_username=config.registry.username,
            registry_password=config.registry.password,
            namespace=signed_image.namespace,
            repository=signed_image.repository,
            registry_url=signed_image.registry_url,
            vendor_private_key_file=config.vendor_key.private_key_file,
            vendor_key_name=config.vendor_key.name,
            vendor_key_passphrase=config.vendor_key.passphrase,
            run_id=self._run_id,
        )
        if artifact.run_id != self._run_id:
            artifact.discard()
            raise CryptoError(
                message=f"The sealed registration belongs to run '{artifact.run_id}', not this run",
                error_code="STALE_ARTIFACT",
                details={"artifact_run_id": artifact.run_id},
            )
        return artifact

    async def _cleanup(self) -> None:
        """Best-effort registry logout; never raises."""
        if not self._signer.login_attempted:
            return
        self._stage = PipelineStage.CLEANUP
        try:
            result = await self._signer.logout()
        except Exception as e:
            self._logger.warning("registry_logout_failed", error=str(e))
            return
        if result is not None and not result.ok:
            self._logger.warning("registry_logout_failed", error=result.output)
        else:
            self._logger.info("registry_logged_out", registry_url=self._config.registry.url)

    def _annotate(self, error: DeployError) -> None:
        details = error.details
        if self._stage is not None:
            details.setdefault("stage", self._stage.value)
        details.setdefault("repository", self._config.repository)
        details.setdefault("instance_name", self._config.resolve_instance_name())
        details.setdefault("run_id", self._run_id)

    def __repr__(self) -> str:
        return (
            f"DeploymentOrchestrator("
            f"run_id={self._run_id!r}, "
            f"repository={self._config.repository!r}, "
            f"stage={self._stage.value if self._stage else None!r})"
        )
