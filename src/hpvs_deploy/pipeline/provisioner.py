"""
hpvs_deploy.pipeline.provisioner - Hyper Protect Instance Provisioning
========================================================================

Submits the sealed registration and the signed image tag to the cloud and
returns the new instance's identifier.

Call sequence against the CloudAPI:

    exchange_api_key                       (AuthError on rejection)
    ├── resource group configured? ──yes──→ use it
    └── no:  get_account_id → get_default_resource_group
                                ↳ None → ConfigurationError
    create_instance                        → instance id

The access token is refreshed before any call made within
``token_refresh_margin`` seconds of its expiry. Every call runs under the
RetryPolicy, which retries TransientError only.

A returned ProvisionedInstance means the request was accepted. Readiness is
not polled here.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import SecretStr

from hpvs_deploy.core.config import DeploymentConfig, RetryPolicy
from hpvs_deploy.core.exceptions import ConfigurationError, CryptoError
from hpvs_deploy.core.models import (
    CloudSession,
    EncryptedRegistrationArtifact,
    ProvisionedInstance,
    ProvisioningRequest,
    SignedImageRef,
)
from hpvs_deploy.integrations.cloud.base import CloudAPI
from hpvs_deploy.pipeline.retry import call_with_retry


logger = structlog.get_logger()

T = TypeVar("T")


class CloudProvisioner:
    """Creates one Hyper Protect Virtual Server instance per call.

    Attributes:
        _cloud_api: Cloud API backend.
        _retry_policy: Retry limits for TransientError.
        _token_refresh_margin: Seconds before expiry at which the token is
            exchanged again.
        _session: Session of the provision() call in progress.
    """

    def __init__(
        self,
        cloud_api: CloudAPI,
        retry_policy: Optional[RetryPolicy] = None,
        *,
        token_refresh_margin: float = 60.0,
    ) -> None:
        self._cloud_api = cloud_api
        self._retry_policy = retry_policy or RetryPolicy()
        self._token_refresh_margin = token_refresh_margin
        self._session: Optional[CloudSession] = None
        self._logger = logger.bind(component="cloud_provisioner")

    async def provision(
        self,
        config: DeploymentConfig,
        artifact: EncryptedRegistrationArtifact,
        signed_image: SignedImageRef,
    ) -> ProvisionedInstance:
        """Provision an instance running `signed_image` with `artifact`.

        Raises:
            AuthError: The API key was rejected.
            ConfigurationError: No resource group is configured and the
                account has none.
            CryptoError: The sealed artifact can no longer be read.
            TransientError: Network failure, timeout or server error after
                the retry policy is exhausted.
            RequestRejectedError: The cloud rejected a request as invalid.
        """
        instance_name = config.resolve_instance_name()
        log = self._logger.bind(instance_name=instance_name, run_id=artifact.run_id)

        api_key = config.resolve_api_key()
        self._session = None
        await self._ensure_session(api_key)
        log.info("cloud_session_opened", backend=self._cloud_api.name)

        resource_group_id = config.cloud.resource_group
        if resource_group_id is None:
            resource_group_id = await self._lookup_default_resource_group(api_key)
            log.info("cloud_default_resource_group_resolved", resource_group_id=resource_group_id)

        request = ProvisioningRequest(
            instance_name=instance_name,
            location=config.resolve_location(),
            resource_group_id=resource_group_id,
            resource_plan_id=config.resolve_resource_plan_id(),
            image_tag=signed_image.tag,
            registration=self._read_artifact(artifact),
        )

        log.info(
            "cloud_provisioning_requested",
            location=request.location,
            resource_plan_id=request.resource_plan_id,
            image=signed_image.reference,
        )

        async def _create() -> str:
            token = await self._token(api_key)
            return await self._cloud_api.create_instance(token, request)

        instance_id = await self._call("create_instance", _create)
        log.info("cloud_provisioning_accepted", instance_id=instance_id)

        return ProvisionedInstance(
            instance_id=instance_id,
            instance_name=request.instance_name,
            location=request.location,
            resource_group_id=request.resource_group_id,
            resource_plan_id=request.resource_plan_id,
            source_tag=signed_image.tag,
            run_id=artifact.run_id,
        )

    # =========================================================================
    # Session handling
    # =========================================================================

    async def _ensure_session(self, api_key: SecretStr) -> CloudSession:
        session = self._session
        if session is not None and not session.is_expired(self._token_refresh_margin):
            return session

        token = await self._call("exchange_api_key", lambda: self._cloud_api.exchange_api_key(api_key))

        if session is None:
            session = CloudSession(access_token=token.token, expires_at=token.expires_at)
        else:
            self._logger.info("cloud_token_refreshed")
            session = session.model_copy(update={"access_token": token.token, "expires_at": token.expires_at})
        self._session = session
        return session

    async def _token(self, api_key: SecretStr) -> SecretStr:
        return (await self._ensure_session(api_key)).access_token

    async def _lookup_default_resource_group(self, api_key: SecretStr) -> str:
        async def _account() -> str:
            return await self._cloud_api.get_account_id(await self._token(api_key), api_key)

        account_id = await self._call("get_account_id", _account)
        self._session = self._session.model_copy(update={"account_id": account_id})

        async def _group() -> Optional[str]:
            return await self._cloud_api.get_default_resource_group(await self._token(api_key), account_id)

        resource_group_id = await self._call("get_default_resource_group", _group)
        if not resource_group_id:
            raise ConfigurationError(
                message=(
                    f"The account '{account_id}' has no resource group. Create one, "
                    f"or set cloud.resource_group in the configuration."
                ),
                error_code="NO_RESOURCE_GROUP",
                details={"account_id": account_id},
            )
        self._session = self._session.model_copy(update={"resource_group_id": resource_group_id})
        return resource_group_id

    async def _call(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await call_with_retry(self._retry_policy, operation, name=name)

    @staticmethod
    def _read_artifact(artifact: EncryptedRegistrationArtifact) -> bytes:
        try:
            return artifact.read_bytes()
        except OSError as e:
            raise CryptoError(
                message=f"The sealed registration '{artifact.path}' cannot be read: {e}",
                error_code="ARTIFACT_UNREADABLE",
                details={"path": str(artifact.path)},
            ) from e
