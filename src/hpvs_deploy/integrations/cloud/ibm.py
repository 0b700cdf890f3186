"""
hpvs_deploy.integrations.cloud.ibm - IBM Cloud API Client
===========================================================

CloudAPI implementation for IBM Cloud IAM and the Resource Controller,
over httpx.

Endpoints:
    POST {iam}/identity/token                       API key → access token
    GET  {iam}/v1/apikeys/details                   API key → account id
    GET  {rc}/v2/resource_groups?account_id=...     default resource group
    POST {rc}/v2/resource_instances                 create the HPVS instance

Failure Classification:
    connect error, timeout, 5xx, 429  → TransientError
    4xx on the token endpoint         → AuthError
    any other 4xx                     → RequestRejectedError
"""

from __future__ import annotations

import base64
from typing import Any, Optional

import httpx
import structlog
from pydantic import SecretStr

from hpvs_deploy.core.config import CloudEndpoints, TimeoutConfig
from hpvs_deploy.core.exceptions import AuthError, RequestRejectedError, TransientError
from hpvs_deploy.core.models import AccessToken, ProvisioningRequest
from hpvs_deploy.integrations.cloud.base import CloudAPI


logger = structlog.get_logger()

_APIKEY_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"


class IBMCloudAPI(CloudAPI):
    """IBM Cloud client with one bounded timeout per call class.

    Attributes:
        _endpoints: IAM and Resource Controller base URLs.
        _timeouts: Per-call-class timeouts in seconds.
    """

    def __init__(
        self,
        endpoints: Optional[CloudEndpoints] = None,
        timeouts: Optional[TimeoutConfig] = None,
    ) -> None:
        self._endpoints = endpoints or CloudEndpoints()
        self._timeouts = timeouts or TimeoutConfig()
        self._iam_url = self._endpoints.iam_url.rstrip("/")
        self._rc_url = self._endpoints.resource_controller_url.rstrip("/")
        self._logger = logger.bind(component="ibm_cloud_api")

    @property
    def name(self) -> str:
        return "ibm"

    async def exchange_api_key(self, api_key: SecretStr) -> AccessToken:
        response = await self._send(
            "POST",
            f"{self._iam_url}/identity/token",
            operation="token_exchange",
            timeout=self._timeouts.iam,
            rejected_as_auth=True,
            data={"grant_type": _APIKEY_GRANT_TYPE, "apikey": api_key.get_secret_value()},
            headers={"Accept": "application/json"},
        )
        body = self._json(response, "token_exchange")
        token = body.get("access_token")
        if not token:
            raise AuthError(
                message="The IAM token response did not contain an access token",
                error_code="TOKEN_MISSING",
            )
        return AccessToken(token=SecretStr(token), expires_in=int(body.get("expires_in", 3600)))

    async def get_account_id(self, token: SecretStr, api_key: SecretStr) -> str:
        response = await self._send(
            "GET",
            f"{self._iam_url}/v1/apikeys/details",
            operation="account_lookup",
            timeout=self._timeouts.lookup,
            headers={
                **self._auth_headers(token),
                "IAM-ApiKey": api_key.get_secret_value(),
            },
        )
        account_id = self._json(response, "account_lookup").get("account_id")
        if not account_id:
            raise RequestRejectedError(
                message="The API key details did not contain an account id",
                status_code=response.status_code,
                error_code="ACCOUNT_ID_MISSING",
            )
        return account_id

    async def get_default_resource_group(self, token: SecretStr, account_id: str) -> Optional[str]:
        response = await self._send(
            "GET",
            f"{self._rc_url}/v2/resource_groups",
            operation="resource_group_lookup",
            timeout=self._timeouts.lookup,
            params={"account_id": account_id},
            headers=self._auth_headers(token),
        )
        groups = self._json(response, "resource_group_lookup").get("resources") or []
        if not groups:
            return None
        for group in groups:
            if group.get("default"):
                return group.get("id")
        return groups[0].get("id")

    async def create_instance(self, token: SecretStr, request: ProvisioningRequest) -> str:
        payload = {
            "name": request.instance_name,
            "target": request.location,
            "resource_group": request.resource_group_id,
            "resource_plan_id": request.resource_plan_id,
            "parameters": {
                "registrationDefinition": base64.b64encode(request.registration).decode(),
                "repositoryTag": request.image_tag,
            },
        }
        response = await self._send(
            "POST",
            f"{self._rc_url}/v2/resource_instances",
            operation="provision",
            timeout=self._timeouts.provision,
            json=payload,
            headers=self._auth_headers(token),
        )
        body = self._json(response, "provision")
        instance_id = body.get("guid") or body.get("id")
        if not instance_id:
            raise RequestRejectedError(
                message="The provisioning response did not contain an instance id",
                status_code=response.status_code,
                error_code="INSTANCE_ID_MISSING",
            )
        return instance_id

    # =========================================================================
    # HTTP plumbing
    # =========================================================================

    @staticmethod
    def _auth_headers(token: SecretStr) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token.get_secret_value()}",
            "Accept": "application/json",
        }

    async def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        timeout: float,
        rejected_as_auth: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientError(
                message=f"Timed out after {timeout:g}s during {operation}",
                error_code="CLOUD_TIMEOUT",
                details={"operation": operation, "url": url},
            ) from e
        except httpx.HTTPError as e:
            raise TransientError(
                message=f"Network error during {operation}: {e}",
                error_code="CLOUD_UNREACHABLE",
                details={"operation": operation, "url": url},
            ) from e

        self._logger.debug("cloud_api_response", operation=operation, status_code=response.status_code)

        status = response.status_code
        if status < 400:
            return response

        reason = self._error_text(response)
        details = {"operation": operation, "status_code": status}
        if status >= 500 or status == 429:
            raise TransientError(
                message=f"{operation} failed with HTTP {status}: {reason}",
                error_code="CLOUD_SERVER_ERROR",
                details=details,
            )
        if rejected_as_auth:
            raise AuthError(
                message=f"{operation} was rejected with HTTP {status}: {reason}",
                error_code="CLOUD_AUTH_FAILED",
                details=details,
            )
        raise RequestRejectedError(
            message=f"{operation} was rejected with HTTP {status}: {reason}",
            status_code=status,
            details={"operation": operation},
        )

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise TransientError(
                message=f"{operation} returned a non-JSON response",
                error_code="CLOUD_BAD_RESPONSE",
                details={"operation": operation, "status_code": response.status_code},
            ) from e
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or "no response body"
        if isinstance(body, dict):
            for key in ("errorMessage", "message", "error_description", "error"):
                value = body.get(key)
                if isinstance(value, str) and value:
                    return value
            errors = body.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                return str(errors[0].get("message", errors[0]))
        return response.text[:200]
