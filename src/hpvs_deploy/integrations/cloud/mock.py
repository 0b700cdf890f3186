"""
hpvs_deploy.integrations.cloud.mock - Mock Cloud API
======================================================

In-memory CloudAPI for tests and dry runs. Records every call in order and
can be told to raise on a given operation, optionally only for the first
N calls (to exercise retries).

Usage:
    >>> api = MockCloudAPI(resource_group_id=None)   # account has no groups
    >>> api.raise_on("create_instance", TransientError("503"), times=1)
    >>> api.calls
    ['exchange_api_key', 'get_account_id', ...]
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from pydantic import SecretStr

from hpvs_deploy.core.models import AccessToken, ProvisioningRequest
from hpvs_deploy.integrations.cloud.base import CloudAPI


class MockCloudAPI(CloudAPI):
    """Call-recording fake of the cloud provisioning API."""

    def __init__(
        self,
        *,
        account_id: str = "mock-account",
        resource_group_id: Optional[str] = "mock-resource-group",
        instance_id: Optional[str] = None,
        token_lifetime: int = 3600,
    ) -> None:
        self._account_id = account_id
        self._resource_group_id = resource_group_id
        self._instance_id = instance_id
        self._token_lifetime = token_lifetime
        self._call_history: list[dict[str, Any]] = []
        self._raises: dict[str, tuple[BaseException, Optional[int]]] = {}
        self._tokens_issued = 0

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_history(self) -> list[dict[str, Any]]:
        return list(self._call_history)

    @property
    def calls(self) -> list[str]:
        return [entry["operation"] for entry in self._call_history]

    @property
    def requests(self) -> list[ProvisioningRequest]:
        """Provisioning requests received, in order."""
        return [entry["request"] for entry in self._call_history if entry["operation"] == "create_instance"]

    def raise_on(self, operation: str, exc: BaseException, *, times: Optional[int] = None) -> None:
        """Raise `exc` from `operation`; only the first `times` calls if given."""
        self._raises[operation] = (exc, times)

    # =========================================================================
    # CloudAPI implementation
    # =========================================================================

    async def exchange_api_key(self, api_key: SecretStr) -> AccessToken:
        self._enter("exchange_api_key")
        self._tokens_issued += 1
        return AccessToken(
            token=SecretStr(f"mock-token-{self._tokens_issued}"),
            expires_in=self._token_lifetime,
        )

    async def get_account_id(self, token: SecretStr, api_key: SecretStr) -> str:
        self._enter("get_account_id", token=token.get_secret_value())
        return self._account_id

    async def get_default_resource_group(self, token: SecretStr, account_id: str) -> Optional[str]:
        self._enter("get_default_resource_group", account_id=account_id)
        return self._resource_group_id

    async def create_instance(self, token: SecretStr, request: ProvisioningRequest) -> str:
        self._enter("create_instance", token=token.get_secret_value(), request=request)
        return self._instance_id or f"mock-instance-{uuid4()}"

    def _enter(self, operation: str, **arguments: Any) -> None:
        self._call_history.append({"operation": operation, **arguments})
        if operation not in self._raises:
            return
        exc, times = self._raises[operation]
        if times is not None:
            if times <= 0:
                return
            self._raises[operation] = (exc, times - 1)
        raise exc
