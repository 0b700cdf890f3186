"""
hpvs_deploy.integrations.cloud.base - Cloud API Interface
===========================================================

The four cloud endpoints the CloudProvisioner drives:

    1. exchange_api_key           API key  → short-lived bearer token
    2. get_account_id             token    → account the key belongs to
    3. get_default_resource_group account  → default resource group id
    4. create_instance            request  → instance identifier

Implementations classify failures into AuthError, TransientError and
RequestRejectedError; they never retry on their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import SecretStr

from hpvs_deploy.core.models import AccessToken, ProvisioningRequest


class CloudAPI(ABC):
    """Abstract cloud provisioning API."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier ("ibm", "mock")."""

    @abstractmethod
    async def exchange_api_key(self, api_key: SecretStr) -> AccessToken:
        """Exchange an API key for a bearer token.

        Raises:
            AuthError: If the key is rejected.
            TransientError: On network failure or a server error.
        """

    @abstractmethod
    async def get_account_id(self, token: SecretStr, api_key: SecretStr) -> str:
        """Return the account identifier the API key belongs to."""

    @abstractmethod
    async def get_default_resource_group(self, token: SecretStr, account_id: str) -> Optional[str]:
        """Return the account's default resource group id, or None if it has none."""

    @abstractmethod
    async def create_instance(self, token: SecretStr, request: ProvisioningRequest) -> str:
        """Submit a provisioning request and return the new instance's id.

        The returned id means the request was accepted, not that the
        instance is running.
        """
