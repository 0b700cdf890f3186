"""
hpvs_deploy.integrations.cloud - Cloud Provisioning API Backends
==================================================================

Available APIs:
    - CloudAPI:     Abstract contract used by the CloudProvisioner.
    - IBMCloudAPI:  IBM Cloud IAM + Resource Controller over httpx.
    - MockCloudAPI: Call-recording fake for tests and dry runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hpvs_deploy.integrations.cloud.base import CloudAPI
from hpvs_deploy.integrations.cloud.ibm import IBMCloudAPI
from hpvs_deploy.integrations.cloud.mock import MockCloudAPI

if TYPE_CHECKING:
    from hpvs_deploy.core.config import DeploySettings


def create_cloud_api(settings: DeploySettings) -> CloudAPI:
    """Create the cloud API selected by ``settings.cloud_backend``.

    Raises:
        ValueError: If the backend name is not recognized.
    """
    backend = settings.cloud_backend.lower()

    if backend == "ibm":
        return IBMCloudAPI(endpoints=settings.endpoints, timeouts=settings.timeouts)
    if backend == "mock":
        return MockCloudAPI()

    raise ValueError(f"Unknown cloud backend: '{backend}'. Available: 'ibm', 'mock'.")


__all__ = [
    "CloudAPI",
    "IBMCloudAPI",
    "MockCloudAPI",
    "create_cloud_api",
]
