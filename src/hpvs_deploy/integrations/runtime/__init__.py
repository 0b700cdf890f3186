"""
hpvs_deploy.integrations.runtime - Container Runtime Backends
===============================================================

Available Runtimes:
    - ContainerRuntime:     Abstract contract used by the TrustSigner.
    - DockerCLIRuntime:     Drives the docker CLI (content trust via notary).
    - MockContainerRuntime: Records calls; for tests and dry runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hpvs_deploy.integrations.runtime.base import ContainerRuntime
from hpvs_deploy.integrations.runtime.docker import DockerCLIRuntime
from hpvs_deploy.integrations.runtime.mock import MockContainerRuntime

if TYPE_CHECKING:
    from hpvs_deploy.core.config import DeploySettings


def create_container_runtime(settings: DeploySettings) -> ContainerRuntime:
    """Create the container runtime selected by ``settings.runtime_backend``.

    Raises:
        ValueError: If the backend name is not recognized.
    """
    backend = settings.runtime_backend.lower()

    if backend == "docker":
        return DockerCLIRuntime(binary=settings.docker_binary, timeouts=settings.timeouts)
    if backend == "mock":
        return MockContainerRuntime()

    raise ValueError(f"Unknown container runtime: '{backend}'. Available: 'docker', 'mock'.")


__all__ = [
    "ContainerRuntime",
    "DockerCLIRuntime",
    "MockContainerRuntime",
    "create_container_runtime",
]
