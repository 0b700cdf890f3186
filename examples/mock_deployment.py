"""
Mock Deployment Example - The Full Pipeline Offline
=====================================================

This example runs one complete deployment with the mock backends:

    TRUST ─→ REGISTRATION ─→ PROVISIONING ─→ CLEANUP

    - MockContainerRuntime stands in for docker (tag, login, sign and push)
    - MockKeyring stands in for gpg (import keys, encrypt and sign)
    - MockCloudAPI stands in for IBM Cloud (token, resource group, instance)

Nothing leaves the machine. Key files are written to a temporary
directory; the mock keyring derives a key's fingerprint from the first
line of its file.

Usage:
    python examples/mock_deployment.py
"""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

from pydantic import SecretStr

from hpvs_deploy.core.config import DeploymentConfig, DeploySettings
from hpvs_deploy.core.models import RegistrationDocument
from hpvs_deploy.integrations.cloud.mock import MockCloudAPI
from hpvs_deploy.integrations.keyring.mock import MockKeyring
from hpvs_deploy.integrations.runtime.mock import MockContainerRuntime
from hpvs_deploy.logging import configure_logging
from hpvs_deploy.pipeline import DeploymentOrchestrator


def write_key(path: Path, uid: str, kind: str) -> Path:
    path.write_text(f"{uid}\n-----BEGIN MOCK {kind} KEY-----\n{path.name}\n-----END MOCK {kind} KEY-----\n")
    return path


async def main() -> None:
    configure_logging()

    with tempfile.TemporaryDirectory() as scratch:
        workdir = Path(scratch)
        vendor_pub = write_key(workdir / "vendor.pub", "acme-vendor <vendor@acme.example>", "PUBLIC")
        vendor_pri = write_key(workdir / "vendor.key", "acme-vendor <vendor@acme.example>", "PRIVATE")
        recipient_pub = write_key(workdir / "hpvs.pub", "hpvs-registration", "PUBLIC")
        recipient_pri = write_key(workdir / "hpvs.key", "hpvs-registration", "PRIVATE")

        # =================================================================
        # Step 1: Describe the deployment
        # =================================================================
        config = DeploymentConfig(
            platform="ubuntu",
            image_tag="v1.3.1",
            registry={"namespace": "acme", "username": "acme-bot", "password": "registry-secret"},
            trust={"root_passphrase": "root-secret", "repository_passphrase": "repo-secret"},
            vendor_key={
                "name": "acme-vendor",
                "public_key_file": vendor_pub,
                "private_key_file": vendor_pri,
                "passphrase": "vendor-secret",
            },
            cloud={"api_key": "cloud-api-key", "instance_name": "fhe-demo"},
            registration_file=workdir / "hpvs-fhe-registration.txt",
        )
        settings = DeploySettings(
            runtime_backend="mock",
            keyring_backend="mock",
            cloud_backend="mock",
            registration={"recipient_key_file": recipient_pub},
        )

        # =================================================================
        # Step 2: Run it
        # =================================================================
        runtime = MockContainerRuntime()
        keyring = MockKeyring()
        cloud_api = MockCloudAPI()
        orchestrator = DeploymentOrchestrator(
            config,
            settings,
            runtime=runtime,
            keyring=keyring,
            cloud_api=cloud_api,
        )
        instance = await orchestrator.run()

        print(f"\nInstance {instance.instance_id} requested in {instance.location}")
        print(f"  docker calls: {runtime.calls}")
        print(f"  gpg calls:    {keyring.call_history}")
        print(f"  cloud calls:  {cloud_api.calls}")

        # =================================================================
        # Step 3: Open the registration the way the cloud would
        # =================================================================
        await keyring.import_private_key(recipient_pri, SecretStr("hpvs-secret"))
        plaintext = await keyring.decrypt(config.resolve_registration_file(), SecretStr("hpvs-secret"))
        document = RegistrationDocument.from_json(plaintext.decode())
        print(f"  registration: {document.registry_url}/{document.namespace}/{document.repository}")


if __name__ == "__main__":
    asyncio.run(main())
