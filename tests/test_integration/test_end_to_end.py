"""
End-to-End Tests for the Deployment Pipeline
==============================================

These tests run DeploymentOrchestrator with every collaborator mocked
(container runtime, keyring, cloud API) but the real TrustSigner,
RegistrationBuilder and CloudProvisioner wired together.

Test Scenarios:
    1. Successful run: signed push, sealed registration, provisioned instance
    2. Fail-fast: the failing stage is recorded and later stages never run
    3. Cleanup: registry logout exactly once whenever a login was attempted
    4. Artifacts from failed or cancelled runs are discarded
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from hpvs_deploy.core.exceptions import (
    AuthError,
    ConfigurationError,
    CryptoError,
    RequestRejectedError,
)
from hpvs_deploy.integrations.cloud.mock import MockCloudAPI
from hpvs_deploy.integrations.keyring.mock import MockKeyring
from hpvs_deploy.integrations.runtime.mock import MockContainerRuntime


# =============================================================================
# Test: Successful Deployment
# =============================================================================

class TestSuccessfulDeployment:
    """A full run against the mocks."""

    async def test_mixed_case_platform_deploys(
        self, make_config, make_orchestrator, runtime: MockContainerRuntime, cloud_api: MockCloudAPI
    ):
        config = make_config(platform="FeDoRa")
        orchestrator = make_orchestrator(config)

        instance = await orchestrator.run()

        assert instance.instance_id == "crn:v1:mock:instance-1"
        assert instance.source_tag == "v1.3.1"
        assert instance.run_id == orchestrator.run_id
        assert runtime.call_history[1]["target"] == "docker.io/acme/fhe-toolkit-fedora-s390x:v1.3.1"
        assert runtime.call_count("logout") == 1
        assert orchestrator.stage is None

    async def test_sealed_registration_reaches_the_cloud(
        self, config, make_orchestrator, cloud_api: MockCloudAPI, decrypt_registration
    ):
        await make_orchestrator(config).run()

        request = cloud_api.requests[0]
        registration_file = config.resolve_registration_file()
        assert request.registration == registration_file.read_bytes()
        assert request.image_tag == "v1.3.1"

        document = await decrypt_registration(registration_file)
        assert document.repository == "fhe-toolkit-fedora-s390x"
        assert document.namespace == "acme"

    async def test_stage_order(
        self, config, make_orchestrator, runtime: MockContainerRuntime, keyring: MockKeyring, cloud_api: MockCloudAPI
    ):
        await make_orchestrator(config).run()

        assert runtime.calls == ["pull", "tag", "login", "sign_and_push", "logout"]
        assert keyring.call_history[-1] == "encrypt_and_sign"
        assert cloud_api.calls[-1] == "create_instance"

    async def test_local_build_on_s390x(self, make_config, make_orchestrator, runtime: MockContainerRuntime):
        config = make_config(platform="ubuntu", source_mode="local-build")

        await make_orchestrator(config).run()

        assert "pull" not in runtime.calls
        assert runtime.call_history[0]["source"] == "local/fhe-toolkit-ubuntu-s390x"


# =============================================================================
# Test: Fail-Fast
# =============================================================================

class TestFailFast:
    """The first failing stage aborts the run and is named in the error."""

    async def test_missing_delegation_key_fails_in_trust_stage(
        self,
        make_config,
        make_orchestrator,
        delegation_keys,
        tmp_path: Path,
        runtime: MockContainerRuntime,
        keyring: MockKeyring,
        cloud_api: MockCloudAPI,
    ):
        config = make_config(
            trust={
                "delegation": {
                    "key_name": "delegate",
                    "public_key_file": str(delegation_keys[0]),
                    "private_key_file": str(tmp_path / "absent.key"),
                    "passphrase": "delegation-secret",
                }
            }
        )

        with pytest.raises(CryptoError) as exc_info:
            await make_orchestrator(config).run()

        assert exc_info.value.details["stage"] == "trust"
        assert exc_info.value.details["repository"] == "fhe-toolkit-fedora-s390x"
        assert keyring.call_history == []
        assert cloud_api.calls == []
        assert runtime.call_count("sign_and_push") == 0
        assert runtime.call_count("logout") == 1

    async def test_incompatible_host_never_logs_in(
        self, make_config, make_orchestrator, runtime: MockContainerRuntime
    ):
        config = make_config(source_mode="local-build")
        orchestrator = make_orchestrator(config, host_architecture="x86_64")

        with pytest.raises(ConfigurationError) as exc_info:
            await orchestrator.run()

        assert exc_info.value.details["stage"] == "trust"
        assert runtime.calls == []

    async def test_login_failure_still_logs_out(self, config, make_orchestrator, runtime: MockContainerRuntime):
        runtime.fail("login", stderr="unauthorized")

        with pytest.raises(AuthError):
            await make_orchestrator(config).run()

        assert runtime.calls == ["pull", "tag", "login", "logout"]

    async def test_sealing_failure_skips_provisioning(
        self, config, make_orchestrator, keyring: MockKeyring, cloud_api: MockCloudAPI
    ):
        keyring.fail("encrypt_and_sign")

        with pytest.raises(CryptoError) as exc_info:
            await make_orchestrator(config).run()

        assert exc_info.value.details["stage"] == "registration"
        assert cloud_api.calls == []
        assert not config.resolve_registration_file().exists()

    async def test_unwritable_registration_path_fails_in_registration_stage(
        self,
        make_config,
        make_orchestrator,
        tmp_path: Path,
        runtime: MockContainerRuntime,
        cloud_api: MockCloudAPI,
    ):
        config = make_config(registration_file=str(tmp_path / "missing" / "reg.txt"))

        with pytest.raises(CryptoError) as exc_info:
            await make_orchestrator(config).run()

        assert exc_info.value.error_code == "REGISTRATION_WRITE_FAILED"
        assert exc_info.value.details["stage"] == "registration"
        assert cloud_api.calls == []
        assert runtime.call_count("logout") == 1

    async def test_provisioning_failure_discards_registration(
        self, config, make_orchestrator, cloud_api: MockCloudAPI, runtime: MockContainerRuntime
    ):
        cloud_api.raise_on("create_instance", RequestRejectedError("plan unavailable", status_code=400))
        orchestrator = make_orchestrator(config)

        with pytest.raises(RequestRejectedError) as exc_info:
            await orchestrator.run()

        details = exc_info.value.details
        assert details["stage"] == "provisioning"
        assert details["run_id"] == orchestrator.run_id
        assert details["instance_name"] == "fhetoolkit-s390x-sample"
        assert not config.resolve_registration_file().exists()
        assert runtime.call_count("logout") == 1
        assert orchestrator.stage is None


# =============================================================================
# Test: Cleanup
# =============================================================================

class TestCleanup:
    async def test_logout_failure_does_not_fail_the_run(
        self, config, make_orchestrator, runtime: MockContainerRuntime
    ):
        runtime.fail("logout", stderr="not logged in")

        instance = await make_orchestrator(config).run()

        assert instance.instance_id
        assert runtime.call_count("logout") == 1

    async def test_logout_exception_does_not_mask_the_error(
        self, config, make_orchestrator, runtime: MockContainerRuntime, cloud_api: MockCloudAPI
    ):
        runtime.raise_on("logout", RuntimeError("docker daemon gone"))
        cloud_api.raise_on("exchange_api_key", AuthError("invalid api key"))

        with pytest.raises(AuthError) as exc_info:
            await make_orchestrator(config).run()

        assert exc_info.value.details["stage"] == "provisioning"

    async def test_cancellation_discards_artifact_and_logs_out(
        self, config, make_orchestrator, runtime: MockContainerRuntime, cloud_api: MockCloudAPI
    ):
        cloud_api.raise_on("create_instance", asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await make_orchestrator(config).run()

        assert not config.resolve_registration_file().exists()
        assert runtime.call_count("logout") == 1
