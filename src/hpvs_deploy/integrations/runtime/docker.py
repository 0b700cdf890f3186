"""
hpvs_deploy.integrations.runtime.docker - Docker CLI Runtime
==============================================================

ContainerRuntime backed by the `docker` command line. Content trust is
driven through `docker trust` and DOCKER_CONTENT_TRUST_* environment
variables; passphrases never appear on the command line.

Command Mapping:
    pull            docker pull <image>
    tag             docker tag <source> <target>
    login           docker login --username <user> --password-stdin <registry>
    logout          docker logout <registry>
    load_trust_key  docker trust key load --name <key> <private key file>
    add_trust_signer docker trust signer add --key <public key file> <key> <image>
    sign_and_push   DOCKER_CONTENT_TRUST=1 docker push <reference>
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from pydantic import SecretStr

from hpvs_deploy.core.config import TimeoutConfig
from hpvs_deploy.core.models import CommandResult
from hpvs_deploy.integrations.process import run_command
from hpvs_deploy.integrations.runtime.base import ContainerRuntime


logger = structlog.get_logger()


class DockerCLIRuntime(ContainerRuntime):
    """Container runtime that shells out to the docker CLI.

    Attributes:
        _binary: docker executable name or path.
        _timeouts: Per-call-class timeouts.
    """

    def __init__(
        self,
        binary: str = "docker",
        timeouts: Optional[TimeoutConfig] = None,
    ) -> None:
        self._binary = binary
        self._timeouts = timeouts or TimeoutConfig()
        self._logger = logger.bind(component="docker_runtime")

    @property
    def name(self) -> str:
        return "docker"

    async def pull(self, image: str) -> CommandResult:
        return await self._docker(["pull", image], timeout=self._timeouts.push)

    async def tag(self, source: str, target: str) -> CommandResult:
        return await self._docker(["tag", source, target], timeout=self._timeouts.registry)

    async def login(self, registry_url: str, username: str, password: SecretStr) -> CommandResult:
        return await self._docker(
            ["login", "--username", username, "--password-stdin", registry_url],
            timeout=self._timeouts.registry,
            stdin=password.get_secret_value().encode(),
        )

    async def logout(self, registry_url: str) -> CommandResult:
        return await self._docker(["logout", registry_url], timeout=self._timeouts.registry)

    async def load_trust_key(
        self,
        key_name: str,
        private_key_file: Path,
        passphrase: SecretStr,
    ) -> CommandResult:
        # The imported key is re-encrypted with the repository passphrase.
        return await self._docker(
            ["trust", "key", "load", "--name", key_name, str(private_key_file)],
            timeout=self._timeouts.trust,
            env={"DOCKER_CONTENT_TRUST_REPOSITORY_PASSPHRASE": passphrase.get_secret_value()},
        )

    async def add_trust_signer(
        self,
        key_name: str,
        public_key_file: Path,
        image_name: str,
        *,
        root_passphrase: SecretStr,
        repository_passphrase: SecretStr,
        trust_server: str,
    ) -> CommandResult:
        return await self._docker(
            ["trust", "signer", "add", "--key", str(public_key_file), key_name, image_name],
            timeout=self._timeouts.trust,
            env={
                "DOCKER_CONTENT_TRUST_SERVER": trust_server,
                "DOCKER_CONTENT_TRUST_ROOT_PASSPHRASE": root_passphrase.get_secret_value(),
                "DOCKER_CONTENT_TRUST_REPOSITORY_PASSPHRASE": repository_passphrase.get_secret_value(),
            },
        )

    async def sign_and_push(
        self,
        reference: str,
        *,
        root_passphrase: SecretStr,
        signing_passphrase: SecretStr,
        trust_server: str,
    ) -> CommandResult:
        return await self._docker(
            ["push", reference],
            timeout=self._timeouts.push,
            env={
                "DOCKER_CONTENT_TRUST": "1",
                "DOCKER_CONTENT_TRUST_SERVER": trust_server,
                "DOCKER_CONTENT_TRUST_ROOT_PASSPHRASE": root_passphrase.get_secret_value(),
                "DOCKER_CONTENT_TRUST_REPOSITORY_PASSPHRASE": signing_passphrase.get_secret_value(),
            },
        )

    async def _docker(
        self,
        args: list[str],
        *,
        timeout: float,
        env: Optional[dict[str, str]] = None,
        stdin: Optional[bytes] = None,
    ) -> CommandResult:
        self._logger.debug("docker_command", command=args[:3])
        result = await run_command([self._binary, *args], timeout=timeout, env=env, stdin=stdin)
        if not result.ok:
            self._logger.debug(
                "docker_command_failed",
                command=args[:3],
                returncode=result.returncode,
                output=result.output[-500:],
            )
        return result
