"""
hpvs_deploy.integrations.runtime.mock - Mock Container Runtime
================================================================

A ContainerRuntime that records every call and succeeds unless told to
fail. Used by the test suite and by `HPVS_DEPLOY_RUNTIME_BACKEND=mock`
dry runs.

Usage:
    >>> runtime = MockContainerRuntime()
    >>> runtime.fail("login", stderr="unauthorized: incorrect username or password")
    >>> result = await runtime.login("docker.io", "bot", SecretStr("x"))
    >>> result.ok
    False
    >>> runtime.calls
    ['login']
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from pydantic import SecretStr

from hpvs_deploy.core.models import CommandResult
from hpvs_deploy.integrations.runtime.base import ContainerRuntime


logger = structlog.get_logger()


class MockContainerRuntime(ContainerRuntime):
    """Call-recording runtime with per-method failure injection.

    Attributes:
        _call_history: One dict per call: {"method": ..., **arguments}.
            Secrets are recorded as SecretStr, so they stay masked.
        _failures: method name -> CommandResult returned instead of success.
        _exceptions: method name -> exception raised when called.
    """

    def __init__(self) -> None:
        self._call_history: list[dict[str, Any]] = []
        self._failures: dict[str, CommandResult] = {}
        self._exceptions: dict[str, BaseException] = {}
        self._logger = logger.bind(component="mock_runtime")

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_history(self) -> list[dict[str, Any]]:
        return list(self._call_history)

    @property
    def calls(self) -> list[str]:
        """Method names in call order."""
        return [entry["method"] for entry in self._call_history]

    def call_count(self, method: str) -> int:
        return self.calls.count(method)

    def fail(self, method: str, *, returncode: int = 1, stderr: str = "mock failure") -> None:
        """Make every subsequent call to `method` return a failed result."""
        self._failures[method] = CommandResult(args=[method], returncode=returncode, stderr=stderr)

    def raise_on(self, method: str, exc: BaseException) -> None:
        """Make every subsequent call to `method` raise `exc`."""
        self._exceptions[method] = exc

    def reset(self) -> None:
        self._call_history.clear()
        self._failures.clear()
        self._exceptions.clear()

    # =========================================================================
    # ContainerRuntime implementation
    # =========================================================================

    async def pull(self, image: str) -> CommandResult:
        return self._record("pull", image=image)

    async def tag(self, source: str, target: str) -> CommandResult:
        return self._record("tag", source=source, target=target)

    async def login(self, registry_url: str, username: str, password: SecretStr) -> CommandResult:
        return self._record("login", registry_url=registry_url, username=username, password=password)

    async def logout(self, registry_url: str) -> CommandResult:
        return self._record("logout", registry_url=registry_url)

    async def load_trust_key(
        self,
        key_name: str,
        private_key_file: Path,
        passphrase: SecretStr,
    ) -> CommandResult:
        return self._record(
            "load_trust_key",
            key_name=key_name,
            private_key_file=private_key_file,
            passphrase=passphrase,
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
        return self._record(
            "add_trust_signer",
            key_name=key_name,
            public_key_file=public_key_file,
            image_name=image_name,
            root_passphrase=root_passphrase,
            repository_passphrase=repository_passphrase,
            trust_server=trust_server,
        )

    async def sign_and_push(
        self,
        reference: str,
        *,
        root_passphrase: SecretStr,
        signing_passphrase: SecretStr,
        trust_server: str,
    ) -> CommandResult:
        return self._record(
            "sign_and_push",
            reference=reference,
            root_passphrase=root_passphrase,
            signing_passphrase=signing_passphrase,
            trust_server=trust_server,
        )

    def _record(self, method: str, **arguments: Any) -> CommandResult:
        self._call_history.append({"method": method, **arguments})
        self._logger.debug("mock_runtime_call", method=method)

        if method in self._exceptions:
            raise self._exceptions[method]
        if method in self._failures:
            return self._failures[method]
        return CommandResult(args=[method], returncode=0, stdout=f"{method} ok")
