"""
hpvs_deploy.wizard - Interactive Configuration Wizard
=======================================================

Asks for every DeploymentConfig value and writes them as a YAML config file
(``hpvs-deploy -c FILE``). Secrets are read without echo. Optional values
left blank are omitted so the documented defaults apply at load time.

The wizard refuses to overwrite an existing file.
"""

from __future__ import annotations

import getpass
import os
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
import yaml

from hpvs_deploy.core.config import (
    DEFAULT_IMAGE_TAG,
    DEFAULT_INSTANCE_NAME,
    DEFAULT_LOCATION,
    DEFAULT_REGISTRATION_FILE,
    DEFAULT_REGISTRY_URL,
    DEFAULT_TRUST_SERVER,
)
from hpvs_deploy.core.exceptions import ConfigurationError


logger = structlog.get_logger()

Prompt = Callable[[str], str]


class ConfigWizard:
    """Collects deployment settings interactively.

    Args:
        prompt: Reads one visible answer. Defaults to ``input``.
        secret_prompt: Reads one hidden answer. Defaults to ``getpass.getpass``.
    """

    def __init__(self, prompt: Optional[Prompt] = None, secret_prompt: Optional[Prompt] = None) -> None:
        self._prompt = prompt or input
        self._secret_prompt = secret_prompt or getpass.getpass

    def collect(self) -> dict[str, Any]:
        """Ask all questions and return the nested config mapping."""
        registry = {
            "url": self._ask("Container registry", default=DEFAULT_REGISTRY_URL),
            "namespace": self._ask("Registry namespace", required=True),
            "username": self._ask("Registry user name", required=True),
            "password": self._ask_secret("Registry password or access token", required=True),
        }

        trust: dict[str, Any] = {
            "root_passphrase": self._ask_secret("Content trust root key passphrase", required=True),
            "server": self._ask("Content trust server", default=DEFAULT_TRUST_SERVER),
        }
        repository_passphrase = self._ask_secret("Repository key passphrase (blank to reuse the root passphrase)")
        if repository_passphrase:
            trust["repository_passphrase"] = repository_passphrase

        if self._confirm("Sign with a delegation key?"):
            delegation = {
                "key_name": self._ask("Delegation key name", required=True),
                "public_key_file": self._ask("Delegation public key file", required=True),
                "private_key_file": self._ask("Delegation private key file (blank if already loaded)"),
                "passphrase": self._ask_secret("Delegation key passphrase", required=True),
            }
            trust["delegation"] = {key: value for key, value in delegation.items() if value}

        vendor_key = {
            "name": self._ask("Vendor GPG key name", required=True),
            "public_key_file": self._ask("Vendor GPG public key file", required=True),
            "private_key_file": self._ask("Vendor GPG private key file", required=True),
            "passphrase": self._ask_secret("Vendor GPG key passphrase", required=True),
        }

        cloud = {
            "api_key": self._ask_secret("IBM Cloud API key (blank to reuse the registry password)"),
            "location": self._ask("Location", default=DEFAULT_LOCATION),
            "resource_group": self._ask("Resource group id (blank for the account default)"),
            "instance_name": self._ask("Instance name", default=DEFAULT_INSTANCE_NAME),
        }

        data: dict[str, Any] = {
            "image_tag": self._ask("Image tag", default=DEFAULT_IMAGE_TAG),
            "registry": registry,
            "trust": trust,
            "vendor_key": vendor_key,
            "cloud": {key: value for key, value in cloud.items() if value},
            "registration_file": self._ask("Registration file", default=DEFAULT_REGISTRATION_FILE),
        }
        return data

    def _ask(self, question: str, *, default: Optional[str] = None, required: bool = False) -> str:
        suffix = f" [{default}]" if default else ""
        while True:
            answer = self._prompt(f"{question}{suffix}: ").strip()
            if answer:
                return answer
            if default is not None:
                return default
            if not required:
                return ""
            print("A value is required.")

    def _ask_secret(self, question: str, *, required: bool = False) -> str:
        while True:
            answer = self._secret_prompt(f"{question}: ").strip()
            if answer or not required:
                return answer
            print("A value is required.")

    def _confirm(self, question: str) -> bool:
        return self._prompt(f"{question} [y/N]: ").strip().lower() in ("y", "yes")


def create_config_file(path: str | Path, wizard: Optional[ConfigWizard] = None) -> Path:
    """Run the wizard and write its answers to `path` as YAML (mode 0600).

    Raises:
        ConfigurationError: If `path` already exists or is not a .yaml/.yml file.
    """
    target = Path(path)
    if target.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            message=f"New configuration files are written as YAML; name it '{target.stem}.yaml'.",
            error_code="CONFIG_FORMAT",
            details={"path": str(target)},
        )
    if target.exists():
        raise ConfigurationError(
            message=f"The file '{target}' already exists. Choose a new file name or use -f to load it.",
            error_code="CONFIG_EXISTS",
            details={"path": str(target)},
        )

    data = (wizard or ConfigWizard()).collect()

    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w") as handle:
        yaml.safe_dump(data, handle, sort_keys=False, default_flow_style=False)

    logger.info("config_file_created", path=str(target))
    return target
