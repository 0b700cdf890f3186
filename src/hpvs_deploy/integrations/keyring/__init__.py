"""
hpvs_deploy.integrations.keyring - OpenPGP Keyring Backends
=============================================================

Available Keyrings:
    - Keyring:     Abstract contract used by the RegistrationBuilder.
    - GpgKeyring:  Drives the gpg CLI in batch mode.
    - MockKeyring: Rule-enforcing in-memory fake for tests and dry runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hpvs_deploy.integrations.keyring.base import KeyInfo, Keyring
from hpvs_deploy.integrations.keyring.gpg import GpgKeyring
from hpvs_deploy.integrations.keyring.mock import MockKeyring

if TYPE_CHECKING:
    from hpvs_deploy.core.config import DeploySettings


def create_keyring(settings: DeploySettings) -> Keyring:
    """Create the keyring selected by ``settings.keyring_backend``.

    Raises:
        ValueError: If the backend name is not recognized.
    """
    backend = settings.keyring_backend.lower()

    if backend == "gpg":
        return GpgKeyring(
            binary=settings.gpg_binary,
            home=settings.gpg_home,
            timeout=settings.timeouts.keyring,
        )
    if backend == "mock":
        return MockKeyring()

    raise ValueError(f"Unknown keyring backend: '{backend}'. Available: 'gpg', 'mock'.")


__all__ = [
    "KeyInfo",
    "Keyring",
    "GpgKeyring",
    "MockKeyring",
    "create_keyring",
]
