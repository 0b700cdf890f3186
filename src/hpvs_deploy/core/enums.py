"""
hpvs_deploy.core.enums - Type-Safe Enumerations
=================================================

Closed enumerations for every value the deployment pipeline branches on.
Comparing plain strings ("fedora", "local") is replaced by these enums, so
an unsupported value fails when the configuration is built instead of
silently falling through a string comparison later in the run.

All enums inherit from both `str` and `Enum`:
    - They serialize to strings in YAML/JSON (pydantic-friendly)
    - They compare equal to their plain string values
"""

from __future__ import annotations

import platform as _platform
from enum import Enum
from typing import Optional

from hpvs_deploy.core.exceptions import ConfigurationError


# =============================================================================
# Target Architecture
# =============================================================================
# Hyper Protect Virtual Servers only run s390x (IBM Z) images. Every image
# name the pipeline produces carries this suffix.
# =============================================================================
TARGET_ARCHITECTURE = "s390x"

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
}


# =============================================================================
# Platform Enumeration
# =============================================================================
# The three container OS variants the FHE Toolkit is published for on s390x.
#
#   ALPINE → fhe-toolkit-alpine-s390x
#   FEDORA → fhe-toolkit-fedora-s390x   (default)
#   UBUNTU → fhe-toolkit-ubuntu-s390x
# =============================================================================
class Platform(str, Enum):
    """Container OS variant of the FHE Toolkit image.

    Usage:
        >>> Platform.parse("FEDORA")
        <Platform.FEDORA: 'fedora'>
        >>> Platform.FEDORA.repository
        'fhe-toolkit-fedora-s390x'
    """

    ALPINE = "alpine"
    FEDORA = "fedora"
    UBUNTU = "ubuntu"

    @classmethod
    def default(cls) -> Platform:
        return cls.FEDORA

    @classmethod
    def parse(cls, value: Optional[str]) -> Platform:
        """Parse a user-supplied platform name, ignoring case.

        Args:
            value: Platform name as typed by the user. None or an empty
                string selects the default platform.

        Returns:
            The matching Platform member.

        Raises:
            ConfigurationError: If the name is not a supported platform.
                The original (un-lowercased) value is kept in the message.
        """
        if value is None or not value.strip():
            return cls.default()

        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member

        raise ConfigurationError(
            message=f"Invalid value: '{value}' - Please specify a supported platform",
            error_code="UNSUPPORTED_PLATFORM",
            details={"platform": value, "supported": [m.value for m in cls]},
        )

    @property
    def repository(self) -> str:
        """Repository name of the s390x FHE Toolkit image for this platform."""
        return f"fhe-toolkit-{self.value}-{TARGET_ARCHITECTURE}"


# =============================================================================
# Source Mode Enumeration
# =============================================================================
# Where the image to deploy comes from:
#
#   REMOTE_REGISTRY → the pre-built ibmcom/<repository> image from Docker Hub
#   LOCAL_BUILD     → a local/<repository> image produced by a local build
# =============================================================================
class SourceMode(str, Enum):
    """Origin of the container image that gets signed and deployed."""

    REMOTE_REGISTRY = "remote-registry"
    LOCAL_BUILD = "local-build"

    @property
    def image_prefix(self) -> str:
        """Namespace prefix of the local image reference for this mode."""
        if self is SourceMode.LOCAL_BUILD:
            return "local"
        return "ibmcom"


# =============================================================================
# Pipeline Stage Enumeration
# =============================================================================
# The strictly ordered stages of one deployment run. The orchestrator
# records the current stage so that an error can name where it happened.
# =============================================================================
class PipelineStage(str, Enum):
    """Stages of a deployment run, in execution order."""

    TRUST = "trust"                     # Tag, login, delegate, sign and push
    REGISTRATION = "registration"       # Build, encrypt and sign registration
    PROVISIONING = "provisioning"       # Token, resource group, create instance
    CLEANUP = "cleanup"                 # Registry logout


# =============================================================================
# Host Architecture Helpers
# =============================================================================
def normalize_architecture(machine: str) -> str:
    """Normalize a machine name (`uname -m` style) to a canonical form."""
    machine = machine.strip().lower()
    return _ARCH_ALIASES.get(machine, machine)


def detect_host_architecture() -> str:
    """Return the normalized architecture of the running host."""
    return normalize_architecture(_platform.machine())


def is_target_compatible(architecture: str) -> bool:
    """Whether images built on `architecture` can run on the cloud target."""
    return normalize_architecture(architecture) == TARGET_ARCHITECTURE
